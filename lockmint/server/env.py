"""
Environment configuration for LockMint.

All settings come from environment variables; ``__main__`` loads a
``.env`` file first so local runs can keep them on disk.
"""

from os import environ
from typing import Optional


DEFAULT_SUBSCRIPTION_ID = (
    '6f9c4fdf73c39c39964403f117bad29496bd2f6a7792bd44cf60c99516ef5c8f'
)


class EnvError(Exception):
    pass


class Env:
    """Wraps environment configuration.  Optionally, accepts a mapping
    to read from instead of os.environ (used by the tests)."""

    def __init__(self, environment=None):
        self._environ = environ if environment is None else environment

        # Target token
        self.target_token_id = self.required('TARGET_TOKEN_ID')
        self.starting_height = self.integer('STARTING_HEIGHT', None)
        if self.starting_height is None:
            raise EnvError('required envvar STARTING_HEIGHT not set')
        if self.starting_height < 0:
            raise EnvError('STARTING_HEIGHT must be non-negative')

        # Persistence
        self.supabase_url = self.required('SUPABASE_URL').rstrip('/')
        self.supabase_key = self.required('SUPABASE_KEY')
        self.supabase_table = self.default('SUPABASE_TABLE', 'mints')

        # Upstream services
        self.ordinals_api_url = self.default(
            'ORDINALS_API_URL', 'https://ordinals.gorillapool.io').rstrip('/')
        self.junglebus_url = self.default(
            'JUNGLEBUS_URL', 'wss://junglebus.gorillapool.io/connection/websocket')
        self.subscription_id = self.default('SUBSCRIPTION_ID', DEFAULT_SUBSCRIPTION_ID)
        self.txid_file = self.default('TXID_FILE', None)
        self.request_timeout = self.integer('REQUEST_TIMEOUT', 30)
        if self.request_timeout <= 0:
            raise EnvError('REQUEST_TIMEOUT must be positive')

        # Progress reporting
        self.progress_interval = self.integer('PROGRESS_INTERVAL', 100)
        if self.progress_interval <= 0:
            raise EnvError('PROGRESS_INTERVAL must be positive')

        # Status API
        self.rest_api_enabled = self.boolean('REST_API_ENABLED', False)
        self.rest_api_host = self.default('REST_API_HOST', '0.0.0.0')
        self.rest_api_port = self.integer('REST_API_PORT', 8000)
        self.rest_api_key = self.default('REST_API_KEY', None)

        self.log_level = self.default('LOG_LEVEL', 'info').upper()

    def default(self, envvar: str, default):
        return self._environ.get(envvar, default)

    def boolean(self, envvar: str, default: bool) -> bool:
        value = self._environ.get(envvar)
        if value is None:
            return default
        return value.strip().lower() not in ('', '0', 'false', 'no')

    def required(self, envvar: str) -> str:
        value = self._environ.get(envvar)
        if value is None or not value.strip():
            raise EnvError(f'required envvar {envvar} not set')
        return value.strip()

    def integer(self, envvar: str, default: Optional[int]) -> Optional[int]:
        value = self._environ.get(envvar)
        if value is None:
            return default
        try:
            return int(value)
        except Exception:
            raise EnvError(f'cannot convert envvar {envvar} value {value} to an integer')
