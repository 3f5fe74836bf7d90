"""
Ordinals API client for LockMint

Resolves the outputs of candidate transactions and the deploy inscription
of the target token from the GorillaPool ordinals API:

    GET {base}/api/inscriptions/{txid}_{vout}?script=false
    GET {base}/api/inscriptions/{deploy_id}?script=false

The resolver never retries; a failed lookup is reported once and the
caller decides what it means.
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from lockmint.lib import util
from lockmint.lib.outputs import parse_inscription_json
from lockmint.lib.protocol import (
    PROTOCOL_ID, ProtocolConfig, format_outpoint, parse_deploy_config,
)


class ResolutionError(Exception):
    """An output or inscription could not be fetched."""


class OutputResolver:
    """
    Fetches decoded output payloads over HTTP.

    One aiohttp session is shared by all lookups; call close() (or use
    ``async with``) when done.
    """

    def __init__(self, base_url: str, timeout: float = 30, session=None):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={'accept': 'application/json'},
            )
        return self._session

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def inscription_url(self, inscription_id: str) -> str:
        return f'{self.base_url}/api/inscriptions/{inscription_id}?script=false'

    async def _get_json(self, url: str) -> Any:
        try:
            async with self.session.get(url) as response:
                if response.status < 200 or response.status >= 300:
                    raise ResolutionError(f'HTTP {response.status} for {url}')
                return await response.json(content_type=None)
        except ResolutionError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ResolutionError(f'{type(e).__name__} for {url}: {e}') from e

    async def resolve_output(self, txid: str, vout: int) -> Dict[str, Any]:
        """
        Return the raw payload for output *vout* of *txid*.

        Raises ResolutionError on transport failure or a non-success
        status.  Missing fields inside a successful response are not
        an error here.
        """
        payload = await self._get_json(self.inscription_url(format_outpoint(txid, vout)))
        if not isinstance(payload, dict):
            raise ResolutionError(f'unexpected payload for {txid}_{vout}')
        return payload

    async def fetch_protocol_config(self, token_id: str) -> Optional[ProtocolConfig]:
        """
        Fetch and parse the deploy inscription of *token_id*.

        Returns None if it cannot be fetched or does not carry valid
        lock thresholds.
        """
        try:
            payload = await self._get_json(self.inscription_url(token_id))
        except ResolutionError as e:
            self.logger.error(f'Error fetching deploy inscription {token_id}: {e}')
            return None

        deploy_json = parse_inscription_json(payload)
        if not deploy_json:
            self.logger.error(f'Inscription {token_id} carries no JSON payload')
            return None

        self.logger.info(f'Deploy inscription found: {deploy_json}')
        config = parse_deploy_config(deploy_json)
        if config is None:
            self.logger.error(f'Deploy inscription {token_id} is not a usable deploy (op or lock thresholds)')
            return None
        if config.protocol_id != PROTOCOL_ID:
            self.logger.warning(
                f'Deploy protocol {config.protocol_id!r} differs from {PROTOCOL_ID!r}; '
                f'mints are matched against {PROTOCOL_ID!r}'
            )
        return config
