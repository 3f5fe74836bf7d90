"""
Environment Configuration Tests
"""

import pytest

from lockmint.server.env import DEFAULT_SUBSCRIPTION_ID, Env, EnvError


@pytest.fixture
def base_env():
    return {
        'TARGET_TOKEN_ID': 'ab' * 32 + '_0',
        'STARTING_HEIGHT': '810000',
        'SUPABASE_URL': 'https://db.example/',
        'SUPABASE_KEY': 'secret',
    }


class TestEnv:

    def test_defaults(self, base_env):
        env = Env(base_env)
        assert env.target_token_id == 'ab' * 32 + '_0'
        assert env.starting_height == 810000
        assert env.supabase_url == 'https://db.example'
        assert env.supabase_table == 'mints'
        assert env.ordinals_api_url == 'https://ordinals.gorillapool.io'
        assert env.junglebus_url.startswith('wss://junglebus.gorillapool.io')
        assert env.subscription_id == DEFAULT_SUBSCRIPTION_ID
        assert env.txid_file is None
        assert env.request_timeout == 30
        assert env.progress_interval == 100
        assert env.rest_api_enabled is False
        assert env.rest_api_port == 8000
        assert env.log_level == 'INFO'

    @pytest.mark.parametrize('missing', [
        'TARGET_TOKEN_ID', 'STARTING_HEIGHT', 'SUPABASE_URL', 'SUPABASE_KEY',
    ])
    def test_required(self, base_env, missing):
        del base_env[missing]
        with pytest.raises(EnvError, match=missing):
            Env(base_env)

    def test_blank_required(self, base_env):
        base_env['SUPABASE_KEY'] = '   '
        with pytest.raises(EnvError):
            Env(base_env)

    @pytest.mark.parametrize('name,value', [
        ('STARTING_HEIGHT', 'genesis'),
        ('STARTING_HEIGHT', '-1'),
        ('REQUEST_TIMEOUT', '0'),
        ('PROGRESS_INTERVAL', '0'),
        ('REST_API_PORT', 'http'),
    ])
    def test_bad_integers(self, base_env, name, value):
        base_env[name] = value
        with pytest.raises(EnvError):
            Env(base_env)

    @pytest.mark.parametrize('value,expected', [
        ('1', True), ('yes', True), ('true', True),
        ('0', False), ('false', False), ('no', False), ('', False),
    ])
    def test_boolean(self, base_env, value, expected):
        base_env['REST_API_ENABLED'] = value
        assert Env(base_env).rest_api_enabled is expected

    def test_overrides(self, base_env):
        base_env.update({
            'ORDINALS_API_URL': 'http://localhost:8080/',
            'TXID_FILE': '/tmp/txids.txt',
            'SUPABASE_TABLE': 'llm_mints',
            'LOG_LEVEL': 'debug',
        })
        env = Env(base_env)
        assert env.ordinals_api_url == 'http://localhost:8080'
        assert env.txid_file == '/tmp/txids.txt'
        assert env.supabase_table == 'llm_mints'
        assert env.log_level == 'DEBUG'
