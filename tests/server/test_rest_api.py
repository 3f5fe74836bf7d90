"""
Status API Tests for LockMint

Tests the FastAPI health, status and metrics endpoints with a mocked
consumer wired in.
"""

import pytest
from unittest.mock import Mock

from fastapi.testclient import TestClient

from lockmint.server.env import Env
from lockmint.server.metrics import MetricNames, MetricsCollector
from lockmint.server.stream import ScanContext


@pytest.fixture
def mock_consumer():
    consumer = Mock()
    consumer.last_block_height = 810500
    consumer.stats = Mock(return_value={
        'processed_blocks': 500,
        'last_block_height': 810500,
        'candidates': 1200,
        'mints_found': 4,
        'mints_saved': 3,
        'duplicates': 1,
        'save_errors': 0,
        'unmined': 0,
        'reorgs': 0,
    })
    return consumer


@pytest.fixture
def metrics():
    collector = MetricsCollector()
    collector.inc_counter(MetricNames.MINTS_FOUND, 4)
    return collector


@pytest.fixture
def client(deploy_config, target_token_id, mock_consumer, metrics):
    """TestClient with a configured scanner wired in."""
    from lockmint.server.rest_api import app, set_scanner
    context = ScanContext(config=deploy_config, target_token_id=target_token_id)
    set_scanner(context, mock_consumer, metrics)
    yield TestClient(app)
    set_scanner(None, None, None)


@pytest.fixture
def bare_client():
    """TestClient before the scanner is configured."""
    from lockmint.server.rest_api import app, set_scanner
    set_scanner(None, None, None)
    return TestClient(app)


class TestHealthEndpoints:

    def test_health(self, client):
        resp = client.get('/health')
        assert resp.status_code == 200
        data = resp.json()
        assert data['status'] == 'healthy'
        assert data['configured'] is True
        assert data['last_block_height'] == 810500
        assert 'uptime_seconds' in data

    def test_health_degraded(self, bare_client):
        data = bare_client.get('/health').json()
        assert data['status'] == 'degraded'
        assert data['configured'] is False

    def test_live(self, bare_client):
        resp = bare_client.get('/health/live')
        assert resp.status_code == 200
        assert resp.json()['status'] == 'alive'

    def test_ready(self, client, target_token_id):
        resp = client.get('/health/ready')
        assert resp.status_code == 200
        assert resp.json()['target_token_id'] == target_token_id

    def test_not_ready(self, bare_client):
        assert bare_client.get('/health/ready').status_code == 503


class TestStatusEndpoints:

    def test_status(self, client, target_token_id):
        resp = client.get('/status')
        assert resp.status_code == 200
        data = resp.json()
        assert data['protocol'] == 'llm-21'
        assert data['max_mint_amount'] == 1000
        assert data['target_token_id'] == target_token_id
        assert data['deploy']['tick'] == 'LLM'
        assert data['deploy']['min_blocks_locked'] == 990
        assert data['scan']['mints_saved'] == 3

    def test_status_unconfigured(self, bare_client):
        data = bare_client.get('/status').json()
        assert 'deploy' not in data
        assert 'scan' not in data

    def test_metrics(self, client):
        resp = client.get('/metrics')
        assert resp.status_code == 200
        assert resp.headers['content-type'].startswith('text/plain')
        assert 'lockmint_mints_found_total 4' in resp.text

    def test_metrics_unavailable(self, bare_client):
        assert bare_client.get('/metrics').status_code == 503


class TestApiKey:

    @pytest.fixture
    def keyed_client(self, deploy_config, target_token_id, mock_consumer, metrics,
                     monkeypatch):
        """Scanner wired with the key from an Env mapping, not os.environ."""
        monkeypatch.delenv('REST_API_KEY', raising=False)
        from lockmint.server.rest_api import app, set_scanner
        env = Env({
            'TARGET_TOKEN_ID': target_token_id,
            'STARTING_HEIGHT': '810000',
            'SUPABASE_URL': 'https://db.example',
            'SUPABASE_KEY': 'secret',
            'REST_API_KEY': 'k1',
        })
        context = ScanContext(config=deploy_config, target_token_id=target_token_id)
        set_scanner(context, mock_consumer, metrics, env.rest_api_key)
        yield TestClient(app)
        set_scanner(None, None, None)

    def test_key_required(self, keyed_client):
        assert keyed_client.get('/status').status_code == 401
        assert keyed_client.get('/metrics').status_code == 401
        assert keyed_client.get('/status', headers={'X-API-Key': 'wrong'}).status_code == 401
        assert keyed_client.get('/status', headers={'X-API-Key': 'k1'}).status_code == 200

    def test_health_open(self, keyed_client):
        assert keyed_client.get('/health').status_code == 200
        assert keyed_client.get('/health/ready').status_code == 200

    def test_process_environment_ignored(self, client, monkeypatch):
        monkeypatch.setenv('REST_API_KEY', 'k1')
        assert client.get('/status').status_code == 200

    def test_key_cleared_on_reset(self, keyed_client):
        from lockmint.server.rest_api import set_scanner
        set_scanner(None, None, None)
        assert keyed_client.get('/status').status_code == 200
