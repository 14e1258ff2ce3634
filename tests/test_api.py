"""
Tests for API endpoints
"""
import pytest
from unittest.mock import MagicMock
import json

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import api
from api import app
from orchestrator import WorkloadAnalyzer
from models import CircuitBreakerState
from metrics.prometheus_client import PrometheusConnectionError, RetriesExhaustedError
from metrics.interfaces import InventoryUnavailableError
from pricing.client import PricingError


@pytest.fixture
def analyzer(fake_querier, fake_inventory, fake_pricing, monkeypatch):
    analyzer = WorkloadAnalyzer(fake_querier, fake_inventory, fake_pricing, currency='USD')
    monkeypatch.setattr(api, '_analyzer', analyzer)
    return analyzer


@pytest.fixture
def client(analyzer):
    """Flask test client"""
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


class TestHealthEndpoint:
    """Tests for /health endpoint"""

    def test_health_returns_200(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'healthy'
        assert 'timestamp' in data


class TestReadyEndpoint:
    """Tests for /ready endpoint"""

    def test_ready_when_backend_answers(self, client, analyzer):
        analyzer.querier = MagicMock()
        analyzer.querier.check_connection.return_value = True

        response = client.get('/ready')

        assert response.status_code == 200
        assert json.loads(response.data)['status'] == 'ready'

    def test_not_ready_when_backend_down(self, client, analyzer):
        """Ready endpoint should return 503 when Mimir is unreachable"""
        analyzer.querier = MagicMock()
        analyzer.querier.check_connection.side_effect = PrometheusConnectionError("connection refused")

        response = client.get('/ready')

        assert response.status_code == 503
        data = json.loads(response.data)
        assert data['status'] == 'not_ready'
        assert 'connection refused' in data['reason']


class TestAnalyzeEndpoint:
    """Tests for /api/v1/analyze"""

    def test_returns_payload(self, client):
        response = client.get('/api/v1/analyze/default/api-server?period=24h')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['workload']['deployment'] == 'api-server'
        assert data['period']['label'] == '24h'
        assert data['recommendations']['cpu']['reason'] == 'overprovisioned'

    def test_invalid_period(self, client):
        response = client.get('/api/v1/analyze/default/api-server?period=fortnight')
        assert response.status_code == 400
        assert 'error' in json.loads(response.data)

    def test_invalid_name(self, client):
        response = client.get('/api/v1/analyze/default/Bad_Name')
        assert response.status_code == 400

    def test_unknown_deployment(self, client):
        response = client.get('/api/v1/analyze/default/ghost')
        assert response.status_code == 404

    def test_backend_failure(self, client, fake_querier):
        fake_querier.errors = {'container_cpu_usage_seconds_total': RetriesExhaustedError("gave up")}

        response = client.get('/api/v1/analyze/default/api-server')

        assert response.status_code == 502
        assert json.loads(response.data)['stage'] == 'cpu_history'

    def test_inventory_failure(self, client, fake_inventory):
        fake_inventory.error = InventoryUnavailableError("kube-state-metrics down")

        response = client.get('/api/v1/analyze/default/api-server')

        assert response.status_code == 502
        assert json.loads(response.data)['stage'] in ('workload_usage', 'workload_config')


class TestMetricsEndpoint:
    """Tests for /metrics endpoint"""

    def test_metrics_format(self, client):
        client.get('/health')

        response = client.get('/metrics')

        assert response.status_code == 200
        assert response.mimetype == 'text/plain'
        text = response.data.decode()
        assert '# TYPE workload_analyzer_requests_total counter' in text
        assert 'workload_analyzer_requests_by_endpoint{endpoint="/health"}' in text

    def test_circuit_breaker_state_exported(self, client, analyzer):
        analyzer.querier = MagicMock()
        analyzer.querier.circuit_state.return_value = CircuitBreakerState(state='open', consecutive_failures=5)

        text = client.get('/metrics').data.decode()

        assert 'workload_analyzer_circuit_breaker_state{state="open"} 1' in text
        assert 'workload_analyzer_circuit_breaker_state{state="closed"} 0' in text
        assert 'workload_analyzer_circuit_breaker_failures 5' in text


class TestAnalyzerStartupFailure:
    """A bad price table makes every backend-facing endpoint answer 503"""

    @pytest.fixture
    def client(self, monkeypatch):
        def from_config(cls):
            raise PricingError("price table not found: /etc/prices.yaml")

        monkeypatch.setattr(api, '_analyzer', None)
        monkeypatch.setattr(WorkloadAnalyzer, 'from_config', classmethod(from_config))
        app.config['TESTING'] = True
        with app.test_client() as client:
            yield client

    def test_ready(self, client):
        response = client.get('/ready')
        assert response.status_code == 503
        assert 'price table' in json.loads(response.data)['reason']

    def test_analyze(self, client):
        response = client.get('/api/v1/analyze/default/api-server?period=24h')
        assert response.status_code == 503

    def test_metrics(self, client):
        assert client.get('/metrics').status_code == 503

    def test_health_unaffected(self, client):
        assert client.get('/health').status_code == 200
