"""
Tests for price tables and exchange rates
"""
import pytest
import requests
from unittest.mock import MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pricing.client import (
    PricingClient, PricingError, PriceTable, load_price_table,
    DEFAULT_CPU_PER_CORE_HOUR, DEFAULT_MEMORY_PER_GB_HOUR,
)
from conftest import make_response


class TestPriceTable:
    """Tests for load_price_table"""

    def test_defaults(self):
        table = load_price_table(None)
        assert table.cpu_per_core_hour == DEFAULT_CPU_PER_CORE_HOUR == 0.021811
        assert table.memory_per_gb_hour == DEFAULT_MEMORY_PER_GB_HOUR == 0.002923
        assert table.currency == 'USD'

    def test_yaml_override(self, tmp_path):
        path = tmp_path / 'prices.yaml'
        path.write_text("currency: eur\ncpu_per_core_hour: 0.03\n")

        table = load_price_table(str(path))

        assert table.cpu_per_core_hour == 0.03
        assert table.memory_per_gb_hour == DEFAULT_MEMORY_PER_GB_HOUR
        assert table.currency == 'EUR'

    def test_missing_file(self, tmp_path):
        with pytest.raises(PricingError):
            load_price_table(str(tmp_path / 'nope.yaml'))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'prices.yaml'
        path.write_text("cpu_per_core_hour: [unclosed\n")
        with pytest.raises(PricingError):
            load_price_table(str(path))

    def test_invalid_values(self, tmp_path):
        path = tmp_path / 'prices.yaml'
        path.write_text("cpu_per_core_hour: cheap\n")
        with pytest.raises(PricingError):
            load_price_table(str(path))

        path.write_text("memory_per_gb_hour: -1\n")
        with pytest.raises(PricingError):
            load_price_table(str(path))

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / 'prices.yaml'
        path.write_text("- 1\n- 2\n")
        with pytest.raises(PricingError):
            load_price_table(str(path))


class TestExchangeRate:
    """Tests for PricingClient.get_exchange_rate"""

    def test_same_currency_needs_no_lookup(self):
        session = MagicMock()
        client = PricingClient(session=session)

        assert client.get_exchange_rate('usd', 'USD') == 1.0
        session.get.assert_not_called()

    def test_lookup(self):
        session = MagicMock()
        session.get.return_value = make_response(200, {'base': 'USD', 'rates': {'BRL': 5.43}})
        client = PricingClient(exchange_url='https://rates.example/', session=session)

        assert client.get_exchange_rate('USD', 'BRL') == 5.43
        args, kwargs = session.get.call_args
        assert args[0] == 'https://rates.example/latest'
        assert kwargs['params'] == {'base': 'USD', 'symbols': 'BRL'}

    def test_connection_error(self):
        session = MagicMock()
        session.get.side_effect = requests.exceptions.ConnectionError("down")

        with pytest.raises(PricingError):
            PricingClient(session=session).get_exchange_rate('USD', 'BRL')

    def test_missing_rate(self):
        session = MagicMock()
        session.get.return_value = make_response(200, {'rates': {}})

        with pytest.raises(PricingError):
            PricingClient(session=session).get_exchange_rate('USD', 'BRL')

    def test_http_error(self):
        session = MagicMock()
        response = make_response(500)
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("500 Server Error")
        session.get.return_value = response

        with pytest.raises(PricingError):
            PricingClient(session=session).get_exchange_rate('USD', 'BRL')

    def test_fallback_rate(self):
        session = MagicMock()
        session.get.side_effect = requests.exceptions.Timeout("slow")

        client = PricingClient(session=session, fallback_rate=5.0)

        assert client.get_exchange_rate('USD', 'BRL') == 5.0

    def test_from_config(self, monkeypatch):
        import config
        monkeypatch.setattr(config, 'PRICING_CONFIG_PATH', None)
        monkeypatch.setattr(config, 'PRICING_BASE_CURRENCY', 'USD')
        monkeypatch.setattr(config, 'EXCHANGE_RATE_FALLBACK', 4.9)

        client = PricingClient.from_config()

        assert client.prices.currency == 'USD'
        assert client.fallback_rate == 4.9
