"""
Resource prices and currency conversion.

Prices default to GCP e2-standard on-demand rates (us-central1) in USD and
can be overridden from a YAML file:

    currency: USD
    cpu_per_core_hour: 0.021811
    memory_per_gb_hour: 0.002923
"""
import logging
from dataclasses import dataclass
from typing import Optional

import requests
import yaml

logger = logging.getLogger(__name__)

DEFAULT_CPU_PER_CORE_HOUR = 0.021811
DEFAULT_MEMORY_PER_GB_HOUR = 0.002923
DEFAULT_PRICE_CURRENCY = 'USD'


class PricingError(Exception):
    """Raised when prices or exchange rates cannot be obtained"""
    pass


@dataclass
class PriceTable:
    cpu_per_core_hour: float = DEFAULT_CPU_PER_CORE_HOUR
    memory_per_gb_hour: float = DEFAULT_MEMORY_PER_GB_HOUR
    currency: str = DEFAULT_PRICE_CURRENCY


def load_price_table(path: Optional[str] = None) -> PriceTable:
    """Load a price table from YAML; missing keys keep their defaults"""
    if not path:
        return PriceTable()
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise PricingError(f"price table not found: {path}") from e
    except yaml.YAMLError as e:
        raise PricingError(f"invalid YAML in price table {path}: {e}") from e
    if not isinstance(data, dict):
        raise PricingError(f"price table {path} must be a mapping")

    try:
        table = PriceTable(
            cpu_per_core_hour=float(data.get('cpu_per_core_hour', DEFAULT_CPU_PER_CORE_HOUR)),
            memory_per_gb_hour=float(data.get('memory_per_gb_hour', DEFAULT_MEMORY_PER_GB_HOUR)),
            currency=str(data.get('currency', DEFAULT_PRICE_CURRENCY)).upper(),
        )
    except (TypeError, ValueError) as e:
        raise PricingError(f"invalid price in {path}: {e}") from e
    if table.cpu_per_core_hour < 0 or table.memory_per_gb_hour < 0:
        raise PricingError(f"prices in {path} must not be negative")
    logger.info(f"Loaded price table from {path}: {table}")
    return table


class PricingClient:
    """Price table plus exchange-rate lookup

    Args:
        prices: price table in its own base currency
        exchange_url: base URL of an exchangerate.host-compatible API
        timeout: request timeout in seconds
        fallback_rate: static rate used when the lookup fails (None = fail)
        session: requests.Session used for lookups
    """

    def __init__(
        self,
        prices: Optional[PriceTable] = None,
        exchange_url: str = 'https://api.exchangerate.host',
        timeout: float = 10.0,
        fallback_rate: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        self.prices = prices or PriceTable()
        self.exchange_url = exchange_url.rstrip('/')
        self.timeout = timeout
        self.fallback_rate = fallback_rate
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls) -> 'PricingClient':
        import config
        prices = load_price_table(config.PRICING_CONFIG_PATH)
        if not config.PRICING_CONFIG_PATH:
            prices.currency = config.PRICING_BASE_CURRENCY
        return cls(
            prices=prices,
            exchange_url=config.EXCHANGE_URL,
            timeout=config.EXCHANGE_TIMEOUT_SECONDS,
            fallback_rate=config.EXCHANGE_RATE_FALLBACK,
        )

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> float:
        """Units of `to_currency` per unit of `from_currency`"""
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return 1.0

        url = f"{self.exchange_url}/latest"
        params = {'base': from_currency, 'symbols': to_currency}
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
            rate = float(payload['rates'][to_currency])
            if rate <= 0:
                raise ValueError(f"non-positive rate {rate}")
            return rate
        except (requests.exceptions.RequestException, ValueError, KeyError, TypeError) as e:
            if self.fallback_rate is not None:
                logger.warning(f"Exchange rate lookup {from_currency}->{to_currency} failed ({e}); "
                               f"using fallback rate {self.fallback_rate}")
                return self.fallback_rate
            raise PricingError(f"exchange rate lookup {from_currency}->{to_currency} failed: {e}") from e
