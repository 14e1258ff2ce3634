import os
import re
import logging
import sys
from typing import Optional
from urllib.parse import urlparse


# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def setup_logging():
    """Configure application-wide logging"""
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "on")


_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, "d": 86400.0}


def parse_duration(value: str) -> float:
    """Parse '500ms', '10s', '2m', '1h', '7d' or bare seconds into seconds."""
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"invalid duration: {value!r}")
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit or "s"]


_PERIOD_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
PERIOD_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_period(text: str) -> int:
    """'7d', '24h', '30m', '90s' -> whole seconds. Stricter than parse_duration."""
    match = _PERIOD_RE.match(text or "")
    if not match:
        raise ValueError(f"invalid period {text!r}, expected e.g. 7d, 24h, 30m or 90s")
    seconds = int(match.group(1)) * PERIOD_UNITS[match.group(2)]
    if seconds <= 0:
        raise ValueError(f"period must be positive, got {text!r}")
    return seconds


def _env_duration(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return parse_duration(raw)
    except ValueError:
        logging.warning(f"Invalid duration for {name}={raw!r}, using {default}")
        return parse_duration(default)


def _env_float_optional(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    return float(raw)


# =============================================================================
# Time-series backend (Mimir / Prometheus) Configuration
# =============================================================================
MIMIR_URL: str = os.getenv("MIMIR_URL", "http://localhost:8080")
MIMIR_ORG_ID: str = os.getenv("MIMIR_ORG_ID", "anonymous")

# Retry policy
MIMIR_RETRY_MAX: int = int(os.getenv("MIMIR_RETRY_MAX", "3"))
MIMIR_RETRY_INITIAL_BACKOFF: float = _env_duration("MIMIR_RETRY_INITIAL_BACKOFF", "1s")
MIMIR_RETRY_MAX_BACKOFF: float = _env_duration("MIMIR_RETRY_MAX_BACKOFF", "10s")

# Per-operation timeouts (range queries return more data and get a longer budget)
MIMIR_TIMEOUT_QUERY: float = _env_duration("MIMIR_TIMEOUT_QUERY", "10s")
MIMIR_TIMEOUT_QUERY_RANGE: float = _env_duration("MIMIR_TIMEOUT_QUERY_RANGE", "30s")
MIMIR_TIMEOUT_CONNECT: float = _env_duration("MIMIR_TIMEOUT_CONNECT", "5s")

# Circuit breaker
MIMIR_CB_MAX_FAILURES: int = int(os.getenv("MIMIR_CB_MAX_FAILURES", "5"))
MIMIR_CB_RESET_TIMEOUT: float = _env_duration("MIMIR_CB_RESET_TIMEOUT", "60s")
MIMIR_CB_HALF_OPEN_MAX: int = int(os.getenv("MIMIR_CB_HALF_OPEN_MAX", "2"))

# Samples above this magnitude are treated as gaps and coerced to zero
VALUE_SANITY_CEILING: float = float(os.getenv("VALUE_SANITY_CEILING", "1e6"))

# =============================================================================
# Analysis Configuration
# =============================================================================
ANALYSIS_PERIOD: str = os.getenv("ANALYSIS_PERIOD", "7d")
ANALYSIS_TIMEOUT_SECONDS: float = _env_duration("ANALYSIS_TIMEOUT_SECONDS", "60s")
ANALYSIS_MAX_WORKERS: int = int(os.getenv("ANALYSIS_MAX_WORKERS", "5"))

# Sizing buffers: suggested = max(peak * PEAK_FACTOR, average * AVERAGE_FACTOR)
CPU_PEAK_FACTOR: float = float(os.getenv("CPU_PEAK_FACTOR", "1.1"))
CPU_AVERAGE_FACTOR: float = float(os.getenv("CPU_AVERAGE_FACTOR", "1.3"))
MEMORY_PEAK_FACTOR: float = float(os.getenv("MEMORY_PEAK_FACTOR", "1.2"))
MEMORY_AVERAGE_FACTOR: float = float(os.getenv("MEMORY_AVERAGE_FACTOR", "1.4"))
CPU_GRANULARITY_MILLICORES: float = float(os.getenv("CPU_GRANULARITY_MILLICORES", "100"))
MEMORY_GRANULARITY_MEBIBYTES: float = float(os.getenv("MEMORY_GRANULARITY_MEBIBYTES", "128"))

# Alert thresholds (utilization percent)
CPU_ALERT_THRESHOLD_PERCENT: float = float(os.getenv("CPU_ALERT_THRESHOLD_PERCENT", "80"))
MEMORY_ALERT_THRESHOLD_PERCENT: float = float(os.getenv("MEMORY_ALERT_THRESHOLD_PERCENT", "80"))

# =============================================================================
# Pricing Configuration
# =============================================================================
PRICING_CURRENCY: str = os.getenv("PRICING_CURRENCY", "BRL").upper()
PRICING_BASE_CURRENCY: str = os.getenv("PRICING_BASE_CURRENCY", "USD").upper()
# Optional YAML file overriding the built-in price table
PRICING_CONFIG_PATH: Optional[str] = os.getenv("PRICING_CONFIG_PATH")
EXCHANGE_URL: str = os.getenv("EXCHANGE_URL", "https://api.exchangerate.host")
EXCHANGE_TIMEOUT_SECONDS: float = _env_duration("EXCHANGE_TIMEOUT_SECONDS", "10s")
# Static rate used when the exchange service cannot be reached
EXCHANGE_RATE_FALLBACK: Optional[float] = _env_float_optional("EXCHANGE_RATE_FALLBACK")

# =============================================================================
# Output / HTTP surface
# =============================================================================
OUTPUT_DIR: str = os.getenv("OUTPUT_DIR", "output")
API_HOST: str = os.getenv("API_HOST", "127.0.0.1")
API_PORT: int = int(os.getenv("API_PORT", "9000"))
API_DEBUG: bool = _env_bool("API_DEBUG", False)


def get_analysis_output_path(namespace: str, deployment: str) -> str:
    """Get workload-specific output path: {namespace}_{deployment}_analysis.json"""
    return os.path.join(OUTPUT_DIR, f"{namespace}_{deployment}_analysis.json")


__all__ = [
    "MIMIR_URL",
    "MIMIR_ORG_ID",
    "MIMIR_RETRY_MAX",
    "MIMIR_RETRY_INITIAL_BACKOFF",
    "MIMIR_RETRY_MAX_BACKOFF",
    "MIMIR_TIMEOUT_QUERY",
    "MIMIR_TIMEOUT_QUERY_RANGE",
    "MIMIR_TIMEOUT_CONNECT",
    "MIMIR_CB_MAX_FAILURES",
    "MIMIR_CB_RESET_TIMEOUT",
    "MIMIR_CB_HALF_OPEN_MAX",
    "VALUE_SANITY_CEILING",
    "ANALYSIS_PERIOD",
    "ANALYSIS_TIMEOUT_SECONDS",
    "ANALYSIS_MAX_WORKERS",
    "CPU_PEAK_FACTOR",
    "CPU_AVERAGE_FACTOR",
    "MEMORY_PEAK_FACTOR",
    "MEMORY_AVERAGE_FACTOR",
    "CPU_GRANULARITY_MILLICORES",
    "MEMORY_GRANULARITY_MEBIBYTES",
    "CPU_ALERT_THRESHOLD_PERCENT",
    "MEMORY_ALERT_THRESHOLD_PERCENT",
    "PRICING_CURRENCY",
    "PRICING_BASE_CURRENCY",
    "PRICING_CONFIG_PATH",
    "EXCHANGE_URL",
    "EXCHANGE_TIMEOUT_SECONDS",
    "EXCHANGE_RATE_FALLBACK",
    "OUTPUT_DIR",
    "API_HOST",
    "API_PORT",
    "API_DEBUG",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "setup_logging",
    "parse_duration",
    "parse_period",
    "validate_config",
    "get_analysis_output_path",
]


# =============================================================================
# Configuration Validation
# =============================================================================
class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


def _validate_positive_int(name: str, value: int) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name} must be positive, got {value}")


def _validate_positive(name: str, value: float) -> None:
    if not value > 0:
        raise ConfigValidationError(f"{name} must be positive, got {value}")


def _validate_non_negative_int(name: str, value: int) -> None:
    if value < 0:
        raise ConfigValidationError(f"{name} must not be negative, got {value}")


def _validate_url(name: str, value: str) -> None:
    try:
        result = urlparse(value)
        if not all([result.scheme, result.netloc]):
            raise ValueError("Missing scheme or netloc")
        if result.scheme not in ('http', 'https'):
            raise ValueError(f"Invalid scheme: {result.scheme}")
    except Exception as e:
        raise ConfigValidationError(f"{name} is not a valid URL: {value} ({e})")


def _validate_currency(name: str, value: str) -> None:
    if not re.fullmatch(r"[A-Z]{3}", value or ""):
        raise ConfigValidationError(f"{name} must be a 3-letter ISO currency code, got '{value}'")


def validate_config() -> None:
    """Validate all configuration values on startup

    Raises:
        ConfigValidationError: If any configuration value is invalid
    """
    errors = []

    checks = [
        (_validate_url, "MIMIR_URL", MIMIR_URL),
        (_validate_url, "EXCHANGE_URL", EXCHANGE_URL),
        (_validate_non_negative_int, "MIMIR_RETRY_MAX", MIMIR_RETRY_MAX),
        (_validate_positive, "MIMIR_RETRY_INITIAL_BACKOFF", MIMIR_RETRY_INITIAL_BACKOFF),
        (_validate_positive, "MIMIR_RETRY_MAX_BACKOFF", MIMIR_RETRY_MAX_BACKOFF),
        (_validate_positive, "MIMIR_TIMEOUT_QUERY", MIMIR_TIMEOUT_QUERY),
        (_validate_positive, "MIMIR_TIMEOUT_QUERY_RANGE", MIMIR_TIMEOUT_QUERY_RANGE),
        (_validate_positive, "MIMIR_TIMEOUT_CONNECT", MIMIR_TIMEOUT_CONNECT),
        (_validate_positive_int, "MIMIR_CB_MAX_FAILURES", MIMIR_CB_MAX_FAILURES),
        (_validate_positive, "MIMIR_CB_RESET_TIMEOUT", MIMIR_CB_RESET_TIMEOUT),
        (_validate_positive_int, "MIMIR_CB_HALF_OPEN_MAX", MIMIR_CB_HALF_OPEN_MAX),
        (_validate_positive, "VALUE_SANITY_CEILING", VALUE_SANITY_CEILING),
        (_validate_positive, "ANALYSIS_TIMEOUT_SECONDS", ANALYSIS_TIMEOUT_SECONDS),
        (_validate_positive_int, "ANALYSIS_MAX_WORKERS", ANALYSIS_MAX_WORKERS),
        (_validate_positive, "CPU_GRANULARITY_MILLICORES", CPU_GRANULARITY_MILLICORES),
        (_validate_positive, "MEMORY_GRANULARITY_MEBIBYTES", MEMORY_GRANULARITY_MEBIBYTES),
        (_validate_positive, "EXCHANGE_TIMEOUT_SECONDS", EXCHANGE_TIMEOUT_SECONDS),
        (_validate_currency, "PRICING_CURRENCY", PRICING_CURRENCY),
        (_validate_currency, "PRICING_BASE_CURRENCY", PRICING_BASE_CURRENCY),
    ]
    for check, name, value in checks:
        try:
            check(name, value)
        except ConfigValidationError as e:
            errors.append(str(e))

    if MIMIR_RETRY_MAX_BACKOFF < MIMIR_RETRY_INITIAL_BACKOFF:
        errors.append("MIMIR_RETRY_MAX_BACKOFF must not be smaller than MIMIR_RETRY_INITIAL_BACKOFF")

    for name, factor in (
        ("CPU_PEAK_FACTOR", CPU_PEAK_FACTOR),
        ("CPU_AVERAGE_FACTOR", CPU_AVERAGE_FACTOR),
        ("MEMORY_PEAK_FACTOR", MEMORY_PEAK_FACTOR),
        ("MEMORY_AVERAGE_FACTOR", MEMORY_AVERAGE_FACTOR),
    ):
        if factor < 1.0:
            errors.append(f"{name} must be at least 1.0, got {factor}")

    try:
        parse_period(ANALYSIS_PERIOD)
    except ValueError as e:
        errors.append(f"ANALYSIS_PERIOD: {e}")

    if EXCHANGE_RATE_FALLBACK is not None and EXCHANGE_RATE_FALLBACK <= 0:
        errors.append(f"EXCHANGE_RATE_FALLBACK must be positive, got {EXCHANGE_RATE_FALLBACK}")

    if PRICING_CONFIG_PATH and not os.path.exists(PRICING_CONFIG_PATH):
        errors.append(f"PRICING_CONFIG_PATH does not exist: {PRICING_CONFIG_PATH}")

    if errors:
        raise ConfigValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )
