"""
Resilient client for the Prometheus-compatible HTTP API exposed by Mimir.

Every call goes through the same pipeline: circuit breaker admission,
a per-operation time budget (optionally shortened by the caller's deadline),
retries with exponential backoff for transport errors, 5xx and 429, and
sanitisation of the sample values that come back.
"""
import email.utils
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional

import requests

from models import TimeSeriesValue, RangeResult, CircuitBreakerState
from normalize.math import sanitize
from normalize.series import sort_by_timestamp
from .circuit_breaker import CircuitBreaker, STATE_OPEN

logger = logging.getLogger(__name__)

QUERY_PATH = "/api/v1/query"
QUERY_RANGE_PATH = "/api/v1/query_range"
READY_PATH = "/ready"


class PrometheusError(Exception):
    """Base exception for Prometheus/Mimir errors"""
    pass


class PrometheusConnectionError(PrometheusError):
    """Transport-side failure: connection refused, reset, 5xx"""
    pass


class RateLimitedError(PrometheusConnectionError):
    """Backend answered 429 Too Many Requests"""
    pass


class CircuitOpenError(PrometheusConnectionError):
    """Call rejected because the circuit breaker is open"""
    pass


class QueryTimeoutError(PrometheusConnectionError):
    """Operation budget or caller deadline ran out"""
    pass


class RetriesExhaustedError(PrometheusConnectionError):
    """All retry attempts failed; `cause` holds the last failure"""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class MalformedResponseError(PrometheusError):
    """Successful status code but a body that is not a query result"""
    pass


class PrometheusQueryError(PrometheusError):
    """Backend rejected the query (4xx other than 429)"""
    pass


@dataclass
class RetryPolicy:
    max_retries: int = 3
    initial_backoff: float = 1.0
    max_backoff: float = 10.0

    def backoff(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        return min(self.initial_backoff * (2 ** (attempt - 1)), self.max_backoff)


@dataclass
class Timeouts:
    query: float = 10.0
    query_range: float = 30.0
    connect: float = 5.0


def parse_value(raw: Any, ceiling: float = 1e6) -> float:
    """Parse a sample value; NaN, Inf, empty, negative or > ceiling become 0.0"""
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return 0.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return sanitize(value, ceiling)


def _parse_sample(pair: Any, ceiling: float) -> Optional[TimeSeriesValue]:
    if not isinstance(pair, (list, tuple)) or len(pair) != 2:
        return None
    try:
        ts = float(pair[0])
    except (TypeError, ValueError):
        return None
    return TimeSeriesValue(
        value=parse_value(pair[1], ceiling),
        timestamp=datetime.fromtimestamp(ts, tz=timezone.utc),
    )


def parse_retry_after(header: Optional[str]) -> Optional[float]:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP date)."""
    if not header:
        return None
    header = header.strip()
    try:
        return max(0.0, float(header))
    except ValueError:
        pass
    try:
        when = email.utils.parsedate_to_datetime(header)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def _result_series(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        raise MalformedResponseError(f"expected a JSON object, got {type(payload).__name__}")
    data = payload.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("result"), list):
        raise MalformedResponseError("response has no data.result list")
    return data["result"]


class PrometheusClient:
    """Query client for one Mimir tenant

    Args:
        base_url: Mimir base URL, e.g. http://mimir:8080
        org_id: tenant sent as X-Scope-OrgID
        retry: retry/backoff policy
        timeouts: per-operation budgets in seconds
        breaker: circuit breaker owned by this client (a new one when omitted)
        session: requests.Session used for all calls
        value_ceiling: samples above this are treated as gaps
        api_prefix: path prefix of the Prometheus API on the backend
    """

    def __init__(
        self,
        base_url: str,
        org_id: str = "anonymous",
        retry: Optional[RetryPolicy] = None,
        timeouts: Optional[Timeouts] = None,
        breaker: Optional[CircuitBreaker] = None,
        session: Optional[requests.Session] = None,
        value_ceiling: float = 1e6,
        api_prefix: str = "/prometheus"
    ):
        self.base_url = base_url.rstrip('/')
        self.org_id = org_id
        self.retry = retry or RetryPolicy()
        self.timeouts = timeouts or Timeouts()
        self.breaker = breaker or CircuitBreaker()
        self.session = session or requests.Session()
        self.value_ceiling = value_ceiling
        self.api_prefix = api_prefix.rstrip('/')

    @classmethod
    def from_config(cls) -> 'PrometheusClient':
        """Build a client from config.py settings"""
        import config
        return cls(
            base_url=config.MIMIR_URL,
            org_id=config.MIMIR_ORG_ID,
            retry=RetryPolicy(
                max_retries=config.MIMIR_RETRY_MAX,
                initial_backoff=config.MIMIR_RETRY_INITIAL_BACKOFF,
                max_backoff=config.MIMIR_RETRY_MAX_BACKOFF,
            ),
            timeouts=Timeouts(
                query=config.MIMIR_TIMEOUT_QUERY,
                query_range=config.MIMIR_TIMEOUT_QUERY_RANGE,
                connect=config.MIMIR_TIMEOUT_CONNECT,
            ),
            breaker=CircuitBreaker(
                max_failures=config.MIMIR_CB_MAX_FAILURES,
                reset_timeout=config.MIMIR_CB_RESET_TIMEOUT,
                half_open_max_calls=config.MIMIR_CB_HALF_OPEN_MAX,
            ),
            value_ceiling=config.VALUE_SANITY_CEILING,
        )

    def circuit_state(self) -> CircuitBreakerState:
        return self.breaker.snapshot()

    def _headers(self) -> Dict[str, str]:
        return {'X-Scope-OrgID': self.org_id}

    def _execute(self, path: str, params: Optional[Dict[str, str]], op_timeout: float,
                 deadline: Optional[float], expect_json: bool = True) -> Any:
        """Run one operation through breaker, budget and retry handling.

        Returns the decoded JSON payload (or None when expect_json is False).
        """
        url = f"{self.base_url}{path}"
        budget_end = time.monotonic() + op_timeout
        if deadline is not None:
            budget_end = min(budget_end, deadline)

        attempt = 0
        while True:
            if not self.breaker.allow_request():
                raise CircuitOpenError(f"circuit breaker open, refusing request to {path}")

            remaining = budget_end - time.monotonic()
            if remaining <= 0:
                self.breaker.release()
                raise QueryTimeoutError(f"time budget exhausted before request to {path}")

            retry_after: Optional[float] = None
            try:
                response = self.session.get(url, params=params, headers=self._headers(), timeout=remaining)
            except requests.exceptions.Timeout as e:
                self.breaker.record_failure()
                if time.monotonic() >= budget_end:
                    raise QueryTimeoutError(f"request to {path} timed out after {op_timeout}s") from e
                last_error: Exception = PrometheusConnectionError(f"request to {path} timed out: {e}")
            except requests.exceptions.RequestException as e:
                self.breaker.record_failure()
                last_error = PrometheusConnectionError(f"request to {path} failed: {e}")
            else:
                status = response.status_code
                if status == 429:
                    self.breaker.release()
                    retry_after = parse_retry_after(response.headers.get('Retry-After'))
                    last_error = RateLimitedError(f"rate limited by backend on {path}")
                    logger.warning(f"Rate limited on {path} (Retry-After={retry_after})")
                elif status >= 500:
                    self.breaker.record_failure()
                    last_error = PrometheusConnectionError(f"backend returned status {status}: {response.text[:200]}")
                elif status >= 400:
                    self.breaker.release()
                    raise PrometheusQueryError(f"backend rejected query with status {status}: {response.text[:200]}")
                else:
                    return self._decode(response, expect_json)

            if self.breaker.state == STATE_OPEN:
                raise CircuitOpenError(f"circuit breaker opened after failure: {last_error}") from last_error

            if attempt >= self.retry.max_retries:
                raise RetriesExhaustedError(
                    f"giving up on {path} after {attempt + 1} attempts: {last_error}", cause=last_error
                ) from last_error

            attempt += 1
            delay = retry_after if retry_after is not None else self.retry.backoff(attempt)
            if time.monotonic() + delay >= budget_end:
                raise QueryTimeoutError(
                    f"retry {attempt} of {path} would exceed the time budget: {last_error}"
                ) from last_error
            logger.warning(f"Retrying {path} in {delay:.2f}s (attempt {attempt}/{self.retry.max_retries}): {last_error}")
            time.sleep(delay)

    def _decode(self, response: requests.Response, expect_json: bool) -> Any:
        if not expect_json:
            self.breaker.record_success()
            return None
        try:
            payload = response.json()
        except ValueError as e:
            self.breaker.release()
            raise MalformedResponseError(f"response body is not JSON: {e}") from e
        self.breaker.record_success()
        if isinstance(payload, dict) and payload.get("status") not in (None, "success"):
            raise PrometheusQueryError(
                f"backend error {payload.get('errorType')}: {payload.get('error')}"
            )
        return payload

    def query(self, promql: str, deadline: Optional[float] = None) -> TimeSeriesValue:
        """Instant query; an empty result is a zero-valued sample at now."""
        payload = self._execute(
            f"{self.api_prefix}{QUERY_PATH}", {'query': promql}, self.timeouts.query, deadline
        )
        series = _result_series(payload)
        if series:
            sample = _parse_sample(series[0].get("value"), self.value_ceiling)
            if sample is not None:
                return sample
            logger.debug(f"Skipping malformed instant sample for {promql}")
        return TimeSeriesValue(value=0.0, timestamp=datetime.now(timezone.utc))

    def query_range(self, promql: str, start: datetime, end: datetime, step: float,
                    deadline: Optional[float] = None) -> RangeResult:
        """Range query over [start, end]; only the first returned series is used."""
        if end < start:
            raise ValueError("end must not be before start")
        if step <= 0:
            raise ValueError("step must be positive")
        params = {
            'query': promql,
            'start': f"{start.timestamp():.3f}",
            'end': f"{end.timestamp():.3f}",
            'step': f"{step:g}s",
        }
        payload = self._execute(
            f"{self.api_prefix}{QUERY_RANGE_PATH}", params, self.timeouts.query_range, deadline
        )
        series = _result_series(payload)
        values: List[TimeSeriesValue] = []
        if series:
            for pair in series[0].get("values") or []:
                sample = _parse_sample(pair, self.value_ceiling)
                if sample is not None:
                    values.append(sample)
        return RangeResult(values=sort_by_timestamp(values), start_time=start, end_time=end)

    def check_connection(self, deadline: Optional[float] = None) -> None:
        """Probe the backend readiness endpoint; raises PrometheusError when unreachable."""
        self._execute(READY_PATH, None, self.timeouts.connect, deadline, expect_json=False)
