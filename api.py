#!/usr/bin/env python3
"""
HTTP API for on-demand workload analysis

Endpoints:
- /health: liveness
- /ready: readiness, probes the time-series backend
- /metrics: Prometheus self-metrics including circuit breaker state
- /api/v1/analyze/<namespace>/<deployment>?period=7d: analysis payload
"""
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, jsonify, Response, request

import config
from config import setup_logging
from metrics.interfaces import WorkloadNotFoundError
from metrics.prometheus_client import PrometheusError
from orchestrator import WorkloadAnalyzer, AnalysisError, parse_period
from pricing.client import PricingError

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Built on first use so importing the module never touches the network
_analyzer: Optional[WorkloadAnalyzer] = None

# Metrics for observability
_metrics = {
    'requests_total': 0,
    'requests_by_endpoint': {},
    'errors_total': 0,
    'analyses_total': 0,
    'analysis_failures_total': 0,
    'start_time': time.time()
}

_BREAKER_STATES = ('closed', 'open', 'half_open')


def _record_request(endpoint: str):
    """Record request metrics"""
    _metrics['requests_total'] += 1
    _metrics['requests_by_endpoint'][endpoint] = _metrics['requests_by_endpoint'].get(endpoint, 0) + 1


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def get_analyzer() -> WorkloadAnalyzer:
    global _analyzer
    if _analyzer is None:
        _analyzer = WorkloadAnalyzer.from_config()
    return _analyzer


def _error(status: int, message: str, **extra):
    _metrics['errors_total'] += 1
    body = {'error': message, 'timestamp': _timestamp()}
    body.update(extra)
    return jsonify(body), status


@app.route('/health')
def health():
    """Health check endpoint for liveness probes"""
    _record_request('/health')
    return jsonify({
        "status": "healthy",
        "timestamp": _timestamp()
    })


@app.route('/ready')
def ready():
    """Readiness check endpoint - verifies the time-series backend answers"""
    _record_request('/ready')
    try:
        querier = get_analyzer().querier
    except PricingError as e:
        logger.error(f"Analyzer cannot start: {e}")
        return jsonify({
            "status": "not_ready",
            "reason": str(e),
            "timestamp": _timestamp()
        }), 503
    try:
        if hasattr(querier, 'check_connection'):
            querier.check_connection()
    except PrometheusError as e:
        logger.warning(f"Backend not ready: {e}")
        return jsonify({
            "status": "not_ready",
            "reason": str(e),
            "timestamp": _timestamp()
        }), 503
    return jsonify({
        "status": "ready",
        "timestamp": _timestamp()
    })


@app.route('/api/v1/analyze/<namespace>/<deployment>')
def analyze(namespace: str, deployment: str):
    """Analyze one deployment over ?period= (default ANALYSIS_PERIOD)"""
    _record_request('/api/v1/analyze')
    period = request.args.get('period', config.ANALYSIS_PERIOD)
    try:
        period_seconds = parse_period(period)
    except ValueError as e:
        return _error(400, str(e))

    _metrics['analyses_total'] += 1
    deadline = time.monotonic() + config.ANALYSIS_TIMEOUT_SECONDS
    try:
        payload = get_analyzer().analyze(namespace, deployment, period_seconds, deadline=deadline,
                                         period_label=period)
    except ValueError as e:
        return _error(400, str(e))
    except WorkloadNotFoundError as e:
        return _error(404, str(e))
    except AnalysisError as e:
        _metrics['analysis_failures_total'] += 1
        logger.error(f"Analysis of {namespace}/{deployment} failed: {e}")
        return _error(502, str(e), stage=e.stage)
    except PricingError as e:
        logger.error(f"Analyzer cannot start: {e}")
        return _error(503, str(e))
    return jsonify(payload)


@app.route('/metrics')
def metrics():
    """Prometheus metrics endpoint for self-monitoring"""
    _record_request('/metrics')
    try:
        querier = get_analyzer().querier
    except PricingError as e:
        logger.error(f"Analyzer cannot start: {e}")
        return _error(503, str(e))
    uptime = time.time() - _metrics['start_time']

    # Generate Prometheus-format metrics
    lines = [
        "# HELP workload_analyzer_requests_total Total number of HTTP requests",
        "# TYPE workload_analyzer_requests_total counter",
        f"workload_analyzer_requests_total {_metrics['requests_total']}",
        "",
        "# HELP workload_analyzer_errors_total Total number of error responses",
        "# TYPE workload_analyzer_errors_total counter",
        f"workload_analyzer_errors_total {_metrics['errors_total']}",
        "",
        "# HELP workload_analyzer_analyses_total Analyses started",
        "# TYPE workload_analyzer_analyses_total counter",
        f"workload_analyzer_analyses_total {_metrics['analyses_total']}",
        "",
        "# HELP workload_analyzer_analysis_failures_total Analyses aborted by a backend failure",
        "# TYPE workload_analyzer_analysis_failures_total counter",
        f"workload_analyzer_analysis_failures_total {_metrics['analysis_failures_total']}",
        "",
        "# HELP workload_analyzer_uptime_seconds API uptime in seconds",
        "# TYPE workload_analyzer_uptime_seconds gauge",
        f"workload_analyzer_uptime_seconds {uptime:.2f}",
    ]

    if hasattr(querier, 'circuit_state'):
        state = querier.circuit_state()
        lines.append("")
        lines.append("# HELP workload_analyzer_circuit_breaker_state 1 for the current breaker state")
        lines.append("# TYPE workload_analyzer_circuit_breaker_state gauge")
        for name in _BREAKER_STATES:
            lines.append(f'workload_analyzer_circuit_breaker_state{{state="{name}"}} {1 if state.state == name else 0}')
        lines.append("")
        lines.append("# HELP workload_analyzer_circuit_breaker_failures Consecutive backend failures")
        lines.append("# TYPE workload_analyzer_circuit_breaker_failures gauge")
        lines.append(f"workload_analyzer_circuit_breaker_failures {state.consecutive_failures}")

    # Add per-endpoint metrics
    lines.append("")
    lines.append("# HELP workload_analyzer_requests_by_endpoint Requests per endpoint")
    lines.append("# TYPE workload_analyzer_requests_by_endpoint counter")
    for endpoint, count in _metrics['requests_by_endpoint'].items():
        lines.append(f'workload_analyzer_requests_by_endpoint{{endpoint="{endpoint}"}} {count}')

    return Response('\n'.join(lines) + '\n', mimetype='text/plain')


if __name__ == '__main__':
    logger.info(f"Workload analyzer API on http://{config.API_HOST}:{config.API_PORT}")
    logger.info(f"Analyze: http://{config.API_HOST}:{config.API_PORT}/api/v1/analyze/<namespace>/<deployment>?period=7d")
    app.run(debug=config.API_DEBUG, host=config.API_HOST, port=config.API_PORT)
