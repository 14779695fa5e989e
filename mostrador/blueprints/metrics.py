"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics and business counters for the
sale and cash register flows. Restrict it to the monitoring network.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Check if running in multi-process mode (Gunicorn)
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_metric_registry = registry if not MULTIPROCESS_MODE else None

# HTTP Request Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

# Business Metrics
sales_committed_total = Counter(
    'sales_committed_total',
    'Sales committed',
    ['payment_method'],
    registry=_metric_registry
)

sales_rejected_total = Counter(
    'sales_rejected_total',
    'Sale attempts rejected, by error code',
    ['code'],
    registry=_metric_registry
)

cash_registers_closed_total = Counter(
    'cash_registers_closed_total',
    'Cash registers closed',
    ['requires_authorization'],
    registry=_metric_registry
)


def setup_metrics_instrumentation(app):
    """Register before/after request hooks that time every request."""

    @app.before_request
    def before_request_metrics():
        g._prometheus_metrics_start_time = time.time()

    @app.after_request
    def after_request_metrics(response):
        start = g.get('_prometheus_metrics_start_time')
        if start is not None:
            endpoint = request.endpoint or 'unknown'
            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(time.time() - start)
            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                http_status=response.status_code
            ).inc()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus metrics endpoint (unauthenticated, internal network only)."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
