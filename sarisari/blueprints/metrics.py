"""
Prometheus metrics for the POS API.

Request latency and counts are collected for every endpoint; checkout and
cancellation outcomes are counted by the sales blueprint through
record_sale_outcome(). Serve /metrics on the internal network only.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share samples through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None


def _build_registry():
    if not MULTIPROCESS_MODE:
        return REGISTRY, REGISTRY
    collector_registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(collector_registry)
    # Metrics must not register anywhere in multiprocess mode
    return collector_registry, None


registry, _metric_registry = _build_registry()

pos_http_requests_total = Counter(
    'pos_http_requests_total',
    'API requests by endpoint and response status',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

pos_http_request_duration_seconds = Histogram(
    'pos_http_request_duration_seconds',
    'API request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

pos_http_requests_in_flight = Gauge(
    'pos_http_requests_in_flight',
    'API requests currently being served',
    registry=_metric_registry
)

pos_sales_total = Counter(
    'pos_sales_total',
    'Sale attempts by outcome (completed, rejected, cancelled, cancel_rejected)',
    ['outcome'],
    registry=_metric_registry
)

pos_sale_errors_total = Counter(
    'pos_sale_errors_total',
    'Rejected sale and cancellation attempts by error kind',
    ['kind'],
    registry=_metric_registry
)

pos_sale_amount = Histogram(
    'pos_sale_amount',
    'Total amount of completed sales',
    registry=_metric_registry,
    buckets=(10, 25, 50, 100, 250, 500, 1000, 2500, 5000)
)

pos_storage_unavailable_total = Counter(
    'pos_storage_unavailable_total',
    'Requests that failed because the ledger store was unavailable',
    registry=_metric_registry
)


def record_sale_outcome(outcome, error=None, total=None):
    """
    Count a checkout or cancellation attempt.

    error is the PosError that rejected it; total is the amount of a
    completed sale.
    """
    pos_sales_total.labels(outcome=outcome).inc()
    if error is not None:
        pos_sale_errors_total.labels(kind=error.kind).inc()
        if error.retryable:
            pos_storage_unavailable_total.inc()
    if total is not None:
        pos_sale_amount.observe(float(total))


def setup_metrics_instrumentation(app):
    """Register request timing hooks on the app."""

    @app.before_request
    def start_request_timer():
        g._pos_request_started = time.time()
        pos_http_requests_in_flight.inc()

    @app.after_request
    def observe_request(response):
        started = g.pop('_pos_request_started', None)
        if started is None:
            return response

        endpoint = request.endpoint or 'unknown'
        pos_http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint
        ).observe(time.time() - started)
        pos_http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            http_status=response.status_code
        ).inc()
        pos_http_requests_in_flight.dec()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus scrape endpoint (not authenticated)."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
