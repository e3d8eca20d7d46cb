"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics and fulfillment counters.
This endpoint should be restricted to internal network or monitoring systems only.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
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

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_metric_registry
)

# Fulfillment Metrics
orders_created_total = Counter(
    'orders_created_total',
    'Orders successfully created',
    ['shipping_method'],
    registry=_metric_registry
)

order_rejections_total = Counter(
    'order_rejections_total',
    'Order requests rejected, by error kind',
    ['kind'],
    registry=_metric_registry
)

status_transitions_total = Counter(
    'status_transitions_total',
    'Committed status changes',
    ['entity', 'status'],
    registry=_metric_registry
)


class MetricsNotifier:
    """Counts every committed status change."""

    def notify(self, change) -> None:
        status_transitions_total.labels(entity=change.entity, status=change.new).inc()


def setup_metrics_instrumentation(app):
    """Setup before_request and after_request hooks for automatic metrics collection."""

    @app.before_request
    def before_request_metrics():
        g._prometheus_metrics_start_time = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        try:
            if hasattr(g, '_prometheus_metrics_start_time'):
                duration = time.time() - g._prometheus_metrics_start_time
                endpoint = request.endpoint or 'unknown'

                http_request_duration_seconds.labels(
                    method=request.method,
                    endpoint=endpoint
                ).observe(duration)

                http_requests_total.labels(
                    method=request.method,
                    endpoint=endpoint,
                    http_status=response.status_code
                ).inc()

                http_requests_in_flight.dec()
        except Exception as e:
            # Don't break request flow if metrics fail
            app.logger.warning(f"Failed to record metrics: {e}")

        return response


@metrics_bp.route('/metrics')
def metrics():
    """
    Prometheus metrics endpoint.

    Not authenticated; restrict it by network rules in production.
    """
    data = generate_latest(registry)
    return Response(data, mimetype=CONTENT_TYPE_LATEST)
