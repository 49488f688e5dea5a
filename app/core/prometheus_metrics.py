import logging
from typing import Optional

from prometheus_client import Counter, Histogram, Gauge, Info, generate_latest
from prometheus_client.core import CollectorRegistry

logger = logging.getLogger(__name__)

# Prometheus Registry
REGISTRY = CollectorRegistry()

# Crawl metrics
sync_runs_total = Counter(
    'fuel_sync_runs_total',
    'Finished fuel data synchronization runs',
    ['status'],
    registry=REGISTRY
)

records_fetched_total = Counter(
    'fuel_sync_records_fetched_total',
    'Catalog records fetched by crawl workers',
    registry=REGISTRY
)

batches_persisted_total = Counter(
    'fuel_sync_batches_persisted_total',
    'Staging batches bulk-inserted by crawl workers',
    registry=REGISTRY
)

sync_progress_ratio = Gauge(
    'fuel_sync_progress_ratio',
    'Fraction of the current crawl range already visited',
    registry=REGISTRY
)

# Reconciliation metrics
reconciliation_records_total = Counter(
    'reconciliation_records_total',
    'Records processed by reconciliation',
    ['source', 'outcome'],
    registry=REGISTRY
)

method_duration_seconds = Histogram(
    'service_method_duration_seconds',
    'Service method duration in seconds',
    ['service', 'method'],
    buckets=[0.1, 0.5, 1.0, 5.0, 30.0, 120.0, 600.0],
    registry=REGISTRY
)

system_info = Info(
    'charge_labs_info',
    'System information',
    registry=REGISTRY
)


class PrometheusMetricsCollector:
    """Thin facade over the module level Prometheus collectors"""

    def __init__(self):
        system_info.info({
            'version': '1.0.0',
            'service': 'charge-labs-sync'
        })

    def record_method_execution(self, service_name: str, method_name: str, duration_seconds: float):
        method_duration_seconds.labels(
            service=service_name,
            method=method_name
        ).observe(duration_seconds)

    def record_run(self, success: bool):
        sync_runs_total.labels(status='success' if success else 'error').inc()

    def record_progress(self, fraction: Optional[float]):
        if fraction is not None:
            sync_progress_ratio.set(fraction)
        records_fetched_total.inc()

    def record_batch(self):
        batches_persisted_total.inc()

    def record_reconciliation(self, source: str, counts: dict):
        """counts maps outcome name (created, updated, skipped, failed) to a number of records"""
        for outcome, value in counts.items():
            if value:
                reconciliation_records_total.labels(source=source, outcome=outcome).inc(value)

    def get_prometheus_metrics(self) -> bytes:
        """Get Prometheus metrics in text format"""
        return generate_latest(REGISTRY)

# Global instance
prometheus_collector = PrometheusMetricsCollector()
