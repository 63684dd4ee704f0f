"""
Monitoring and metrics collection for the keyword crawler.
"""

import time
import logging
from typing import Dict, Optional, Any, List
from dataclasses import dataclass, field

from prometheus_client import Counter, Gauge, CollectorRegistry, start_http_server


@dataclass
class MetricPoint:
    """Individual metric data point."""
    timestamp: float
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class Metric:
    """Metric container with history."""
    name: str
    description: str
    metric_type: str  # counter, gauge
    points: List[MetricPoint] = field(default_factory=list)
    current_value: float = 0.0


class MetricsCollector:
    """Collects crawler metrics, optionally mirrored to Prometheus."""

    max_points = 1000

    def __init__(self, enable_prometheus: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.metrics: Dict[str, Metric] = {}
        self.enable_prometheus = enable_prometheus
        self.prometheus_port = prometheus_port

        self.prometheus_registry: Optional[CollectorRegistry] = None
        self.prometheus_metrics: Dict[str, Any] = {}

        if self.enable_prometheus:
            self._setup_prometheus()

    def _setup_prometheus(self):
        """Setup Prometheus metrics on a private registry."""
        self.prometheus_registry = CollectorRegistry()

        self.prometheus_metrics = {
            'pages_indexed_total': Counter(
                'webindexer_pages_indexed_total',
                'Total number of pages added to the index',
                registry=self.prometheus_registry
            ),
            'fetch_failures_total': Counter(
                'webindexer_fetch_failures_total',
                'Total number of failed fetches',
                registry=self.prometheus_registry
            ),
            'queries_total': Counter(
                'webindexer_queries_total',
                'Total number of keyword queries answered',
                registry=self.prometheus_registry
            ),
            'bytes_indexed_total': Counter(
                'webindexer_bytes_indexed_total',
                'Total bytes of indexed page content',
                registry=self.prometheus_registry
            ),
            'frontier_size': Gauge(
                'webindexer_frontier_size',
                'Number of URLs waiting in the frontier',
                registry=self.prometheus_registry
            ),
            'visited_size': Gauge(
                'webindexer_visited_size',
                'Number of URLs whose fetch has completed',
                registry=self.prometheus_registry
            ),
            'in_flight': Gauge(
                'webindexer_in_flight',
                'Number of fetches currently dispatched',
                registry=self.prometheus_registry
            ),
            'active_workers': Gauge(
                'webindexer_active_workers',
                'Number of workers with a fetch in flight',
                registry=self.prometheus_registry
            )
        }

        self.logger.info("Prometheus metrics initialized")

    def start_prometheus_server(self):
        """Start Prometheus metrics HTTP server."""
        if not self.enable_prometheus:
            return

        start_http_server(self.prometheus_port, registry=self.prometheus_registry)
        self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")

    def record_metric(self, name: str, value: float, description: str = "",
                      metric_type: str = "gauge", increment: float = 0.0):
        """Record a metric value."""
        if name not in self.metrics:
            self.metrics[name] = Metric(
                name=name,
                description=description,
                metric_type=metric_type
            )

        metric = self.metrics[name]
        metric.points.append(MetricPoint(timestamp=time.time(), value=value))
        metric.current_value = value

        if len(metric.points) > self.max_points:
            metric.points = metric.points[-self.max_points:]

        if self.enable_prometheus and name in self.prometheus_metrics:
            prom_metric = self.prometheus_metrics[name]
            if metric_type == "counter":
                prom_metric.inc(increment)
            else:
                prom_metric.set(value)

    def increment_counter(self, name: str, amount: float = 1.0, description: str = ""):
        """Increment a counter metric."""
        current_value = 0.0
        if name in self.metrics:
            current_value = self.metrics[name].current_value

        self.record_metric(name, current_value + amount, description, "counter", amount)

    def set_gauge(self, name: str, value: float, description: str = ""):
        """Set a gauge metric value."""
        self.record_metric(name, value, description, "gauge")

    def get_metric(self, name: str) -> Optional[Metric]:
        """Get a metric by name."""
        return self.metrics.get(name)

    def get_current_values(self) -> Dict[str, float]:
        """Get current values of all metrics."""
        return {name: metric.current_value for name, metric in self.metrics.items()}


class CrawlerMonitor:
    """High-level monitoring interface for the crawler."""

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        self.metrics = metrics_collector or MetricsCollector()
        self.logger = logging.getLogger(__name__)
        self.start_time = time.time()

    def record_page_indexed(self, url: str, content_size: int):
        """Record a page added to the index."""
        self.metrics.increment_counter('pages_indexed_total', description='Pages indexed')
        self.metrics.increment_counter('bytes_indexed_total', content_size,
                                       description='Bytes of indexed content')

    def record_fetch_failure(self, url: str):
        """Record a failed fetch."""
        self.metrics.increment_counter('fetch_failures_total', description='Failed fetches')

    def record_query(self, fraction_matching: float):
        """Record an answered query."""
        self.metrics.increment_counter('queries_total', description='Queries answered')
        self.metrics.set_gauge('last_query_fraction', fraction_matching,
                               description='Fraction of pages matching the last query')

    def update_frontier(self, pending: int, visited: int, in_flight: int):
        """Update frontier size metrics."""
        self.metrics.set_gauge('frontier_size', pending, description='URLs in frontier')
        self.metrics.set_gauge('visited_size', visited, description='URLs visited')
        self.metrics.set_gauge('in_flight', in_flight, description='Fetches in flight')

    def update_active_workers(self, count: int):
        """Update the active workers count."""
        self.metrics.set_gauge('active_workers', count, description='Active workers')

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        current_values = self.metrics.get_current_values()
        runtime = time.time() - self.start_time

        return {
            'runtime_seconds': runtime,
            'metrics': current_values,
            'rates': {
                'pages_per_minute': current_values.get('pages_indexed_total', 0) / (runtime / 60) if runtime > 0 else 0,
            }
        }


def initialize_monitoring(enable_prometheus: bool = False, prometheus_port: int = 8000) -> CrawlerMonitor:
    """Create a monitor and start the Prometheus endpoint if enabled."""
    metrics_collector = MetricsCollector(enable_prometheus, prometheus_port)
    monitor = CrawlerMonitor(metrics_collector)
    metrics_collector.start_prometheus_server()
    return monitor
