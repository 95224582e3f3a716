"""Prometheus self-monitoring metrics for the alert engine"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest, start_http_server
from alert_engine.utils.logger import get_logger


class EngineMetrics:
    """Engine counters and gauges kept in a private registry"""

    def __init__(self, registry=None):
        """
        Initialize engine metrics

        Args:
            registry: CollectorRegistry to register into (a new one if omitted)
        """
        self.logger = get_logger(self.__class__.__name__)
        self.registry = registry or CollectorRegistry()

        self._setup_metrics()

    def _setup_metrics(self):
        """Register all engine metrics"""
        self.evaluations = Counter(
            'alert_engine_evaluations_total',
            'Total number of evaluation passes',
            registry=self.registry
        )

        self.rules_evaluated = Counter(
            'alert_engine_rules_evaluated_total',
            'Total number of rule evaluations',
            registry=self.registry
        )

        self.rule_errors = Counter(
            'alert_engine_rule_errors_total',
            'Rule evaluations that raised an error',
            ['rule'],
            registry=self.registry
        )

        self.alerts_triggered = Counter(
            'alert_engine_alerts_triggered_total',
            'Total number of triggered alerts',
            ['severity'],
            registry=self.registry
        )

        self.notifications = Counter(
            'alert_engine_notifications_total',
            'Notification attempts by channel and outcome',
            ['channel', 'status'],
            registry=self.registry
        )

        self.anomalies = Counter(
            'alert_engine_anomalies_total',
            'Detected anomalies by type',
            ['type'],
            registry=self.registry
        )

        self.skipped_ticks = Counter(
            'alert_engine_scheduler_skipped_ticks_total',
            'Scheduled evaluations skipped because a pass was still running',
            registry=self.registry
        )

        self.evaluation_duration = Gauge(
            'alert_engine_evaluation_duration_seconds',
            'Duration of the last evaluation pass in seconds',
            registry=self.registry
        )

        self.rule_count = Gauge(
            'alert_engine_rules',
            'Number of registered rules',
            registry=self.registry
        )

        self.channel_count = Gauge(
            'alert_engine_channels',
            'Number of registered channels',
            registry=self.registry
        )

    def record_notification(self, channel_id, success):
        status = 'success' if success else 'failure'
        self.notifications.labels(channel=channel_id, status=status).inc()

    def get_sample(self, name, labels=None):
        """Read a single sample value (None if not present)"""
        return self.registry.get_sample_value(name, labels or {})

    def exposition(self):
        """Metrics in the Prometheus text exposition format"""
        return generate_latest(self.registry)

    def start(self, port, host='0.0.0.0'):
        """Start HTTP server exposing the engine metrics"""
        try:
            self.logger.info(f"Starting Prometheus HTTP server on {host}:{port}")
            start_http_server(port, addr=host, registry=self.registry)
            self.logger.info(f"Metrics available at http://{host}:{port}/metrics")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus HTTP server: {e}")
            raise
