"""
Alert manager for rule registry, cooldowns, notifications and history.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Deque, Dict, List, Optional

from alert_engine.alerts.alert_evaluator import AlertEvaluator, EvaluationContext, EvaluationResult
from alert_engine.alerts.alert_rule import (
    AlertRule,
    AlertSeverity,
    AlertState,
    load_alert_rules,
    validate_rule_fields,
)
from alert_engine.alerts.anomaly_detector import Anomaly, AnomalyConfig, AnomalyDetector
from alert_engine.alerts.channels.base_channel import (
    BaseChannel,
    NotificationConfig,
    NotificationPayload,
    NotificationResult,
)
from alert_engine.alerts.channels.factory import ChannelFactory
from alert_engine.alerts.errors import NotFoundError, ValidationError
from alert_engine.alerts.scheduler import EvaluationScheduler
from alert_engine.utils.helpers import now_ms

logger = logging.getLogger(__name__)

# Fields a caller may not change through update_rule
_READ_ONLY_FIELDS = ('id', 'created_at', 'updated_at')


@dataclass(frozen=True)
class AlertConfig:
    """Alert manager configuration"""
    enable_anomaly_detection: bool = False
    anomaly_config: Optional[AnomalyConfig] = None
    evaluation_interval: float = 10000  # milliseconds
    max_history_size: int = 1000

    def __post_init__(self):
        if self.evaluation_interval <= 0:
            raise ValidationError(f"evaluation_interval must be > 0, got {self.evaluation_interval}")
        if self.max_history_size < 1:
            raise ValidationError(f"max_history_size must be >= 1, got {self.max_history_size}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AlertConfig':
        """Create config from the 'alerting' section of the settings"""
        anomaly = data.get('anomaly')
        return cls(
            enable_anomaly_detection=data.get('enable_anomaly_detection', False),
            anomaly_config=AnomalyConfig.from_dict(anomaly) if anomaly else None,
            evaluation_interval=data.get('evaluation_interval', 10000),
            max_history_size=data.get('max_history_size', 1000),
        )


@dataclass(frozen=True)
class AlertHistory:
    """Record of one triggered alert"""
    rule_id: str
    timestamp: float
    triggered: bool
    message: str
    notification_results: List[NotificationResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rule_id': self.rule_id,
            'timestamp': self.timestamp,
            'triggered': self.triggered,
            'message': self.message,
            'notification_results': [r.to_dict() for r in self.notification_results],
        }


@dataclass(frozen=True)
class AlertStats:
    """Snapshot of manager counters"""
    total_rules: int
    active_rules: int
    total_alerts: int
    alerts_by_severity: Dict[str, int]
    channel_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_rules': self.total_rules,
            'active_rules': self.active_rules,
            'total_alerts': self.total_alerts,
            'alerts_by_severity': dict(self.alerts_by_severity),
            'channel_count': self.channel_count,
        }


class AlertManager:
    """Manages alert rules, evaluation, notifications and history"""

    def __init__(self, config: Optional[AlertConfig] = None, metrics=None):
        """
        Initialize alert manager.

        Args:
            config: Manager configuration (defaults if omitted)
            metrics: Optional EngineMetrics to record into
        """
        self.config = config or AlertConfig()
        self.metrics = metrics

        self.evaluator = AlertEvaluator()
        self.anomaly_detector: Optional[AnomalyDetector] = None
        if self.config.enable_anomaly_detection:
            self.anomaly_detector = AnomalyDetector(self.config.anomaly_config)

        # Registration order is evaluation order
        self.rules: Dict[str, AlertRule] = {}
        self.channels: Dict[str, BaseChannel] = {}
        # rule id -> timestamp at which the rule may trigger again
        self.cooldowns: Dict[str, float] = {}
        self.history: Deque[AlertHistory] = deque(maxlen=self.config.max_history_size)

        self._scheduler: Optional[EvaluationScheduler] = None

        logger.info("Alert manager initialized")

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> 'AlertManager':
        """
        Build a manager from a settings dict (see config.settings).

        Loads the rules file and channel list, and creates engine metrics
        when enabled.
        """
        metrics = None
        metrics_config = settings.get('metrics', {})
        if metrics_config.get('enabled', False):
            from alert_engine.exporters.prometheus_exporter import EngineMetrics
            metrics = EngineMetrics()
            if metrics_config.get('port'):
                metrics.start(metrics_config['port'], metrics_config.get('host', '0.0.0.0'))

        alerting = settings.get('alerting', {})
        manager = cls(AlertConfig.from_dict(alerting), metrics=metrics)

        manager.load_channels(settings.get('channels') or [])

        rules_file = alerting.get('alert_rules_file')
        if rules_file:
            manager.load_rules(rules_file)
        else:
            logger.warning("No alert rules file specified")

        return manager

    # Rules

    def add_rule(self, rule: AlertRule) -> None:
        """
        Register a rule. An existing rule with the same id is replaced in
        place and its condition state and cooldown are dropped.

        Args:
            rule: Rule to add
        """
        if rule.id in self.rules:
            logger.warning(f"Replacing existing alert rule: {rule.id}")
            self.evaluator.reset_rule(rule.id)
            self.cooldowns.pop(rule.id, None)
        self.rules[rule.id] = rule
        self._update_gauges()
        logger.info(f"Added alert rule: {rule.id} ({rule.name})")

    def remove_rule(self, rule_id: str) -> bool:
        """
        Remove a rule along with its condition state and cooldown.

        Args:
            rule_id: Rule id

        Returns:
            True if rule was removed, False if not found
        """
        rule = self.rules.pop(rule_id, None)
        self.evaluator.reset_rule(rule_id)
        self.cooldowns.pop(rule_id, None)

        if rule is None:
            logger.warning(f"Rule not found: {rule_id}")
            return False

        self._update_gauges()
        logger.info(f"Removed alert rule: {rule_id}")
        return True

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        return self.rules.get(rule_id)

    def get_all_rules(self) -> List[AlertRule]:
        return list(self.rules.values())

    def update_rule(self, rule_id: str, updates: Optional[Dict[str, Any]] = None,
                    **kwargs: Any) -> AlertRule:
        """
        Update fields of a registered rule.

        Args:
            rule_id: Rule id
            updates: AlertRule fields to change
            **kwargs: More fields to change, as keywords

        Returns:
            The updated rule

        Raises:
            NotFoundError: If the rule id is unknown
            ValidationError: If a field is unknown, read-only or invalid
        """
        updates = {**(updates or {}), **kwargs}
        rule = self.rules.get(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found")

        known = {f.name for f in fields(AlertRule)}
        for key in updates:
            if key not in known:
                raise ValidationError(f"Unknown rule field: {key}")
            if key in _READ_ONLY_FIELDS:
                raise ValidationError(f"Rule field {key} cannot be updated")

        if 'conditions' in updates and not updates['conditions']:
            raise ValidationError("A rule needs at least one condition")
        validate_rule_fields(updates.get('severity'), updates.get('cooldown'), updates.get('state'))

        updated = replace(rule, **updates, updated_at=now_ms())
        self.rules[rule_id] = updated

        if 'conditions' in updates:
            # Old duration windows no longer describe the new conditions
            self.evaluator.reset_rule(rule_id)

        logger.info(f"Updated alert rule: {rule_id} ({', '.join(updates)})")
        return updated

    def load_rules(self, rules_file: str) -> int:
        """Load and register rules from a YAML file; returns the count added"""
        rules = load_alert_rules(rules_file)
        for rule in rules:
            self.add_rule(rule)
        return len(rules)

    # Lifecycle

    def resolve_rule(self, rule_id: str) -> None:
        """Mark a rule resolved"""
        self._set_state(rule_id, AlertState.RESOLVED)

    def silence_rule(self, rule_id: str) -> None:
        """Silence a rule; silenced rules are not evaluated"""
        self._set_state(rule_id, AlertState.SILENCED)

    def unsilence_rule(self, rule_id: str) -> None:
        """Return a silenced rule to pending"""
        self._set_state(rule_id, AlertState.PENDING)

    def _set_state(self, rule_id: str, state: str) -> None:
        rule = self.rules.get(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found")

        previous = rule.state
        rule.state = state
        rule.updated_at = now_ms()
        logger.info(f"Rule {rule_id} state {previous} -> {state}")

    # Channels

    def add_channel(self, config: NotificationConfig) -> BaseChannel:
        """
        Create and register a channel.

        Raises:
            UnsupportedChannelTypeError: If config.type is unknown
        """
        channel = ChannelFactory.create(config)
        self.channels[config.id] = channel
        self._update_gauges()
        return channel

    def load_channels(self, channel_configs: List[Dict[str, Any]]) -> None:
        """Register channels from plain mappings"""
        for channel_config in channel_configs:
            self.add_channel(NotificationConfig.from_dict(channel_config))

        if not self.channels:
            logger.warning("No notification channels configured")

    def remove_channel(self, channel_id: str) -> bool:
        removed = self.channels.pop(channel_id, None) is not None
        if removed:
            self._update_gauges()
            logger.info(f"Removed channel: {channel_id}")
        return removed

    def get_channel(self, channel_id: str) -> Optional[BaseChannel]:
        return self.channels.get(channel_id)

    def get_all_channels(self) -> List[BaseChannel]:
        return list(self.channels.values())

    # Evaluation

    async def evaluate(self, context: EvaluationContext) -> List[EvaluationResult]:
        """
        Run one evaluation pass.

        Rules that are disabled, silenced or inside their cooldown window are
        skipped without side effects. Triggered rules become active, start
        their cooldown, notify their channels and get one history entry each.
        Notifications for all triggered rules are delivered concurrently.

        Args:
            context: Metric samples and evaluation timestamp

        Returns:
            One EvaluationResult per evaluated rule, in registration order
        """
        started = time.perf_counter()
        now = context.timestamp

        results: List[EvaluationResult] = []
        triggered = []

        for rule in list(self.rules.values()):
            if not rule.enabled:
                logger.debug(f"Skipping disabled rule: {rule.id}")
                continue
            if rule.state == AlertState.SILENCED:
                logger.debug(f"Skipping silenced rule: {rule.id}")
                continue

            cooldown_end = self.cooldowns.get(rule.id)
            if cooldown_end is not None and now < cooldown_end:
                logger.debug(f"Rule {rule.id} in cooldown until {cooldown_end}")
                continue

            try:
                result = self.evaluator.evaluate(rule, context)
            except Exception as e:
                logger.error(f"Error evaluating rule {rule.id}: {e}", exc_info=True)
                if self.metrics:
                    self.metrics.rule_errors.labels(rule=rule.id).inc()
                continue

            results.append(result)
            if result.triggered:
                self._mark_triggered(rule, now)
                triggered.append((len(results) - 1, rule, result))

        # Delivery is the only suspension point
        deliveries = await asyncio.gather(
            *(self._send_notifications(rule, result) for _, rule, result in triggered)
        )

        for (index, rule, result), notification_results in zip(triggered, deliveries):
            results[index] = replace(result, notification_results=notification_results)
            self._add_to_history(AlertHistory(
                rule_id=rule.id,
                timestamp=now,
                triggered=True,
                message=result.message or 'Alert triggered',
                notification_results=notification_results,
            ))

        if self.metrics:
            self.metrics.evaluations.inc()
            self.metrics.rules_evaluated.inc(len(results))
            self.metrics.evaluation_duration.set(time.perf_counter() - started)

        if triggered:
            logger.info(f"Evaluation at {now}: {len(triggered)} of {len(results)} rules triggered")

        return results

    def _mark_triggered(self, rule: AlertRule, now: float) -> None:
        rule.state = AlertState.ACTIVE
        rule.last_triggered = now
        rule.updated_at = now_ms()
        self.cooldowns[rule.id] = now + rule.cooldown

        if self.metrics:
            self.metrics.alerts_triggered.labels(severity=rule.severity).inc()

        logger.info(f"Alert triggered: {rule.id} ({rule.name}, {rule.severity})")

    async def _send_notifications(self, rule: AlertRule,
                                  result: EvaluationResult) -> List[NotificationResult]:
        """
        Send notifications through the rule's channels.

        Channels are started in the order listed in rule.actions and the
        results keep that order. Missing or disabled channels are skipped.

        Args:
            rule: Triggered rule
            result: Its evaluation result

        Returns:
            One NotificationResult per attempted channel
        """
        payload = NotificationPayload(
            rule=rule,
            message=result.message or 'Alert triggered',
            timestamp=result.timestamp,
            severity=rule.severity,
            metadata={
                'conditions': result.conditions,
                'labels': dict(rule.labels),
                'tags': list(rule.tags),
            },
        )

        channels = []
        for channel_id in rule.actions:
            channel = self.channels.get(channel_id)
            if channel is None:
                logger.debug(f"Channel {channel_id} not available for rule {rule.id}")
                continue
            if not channel.is_enabled():
                logger.debug(f"Channel {channel_id} disabled, skipping")
                continue
            channels.append(channel)

        outcomes = await asyncio.gather(
            *(channel.send(payload) for channel in channels),
            return_exceptions=True,
        )

        notification_results = []
        for channel, outcome in zip(channels, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(f"Error sending notification via {channel.get_id()}: {outcome}")
                outcome = NotificationResult(
                    success=False,
                    channel_id=channel.get_id(),
                    timestamp=now_ms(),
                    error=str(outcome) or outcome.__class__.__name__,
                )

            notification_results.append(outcome)
            if self.metrics:
                self.metrics.record_notification(outcome.channel_id, outcome.success)

        return notification_results

    def detect_anomalies(self, metric: str, value: float, timestamp: float) -> List[Anomaly]:
        """
        Feed an observation to the anomaly detector.

        Returns:
            Detected anomalies; always empty when anomaly detection is disabled
        """
        if self.anomaly_detector is None:
            return []

        anomalies = self.anomaly_detector.detect(metric, value, timestamp)
        if self.metrics:
            for anomaly in anomalies:
                self.metrics.anomalies.labels(type=anomaly.type).inc()
        return anomalies

    # History and stats

    def _add_to_history(self, entry: AlertHistory) -> None:
        # deque maxlen evicts the oldest entry
        self.history.append(entry)

    def get_history(self, limit: Optional[int] = None) -> List[AlertHistory]:
        """History entries, most recent first"""
        return self._most_recent_first(list(self.history), limit)

    def get_history_for_rule(self, rule_id: str, limit: Optional[int] = None) -> List[AlertHistory]:
        """History entries for one rule, most recent first"""
        return self._most_recent_first([h for h in self.history if h.rule_id == rule_id], limit)

    @staticmethod
    def _most_recent_first(entries: List[AlertHistory], limit: Optional[int]) -> List[AlertHistory]:
        # Reverse first so equal timestamps keep newest-appended first
        entries.reverse()
        entries.sort(key=lambda h: h.timestamp, reverse=True)
        return entries[:limit] if limit is not None else entries

    def clear_history(self) -> None:
        self.history.clear()

    def get_stats(self) -> AlertStats:
        alerts_by_severity = {severity: 0 for severity in AlertSeverity.ALL}
        for rule in self.rules.values():
            alerts_by_severity[rule.severity] = alerts_by_severity.get(rule.severity, 0) + 1

        return AlertStats(
            total_rules=len(self.rules),
            active_rules=sum(1 for rule in self.rules.values() if rule.enabled),
            total_alerts=len(self.history),
            alerts_by_severity=alerts_by_severity,
            channel_count=len(self.channels),
        )

    def _update_gauges(self) -> None:
        if self.metrics:
            self.metrics.rule_count.set(len(self.rules))
            self.metrics.channel_count.set(len(self.channels))

    # Auto evaluation

    def start_auto_evaluation(self, get_context: Callable[[], Any]) -> None:
        """
        Evaluate periodically (every config.evaluation_interval ms) on the
        running event loop. Overlapping passes are skipped, never stacked.

        Args:
            get_context: Returns the EvaluationContext for each pass
        """
        if self._scheduler is not None and self._scheduler.running:
            return

        on_skip = self.metrics.skipped_ticks.inc if self.metrics else None
        self._scheduler = EvaluationScheduler(
            self.evaluate, get_context, self.config.evaluation_interval, on_skip=on_skip
        )
        self._scheduler.start()

    def stop_auto_evaluation(self) -> None:
        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler = None

    @property
    def auto_evaluating(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def reset(self) -> None:
        """Clear rules, channels, history, cooldowns and detector state"""
        self.rules.clear()
        self.channels.clear()
        self.history.clear()
        self.cooldowns.clear()
        self.evaluator.reset()

        if self.anomaly_detector is not None:
            self.anomaly_detector.reset()

        self._update_gauges()

    def dispose(self) -> None:
        """Stop auto evaluation and clear all state"""
        logger.info("Shutting down alert manager")
        self.stop_auto_evaluation()
        self.reset()
