"""
Alert rules, evaluation, anomaly detection and notification dispatch.
"""

from alert_engine.alerts.alert_rule import (
    AlertCondition,
    AlertRule,
    AlertRuleBuilder,
    AlertSeverity,
    AlertState,
    load_alert_rules,
)
from alert_engine.alerts.alert_evaluator import (
    AlertEvaluator,
    ConditionEvaluationResult,
    EvaluationContext,
    EvaluationResult,
)
from alert_engine.alerts.anomaly_detector import Anomaly, AnomalyConfig, AnomalyDetector
from alert_engine.alerts.alert_manager import AlertConfig, AlertHistory, AlertManager, AlertStats
from alert_engine.alerts.errors import (
    AlertEngineError,
    ChannelConfigError,
    DeliveryError,
    NotFoundError,
    UnsupportedChannelTypeError,
    ValidationError,
)

__all__ = [
    'AlertCondition',
    'AlertRule',
    'AlertRuleBuilder',
    'AlertSeverity',
    'AlertState',
    'load_alert_rules',
    'AlertEvaluator',
    'ConditionEvaluationResult',
    'EvaluationContext',
    'EvaluationResult',
    'Anomaly',
    'AnomalyConfig',
    'AnomalyDetector',
    'AlertConfig',
    'AlertHistory',
    'AlertManager',
    'AlertStats',
    'AlertEngineError',
    'ChannelConfigError',
    'DeliveryError',
    'NotFoundError',
    'UnsupportedChannelTypeError',
    'ValidationError',
]
