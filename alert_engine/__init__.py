"""
In-process alerting and anomaly-detection engine.
"""

from alert_engine.alerts import (
    AlertCondition,
    AlertConfig,
    AlertManager,
    AlertRuleBuilder,
    AnomalyConfig,
    EvaluationContext,
)
from alert_engine.alerts.channels import NotificationConfig

__version__ = '1.0.0'

__all__ = [
    'AlertCondition',
    'AlertConfig',
    'AlertManager',
    'AlertRuleBuilder',
    'AnomalyConfig',
    'EvaluationContext',
    'NotificationConfig',
]
