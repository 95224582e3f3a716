"""
Notification channels.
"""

from alert_engine.alerts.channels.base_channel import (
    BaseChannel,
    ChannelType,
    NotificationConfig,
    NotificationPayload,
    NotificationResult,
)
from alert_engine.alerts.channels.factory import ChannelFactory

__all__ = [
    'BaseChannel',
    'ChannelType',
    'NotificationConfig',
    'NotificationPayload',
    'NotificationResult',
    'ChannelFactory',
]
