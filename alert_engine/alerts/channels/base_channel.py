"""
Base notification channel interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

from alert_engine.alerts.errors import ChannelConfigError, DeliveryError
from alert_engine.utils.helpers import now_ms, format_timestamp

logger = logging.getLogger(__name__)


class ChannelType:
    """Supported channel type constants"""
    WEBHOOK = 'webhook'
    EMAIL = 'email'
    SLACK = 'slack'
    DISCORD = 'discord'
    PAGERDUTY = 'pagerduty'
    CONSOLE = 'console'


@dataclass(frozen=True)
class NotificationConfig:
    """Per-channel configuration"""
    id: str
    name: str
    type: str
    enabled: bool = True
    config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NotificationConfig':
        """Create config from a mapping (e.g. an entry of the channels list)"""
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            type=data['type'],
            enabled=data.get('enabled', True),
            config=dict(data.get('config') or {}),
        )


@dataclass(frozen=True)
class NotificationPayload:
    """What a channel is asked to deliver"""
    rule: Any  # AlertRule
    message: str
    timestamp: float
    severity: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationResult:
    """Outcome of one delivery attempt"""
    success: bool
    channel_id: str
    timestamp: float
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'channel_id': self.channel_id,
            'timestamp': self.timestamp,
            'error': self.error,
        }


class BaseChannel(ABC):
    """
    Abstract base class for notification channels.

    Subclasses implement validate_config() and deliver(). send() never
    raises: missing configuration and transport failures are returned as
    unsuccessful NotificationResults.
    """

    def __init__(self, config: NotificationConfig):
        """
        Initialize channel.

        Args:
            config: Channel configuration
        """
        self.config = config

    def get_id(self) -> str:
        return self.config.id

    def get_name(self) -> str:
        return self.config.name

    def get_type(self) -> str:
        return self.config.type

    def is_enabled(self) -> bool:
        return self.config.enabled

    @property
    def settings(self) -> Dict[str, Any]:
        """Type-specific settings"""
        return self.config.config

    async def send(self, payload: NotificationPayload) -> NotificationResult:
        """
        Send alert notification.

        Args:
            payload: Notification payload

        Returns:
            NotificationResult describing success or failure
        """
        try:
            self.validate_config()
            await self.deliver(payload)

        except ChannelConfigError as e:
            logger.error(f"Channel {self.get_id()} misconfigured: {e}")
            return self._create_result(False, str(e))
        except DeliveryError as e:
            logger.error(f"Failed to send {self.get_type()} notification via {self.get_id()}: {e}")
            return self._create_result(False, str(e))
        except Exception as e:
            logger.error(f"Error sending notification via {self.get_id()}: {e}", exc_info=True)
            return self._create_result(False, str(e) or e.__class__.__name__)

        logger.info(f"Sent {self.get_type()} notification via {self.get_id()} for rule {payload.rule.id}")
        return self._create_result(True)

    @abstractmethod
    def validate_config(self) -> None:
        """
        Check required settings.

        Raises:
            ChannelConfigError: If a required setting is missing
        """

    @abstractmethod
    async def deliver(self, payload: NotificationPayload) -> None:
        """
        Perform the delivery.

        Raises:
            DeliveryError: If the transport fails
        """

    def require(self, key: str, description: str) -> Any:
        """Return a non-empty setting or raise ChannelConfigError"""
        value = self.settings.get(key)
        if not value:
            raise ChannelConfigError(f"{description} not configured")
        return value

    def format_message(self, payload: NotificationPayload) -> Dict[str, str]:
        """
        Format summary and description lines for a payload.

        Args:
            payload: Notification payload

        Returns:
            Dict with 'summary' and 'description' keys
        """
        rule = payload.rule
        summary = f"[{payload.severity.upper()}] {rule.name}"

        description = payload.message
        if rule.description:
            description = f"{description}\n{rule.description}"

        return {
            'summary': summary,
            'description': description,
        }

    def build_alert_document(self, payload: NotificationPayload) -> Dict[str, Any]:
        """Generic JSON document describing the alert"""
        rule = payload.rule
        message_content = self.format_message(payload)

        return {
            "alert": {
                "rule_id": rule.id,
                "name": rule.name,
                "severity": payload.severity,
                "status": "firing",
                "timestamp": format_timestamp(payload.timestamp),
            },
            "conditions": [condition.to_dict() for condition in rule.conditions],
            "labels": dict(rule.labels),
            "tags": list(rule.tags),
            "annotations": message_content,
            "message": payload.message,
            "metadata": to_jsonable(payload.metadata),
        }

    def _create_result(self, success: bool, error: Optional[str] = None) -> NotificationResult:
        return NotificationResult(
            success=success,
            channel_id=self.config.id,
            timestamp=now_ms(),
            error=error,
        )


def to_jsonable(value: Any) -> Any:
    """Convert records with to_dict() (and containers of them) to plain data"""
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value
