"""
Channel factory mapping configuration types to channel classes.
"""

import logging
from typing import Dict, List, Type

from alert_engine.alerts.channels.base_channel import BaseChannel, ChannelType, NotificationConfig
from alert_engine.alerts.channels.console_channel import ConsoleChannel
from alert_engine.alerts.channels.discord_channel import DiscordChannel
from alert_engine.alerts.channels.email_channel import EmailChannel
from alert_engine.alerts.channels.pagerduty_channel import PagerDutyChannel
from alert_engine.alerts.channels.slack_channel import SlackChannel
from alert_engine.alerts.channels.webhook_channel import WebhookChannel
from alert_engine.alerts.errors import UnsupportedChannelTypeError

logger = logging.getLogger(__name__)


class ChannelFactory:
    """Creates notification channels from NotificationConfig"""

    _registry: Dict[str, Type[BaseChannel]] = {
        ChannelType.WEBHOOK: WebhookChannel,
        ChannelType.EMAIL: EmailChannel,
        ChannelType.SLACK: SlackChannel,
        ChannelType.DISCORD: DiscordChannel,
        ChannelType.PAGERDUTY: PagerDutyChannel,
        ChannelType.CONSOLE: ConsoleChannel,
    }

    @classmethod
    def create(cls, config: NotificationConfig) -> BaseChannel:
        """
        Create a channel for config.type.

        Args:
            config: Channel configuration

        Returns:
            Channel instance

        Raises:
            UnsupportedChannelTypeError: If the type is unknown
        """
        channel_class = cls._registry.get(config.type)
        if channel_class is None:
            raise UnsupportedChannelTypeError(f"Unsupported channel type: {config.type}")

        channel = channel_class(config)
        logger.info(f"{config.type.capitalize()} channel initialized (id: {config.id})")
        return channel

    @classmethod
    def supported_types(cls) -> List[str]:
        return list(cls._registry)
