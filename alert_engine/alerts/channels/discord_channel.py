"""
Discord notification channel using webhooks.
"""

import asyncio
from typing import Dict

from alert_engine.alerts.channels.base_channel import BaseChannel, NotificationPayload
from alert_engine.alerts.channels.webhook_channel import post_json
from alert_engine.utils.helpers import format_timestamp

# Discord embed colors are integers
SEVERITY_COLORS = {
    'info': 0x0066CC,
    'warning': 0xFF9900,
    'critical': 0xCC0000,
}


class DiscordChannel(BaseChannel):
    """Discord notification channel via webhooks"""

    def validate_config(self) -> None:
        self.require('webhook_url', 'Discord webhook URL')

    async def deliver(self, payload: NotificationPayload) -> None:
        await asyncio.to_thread(
            post_json,
            self.settings['webhook_url'],
            self._create_discord_payload(payload),
            {'Content-Type': 'application/json'},
            self.settings.get('timeout', 10),
        )

    def _create_discord_payload(self, payload: NotificationPayload) -> Dict:
        rule = payload.rule
        message_content = self.format_message(payload)

        embed = {
            "title": message_content['summary'],
            "description": message_content['description'],
            "color": SEVERITY_COLORS.get(payload.severity, 0x666666),
            "timestamp": format_timestamp(payload.timestamp),
            "fields": [
                {"name": k, "value": str(v), "inline": True}
                for k, v in rule.labels.items()
            ],
        }

        return {
            "username": self.settings.get('username', 'Alert Engine'),
            "content": "@here" if payload.severity == 'critical' else "",
            "embeds": [embed],
        }
