"""
Slack notification channel using webhooks.
"""

import asyncio
from typing import Dict

from alert_engine.alerts.channels.base_channel import BaseChannel, NotificationPayload
from alert_engine.alerts.channels.webhook_channel import post_json


SEVERITY_COLORS = {
    'info': '#0066cc',
    'warning': '#ff9900',
    'critical': '#cc0000',
}


class SlackChannel(BaseChannel):
    """Slack notification channel via incoming webhooks"""

    def validate_config(self) -> None:
        self.require('webhook_url', 'Slack webhook URL')

    async def deliver(self, payload: NotificationPayload) -> None:
        slack_payload = self._create_slack_payload(payload)
        await asyncio.to_thread(
            post_json,
            self.settings['webhook_url'],
            slack_payload,
            {'Content-Type': 'application/json'},
            self.settings.get('timeout', 10),
        )

    def _create_slack_payload(self, payload: NotificationPayload) -> Dict:
        """Create Slack webhook payload"""
        rule = payload.rule
        message_content = self.format_message(payload)
        color = SEVERITY_COLORS.get(payload.severity, '#666666')

        # Format labels for display
        labels_text = ""
        if rule.labels:
            labels_text = "\n" + "\n".join(f"• *{k}:* {v}" for k, v in rule.labels.items())

        fields = [
            {
                "title": "Severity",
                "value": payload.severity.upper(),
                "short": True
            },
            {
                "title": "Rule",
                "value": rule.id,
                "short": True
            },
        ]
        for condition in rule.conditions:
            fields.append({
                "title": condition.metric,
                "value": f"{condition.aggregation} {condition.operator} {condition.threshold:g}",
                "short": True
            })

        attachment = {
            "color": color,
            "title": message_content['summary'],
            "text": message_content['description'] + labels_text,
            "fields": fields,
            "footer": "Alert Engine",
            "ts": int(payload.timestamp / 1000),
        }

        # Add @channel mention for critical alerts
        text = ""
        if payload.severity == 'critical':
            text = "<!channel> Critical Alert"

        slack_payload = {
            "username": self.settings.get('username', 'Alert Engine'),
            "icon_emoji": self.settings.get('icon_emoji', ':rotating_light:'),
            "text": text,
            "attachments": [attachment]
        }
        if self.settings.get('channel'):
            slack_payload['channel'] = self.settings['channel']

        return slack_payload
