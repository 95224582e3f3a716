"""
PagerDuty notification channel (Events API v2).
"""

import asyncio
from typing import Dict

from alert_engine.alerts.channels.base_channel import BaseChannel, NotificationPayload, to_jsonable
from alert_engine.alerts.channels.webhook_channel import post_json
from alert_engine.utils.helpers import format_timestamp

EVENTS_API_URL = 'https://events.pagerduty.com/v2/enqueue'

# PagerDuty accepts critical, error, warning, info
SEVERITY_MAP = {
    'critical': 'critical',
    'warning': 'warning',
    'info': 'info',
}


class PagerDutyChannel(BaseChannel):
    """PagerDuty channel that triggers incidents"""

    def validate_config(self) -> None:
        self.require('routing_key', 'PagerDuty routing key')

    async def deliver(self, payload: NotificationPayload) -> None:
        await asyncio.to_thread(
            post_json,
            self.settings.get('url', EVENTS_API_URL),
            self._create_event(payload),
            {'Content-Type': 'application/json'},
            self.settings.get('timeout', 10),
        )

    def _create_event(self, payload: NotificationPayload) -> Dict:
        rule = payload.rule
        return {
            "routing_key": self.settings['routing_key'],
            "event_action": "trigger",
            # One open incident per rule
            "dedup_key": f"alert-engine-{rule.id}",
            "payload": {
                "summary": payload.message,
                "source": self.settings.get('source', 'alert-engine'),
                "severity": SEVERITY_MAP.get(payload.severity, 'error'),
                "timestamp": format_timestamp(payload.timestamp),
                "custom_details": {
                    "rule_id": rule.id,
                    "labels": dict(rule.labels),
                    "metadata": to_jsonable(payload.metadata),
                },
            },
        }
