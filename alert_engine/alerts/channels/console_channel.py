"""
Console notification channel.
"""

import sys

from alert_engine.alerts.channels.base_channel import BaseChannel, NotificationPayload
from alert_engine.utils.helpers import format_timestamp


class ConsoleChannel(BaseChannel):
    """Writes alerts to stdout (or stderr with stream: stderr)"""

    def validate_config(self) -> None:
        pass

    async def deliver(self, payload: NotificationPayload) -> None:
        stream = sys.stderr if self.settings.get('stream') == 'stderr' else sys.stdout

        print(f"[ALERT {payload.severity.upper()}] {payload.message}", file=stream)
        print(f"Rule: {payload.rule.name}", file=stream)
        print(f"Timestamp: {format_timestamp(payload.timestamp)}", file=stream)
        stream.flush()
