"""
Email notification channel over SMTP.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import List

from alert_engine.alerts.channels.base_channel import BaseChannel, NotificationPayload
from alert_engine.alerts.errors import DeliveryError

logger = logging.getLogger(__name__)


class EmailChannel(BaseChannel):
    """
    Email channel.

    Settings:
        to: recipient address or list of addresses (required)
        from: sender address (default alert-engine@localhost)
        smtp_host, smtp_port: SMTP server (default localhost:25)
        use_tls: issue STARTTLS before login
        username, password: optional SMTP credentials
        timeout: socket timeout in seconds
    """

    def validate_config(self) -> None:
        self.require('to', 'Email recipient')

    def _recipients(self) -> List[str]:
        to = self.settings['to']
        if isinstance(to, str):
            return [addr.strip() for addr in to.split(',') if addr.strip()]
        return list(to)

    async def deliver(self, payload: NotificationPayload) -> None:
        message = self._build_message(payload)
        await asyncio.to_thread(self._send_message, message)

    def _build_message(self, payload: NotificationPayload) -> EmailMessage:
        message_content = self.format_message(payload)

        message = EmailMessage()
        message['Subject'] = message_content['summary']
        message['From'] = self.settings.get('from', 'alert-engine@localhost')
        message['To'] = ', '.join(self._recipients())

        body = [message_content['description'], '']
        for key, value in payload.rule.labels.items():
            body.append(f"{key}: {value}")
        message.set_content("\n".join(body))

        return message

    def _send_message(self, message: EmailMessage) -> None:
        host = self.settings.get('smtp_host', 'localhost')
        port = int(self.settings.get('smtp_port', 25))
        timeout = self.settings.get('timeout', 10)

        try:
            with smtplib.SMTP(host, port, timeout=timeout) as smtp:
                if self.settings.get('use_tls', False):
                    smtp.starttls()
                if self.settings.get('username'):
                    smtp.login(self.settings['username'], self.settings.get('password', ''))
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP delivery via {host}:{port} failed: {e}") from e

        logger.debug(f"Email sent to {message['To']}")
