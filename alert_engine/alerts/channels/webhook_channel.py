"""
Custom webhook notification channel.
"""

import asyncio
import logging
from typing import Any, Dict

import requests

from alert_engine.alerts.channels.base_channel import BaseChannel, NotificationPayload
from alert_engine.alerts.errors import ChannelConfigError, DeliveryError

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ('POST', 'PUT')


def post_json(url: str, payload: Dict[str, Any], headers: Dict[str, str],
              timeout: float, method: str = 'POST') -> None:
    """
    Send a JSON document over HTTP (blocking).

    Raises:
        DeliveryError: On connection failure or non-2xx response
    """
    try:
        response = requests.request(method, url, json=payload, headers=headers, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise DeliveryError(f"HTTP {method} to {url} failed: {e}") from e


class WebhookChannel(BaseChannel):
    """Custom webhook notification channel"""

    def validate_config(self) -> None:
        self.require('url', 'Webhook URL')

        method = str(self.settings.get('method', 'POST')).upper()
        if method not in SUPPORTED_METHODS:
            raise ChannelConfigError(f"Unsupported HTTP method: {method}")

    async def deliver(self, payload: NotificationPayload) -> None:
        url = self.settings['url']
        method = str(self.settings.get('method', 'POST')).upper()
        timeout = self.settings.get('timeout', 10)

        headers = dict(self.settings.get('headers') or {})
        # Ensure Content-Type is set
        if 'Content-Type' not in headers:
            headers['Content-Type'] = 'application/json'

        document = self.build_alert_document(payload)

        logger.debug(f"Webhook {self.get_id()} sending {method} to {url}")
        await asyncio.to_thread(post_json, url, document, headers, timeout, method)
