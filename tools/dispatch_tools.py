"""Reminder dispatch channels.

WebhookDispatchChannel posts each reminder to DISPATCH_WEBHOOK_URL, where the
messaging service fans it out (method "all" means every channel it supports).
LogDispatchChannel only logs; it is used when no webhook is configured so that
in-app notifications and tasks still move to sent.
"""
import logging
import os
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class WebhookDispatchChannel:
    def __init__(self, url: Optional[str] = None, timeout: Optional[int] = None):
        self.url = url or os.environ["DISPATCH_WEBHOOK_URL"]
        self.timeout = timeout or int(os.environ.get("DISPATCH_TIMEOUT", "10"))

    def send(self, method: str, recipient: str, subject: str, body: str) -> Dict[str, Any]:
        """POST one reminder to the webhook.

        Returns the parsed JSON reply, {} for an empty one, or {"raw": text}
        when a 2xx reply is not JSON. Raises
        requests exceptions on connection errors and non-2xx responses.
        """
        try:
            resp = requests.post(
                self.url,
                json={
                    "method": method,
                    "recipient": recipient,
                    "subject": subject,
                    "body": body,
                },
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError:
            logger.warning("Dispatch webhook not reachable at %s", self.url)
            raise
        resp.raise_for_status()
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            # Accepted by the webhook; the reply body is informational only.
            return {"raw": resp.text}


class LogDispatchChannel:
    def send(self, method: str, recipient: str, subject: str, body: str) -> Dict[str, Any]:
        logger.info("[%s] to %s: %s", method, recipient or "(unassigned)", subject)
        return {"delivered": True}


def get_dispatch_channel():
    """Webhook channel if DISPATCH_WEBHOOK_URL is set, else the logging channel."""
    if os.environ.get("DISPATCH_WEBHOOK_URL"):
        return WebhookDispatchChannel()
    return LogDispatchChannel()
