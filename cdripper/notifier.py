"""
CD Ripper Webhook Notifications
Posts status messages to a Discord-compatible webhook
"""

from typing import Optional

import requests

from . import activity
from .parsers import AlbumIdentity

SUCCESS_HEADER = "**CD Ripping: Success**"
FAILURE_HEADER = "**CD Ripping: Failure**"


def success_message(identity: AlbumIdentity) -> str:
    """Build the success message, leaving out empty fields"""
    lines = [SUCCESS_HEADER]
    if identity.artist:
        lines.append(f"**Artist:** {identity.artist}")
    if identity.album:
        lines.append(f"**Album:** {identity.album}")
    if identity.year:
        lines.append(f"**Year:** {identity.year}")
    return "\n".join(lines)


def failure_message(reason: str) -> str:
    return f"{FAILURE_HEADER}\n{reason}"


def offset_message(offset: int) -> str:
    return f"Drive offset detected: {offset}"


class Notifier:
    """Best-effort webhook sender.

    Errors are logged, never raised. Without a webhook URL every call is a
    no-op.
    """

    def __init__(self, webhook_url: Optional[str] = None, timeout: float = 10):
        self.webhook_url = webhook_url or None
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.webhook_url is not None

    def notify(self, message: str) -> bool:
        """Send a message. Returns True if the webhook accepted it."""
        if not self.enabled:
            return False

        try:
            response = requests.post(
                self.webhook_url,
                json={"content": message},
                timeout=self.timeout
            )
            if 200 <= response.status_code < 300:
                return True
            activity.notification_failed(f"HTTP {response.status_code}")
            return False
        except requests.exceptions.RequestException as e:
            activity.notification_failed(str(e))
            return False

    def notify_success(self, identity: AlbumIdentity) -> bool:
        return self.notify(success_message(identity))

    def notify_failure(self, reason: str) -> bool:
        return self.notify(failure_message(reason))

    def notify_offset(self, offset: int) -> bool:
        return self.notify(offset_message(offset))
