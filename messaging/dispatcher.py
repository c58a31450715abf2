"""
messaging/dispatcher.py -- Outbound email and SMS delivery.

Fire-and-forget from the caller's perspective: by the time a flow dispatches,
the code or reset token is already stored. A delivery failure is logged and
reported as False, never raised -- the user can simply ask for a new code.

Both channels POST JSON to an HTTP gateway (EMAIL_GATEWAY_URL /
SMS_GATEWAY_URL) with a bearer API key. A channel whose URL is empty is
disabled: the send is skipped with a log line, which is what local
development runs on.

Codes and links are never written to the log.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from core.config import Settings

logger = logging.getLogger("passgate.messaging")

_TIMEOUT = 10  # seconds, per gateway call


def _email_content(name: str, link: Optional[str], code: Optional[int]) -> tuple[str, str]:
    greeting = f"Hi {name}," if name else "Hi,"
    if link:
        return (
            "Reset your password",
            f"{greeting}\n\nUse the link below to choose a new password:\n{link}\n\n"
            "If you did not ask for this, you can ignore this email.",
        )
    return (
        "Your verification code",
        f"{greeting}\n\nYour verification code is {code}.",
    )


class MessageDispatcher:
    """Deliver verification codes and reset links.

    Usage:
        dispatcher = MessageDispatcher(get_settings())
        dispatcher.send_email("Ada", "ada@example.com", link=None, code=4821)
        dispatcher.send_sms("+15550100", 4821)
        dispatcher.close()
    """

    def __init__(self, settings: Settings) -> None:
        self.email_url = settings.email_gateway_url
        self.email_api_key = settings.email_api_key
        self.email_from = settings.email_from
        self.sms_url = settings.sms_gateway_url
        self.sms_api_key = settings.sms_api_key
        self.sms_from = settings.sms_from
        # One session per dispatcher for connection pooling. Gateways are
        # fixed endpoints, so a short redirect budget is plenty.
        self._session = requests.Session()
        self._session.max_redirects = 3

    def _post(self, channel: str, url: str, api_key: str, payload: dict) -> bool:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        try:
            resp = self._session.post(url, json=payload, headers=headers, timeout=_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("%s delivery failed: %s", channel, exc)
            return False
        return True

    def send_email(self, name: str, address: str, link: Optional[str] = None, code: Optional[int] = None) -> bool:
        """Email either a reset link or a verification code to address."""
        if not self.email_url:
            logger.info("Email gateway not configured; skipped message to %s", address)
            return False
        subject, text = _email_content(name, link, code)
        payload = {"from": self.email_from, "to": address, "subject": subject, "text": text}
        return self._post("Email", self.email_url, self.email_api_key, payload)

    def send_sms(self, number: str, code: int) -> bool:
        """Text a verification code to number."""
        if not self.sms_url:
            logger.info("SMS gateway not configured; skipped message to %s", number)
            return False
        payload = {"from": self.sms_from, "to": number, "body": f"Your verification code is {code}."}
        return self._post("SMS", self.sms_url, self.sms_api_key, payload)

    def close(self) -> None:
        self._session.close()
