"""
notify/dispatcher.py -- Delivery of password reset links.

Two dispatchers share one method, send_password_reset_link(email, reset_url),
returning True when the message was handed off:

  ConsoleDispatcher -- logs the link. Default for local development, where
      nobody has an email provider key.
  ResendDispatcher  -- POSTs to the Resend HTTP API with a pooled
      requests.Session. Network and HTTP errors are logged and reported as
      False; they never raise, so a mail outage cannot fail the
      forgot-password request that triggered it.

build_dispatcher(settings) picks one from EMAIL_PROVIDER.
"""

from __future__ import annotations

import logging
from typing import Protocol

import requests

from core.config import Settings

logger = logging.getLogger("jobportal.notify")

RESEND_API = "https://api.resend.com/emails"

RESET_SUBJECT = "Reset your password"
RESET_TEXT = (
    "Reset your password\n\n"
    "Click the link below to reset your password:\n"
    "{reset_url}\n\n"
    "This link expires in 1 hour. If you didn't request a password reset, you can ignore this email."
)


class Dispatcher(Protocol):
    def send_password_reset_link(self, email: str, reset_url: str) -> bool: ...


class ConsoleDispatcher:
    """Writes the reset link to the log instead of sending mail."""

    def send_password_reset_link(self, email: str, reset_url: str) -> bool:
        logger.info("Password reset link for %s: %s", email, reset_url)
        return True


class ResendDispatcher:
    """Sends mail through https://resend.com.

    Usage:
        dispatcher = ResendDispatcher(api_key, "noreply@example.com", "JobPortal")
        dispatcher.send_password_reset_link("a@x.com", "https://app/reset-password?token=...")
    """

    def __init__(self, api_key: str, from_email: str, from_name: str, timeout: float = 10) -> None:
        self._from = f"{from_name} <{from_email}>"
        self._timeout = timeout
        self._session = requests.Session()
        # Known endpoint; no reason to follow long redirect chains.
        self._session.max_redirects = 3
        self._session.headers.update({"Authorization": f"Bearer {api_key}"})

    def send_password_reset_link(self, email: str, reset_url: str) -> bool:
        payload = {
            "from": self._from,
            "to": [email],
            "subject": RESET_SUBJECT,
            "text": RESET_TEXT.format(reset_url=reset_url),
        }
        try:
            resp = self._session.post(RESEND_API, json=payload, timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Password reset email to %s failed: %s", email, e)
            return False
        logger.info("Password reset email queued for %s", email)
        return True

    def close(self) -> None:
        self._session.close()


def build_dispatcher(settings: Settings) -> Dispatcher:
    if settings.email_provider == "resend":
        return ResendDispatcher(settings.email_api_key, settings.email_from, settings.email_from_name)
    return ConsoleDispatcher()
