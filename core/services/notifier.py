"""
Best-effort user notifications (verification, password reset, welcome mail).

notify() never raises: delivery failures are logged and reported through the
returned NotifyResult so the triggering account operation still succeeds.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

import httpx

import core.config as config

logger = config.logger


class NotifyKind(str, PyEnum):
    verification = "verification"
    password_reset = "password_reset"
    welcome = "welcome"


@dataclass(frozen=True)
class NotifyEvent:
    kind: NotifyKind
    email: str
    name: Optional[str] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class NotifyResult:
    ok: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


def _code_minutes() -> int:
    return max(1, config.VERIFICATION_CODE_TTL_SECONDS // 60)


def render_email(event: NotifyEvent, app_name: str, app_url: str) -> tuple[str, str, str]:
    """Return (subject, html, text) for an event."""
    greeting = f"Hello {event.name or 'there'}!"
    year = datetime.now().year
    if event.kind == NotifyKind.welcome:
        subject = f"Welcome to {app_name}!"
        text = (
            f"{greeting}\n\nYour email has been verified successfully!\n"
            f"You can now start chatting at {app_url}/chat\n\n(c) {year} {app_name}"
        )
    else:
        purpose = "verification" if event.kind == NotifyKind.verification else "password reset"
        subject = f"{event.code} is your {purpose} code"
        text = (
            f"{greeting}\n\nYour {purpose} code is: {event.code}\n\n"
            f"This code will expire in {_code_minutes()} minutes.\n\n"
            f"If you didn't request this code, please ignore this email.\n\n(c) {year} {app_name}"
        )
    paragraphs = "".join(f"<p>{line}</p>" for line in text.split("\n") if line.strip())
    html = f"<!DOCTYPE html><html><body><h1>{app_name}</h1>{paragraphs}</body></html>"
    return subject, html, text


class Notifier:
    def notify(self, event: NotifyEvent) -> NotifyResult:
        try:
            return self._deliver(event)
        except Exception as exc:
            logger.warning(
                "notification_failed",
                extra={"kind": event.kind.value, "error_type": type(exc).__name__, "error": str(exc)},
            )
            return NotifyResult(ok=False, error=str(exc))

    def _deliver(self, event: NotifyEvent) -> NotifyResult:
        raise NotImplementedError

    def close(self) -> None:
        return None


class LogNotifier(Notifier):
    """Development channel used when no mail API key is configured: codes go to the log."""

    def _deliver(self, event: NotifyEvent) -> NotifyResult:
        logger.info(
            "notification_logged",
            extra={"kind": event.kind.value, "email": event.email, "code": event.code},
        )
        return NotifyResult(ok=True)


class BrevoNotifier(Notifier):
    """Transactional email through the Brevo HTTP API."""

    def __init__(
        self,
        api_key: str,
        sender_email: str,
        app_name: str,
        app_url: str,
        api_url: str = "https://api.brevo.com/v3/smtp/email",
        timeout_seconds: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.sender_email = sender_email
        self.app_name = app_name
        self.app_url = app_url
        self.api_url = api_url
        self._http = http_client or httpx.Client(timeout=httpx.Timeout(timeout_seconds))

    def _deliver(self, event: NotifyEvent) -> NotifyResult:
        subject, html, text = render_email(event, self.app_name, self.app_url)
        response = self._http.post(
            self.api_url,
            headers={"api-key": self.api_key, "Content-Type": "application/json", "Accept": "application/json"},
            json={
                "sender": {"email": self.sender_email, "name": self.app_name},
                "to": [{"email": event.email}],
                "subject": subject,
                "htmlContent": html,
                "textContent": text,
            },
        )
        if response.status_code >= 400:
            logger.warning(
                "notification_rejected",
                extra={"kind": event.kind.value, "status_code": response.status_code},
            )
            return NotifyResult(ok=False, error=f"status {response.status_code}")
        message_id = None
        try:
            message_id = response.json().get("messageId")
        except (ValueError, AttributeError):
            message_id = None
        logger.info("notification_sent", extra={"kind": event.kind.value})
        return NotifyResult(ok=True, message_id=message_id)

    def close(self) -> None:
        self._http.close()


def build_notifier() -> Notifier:
    if config.BREVO_API_KEY:
        return BrevoNotifier(
            api_key=config.BREVO_API_KEY,
            sender_email=config.EMAIL_FROM,
            app_name=config.APP_NAME,
            app_url=config.APP_URL,
            api_url=config.BREVO_API_URL,
            timeout_seconds=config.NOTIFY_TIMEOUT_SECONDS,
        )
    return LogNotifier()
