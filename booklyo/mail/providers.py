"""Email provider implementations used by the application."""
from __future__ import annotations

import json
import logging
from typing import Dict, Optional
from urllib import error as urllib_error, request as urllib_request

from .config import EmailConfig
from .exceptions import EmailDeliveryError, EmailNotConfiguredError

logger = logging.getLogger(__name__)


class EmailProvider:
    """Base provider for outbound email delivery."""

    name = "base"

    def __init__(self, *, from_email: str) -> None:
        self.from_email = from_email

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> Optional[str]:
        """Send one message and return the provider's message id, if any."""

        raise NotImplementedError

    def describe(self) -> Dict[str, str]:
        return {"email_provider": self.name, "email_sender": self.from_email}


class DevPrintProvider(EmailProvider):
    """Development provider that logs messages instead of sending them."""

    name = "dev"

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> Optional[str]:
        logger.info(
            "Dev email dispatch",
            extra={
                "email_recipient": to,
                "email_subject": subject,
                "email_sender": self.from_email,
            },
        )
        return None


class ResendProvider(EmailProvider):
    """Delivers mail through the Resend HTTP API."""

    name = "resend"

    def __init__(
        self,
        *,
        from_email: str,
        api_key: Optional[str],
        api_url: str,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(from_email=from_email)
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout

    def _build_request(self, to: str, subject: str, html_body: str, text_body: str) -> urllib_request.Request:
        payload = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }
        return urllib_request.Request(
            self.api_url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> Optional[str]:
        if not self.api_key:
            raise EmailNotConfiguredError("Email service not configured")

        request = self._build_request(to, subject, html_body, text_body)
        try:
            with urllib_request.urlopen(request, timeout=self.timeout) as response:
                body = response.read()
        except urllib_error.HTTPError as exc:
            logger.warning(
                "Resend rejected message",
                extra={"email_recipient": to, "status_code": exc.code},
            )
            raise EmailDeliveryError(f"Email provider returned {exc.code}") from exc
        except (urllib_error.URLError, OSError) as exc:
            logger.warning("Resend request failed", extra={"email_recipient": to, "error": str(exc)})
            raise EmailDeliveryError("Email provider unreachable") from exc

        try:
            payload = json.loads(body.decode("utf-8") or "{}")
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = {}
        return payload.get("id") if isinstance(payload, dict) else None


def create_email_provider(config: EmailConfig) -> EmailProvider:
    provider = (config.provider_name or "resend").strip().lower()
    if provider == "dev":
        return DevPrintProvider(from_email=config.from_email)
    return ResendProvider(
        from_email=config.from_email,
        api_key=config.resend_api_key,
        api_url=config.resend_api_url,
        timeout=config.timeout_seconds,
    )


__all__ = [
    "DevPrintProvider",
    "EmailProvider",
    "ResendProvider",
    "create_email_provider",
]
