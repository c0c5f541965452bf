"""Email configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os

from ..config import DEFAULT_FRONTEND_URL

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_FROM_EMAIL = "Plataforma <onboarding@resend.dev>"


@dataclass(frozen=True)
class EmailConfig:
    """Configuration for outbound email delivery."""

    provider_name: str
    from_email: str
    resend_api_key: Optional[str]
    resend_api_url: str
    timeout_seconds: float
    app_base_url: str


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def load_email_config(env: Optional[Mapping[str, str]] = None) -> EmailConfig:
    """Load :class:`EmailConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    provider_name = (env_mapping.get("EMAIL_PROVIDER") or "resend").strip().lower() or "resend"
    from_email = (env_mapping.get("FROM_EMAIL") or DEFAULT_FROM_EMAIL).strip()
    resend_api_key = (env_mapping.get("RESEND_API_KEY") or "").strip() or None
    resend_api_url = env_mapping.get("RESEND_API_URL", RESEND_API_URL)
    timeout_seconds = max(0.1, _to_float(env_mapping.get("EMAIL_TIMEOUT"), default=10.0))
    app_base_url = env_mapping.get("FRONTEND_URL") or DEFAULT_FRONTEND_URL

    return EmailConfig(
        provider_name=provider_name,
        from_email=from_email,
        resend_api_key=resend_api_key,
        resend_api_url=resend_api_url,
        timeout_seconds=timeout_seconds,
        app_base_url=app_base_url.rstrip("/"),
    )
