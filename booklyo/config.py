"""Application settings loaded from the environment."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Tuple
import os


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection parameters for the account and audit store."""

    host: str
    port: int
    dbname: str
    user: str
    password: str
    connect_timeout: int
    statement_timeout_ms: int

    def connect_kwargs(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.dbname,
            "user": self.user,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
            "options": f"-c statement_timeout={self.statement_timeout_ms}",
        }


@dataclass(frozen=True)
class PlanConfig:
    """Inline price used for checkout when no provider price id is configured."""

    name: str
    description: str
    unit_amount: int
    currency: str
    interval: str


@dataclass(frozen=True)
class Settings:
    """Top-level configuration shared by the composition root."""

    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    stripe_webhook_tolerance: int
    stripe_timeout_seconds: float
    stripe_max_network_retries: int
    stripe_price_id: Optional[str]
    checkout_locale: str
    plan: PlanConfig
    frontend_base_url: str
    allowed_origins: Tuple[str, ...]
    database: DatabaseConfig
    log_level: str


DEFAULT_FRONTEND_URL = "https://plataforma-tau.vercel.app"
DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:3000",
    "https://booklyo.pt",
    "https://www.booklyo.pt",
    DEFAULT_FRONTEND_URL,
)

BOOKLYO_PRO = PlanConfig(
    name="Booklyo Pro",
    description=(
        "Sistema completo de marcações online - Marcações ilimitadas, confirmações "
        "automáticas por email e WhatsApp, painel profissional e muito mais."
    ),
    unit_amount=1500,
    currency="eur",
    interval="month",
)


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def _to_list(value: Optional[str], *, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None or not value.strip():
        return default
    return tuple(item.strip().rstrip("/") for item in value.split(",") if item.strip())


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def load_database_config(env: Optional[Mapping[str, str]] = None) -> DatabaseConfig:
    env_mapping = os.environ if env is None else env
    return DatabaseConfig(
        host=env_mapping.get("DB_HOST", "127.0.0.1"),
        port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        dbname=env_mapping.get("DB_NAME", "booklyo"),
        user=env_mapping.get("DB_USER", "booklyo"),
        password=env_mapping.get("DB_PASSWORD", "booklyo"),
        connect_timeout=max(1, _to_int(env_mapping.get("DB_CONNECT_TIMEOUT"), default=5)),
        statement_timeout_ms=max(0, _to_int(env_mapping.get("DB_STATEMENT_TIMEOUT_MS"), default=5000)),
    )


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Load :class:`Settings` from environment variables.

    Missing secrets are kept as ``None``; the features that need them refuse
    to run rather than the whole process refusing to start.
    """

    env_mapping = os.environ if env is None else env

    frontend_base_url = (env_mapping.get("FRONTEND_URL") or DEFAULT_FRONTEND_URL).strip()

    return Settings(
        stripe_secret_key=_optional(env_mapping.get("STRIPE_SECRET_KEY")),
        stripe_webhook_secret=_optional(env_mapping.get("STRIPE_WEBHOOK_SECRET")),
        stripe_webhook_tolerance=max(1, _to_int(env_mapping.get("STRIPE_WEBHOOK_TOLERANCE"), default=300)),
        stripe_timeout_seconds=max(0.1, _to_float(env_mapping.get("STRIPE_TIMEOUT"), default=10.0)),
        stripe_max_network_retries=max(0, _to_int(env_mapping.get("STRIPE_MAX_RETRIES"), default=2)),
        stripe_price_id=_optional(env_mapping.get("STRIPE_PRICE_ID")),
        checkout_locale=(env_mapping.get("CHECKOUT_LOCALE") or "pt").strip(),
        plan=BOOKLYO_PRO,
        frontend_base_url=frontend_base_url.rstrip("/"),
        allowed_origins=_to_list(env_mapping.get("ALLOWED_ORIGINS"), default=DEFAULT_ALLOWED_ORIGINS),
        database=load_database_config(env_mapping),
        log_level=(env_mapping.get("LOG_LEVEL") or "INFO").strip().upper(),
    )
