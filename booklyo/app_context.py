"""Shared application context for reusable dependencies."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import psycopg2
from fastapi import Request

from .app.billing import (
    AuditLogger,
    AuditStore,
    BillingService,
    EntitlementReconciler,
    EventRouter,
    NotificationVerifier,
    PaymentProvider,
    PostgresAccountRepository,
    PostgresAuditStore,
    StripePaymentProvider,
    WebhookProcessor,
)
from .app.billing.reconciler import AccountRepository
from .app.billing.repository import ConnectionFactory
from .config import DatabaseConfig, Settings
from .mail import BookingMailer, EmailConfig, create_email_provider, load_email_config

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Process-wide collaborators, built once and handed to the app."""

    settings: Settings
    accounts: AccountRepository
    billing_service: BillingService
    webhook_processor: WebhookProcessor
    booking_mailer: BookingMailer


def build_connection_factory(database: DatabaseConfig) -> ConnectionFactory:
    connect_kwargs = database.connect_kwargs()

    def get_conn():
        return psycopg2.connect(**connect_kwargs)

    return get_conn


def build_app_context(
    settings: Settings,
    *,
    email_config: Optional[EmailConfig] = None,
    connection_factory: Optional[ConnectionFactory] = None,
    accounts: Optional[AccountRepository] = None,
    provider: Optional[PaymentProvider] = None,
    audit_store: Optional[AuditStore] = None,
) -> AppContext:
    """Wire the billing and mail services from ``settings``.

    Nothing here opens a connection; the database and Stripe are first
    contacted when a request needs them.
    """

    connection_factory = connection_factory or build_connection_factory(settings.database)
    accounts = accounts or PostgresAccountRepository(connection_factory)
    provider = provider or StripePaymentProvider.from_settings(settings)
    audit = AuditLogger(audit_store or PostgresAuditStore(connection_factory))

    reconciler = EntitlementReconciler(accounts, provider)
    processor = WebhookProcessor(
        NotificationVerifier(settings.stripe_webhook_secret, tolerance=settings.stripe_webhook_tolerance),
        EventRouter(reconciler),
        audit,
    )
    billing_service = BillingService(
        accounts,
        provider,
        reconciler,
        frontend_base_url=settings.frontend_base_url,
        allowed_origins=settings.allowed_origins,
        default_price_id=settings.stripe_price_id,
    )

    email_config = email_config or load_email_config()
    mailer = BookingMailer(create_email_provider(email_config), app_base_url=email_config.app_base_url)

    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET is not set; webhook notifications will be rejected")
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY is not set; checkout and portal sessions are disabled")

    return AppContext(
        settings=settings,
        accounts=accounts,
        billing_service=billing_service,
        webhook_processor=processor,
        booking_mailer=mailer,
    )


def get_app_context(request: Request) -> AppContext:
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise RuntimeError("Application context has not been configured yet")
    return context


__all__ = ["AppContext", "build_app_context", "build_connection_factory", "get_app_context"]
