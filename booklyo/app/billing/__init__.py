"""Billing domain package: webhook reconciliation and subscription flows."""

from .audit import AuditLogger, AuditStore, PostgresAuditStore
from .dispatch import EventRouter
from .exceptions import (
    BillingError,
    ConfigurationError,
    InvalidRequestError,
    MalformedEventError,
    PaymentProviderError,
    StoreError,
    StoreWriteError,
    UnresolvedAccountError,
    VerificationError,
)
from .models import (
    Account,
    AuditLogEntry,
    AuditSeverity,
    CheckoutSession,
    EntitlementState,
    EntitlementUpdate,
    PortalSession,
    ProviderEvent,
    ProviderEventKind,
    ReconciliationOutcome,
    ReconciliationResult,
    map_provider_status,
)
from .provider import PaymentProvider, StripePaymentProvider
from .reconciler import AccountRepository, CustomerDirectory, EntitlementReconciler
from .repository import PostgresAccountRepository
from .service import BillingService
from .verifier import NotificationVerifier
from .webhooks import RawNotification, WebhookProcessor, WebhookResponse

__all__ = [
    "Account",
    "AccountRepository",
    "AuditLogEntry",
    "AuditLogger",
    "AuditSeverity",
    "AuditStore",
    "BillingError",
    "BillingService",
    "CheckoutSession",
    "ConfigurationError",
    "CustomerDirectory",
    "EntitlementReconciler",
    "EntitlementState",
    "EntitlementUpdate",
    "EventRouter",
    "InvalidRequestError",
    "MalformedEventError",
    "NotificationVerifier",
    "PaymentProvider",
    "PaymentProviderError",
    "PortalSession",
    "PostgresAccountRepository",
    "PostgresAuditStore",
    "ProviderEvent",
    "ProviderEventKind",
    "RawNotification",
    "ReconciliationOutcome",
    "ReconciliationResult",
    "StoreError",
    "StoreWriteError",
    "StripePaymentProvider",
    "UnresolvedAccountError",
    "VerificationError",
    "WebhookProcessor",
    "WebhookResponse",
    "map_provider_status",
]
