"""Domain models for subscription entitlements and provider notifications."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

ACCOUNT_REFERENCE_KEY = "account_id"


class EntitlementState(str, Enum):
    """Whether an account's paid features are unlocked."""

    ACTIVE = "active"
    PENDING = "pending"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


PROVIDER_STATUS_TO_ENTITLEMENT: Dict[str, EntitlementState] = {
    "active": EntitlementState.ACTIVE,
    "trialing": EntitlementState.ACTIVE,
    "past_due": EntitlementState.EXPIRED,
    "unpaid": EntitlementState.EXPIRED,
    "canceled": EntitlementState.CANCELLED,
    "incomplete_expired": EntitlementState.CANCELLED,
}


def map_provider_status(provider_status: Optional[str]) -> EntitlementState:
    """Translate a provider subscription status into an entitlement state."""

    if not provider_status:
        return EntitlementState.PENDING
    return PROVIDER_STATUS_TO_ENTITLEMENT.get(provider_status, EntitlementState.PENDING)


class ProviderEventKind(str, Enum):
    """Notification kinds the reconciler reacts to."""

    CHECKOUT_COMPLETED = "checkout_completed"
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"


PROVIDER_EVENT_TYPES: Dict[str, ProviderEventKind] = {
    "checkout.session.completed": ProviderEventKind.CHECKOUT_COMPLETED,
    "customer.subscription.created": ProviderEventKind.SUBSCRIPTION_CREATED,
    "customer.subscription.updated": ProviderEventKind.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": ProviderEventKind.SUBSCRIPTION_DELETED,
    "invoice.payment_succeeded": ProviderEventKind.PAYMENT_SUCCEEDED,
    "invoice.payment_failed": ProviderEventKind.PAYMENT_FAILED,
}

UNRECOGNIZED_KIND = "unrecognized"


def _safe_metadata(value: object) -> Dict[str, str]:
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items() if v is not None}
    return {}


class _ProviderObject(BaseModel):
    """Subset of a provider object that the reconciler depends on."""

    id: str
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: object) -> Dict[str, str]:
        return _safe_metadata(value)

    @property
    def account_ref(self) -> Optional[str]:
        value = self.metadata.get(ACCOUNT_REFERENCE_KEY, "").strip()
        return value or None


class CheckoutSessionObject(_ProviderObject):
    customer: Optional[str] = None
    subscription: Optional[str] = None


class SubscriptionObject(_ProviderObject):
    customer: str
    status: str
    current_period_end: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _lift_item_period_end(cls, data: Any) -> Any:
        # Newer API versions only report the period on subscription items.
        if not isinstance(data, dict) or data.get("current_period_end"):
            return data
        items = (data.get("items") or {}).get("data") or []
        if items and isinstance(items[0], dict) and items[0].get("current_period_end"):
            return {**data, "current_period_end": items[0]["current_period_end"]}
        return data


class InvoiceObject(_ProviderObject):
    customer: Optional[str] = None
    subscription: Optional[str] = None
    amount_paid: int = Field(default=0, ge=0)
    currency: str = "eur"

    @property
    def amount_paid_major(self) -> Decimal:
        return Decimal(self.amount_paid) / Decimal(100)


class _ProviderEventBase(BaseModel):
    event_id: str
    provider_type: str
    created: datetime

    model_config = ConfigDict(frozen=True)

    @field_validator("created")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class CheckoutCompletedEvent(_ProviderEventBase):
    kind: Literal["checkout_completed"] = "checkout_completed"
    data: CheckoutSessionObject


class SubscriptionEvent(_ProviderEventBase):
    kind: Literal["subscription_created", "subscription_updated", "subscription_deleted"]
    data: SubscriptionObject


class InvoiceEvent(_ProviderEventBase):
    kind: Literal["payment_succeeded", "payment_failed"]
    data: InvoiceObject


class UnrecognizedEvent(_ProviderEventBase):
    kind: Literal["unrecognized"] = "unrecognized"
    data: Dict[str, Any] = Field(default_factory=dict)


ProviderEvent = Annotated[
    Union[CheckoutCompletedEvent, SubscriptionEvent, InvoiceEvent, UnrecognizedEvent],
    Field(discriminator="kind"),
]

PROVIDER_EVENT_ADAPTER: TypeAdapter = TypeAdapter(ProviderEvent)


class Account(BaseModel):
    """Per-professional entitlement record held in the account store."""

    account_id: str
    contact_email: Optional[str] = None
    entitlement_state: EntitlementState = EntitlementState.PENDING
    payment_customer_ref: Optional[str] = None
    payment_subscription_ref: Optional[str] = None
    entitlement_updated_at: Optional[datetime] = None
    subscription_ends_at: Optional[datetime] = None
    last_payment_at: Optional[datetime] = None
    last_payment_amount: Optional[Decimal] = None
    payment_failed_at: Optional[datetime] = None
    subscription_cancelled_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_entitled(self) -> bool:
        return self.entitlement_state == EntitlementState.ACTIVE


class EntitlementUpdate(BaseModel):
    """Fields written to an account by a single reconciliation.

    Notification-driven updates take every value from the notification
    itself, never from the wall clock, so replays write identical rows.
    """

    entitlement_state: EntitlementState
    entitlement_updated_at: datetime
    payment_customer_ref: Optional[str] = None
    payment_subscription_ref: Optional[str] = None
    subscription_ends_at: Optional[datetime] = None
    last_payment_at: Optional[datetime] = None
    last_payment_amount: Optional[Decimal] = None
    payment_failed_at: Optional[datetime] = None
    subscription_cancelled_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ReconciliationOutcome(str, Enum):
    APPLIED = "applied"
    UNRESOLVED = "unresolved"
    UNHANDLED = "unhandled"


class ReconciliationResult(BaseModel):
    """What the router did with one verified notification."""

    outcome: ReconciliationOutcome
    kind: str
    account_id: Optional[str] = None
    entitlement_state: Optional[EntitlementState] = None
    detail: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class AuditSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditLogEntry(BaseModel):
    """Append-only record of one notification outcome."""

    event_type: str
    severity: AuditSeverity = AuditSeverity.INFO
    source: str = "stripe-webhook"
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class CheckoutSession(BaseModel):
    """Provider checkout session handed back to the client."""

    session_id: str
    url: str
    customer_ref: str

    model_config = ConfigDict(frozen=True)


class PortalSession(BaseModel):
    url: str

    model_config = ConfigDict(frozen=True)
