"""API schemas for billing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..billing import Account, CheckoutSession, EntitlementState


class CheckoutSessionRequest(BaseModel):
    account_id: str = Field(alias="accountId", min_length=1, max_length=128)
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=100)
    price_id: Optional[str] = Field(default=None, alias="priceId")
    success_url: Optional[str] = Field(default=None, alias="successUrl")
    cancel_url: Optional[str] = Field(default=None, alias="cancelUrl")

    model_config = ConfigDict(populate_by_name=True)


class CheckoutSessionResponse(BaseModel):
    session_id: str = Field(alias="sessionId")
    url: str

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_checkout(cls, session: CheckoutSession) -> "CheckoutSessionResponse":
        return cls(session_id=session.session_id, url=session.url)


class PortalSessionRequest(BaseModel):
    # Validated by the billing service so that any bad value maps to 400.
    customer_id: Any = Field(default=None, alias="customerId")
    return_url: Optional[str] = Field(default=None, alias="returnUrl")

    model_config = ConfigDict(populate_by_name=True)


class PortalSessionResponse(BaseModel):
    url: str


class SubscriptionStatusResponse(BaseModel):
    account_id: str = Field(alias="accountId")
    status: EntitlementState
    entitled: bool
    subscription_ends_at: Optional[datetime] = Field(default=None, alias="subscriptionEndsAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_account(cls, account: Account) -> "SubscriptionStatusResponse":
        return cls(
            account_id=account.account_id,
            status=account.entitlement_state,
            entitled=account.is_entitled,
            subscription_ends_at=account.subscription_ends_at,
            updated_at=account.entitlement_updated_at,
        )
