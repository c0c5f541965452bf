"""Error taxonomy for webhook reconciliation and billing calls."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class BillingError(Exception):
    """Base class for billing failures carrying an HTTP mapping."""

    message: str
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.detail:
            body.update(self.detail)
        return body

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.payload)


@dataclass
class VerificationError(BillingError):
    """Inbound notification failed signature or shape verification."""

    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass
class MalformedEventError(VerificationError):
    """A correctly signed notification whose body does not match its event shape."""


@dataclass
class InvalidRequestError(BillingError):
    """A billing request carried an unusable value."""

    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass
class UnresolvedAccountError(BillingError):
    """Notification does not point at any stored account.

    Acknowledged to the provider: retrying cannot repair a missing reference.
    """

    status_code: int = status.HTTP_404_NOT_FOUND


@dataclass
class StoreError(BillingError):
    """The account store could not be read."""


@dataclass
class StoreWriteError(StoreError):
    """Persisting entitlement state failed; the provider must retry."""


@dataclass
class PaymentProviderError(BillingError):
    """A call to the payment provider failed or timed out."""

    status_code: int = status.HTTP_502_BAD_GATEWAY


@dataclass
class ConfigurationError(BillingError):
    """A required secret is missing, so the feature refuses to run."""


__all__ = [
    "BillingError",
    "ConfigurationError",
    "InvalidRequestError",
    "MalformedEventError",
    "PaymentProviderError",
    "StoreError",
    "StoreWriteError",
    "UnresolvedAccountError",
    "VerificationError",
]
