"""Core service coordinating billing flows with the payment provider."""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple
from urllib.parse import urlsplit

from .exceptions import InvalidRequestError, UnresolvedAccountError
from .models import Account, CheckoutSession, PortalSession
from .provider import PaymentProvider
from .reconciler import AccountRepository, EntitlementReconciler

logger = logging.getLogger(__name__)

CUSTOMER_REF_PREFIX = "cus_"
CHECKOUT_SESSION_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


def _origin_of(url: str) -> Optional[str]:
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


class BillingService:
    """Checkout, billing portal and subscription status for accounts."""

    def __init__(
        self,
        accounts: AccountRepository,
        provider: PaymentProvider,
        reconciler: EntitlementReconciler,
        *,
        frontend_base_url: str,
        allowed_origins: Iterable[str] = (),
        default_price_id: Optional[str] = None,
    ) -> None:
        self._accounts = accounts
        self._provider = provider
        self._reconciler = reconciler
        self._frontend_base_url = frontend_base_url.rstrip("/")
        self._allowed_origins: Tuple[str, ...] = tuple(origin.rstrip("/") for origin in allowed_origins)
        self._default_price_id = default_price_id

    def create_checkout_session(
        self,
        *,
        account_id: str,
        email: str,
        name: Optional[str] = None,
        price_id: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> CheckoutSession:
        """Start a subscription checkout for ``account_id``.

        The stored provider customer is reused; otherwise one is looked up by
        email or created, and remembered on the account. Redirect URLs outside
        the allowed origins fall back to the frontend pages.
        """

        account = self._require_account(account_id)
        customer_ref = account.payment_customer_ref
        if not customer_ref:
            customer_ref = self._customer_for_checkout(account_id, email, name)

        session = self._provider.create_checkout_session(
            customer_ref=customer_ref,
            account_id=account_id,
            price_id=price_id or self._default_price_id,
            success_url=self._allowed_url(success_url)
            or f"{self._frontend_base_url}/payment-success?session_id={CHECKOUT_SESSION_PLACEHOLDER}",
            cancel_url=self._allowed_url(cancel_url) or f"{self._frontend_base_url}/pricing",
        )
        logger.info("Created checkout session %s for account %s", session.session_id, account_id)
        return session

    def create_portal_session(
        self,
        customer_ref: object,
        *,
        return_url: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> PortalSession:
        if not isinstance(customer_ref, str) or not customer_ref.startswith(CUSTOMER_REF_PREFIX):
            raise InvalidRequestError("Invalid customer ID")

        return self._provider.create_portal_session(
            customer_ref=customer_ref,
            return_url=self._portal_return_url(return_url, origin),
        )

    def get_subscription_status(self, account_id: str) -> Account:
        return self._require_account(account_id)

    def resync_subscription(self, account_id: str) -> Account:
        return self._reconciler.resync(account_id)

    def is_allowed_origin(self, origin: Optional[str]) -> bool:
        return bool(origin) and origin.rstrip("/") in self._allowed_origins

    def _customer_for_checkout(self, account_id: str, email: str, name: Optional[str]) -> str:
        # payment_customer_ref is unique: a customer owned by another account is never shared.
        existing = self._provider.find_customer_by_email(email)
        if existing:
            owner = self._accounts.find_account_by_customer_ref(existing)
            if owner is None or owner.account_id == account_id:
                self._attach_customer(account_id, existing)
                self._provider.tag_customer(existing, account_id)
                return existing
            logger.warning(
                "Customer %s for %s belongs to account %s; creating a new one for %s",
                existing,
                email,
                owner.account_id,
                account_id,
            )

        customer_ref = self._provider.create_customer(account_id=account_id, email=email, name=name)
        self._attach_customer(account_id, customer_ref)
        return customer_ref

    def _attach_customer(self, account_id: str, customer_ref: str) -> None:
        account = self._accounts.attach_customer_ref(account_id, customer_ref)
        if account is None:
            raise UnresolvedAccountError(
                f"Account {account_id} does not exist", detail={"account_id": account_id}
            )

    def _allowed_url(self, url: Optional[str]) -> Optional[str]:
        # Only redirect back to origins the frontend is served from.
        if url and self.is_allowed_origin(_origin_of(url)):
            return url
        return None

    def _portal_return_url(self, return_url: Optional[str], origin: Optional[str]) -> str:
        if self._allowed_url(return_url):
            return return_url
        if self.is_allowed_origin(origin):
            return f"{origin.rstrip('/')}/dashboard"
        return f"{self._frontend_base_url}/dashboard"

    def _require_account(self, account_id: str) -> Account:
        account = self._accounts.get_account(account_id)
        if account is None:
            raise UnresolvedAccountError(
                f"Account {account_id} does not exist", detail={"account_id": account_id}
            )
        return account


__all__ = ["BillingService", "CUSTOMER_REF_PREFIX"]
