"""Payment provider integration (Stripe)."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Protocol

import stripe

from ...config import PlanConfig, Settings
from .exceptions import ConfigurationError, PaymentProviderError
from .models import ACCOUNT_REFERENCE_KEY, CheckoutSession, PortalSession, SubscriptionObject

logger = logging.getLogger(__name__)


class PaymentProvider(Protocol):
    """Operations the billing code needs from the payment processor."""

    def find_customer_by_email(self, email: str) -> Optional[str]:
        """Return an existing provider customer registered with ``email``."""

    def create_customer(self, *, account_id: str, email: str, name: Optional[str] = None) -> str:
        """Create a provider customer tagged with ``account_id``."""

    def tag_customer(self, customer_ref: str, account_id: str) -> None:
        """Point the provider customer's metadata at ``account_id``."""

    def lookup_account_reference(self, customer_ref: str) -> Optional[str]:
        """Return the account id stored on the provider customer, if any."""

    def retrieve_subscription(self, subscription_ref: str) -> SubscriptionObject:
        """Fetch the current provider-side state of a subscription."""

    def create_checkout_session(
        self,
        *,
        customer_ref: str,
        account_id: str,
        price_id: Optional[str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        """Create a subscription-mode checkout session."""

    def create_portal_session(self, *, customer_ref: str, return_url: str) -> PortalSession:
        """Create a provider managed billing portal session."""


def _object_ref(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return getattr(value, "id", None)


def _metadata_value(obj: Any, key: str) -> Optional[str]:
    metadata = getattr(obj, "metadata", None)
    if not metadata:
        return None
    try:
        value = metadata[key]
    except KeyError:
        return None
    if value is None:
        return None
    return str(value).strip() or None


def _item_period_end(subscription: Any) -> Optional[int]:
    try:
        items = subscription["items"]["data"]
    except (KeyError, TypeError):
        return None
    if not items:
        return None
    return getattr(items[0], "current_period_end", None)


class StripePaymentProvider:
    """Stripe implementation of :class:`PaymentProvider`.

    The client is built on first use so that a process without
    ``STRIPE_SECRET_KEY`` still starts; calls then fail with
    :class:`ConfigurationError`.
    """

    def __init__(
        self,
        *,
        secret_key: Optional[str],
        plan: PlanConfig,
        locale: str = "pt",
        timeout_seconds: float = 10.0,
        max_network_retries: int = 2,
        client: Optional[stripe.StripeClient] = None,
    ) -> None:
        self._secret_key = secret_key
        self._plan = plan
        self._locale = locale
        self._timeout_seconds = timeout_seconds
        self._max_network_retries = max_network_retries
        self._stripe = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripePaymentProvider":
        return cls(
            secret_key=settings.stripe_secret_key,
            plan=settings.plan,
            locale=settings.checkout_locale,
            timeout_seconds=settings.stripe_timeout_seconds,
            max_network_retries=settings.stripe_max_network_retries,
        )

    def _client(self) -> stripe.StripeClient:
        if self._stripe is None:
            if not self._secret_key:
                raise ConfigurationError("Payment system not configured: STRIPE_SECRET_KEY missing")
            self._stripe = stripe.StripeClient(
                self._secret_key,
                http_client=stripe.RequestsClient(timeout=self._timeout_seconds),
                max_network_retries=self._max_network_retries,
            )
        return self._stripe

    @contextmanager
    def _call(self, operation: str) -> Iterator[None]:
        try:
            yield
        except stripe.StripeError as exc:
            logger.warning(
                "Stripe call failed",
                extra={"stripe_operation": operation, "error": str(exc)},
            )
            raise PaymentProviderError(f"Stripe {operation} failed") from exc

    def find_customer_by_email(self, email: str) -> Optional[str]:
        client = self._client()
        with self._call("customer lookup"):
            existing = client.customers.list(params={"email": email, "limit": 1})
        if not existing.data:
            return None
        return existing.data[0].id

    def create_customer(self, *, account_id: str, email: str, name: Optional[str] = None) -> str:
        client = self._client()
        params: Dict[str, Any] = {"email": email, "metadata": {ACCOUNT_REFERENCE_KEY: account_id}}
        if name:
            params["name"] = name
        with self._call("customer create"):
            customer = client.customers.create(params=params)
        logger.info("Created Stripe customer %s for account %s", customer.id, account_id)
        return customer.id

    def tag_customer(self, customer_ref: str, account_id: str) -> None:
        client = self._client()
        with self._call("customer update"):
            client.customers.update(customer_ref, params={"metadata": {ACCOUNT_REFERENCE_KEY: account_id}})

    def lookup_account_reference(self, customer_ref: str) -> Optional[str]:
        client = self._client()
        with self._call("customer retrieve"):
            customer = client.customers.retrieve(customer_ref)
        return _metadata_value(customer, ACCOUNT_REFERENCE_KEY)

    def retrieve_subscription(self, subscription_ref: str) -> SubscriptionObject:
        client = self._client()
        with self._call("subscription retrieve"):
            subscription = client.subscriptions.retrieve(subscription_ref)
        account_ref = _metadata_value(subscription, ACCOUNT_REFERENCE_KEY)
        return SubscriptionObject(
            id=subscription.id,
            customer=_object_ref(subscription.customer) or "",
            status=subscription.status,
            current_period_end=getattr(subscription, "current_period_end", None)
            or _item_period_end(subscription),
            metadata={ACCOUNT_REFERENCE_KEY: account_ref} if account_ref else {},
        )

    def create_checkout_session(
        self,
        *,
        customer_ref: str,
        account_id: str,
        price_id: Optional[str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        client = self._client()
        if price_id:
            line_item: Dict[str, Any] = {"price": price_id, "quantity": 1}
        else:
            line_item = {
                "price_data": {
                    "currency": self._plan.currency,
                    "product_data": {
                        "name": self._plan.name,
                        "description": self._plan.description,
                    },
                    "unit_amount": self._plan.unit_amount,
                    "recurring": {"interval": self._plan.interval},
                },
                "quantity": 1,
            }
        metadata = {ACCOUNT_REFERENCE_KEY: account_id}
        with self._call("checkout session"):
            session = client.checkout.sessions.create(
                params={
                    "customer": customer_ref,
                    "payment_method_types": ["card"],
                    "mode": "subscription",
                    "line_items": [line_item],
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                    "metadata": metadata,
                    "subscription_data": {"metadata": metadata},
                    "allow_promotion_codes": True,
                    "billing_address_collection": "auto",
                    "locale": self._locale,
                }
            )
        return CheckoutSession(session_id=session.id, url=session.url, customer_ref=customer_ref)

    def create_portal_session(self, *, customer_ref: str, return_url: str) -> PortalSession:
        client = self._client()
        with self._call("portal session"):
            session = client.billing_portal.sessions.create(
                params={"customer": customer_ref, "return_url": return_url}
            )
        return PortalSession(url=session.url)


__all__ = ["PaymentProvider", "StripePaymentProvider"]
