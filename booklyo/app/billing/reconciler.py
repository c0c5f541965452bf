"""Maps provider subscription state onto local account entitlements."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from .exceptions import ConfigurationError, UnresolvedAccountError
from .models import (
    Account,
    CheckoutCompletedEvent,
    EntitlementState,
    EntitlementUpdate,
    InvoiceEvent,
    ReconciliationOutcome,
    ReconciliationResult,
    SubscriptionEvent,
    SubscriptionObject,
    map_provider_status,
)

logger = logging.getLogger(__name__)


class AccountRepository(Protocol):
    """Point reads and writes of account rows."""

    def get_account(self, account_id: str) -> Optional[Account]:
        ...

    def find_account_by_customer_ref(self, customer_ref: str) -> Optional[Account]:
        ...

    def apply_entitlement_update(self, account_id: str, update: EntitlementUpdate) -> Account:
        ...

    def attach_customer_ref(self, account_id: str, customer_ref: str) -> Optional[Account]:
        ...


class CustomerDirectory(Protocol):
    """Provider-side lookups used when a notification lacks a local reference."""

    def lookup_account_reference(self, customer_ref: str) -> Optional[str]:
        ...

    def retrieve_subscription(self, subscription_ref: str) -> SubscriptionObject:
        ...


class EntitlementReconciler:
    """Applies one verified notification to one account.

    Handlers derive the new state from the notification's current status
    fields and write it in a single row update. They raise
    :class:`UnresolvedAccountError` when no account can be resolved and let
    store or provider failures propagate.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        customers: Optional[CustomerDirectory] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._accounts = accounts
        self._customers = customers
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def checkout_completed(self, event: CheckoutCompletedEvent) -> ReconciliationResult:
        session = event.data
        account_id = session.account_ref
        if not account_id:
            raise UnresolvedAccountError(
                f"Checkout session {session.id} carries no account reference",
                detail={"session_id": session.id},
            )

        update = EntitlementUpdate(
            entitlement_state=EntitlementState.ACTIVE,
            entitlement_updated_at=event.created,
            payment_customer_ref=session.customer,
            payment_subscription_ref=session.subscription,
        )
        return self._apply(event.kind, account_id, update)

    def subscription_changed(self, event: SubscriptionEvent) -> ReconciliationResult:
        """Handle ``subscription_created`` and ``subscription_updated``."""

        subscription = event.data
        account_id = self._resolve_account_id(
            customer_ref=subscription.customer,
            account_ref=subscription.account_ref,
        )
        update = EntitlementUpdate(
            entitlement_state=map_provider_status(subscription.status),
            entitlement_updated_at=event.created,
            payment_subscription_ref=subscription.id,
            subscription_ends_at=subscription.current_period_end,
        )
        return self._apply(event.kind, account_id, update)

    def subscription_deleted(self, event: SubscriptionEvent) -> ReconciliationResult:
        subscription = event.data
        account_id = self._resolve_account_id(
            customer_ref=subscription.customer,
            account_ref=subscription.account_ref,
        )
        update = EntitlementUpdate(
            entitlement_state=EntitlementState.CANCELLED,
            entitlement_updated_at=event.created,
            subscription_cancelled_at=event.created,
        )
        return self._apply(event.kind, account_id, update)

    def payment_succeeded(self, event: InvoiceEvent) -> ReconciliationResult:
        invoice = event.data
        account_id = self._resolve_account_id(customer_ref=invoice.customer)
        update = EntitlementUpdate(
            entitlement_state=EntitlementState.ACTIVE,
            entitlement_updated_at=event.created,
            last_payment_at=event.created,
            last_payment_amount=invoice.amount_paid_major,
        )
        return self._apply(event.kind, account_id, update)

    def payment_failed(self, event: InvoiceEvent) -> ReconciliationResult:
        invoice = event.data
        account_id = self._resolve_account_id(customer_ref=invoice.customer)
        update = EntitlementUpdate(
            entitlement_state=EntitlementState.EXPIRED,
            entitlement_updated_at=event.created,
            payment_failed_at=event.created,
        )
        return self._apply(event.kind, account_id, update)

    def resync(self, account_id: str) -> Account:
        """Re-derive an account's state from the provider's current subscription."""

        account = self._accounts.get_account(account_id)
        if account is None:
            raise UnresolvedAccountError(
                f"Account {account_id} does not exist", detail={"account_id": account_id}
            )
        if not account.payment_subscription_ref:
            raise UnresolvedAccountError(
                f"Account {account_id} has no subscription", detail={"account_id": account_id}
            )
        if self._customers is None:
            raise ConfigurationError("Payment provider not configured")

        subscription = self._customers.retrieve_subscription(account.payment_subscription_ref)
        update = EntitlementUpdate(
            entitlement_state=map_provider_status(subscription.status),
            entitlement_updated_at=self._clock(),
            subscription_ends_at=subscription.current_period_end,
        )
        stored = self._accounts.apply_entitlement_update(account_id, update)
        logger.info(
            "Resynced account %s from subscription %s: %s",
            account_id,
            subscription.id,
            stored.entitlement_state.value,
        )
        return stored

    def _resolve_account_id(self, *, customer_ref: Optional[str], account_ref: Optional[str] = None) -> str:
        if account_ref:
            return account_ref

        if customer_ref:
            account = self._accounts.find_account_by_customer_ref(customer_ref)
            if account is not None:
                return account.account_id
            if self._customers is not None:
                referenced = self._customers.lookup_account_reference(customer_ref)
                if referenced:
                    return referenced

        raise UnresolvedAccountError(
            f"No account found for customer {customer_ref}",
            detail={"customer_ref": customer_ref},
        )

    def _apply(self, kind: str, account_id: str, update: EntitlementUpdate) -> ReconciliationResult:
        account = self._accounts.apply_entitlement_update(account_id, update)
        logger.info(
            "Reconciled %s for account %s: %s",
            kind,
            account.account_id,
            account.entitlement_state.value,
        )
        return ReconciliationResult(
            outcome=ReconciliationOutcome.APPLIED,
            kind=kind,
            account_id=account.account_id,
            entitlement_state=account.entitlement_state,
        )


__all__ = ["AccountRepository", "CustomerDirectory", "EntitlementReconciler"]
