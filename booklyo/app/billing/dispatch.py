"""Routes verified provider events to their reconciliation handler."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from .exceptions import UnresolvedAccountError
from .models import ProviderEvent, ProviderEventKind, ReconciliationOutcome, ReconciliationResult
from .reconciler import EntitlementReconciler

logger = logging.getLogger(__name__)

Handler = Callable[[Any], ReconciliationResult]


class EventRouter:
    """Closed dispatch table from event kind to handler."""

    def __init__(self, reconciler: EntitlementReconciler) -> None:
        self._handlers: Dict[str, Handler] = {
            ProviderEventKind.CHECKOUT_COMPLETED.value: reconciler.checkout_completed,
            ProviderEventKind.SUBSCRIPTION_CREATED.value: reconciler.subscription_changed,
            ProviderEventKind.SUBSCRIPTION_UPDATED.value: reconciler.subscription_changed,
            ProviderEventKind.SUBSCRIPTION_DELETED.value: reconciler.subscription_deleted,
            ProviderEventKind.PAYMENT_SUCCEEDED.value: reconciler.payment_succeeded,
            ProviderEventKind.PAYMENT_FAILED.value: reconciler.payment_failed,
        }

    def route(self, event: ProviderEvent) -> ReconciliationResult:
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.info("Unhandled event type %s (%s)", event.provider_type, event.event_id)
            return ReconciliationResult(
                outcome=ReconciliationOutcome.UNHANDLED,
                kind=event.kind,
                detail=f"Unhandled event type {event.provider_type}",
            )

        try:
            return handler(event)
        except UnresolvedAccountError as exc:
            logger.warning(
                "Could not resolve account for %s (%s): %s",
                event.provider_type,
                event.event_id,
                exc.message,
            )
            detail = exc.detail or {}
            return ReconciliationResult(
                outcome=ReconciliationOutcome.UNRESOLVED,
                kind=event.kind,
                account_id=detail.get("account_id"),
                detail=exc.message,
            )


__all__ = ["EventRouter"]
