"""Per-request processing of provider webhook notifications."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from fastapi import status

from .audit import AuditLogger
from .dispatch import EventRouter
from .exceptions import BillingError, ConfigurationError, MalformedEventError, VerificationError
from .models import (
    AuditSeverity,
    ProviderEvent,
    ProviderEventKind,
    ReconciliationOutcome,
    ReconciliationResult,
)
from .verifier import SIGNATURE_HEADER, NotificationVerifier

logger = logging.getLogger(__name__)

AUDIT_EVENT_NAMES: Dict[str, str] = {
    ProviderEventKind.CHECKOUT_COMPLETED.value: "payment.checkout.completed",
    ProviderEventKind.SUBSCRIPTION_CREATED.value: "payment.subscription.created",
    ProviderEventKind.SUBSCRIPTION_UPDATED.value: "payment.subscription.updated",
    ProviderEventKind.SUBSCRIPTION_DELETED.value: "payment.subscription.deleted",
    ProviderEventKind.PAYMENT_SUCCEEDED.value: "payment.payment.succeeded",
    ProviderEventKind.PAYMENT_FAILED.value: "payment.payment.failed",
}

VERIFICATION_FAILED = "payment.webhook.verification_failed"
MALFORMED = "payment.webhook.malformed"
UNHANDLED = "payment.webhook.unhandled"
UNRESOLVED = "payment.webhook.unresolved"
PROCESSING_ERROR = "payment.webhook.error"

PROCESSING_FAILED_MESSAGE = "Webhook processing failed"


@dataclass(frozen=True)
class RawNotification:
    """Runtime-neutral view of an inbound webhook request."""

    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    remote_addr: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    body: Dict[str, Any]


ACKNOWLEDGED = WebhookResponse(status.HTTP_200_OK, {"received": True})


class WebhookProcessor:
    """Verify, route, reconcile and audit one notification.

    Exactly one audit entry is written per call, after reconciliation has
    finished or failed, and the returned status tells the provider whether
    to retry.
    """

    def __init__(self, verifier: NotificationVerifier, router: EventRouter, audit: AuditLogger) -> None:
        self._verifier = verifier
        self._router = router
        self._audit = audit

    def handle(self, notification: RawNotification) -> WebhookResponse:
        ip = notification.remote_addr or "unknown"

        try:
            event = self._verifier.verify(notification.body, notification.header(SIGNATURE_HEADER))
        except MalformedEventError as exc:
            # Signed by the provider, so not an authentication failure.
            logger.warning("Webhook event rejected as malformed: %s", exc.message)
            self._audit.record(
                MALFORMED,
                severity=AuditSeverity.WARNING,
                data={"error": exc.message, "ip": ip},
            )
            return WebhookResponse(status.HTTP_400_BAD_REQUEST, {"error": f"Webhook Error: {exc.message}"})
        except VerificationError as exc:
            logger.warning("Webhook signature verification failed: %s", exc.message)
            self._audit.record(
                VERIFICATION_FAILED,
                severity=AuditSeverity.WARNING,
                data={"error": exc.message, "ip": ip},
            )
            return WebhookResponse(status.HTTP_400_BAD_REQUEST, {"error": f"Webhook Error: {exc.message}"})
        except ConfigurationError as exc:
            logger.error("Webhook rejected: %s", exc.message)
            self._audit.record(
                PROCESSING_ERROR,
                severity=AuditSeverity.ERROR,
                data={"error": exc.message, "ip": ip},
            )
            return WebhookResponse(status.HTTP_500_INTERNAL_SERVER_ERROR, {"error": exc.message})

        logger.info("Received webhook event %s (%s)", event.provider_type, event.event_id)

        try:
            result = self._router.route(event)
        except BillingError as exc:
            logger.error(
                "Webhook processing failed for %s (%s): %s",
                event.provider_type,
                event.event_id,
                exc.message,
            )
            self._audit.record(
                PROCESSING_ERROR,
                severity=AuditSeverity.ERROR,
                data={**_event_data(event, ip), "error": exc.message},
            )
            return WebhookResponse(status.HTTP_500_INTERNAL_SERVER_ERROR, {"error": PROCESSING_FAILED_MESSAGE})
        except Exception as exc:  # noqa: BLE001 - never raise past the request boundary
            logger.exception("Unexpected webhook failure for %s (%s)", event.provider_type, event.event_id)
            self._audit.record(
                PROCESSING_ERROR,
                severity=AuditSeverity.CRITICAL,
                data={**_event_data(event, ip), "error": exc.__class__.__name__},
            )
            return WebhookResponse(status.HTTP_500_INTERNAL_SERVER_ERROR, {"error": PROCESSING_FAILED_MESSAGE})

        self._record_result(event, result, ip)
        return ACKNOWLEDGED

    def _record_result(self, event: ProviderEvent, result: ReconciliationResult, ip: str) -> None:
        data = _event_data(event, ip)
        data["account_id"] = result.account_id

        if result.outcome is ReconciliationOutcome.UNHANDLED:
            self._audit.record(UNHANDLED, data={**data, "message": result.detail})
            return

        if result.outcome is ReconciliationOutcome.UNRESOLVED:
            self._audit.record(
                UNRESOLVED,
                severity=AuditSeverity.WARNING,
                data={**data, "error": result.detail},
            )
            return

        data["entitlement_state"] = result.entitlement_state.value if result.entitlement_state else None
        if event.kind == ProviderEventKind.PAYMENT_SUCCEEDED.value:
            data["amount"] = str(event.data.amount_paid_major)
            data["currency"] = event.data.currency
        severity = (
            AuditSeverity.WARNING
            if event.kind == ProviderEventKind.PAYMENT_FAILED.value
            else AuditSeverity.INFO
        )
        self._audit.record(AUDIT_EVENT_NAMES[event.kind], severity=severity, data=data)


def _event_data(event: ProviderEvent, ip: str) -> Dict[str, Any]:
    return {"event_id": event.event_id, "event_type": event.provider_type, "ip": ip}


__all__ = [
    "AUDIT_EVENT_NAMES",
    "PROCESSING_FAILED_MESSAGE",
    "RawNotification",
    "WebhookProcessor",
    "WebhookResponse",
]
