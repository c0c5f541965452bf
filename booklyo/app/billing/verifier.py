"""Signature verification and parsing of inbound provider notifications."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import stripe
from pydantic import ValidationError

from .exceptions import ConfigurationError, MalformedEventError, VerificationError
from .models import PROVIDER_EVENT_ADAPTER, PROVIDER_EVENT_TYPES, UNRECOGNIZED_KIND, ProviderEvent

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "stripe-signature"
DEFAULT_TOLERANCE_SECONDS = 300


class NotificationVerifier:
    """Turn a raw signed body into a typed :data:`ProviderEvent`.

    The body must be the exact bytes received; any re-serialisation breaks
    the signature.
    """

    def __init__(self, webhook_secret: Optional[str], *, tolerance: int = DEFAULT_TOLERANCE_SECONDS) -> None:
        self._webhook_secret = webhook_secret
        self._tolerance = tolerance

    def verify(self, body: bytes, signature: Optional[str]) -> ProviderEvent:
        if not self._webhook_secret:
            raise ConfigurationError("Webhook secret not configured")
        if not signature:
            raise VerificationError("Missing Stripe-Signature header")

        try:
            payload = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise VerificationError("Payload is not valid UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(payload, signature, self._webhook_secret, self._tolerance)
        except stripe.SignatureVerificationError as exc:
            raise VerificationError(f"Invalid signature: {exc}") from exc

        try:
            raw = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise MalformedEventError("Payload is not valid JSON") from exc

        return parse_event(raw)


def parse_event(raw: Any) -> ProviderEvent:
    """Validate a decoded provider envelope against the shape for its kind."""

    if not isinstance(raw, dict):
        raise MalformedEventError("Event envelope must be an object")

    provider_type = raw.get("type")
    if not isinstance(provider_type, str) or not provider_type:
        raise MalformedEventError("Event envelope has no type")

    kind = PROVIDER_EVENT_TYPES.get(provider_type)
    data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
    envelope: Dict[str, Any] = {
        "kind": kind.value if kind else UNRECOGNIZED_KIND,
        "event_id": raw.get("id"),
        "provider_type": provider_type,
        "created": raw.get("created"),
        "data": data.get("object") or {},
    }

    try:
        return PROVIDER_EVENT_ADAPTER.validate_python(envelope)
    except ValidationError as exc:
        logger.info(
            "Rejected malformed provider event",
            extra={"provider_type": provider_type, "errors": exc.error_count()},
        )
        raise MalformedEventError(f"Malformed {provider_type} event") from exc


__all__ = ["DEFAULT_TOLERANCE_SECONDS", "NotificationVerifier", "SIGNATURE_HEADER", "parse_event"]
