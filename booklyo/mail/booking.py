"""Booking confirmation emails sent to clients."""
from __future__ import annotations

import html
import logging
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .providers import EmailProvider
from .renderer import render_subject_body, render_template

logger = logging.getLogger(__name__)

MAX_EMAIL_LENGTH = 254
MAX_NAME_LENGTH = 100
FIELD_LIMITS: Dict[str, int] = {
    "booking_date": 50,
    "booking_time": 10,
    "price": 20,
}
BOOKING_REF_LENGTH = 8
TEMPLATE = "booking_confirmation"


class BookingConfirmation(BaseModel):
    """Booking details submitted for a confirmation email."""

    client_email: EmailStr = Field(alias="clientEmail")
    client_name: str = Field(alias="clientName", min_length=1, max_length=MAX_NAME_LENGTH)
    service_name: str = Field(alias="serviceName", min_length=1, max_length=MAX_NAME_LENGTH)
    professional_name: Optional[str] = Field(default=None, alias="professionalName")
    business_name: Optional[str] = Field(default=None, alias="businessName")
    booking_date: Optional[str] = Field(default=None, alias="bookingDate")
    booking_time: Optional[str] = Field(default=None, alias="bookingTime")
    price: Optional[str] = None
    booking_id: Optional[str] = Field(default=None, alias="bookingId")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("client_email", mode="before")
    @classmethod
    def _limit_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if len(value) > MAX_EMAIL_LENGTH:
                raise ValueError("Email address is too long")
        return value

    @field_validator("client_name", "service_name")
    @classmethod
    def _require_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Field must not be blank")
        return value

    @field_validator("price", mode="before")
    @classmethod
    def _price_as_text(cls, value: Union[str, int, float, Decimal, None]) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def booking_ref(self) -> Optional[str]:
        if not self.booking_id:
            return None
        return self.booking_id.strip()[:BOOKING_REF_LENGTH] or None


def _truncate(value: Optional[str], limit: int = MAX_NAME_LENGTH) -> str:
    if not value:
        return ""
    return value.strip()[:limit]


def sanitize(value: Optional[str], limit: int = MAX_NAME_LENGTH) -> str:
    """Trim, truncate and HTML-escape one user supplied value."""

    return html.escape(_truncate(value, limit), quote=True)


def _optional_rows(booking: BookingConfirmation, *, escape: bool) -> str:
    rows = []
    suffix = "html" if escape else "txt"
    clean = sanitize if escape else _truncate
    if booking.business_name:
        rows.append(("Estabelecimento", clean(booking.business_name)))
    if booking.booking_ref:
        rows.append(("Referência", f"#{clean(booking.booking_ref)}"))
    return "".join(
        render_template(f"{TEMPLATE}_row.{suffix}.j2", {"label": label, "value": value})
        for label, value in rows
    )


def render_booking_confirmation(booking: BookingConfirmation, *, app_base_url: str = "") -> Tuple[str, str, str]:
    """Return ``(subject, text_body, html_body)`` for a booking."""

    def context(clean) -> Dict[str, Any]:
        values = {
            "client_name": clean(booking.client_name),
            "professional_name": clean(booking.professional_name),
            "service_name": clean(booking.service_name),
            "app_base_url": app_base_url,
        }
        for name, limit in FIELD_LIMITS.items():
            values[name] = clean(getattr(booking, name), limit)
        return values

    text_context = {**context(_truncate), "optional_rows": _optional_rows(booking, escape=False)}
    html_context = {**context(sanitize), "optional_rows": _optional_rows(booking, escape=True)}
    return render_subject_body(TEMPLATE, text_context, html_context)


class BookingMailer:
    """Sends booking confirmations; independent of billing state."""

    def __init__(self, provider: EmailProvider, *, app_base_url: str = "") -> None:
        self._provider = provider
        self._app_base_url = app_base_url

    @property
    def provider(self) -> EmailProvider:
        return self._provider

    def send_confirmation(self, booking: BookingConfirmation) -> Optional[str]:
        subject, text_body, html_body = render_booking_confirmation(
            booking, app_base_url=self._app_base_url
        )
        email_id = self._provider.send_email(str(booking.client_email), subject, html_body, text_body)
        logger.info(
            "Booking confirmation sent",
            extra={**self._provider.describe(), "email_id": email_id, "booking_ref": booking.booking_ref},
        )
        return email_id


__all__ = [
    "BookingConfirmation",
    "BookingMailer",
    "render_booking_confirmation",
    "sanitize",
]
