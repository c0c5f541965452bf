"""API routes for booking notifications."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...app_context import AppContext, get_app_context
from ...mail import BookingConfirmation, EmailDeliveryError, EmailNotConfiguredError
from ..schemas.bookings import SendBookingEmailResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["bookings"])


@router.post("/send-booking-email", response_model=SendBookingEmailResponse)
def send_booking_email(
    payload: BookingConfirmation,
    context: AppContext = Depends(get_app_context),
) -> SendBookingEmailResponse:
    try:
        email_id = context.booking_mailer.send_confirmation(payload)
    except EmailNotConfiguredError as exc:
        logger.error("Booking email refused: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Email service not configured",
        ) from exc
    except EmailDeliveryError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    return SendBookingEmailResponse(success=True, email_id=email_id, message="Email enviado com sucesso")
