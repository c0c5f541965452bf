"""Transactional email: configuration, providers and booking confirmations."""

from .booking import BookingConfirmation, BookingMailer, render_booking_confirmation
from .config import EmailConfig, load_email_config
from .exceptions import EmailDeliveryError, EmailError, EmailNotConfiguredError
from .providers import DevPrintProvider, EmailProvider, ResendProvider, create_email_provider

__all__ = [
    "BookingConfirmation",
    "BookingMailer",
    "DevPrintProvider",
    "EmailConfig",
    "EmailDeliveryError",
    "EmailError",
    "EmailNotConfiguredError",
    "EmailProvider",
    "ResendProvider",
    "create_email_provider",
    "load_email_config",
    "render_booking_confirmation",
]
