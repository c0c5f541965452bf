"""Errors raised while sending transactional email."""
from __future__ import annotations


class EmailError(Exception):
    """Base class for outbound email failures."""


class EmailNotConfiguredError(EmailError):
    """The selected provider has no credentials; sending is refused."""


class EmailDeliveryError(EmailError):
    """The provider rejected the message or could not be reached."""


__all__ = ["EmailDeliveryError", "EmailError", "EmailNotConfiguredError"]
