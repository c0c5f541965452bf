"""API schemas for booking notifications."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SendBookingEmailResponse(BaseModel):
    success: bool
    email_id: Optional[str] = Field(default=None, alias="emailId")
    message: str

    model_config = ConfigDict(populate_by_name=True)
