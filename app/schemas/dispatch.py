"""Outcome of a single outbound SMS or email."""

from typing import Optional
from pydantic import BaseModel


class DispatchResult(BaseModel):
    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None
