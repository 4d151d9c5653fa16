"""Pydantic models for availability suggestions."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CandidateSlot(BaseModel):
    """A proposed meeting window and how many connected members are free."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    start: datetime
    end: datetime
    free_count: int
    total_connected: int


class AvailabilityResponse(BaseModel):
    """Ranked suggestions for a club.

    ``message`` is only set when nobody in the club has a connected calendar.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    slots: list[CandidateSlot] = []
    total_connected: int = 0
    message: Optional[str] = None
