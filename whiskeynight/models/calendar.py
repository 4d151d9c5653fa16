"""Pydantic models for the requester's own calendar endpoints."""

from typing import Optional

from pydantic import BaseModel


class CalendarStatus(BaseModel):
    connected: bool
    provider: Optional[str] = None


class CalendarEvent(BaseModel):
    summary: str
    start: str
    end: str


class CalendarEventsResponse(BaseModel):
    """Events shown next to suggested slots so the requester can compare."""

    events: list[CalendarEvent] = []
    connected: bool
    message: Optional[str] = None
