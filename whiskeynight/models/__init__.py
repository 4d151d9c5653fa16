"""Data models for the API layer."""

from .availability import AvailabilityResponse, CandidateSlot
from .calendar import CalendarEvent, CalendarEventsResponse, CalendarStatus

__all__ = [
    "AvailabilityResponse",
    "CandidateSlot",
    "CalendarEvent",
    "CalendarEventsResponse",
    "CalendarStatus",
]
