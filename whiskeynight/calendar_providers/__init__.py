"""Calendar provider abstractions and implementations."""

from .base import BusyInterval, CalendarConnection, CalendarEventItem, CalendarProvider

__all__ = ["BusyInterval", "CalendarConnection", "CalendarEventItem", "CalendarProvider"]
