"""Abstract base class for calendar providers.

Defines the interface the availability finder consumes: busy periods for
a member's calendar and a plain event listing for display.  Any calendar
backend (Google, Outlook, etc.) implements this ABC.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class BusyInterval:
    """A period during which one member is unavailable."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class CalendarEventItem:
    """An event on the requester's own calendar, for display only."""

    summary: str
    start: str  # ISO date-time, or ISO date for all-day events
    end: str


@dataclass
class CalendarConnection:
    """Stored OAuth tokens linking a user to an external calendar."""

    id: str
    user_id: str
    access_token: str
    expires_at: datetime
    refresh_token: str | None = None
    provider: str = "google"


class CalendarProvider(ABC):
    """Abstract calendar backend.

    Implementations may raise on any call; callers decide how to degrade.
    """

    @abstractmethod
    async def fetch_busy_intervals(
        self,
        connection: CalendarConnection,
        time_min: datetime,
        time_max: datetime,
    ) -> list[BusyInterval]:
        """Return busy periods across the user's calendars.

        Args:
            connection: The user's calendar connection.
            time_min: Beginning of the query window.
            time_max: End of the query window.

        Returns:
            Busy intervals in no particular order.  Overlapping or
            duplicate intervals are allowed.
        """

    @abstractmethod
    async def list_events(
        self,
        connection: CalendarConnection,
        time_min: datetime,
        time_max: datetime,
    ) -> list[CalendarEventItem]:
        """Return the user's primary-calendar events in the window.

        Args:
            connection: The user's calendar connection.
            time_min: Beginning of the query window.
            time_max: End of the query window.

        Returns:
            Events ordered by start time.
        """
