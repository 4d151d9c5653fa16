"""Meeting-time suggestions for a club.

Given the club's connected members, a search window and a meeting length,
propose fixed-length slots ranked by how many members are free.

The pure part (validation, window resolution, enumeration, counting,
ranking) works on already-fetched busy data.  ``suggest_slots`` adds the
per-member fetch: one task per connected member, each bounded by a
timeout, a failing member simply contributing no busy data.
"""

from __future__ import annotations

import asyncio
import heapq
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Iterator, Sequence

from whiskeynight.calendar_providers.base import (
    BusyInterval,
    CalendarConnection,
    CalendarProvider,
)
from whiskeynight.config import settings
from whiskeynight.models.availability import AvailabilityResponse, CandidateSlot

log = logging.getLogger("whiskeynight.availability")

DEFAULT_DURATION_MINUTES = 120
MIN_DURATION_MINUTES = 30
MAX_DURATION_MINUTES = 240
SLOT_STEP_MINUTES = 60
MAX_SLOTS = 20
MINUTES_PER_DAY = 24 * 60

NO_CONNECTIONS_MESSAGE = (
    "No club members have connected Google Calendar. "
    "Connect in Profile to see suggestions."
)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_HHMM = re.compile(r"^\s*(\d{1,2})(?::(\d{1,2}))?\s*$")


class InvalidRange(ValueError):
    """Search bounds are missing, unparsable, or not increasing."""


@dataclass(frozen=True)
class MemberConnection:
    """A club member with a calendar connection."""

    user_id: str
    user_name: str
    connection: CalendarConnection


@dataclass(frozen=True)
class TimeOfDayWindow:
    """Daily window in minutes since UTC midnight, ``start < end <= 1440``."""

    start_minutes: int
    end_minutes: int

    def admits(self, slot_start: datetime, slot_end: datetime) -> bool:
        """True if the slot starts and ends inside the window on its start day."""
        day_start = slot_start.replace(hour=0, minute=0, second=0, microsecond=0)
        start_offset = (slot_start - day_start).total_seconds() / 60
        end_offset = (slot_end - day_start).total_seconds() / 60
        return start_offset >= self.start_minutes and end_offset <= self.end_minutes


# ── Parameter parsing ────────────────────────────────────────────


def _leading_int(value: int | str | None) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def parse_instant(value: str | datetime | None) -> datetime:
    """Parse an ISO-8601 instant into an aware UTC datetime.

    Naive values are taken as UTC.  Instants whose UTC equivalent falls
    outside the representable years 1-9999 are rejected.
    """
    if value is None or value == "":
        raise InvalidRange("timeMin and timeMax (ISO) required")
    try:
        dt = value if isinstance(value, datetime) else datetime.fromisoformat(value.strip())
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        raise InvalidRange("Invalid time range") from None


def clamp_duration(value: int | str | None) -> int:
    """Clamp a requested meeting length into ``[30, 240]`` minutes.

    Absent or unparsable values use the 120-minute default.
    """
    minutes = _leading_int(value)
    if minutes is None:
        minutes = DEFAULT_DURATION_MINUTES
    return min(MAX_DURATION_MINUTES, max(MIN_DURATION_MINUTES, minutes))


def parse_hhmm(value: str | None) -> int | None:
    """``"17:30"`` -> 1050.  Returns None for anything that is not a clock time."""
    if not value:
        return None
    match = _HHMM.match(value)
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    if hours > 24 or minutes > 59 or (hours == 24 and minutes):
        return None
    return hours * 60 + minutes


def resolve_time_of_day_window(
    start_time_of_day: str | None,
    end_time_of_day: str | None,
    offset_minutes: int | str | None,
) -> TimeOfDayWindow | None:
    """Translate a local daily window into UTC minute-of-day bounds.

    ``offset_minutes`` is added to local time to get UTC (positive west of
    UTC).  Returns None, meaning "no filter", when any part is missing or
    malformed, when the local end is not after the local start, or when the
    translated window would wrap past UTC midnight.
    """
    start_local = parse_hhmm(start_time_of_day)
    end_local = parse_hhmm(end_time_of_day)
    offset = _leading_int(offset_minutes)
    if start_local is None or end_local is None or offset is None:
        return None
    if end_local <= start_local:
        return None

    start_utc = (start_local + offset) % MINUTES_PER_DAY
    # end wraps into (0, 1440] so a window ending at local midnight stays valid
    end_utc = (end_local + offset - 1) % MINUTES_PER_DAY + 1
    if end_utc <= start_utc:
        return None
    return TimeOfDayWindow(start_minutes=start_utc, end_minutes=end_utc)


@dataclass(frozen=True)
class AvailabilityQuery:
    """Validated search parameters."""

    time_min: datetime
    time_max: datetime
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    window: TimeOfDayWindow | None = None

    @classmethod
    def from_params(
        cls,
        time_min: str | datetime | None,
        time_max: str | datetime | None,
        duration_minutes: int | str | None = None,
        start_time_of_day: str | None = None,
        end_time_of_day: str | None = None,
        offset_minutes: int | str | None = None,
    ) -> AvailabilityQuery:
        """Build a query from raw request values.

        Raises:
            InvalidRange: if either bound is missing or unparsable, or
                ``time_max`` is not strictly after ``time_min``.
        """
        if time_min in (None, "") or time_max in (None, ""):
            raise InvalidRange("timeMin and timeMax (ISO) required")
        t_min = parse_instant(time_min)
        t_max = parse_instant(time_max)
        if t_max <= t_min:
            raise InvalidRange("Invalid time range")
        return cls(
            time_min=t_min,
            time_max=t_max,
            duration_minutes=clamp_duration(duration_minutes),
            window=resolve_time_of_day_window(
                start_time_of_day, end_time_of_day, offset_minutes
            ),
        )


# ── Slot computation ─────────────────────────────────────────────


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap test; touching endpoints do not overlap."""
    return a_start < b_end and a_end > b_start


def enumerate_slots(
    time_min: datetime,
    time_max: datetime,
    duration_minutes: int,
    window: TimeOfDayWindow | None = None,
    step_minutes: int = SLOT_STEP_MINUTES,
) -> Iterator[tuple[datetime, datetime]]:
    """Yield ``(start, end)`` pairs in time order, fully inside the range.

    Arithmetic never steps past ``time_max``, so ranges ending at the last
    representable instant are safe.
    """
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)
    if time_max - time_min < duration:
        return
    last_start = time_max - duration
    start = time_min
    while True:
        end = start + duration
        if window is None or window.admits(start, end):
            yield start, end
        if last_start - start < step:
            return
        start += step


def count_free(
    slot_start: datetime,
    slot_end: datetime,
    busy_by_member: Sequence[Sequence[BusyInterval]],
) -> int:
    """Number of members with no busy interval overlapping the slot."""
    return sum(
        1
        for busy in busy_by_member
        if not any(overlaps(slot_start, slot_end, b.start, b.end) for b in busy)
    )


def rank_slots(slots: Iterable[CandidateSlot], limit: int = MAX_SLOTS) -> list[CandidateSlot]:
    """Most members free first; ties keep their original (time) order."""
    return heapq.nsmallest(limit, slots, key=lambda slot: -slot.free_count)


def find_slots(
    query: AvailabilityQuery,
    busy_by_member: Sequence[Sequence[BusyInterval]],
    limit: int = MAX_SLOTS,
) -> list[CandidateSlot]:
    """Rank every candidate slot for already-fetched busy data.

    ``busy_by_member`` holds one list per connected member; its length is
    the ``total_connected`` reported on each slot.  Only the top ``limit``
    slots are kept in memory, however long the range.
    """
    total = len(busy_by_member)
    counted = (
        (start, end, count_free(start, end, busy_by_member))
        for start, end in enumerate_slots(
            query.time_min, query.time_max, query.duration_minutes, query.window
        )
    )
    top = heapq.nsmallest(limit, counted, key=lambda item: -item[2])
    return [
        CandidateSlot(start=start, end=end, free_count=free, total_connected=total)
        for start, end, free in top
    ]


# ── Busy-data fan-out ────────────────────────────────────────────


async def fetch_member_busy(
    provider: CalendarProvider,
    member: MemberConnection,
    time_min: datetime,
    time_max: datetime,
    timeout: float,
) -> list[BusyInterval]:
    """Fetch one member's busy intervals; any failure yields an empty list."""
    try:
        return await asyncio.wait_for(
            provider.fetch_busy_intervals(member.connection, time_min, time_max),
            timeout=timeout,
        )
    except TimeoutError:
        log.warning(
            "Busy fetch for user %s timed out after %.1fs", member.user_id, timeout
        )
    except Exception:
        log.warning("Busy fetch for user %s failed", member.user_id, exc_info=True)
    return []


async def suggest_slots(
    provider: CalendarProvider,
    members: Sequence[MemberConnection],
    query: AvailabilityQuery,
    timeout: float | None = None,
) -> AvailabilityResponse:
    """Fetch busy data for every connected member and rank candidate slots."""
    if not members:
        return AvailabilityResponse(
            slots=[], total_connected=0, message=NO_CONNECTIONS_MESSAGE
        )

    if timeout is None:
        timeout = settings.calendar_fetch_timeout_seconds

    busy_by_member = await asyncio.gather(
        *(
            fetch_member_busy(provider, member, query.time_min, query.time_max, timeout)
            for member in members
        )
    )

    slots = find_slots(query, busy_by_member)
    log.info(
        "Suggested %d slots for %d connected members (%s to %s, %d min)",
        len(slots),
        len(members),
        query.time_min.isoformat(),
        query.time_max.isoformat(),
        query.duration_minutes,
    )
    return AvailabilityResponse(slots=slots, total_connected=len(members))
