"""iCalendar (.ics) export for whiskey nights.

Used for the "Add to calendar" download.  Produces a single-event
VCALENDAR with CRLF line endings.
"""

from __future__ import annotations

from datetime import datetime, timezone

PRODID = "-//Whiskey Night//EN"


def format_ics_date(dt: datetime) -> str:
    """``2024-06-01T18:00:00Z`` -> ``20240601T180000Z``.  Naive values are UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def escape_ics_text(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def night_url(base_url: str, night_id: str) -> str:
    return f"{base_url.rstrip('/')}/nights/{night_id}"


def build_ics_calendar(
    event_name: str,
    description: str,
    start_time: datetime,
    end_time: datetime,
    night_id: str,
    base_url: str,
    location: str | None = None,
    now: datetime | None = None,
) -> str:
    """Build the .ics text for one night.

    Newlines in the summary and description are flattened to spaces; an
    empty description falls back to the night's link.
    """
    link = night_url(base_url, night_id)
    stamp = now or datetime.now(tz=timezone.utc)
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "BEGIN:VEVENT",
        f"UID:whiskey-night-{night_id}@whiskeynight",
        f"DTSTAMP:{format_ics_date(stamp)}",
        f"DTSTART:{format_ics_date(start_time)}",
        f"DTEND:{format_ics_date(end_time)}",
        f"SUMMARY:{escape_ics_text(event_name.replace(chr(10), ' '))}",
        f"DESCRIPTION:{escape_ics_text((description or link).replace(chr(10), ' '))}",
        f"URL:{link}",
    ]
    if location and location.strip():
        lines.append(f"LOCATION:{escape_ics_text(location.strip())}")
    lines += ["END:VEVENT", "END:VCALENDAR"]
    return "\r\n".join(lines)
