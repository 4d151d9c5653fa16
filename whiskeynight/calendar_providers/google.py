"""Google Calendar provider implementation.

Each member connects their own Google account, so calls are made with the
member's OAuth user credentials rather than a service account.  The OAuth
client id/secret come from ``GOOGLE_CLIENT_ID`` / ``GOOGLE_CLIENT_SECRET``
and let google-auth refresh an expired access token on the fly.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from whiskeynight.config import settings

from .base import BusyInterval, CalendarConnection, CalendarEventItem, CalendarProvider

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]

# freebusy.query accepts at most 50 calendars per request
FREEBUSY_MAX_CALENDARS = 50
EVENTS_MAX_RESULTS = 100


class GoogleCalendarProvider(CalendarProvider):
    """CalendarProvider backed by Google Calendar API v3."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_uri: str | None = None,
    ) -> None:
        self._client_id = client_id if client_id is not None else settings.google_client_id
        self._client_secret = (
            client_secret if client_secret is not None else settings.google_client_secret
        )
        self._token_uri = token_uri or settings.google_token_uri

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        """Run a synchronous Google API call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(func, *args, **kwargs)
        )

    @staticmethod
    def _to_rfc3339(dt: datetime) -> str:
        """Convert a datetime to an RFC 3339 string with timezone."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.isoformat()

    @staticmethod
    def _is_usable(connection: CalendarConnection) -> bool:
        """A connection is usable if its token is live or can be refreshed."""
        expires_at = connection.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at > datetime.now(tz=timezone.utc) or bool(connection.refresh_token)

    def _credentials_for(self, connection: CalendarConnection) -> Credentials:
        # google-auth compares expiry against a naive UTC timestamp
        expiry = connection.expires_at
        if expiry.tzinfo is not None:
            expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)
        return Credentials(
            token=connection.access_token,
            refresh_token=connection.refresh_token,
            token_uri=self._token_uri,
            client_id=self._client_id,
            client_secret=self._client_secret,
            scopes=SCOPES,
            expiry=expiry,
        )

    def _service_for(self, connection: CalendarConnection):
        return build(
            "calendar",
            "v3",
            credentials=self._credentials_for(connection),
            cache_discovery=False,
        )

    async def _list_calendar_ids(self, service) -> list[str]:
        """Primary plus every calendar the user can see, up to the freebusy cap."""
        ids = ["primary"]
        try:
            response = await self._run_in_executor(
                service.calendarList().list(maxResults=250).execute
            )
        except HttpError:
            logger.warning("calendarList.list failed, using primary calendar only")
            return ids

        for item in response.get("items", []):
            cal_id = item.get("id")
            if cal_id and cal_id not in ids and len(ids) < FREEBUSY_MAX_CALENDARS:
                ids.append(cal_id)
        return ids

    # ------------------------------------------------------------------
    # CalendarProvider interface
    # ------------------------------------------------------------------

    async def fetch_busy_intervals(
        self,
        connection: CalendarConnection,
        time_min: datetime,
        time_max: datetime,
    ) -> list[BusyInterval]:
        """Query freebusy over all of the user's calendars and merge the results.

        Busy periods are concatenated across calendars without merging;
        overlap testing downstream does not need them disjoint.
        """
        if not self._is_usable(connection):
            logger.info(
                "Calendar connection %s expired with no refresh token", connection.id
            )
            return []

        service = await self._run_in_executor(self._service_for, connection)
        calendar_ids = await self._list_calendar_ids(service)

        body = {
            "timeMin": self._to_rfc3339(time_min),
            "timeMax": self._to_rfc3339(time_max),
            "items": [{"id": cal_id} for cal_id in calendar_ids],
        }
        response = await self._run_in_executor(
            service.freebusy().query(body=body).execute
        )

        busy: list[BusyInterval] = []
        for calendar in response.get("calendars", {}).values():
            for interval in calendar.get("busy", []):
                if interval.get("start") and interval.get("end"):
                    busy.append(
                        BusyInterval(
                            start=datetime.fromisoformat(interval["start"]),
                            end=datetime.fromisoformat(interval["end"]),
                        )
                    )
        return busy

    async def list_events(
        self,
        connection: CalendarConnection,
        time_min: datetime,
        time_max: datetime,
    ) -> list[CalendarEventItem]:
        """List single events on the primary calendar, ordered by start time."""
        if not self._is_usable(connection):
            return []

        service = await self._run_in_executor(self._service_for, connection)
        response = await self._run_in_executor(
            service.events()
            .list(
                calendarId="primary",
                timeMin=self._to_rfc3339(time_min),
                timeMax=self._to_rfc3339(time_max),
                singleEvents=True,
                orderBy="startTime",
                maxResults=EVENTS_MAX_RESULTS,
            )
            .execute
        )

        items: list[CalendarEventItem] = []
        for event in response.get("items", []):
            start = event.get("start", {})
            end = event.get("end", {})
            start_value = start.get("dateTime") or start.get("date")
            end_value = end.get("dateTime") or end.get("date")
            if start_value and end_value:
                items.append(
                    CalendarEventItem(
                        summary=event.get("summary") or "(No title)",
                        start=start_value,
                        end=end_value,
                    )
                )
        return items
