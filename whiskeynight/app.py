"""FastAPI application: club availability and calendar endpoints.

Endpoints:

  GET    /health                          Health check
  GET    /api/clubs/{club_id}/availability  Ranked meeting-time suggestions
  GET    /api/calendar                    Requester's calendar connection status
  DELETE /api/calendar                    Disconnect the requester's calendar
  GET    /api/calendar/events             Requester's own events for comparison
  GET    /api/nights/{night_id}/ics       Download a night as an .ics file

Every /api route needs the ``X-User-Id`` header from the auth layer and,
when API_KEY is configured, the matching bearer token.
"""

from __future__ import annotations

# Load .env into os.environ early so GOOGLE_* credentials are visible to
# anything that reads the environment directly.
from dotenv import load_dotenv
load_dotenv()

import logging
import time

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-28s %(levelname)-7s %(message)s",
)

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from clubs.store import ClubStore
from whiskeynight.auth import current_user_id, require_api_token
from whiskeynight.availability import AvailabilityQuery, InvalidRange, suggest_slots
from whiskeynight.calendar_providers.base import CalendarProvider
from whiskeynight.config import settings
from whiskeynight.ics import build_ics_calendar, night_url
from whiskeynight.models.calendar import CalendarEvent, CalendarEventsResponse, CalendarStatus

log = logging.getLogger("whiskeynight.app")

_START_TIME = time.time()

NO_OWN_CALENDAR_MESSAGE = "Connect Google Calendar in Profile to see your events here."


def _store(request: Request) -> ClubStore:
    return request.app.state.store


def _provider(request: Request) -> CalendarProvider:
    return request.app.state.provider


def create_app(
    store: ClubStore | None = None,
    provider: CalendarProvider | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``store`` and ``provider`` default to the JSON directory at
    CLUBS_DATA_PATH and the Google Calendar provider.  Building the default
    store validates the configuration first, so a bad deployment fails at
    import time with a ``ValueError`` naming the setting.
    """
    app = FastAPI(
        title="Whiskey Night",
        description="Club availability suggestions and calendar helpers",
        version="0.1.0",
    )

    if store is None:
        for warning in settings.validate_startup():
            log.warning(warning)
        store = ClubStore.load(settings.clubs_data_path)
    if provider is None:
        from whiskeynight.calendar_providers.google import GoogleCalendarProvider

        provider = GoogleCalendarProvider()
    app.state.store = store
    app.state.provider = provider

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            {"error": exc.detail},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check; confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime})

    api = APIRouter(prefix="/api", dependencies=[Depends(require_api_token)])

    # ── Availability ───────────────────────────────────────────

    @api.get("/clubs/{club_id}/availability")
    async def club_availability(
        club_id: str,
        user_id: str = Depends(current_user_id),
        store: ClubStore = Depends(_store),
        provider: CalendarProvider = Depends(_provider),
        time_min: str | None = Query(default=None, alias="timeMin"),
        time_max: str | None = Query(default=None, alias="timeMax"),
        duration_minutes: str | None = Query(default=None, alias="durationMinutes"),
        start_time_of_day: str | None = Query(default=None, alias="startTimeOfDay"),
        end_time_of_day: str | None = Query(default=None, alias="endTimeOfDay"),
        offset_minutes: str | None = Query(default=None, alias="offsetMinutes"),
    ) -> JSONResponse:
        """Suggest meeting slots ranked by how many connected members are free."""
        try:
            query = AvailabilityQuery.from_params(
                time_min,
                time_max,
                duration_minutes=duration_minutes,
                start_time_of_day=start_time_of_day,
                end_time_of_day=end_time_of_day,
                offset_minutes=offset_minutes,
            )
        except InvalidRange as e:
            return JSONResponse({"error": str(e)}, status_code=400)

        if store.get_club(club_id) is None:
            return JSONResponse({"error": "Club not found"}, status_code=404)
        if not store.is_member(club_id, user_id):
            return JSONResponse({"error": "Not a member of this club"}, status_code=403)

        members = store.connected_members(club_id)
        log.info(
            "Availability for club %s: %d connected of %d members",
            club_id,
            len(members),
            len(store.members_of(club_id)),
        )
        result = await suggest_slots(provider, members, query)
        return JSONResponse(result.model_dump(mode="json", by_alias=True, exclude_none=True))

    # ── Requester's calendar ───────────────────────────────────

    @api.get("/calendar")
    async def calendar_status(
        user_id: str = Depends(current_user_id),
        store: ClubStore = Depends(_store),
    ) -> JSONResponse:
        connection = store.connection_for(user_id)
        status = CalendarStatus(
            connected=connection is not None,
            provider=connection.provider if connection else None,
        )
        return JSONResponse(status.model_dump())

    @api.delete("/calendar")
    async def disconnect_calendar(
        user_id: str = Depends(current_user_id),
        store: ClubStore = Depends(_store),
    ) -> JSONResponse:
        store.remove_connection(user_id)
        return JSONResponse({"ok": True})

    @api.get("/calendar/events")
    async def calendar_events(
        user_id: str = Depends(current_user_id),
        store: ClubStore = Depends(_store),
        provider: CalendarProvider = Depends(_provider),
        time_min: str | None = Query(default=None, alias="timeMin"),
        time_max: str | None = Query(default=None, alias="timeMax"),
    ) -> JSONResponse:
        """The requester's own events, shown next to suggested slots."""
        try:
            query = AvailabilityQuery.from_params(time_min, time_max)
        except InvalidRange as e:
            return JSONResponse({"error": str(e)}, status_code=400)

        connection = store.connection_for(user_id)
        if connection is None:
            body = CalendarEventsResponse(
                events=[], connected=False, message=NO_OWN_CALENDAR_MESSAGE
            )
            return JSONResponse(body.model_dump(exclude_none=True))

        try:
            items = await provider.list_events(connection, query.time_min, query.time_max)
        except Exception:
            log.exception("Failed to list calendar events for user %s", user_id)
            return JSONResponse({"error": "Could not load calendar events"}, status_code=502)

        body = CalendarEventsResponse(
            events=[CalendarEvent(summary=i.summary, start=i.start, end=i.end) for i in items],
            connected=True,
        )
        return JSONResponse(body.model_dump(exclude_none=True))

    # ── Nights ─────────────────────────────────────────────────

    @api.get("/nights/{night_id}/ics")
    async def night_ics(
        night_id: str,
        user_id: str = Depends(current_user_id),
        store: ClubStore = Depends(_store),
    ) -> Response:
        """Download a night as an .ics file for any calendar app."""
        night = store.get_night(night_id)
        if night is None:
            return JSONResponse({"error": "Not found"}, status_code=404)
        if user_id not in night.attendee_ids:
            return JSONResponse({"error": "Forbidden"}, status_code=403)

        club = store.get_club(night.club_id)
        club_name = club.name if club else "the club"
        link = night_url(settings.base_url, night_id)
        ics = build_ics_calendar(
            event_name=night.event_name(club_name),
            description=f"View event: {link}",
            start_time=night.start_time,
            end_time=night.end_time,
            night_id=night_id,
            base_url=settings.base_url,
            location=night.location,
        )
        return Response(
            content=ics,
            media_type="text/calendar; charset=utf-8",
            headers={"Content-Disposition": 'attachment; filename="whiskey-night.ics"'},
        )

    app.include_router(api)
    return app


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "whiskeynight.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
