"""Tests for the HTTP layer: routes, errors and response shape."""

import logging
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from clubs.schema import ClubDirectoryData
from clubs.store import ClubStore
from whiskeynight.app import NO_OWN_CALENDAR_MESSAGE, create_app
from whiskeynight.availability import NO_CONNECTIONS_MESSAGE
from whiskeynight.calendar_providers.base import (
    BusyInterval,
    CalendarEventItem,
    CalendarProvider,
)
from whiskeynight.config import Settings

API_KEY = "test-key"


class FakeSettings:
    def __init__(self, api_key="", debug=False):
        self.api_key = api_key
        self.debug = debug


class FakeProvider(CalendarProvider):
    def __init__(self, busy=None, events=None, fail_events=False):
        self.busy = busy or {}
        self.events = events or []
        self.fail_events = fail_events
        self.busy_calls = 0

    async def fetch_busy_intervals(self, connection, time_min, time_max):
        self.busy_calls += 1
        return self.busy.get(connection.user_id, [])

    async def list_events(self, connection, time_min, time_max):
        if self.fail_events:
            raise RuntimeError("Google is down")
        return self.events


def _utc(hour):
    return datetime(2024, 6, 1, hour, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return ClubStore(
        ClubDirectoryData(
            users=[
                {"id": "ava", "name": "Ava"},
                {"id": "ben", "name": "Ben"},
                {"id": "cam", "name": "Cam"},
                {"id": "dee", "name": "Dee"},
            ],
            clubs=[
                {
                    "id": "rye",
                    "name": "Rye Society",
                    "members": [{"user_id": "ava"}, {"user_id": "ben"}, {"user_id": "cam"}],
                },
                {"id": "lonely", "name": "Lonely Hearts", "members": [{"user_id": "cam"}]},
            ],
            calendar_connections=[
                {"id": "k-ava", "user_id": "ava", "access_token": "a",
                 "expires_at": "2099-01-01T00:00:00Z"},
                {"id": "k-ben", "user_id": "ben", "access_token": "b",
                 "expires_at": "2099-01-01T00:00:00Z"},
            ],
            nights=[
                {
                    "id": "night-1",
                    "club_id": "rye",
                    "whiskey_name": "Rittenhouse",
                    "start_time": "2024-06-01T18:00:00Z",
                    "end_time": "2024-06-01T20:00:00Z",
                    "location": "Ava's, 1 Elm St",
                    "attendee_ids": ["ava", "ben"],
                }
            ],
        )
    )


@pytest.fixture
def provider():
    return FakeProvider(busy={"ava": [BusyInterval(_utc(18), _utc(20))]})


@pytest.fixture
def client(store, provider, monkeypatch):
    monkeypatch.setattr("whiskeynight.auth.settings", FakeSettings(api_key=API_KEY))
    return TestClient(create_app(store=store, provider=provider))


def _headers(user_id="ava"):
    return {"Authorization": f"Bearer {API_KEY}", "X-User-Id": user_id}


AVAILABILITY_PARAMS = {
    "timeMin": "2024-06-01T16:00:00Z",
    "timeMax": "2024-06-01T22:00:00Z",
    "durationMinutes": "120",
}


# ── Health & auth ───────────────────────────────────────────────────


class TestHealthAndAuth:
    def test_health_is_open(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_missing_token(self, client):
        resp = client.get("/api/calendar", headers={"X-User-Id": "ava"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid or missing API token."}

    def test_missing_user(self, client):
        resp = client.get("/api/calendar", headers={"Authorization": f"Bearer {API_KEY}"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    def test_locked_without_key_in_production(self, store, provider, monkeypatch):
        monkeypatch.setattr("whiskeynight.auth.settings", FakeSettings(api_key=""))
        client = TestClient(create_app(store=store, provider=provider))
        resp = client.get("/api/calendar", headers={"X-User-Id": "ava"})
        assert resp.status_code == 403


# ── Startup ─────────────────────────────────────────────────────────


class TestStartupValidation:
    def test_missing_data_file_fails_with_setting_name(self, tmp_path, provider, monkeypatch):
        monkeypatch.setattr(
            "whiskeynight.app.settings",
            Settings(_env_file=None, clubs_data_path=str(tmp_path / "missing.json")),
        )
        with pytest.raises(ValueError, match="CLUBS_DATA_PATH"):
            create_app(provider=provider)

    def test_non_positive_timeout_fails(self, provider, monkeypatch):
        monkeypatch.setattr(
            "whiskeynight.app.settings",
            Settings(_env_file=None, calendar_fetch_timeout_seconds=0),
        )
        with pytest.raises(ValueError, match="CALENDAR_FETCH_TIMEOUT_SECONDS"):
            create_app(provider=provider)

    def test_default_store_logs_warnings(self, provider, monkeypatch, caplog):
        monkeypatch.setattr("whiskeynight.app.settings", Settings(_env_file=None, api_key=""))
        with caplog.at_level(logging.WARNING, logger="whiskeynight.app"):
            app = create_app(provider=provider)
        assert app.state.store.get_club("club-bourbon") is not None
        assert any("API_KEY" in r.message for r in caplog.records)

    def test_injected_store_skips_validation(self, store, provider, monkeypatch):
        monkeypatch.setattr(
            "whiskeynight.app.settings",
            Settings(_env_file=None, calendar_fetch_timeout_seconds=0),
        )
        assert create_app(store=store, provider=provider).state.store is store


# ── Availability ────────────────────────────────────────────────────


class TestAvailability:
    def test_ranked_slots(self, client):
        resp = client.get(
            "/api/clubs/rye/availability", params=AVAILABILITY_PARAMS, headers=_headers()
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["totalConnected"] == 2
        assert "message" not in body
        assert body["slots"][0] == {
            "start": "2024-06-01T16:00:00Z",
            "end": "2024-06-01T18:00:00Z",
            "freeCount": 2,
            "totalConnected": 2,
        }
        assert body["slots"][1]["start"] == "2024-06-01T20:00:00Z"
        assert [s["freeCount"] for s in body["slots"]] == [2, 2, 1, 1, 1]

    def test_time_of_day_window(self, client):
        params = {
            **AVAILABILITY_PARAMS,
            "timeMin": "2024-06-01T12:00:00Z",
            "timeMax": "2024-06-02T00:00:00Z",
            "startTimeOfDay": "17:00",
            "endTimeOfDay": "22:00",
            "offsetMinutes": "0",
        }
        resp = client.get("/api/clubs/rye/availability", params=params, headers=_headers())
        starts = sorted(s["start"] for s in resp.json()["slots"])
        assert starts == [
            "2024-06-01T17:00:00Z",
            "2024-06-01T18:00:00Z",
            "2024-06-01T19:00:00Z",
            "2024-06-01T20:00:00Z",
        ]

    def test_missing_bounds(self, client, provider):
        resp = client.get(
            "/api/clubs/rye/availability",
            params={"timeMin": "2024-06-01T16:00:00Z"},
            headers=_headers(),
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "timeMin and timeMax (ISO) required"}
        assert provider.busy_calls == 0

    def test_inverted_range(self, client, provider):
        params = {**AVAILABILITY_PARAMS, "timeMax": "2024-06-01T10:00:00Z"}
        resp = client.get("/api/clubs/rye/availability", params=params, headers=_headers())
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid time range"}
        assert provider.busy_calls == 0

    def test_range_at_end_of_calendar(self, client):
        params = {
            "timeMin": "9999-12-31T20:00:00Z",
            "timeMax": "9999-12-31T23:00:00Z",
            "durationMinutes": "60",
        }
        resp = client.get("/api/clubs/rye/availability", params=params, headers=_headers())
        assert resp.status_code == 200
        starts = [s["start"] for s in resp.json()["slots"]]
        assert starts == [
            "9999-12-31T20:00:00Z",
            "9999-12-31T21:00:00Z",
            "9999-12-31T22:00:00Z",
        ]

    def test_instant_before_year_one_in_utc(self, client, provider):
        params = {
            "timeMin": "0001-01-01T00:30:00+01:00",
            "timeMax": "0001-01-01T05:00:00Z",
        }
        resp = client.get("/api/clubs/rye/availability", params=params, headers=_headers())
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid time range"}
        assert provider.busy_calls == 0

    def test_bad_duration_is_not_an_error(self, client):
        params = {**AVAILABILITY_PARAMS, "durationMinutes": "lots"}
        resp = client.get("/api/clubs/rye/availability", params=params, headers=_headers())
        assert resp.status_code == 200
        assert len(resp.json()["slots"]) == 5

    def test_unknown_club(self, client):
        resp = client.get(
            "/api/clubs/nope/availability", params=AVAILABILITY_PARAMS, headers=_headers()
        )
        assert resp.status_code == 404

    def test_non_member(self, client):
        resp = client.get(
            "/api/clubs/rye/availability", params=AVAILABILITY_PARAMS, headers=_headers("dee")
        )
        assert resp.status_code == 403
        assert resp.json() == {"error": "Not a member of this club"}

    def test_no_connected_members(self, client):
        resp = client.get(
            "/api/clubs/lonely/availability", params=AVAILABILITY_PARAMS, headers=_headers("cam")
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "slots": [],
            "totalConnected": 0,
            "message": NO_CONNECTIONS_MESSAGE,
        }


# ── Requester's calendar ────────────────────────────────────────────


class TestCalendar:
    def test_status_connected(self, client):
        resp = client.get("/api/calendar", headers=_headers())
        assert resp.json() == {"connected": True, "provider": "google"}

    def test_status_not_connected(self, client):
        resp = client.get("/api/calendar", headers=_headers("cam"))
        assert resp.json() == {"connected": False, "provider": None}

    def test_disconnect(self, client, store):
        resp = client.delete("/api/calendar", headers=_headers())
        assert resp.json() == {"ok": True}
        assert store.connection_for("ava") is None

    def test_events(self, store, monkeypatch):
        monkeypatch.setattr("whiskeynight.auth.settings", FakeSettings(api_key=API_KEY))
        provider = FakeProvider(
            events=[CalendarEventItem("Dentist", "2024-06-01T17:00:00Z", "2024-06-01T18:00:00Z")]
        )
        client = TestClient(create_app(store=store, provider=provider))
        resp = client.get(
            "/api/calendar/events",
            params={"timeMin": "2024-06-01T00:00:00Z", "timeMax": "2024-06-02T00:00:00Z"},
            headers=_headers(),
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "events": [
                {"summary": "Dentist", "start": "2024-06-01T17:00:00Z",
                 "end": "2024-06-01T18:00:00Z"}
            ],
            "connected": True,
        }

    def test_events_not_connected(self, client):
        resp = client.get(
            "/api/calendar/events",
            params={"timeMin": "2024-06-01T00:00:00Z", "timeMax": "2024-06-02T00:00:00Z"},
            headers=_headers("cam"),
        )
        assert resp.json() == {
            "events": [],
            "connected": False,
            "message": NO_OWN_CALENDAR_MESSAGE,
        }

    def test_events_invalid_range(self, client):
        resp = client.get(
            "/api/calendar/events",
            params={"timeMin": "2024-06-02T00:00:00Z", "timeMax": "2024-06-01T00:00:00Z"},
            headers=_headers(),
        )
        assert resp.status_code == 400

    def test_events_provider_failure(self, store, monkeypatch):
        monkeypatch.setattr("whiskeynight.auth.settings", FakeSettings(api_key=API_KEY))
        client = TestClient(create_app(store=store, provider=FakeProvider(fail_events=True)))
        resp = client.get(
            "/api/calendar/events",
            params={"timeMin": "2024-06-01T00:00:00Z", "timeMax": "2024-06-02T00:00:00Z"},
            headers=_headers(),
        )
        assert resp.status_code == 502
        assert "error" in resp.json()


# ── Nights ──────────────────────────────────────────────────────────


class TestNightIcs:
    def test_download(self, client):
        resp = client.get("/api/nights/night-1/ics", headers=_headers("ben"))
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/calendar")
        assert 'filename="whiskey-night.ics"' in resp.headers["content-disposition"]
        lines = resp.text.split("\r\n")
        assert "SUMMARY:Rittenhouse at Rye Society" in lines
        assert "DTSTART:20240601T180000Z" in lines
        assert "LOCATION:Ava's\\, 1 Elm St" in lines
        assert any(line.startswith("URL:") and line.endswith("/nights/night-1") for line in lines)

    def test_not_attendee(self, client):
        resp = client.get("/api/nights/night-1/ics", headers=_headers("cam"))
        assert resp.status_code == 403

    def test_unknown_night(self, client):
        resp = client.get("/api/nights/nope/ics", headers=_headers())
        assert resp.status_code == 404
