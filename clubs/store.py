"""In-memory club directory loaded from a JSON data file.

Usage:
    store = ClubStore.load("clubs/sample_data/clubs.json")
    members = store.connected_members("club-bourbon")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from clubs.schema import (
    CalendarConnectionRecord,
    Club,
    ClubDirectoryData,
    User,
    WhiskeyNight,
)
from whiskeynight.availability import MemberConnection
from whiskeynight.calendar_providers.base import CalendarConnection

log = logging.getLogger("clubs.store")


class ClubStore:
    """Lookups over clubs, members, calendar connections and nights."""

    def __init__(self, data: ClubDirectoryData | None = None) -> None:
        data = data or ClubDirectoryData()
        self._users: dict[str, User] = {u.id: u for u in data.users}
        self._clubs: dict[str, Club] = {c.id: c for c in data.clubs}
        self._nights: dict[str, WhiskeyNight] = {n.id: n for n in data.nights}
        self._connections: dict[tuple[str, str], CalendarConnectionRecord] = {
            (c.user_id, c.provider): c for c in data.calendar_connections
        }

    @classmethod
    def load(cls, path: str | Path) -> ClubStore:
        """Read and validate a directory JSON file."""
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
        data = ClubDirectoryData(**raw)
        log.info(
            "Loaded %d clubs, %d users, %d connections from %s",
            len(data.clubs),
            len(data.users),
            len(data.calendar_connections),
            path,
        )
        return cls(data)

    # ── Clubs & users ────────────────────────────────────────────

    def get_club(self, club_id: str) -> Club | None:
        return self._clubs.get(club_id)

    def get_user(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    def is_member(self, club_id: str, user_id: str) -> bool:
        club = self._clubs.get(club_id)
        if club is None:
            return False
        return any(m.user_id == user_id for m in club.members)

    def members_of(self, club_id: str) -> list[User]:
        """Members in membership order; unknown user ids get a bare record."""
        club = self._clubs.get(club_id)
        if club is None:
            return []
        return [self._users.get(m.user_id) or User(id=m.user_id) for m in club.members]

    # ── Calendar connections ─────────────────────────────────────

    def connection_for(self, user_id: str, provider: str = "google") -> CalendarConnection | None:
        record = self._connections.get((user_id, provider))
        if record is None:
            return None
        return CalendarConnection(
            id=record.id,
            user_id=record.user_id,
            provider=record.provider,
            access_token=record.access_token,
            refresh_token=record.refresh_token,
            expires_at=record.expires_at,
        )

    def connected_members(self, club_id: str, provider: str = "google") -> list[MemberConnection]:
        """Club members that have a calendar connection for ``provider``."""
        connected: list[MemberConnection] = []
        for user in self.members_of(club_id):
            connection = self.connection_for(user.id, provider)
            if connection is None:
                continue
            connected.append(
                MemberConnection(
                    user_id=user.id,
                    user_name=user.display_name,
                    connection=connection,
                )
            )
        return connected

    def remove_connection(self, user_id: str, provider: str = "google") -> bool:
        """Forget a user's connection. Returns True if one existed."""
        removed = self._connections.pop((user_id, provider), None)
        if removed is not None:
            log.info("Calendar connection removed for user %s (%s)", user_id, provider)
        return removed is not None

    # ── Nights ───────────────────────────────────────────────────

    def get_night(self, night_id: str) -> WhiskeyNight | None:
        return self._nights.get(night_id)
