"""Pydantic models for the club directory data file."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class User(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.id


class ClubMember(BaseModel):
    user_id: str
    role: str = "member"  # "host" or "member"


class Club(BaseModel):
    id: str
    name: str
    description: str = ""
    members: list[ClubMember] = []


class CalendarConnectionRecord(BaseModel):
    """OAuth tokens as stored for one user and provider."""

    id: str
    user_id: str
    provider: str = "google"
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime


class WhiskeyNight(BaseModel):
    id: str
    club_id: str
    title: Optional[str] = None
    whiskey_name: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    attendee_ids: list[str] = []

    def event_name(self, club_name: str) -> str:
        """Title shown in calendars: explicit title, else the whiskey, else the club."""
        if self.title:
            return self.title
        if self.whiskey_name:
            return f"{self.whiskey_name} at {club_name}"
        return f"Whiskey night at {club_name}"


class ClubDirectoryData(BaseModel):
    """Top-level shape of the directory JSON file."""

    users: list[User] = []
    clubs: list[Club] = []
    calendar_connections: list[CalendarConnectionRecord] = []
    nights: list[WhiskeyNight] = []
