"""Club directory: clubs, members, calendar connections and nights."""

from .schema import Club, ClubDirectoryData, ClubMember, User, WhiskeyNight
from .store import ClubStore

__all__ = ["Club", "ClubDirectoryData", "ClubMember", "ClubStore", "User", "WhiskeyNight"]
