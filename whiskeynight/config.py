"""Application configuration via environment variables."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic_settings import BaseSettings

log = logging.getLogger("whiskeynight.config")

_DEFAULT_CLUBS_DATA = Path(__file__).resolve().parent.parent / "clubs" / "sample_data" / "clubs.json"


class Settings(BaseSettings):
    # Google Calendar (OAuth client used to refresh member tokens)
    google_client_id: str = ""
    google_client_secret: str = ""
    google_token_uri: str = "https://oauth2.googleapis.com/token"

    # Availability
    calendar_fetch_timeout_seconds: float = 10.0

    # Club directory
    clubs_data_path: str = str(_DEFAULT_CLUBS_DATA)

    # Public URL used for links in .ics files
    base_url: str = "http://localhost:3000"

    # API auth (shared secret with the upstream auth proxy)
    api_key: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []

        if not Path(self.clubs_data_path).is_file():
            raise ValueError(
                f"CLUBS_DATA_PATH does not point to a file: {self.clubs_data_path!r}"
            )

        if not self.api_key:
            if self.debug:
                warnings.append("API_KEY not set. APIs are open (DEBUG=true).")
            else:
                warnings.append(
                    "API_KEY not set. APIs are locked in production. "
                    "Set API_KEY in .env to enable access."
                )

        if not self.google_client_id or not self.google_client_secret:
            warnings.append(
                "GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not set; expired "
                "calendar tokens cannot be refreshed."
            )

        if self.calendar_fetch_timeout_seconds <= 0:
            raise ValueError("CALENDAR_FETCH_TIMEOUT_SECONDS must be positive.")

        return warnings


settings = Settings()
