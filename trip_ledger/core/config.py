from functools import lru_cache
import os
from typing import List, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False
    project_name: str = "Trip Ledger API"
    environment: str = "development"

    # Raw CORS origins string - read from env
    cors_origins_raw: Optional[str] = Field(
        default=None,
        alias="CORS_ORIGINS"
    )

    @computed_field
    @property
    def backend_cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS from environment variable (comma-separated string)."""
        raw = self.cors_origins_raw
        if not raw:
            raw = os.environ.get("BACKEND_CORS_ORIGINS") or ""

        if not raw or not raw.strip():
            return []

        origins = []
        for origin in raw.split(","):
            origin = origin.strip()
            if origin:
                # Normalize protocol to lowercase (Https -> https, Http -> http)
                if origin.lower().startswith("https://"):
                    origin = "https://" + origin[8:]
                elif origin.lower().startswith("http://"):
                    origin = "http://" + origin[7:]
                origins.append(origin)
        return origins

    database_url: str  # Required - no default, must be set in .env

    # Odometer continuity
    ledger_gap_warning_km: int = 50  # gaps above this are accepted with a warning
    ledger_chain_gap_report_km: int = 100  # chain audit reports gaps above this

    # Cascade corrections
    ledger_preview_limit: int = 10
    ledger_correction_max_retries: int = 3
    ledger_retry_backoff_seconds: float = 0.05

    # Mileage sanity range used by the chain audit (km/L)
    ledger_min_realistic_kmpl: float = 2.0
    ledger_max_realistic_kmpl: float = 50.0

    # Serial numbers, e.g. TRP-2025-00042
    ledger_serial_format: str = "TRP-{YEAR}-{NUMBER:05}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
