"""Runtime settings, overridable through environment variables."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    bart_trips_url: str = "https://api.bart.gov/gtfsrt/tripupdate.aspx"
    bart_alerts_url: str = "https://api.bart.gov/gtfsrt/alerts.aspx"
    refresh_interval_seconds: float = 30
    station_id: str = "M20-2"  # Montgomery St. platform 2 (eastbound)
    station_direction: str = "eastbound"
    static_data_dir: str = "gtfs-static-data"
    gtfs_dataset_url: str = "https://www.bart.gov/dev/schedules/google_transit.zip"
    gtfs_update_interval_hours: float = 24
    request_timeout_seconds: float = 10
    stale_after_seconds: float = 120

    model_config = {"env_prefix": "", "case_sensitive": False}

    @field_validator("station_direction")
    @classmethod
    def _lower_direction(cls, value: str) -> str:
        return value.lower()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
