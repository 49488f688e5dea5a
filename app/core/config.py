import os
from dataclasses import dataclass, field

from core.environment import get_database_url

# Fuel economy catalog defaults
DEFAULT_CATALOG_URL = "https://www.fueleconomy.gov/ws/rest/vehicle"
DEFAULT_START_ID = 0
DEFAULT_END_ID = 49130
DEFAULT_BATCH_SIZE = 100
DEFAULT_CRON_EXPRESSION = "0 2 * * *"  # daily at 2 AM UTC


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration. Frozen and picklable so the crawl worker process receives it by value."""
    database_url: str = field(default_factory=get_database_url)
    registry_url: str = field(default_factory=lambda: os.getenv("GET_VEHICLES_API_URL", ""))
    catalog_url: str = field(default_factory=lambda: os.getenv("GET_FUEL_VEHICLES_API_URL", DEFAULT_CATALOG_URL))
    start_id: int = field(default_factory=lambda: int(os.getenv("FUEL_SYNC_START_ID", DEFAULT_START_ID)))
    end_id: int = field(default_factory=lambda: int(os.getenv("FUEL_SYNC_END_ID", DEFAULT_END_ID)))
    batch_size: int = field(default_factory=lambda: int(os.getenv("FUEL_SYNC_BATCH_SIZE", DEFAULT_BATCH_SIZE)))
    request_delay: float = field(default_factory=lambda: float(os.getenv("FUEL_SYNC_REQUEST_DELAY", "0.05")))
    request_timeout: float = field(default_factory=lambda: float(os.getenv("FUEL_SYNC_REQUEST_TIMEOUT", "10")))
    fetch_attempts: int = field(default_factory=lambda: int(os.getenv("FUEL_SYNC_FETCH_ATTEMPTS", "2")))
    cron_expression: str = field(default_factory=lambda: os.getenv("FUEL_SYNC_CRON", DEFAULT_CRON_EXPRESSION))
    autostart: bool = field(default_factory=lambda: _env_bool("FUEL_SYNC_AUTOSTART"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


def get_settings() -> Settings:
    return Settings()
