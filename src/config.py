"""
Service configuration

Values come from environment variables (a .env file is loaded first).
Defaults point at the Ryobi bus realtime feeds and the bundled
reference tables under data/ryobi.
"""

import dataclasses
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_VEHICLE_POSITIONS_URL = "https://loc.bus-vision.jp/realtime/ryobi_vpos_update.bin"
DEFAULT_TRIP_UPDATES_URL = "https://loc.bus-vision.jp/realtime/ryobi_trip_update.bin"
DEFAULT_REFERENCE_DATA_DIR = Path(__file__).resolve().parent.parent / "data" / "ryobi"


def _env_bool(value, default):
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class Settings:
    """Runtime settings for feed sources and reference tables"""

    vehicle_positions_url: str = DEFAULT_VEHICLE_POSITIONS_URL
    trip_updates_url: str = DEFAULT_TRIP_UPDATES_URL
    feed_source_local: bool = False
    feed_timeout: float = 10.0
    reference_data_dir: Path = DEFAULT_REFERENCE_DATA_DIR
    routes_file: str = "routes.txt"
    routes_localized_file: str = "routes_jp.txt"
    stops_file: str = "stops.txt"
    vehicle_icon_file: str = "vehicle_icon.csv"
    log_level: str = "INFO"

    @property
    def routes_path(self) -> Path:
        return self.reference_data_dir / self.routes_file

    @property
    def routes_localized_path(self) -> Path:
        return self.reference_data_dir / self.routes_localized_file

    @property
    def stops_path(self) -> Path:
        return self.reference_data_dir / self.stops_file

    @property
    def vehicle_icon_path(self) -> Path:
        return self.reference_data_dir / self.vehicle_icon_file


def get_settings() -> Settings:
    """
    Build Settings from the current environment

    Read at call time so tests and deployments can override values
    through environment variables.
    """
    defaults = Settings()
    return Settings(
        vehicle_positions_url=os.getenv("VEHICLE_POSITIONS_URL", defaults.vehicle_positions_url),
        trip_updates_url=os.getenv("TRIP_UPDATES_URL", defaults.trip_updates_url),
        feed_source_local=_env_bool(os.getenv("FEED_SOURCE_LOCAL"), defaults.feed_source_local),
        feed_timeout=float(os.getenv("FEED_TIMEOUT", defaults.feed_timeout)),
        reference_data_dir=Path(os.getenv("REFERENCE_DATA_DIR", defaults.reference_data_dir)),
        routes_file=os.getenv("ROUTES_FILE", defaults.routes_file),
        routes_localized_file=os.getenv("ROUTES_LOCALIZED_FILE", defaults.routes_localized_file),
        stops_file=os.getenv("STOPS_FILE", defaults.stops_file),
        vehicle_icon_file=os.getenv("VEHICLE_ICON_FILE", defaults.vehicle_icon_file),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )
