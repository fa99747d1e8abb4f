"""
Shared pytest fixtures for the realtime merge API tests

Provides fixtures for:
- Reference tables written to a temporary data directory
- GTFS-Realtime feed payloads built with the protobuf bindings
- FastAPI test client reading feeds from local files
- Environment variable mocking
"""

import pytest
from fastapi.testclient import TestClient
from google.transit import gtfs_realtime_pb2

from src.config import get_settings
from src.reference_tables import load_reference_tables

ROUTES_TXT = """\
"route_id","agency_id","route_short_name","route_long_name","route_desc"
"12A","AG1","Downtown Loop","Downtown Circulator",""
"20","AG1","Airport Express","Airport via Central",""
"""

ROUTES_LOCALIZED_TXT = """\
"route_id","route_update_date","origin_stop","via_stop","destination_stop"
"12A","20240401","Harbor","Market","Central Station"
"20","20240401","Central Station","","Airport Terminal"
"""

STOPS_TXT = """\
stop_id,stop_code,stop_name,stop_lat,stop_lon
S1,,Harbor,34.6001,133.9001
S2,,Market Street,34.6002,133.9002
S3,,Central Station,34.6003,133.9003
S4,,Airport Terminal,34.6004,133.9004

"""

VEHICLE_ICON_CSV = """\
"vehicle_label","icon_url"
"V001","icon1.png"
"DEFAULT","icon0.png"
"""

FEED_TIMESTAMP = 1700000000


def _new_feed():
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.header.gtfs_realtime_version = "2.0"
    feed.header.incrementality = gtfs_realtime_pb2.FeedHeader.FULL_DATASET
    feed.header.timestamp = FEED_TIMESTAMP
    return feed


def build_vehicle_feed(vehicles):
    """
    Build a serialized vehicle position feed

    Each vehicle is a dict with entity_id, trip_id, route_id, vehicle_id,
    label, lat, lon and current_stop_sequence. trip_id and vehicle_id may
    be left out.
    """
    feed = _new_feed()
    for v in vehicles:
        entity = feed.entity.add()
        entity.id = v["entity_id"]
        if v.get("trip_id"):
            entity.vehicle.trip.trip_id = v["trip_id"]
        entity.vehicle.trip.route_id = v["route_id"]
        if v.get("vehicle_id"):
            entity.vehicle.vehicle.id = v["vehicle_id"]
        entity.vehicle.vehicle.label = v["label"]
        entity.vehicle.position.latitude = v.get("lat", 34.6)
        entity.vehicle.position.longitude = v.get("lon", 133.9)
        entity.vehicle.current_stop_sequence = v.get("current_stop_sequence", 1)
        entity.vehicle.current_status = gtfs_realtime_pb2.VehiclePosition.IN_TRANSIT_TO
        entity.vehicle.timestamp = FEED_TIMESTAMP
    return feed.SerializeToString()


def build_trip_feed(trips):
    """
    Build a serialized trip update feed

    Each trip is a dict with entity_id, trip_id, route_id, vehicle_id and
    stops, a list of stop ids in stop sequence order (starting at 1).
    trip_id and vehicle_id may be left out, and with_stop_sequence=False
    omits the stop sequences.
    """
    feed = _new_feed()
    for t in trips:
        entity = feed.entity.add()
        entity.id = t["entity_id"]
        if t.get("trip_id"):
            entity.trip_update.trip.trip_id = t["trip_id"]
        entity.trip_update.trip.route_id = t["route_id"]
        if t.get("vehicle_id"):
            entity.trip_update.vehicle.id = t["vehicle_id"]
        for sequence, stop_id in enumerate(t["stops"], start=1):
            stop_time = entity.trip_update.stop_time_update.add()
            if t.get("with_stop_sequence", True):
                stop_time.stop_sequence = sequence
            stop_time.stop_id = stop_id
            stop_time.arrival.delay = 60
            stop_time.arrival.time = FEED_TIMESTAMP + sequence * 120
    return feed.SerializeToString()


@pytest.fixture
def sample_vehicles():
    """Two vehicles on different trips"""
    return [
        {
            "entity_id": "vp1",
            "trip_id": "TRIP_1",
            "route_id": "12A",
            "vehicle_id": "BUS_1",
            "label": "V001",
            "lat": 34.6001,
            "lon": 133.9001,
            "current_stop_sequence": 2,
        },
        {
            "entity_id": "vp2",
            "trip_id": "TRIP_2",
            "route_id": "20",
            "vehicle_id": "BUS_2",
            "label": "V999",
            "current_stop_sequence": 1,
        },
    ]


@pytest.fixture
def sample_trips():
    """Trip updates for the sample vehicles, in the same order"""
    return [
        {
            "entity_id": "tu1",
            "trip_id": "TRIP_1",
            "route_id": "12A",
            "vehicle_id": "BUS_1",
            "stops": ["S1", "S2", "S3"],
        },
        {
            "entity_id": "tu2",
            "trip_id": "TRIP_2",
            "route_id": "20",
            "vehicle_id": "BUS_2",
            "stops": ["S3", "S4"],
        },
    ]


@pytest.fixture
def data_dir(tmp_path):
    """Temporary directory holding the four reference tables"""
    directory = tmp_path / "data"
    directory.mkdir()
    (directory / "routes.txt").write_text(ROUTES_TXT, encoding="utf-8")
    (directory / "routes_jp.txt").write_text(ROUTES_LOCALIZED_TXT, encoding="utf-8")
    (directory / "stops.txt").write_text(STOPS_TXT, encoding="utf-8")
    (directory / "vehicle_icon.csv").write_text(VEHICLE_ICON_CSV, encoding="utf-8")
    return directory


@pytest.fixture
def reference_tables(data_dir, monkeypatch):
    """ReferenceTables loaded from the temporary data directory"""
    monkeypatch.setenv("REFERENCE_DATA_DIR", str(data_dir))
    return load_reference_tables(get_settings())


@pytest.fixture
def feed_files(tmp_path, monkeypatch, sample_vehicles, sample_trips):
    """
    Write both feeds to disk and point the service at them

    Returns the (vehicle_path, trip_path) pair so tests can overwrite them.
    """
    vehicle_path = tmp_path / "vpos_update.bin"
    trip_path = tmp_path / "trip_update.bin"
    vehicle_path.write_bytes(build_vehicle_feed(sample_vehicles))
    trip_path.write_bytes(build_trip_feed(sample_trips))

    monkeypatch.setenv("FEED_SOURCE_LOCAL", "true")
    monkeypatch.setenv("VEHICLE_POSITIONS_URL", str(vehicle_path))
    monkeypatch.setenv("TRIP_UPDATES_URL", str(trip_path))
    return vehicle_path, trip_path


@pytest.fixture
def client(data_dir, feed_files, monkeypatch):
    """FastAPI TestClient with reference tables and local feeds from tmp_path"""
    from api.main import app

    monkeypatch.setenv("REFERENCE_DATA_DIR", str(data_dir))
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """
    Mock environment variables for tests

    autouse=True means this runs for every test automatically
    """
    # Point remote feeds at an unroutable address so no test hits the real feeds
    monkeypatch.setenv("VEHICLE_POSITIONS_URL", "http://127.0.0.1:9/vpos_update.bin")
    monkeypatch.setenv("TRIP_UPDATES_URL", "http://127.0.0.1:9/trip_update.bin")
    monkeypatch.setenv("FEED_SOURCE_LOCAL", "false")
    monkeypatch.setenv("FEED_TIMEOUT", "1")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")


@pytest.fixture
def make_vehicle_feed():
    """Factory for serialized vehicle position feeds"""
    return build_vehicle_feed


@pytest.fixture
def make_trip_feed():
    """Factory for serialized trip update feeds"""
    return build_trip_feed
