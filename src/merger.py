"""
Correlation of vehicle positions with trip updates

Each vehicle-position entity is joined to the trip-update entity for the
same trip (or, failing that, the same vehicle) and enriched with names
from the reference tables. Feeds may list entities in any order and may
differ in length. Entities without any id fall back to pairing by feed
position.
"""

import copy
import logging
from typing import Dict, List, Optional

from src.exceptions import MergeSkip
from src.reference_tables import (
    DESTINATION_COLUMN,
    INVALID_DATA,
    KEY_COLUMN,
    NAME_COLUMN,
    ReferenceTables,
    lookup,
    resolve_icon,
)

logger = logging.getLogger(__name__)


def _trip_id(descriptor) -> Optional[str]:
    return (descriptor or {}).get("trip", {}).get("tripId")


def _vehicle_id(descriptor) -> Optional[str]:
    return (descriptor or {}).get("vehicle", {}).get("id")


def index_trip_updates(trip_entities) -> Dict[str, Dict[str, dict]]:
    """
    Index trip-update entities by trip id and by vehicle id

    The first entity seen for an id wins.
    """
    by_trip: Dict[str, dict] = {}
    by_vehicle: Dict[str, dict] = {}
    for entity in trip_entities:
        trip_update = entity.get("tripUpdate")
        if not trip_update:
            continue
        trip_id = _trip_id(trip_update)
        if trip_id and trip_id not in by_trip:
            by_trip[trip_id] = entity
        vehicle_id = _vehicle_id(trip_update)
        if vehicle_id and vehicle_id not in by_vehicle:
            by_vehicle[vehicle_id] = entity
    return {"trip": by_trip, "vehicle": by_vehicle}


def match_trip_update(vehicle_entity, index) -> Optional[dict]:
    """Find the trip update for a vehicle entity, by trip id then vehicle id"""
    vehicle = vehicle_entity.get("vehicle") or {}
    trip_id = _trip_id(vehicle)
    if trip_id and trip_id in index["trip"]:
        return index["trip"][trip_id]
    vehicle_id = _vehicle_id(vehicle)
    if vehicle_id and vehicle_id in index["vehicle"]:
        return index["vehicle"][vehicle_id]
    return None


def enrich_trip_update(trip_update, tables: ReferenceTables) -> dict:
    """Copy a trip update and add route, destination and stop names"""
    enriched = copy.deepcopy(trip_update)
    trip = enriched.setdefault("trip", {})
    route_id = trip.get("routeId")
    trip["routeShortName"] = lookup(tables.routes, route_id, KEY_COLUMN, NAME_COLUMN)
    trip["destinationStopName"] = lookup(
        tables.routes_localized, route_id, KEY_COLUMN, DESTINATION_COLUMN
    )

    for stop_time in enriched.get("stopTimeUpdate", []):
        stop_time["stopName"] = lookup(
            tables.stops, stop_time.get("stopId"), KEY_COLUMN, NAME_COLUMN
        )
    return enriched


def next_stop_name(vehicle, stop_time_updates, tables: ReferenceTables) -> str:
    """
    Name of the stop the vehicle is heading to

    Uses the stop time update matching the vehicle's current stop
    sequence (by list position when no update carries a sequence), then
    the vehicle's own stop id.
    """
    current_sequence = vehicle.get("currentStopSequence")
    if current_sequence is not None:
        for stop_time in stop_time_updates:
            if stop_time.get("stopSequence") == current_sequence:
                return lookup(tables.stops, stop_time.get("stopId"), KEY_COLUMN, NAME_COLUMN)
        # Feeds without stop sequences list stops in order, starting at sequence 1
        if not any("stopSequence" in stop_time for stop_time in stop_time_updates):
            position = current_sequence - 1
            if 0 <= position < len(stop_time_updates):
                stop_id = stop_time_updates[position].get("stopId")
                return lookup(tables.stops, stop_id, KEY_COLUMN, NAME_COLUMN)

    if vehicle.get("stopId"):
        return lookup(tables.stops, vehicle["stopId"], KEY_COLUMN, NAME_COLUMN)
    return INVALID_DATA


def build_record(vehicle_entity, trip_entity, tables: ReferenceTables) -> dict:
    """Merge one vehicle entity with its trip update into an enriched record"""
    record = copy.deepcopy(vehicle_entity)
    vehicle = record.get("vehicle", {})
    trip_update = enrich_trip_update(trip_entity["tripUpdate"], tables)

    record["tripUpdate"] = trip_update
    record["icon"] = resolve_icon(tables.vehicle_icons, vehicle.get("vehicle", {}).get("label"))
    record["nextStopName"] = next_stop_name(vehicle, trip_update.get("stopTimeUpdate", []), tables)
    return record


def _trip_update_at(trip_entities, position) -> Optional[dict]:
    if position < len(trip_entities) and trip_entities[position].get("tripUpdate"):
        return trip_entities[position]
    return None


def _require_feeds(vehicle_entities, trip_entities):
    if vehicle_entities is None:
        raise MergeSkip("vehicle positions feed missing")
    if trip_entities is None:
        raise MergeSkip("trip updates feed missing")


def merge_feeds(vehicle_entities, trip_entities, tables: ReferenceTables) -> List[dict]:
    """
    Merge vehicle positions with trip updates into enriched records

    Vehicles carrying neither a trip id nor a vehicle id are paired with
    the trip update at the same position in trip_entities.

    parse_feed reports fetch and decode failures as an empty list, not
    None, so a failed feed simply leaves nothing to match. None is for
    callers that never obtained a feed at all.

    Args:
        vehicle_entities: Decoded vehicle-position entities, or None
        trip_entities: Decoded trip-update entities, or None
        tables: Reference tables used for name lookups

    Returns:
        One record per vehicle with a matching trip update, in vehicle
        feed order. Empty if either feed is missing.
    """
    try:
        _require_feeds(vehicle_entities, trip_entities)
    except MergeSkip as e:
        logger.warning("Skipping merge: %s", e)
        return []

    index = index_trip_updates(trip_entities)
    records = []
    unmatched = 0
    positional = 0
    for position, vehicle_entity in enumerate(vehicle_entities):
        vehicle = vehicle_entity.get("vehicle")
        if vehicle is None:
            continue
        if _trip_id(vehicle) or _vehicle_id(vehicle):
            trip_entity = match_trip_update(vehicle_entity, index)
        else:
            trip_entity = _trip_update_at(trip_entities, position)
            positional += trip_entity is not None
        if trip_entity is None:
            unmatched += 1
            continue
        records.append(build_record(vehicle_entity, trip_entity, tables))

    if positional:
        logger.warning(
            "%d vehicle(s) had no trip or vehicle id and were paired by feed position", positional
        )
    if unmatched:
        logger.warning("%d vehicle(s) had no matching trip update and were dropped", unmatched)
    logger.info("Merged %d records", len(records))
    return records
