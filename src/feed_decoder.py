"""
GTFS-Realtime feed decoding

Feeds are decoded with the official protobuf bindings and projected to
plain dicts in the canonical protobuf JSON shape: camelCase field names,
64-bit integers as strings, enums as their names and bytes as base64.
"""

import logging

from google.protobuf.json_format import MessageToDict
from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.transit import gtfs_realtime_pb2

from src.exceptions import DecodeError, FetchError
from src.feed_fetcher import fetch_feed

logger = logging.getLogger(__name__)


def decode_feed(payload):
    """
    Decode a FeedMessage payload into a list of entity dicts

    Raises:
        DecodeError: If the payload is not a valid FeedMessage
    """
    feed = gtfs_realtime_pb2.FeedMessage()
    try:
        feed.ParseFromString(payload)
    except (ProtobufDecodeError, TypeError, ValueError) as e:
        raise DecodeError(f"Invalid GTFS-Realtime payload: {e}") from e

    # Feeds missing required header fields parse but are not valid messages
    if not feed.IsInitialized():
        missing = ", ".join(feed.FindInitializationErrors())
        raise DecodeError(f"Incomplete GTFS-Realtime payload, missing: {missing}")

    return [MessageToDict(entity) for entity in feed.entity]


def parse_feed(source, is_local=False, timeout=10):
    """
    Fetch and decode a feed, returning [] on any failure

    Errors are logged and never raised so that one broken feed results in
    an empty response instead of a server error.
    """
    try:
        payload = fetch_feed(source, is_local=is_local, timeout=timeout)
        entities = decode_feed(payload)
    except FetchError as e:
        logger.error("Error fetching feed %s: %s", source, e)
        return []
    except DecodeError as e:
        logger.error("Error decoding feed %s: %s", source, e)
        return []

    logger.info("Decoded %d entities from %s", len(entities), source)
    return entities


def vehicle_entities(entities):
    """Entities carrying a vehicle position"""
    return [entity for entity in entities if "vehicle" in entity]


def trip_update_entities(entities):
    """Entities carrying a trip update"""
    return [entity for entity in entities if "tripUpdate" in entity]
