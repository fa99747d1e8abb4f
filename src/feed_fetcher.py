"""
Raw byte retrieval for GTFS-Realtime feeds from a URL or a local file
"""

import logging
from pathlib import Path

import requests

from src.exceptions import FetchError

logger = logging.getLogger(__name__)


def fetch_feed(source, is_local=False, timeout=10):
    """
    Fetch the raw bytes of a feed

    Args:
        source: Remote URL, or a file path when is_local is True
        is_local: Read source from disk instead of over HTTP
        timeout: Request timeout in seconds for remote sources

    Returns:
        Feed payload as bytes

    Raises:
        FetchError: If the source cannot be read
    """
    if is_local:
        try:
            return Path(source).read_bytes()
        except OSError as e:
            raise FetchError(f"Could not read local feed {source}: {e}", source=str(source)) from e

    try:
        response = requests.get(source, timeout=timeout)
    except requests.exceptions.Timeout as e:
        raise FetchError(
            f"Timeout: request took longer than {timeout} seconds", source=source
        ) from e
    except requests.exceptions.RequestException as e:
        raise FetchError(f"Network error: {e}", source=source) from e

    if response.status_code != 200:
        raise FetchError(f"Error fetching feed: HTTP {response.status_code}", source=source)

    logger.debug("Fetched %d bytes from %s", len(response.content), source)
    return response.content
