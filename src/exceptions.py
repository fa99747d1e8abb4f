"""Exception hierarchy for the realtime merge service."""


class TransitFeedError(Exception):
    """Base exception for all service errors."""


class FetchError(TransitFeedError):
    """Feed source could not be read (network failure, non-200, missing file)."""

    def __init__(self, message, source=""):
        self.source = source
        super().__init__(message)


class DecodeError(TransitFeedError):
    """Feed bytes do not decode as a GTFS-Realtime FeedMessage."""


class ReferenceLoadError(TransitFeedError):
    """A static reference table could not be loaded."""

    def __init__(self, message, path=""):
        self.path = path
        super().__init__(message)


class LookupMiss(TransitFeedError):
    """No usable value for a key; always resolved to a sentinel, never surfaced."""


class MergeSkip(TransitFeedError):
    """One of the decoded feeds is missing, so nothing is merged."""
