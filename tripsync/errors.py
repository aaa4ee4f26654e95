"""Exception hierarchy for the trip sync engine."""


class TripSyncError(Exception):
    """Base class for all trip sync errors."""


class SessionError(TripSyncError):
    """Invalid session lifecycle transition or addressing before join."""


class EngineError(TripSyncError):
    """Invalid engine lifecycle transition."""


class StoreError(TripSyncError):
    """Transport or subscription failure in the document store."""


class LocationUnavailable(TripSyncError):
    """No position fix available (permission denied, hardware missing)."""


class SearchError(TripSyncError):
    """Search request or response parsing failed."""
