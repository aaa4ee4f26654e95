"""Services for the trip sync engine."""
from .remote_collection import DocumentStore, InMemoryDocumentStore, RemoteCollection, Subscription
from .itinerary_store import ItineraryStore
from .presence_store import PresenceStore
from .position_source import LocationProvider, PositionSource, PushLocationProvider
from .llm_client import LLMClient
from .search_bridge import SearchBridge, SearchOutcome
from .sync_engine import SyncEngine, EngineState, EngineRegistry, View

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "RemoteCollection",
    "Subscription",
    "ItineraryStore",
    "PresenceStore",
    "LocationProvider",
    "PositionSource",
    "PushLocationProvider",
    "LLMClient",
    "SearchBridge",
    "SearchOutcome",
    "SyncEngine",
    "EngineState",
    "EngineRegistry",
    "View",
]
