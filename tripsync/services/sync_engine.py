"""
Sync Engine - Orchestrates itinerary, presence and position subscriptions.

The engine is IDLE until its session has joined a trip and `start` is
called, then ACTIVE until `stop`. While ACTIVE it keeps a read model
(itinerary, positions, search results) current from pushed snapshots and
forwards position fixes to the presence collection.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import quote_plus

from .itinerary_store import ItineraryStore
from .position_source import LocationProvider, PositionSource, PushLocationProvider
from .presence_store import PresenceStore
from .remote_collection import DocumentStore, InMemoryDocumentStore
from .search_bridge import SearchBridge
from ..config import settings
from ..errors import EngineError, LocationUnavailable, StoreError
from ..models.itinerary import CURATED_SPOTS, Candidate, ItineraryItem
from ..models.presence import Coordinates, PositionRecord
from ..models.session import Role, Session

logger = logging.getLogger(__name__)

Listener = Callable[[str, "SyncEngine"], None]


class EngineState(str, Enum):
    """Lifecycle state of the engine."""
    IDLE = "idle"  # No live subscriptions
    ACTIVE = "active"  # Itinerary, presence and position subscriptions live


class View(str, Enum):
    """Which screen the presentation layer should focus."""
    ITINERARY = "itinerary"
    EXPLORE = "explore"
    MAP = "map"


class SyncEngine:
    """
    Keeps one participant's view of a trip in sync.

    The store handle, search bridge and location provider are injected so
    the engine can run against fakes.
    """

    def __init__(
        self,
        session: Session,
        store: DocumentStore,
        search: Optional[SearchBridge] = None,
        location_provider: Optional[LocationProvider] = None,
        position_min_interval_seconds: Optional[float] = None,
        presence_min_write_interval_seconds: Optional[float] = None,
    ):
        self.session = session
        self.store = store
        self.search_bridge = search
        self.location_provider = location_provider
        self.position_source = None
        if location_provider is not None:
            self.position_source = PositionSource(
                location_provider,
                min_interval_seconds=(
                    settings.position_min_interval_seconds
                    if position_min_interval_seconds is None else position_min_interval_seconds
                ),
                high_accuracy=settings.position_high_accuracy,
            )
        self.presence_min_write_interval_seconds = (
            settings.presence_min_write_interval_seconds
            if presence_min_write_interval_seconds is None else presence_min_write_interval_seconds
        )

        self.state = EngineState.IDLE
        self.itinerary_store: Optional[ItineraryStore] = None
        self.presence_store: Optional[PresenceStore] = None
        self._subscriptions: list = []
        self._pending: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []
        self._search_seq = 0
        self._started = False
        self._stopped = False

        # Read model
        self.itinerary: list[ItineraryItem] = []
        self.positions: list[PositionRecord] = []
        self.search_results: list[Candidate] = []
        self.current_position: Optional[Coordinates] = None
        self.active_view = View.ITINERARY
        self.is_searching = False
        self.last_search_error: Optional[str] = None
        self.last_error: Optional[str] = None
        self.location_warning: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.state == EngineState.ACTIVE

    @property
    def can_start(self) -> bool:
        """True until a start has succeeded; a failed start leaves it True."""
        return not self._started

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        """
        Subscribe to itinerary, presence and position.

        Either all three subscriptions end up live or none do.
        """
        if self._started:
            raise EngineError("Engine can only be started once")
        if not self.session.is_joined:
            raise EngineError("Session must join a trip before syncing")

        self._started = True
        self.itinerary_store = ItineraryStore(self.session, self.store)
        self.presence_store = PresenceStore(
            self.session,
            self.store,
            min_write_interval_seconds=self.presence_min_write_interval_seconds,
        )

        acquired = []
        try:
            acquired.append(
                await self.itinerary_store.start(self._on_itinerary, self._on_itinerary_error)
            )
            acquired.append(
                await self.presence_store.start(self._on_positions, self._on_presence_error)
            )
            if self.position_source is not None:
                acquired.append(
                    self.position_source.subscribe(self._on_fix, self._on_location_warning)
                )
        except Exception as e:
            logger.error(f"Sync engine start failed for {self.session.participant_id}: {e}")
            for subscription in acquired:
                subscription.cancel()
            self._started = False
            raise

        self._subscriptions = acquired
        self.state = EngineState.ACTIVE
        logger.info(
            f"Sync engine active for {self.session.participant_id} "
            f"({self.session.role.value}) in trip {self.session.trip_id}"
        )
        self._notify("state")

    def stop(self):
        """Cancel every subscription. Late callbacks become no-ops."""
        if not self.is_active:
            return

        self._stopped = True
        for subscription in self._subscriptions:
            try:
                subscription.cancel()
            except Exception as e:
                logger.error(f"Failed to cancel subscription {subscription!r}: {e}")
        for task in self._pending:
            task.cancel()
        self.presence_store.stop()

        self._subscriptions = []
        self._pending = set()
        self.state = EngineState.IDLE
        logger.info(f"Sync engine stopped for {self.session.participant_id}")
        self._notify("state")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.stop()

    # ------------------------------------------------------------------
    # Subscription callbacks
    # ------------------------------------------------------------------

    def _on_itinerary(self, items: list[ItineraryItem]):
        if self._stopped:
            return
        self.itinerary = items
        self._notify("itinerary")

    def _on_positions(self, records: list[PositionRecord]):
        if self._stopped:
            return
        self.positions = records
        self._notify("positions")

    def _on_itinerary_error(self, error: Exception):
        self._on_transport_error("Itinerary", error)

    def _on_presence_error(self, error: Exception):
        self._on_transport_error("Location", error)

    def _on_transport_error(self, kind: str, error: Exception):
        if self._stopped:
            return
        logger.error(f"{kind} subscription error: {error}")
        self.last_error = f"{kind} sync unavailable: {error}"
        self._notify("error")

    def _on_fix(self, coords: Coordinates):
        if self._stopped:
            return
        self.current_position = coords
        self.location_warning = None
        task = asyncio.get_running_loop().create_task(self.presence_store.publish_self(coords))
        self._pending.add(task)
        task.add_done_callback(self._publish_done)
        self._notify("current_position")

    def _publish_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Presence write failed: {error}")
            self.last_error = f"Presence write failed: {error}"

    def _on_location_warning(self, warning: LocationUnavailable):
        if self._stopped:
            return
        self.location_warning = str(warning)
        self._notify("location_warning")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_to_plan(self, candidate: Any) -> Optional[str]:
        """Add a curated spot or search result to the shared itinerary."""
        if not self.is_active:
            logger.warning("add_to_plan ignored: engine not active")
            return None
        try:
            item_id = await self.itinerary_store.add_item(candidate)
        except StoreError as e:
            logger.error(f"Adding to plan failed: {e}")
            self.last_error = str(e)
            return None
        self.set_view(View.ITINERARY)
        return item_id

    async def remove_from_plan(self, item_id: str) -> bool:
        """Remove an item from the shared itinerary."""
        if not self.is_active:
            logger.warning("remove_from_plan ignored: engine not active")
            return False
        try:
            await self.itinerary_store.remove_item(item_id)
        except StoreError as e:
            logger.error(f"Removing {item_id} from plan failed: {e}")
            self.last_error = str(e)
            return False
        return True

    async def search(self, text: str) -> list[Candidate]:
        """
        Run a search; its results replace any previous ones.

        When searches overlap, only the most recently issued one updates the
        read model. Earlier ones still return their own candidates.
        """
        if not self.is_active:
            logger.warning("search ignored: engine not active")
            return []
        if self.search_bridge is None or not (text or "").strip():
            return []

        self._search_seq += 1
        seq = self._search_seq
        self.is_searching = True
        self._notify("searching")
        try:
            outcome = await self.search_bridge.query(text)
        finally:
            if seq == self._search_seq:
                self.is_searching = False

        if self._stopped:
            return outcome.candidates
        if seq != self._search_seq:
            logger.info(f"Discarding results of superseded search '{text}'")
            return outcome.candidates
        self.search_results = outcome.candidates
        self.last_search_error = outcome.error
        self._notify("search_results")
        return outcome.candidates

    def set_view(self, view: View):
        self.active_view = View(view)
        self._notify("view")

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    @property
    def explore_spots(self) -> list[Candidate]:
        """Search results when there are any, curated spots otherwise."""
        return list(self.search_results) if self.search_results else list(CURATED_SPOTS)

    def transit_link(self) -> Optional[str]:
        """Map search for nearby transit stops around the current position."""
        if self.current_position is None:
            return None
        term = quote_plus(settings.transit_search_term)
        pos = self.current_position
        return f"https://www.google.com/maps/search/{term}/@{pos.lat},{pos.lng},16z"

    def read_model(self) -> dict:
        """Plain-dict snapshot of everything the presentation layer shows."""
        return {
            "participant_id": self.session.participant_id,
            "role": self.session.role.value,
            "trip_id": self.session.trip_id,
            "state": self.state.value,
            "active_view": self.active_view.value,
            "itinerary": [item.model_dump() for item in self.itinerary],
            "positions": [record.model_dump() for record in self.positions],
            "current_position": self.current_position.model_dump() if self.current_position else None,
            "search_results": [c.model_dump(mode="json") for c in self.search_results],
            "is_searching": self.is_searching,
            "last_search_error": self.last_search_error,
            "last_error": self.last_error,
            "location_warning": self.location_warning,
            "transit_link": self.transit_link(),
        }

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, fn: Listener):
        """Register a callback invoked as ``fn(event, engine)`` on read-model changes."""
        self._listeners.append(fn)

    def remove_listener(self, fn: Listener):
        try:
            self._listeners.remove(fn)
        except ValueError:
            pass

    def _notify(self, event: str):
        for fn in list(self._listeners):
            try:
                fn(event, self)
            except Exception as e:
                logger.error(f"Engine listener error on '{event}': {e}")


class EngineRegistry:
    """
    In-memory registry of engines by participant id.

    All engines share one document store handle, so participants of the
    same trip see each other's writes.
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        search_factory: Optional[Callable[[], SearchBridge]] = None,
    ):
        self.store = store or InMemoryDocumentStore()
        self._search_factory = search_factory
        self._search: Optional[SearchBridge] = None
        self._engines: dict[str, SyncEngine] = {}

    def _get_search(self) -> Optional[SearchBridge]:
        if self._search is None and self._search_factory is not None:
            self._search = self._search_factory()
        return self._search

    def create(self, role: Role = Role.CHILD) -> SyncEngine:
        """Create an engine for a new, unjoined participant."""
        session = Session(role=role)
        engine = SyncEngine(
            session,
            self.store,
            search=self._get_search(),
            location_provider=PushLocationProvider(),
        )
        self._engines[session.participant_id] = engine
        return engine

    def get(self, participant_id: str) -> Optional[SyncEngine]:
        return self._engines.get(participant_id)

    def delete(self, participant_id: str):
        engine = self._engines.pop(participant_id, None)
        if engine is not None:
            engine.stop()

    def shutdown(self):
        """Stop every engine."""
        for participant_id in list(self._engines):
            self.delete(participant_id)


def _default_search() -> SearchBridge:
    from .llm_client import get_llm_client
    return SearchBridge(get_llm_client())


# Global engine registry
engine_registry = EngineRegistry(search_factory=_default_search)
