"""
Itinerary Store - The shared, time-ordered plan of one trip.
"""
import logging
import time
from typing import Any, Callable, Optional

from pydantic import ValidationError

from .remote_collection import DocumentStore, ErrorCallback, RemoteCollection, Subscription
from ..models.itinerary import Candidate, ItineraryItem
from ..models.session import CollectionPurpose, Session

logger = logging.getLogger(__name__)

CANDIDATE_FIELDS = ("name", "description", "desc", "category", "cat", "recommended_time", "time")


def now_ms() -> int:
    return int(time.time() * 1000)


def coerce_candidate(partial: Any) -> Candidate:
    """Turn whatever the caller passed into a Candidate; never rejects."""
    if isinstance(partial, Candidate):
        return partial

    if isinstance(partial, dict):
        raw = partial
    else:
        raw = {name: getattr(partial, name, None) for name in CANDIDATE_FIELDS}

    try:
        return Candidate.from_raw(raw)
    except ValidationError as e:
        logger.warning(f"Coercing malformed plan entry to defaults: {e}")
        name = raw.get("name")
        return Candidate(name="" if name is None else str(name))


def sort_items(items: list[ItineraryItem]) -> list[ItineraryItem]:
    """
    Order by time string, then creation order.

    Python's sort is stable, so items equal on both keys stay in snapshot order.
    """
    return sorted(items, key=lambda item: (item.sort_time, item.order))


class ItineraryStore:
    """Adds, removes and projects the items of the trip itinerary."""

    def __init__(
        self,
        session: Session,
        store: DocumentStore,
        clock: Callable[[], int] = now_ms,
    ):
        self.collection: RemoteCollection[ItineraryItem] = RemoteCollection(
            store,
            session.collection_key(CollectionPurpose.ITINERARY),
            ItineraryItem.model_validate,
        )
        self._clock = clock
        self._items: list[ItineraryItem] = []
        self._subscription: Optional[Subscription] = None
        self._on_update: Optional[Callable[[list[ItineraryItem]], None]] = None

    async def start(
        self,
        on_update: Optional[Callable[[list[ItineraryItem]], None]] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Subscribe to the itinerary collection."""
        self._on_update = on_update
        self._subscription = await self.collection.subscribe(self._apply_snapshot, on_error)
        return self._subscription

    def stop(self):
        if self._subscription is not None:
            self._subscription.cancel()

    def _apply_snapshot(self, items: list[ItineraryItem]):
        self._items = sort_items(items)
        if self._on_update is not None:
            self._on_update(self.projected_list())

    async def add_item(self, partial: Any) -> str:
        """Create an itinerary document, filling defaults for missing fields."""
        candidate = coerce_candidate(partial)
        data = candidate.to_item_fields()
        data["order"] = self._clock()
        doc_id = await self.collection.create(data)
        logger.info(f"Added '{data['name']}' at {data['time']} to {self.collection.key}")
        return doc_id

    async def remove_item(self, item_id: str):
        """Delete an itinerary document; unknown ids are ignored by the store."""
        await self.collection.delete(item_id)
        logger.info(f"Removed {item_id} from {self.collection.key}")

    def projected_list(self) -> list[ItineraryItem]:
        return list(self._items)
