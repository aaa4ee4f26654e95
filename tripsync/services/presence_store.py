"""
Presence Store - One live position document per participant.

Each participant only ever writes the document keyed by its own id.
Writes happen once per fix unless a minimum write interval is configured.
A fix held back by that interval is written when the interval expires,
even if no later fix arrives.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

from .remote_collection import DocumentStore, ErrorCallback, RemoteCollection, Subscription
from ..models.presence import Coordinates, PositionRecord
from ..models.session import CollectionPurpose, Session

logger = logging.getLogger(__name__)


class PresenceStore:
    """Publishes the local position and projects everyone's positions."""

    def __init__(
        self,
        session: Session,
        store: DocumentStore,
        min_write_interval_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        wall_clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ):
        self.session = session
        self.collection: RemoteCollection[PositionRecord] = RemoteCollection(
            store,
            session.collection_key(CollectionPurpose.PRESENCE),
            PositionRecord.model_validate,
        )
        self.min_write_interval_seconds = min_write_interval_seconds
        self._clock = clock
        self._wall_clock_ms = wall_clock_ms
        self._records: list[PositionRecord] = []
        self._subscription: Optional[Subscription] = None
        self._on_update: Optional[Callable[[list[PositionRecord]], None]] = None
        self._last_write_at: Optional[float] = None
        self._held_back: Optional[Coordinates] = None
        self._trailing: Optional[asyncio.TimerHandle] = None
        self._trailing_tasks: set[asyncio.Task] = set()
        self.current_position: Optional[Coordinates] = None

    @property
    def has_pending_write(self) -> bool:
        return self._held_back is not None

    async def start(
        self,
        on_update: Optional[Callable[[list[PositionRecord]], None]] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Subscribe to the presence collection."""
        self._on_update = on_update
        self._subscription = await self.collection.subscribe(self._apply_snapshot, on_error)
        return self._subscription

    def stop(self):
        """Cancel the subscription and drop any held-back write."""
        if self._subscription is not None:
            self._subscription.cancel()
        self._cancel_trailing()
        for task in self._trailing_tasks:
            task.cancel()
        self._trailing_tasks = set()
        self._held_back = None

    def _apply_snapshot(self, records: list[PositionRecord]):
        self._records = records
        if self._on_update is not None:
            self._on_update(self.projected_positions())

    async def publish_self(self, coords: Coordinates) -> bool:
        """
        Upsert this participant's position document.

        Returns False when the write was held back by the minimum write
        interval. The held-back fix is written when the interval expires,
        unless a newer fix replaces it first.
        """
        self.current_position = coords
        now = self._clock()
        if (
            self.min_write_interval_seconds > 0
            and self._last_write_at is not None
            and now - self._last_write_at < self.min_write_interval_seconds
        ):
            self._held_back = coords
            self._schedule_trailing(self.min_write_interval_seconds - (now - self._last_write_at))
            logger.debug(f"Presence write throttled for {self.session.participant_id}")
            return False

        self._held_back = None
        self._cancel_trailing()
        await self._write(coords, now)
        return True

    async def flush(self) -> bool:
        """Write the held-back fix now, if there is one."""
        coords = self._held_back
        if coords is None:
            return False
        self._held_back = None
        self._cancel_trailing()
        await self._write(coords, self._clock())
        return True

    async def _write(self, coords: Coordinates, now: float):
        self._last_write_at = now
        await self.collection.set(
            self.session.participant_id,
            {
                "name": self.session.role.value,
                "lat": coords.lat,
                "lng": coords.lng,
                "updatedAt": self._wall_clock_ms(),
            },
        )

    def _schedule_trailing(self, delay: float):
        # One timer at a time; it writes whatever fix is held back when it fires
        if self._trailing is not None:
            return
        loop = asyncio.get_running_loop()
        self._trailing = loop.call_later(max(delay, 0.0), self._on_trailing)

    def _cancel_trailing(self):
        if self._trailing is not None:
            self._trailing.cancel()
            self._trailing = None

    def _on_trailing(self):
        self._trailing = None
        if self._held_back is None:
            return
        task = asyncio.get_running_loop().create_task(self.flush())
        self._trailing_tasks.add(task)
        task.add_done_callback(self._trailing_done)

    def _trailing_done(self, task: asyncio.Task):
        self._trailing_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Held-back presence write failed: {error}")

    def projected_positions(self) -> list[PositionRecord]:
        """All known participant positions, the local one included."""
        return list(self._records)
