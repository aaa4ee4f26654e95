"""
Remote Collection - Live snapshot subscriptions over a document store.

Every change to a collection is pushed to its subscribers as the full,
ordered list of documents. Mutations never touch a local view directly;
callers see their own writes only when the next snapshot arrives.
"""
import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Callable, Generic, Optional, TypeVar

from pydantic import ValidationError

from ..errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SnapshotCallback = Callable[[list[dict]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """Handle for one live subscription. Cancelling it is final."""

    def __init__(
        self,
        key: str,
        on_change: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        on_cancel: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.key = key
        self._on_change = on_change
        self._on_error = on_error
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self):
        """Stop delivering snapshots. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        if self._on_cancel is not None:
            self._on_cancel(self)

    def deliver(self, snapshot: list[dict]):
        """Push a snapshot to the subscriber unless cancelled."""
        if not self._active:
            return
        self._on_change(snapshot)

    def fail(self, error: Exception):
        """Report a transport failure; the subscription goes inert."""
        if not self._active:
            return
        self.cancel()
        if self._on_error is not None:
            self._on_error(error)
        else:
            logger.error(f"Unhandled subscription error on {self.key}: {error}")


class DocumentStore(ABC):
    """Backing store contract: push subscriptions plus keyed mutations."""

    @abstractmethod
    async def subscribe(
        self,
        key: str,
        on_change: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Subscribe to a collection; the current snapshot is pushed first."""

    @abstractmethod
    async def create(self, key: str, data: dict) -> str:
        """Add a document and return its store-assigned id."""

    @abstractmethod
    async def set(self, key: str, doc_id: str, data: dict):
        """Upsert a document, replacing it entirely."""

    @abstractmethod
    async def delete(self, key: str, doc_id: str):
        """Delete a document. Deleting a missing id is not an error."""


class InMemoryDocumentStore(DocumentStore):
    """
    Process-local document store.

    Documents keep insertion order per collection. Snapshots are delivered
    on the event loop after the mutating call returns, so a writer never
    observes its own change synchronously.
    """

    def __init__(self, delivery_delay: float = 0.0):
        self.delivery_delay = delivery_delay
        self._collections: dict[str, dict[str, dict]] = defaultdict(dict)
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)
        self._closed = False

    def documents(self, key: str) -> list[dict]:
        """Current contents of a collection (copies)."""
        return [
            {"id": doc_id, **copy.deepcopy(data)}
            for doc_id, data in self._collections.get(key, {}).items()
        ]

    def subscriber_count(self, key: str) -> int:
        return sum(1 for sub in self._subscribers.get(key, []) if sub.active)

    async def subscribe(
        self,
        key: str,
        on_change: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        self._check_open()
        subscription = Subscription(key, on_change, on_error, on_cancel=self._detach)
        self._subscribers[key].append(subscription)
        self._schedule(subscription.deliver, self.documents(key))
        logger.debug(f"Subscribed to {key} ({self.subscriber_count(key)} active)")
        return subscription

    async def create(self, key: str, data: dict) -> str:
        self._check_open()
        doc_id = uuid.uuid4().hex
        self._collections[key][doc_id] = copy.deepcopy(data)
        self._broadcast(key)
        return doc_id

    async def set(self, key: str, doc_id: str, data: dict):
        self._check_open()
        # Existing ids keep their position in the collection
        self._collections[key][doc_id] = copy.deepcopy(data)
        self._broadcast(key)

    async def delete(self, key: str, doc_id: str):
        self._check_open()
        if self._collections.get(key, {}).pop(doc_id, None) is None:
            logger.debug(f"Delete of missing document {doc_id} in {key}")
            return
        self._broadcast(key)

    def fail(self, key: str, error: Exception):
        """Deliver a transport failure to every subscriber of a collection."""
        for subscription in list(self._subscribers.get(key, [])):
            self._schedule(subscription.fail, error)

    def close(self):
        """Fail all live subscriptions and refuse further operations."""
        self._closed = True
        for key in list(self._subscribers):
            self.fail(key, StoreError("Document store closed"))

    def _check_open(self):
        if self._closed:
            raise StoreError("Document store closed")

    def _detach(self, subscription: Subscription):
        subscribers = self._subscribers.get(subscription.key, [])
        if subscription in subscribers:
            subscribers.remove(subscription)

    def _broadcast(self, key: str):
        snapshot = self.documents(key)
        for subscription in list(self._subscribers.get(key, [])):
            self._schedule(subscription.deliver, copy.deepcopy(snapshot))

    def _schedule(self, callback: Callable, *args):
        loop = asyncio.get_running_loop()
        if self.delivery_delay > 0:
            loop.call_later(self.delivery_delay, callback, *args)
        else:
            loop.call_soon(callback, *args)


class RemoteCollection(Generic[T]):
    """A typed view of one collection in a document store."""

    def __init__(self, store: DocumentStore, key: str, parse: Callable[[dict], T]):
        self.store = store
        self.key = key
        self._parse = parse

    async def subscribe(
        self,
        on_change: Callable[[list[T]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Subscribe with documents parsed into models; bad documents are skipped."""

        def _on_snapshot(raw_docs: list[dict]):
            items = []
            for raw in raw_docs:
                try:
                    items.append(self._parse(raw))
                except ValidationError as e:
                    logger.warning(f"Skipping malformed document {raw.get('id')} in {self.key}: {e}")
            on_change(items)

        return await self.store.subscribe(self.key, _on_snapshot, on_error)

    async def create(self, data: dict) -> str:
        return await self.store.create(self.key, data)

    async def set(self, doc_id: str, data: dict):
        await self.store.set(self.key, doc_id, data)

    async def delete(self, doc_id: str):
        await self.store.delete(self.key, doc_id)
