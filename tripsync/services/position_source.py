"""
Position Source - Cancellable, rate-limited stream of position fixes.

A LocationProvider stands in for the device location service. PositionSource
owns the watch it acquires on the provider and releases it when the
subscription is cancelled or its scope exits, normally or with an error.
"""
import logging
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from itertools import count
from typing import Callable, Optional

from ..errors import LocationUnavailable
from ..models.presence import Coordinates

logger = logging.getLogger(__name__)

FixCallback = Callable[[Coordinates], None]
WarningCallback = Callable[[LocationUnavailable], None]


class LocationProvider(ABC):
    """Device location service contract."""

    @abstractmethod
    def watch(
        self,
        on_fix: FixCallback,
        on_error: Callable[[Exception], None],
        high_accuracy: bool = True,
    ) -> int:
        """Start delivering fixes; returns a watch id."""

    @abstractmethod
    def clear_watch(self, watch_id: int):
        """Stop a watch and release the underlying resource."""


class PushLocationProvider(LocationProvider):
    """Fixes are pushed in from outside, e.g. a device posting to the API."""

    def __init__(self):
        self._watches: dict[int, tuple[FixCallback, Callable[[Exception], None]]] = {}
        self._ids = count(1)
        self.high_accuracy_requested = False

    @property
    def active_watches(self) -> int:
        return len(self._watches)

    def watch(self, on_fix, on_error, high_accuracy=True) -> int:
        watch_id = next(self._ids)
        self._watches[watch_id] = (on_fix, on_error)
        self.high_accuracy_requested = high_accuracy
        return watch_id

    def clear_watch(self, watch_id: int):
        self._watches.pop(watch_id, None)

    def push(self, lat: float, lng: float):
        """Deliver a fix to every active watch."""
        coords = Coordinates(lat=lat, lng=lng)
        for on_fix, _ in list(self._watches.values()):
            on_fix(coords)

    def push_error(self, message: str = "Position unavailable"):
        """Report that no fix can be obtained right now."""
        error = LocationUnavailable(message)
        for _, on_error in list(self._watches.values()):
            on_error(error)


class PositionSubscription:
    """Handle for one watch on a LocationProvider."""

    def __init__(self, provider: LocationProvider, watch_id: Optional[int]):
        self._provider = provider
        self._watch_id = watch_id
        self._active = watch_id is not None

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self):
        """Release the provider watch. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._provider.clear_watch(self._watch_id)
        logger.debug(f"Cleared location watch {self._watch_id}")


class PositionSource:
    """
    Wraps a LocationProvider into subscriptions with a minimum emit interval.

    Consecutive identical fixes are dropped, as are fixes arriving less than
    `min_interval_seconds` after the last emitted one.
    """

    def __init__(
        self,
        provider: LocationProvider,
        min_interval_seconds: float = 0.0,
        high_accuracy: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.min_interval_seconds = min_interval_seconds
        self.high_accuracy = high_accuracy
        self._clock = clock

    def subscribe(
        self,
        on_fix: FixCallback,
        on_warning: Optional[WarningCallback] = None,
    ) -> PositionSubscription:
        last_emitted: list = [None, None]  # [coords, timestamp]
        subscription: Optional[PositionSubscription] = None

        def _on_fix(coords: Coordinates):
            if subscription is None or not subscription.active:
                return
            now = self._clock()
            previous, previous_at = last_emitted
            if previous is not None and previous == coords:
                return
            if (
                previous_at is not None
                and self.min_interval_seconds > 0
                and now - previous_at < self.min_interval_seconds
            ):
                return
            last_emitted[0], last_emitted[1] = coords, now
            on_fix(coords)

        def _on_error(error: Exception):
            if subscription is not None and not subscription.active:
                return
            warning = error if isinstance(error, LocationUnavailable) else LocationUnavailable(str(error))
            logger.warning(f"GPS not available: {warning}")
            if on_warning is not None:
                on_warning(warning)

        try:
            watch_id = self.provider.watch(_on_fix, _on_error, high_accuracy=self.high_accuracy)
        except LocationUnavailable as e:
            _on_error(e)
            subscription = PositionSubscription(self.provider, None)
            return subscription

        subscription = PositionSubscription(self.provider, watch_id)
        return subscription

    @asynccontextmanager
    async def watch(
        self,
        on_fix: FixCallback,
        on_warning: Optional[WarningCallback] = None,
    ):
        """Scoped subscription; the watch is released when the block exits."""
        subscription = self.subscribe(on_fix, on_warning)
        try:
            yield subscription
        finally:
            subscription.cancel()
