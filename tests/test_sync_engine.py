"""Tests for the sync engine orchestration."""
import asyncio
import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from tripsync.errors import EngineError, StoreError
from tripsync.models.itinerary import CURATED_SPOTS, CandidateSource
from tripsync.models.presence import Coordinates
from tripsync.models.session import Role, Session
from tripsync.services.position_source import PushLocationProvider
from tripsync.services.search_bridge import SearchBridge
from tripsync.services.sync_engine import EngineRegistry, EngineState, SyncEngine, View


def make_search(body):
    llm = MagicMock()
    llm.complete = AsyncMock(return_value=body)
    return SearchBridge(llm, timeout_seconds=1)


@pytest.fixture
def make_engine(make_session, store):
    def _make(trip_id="PAPA-LISA", role=Role.CHILD, search=None, provider=None, **kwargs):
        return SyncEngine(
            make_session(trip_id, role),
            store,
            search=search,
            location_provider=provider if provider is not None else PushLocationProvider(),
            **kwargs,
        )
    return _make


class TestLifecycle:
    """Test IDLE/ACTIVE transitions."""

    @pytest.mark.asyncio
    async def test_start_requires_join(self, store):
        """An unjoined session cannot be synced."""
        engine = SyncEngine(Session(), store)

        with pytest.raises(EngineError):
            await engine.start()
        assert engine.state == EngineState.IDLE

    @pytest.mark.asyncio
    async def test_start_once(self, make_engine):
        """The engine becomes active exactly once."""
        engine = make_engine()
        await engine.start()
        assert engine.is_active

        with pytest.raises(EngineError):
            await engine.start()

        engine.stop()
        with pytest.raises(EngineError):
            await engine.start()

    @pytest.mark.asyncio
    async def test_stop_releases_everything(self, make_engine, store):
        """Stop cancels both collections and the location watch."""
        provider = PushLocationProvider()
        engine = make_engine(provider=provider)
        await engine.start()
        itinerary_key = engine.itinerary_store.collection.key
        presence_key = engine.presence_store.collection.key

        engine.stop()
        engine.stop()

        assert engine.state == EngineState.IDLE
        assert store.subscriber_count(itinerary_key) == 0
        assert store.subscriber_count(presence_key) == 0
        assert provider.active_watches == 0

    @pytest.mark.asyncio
    async def test_failed_start_rolls_back(self, make_engine, store):
        """If the location watch cannot be set up, no subscription is left behind."""
        provider = PushLocationProvider()
        provider.watch = MagicMock(side_effect=RuntimeError("location service crashed"))
        engine = make_engine(provider=provider)

        with pytest.raises(RuntimeError):
            await engine.start()

        assert engine.state == EngineState.IDLE
        assert store.subscriber_count(engine.itinerary_store.collection.key) == 0
        assert store.subscriber_count(engine.presence_store.collection.key) == 0

    @pytest.mark.asyncio
    async def test_async_context_manager(self, make_engine):
        """Leaving the block tears the engine down."""
        async with make_engine() as engine:
            assert engine.is_active
        assert engine.state == EngineState.IDLE


class TestTeardownCompleteness:
    """Late callbacks after stop never change engine state."""

    @pytest.mark.asyncio
    async def test_late_callbacks_are_noops(self, make_engine, settle):
        provider = PushLocationProvider()
        engine = make_engine(provider=provider)
        other = make_engine(role=Role.PARENT)
        await engine.start()
        await other.start()
        await settle()

        on_fix, on_error = list(provider._watches.values())[0]

        # Snapshot scheduled before stop, delivered after it
        await other.add_to_plan({"name": "late"})
        engine.stop()
        await settle()

        # Callbacks arriving from all three sources after stop
        on_fix(Coordinates(lat=50.0, lng=6.9))
        on_error(Exception("late"))
        await other.add_to_plan({"name": "later"})
        other.location_provider.push(50.1, 6.8)
        await settle()

        assert engine.itinerary == []
        assert engine.positions == []
        assert engine.current_position is None
        assert engine.location_warning is None
        assert len(other.itinerary) == 2


class TestMutations:
    """Test the plan mutation entry points."""

    @pytest.mark.asyncio
    async def test_add_to_plan_switches_view(self, make_engine, settle):
        """Adding focuses the itinerary view; the item arrives by snapshot."""
        engine = make_engine()
        await engine.start()
        engine.set_view(View.EXPLORE)

        item_id = await engine.add_to_plan(CURATED_SPOTS[2])

        assert engine.active_view == View.ITINERARY
        assert engine.itinerary == []
        await settle()
        assert engine.itinerary[0].id == item_id
        assert engine.itinerary[0].category == "Insta"
        assert engine.itinerary[0].notes == "Die klassische Love-Lock-Brücke."

    @pytest.mark.asyncio
    async def test_remove_from_plan(self, make_engine, settle):
        """Removing deletes the item; repeating it is harmless."""
        engine = make_engine()
        await engine.start()
        item_id = await engine.add_to_plan({"name": "X"})

        assert await engine.remove_from_plan(item_id)
        assert await engine.remove_from_plan(item_id)
        await settle()

        assert engine.itinerary == []

    @pytest.mark.asyncio
    async def test_operations_before_start_are_noops(self, make_engine, store):
        """Nothing is written while the engine is idle."""
        engine = make_engine(search=make_search("[]"))

        assert await engine.add_to_plan({"name": "X"}) is None
        assert await engine.remove_from_plan("x") is False
        assert await engine.search("x") == []
        assert store.documents(engine.session.collection_key("itin")) == []

    @pytest.mark.asyncio
    async def test_store_failure_is_surfaced(self, make_engine, store):
        """A failing write is logged and reported, not raised."""
        engine = make_engine()
        await engine.start()
        store.create = AsyncMock(side_effect=StoreError("offline"))

        assert await engine.add_to_plan({"name": "X"}) is None
        assert engine.last_error == "offline"

    @pytest.mark.asyncio
    async def test_listeners_notified(self, make_engine, settle):
        """Listeners hear about read-model changes; a failing one is isolated."""
        engine = make_engine()
        events = []

        def broken(event, eng):
            raise ValueError("listener bug")

        engine.add_listener(broken)
        engine.add_listener(lambda event, eng: events.append(event))
        await engine.start()
        await engine.add_to_plan({"name": "X"})
        await settle()

        assert "state" in events
        assert "view" in events
        assert "itinerary" in events

        engine.remove_listener(broken)
        engine.remove_listener(broken)


class TestPresence:
    """Test position forwarding."""

    @pytest.mark.asyncio
    async def test_fixes_become_one_record(self, make_engine, settle):
        """Every fix overwrites the participant's single record."""
        provider = PushLocationProvider()
        engine = make_engine(provider=provider, role=Role.PARENT)
        await engine.start()

        provider.push(50.94, 6.95)
        provider.push(50.95, 6.96)
        await settle()

        assert len(engine.positions) == 1
        record = engine.positions[0]
        assert record.id == engine.session.participant_id
        assert (record.lat, record.lng) == (50.95, 6.96)
        assert record.name == "Parent"
        assert engine.transit_link() == (
            "https://www.google.com/maps/search/KVB+Haltestelle/@50.95,6.96,16z"
        )

    @pytest.mark.asyncio
    async def test_location_loss_is_a_warning(self, make_engine, settle):
        """Losing GPS records a warning and keeps the engine active."""
        provider = PushLocationProvider()
        engine = make_engine(provider=provider)
        await engine.start()

        provider.push_error("permission denied")
        assert engine.is_active
        assert engine.location_warning == "permission denied"

        provider.push(50.9, 6.9)
        await settle()
        assert engine.location_warning is None
        assert len(engine.positions) == 1

    @pytest.mark.asyncio
    async def test_transport_error_recorded(self, make_engine, store, settle):
        """A presence transport failure is surfaced and the view stays as it was."""
        engine = make_engine()
        await engine.start()
        await settle()

        store.fail(engine.presence_store.collection.key, StoreError("unreachable"))
        await settle()

        assert "unreachable" in engine.last_error
        assert engine.is_active


class TestSearch:
    """Test search result caching."""

    @pytest.mark.asyncio
    async def test_search_failure_isolation(self, make_engine):
        """An invalid body resolves to an empty list without raising."""
        engine = make_engine(search=make_search("not valid json"))
        await engine.start()

        results = await engine.search("x")

        assert results == []
        assert engine.search_results == []
        assert engine.last_search_error
        assert not engine.is_searching

    @pytest.mark.asyncio
    async def test_second_search_replaces(self, make_engine):
        """Results are replaced, never merged."""
        search = make_search(json.dumps([{"name": "A"}, {"name": "B"}]))
        engine = make_engine(search=search)
        await engine.start()

        await engine.search("first")
        search.llm.complete.return_value = json.dumps({"events": [{"name": "C"}]})
        await engine.search("second")

        assert [c.name for c in engine.search_results] == ["C"]
        assert engine.last_search_error is None

    @pytest.mark.asyncio
    async def test_latest_issued_search_wins(self, make_engine):
        """A slow earlier search never overwrites a later one's results."""
        release = asyncio.Event()

        async def complete(prompt, json_mode=True):
            if "slow" in prompt:
                await release.wait()
                return json.dumps([{"name": "OLD"}])
            return json.dumps([{"name": "NEW"}])

        search = make_search("[]")
        search.llm.complete = AsyncMock(side_effect=complete)
        engine = make_engine(search=search)
        await engine.start()

        slow = asyncio.create_task(engine.search("slow"))
        await asyncio.sleep(0)
        await engine.search("fast")

        assert [c.name for c in engine.search_results] == ["NEW"]
        assert not engine.is_searching

        release.set()
        assert [c.name for c in await slow] == ["OLD"]
        assert [c.name for c in engine.search_results] == ["NEW"]
        assert engine.last_search_error is None
        assert not engine.is_searching

    @pytest.mark.asyncio
    async def test_earlier_search_keeps_flag_while_latest_runs(self, make_engine):
        """is_searching stays set until the latest search finishes."""
        release = asyncio.Event()

        async def complete(prompt, json_mode=True):
            if "slow" in prompt:
                await release.wait()
            return json.dumps([{"name": "A"}])

        search = make_search("[]")
        search.llm.complete = AsyncMock(side_effect=complete)
        engine = make_engine(search=search)
        await engine.start()

        await engine.search("fast")
        slow = asyncio.create_task(engine.search("slow"))
        await asyncio.sleep(0)
        assert engine.is_searching

        release.set()
        await slow
        assert not engine.is_searching

    @pytest.mark.asyncio
    async def test_explore_falls_back_to_curated(self, make_engine):
        """Without search results the curated spots are offered."""
        search = make_search(json.dumps([{"name": "A"}]))
        engine = make_engine(search=search)
        await engine.start()

        assert engine.explore_spots == CURATED_SPOTS
        await engine.search("a")
        assert [c.name for c in engine.explore_spots] == ["A"]

    @pytest.mark.asyncio
    async def test_search_result_flows_through_add(self, make_engine, settle):
        """A search result is added exactly like a curated spot."""
        search = make_search(json.dumps([
            {"name": "Flohmarkt", "description": "Vinyl", "category": "Shopping", "recommended_time": "10:00"}
        ]))
        engine = make_engine(search=search)
        await engine.start()

        results = await engine.search("markt")
        assert results[0].source == CandidateSource.SEARCH
        await engine.add_to_plan(results[0])
        await settle()

        item = engine.itinerary[0]
        assert (item.name, item.category, item.time, item.notes) == ("Flohmarkt", "Shopping", "10:00", "Vinyl")


class TestNamespaceIsolation:
    """Two trips on one store never see each other."""

    @pytest.mark.asyncio
    async def test_trips_are_isolated(self, make_engine, settle):
        a_provider, b_provider = PushLocationProvider(), PushLocationProvider()
        a = make_engine(trip_id="TRIP-A", provider=a_provider)
        b = make_engine(trip_id="TRIP-B", provider=b_provider)
        await a.start()
        await b.start()

        await a.add_to_plan({"name": "only A"})
        a_provider.push(50.9, 6.9)
        await settle()

        assert [i.name for i in a.itinerary] == ["only A"]
        assert len(a.positions) == 1
        assert b.itinerary == []
        assert b.positions == []

    @pytest.mark.asyncio
    async def test_same_trip_shares_state(self, make_engine, settle):
        """Participants of one trip see each other's items and positions."""
        dad_provider, kid_provider = PushLocationProvider(), PushLocationProvider()
        dad = make_engine(role=Role.PARENT, provider=dad_provider)
        kid = make_engine(role=Role.CHILD, provider=kid_provider)
        await dad.start()
        await kid.start()

        await dad.add_to_plan({"name": "Dom", "recommended_time": "10:00"})
        await kid.add_to_plan({"name": "Skatepark", "recommended_time": "09:00"})
        dad_provider.push(50.94, 6.95)
        kid_provider.push(50.92, 6.96)
        await settle()

        for engine in (dad, kid):
            assert [i.name for i in engine.itinerary] == ["Skatepark", "Dom"]
            assert {p.name for p in engine.positions} == {"Parent", "Child"}


class TestEngineRegistry:
    """Test the engine registry."""

    @pytest.mark.asyncio
    async def test_create_get_delete(self, store):
        registry = EngineRegistry(store=store)
        engine = registry.create(Role.PARENT)

        assert registry.get(engine.session.participant_id) is engine
        assert engine.session.role == Role.PARENT

        engine.session.join("A")
        await engine.start()
        registry.delete(engine.session.participant_id)

        assert registry.get(engine.session.participant_id) is None
        assert engine.state == EngineState.IDLE

    def test_get_nonexistent(self, store):
        assert EngineRegistry(store=store).get("nope") is None
