"""
API Routes for the trip sync engine.
"""
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import Any, Optional

from ..errors import EngineError, SessionError, StoreError
from ..models.session import Role, normalize_trip_id
from ..services.position_source import PushLocationProvider
from ..services.sync_engine import SyncEngine, View, engine_registry


router = APIRouter(prefix="/api", tags=["trip-sync"])


# Request/Response Models
class CreateParticipantRequest(BaseModel):
    role: Role = Role.CHILD


class CreateParticipantResponse(BaseModel):
    participant_id: str
    role: str
    state: str


class JoinRequest(BaseModel):
    trip_id: str


class AddToPlanRequest(BaseModel):
    """Loosely typed; the itinerary store coerces whatever arrives."""
    name: Optional[Any] = None
    description: Optional[Any] = None
    category: Optional[Any] = None
    recommended_time: Optional[Any] = None


class PositionFixRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class PositionErrorRequest(BaseModel):
    message: str = "Position unavailable"


class SearchRequest(BaseModel):
    query: str


class ViewRequest(BaseModel):
    view: View


def _get_engine(participant_id: str) -> SyncEngine:
    engine = engine_registry.get(participant_id)
    if not engine:
        raise HTTPException(status_code=404, detail="Participant not found")
    return engine


def _get_active_engine(participant_id: str) -> SyncEngine:
    engine = _get_engine(participant_id)
    if not engine.is_active:
        raise HTTPException(status_code=400, detail="Join a trip first")
    return engine


def _get_provider(engine: SyncEngine) -> PushLocationProvider:
    provider = engine.location_provider
    if not isinstance(provider, PushLocationProvider):
        raise HTTPException(status_code=400, detail="Participant does not accept pushed positions")
    return provider


# Endpoints

@router.post("/participants", response_model=CreateParticipantResponse)
async def create_participant(request: CreateParticipantRequest):
    """Create a participant that has not joined a trip yet."""
    engine = engine_registry.create(request.role)
    return CreateParticipantResponse(
        participant_id=engine.session.participant_id,
        role=engine.session.role.value,
        state=engine.session.state.value,
    )


@router.post("/participants/{participant_id}/join")
async def join_trip(participant_id: str, request: JoinRequest):
    """Confirm the trip code and start syncing."""
    engine = _get_engine(participant_id)
    session = engine.session
    # A start that failed after joining may be retried with the same code
    retrying = (
        session.is_joined
        and engine.can_start
        and session.trip_id == normalize_trip_id(request.trip_id)
    )
    try:
        if not retrying:
            session.join(request.trip_id)
        await engine.start()
    except (SessionError, EngineError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Trip storage unavailable: {e}")

    return {
        "success": True,
        "trip_id": engine.session.trip_id,
        "state": engine.state.value,
    }


@router.post("/participants/{participant_id}/leave")
async def leave_trip(participant_id: str):
    """Stop syncing and forget the participant."""
    _get_engine(participant_id)
    engine_registry.delete(participant_id)
    return {"success": True}


@router.get("/participants/{participant_id}/state")
async def get_state(participant_id: str):
    """Get the whole read model."""
    return _get_engine(participant_id).read_model()


@router.get("/participants/{participant_id}/itinerary")
async def get_itinerary(participant_id: str):
    """Get the time-ordered itinerary."""
    engine = _get_active_engine(participant_id)
    return {"itinerary": [item.model_dump() for item in engine.itinerary]}


@router.post("/participants/{participant_id}/itinerary")
async def add_to_plan(participant_id: str, request: AddToPlanRequest):
    """Add a spot or search result to the itinerary."""
    engine = _get_active_engine(participant_id)
    item_id = await engine.add_to_plan(request.model_dump(exclude_none=True))
    if item_id is None:
        raise HTTPException(status_code=503, detail=engine.last_error or "Itinerary unavailable")
    return {"success": True, "id": item_id, "active_view": engine.active_view.value}


@router.delete("/participants/{participant_id}/itinerary/{item_id}")
async def remove_from_plan(participant_id: str, item_id: str):
    """Remove an item from the itinerary."""
    engine = _get_active_engine(participant_id)
    removed = await engine.remove_from_plan(item_id)
    if not removed:
        raise HTTPException(status_code=503, detail=engine.last_error or "Itinerary unavailable")
    return {"success": True}


@router.get("/participants/{participant_id}/positions")
async def get_positions(participant_id: str):
    """Get everyone's last known position."""
    engine = _get_active_engine(participant_id)
    return {
        "positions": [record.model_dump() for record in engine.positions],
        "current_position": engine.current_position.model_dump() if engine.current_position else None,
    }


@router.post("/participants/{participant_id}/position")
async def report_position(participant_id: str, request: PositionFixRequest):
    """Device reports a new position fix."""
    engine = _get_active_engine(participant_id)
    _get_provider(engine).push(request.lat, request.lng)
    return {"success": True}


@router.post("/participants/{participant_id}/position/error")
async def report_position_error(participant_id: str, request: PositionErrorRequest):
    """Device reports that no position fix is available."""
    engine = _get_active_engine(participant_id)
    _get_provider(engine).push_error(request.message)
    return {"success": True, "location_warning": engine.location_warning}


@router.post("/participants/{participant_id}/search")
async def search(participant_id: str, request: SearchRequest):
    """Search for events; results replace the previous search."""
    engine = _get_active_engine(participant_id)
    results = await engine.search(request.query)
    # A blank query runs nothing, so an earlier error does not apply
    error = engine.last_search_error if request.query.strip() else None
    return {
        "results": [c.model_dump(mode="json") for c in results],
        "error": error,
    }


@router.get("/participants/{participant_id}/explore")
async def explore(participant_id: str):
    """Search results, or the curated spots when there are none."""
    engine = _get_engine(participant_id)
    return {"spots": [c.model_dump(mode="json") for c in engine.explore_spots]}


@router.put("/participants/{participant_id}/view")
async def set_view(participant_id: str, request: ViewRequest):
    """Switch the focused screen."""
    engine = _get_engine(participant_id)
    engine.set_view(request.view)
    return {"active_view": engine.active_view.value}
