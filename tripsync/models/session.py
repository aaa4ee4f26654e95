"""
Session management - Tracks trip membership and collection addressing.
"""
from pydantic import BaseModel, Field
from typing import Optional, Union
from datetime import datetime
from enum import Enum
import uuid

from ..config import settings
from ..errors import SessionError


class SessionState(str, Enum):
    """Current state of the session."""
    UNJOINED = "unjoined"  # Trip code not confirmed yet
    JOINED = "joined"  # Participating in a trip


class Role(str, Enum):
    """Display label shown next to a participant's pin."""
    PARENT = "Parent"
    CHILD = "Child"


class CollectionPurpose(str, Enum):
    """Purpose tag that separates the data kinds of one trip."""
    ITINERARY = "itin"
    PRESENCE = "loc"


def normalize_trip_id(trip_id: str) -> str:
    """Trip codes are typed by hand, so compare them case-insensitively."""
    return (trip_id or "").strip().upper()


class Session(BaseModel):
    """Local participant and the trip it belongs to."""
    participant_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Stable opaque participant identifier"
    )
    role: Role = Field(
        default=Role.CHILD,
        description="Cosmetic role label"
    )
    trip_id: str = Field(
        default="",
        description="Shared trip code"
    )
    namespace: str = Field(
        default_factory=lambda: settings.app_id,
        description="Application namespace prefixing every collection key"
    )
    state: SessionState = Field(
        default=SessionState.UNJOINED,
        description="Lifecycle state"
    )
    created_at: datetime = Field(default_factory=datetime.now)
    joined_at: Optional[datetime] = None

    @property
    def is_joined(self) -> bool:
        return self.state == SessionState.JOINED

    def set_role(self, role: Union[Role, str]):
        """Change the role label; only allowed before joining."""
        if self.is_joined:
            raise SessionError("Role cannot change after joining")
        self.role = Role(role)

    def join(self, trip_id: Optional[str] = None):
        """
        Confirm the trip code and move to JOINED.

        The transition happens once; a joined session never goes back.
        """
        if self.is_joined:
            raise SessionError(f"Session already joined trip {self.trip_id}")

        candidate = normalize_trip_id(trip_id if trip_id is not None else self.trip_id)
        if not candidate:
            raise SessionError("Trip code must not be empty")

        self.trip_id = candidate
        self.state = SessionState.JOINED
        self.joined_at = datetime.now()

    def collection_key(self, purpose: CollectionPurpose) -> str:
        """Derive the store key for one collection of this trip."""
        if not self.is_joined:
            raise SessionError("Collections are only addressable after joining")
        return f"{self.namespace}/{CollectionPurpose(purpose).value}_{self.trip_id}"
