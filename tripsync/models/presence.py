"""
Presence models - One live position record per participant.
"""
from pydantic import BaseModel, Field


class Coordinates(BaseModel):
    """A single position fix."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class PositionRecord(BaseModel):
    """A participant's last published position."""
    id: str = Field(..., description="Participant id; one record per participant")
    name: str = Field(default="", description="Role label at time of write")
    lat: float
    lng: float
    updated_at: int = Field(
        default=0,
        alias="updatedAt",
        description="Writer-side timestamp (ms since epoch), display only"
    )

    model_config = {"populate_by_name": True}

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)
