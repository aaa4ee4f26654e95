"""
Itinerary models - Shared plan items and the candidates that feed them.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Any, Optional
from enum import Enum


DEFAULT_CATEGORY = "Event"
DEFAULT_TIME = "12:00"
# Sort key used for documents that carry no time at all
MISSING_TIME_SORT_KEY = "00:00"


class CandidateSource(str, Enum):
    """Where an addable candidate came from."""
    CURATED = "curated"
    SEARCH = "search"


class ItineraryItem(BaseModel):
    """A single stop in the shared plan, as stored remotely."""
    id: str = Field(..., description="Store-assigned document id")
    name: str = Field(default="", description="Display name")
    category: str = Field(default=DEFAULT_CATEGORY, description="Free tag, e.g. Vibe, Shopping")
    time: Optional[str] = Field(
        None,
        description="'HH:MM' string, used only for ordering"
    )
    notes: str = Field(default="", description="Free text")
    order: int = Field(default=0, description="Creation timestamp (ms), tiebreak")

    @field_validator("name", "category", "notes", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator("time", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value).strip()

    @field_validator("order", mode="before")
    @classmethod
    def _coerce_order(cls, value: Any) -> Any:
        # Other writers may store a float timestamp or nothing at all
        if value is None or value == "":
            return 0
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0

    @property
    def sort_time(self) -> str:
        return self.time or MISSING_TIME_SORT_KEY


class Candidate(BaseModel):
    """
    Something that can be added to the plan.

    Curated spots and search results use different field names; both are
    mapped onto this shape once, in `from_raw`.
    """
    name: str = Field(default="", description="Display name")
    description: str = Field(default="", description="Short description")
    category: str = Field(default=DEFAULT_CATEGORY, description="Category tag")
    recommended_time: Optional[str] = Field(None, description="Suggested 'HH:MM'")
    source: CandidateSource = Field(default=CandidateSource.CURATED)
    lat: Optional[float] = None
    lng: Optional[float] = None
    neighborhood: Optional[str] = None

    @field_validator("name", "description", "category", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator("recommended_time", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value).strip()

    @classmethod
    def from_raw(cls, raw: dict, source: CandidateSource = CandidateSource.CURATED) -> "Candidate":
        """Map a curated spot or a raw search entry onto a Candidate."""
        return cls(
            name=raw.get("name"),
            description=raw.get("description") or raw.get("desc") or raw.get("notes") or "",
            category=raw.get("category") or raw.get("cat") or DEFAULT_CATEGORY,
            recommended_time=raw.get("recommended_time") or raw.get("time"),
            source=source,
            lat=raw.get("lat"),
            lng=raw.get("lng"),
            neighborhood=raw.get("neighborhood"),
        )

    def to_item_fields(self) -> dict:
        """Fields an itinerary document is built from."""
        return {
            "name": self.name,
            "category": self.category or DEFAULT_CATEGORY,
            "time": self.recommended_time or DEFAULT_TIME,
            "notes": self.description or "",
        }


# Default spots offered before anyone searches
CURATED_SPOTS: list[Candidate] = [
    Candidate.from_raw(spot) for spot in [
        {
            "name": "Ehrenfeld Street Art", "cat": "Vibe",
            "lat": 50.9472, "lng": 6.9189,
            "desc": "Beste Graffitis & Fotospots.", "neighborhood": "Ehrenfeld",
        },
        {
            "name": "Picknweight Vintage", "cat": "Shopping",
            "lat": 50.9392, "lng": 6.9365,
            "desc": "Vintage Klamotten nach Kilo.", "neighborhood": "Belgisches Viertel",
        },
        {
            "name": "Hohenzollernbrücke", "cat": "Insta",
            "lat": 50.9413, "lng": 6.9644,
            "desc": "Die klassische Love-Lock-Brücke.", "neighborhood": "Altstadt-Nord",
        },
        {
            "name": "Kap 676 Skatepark", "cat": "Chill",
            "lat": 50.9231, "lng": 6.9667,
            "desc": "Skaten & Chillen am Rhein.", "neighborhood": "Rheinauhafen",
        },
        {
            "name": "Cologne Beach Club", "cat": "Vibe",
            "lat": 50.9475, "lng": 6.9715,
            "desc": "Sand & Skyline-Blick.", "neighborhood": "Deutz",
        },
    ]
]
