"""Data models for the trip sync engine."""
from .itinerary import ItineraryItem, Candidate, CandidateSource, CURATED_SPOTS
from .presence import Coordinates, PositionRecord
from .session import Session, SessionState, Role, CollectionPurpose

__all__ = [
    "ItineraryItem",
    "Candidate",
    "CandidateSource",
    "CURATED_SPOTS",
    "Coordinates",
    "PositionRecord",
    "Session",
    "SessionState",
    "Role",
    "CollectionPurpose",
]
