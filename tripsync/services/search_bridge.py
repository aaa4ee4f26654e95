"""
Search Bridge - Turns a free-text query into plan candidates.

One request per query to the generative search service. The response is
all-or-nothing: anything that does not parse into a clean list of candidates
yields an empty result plus an error message, and nothing is raised.
"""
import asyncio
import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from .llm_client import LLMClient
from ..config import settings
from ..errors import SearchError
from ..models.itinerary import Candidate, CandidateSource

logger = logging.getLogger(__name__)


SEARCH_PROMPT_TEMPLATE = (
    "Suche coole Events oder Orte für {audience} in {city}. "
    "Suchbegriff: {query}. "
    "Gib die Ergebnisse als JSON-Liste zurück mit: "
    "name, description, category, recommended_time."
)


class SearchOutcome(BaseModel):
    """Result of one search call."""
    query: str = ""
    candidates: list[Candidate] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_candidates(body: str) -> list[Candidate]:
    """
    Parse a service response body into candidates.

    Accepts a top-level list or an object with an "events" list.
    Raises SearchError on any deviation.
    """
    try:
        payload: Any = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise SearchError(f"Response is not valid JSON: {e}") from e

    if isinstance(payload, dict):
        payload = payload.get("events")
    if not isinstance(payload, list):
        raise SearchError("Response holds no list of events")

    candidates = []
    for entry in payload:
        if not isinstance(entry, dict) or not entry.get("name"):
            raise SearchError(f"Malformed search entry: {entry!r}")
        try:
            candidates.append(Candidate.from_raw(entry, source=CandidateSource.SEARCH))
        except ValidationError as e:
            raise SearchError(f"Malformed search entry: {e}") from e
    return candidates


class SearchBridge:
    """Request/response adapter to the generative search service."""

    def __init__(
        self,
        llm: LLMClient,
        city: Optional[str] = None,
        audience: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.llm = llm
        self.city = city or settings.search_city
        self.audience = audience or settings.search_audience
        self.timeout_seconds = (
            settings.search_timeout_seconds if timeout_seconds is None else timeout_seconds
        )

    def build_prompt(self, query: str) -> str:
        return SEARCH_PROMPT_TEMPLATE.format(
            audience=self.audience,
            city=self.city,
            query=query,
        )

    async def query(self, text: str) -> SearchOutcome:
        """Run one search. Never raises; failures give an empty outcome."""
        query = (text or "").strip()
        if not query:
            return SearchOutcome(query=query)

        try:
            body = await asyncio.wait_for(
                self.llm.complete(self.build_prompt(query), json_mode=True),
                timeout=self.timeout_seconds if self.timeout_seconds > 0 else None,
            )
            candidates = parse_candidates(body)
        except asyncio.TimeoutError:
            logger.error(f"Search for '{query}' timed out after {self.timeout_seconds}s")
            return SearchOutcome(query=query, error="Search timed out")
        except SearchError as e:
            logger.error(f"Search for '{query}' failed: {e}")
            return SearchOutcome(query=query, error=str(e))
        except Exception as e:
            logger.error(f"Search for '{query}' failed: {e}")
            return SearchOutcome(query=query, error=f"Search service unavailable: {e}")

        logger.info(f"Search for '{query}' returned {len(candidates)} candidates")
        return SearchOutcome(query=query, candidates=candidates)
