"""
Mock LLM Client - Offline search backend.
Answers event searches from a small built-in catalogue so the sync engine
can run without a search service credential.
"""
import json
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)


# Catalogue of events the offline backend can "find"
MOCK_EVENTS = [
    {
        "name": "Bubble Tea Crawl Ehrenstraße",
        "description": "Drei Bubble-Tea-Läden in fünf Minuten Fußweg.",
        "category": "Chill",
        "recommended_time": "15:00",
        "tags": ["bubble", "tea", "food", "drink"],
    },
    {
        "name": "Street Art Tour Ehrenfeld",
        "description": "Geführte Tour zu den größten Murals.",
        "category": "Vibe",
        "recommended_time": "11:00",
        "tags": ["street", "art", "graffiti", "tour"],
    },
    {
        "name": "Schokoladenmuseum",
        "description": "Schokobrunnen und Blick auf den Rhein.",
        "category": "Event",
        "recommended_time": "13:30",
        "tags": ["museum", "chocolate", "schokolade", "rain"],
    },
    {
        "name": "Flohmarkt Rheinauhafen",
        "description": "Vintage, Vinyl und Streetfood am Wasser.",
        "category": "Shopping",
        "recommended_time": "10:00",
        "tags": ["vintage", "shopping", "flohmarkt", "market"],
    },
    {
        "name": "KölnTriangle Aussichtsplattform",
        "description": "Bester Blick auf den Dom für Fotos.",
        "category": "Insta",
        "recommended_time": "18:30",
        "tags": ["view", "photo", "insta", "dom"],
    },
]


class MockLLMClient:
    """Keyword-matching stand-in for the generative search service."""

    def __init__(self):
        self.model = "mock-event-catalogue"

    async def chat(
        self,
        messages: list[dict],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False
    ) -> str:
        """Return matching catalogue events as a JSON document."""
        user_msg = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
        query = self._extract_query(user_msg)
        words = set(re.findall(r"\w+", query.lower()))

        matches = [
            {k: v for k, v in event.items() if k != "tags"}
            for event in MOCK_EVENTS
            if words & set(event["tags"]) or query.lower() in event["name"].lower()
        ]
        logger.debug(f"Mock search for '{query}' matched {len(matches)} events")
        return json.dumps({"events": matches}, ensure_ascii=False)

    def _extract_query(self, prompt: str) -> str:
        """Pull the user's search term out of the search prompt."""
        match = re.search(r"Suchbegriff:\s*(.*?)\.\s", prompt + " ")
        return match.group(1).strip() if match else prompt.strip()
