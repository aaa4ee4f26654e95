"""Shared fixtures for trip sync tests."""
import asyncio

import pytest

from tripsync.models.session import Role, Session
from tripsync.services.remote_collection import InMemoryDocumentStore


@pytest.fixture
def store():
    """A fresh in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def settle():
    """Let scheduled snapshot deliveries run."""
    async def _settle(rounds: int = 5):
        for _ in range(rounds):
            await asyncio.sleep(0)
    return _settle


@pytest.fixture
def make_session():
    """Build a joined session for a trip."""
    def _make(trip_id: str = "PAPA-LISA", role: Role = Role.CHILD) -> Session:
        session = Session(role=role, namespace="test-app")
        session.join(trip_id)
        return session
    return _make
