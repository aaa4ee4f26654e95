"""Tests for session lifecycle and collection addressing."""
import pytest

from tripsync.errors import SessionError
from tripsync.models.session import CollectionPurpose, Role, Session, SessionState


class TestSession:
    """Test session management."""

    def test_session_creation(self):
        """A new session is unjoined with a stable participant id."""
        session = Session()

        assert session.participant_id
        assert session.state == SessionState.UNJOINED
        assert session.role == Role.CHILD
        assert session.trip_id == ""
        assert not session.is_joined

    def test_participant_ids_are_unique(self):
        """Every session gets its own participant id."""
        assert Session().participant_id != Session().participant_id

    def test_join_normalizes_trip_code(self):
        """Trip codes are trimmed and upper-cased on join."""
        session = Session()
        session.join("  papa-lisa ")

        assert session.is_joined
        assert session.trip_id == "PAPA-LISA"
        assert session.joined_at is not None

    def test_join_uses_preset_trip_id(self):
        """Joining without an argument uses the trip id already typed in."""
        session = Session(trip_id="koeln")
        session.join()

        assert session.trip_id == "KOELN"

    def test_join_requires_trip_code(self):
        """An empty trip code cannot be joined."""
        session = Session()

        with pytest.raises(SessionError):
            session.join("   ")
        assert session.state == SessionState.UNJOINED

    def test_join_only_once(self):
        """A joined session never transitions again."""
        session = Session()
        session.join("A")

        with pytest.raises(SessionError):
            session.join("B")
        assert session.trip_id == "A"

    def test_role_change_before_join(self):
        """The role label can change until the session joins."""
        session = Session()
        session.set_role("Parent")
        assert session.role == Role.PARENT

        session.join("A")
        with pytest.raises(SessionError):
            session.set_role(Role.CHILD)


class TestCollectionKeys:
    """Test collection addressing."""

    def test_keys_before_join(self):
        """Collections are not addressable before joining."""
        with pytest.raises(SessionError):
            Session().collection_key(CollectionPurpose.ITINERARY)

    def test_keys_are_namespaced(self):
        """Keys derive from namespace, purpose and trip id."""
        session = Session(namespace="cologne-trip")
        session.join("PAPA-LISA")

        assert session.collection_key(CollectionPurpose.ITINERARY) == "cologne-trip/itin_PAPA-LISA"
        assert session.collection_key(CollectionPurpose.PRESENCE) == "cologne-trip/loc_PAPA-LISA"

    def test_purposes_and_trips_never_collide(self):
        """Different trips and purposes give different keys."""
        a, b = Session(), Session()
        a.join("A")
        b.join("B")

        keys = {
            a.collection_key(CollectionPurpose.ITINERARY),
            a.collection_key(CollectionPurpose.PRESENCE),
            b.collection_key(CollectionPurpose.ITINERARY),
            b.collection_key(CollectionPurpose.PRESENCE),
        }
        assert len(keys) == 4
