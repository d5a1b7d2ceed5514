"""Unit tests for ConnectionService.

Most tests run against an in-memory SQLite database, which enforces the
same partial unique index on active edges as PostgreSQL.
"""

import threading
from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select

from featuregraph.db.models import (
    ConnectionStatus,
    ConnectionType,
    DiscoveredBy,
    FeatureConnection,
)
from featuregraph.db.session import get_sync_session
from featuregraph.errors import (
    ConnectionNotFoundError,
    DuplicateConnectionError,
    FeatureNotFoundError,
    InvalidEnumValueError,
    SelfConnectionError,
    ValidationError,
)
from featuregraph.services.connections import ConnectionService


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def service(session):
    return ConnectionService(session)


@pytest.fixture
def checked_service(session, feature_store, add_features):
    """Service that verifies both endpoints exist in the workspace."""
    add_features("a", "b", "c")
    add_features("x", workspace_id="ws-2")
    return ConnectionService(session, feature_store)


def _row_count(session) -> int:
    return session.execute(select(func.count(FeatureConnection.id))).scalar_one()


# =============================================================================
# Creation
# =============================================================================


class TestCreateConnection:
    """Test single connection creation."""

    def test_create_returns_id(self, service, session):
        """Test that a new connection is stored active with defaults."""
        connection_id = service.create_connection("ws-1", "a", "b", "dependency", reason="needs auth")

        assert isinstance(connection_id, UUID)
        connection = service.get_connection(connection_id)
        assert connection.connection_type == ConnectionType.DEPENDENCY
        assert connection.status == ConnectionStatus.ACTIVE
        assert connection.discovered_by == DiscoveredBy.USER
        assert connection.strength == 0.5
        assert connection.is_bidirectional is False
        assert connection.reason == "needs auth"
        assert connection.discovered_at is not None

    def test_self_connection_rejected(self, service, session):
        """Test that a feature can never be connected to itself."""
        with pytest.raises(SelfConnectionError) as exc_info:
            service.create_connection("ws-1", "a", "a", ConnectionType.DEPENDENCY)

        assert exc_info.value.feature_id == "a"
        assert _row_count(session) == 0

    def test_self_connection_checked_before_type(self, service):
        """Test that the self-edge check runs before enum validation."""
        with pytest.raises(SelfConnectionError):
            service.create_connection("ws-1", "a", "a", "not-a-type")

    def test_duplicate_active_edge_rejected(self, service, session):
        """Test that the second identical active edge fails."""
        service.create_connection("ws-1", "a", "b", "dependency")

        with pytest.raises(DuplicateConnectionError) as exc_info:
            service.create_connection("ws-1", "a", "b", "dependency")

        assert exc_info.value.source_feature_id == "a"
        assert exc_info.value.target_feature_id == "b"
        assert exc_info.value.connection_type == "dependency"
        assert _row_count(session) == 1

    def test_session_usable_after_duplicate(self, service, session):
        """Test that a rejected insert only rolls back itself."""
        first = service.create_connection("ws-1", "a", "b", "dependency")
        with pytest.raises(DuplicateConnectionError):
            service.create_connection("ws-1", "a", "b", "dependency")

        second = service.create_connection("ws-1", "a", "c", "dependency")

        assert service.get_connection(first).target_feature_id == "b"
        assert service.get_connection(second).target_feature_id == "c"

    def test_other_type_or_direction_allowed(self, service, session):
        """Test that uniqueness is per (source, target, type)."""
        service.create_connection("ws-1", "a", "b", "dependency")
        service.create_connection("ws-1", "a", "b", "blocks")
        service.create_connection("ws-1", "b", "a", "dependency")

        assert _row_count(session) == 3

    def test_recreate_after_reject(self, service, session):
        """Test that a rejected edge frees its slot."""
        first = service.create_connection("ws-1", "a", "b", "dependency")
        service.set_status(first, "rejected")

        second = service.create_connection("ws-1", "a", "b", "dependency")

        assert second != first
        assert service.get_connection(first).status == ConnectionStatus.REJECTED
        assert service.get_connection(second).status == ConnectionStatus.ACTIVE

    def test_non_active_duplicates_allowed(self, service, session):
        """Test that only active edges take part in uniqueness."""
        service.create_connection("ws-1", "a", "b", "dependency", status="pending_review")
        service.create_connection("ws-1", "a", "b", "dependency", status="pending_review")
        service.create_connection("ws-1", "a", "b", "dependency")

        assert _row_count(session) == 3

    def test_invalid_type_string(self, service):
        with pytest.raises(InvalidEnumValueError, match="connection_type"):
            service.create_connection("ws-1", "a", "b", "depends_on")

    def test_invalid_discovered_by(self, service):
        with pytest.raises(InvalidEnumValueError, match="discovered_by"):
            service.create_connection("ws-1", "a", "b", "blocks", discovered_by="robot")

    @pytest.mark.parametrize("strength", [-0.1, 1.5, True])
    def test_strength_out_of_range(self, service, strength):
        with pytest.raises(ValidationError, match="strength"):
            service.create_connection("ws-1", "a", "b", "blocks", strength=strength)

    def test_unknown_feature_with_store(self, checked_service):
        """Test that both endpoints must exist when a store is given."""
        with pytest.raises(FeatureNotFoundError) as exc_info:
            checked_service.create_connection("ws-1", "a", "missing", "dependency")

        assert exc_info.value.record_id == "missing"

    def test_cross_workspace_feature_with_store(self, checked_service):
        """Test that features of another workspace cannot be connected."""
        with pytest.raises(FeatureNotFoundError):
            checked_service.create_connection("ws-1", "a", "x", "dependency")

    def test_known_features_with_store(self, checked_service):
        connection_id = checked_service.create_connection("ws-1", "a", "b", "enables")

        assert checked_service.get_connection(connection_id).connection_type == ConnectionType.ENABLES


class TestBidirectionalConnection:
    """Test all-or-nothing bidirectional creation."""

    def test_creates_both_directions(self, service, session):
        forward_id = service.create_bidirectional_connection("ws-1", "a", "b", "complements", strength=0.8)

        rows = session.execute(select(FeatureConnection)).scalars().all()
        assert len(rows) == 2
        assert {(r.source_feature_id, r.target_feature_id) for r in rows} == {("a", "b"), ("b", "a")}
        assert all(r.is_bidirectional for r in rows)
        assert all(r.strength == 0.8 for r in rows)
        assert service.get_connection(forward_id).source_feature_id == "a"

    def test_reverse_collision_rolls_back_forward(self, service, session):
        """Test that a failing reverse insert leaves no forward edge behind."""
        existing = service.create_connection("ws-1", "b", "a", "complements")

        with pytest.raises(DuplicateConnectionError) as exc_info:
            service.create_bidirectional_connection("ws-1", "a", "b", "complements")

        assert exc_info.value.source_feature_id == "b"
        rows = session.execute(select(FeatureConnection)).scalars().all()
        assert [r.id for r in rows] == [existing]
        assert service.count_connections("a") == 1

    def test_self_bidirectional_rejected(self, service, session):
        with pytest.raises(SelfConnectionError):
            service.create_bidirectional_connection("ws-1", "a", "a", "relates_to")

        assert _row_count(session) == 0


# =============================================================================
# Lifecycle
# =============================================================================


class TestConnectionLifecycle:
    """Test status changes and review actions."""

    def test_set_status(self, service):
        connection_id = service.create_connection("ws-1", "a", "b", "dependency")

        connection = service.set_status(connection_id, "inactive")

        assert connection.status == ConnectionStatus.INACTIVE

    def test_set_status_unknown_connection(self, service):
        with pytest.raises(ConnectionNotFoundError):
            service.set_status(uuid4(), "inactive")

    def test_reactivation_collision(self, service):
        """Test that re-activating into a taken slot fails and keeps the old status."""
        first = service.create_connection("ws-1", "a", "b", "dependency")
        service.set_status(first, "inactive")
        service.create_connection("ws-1", "a", "b", "dependency")

        with pytest.raises(DuplicateConnectionError):
            service.set_status(first, "active")

        assert service.get_connection(first).status == ConnectionStatus.INACTIVE

    def test_delete_is_soft(self, service):
        connection_id = service.create_connection("ws-1", "a", "b", "dependency")

        service.delete_connection(connection_id)

        assert service.get_connection(connection_id).status == ConnectionStatus.INACTIVE
        assert service.count_connections("a") == 0

    def test_confirm(self, service):
        connection_id = service.create_connection("ws-1", "a", "b", "dependency", status="pending_review")

        connection = service.confirm_connection(connection_id)

        assert connection.status == ConnectionStatus.ACTIVE
        assert connection.user_confirmed is True
        assert connection.user_rejected is False
        assert connection.last_reviewed_at is not None

    def test_reject(self, service):
        connection_id = service.create_connection("ws-1", "a", "b", "dependency")

        connection = service.reject_connection(connection_id)

        assert connection.status == ConnectionStatus.REJECTED
        assert connection.user_rejected is True
        assert connection.last_reviewed_at is not None


# =============================================================================
# Queries
# =============================================================================


class TestConnectionQueries:
    """Test read operations."""

    @pytest.fixture
    def graph(self, service):
        """a -> b (dependency), c -> a (blocks), a -> c (relates_to, inactive)."""
        ids = {
            "ab": service.create_connection("ws-1", "a", "b", "dependency"),
            "ca": service.create_connection("ws-1", "c", "a", "blocks"),
            "ac": service.create_connection("ws-1", "a", "c", "relates_to"),
            "other": service.create_connection("ws-2", "x", "y", "dependency"),
        }
        service.set_status(ids["ac"], "inactive")
        return ids

    def test_get_connections_tags_direction(self, service, graph):
        views = {v.connection_id: v for v in service.get_connections("a")}

        assert set(views) == {graph["ab"], graph["ca"]}
        assert views[graph["ab"]].direction == "outgoing"
        assert views[graph["ab"]].related_feature_id == "b"
        assert views[graph["ca"]].direction == "incoming"
        assert views[graph["ca"]].related_feature_id == "c"
        assert views[graph["ca"]].connection_type == "blocks"

    def test_get_connections_any_status(self, service, graph):
        views = service.get_connections("a", status=None)

        assert len(views) == 3

    def test_view_to_dict(self, service, graph):
        view = service.get_connections("b")[0]
        data = view.to_dict()

        assert data["direction"] == "incoming"
        assert data["related_feature_id"] == "a"
        assert data["status"] == "active"

    def test_count_is_active_only(self, service, graph):
        assert service.count_connections("a") == 2
        assert service.count_connections("b") == 1
        assert service.count_connections("unknown") == 0

    def test_exists_is_order_independent(self, service, graph):
        assert service.connection_exists("a", "b")
        assert service.connection_exists("b", "a")
        assert service.connection_exists("a", "c")  # via the active c -> a edge
        assert not service.connection_exists("b", "c")

    def test_exists_ignores_inactive(self, service, graph):
        service.delete_connection(graph["ab"])

        assert not service.connection_exists("a", "b")

    def test_workspace_connections(self, service, graph):
        active = service.get_workspace_connections("ws-1")
        everything = service.get_workspace_connections("ws-1", status=None)

        assert {c.id for c in active} == {graph["ab"], graph["ca"]}
        assert len(everything) == 3
        assert [c.id for c in service.get_workspace_connections("ws-2")] == [graph["other"]]


# =============================================================================
# Concurrent writers
# =============================================================================


@pytest.mark.slow
class TestConcurrentConnectionWriters:
    """Two sessions on a file-backed database racing for the same edge."""

    def test_second_writer_gets_duplicate_error(self, file_factory):
        errors, created = [], []
        first = file_factory()
        try:
            ConnectionService(first).create_connection("ws-1", "a", "b", "dependency")

            def second_writer():
                try:
                    with get_sync_session(file_factory) as session:
                        created.append(ConnectionService(session).create_connection("ws-1", "a", "b", "dependency"))
                except Exception as e:
                    errors.append(e)

            worker = threading.Thread(target=second_writer)
            worker.start()
            # The second writer queues behind the open write transaction
            worker.join(timeout=0.3)
            assert worker.is_alive()
            first.commit()
        finally:
            first.close()
        worker.join(timeout=10)

        assert created == []
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateConnectionError)
        with get_sync_session(file_factory) as session:
            assert session.scalar(select(func.count()).select_from(FeatureConnection)) == 1

    def test_create_many_rolls_back_every_row(self, file_factory):
        with get_sync_session(file_factory) as session:
            ConnectionService(session).create_connection("ws-1", "b", "a", "dependency")

        with get_sync_session(file_factory) as session:
            service = ConnectionService(session)
            with pytest.raises(DuplicateConnectionError) as exc_info:
                service.create_bidirectional_connection("ws-1", "a", "b", "dependency")
            assert service.count_connections("a") == 1

        assert (exc_info.value.source_feature_id, exc_info.value.target_feature_id) == ("b", "a")
