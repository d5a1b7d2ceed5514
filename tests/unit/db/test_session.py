"""Unit tests for engine and session setup."""

import threading

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from featuregraph.config import DatabaseConfig
from featuregraph.db.models import FeatureConnection
from featuregraph.db.repositories import InsightRepository
from featuregraph.db.session import (
    create_db_engine,
    create_session_factory,
    get_sync_session,
    init_db,
)
from featuregraph.features import SqlFeatureStore
from featuregraph.services.connections import ConnectionService


def _count_connections(factory, workspace_id: str) -> int:
    with get_sync_session(factory) as session:
        return session.scalar(
            select(func.count()).select_from(FeatureConnection).where(FeatureConnection.workspace_id == workspace_id)
        )


class TestGetSyncSession:
    """Test commit and rollback of the session context manager."""

    def test_commits_on_success(self, session_factory):
        with get_sync_session(session_factory) as session:
            ConnectionService(session).create_connection("ws-1", "a", "b", "dependency")

        assert _count_connections(session_factory, "ws-1") == 1

    def test_rolls_back_on_error(self, session_factory):
        with pytest.raises(RuntimeError):
            with get_sync_session(session_factory) as session:
                ConnectionService(session).create_connection("ws-1", "a", "b", "dependency")
                raise RuntimeError("boom")

        assert _count_connections(session_factory, "ws-1") == 0


@pytest.mark.slow
class TestSqliteWriteLocking:
    """Writers wait for an open analysis transaction instead of failing."""

    @pytest.fixture
    def seeded(self, file_factory, feature_factory):
        with get_sync_session(file_factory) as session:
            session.add_all(
                [
                    feature_factory("a"),
                    feature_factory("x", workspace_id="ws-2"),
                    feature_factory("y", workspace_id="ws-2"),
                ]
            )
        return file_factory

    def test_other_workspace_writer_waits_for_analysis(self, seeded):
        errors, created = [], []
        analysis = seeded()
        try:
            # An analysis of ws-1 has started writing
            InsightRepository(analysis).mark_system_insights_obsolete("ws-1")
            analysis.flush()

            def connect_in_ws2():
                try:
                    with get_sync_session(seeded) as session:
                        service = ConnectionService(session, SqlFeatureStore(session))
                        created.append(service.create_connection("ws-2", "x", "y", "dependency"))
                except Exception as e:
                    errors.append(e)

            writer = threading.Thread(target=connect_in_ws2)
            writer.start()
            writer.join(timeout=0.3)
            assert writer.is_alive()
            analysis.commit()
        finally:
            analysis.close()
        writer.join(timeout=10)

        assert errors == []
        assert len(created) == 1
        assert _count_connections(seeded, "ws-2") == 1

    def test_busy_timeout_is_passed_to_driver(self, tmp_path):
        db_engine = create_db_engine(
            DatabaseConfig(url=f"sqlite:///{tmp_path / 'locked.db'}", busy_timeout_seconds=0.2)
        )
        try:
            init_db(db_engine)
            factory = create_session_factory(db_engine)
            holder = factory()
            try:
                ConnectionService(holder).create_connection("ws-1", "a", "b", "dependency")
                with pytest.raises(OperationalError, match="database is locked"):
                    with get_sync_session(factory) as session:
                        ConnectionService(session).create_connection("ws-2", "x", "y", "dependency")
            finally:
                holder.rollback()
                holder.close()
        finally:
            db_engine.dispose()
