"""Global pytest configuration and fixtures.

This module provides shared fixtures for all tests: an in-memory SQLite
database with the featuregraph schema, sessions bound to it, and helpers
to seed features.
"""

from typing import Any, Callable, Iterator, List

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from featuregraph.config import DatabaseConfig
from featuregraph.db.models import Feature
from featuregraph.db.session import create_db_engine, create_session_factory, init_db
from featuregraph.features import FeatureSnapshot, InMemoryFeatureStore, SqlFeatureStore


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "slow: tests that use threads and wall-clock waits"
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def engine() -> Iterator[Engine]:
    """In-memory SQLite engine (StaticPool) with the schema created."""
    db_engine = create_db_engine(DatabaseConfig(url="sqlite://"))
    init_db(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory: sessionmaker) -> Iterator[Session]:
    """A session whose uncommitted work is discarded after the test."""
    db_session = session_factory()
    try:
        yield db_session
    finally:
        db_session.rollback()
        db_session.close()


@pytest.fixture
def feature_store(session: Session) -> SqlFeatureStore:
    return SqlFeatureStore(session)


@pytest.fixture
def file_factory(tmp_path) -> Iterator[sessionmaker]:
    """Session factory over a file-backed SQLite database.

    Unlike the in-memory database, every session gets its own connection,
    so tests can hold transactions open from several sessions or threads.
    """
    db_engine = create_db_engine(
        DatabaseConfig(url=f"sqlite:///{tmp_path / 'featuregraph.db'}", busy_timeout_seconds=10.0)
    )
    init_db(db_engine)
    yield create_session_factory(db_engine)
    db_engine.dispose()


# =============================================================================
# Feature Seeding
# =============================================================================


def build_feature(feature_id: str, workspace_id: str = "ws-1", **attrs: Any) -> Feature:
    """Build a Feature row with sensible defaults."""
    attrs.setdefault("name", feature_id.replace("-", " ").title())
    attrs.setdefault("categories", [])
    return Feature(id=feature_id, workspace_id=workspace_id, **attrs)


@pytest.fixture
def feature_factory() -> Callable[..., Feature]:
    return build_feature


@pytest.fixture
def add_features(session: Session) -> Callable[..., List[Feature]]:
    """Insert features into the test session.

    Usage:
        add_features("a", "b", workspace_id="ws-2")
        add_features(feature_factory("c", priority="high"))
    """

    def _add(*features: Any, workspace_id: str = "ws-1") -> List[Feature]:
        rows = [
            f if isinstance(f, Feature) else build_feature(f, workspace_id=workspace_id)
            for f in features
        ]
        session.add_all(rows)
        session.flush()
        return rows

    return _add


@pytest.fixture
def memory_store() -> InMemoryFeatureStore:
    """Feature store pre-loaded with a small payments workspace."""
    return InMemoryFeatureStore(
        [
            FeatureSnapshot(
                id="gateway",
                workspace_id="ws-1",
                name="Payment Gateway Integration",
                categories=("payments", "backend"),
            ),
            FeatureSnapshot(
                id="setup",
                workspace_id="ws-1",
                name="Payment Gateway Setup",
                categories=("payments",),
            ),
            FeatureSnapshot(
                id="dashboard",
                workspace_id="ws-1",
                name="Analytics Dashboard",
                categories=("reporting",),
            ),
            FeatureSnapshot(id="other", workspace_id="ws-2", name="Payment Gateway Setup"),
        ]
    )
