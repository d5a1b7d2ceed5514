"""FastAPI dependencies shared by the featuregraph routes."""

from typing import Iterator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from featuregraph.config import FeatureGraphConfig
from featuregraph.db.session import get_sync_session
from featuregraph.features import FeatureStore
from featuregraph.services.orchestrator import AnalysisOrchestrator


def get_config(request: Request) -> FeatureGraphConfig:
    return request.app.state.config


def get_db(request: Request) -> Iterator[Session]:
    """Provide a session that commits when the request succeeds.

    Usage:
        @router.get("/items")
        def get_items(db: Session = Depends(get_db)):
            ...
    """
    with get_sync_session(request.app.state.session_factory) as session:
        yield session


def get_feature_store(request: Request, db: Session = Depends(get_db)) -> FeatureStore:
    return request.app.state.feature_store_factory(db)


def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    return request.app.state.orchestrator
