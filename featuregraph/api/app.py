"""FastAPI application exposing the featuregraph engine.

Authentication and tenant isolation are the host application's concern;
mount this app (or its routers) behind the host's auth layer.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from featuregraph import __version__
from featuregraph.api.models import ErrorResponse
from featuregraph.api.routes import analysis, connections, correlations, importance
from featuregraph.config import FeatureGraphConfig
from featuregraph.db.session import create_db_engine, create_session_factory, init_db
from featuregraph.errors import (
    AnalysisCancelledError,
    AnalysisInProgressError,
    AnalysisTimeoutError,
    DuplicateConnectionError,
    FeatureGraphError,
    InvalidStatusTransitionError,
    NotFoundError,
    SelfConnectionError,
    ValidationError,
)
from featuregraph.features import SqlFeatureStore
from featuregraph.logging_config import get_logger
from featuregraph.services.orchestrator import AnalysisOrchestrator

logger = get_logger(__name__)

# Most specific classes first; the first match wins
ERROR_STATUS_CODES = (
    (SelfConnectionError, status.HTTP_400_BAD_REQUEST, "SELF_CONNECTION"),
    (DuplicateConnectionError, status.HTTP_409_CONFLICT, "DUPLICATE_CONNECTION"),
    (AnalysisInProgressError, status.HTTP_409_CONFLICT, "ANALYSIS_IN_PROGRESS"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (InvalidStatusTransitionError, 422, "INVALID_STATUS_TRANSITION"),
    (ValidationError, 422, "VALIDATION_ERROR"),
    (AnalysisTimeoutError, status.HTTP_408_REQUEST_TIMEOUT, "ANALYSIS_TIMEOUT"),
    (AnalysisCancelledError, status.HTTP_408_REQUEST_TIMEOUT, "ANALYSIS_CANCELLED"),
)


def error_response(exc: FeatureGraphError) -> JSONResponse:
    """Translate an engine error into a JSON error response."""
    for error_cls, status_code, error_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_cls):
            break
    else:
        status_code, error_code = status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR"
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=str(exc),
            error_code=error_code,
        ).model_dump(),
    )


def create_app(
    config: Optional[FeatureGraphConfig] = None,
    session_factory: Optional[sessionmaker] = None,
    feature_store_factory=SqlFeatureStore,
    create_schema: bool = False,
) -> FastAPI:
    """Build the API application.

    Args:
        config: Engine configuration (defaults to ``FeatureGraphConfig()``)
        session_factory: Existing session factory; one is created from
            ``config.database`` when omitted
        feature_store_factory: Builds the feature store for a session
        create_schema: Create missing tables at startup

    Returns:
        Configured FastAPI application
    """
    config = config or FeatureGraphConfig()
    engine = None
    if session_factory is None:
        engine = create_db_engine(config.database)
        session_factory = create_session_factory(engine)

    orchestrator = AnalysisOrchestrator(
        config=config,
        session_factory=session_factory,
        feature_store_factory=feature_store_factory,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if create_schema:
            init_db(session_factory.kw["bind"])
        logger.info("Starting featuregraph API")
        yield
        logger.info("Shutting down featuregraph API")
        orchestrator.shutdown(wait=False)
        if engine is not None:
            engine.dispose()

    app = FastAPI(
        title="featuregraph API",
        description="Relationship graph, importance scores, correlations and insights for roadmap features.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.session_factory = session_factory
    app.state.feature_store_factory = feature_store_factory
    app.state.orchestrator = orchestrator

    for module in (connections, correlations, importance, analysis):
        app.include_router(module.router, prefix="/api/v1")

    @app.exception_handler(FeatureGraphError)
    async def featuregraph_error_handler(request: Request, exc: FeatureGraphError):
        response = error_response(exc)
        if response.status_code >= 500:
            logger.error(f"Unhandled engine error on {request.url.path}: {exc}", exc_info=exc)
        return response

    @app.get("/health", tags=["Health"])
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    return app
