"""API routes for the Correlation Detector."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from featuregraph.api.dependencies import get_config, get_db, get_feature_store
from featuregraph.api.models import (
    ConvertCorrelationRequest,
    ConvertCorrelationResponse,
    CorrelationCandidateResponse,
    CorrelationResponse,
    CorrelationStatusRequest,
    DetectCorrelationsRequest,
    DetectCorrelationsResponse,
)
from featuregraph.config import FeatureGraphConfig
from featuregraph.db.models import CorrelationStatus
from featuregraph.db.repositories.correlation import DEFAULT_VISIBLE_STATUSES
from featuregraph.features import FeatureStore
from featuregraph.services.correlation import CorrelationDetector

router = APIRouter(tags=["correlations"])


def _detector(db: Session, feature_store: FeatureStore, config: FeatureGraphConfig) -> CorrelationDetector:
    return CorrelationDetector(db, feature_store, config.correlation)


@router.get(
    "/features/{feature_id}/correlation-candidates",
    response_model=List[CorrelationCandidateResponse],
)
def find_candidates(
    feature_id: str,
    min_threshold: Optional[float] = Query(default=None, ge=0.0, le=1.0),
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> List[CorrelationCandidateResponse]:
    """Rank other features of the workspace by similarity to this one."""
    candidates = _detector(db, feature_store, config).find_candidates(feature_id, min_threshold)
    return [CorrelationCandidateResponse(**c.to_dict()) for c in candidates]


@router.post(
    "/workspaces/{workspace_id}/correlations/detect",
    response_model=DetectCorrelationsResponse,
)
def detect_correlations(
    workspace_id: str,
    request: Optional[DetectCorrelationsRequest] = None,
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> DetectCorrelationsResponse:
    """Store correlations for feature pairs not yet seen."""
    threshold = request.min_threshold if request else None
    inserted = _detector(db, feature_store, config).detect_workspace_correlations(
        workspace_id, min_threshold=threshold
    )
    return DetectCorrelationsResponse(workspace_id=workspace_id, correlations_inserted=inserted)


@router.get("/workspaces/{workspace_id}/correlations", response_model=List[CorrelationResponse])
def get_correlations(
    workspace_id: str,
    feature_id: Optional[str] = None,
    min_score: float = Query(default=0.0, ge=0.0, le=1.0),
    statuses: Optional[List[CorrelationStatus]] = Query(default=None, alias="status"),
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> List[CorrelationResponse]:
    correlations = _detector(db, feature_store, config).get_correlations(
        workspace_id,
        feature_id=feature_id,
        min_score=min_score,
        statuses=statuses or DEFAULT_VISIBLE_STATUSES,
        limit=limit,
    )
    return [CorrelationResponse.model_validate(c) for c in correlations]


@router.patch("/correlations/{correlation_id}/status", response_model=CorrelationResponse)
def set_correlation_status(
    correlation_id: UUID,
    request: CorrelationStatusRequest,
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> CorrelationResponse:
    correlation = _detector(db, feature_store, config).set_correlation_status(
        correlation_id, request.status, rating=request.rating, notes=request.notes
    )
    return CorrelationResponse.model_validate(correlation)


@router.post("/correlations/{correlation_id}/convert", response_model=ConvertCorrelationResponse)
def convert_correlation(
    correlation_id: UUID,
    request: Optional[ConvertCorrelationRequest] = None,
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> ConvertCorrelationResponse:
    """Turn a correlation into an explicit connection."""
    request = request or ConvertCorrelationRequest()
    connection_id = _detector(db, feature_store, config).convert_to_connection(
        correlation_id, request.connection_type
    )
    return ConvertCorrelationResponse(correlation_id=correlation_id, connection_id=connection_id)
