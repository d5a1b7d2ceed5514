"""API routes for the Importance Scorer."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from featuregraph.api.dependencies import get_config, get_db, get_feature_store
from featuregraph.api.models import ImportanceScoreResponse, RecalculateResponse
from featuregraph.config import FeatureGraphConfig
from featuregraph.features import FeatureStore
from featuregraph.services.importance import ImportanceScorer

router = APIRouter(tags=["importance"])


def _scorer(db: Session, feature_store: FeatureStore, config: FeatureGraphConfig) -> ImportanceScorer:
    return ImportanceScorer(db, feature_store, config.scoring, config.graph)


@router.post("/workspaces/{workspace_id}/importance/recalculate", response_model=RecalculateResponse)
def recalculate_workspace(
    workspace_id: str,
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> RecalculateResponse:
    """Recompute scores, ranks and graph flags for every feature."""
    scored = _scorer(db, feature_store, config).recalc_workspace_importance(workspace_id)
    return RecalculateResponse(workspace_id=workspace_id, features_scored=scored)


@router.get("/workspaces/{workspace_id}/importance/top", response_model=List[ImportanceScoreResponse])
def top_features(
    workspace_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> List[ImportanceScoreResponse]:
    scores = _scorer(db, feature_store, config).get_top_important_features(workspace_id, limit)
    return [ImportanceScoreResponse.model_validate(s) for s in scores]


@router.get("/features/{feature_id}/importance", response_model=ImportanceScoreResponse)
def get_feature_importance(
    feature_id: str,
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> ImportanceScoreResponse:
    score = _scorer(db, feature_store, config).get_feature_importance(feature_id)
    if score is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No importance score for feature {feature_id}",
        )
    return ImportanceScoreResponse.model_validate(score)


@router.post("/features/{feature_id}/importance/recalculate", response_model=ImportanceScoreResponse)
def recalculate_feature(
    feature_id: str,
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> ImportanceScoreResponse:
    """Recompute one feature without re-ranking the workspace."""
    score = _scorer(db, feature_store, config).calculate_feature_importance(feature_id)
    return ImportanceScoreResponse.model_validate(score)
