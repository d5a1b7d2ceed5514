"""API routes for workspace analysis and insights."""

from typing import List, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from featuregraph.api.dependencies import get_config, get_db, get_feature_store, get_orchestrator
from featuregraph.api.models import (
    AnalysisJobResponse,
    AnalysisQueuedResponse,
    AnalysisResultResponse,
    InsightCreateRequest,
    InsightResponse,
    InsightStatusRequest,
)
from featuregraph.config import FeatureGraphConfig
from featuregraph.db.models import InsightSeverity
from featuregraph.features import FeatureStore
from featuregraph.services.insights import InsightGenerator
from featuregraph.services.orchestrator import AnalysisOrchestrator

router = APIRouter(tags=["analysis"])


def _generator(db: Session, feature_store: FeatureStore, config: FeatureGraphConfig) -> InsightGenerator:
    return InsightGenerator(db, feature_store, config.insights, config.graph)


@router.post(
    "/workspaces/{workspace_id}/analyze",
    response_model=Union[AnalysisResultResponse, AnalysisQueuedResponse],
)
def analyze_workspace(
    workspace_id: str,
    background: bool = Query(default=False, description="Queue the run and return its job id"),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Run a full re-analysis (scores, correlations, insights).

    With ``background=true`` the run is queued and 202 is returned with the
    job id; poll ``/analysis-jobs/{job_id}`` for the outcome.
    """
    if background:
        job_id = orchestrator.submit(workspace_id, triggered_by="api")
        body = AnalysisQueuedResponse(job_id=job_id, workspace_id=workspace_id)
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=body.model_dump(mode="json"))
    result = orchestrator.analyze_workspace(workspace_id, triggered_by="api")
    return AnalysisResultResponse(**result.to_dict())


@router.get("/analysis-jobs/{job_id}", response_model=AnalysisJobResponse)
def get_analysis_job(
    job_id: UUID,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> AnalysisJobResponse:
    return AnalysisJobResponse.model_validate(orchestrator.get_job(job_id))


@router.post("/analysis-jobs/{job_id}/cancel", response_model=AnalysisJobResponse)
def cancel_analysis_job(
    job_id: UUID,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> AnalysisJobResponse:
    """Request cancellation; the job row reflects it once the run stops."""
    orchestrator.cancel(job_id)
    return AnalysisJobResponse.model_validate(orchestrator.get_job(job_id))


@router.get("/workspaces/{workspace_id}/insights", response_model=List[InsightResponse])
def get_workspace_insights(
    workspace_id: str,
    min_severity: InsightSeverity = InsightSeverity.LOW,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> List[InsightResponse]:
    insights = _generator(db, feature_store, config).get_workspace_insights(
        workspace_id, min_severity=min_severity, limit=limit
    )
    return [InsightResponse.model_validate(i) for i in insights]


@router.post(
    "/workspaces/{workspace_id}/insights",
    response_model=InsightResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_insight(
    workspace_id: str,
    request: InsightCreateRequest,
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> InsightResponse:
    """Record a user or AI insight; these survive re-analysis."""
    insight = _generator(db, feature_store, config).create_insight(
        workspace_id,
        request.insight_type,
        request.title,
        description=request.description,
        severity=request.severity,
        priority=request.priority,
        primary_feature_id=request.primary_feature_id,
        related_feature_ids=request.related_feature_ids,
        recommendation=request.recommendation,
        confidence=request.confidence,
        detected_by=request.detected_by,
    )
    return InsightResponse.model_validate(insight)


@router.patch("/insights/{insight_id}/status", response_model=InsightResponse)
def set_insight_status(
    insight_id: UUID,
    request: InsightStatusRequest,
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
    config: FeatureGraphConfig = Depends(get_config),
) -> InsightResponse:
    insight = _generator(db, feature_store, config).set_insight_status(
        insight_id, request.status, notes=request.notes, action_taken=request.action_taken
    )
    return InsightResponse.model_validate(insight)
