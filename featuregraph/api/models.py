"""Pydantic request/response models for the featuregraph API."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from featuregraph.db.models import (
    AnalysisJobStatus,
    ConnectionStatus,
    ConnectionType,
    CorrelationStatus,
    CorrelationType,
    DetectedBy,
    DiscoveredBy,
    InsightSeverity,
    InsightStatus,
    InsightType,
)


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(default=None, description="Detailed error information")
    error_code: Optional[str] = Field(default=None, description="Error code for client handling")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Duplicate connection",
                "detail": "An active dependency connection from f-1 to f-2 already exists",
                "error_code": "DUPLICATE_CONNECTION",
            }
        }
    )


# =============================================================================
# Connections
# =============================================================================


class ConnectionCreateRequest(BaseModel):
    """Request to connect two features."""

    source_feature_id: str = Field(..., min_length=1, max_length=64)
    target_feature_id: str = Field(..., min_length=1, max_length=64)
    connection_type: ConnectionType
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reason: Optional[str] = None
    evidence: List[Any] = Field(default_factory=list)
    discovered_by: DiscoveredBy = DiscoveredBy.USER
    bidirectional: bool = Field(default=False, description="Also create the reverse edge")


class ConnectionStatusRequest(BaseModel):
    status: ConnectionStatus


class ConnectionResponse(BaseModel):
    """A stored connection."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workspace_id: str
    source_feature_id: str
    target_feature_id: str
    connection_type: ConnectionType
    strength: float
    confidence: float
    is_bidirectional: bool
    reason: Optional[str] = None
    evidence: List[Any] = Field(default_factory=list)
    discovered_by: DiscoveredBy
    discovered_at: Optional[datetime] = None
    status: ConnectionStatus
    user_confirmed: bool = False
    user_rejected: bool = False
    last_reviewed_at: Optional[datetime] = None


class ConnectionViewResponse(BaseModel):
    """A connection seen from one feature."""

    connection_id: UUID
    feature_id: str
    related_feature_id: str
    direction: str = Field(description="outgoing or incoming")
    connection_type: str
    strength: float
    confidence: float
    status: str
    is_bidirectional: bool
    discovered_by: str
    reason: Optional[str] = None
    discovered_at: Optional[datetime] = None


class ConnectionCountResponse(BaseModel):
    feature_id: str
    count: int


class ConnectionExistsResponse(BaseModel):
    feature_a_id: str
    feature_b_id: str
    exists: bool


# =============================================================================
# Correlations
# =============================================================================


class CorrelationCandidateResponse(BaseModel):
    feature_id: str
    correlated_feature_id: str
    correlated_feature_name: str
    correlation_score: float
    text_similarity: float
    category_overlap: float
    correlation_type: CorrelationType
    common_keywords: List[str]
    common_categories: List[str]


class DetectCorrelationsRequest(BaseModel):
    min_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class DetectCorrelationsResponse(BaseModel):
    workspace_id: str
    correlations_inserted: int


class CorrelationResponse(BaseModel):
    """A stored correlation."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workspace_id: str
    feature_a_id: str
    feature_b_id: str
    correlation_score: float
    text_similarity: float
    category_overlap: float
    correlation_type: Optional[CorrelationType] = None
    common_keywords: List[str] = Field(default_factory=list)
    common_categories: List[str] = Field(default_factory=list)
    detection_method: str
    detection_algorithm_version: str
    detected_at: datetime
    confidence: float
    status: CorrelationStatus
    user_rating: Optional[int] = None
    user_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class CorrelationStatusRequest(BaseModel):
    status: CorrelationStatus
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    notes: Optional[str] = None


class ConvertCorrelationRequest(BaseModel):
    connection_type: ConnectionType = ConnectionType.RELATES_TO


class ConvertCorrelationResponse(BaseModel):
    correlation_id: UUID
    connection_id: UUID


# =============================================================================
# Importance
# =============================================================================


class ImportanceScoreResponse(BaseModel):
    """Importance score of one feature."""

    model_config = ConfigDict(from_attributes=True)

    feature_id: str
    workspace_id: str
    overall_score: float
    dependency_score: float
    blocking_score: float
    connection_score: float
    business_value_score: float
    priority_score: float
    workflow_score: float
    complexity_score: float
    incoming_dependency_count: int
    outgoing_dependency_count: int
    total_connection_count: int
    blocking_count: int
    is_on_critical_path: bool
    critical_path_position: Optional[int] = None
    is_bottleneck: bool
    workspace_rank: Optional[int] = None
    percentile: Optional[float] = None
    calculation_weights: Dict[str, Any]
    calculation_version: str
    calculation_method: str
    calculated_at: datetime


class RecalculateResponse(BaseModel):
    workspace_id: str
    features_scored: int


# =============================================================================
# Insights and analysis
# =============================================================================


class InsightCreateRequest(BaseModel):
    """Request to record a user or AI insight."""

    insight_type: InsightType
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    severity: InsightSeverity = InsightSeverity.MEDIUM
    priority: int = Field(default=3, ge=1, le=5)
    primary_feature_id: Optional[str] = None
    related_feature_ids: List[str] = Field(default_factory=list)
    recommendation: Optional[str] = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    detected_by: DetectedBy = DetectedBy.USER


class InsightStatusRequest(BaseModel):
    status: InsightStatus
    notes: Optional[str] = None
    action_taken: Optional[str] = None


class InsightResponse(BaseModel):
    """A stored insight."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workspace_id: str
    insight_type: InsightType
    severity: InsightSeverity
    priority: int
    primary_feature_id: Optional[str] = None
    related_feature_ids: List[str] = Field(default_factory=list)
    affected_feature_count: int
    title: str
    description: Optional[str] = None
    recommendation: Optional[str] = None
    confidence: float
    impact_score: float
    detected_by: DetectedBy
    detection_method: Optional[str] = None
    detected_at: datetime
    status: InsightStatus
    acknowledged_at: Optional[datetime] = None
    user_notes: Optional[str] = None
    action_taken: Optional[str] = None
    expires_at: Optional[datetime] = None


class AnalysisJobResponse(BaseModel):
    """Tracking record of a workspace analysis."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workspace_id: str
    status: AnalysisJobStatus
    triggered_by: str
    result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AnalysisResultResponse(BaseModel):
    job_id: UUID
    workspace_id: str
    features_scored: int
    correlations_detected: int
    insights: Dict[str, Any]
    duration_seconds: float


class AnalysisQueuedResponse(BaseModel):
    job_id: UUID
    workspace_id: str
    status: AnalysisJobStatus = AnalysisJobStatus.QUEUED
