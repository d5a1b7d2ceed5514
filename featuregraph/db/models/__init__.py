"""SQLAlchemy models for the featuregraph analysis engine.

This package contains the ORM models backing the relationship graph and
its derived analytics:

- Feature: Read-only mirror of the host application's feature records
- FeatureConnection: Typed, directed edges between features
- FeatureCorrelation: Similarity-detected candidate pairs
- FeatureImportanceScore: Composite importance score per feature
- ConnectionInsight: Lifecycle-tracked findings
- AnalysisJob: Workspace re-analysis run tracking

Usage:
    from featuregraph.db.models import FeatureConnection, ConnectionType

    edge = FeatureConnection(
        workspace_id="ws-1",
        source_feature_id="checkout",
        target_feature_id="payments",
        connection_type=ConnectionType.DEPENDENCY,
    )
"""

from .analysis import AnalysisJob, AnalysisJobStatus
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from .connection import ConnectionStatus, ConnectionType, DiscoveredBy, FeatureConnection
from .correlation import CorrelationStatus, CorrelationType, FeatureCorrelation
from .feature import BusinessValue, Difficulty, Feature, Priority, WorkflowStage
from .importance import FeatureImportanceScore
from .insight import (
    SEVERITY_RANK,
    ConnectionInsight,
    DetectedBy,
    InsightSeverity,
    InsightStatus,
    InsightType,
)

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    # Models
    "AnalysisJob",
    "ConnectionInsight",
    "Feature",
    "FeatureConnection",
    "FeatureCorrelation",
    "FeatureImportanceScore",
    # Enums
    "AnalysisJobStatus",
    "BusinessValue",
    "ConnectionStatus",
    "ConnectionType",
    "CorrelationStatus",
    "CorrelationType",
    "DetectedBy",
    "Difficulty",
    "InsightSeverity",
    "InsightStatus",
    "InsightType",
    "Priority",
    "WorkflowStage",
    "SEVERITY_RANK",
]
