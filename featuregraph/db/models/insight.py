"""ConnectionInsight model for lifecycle-tracked analysis findings."""

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_values, generate_repr


class InsightType(str, enum.Enum):
    """Kind of finding."""

    CRITICAL_PATH = "critical_path"
    BOTTLENECK_DETECTED = "bottleneck_detected"
    MISSING_DEPENDENCY = "missing_dependency"
    CIRCULAR_DEPENDENCY = "circular_dependency"
    HIGH_CORRELATION = "high_correlation"
    DUPLICATE_FEATURE = "duplicate_feature"
    ORPHANED_FEATURE = "orphaned_feature"
    BLOCKING_CHAIN = "blocking_chain"
    OPTIMIZATION_OPPORTUNITY = "optimization_opportunity"
    RISK_INDICATOR = "risk_indicator"


class InsightSeverity(str, enum.Enum):
    """Severity level of an insight."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Numeric rank for ordering (critical = 5, info = 1)."""
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    InsightSeverity.CRITICAL: 5,
    InsightSeverity.HIGH: 4,
    InsightSeverity.MEDIUM: 3,
    InsightSeverity.LOW: 2,
    InsightSeverity.INFO: 1,
}


class InsightStatus(str, enum.Enum):
    """Status of an insight.

    Lifecycle:
        ACTIVE -> ACKNOWLEDGED -> RESOLVED
        ACTIVE/ACKNOWLEDGED -> DISMISSED
        ACTIVE/ACKNOWLEDGED -> OBSOLETE (superseded by a re-analysis)
    """

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"
    OBSOLETE = "obsolete"


class DetectedBy(str, enum.Enum):
    """Origin of an insight. Only system insights are obsoleted by re-analysis."""

    SYSTEM = "system"
    AI = "ai"
    USER = "user"


class ConnectionInsight(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """User-facing finding derived from scores and graph shape.

    Insights are never hard-deleted by analysis; re-analysis moves prior
    system insights to ``obsolete`` which keeps an audit trail.

    Attributes:
        workspace_id: Workspace the insight belongs to
        insight_type: Kind of finding
        severity: critical, high, medium, low or info
        priority: 1 (lowest) to 5 (highest) within a severity
        primary_feature_id: Anchor feature, None for workspace-wide insights
        related_feature_ids: Other features involved
        affected_feature_count: Primary plus related features
        title: Short headline
        description: Explanation of the finding
        recommendation: Suggested action
        confidence: Confidence in the finding (0-1)
        impact_score: Estimated impact if acted upon (0-1)
        analysis_data: Structured metrics behind the finding
        evidence: Supporting evidence entries
        detected_by: system, ai or user
        detection_method: Name of the pass that produced the insight
        status: Lifecycle status
        expires_at: Optional expiry; expired insights are not listed
    """

    __tablename__ = "connection_insights"

    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False)
    insight_type: Mapped[InsightType] = mapped_column(
        Enum(InsightType, name="insight_type", values_callable=enum_values),
        nullable=False,
    )
    severity: Mapped[InsightSeverity] = mapped_column(
        Enum(InsightSeverity, name="insight_severity", values_callable=enum_values),
        default=InsightSeverity.INFO,
        nullable=False,
    )
    priority: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    primary_feature_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    related_feature_ids: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        default=list,
        nullable=False,
    )
    affected_feature_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommendation: Mapped[str | None] = mapped_column(Text, nullable=True)
    impact_assessment: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)
    impact_score: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)
    analysis_data: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        default=dict,
        nullable=False,
    )
    evidence: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        default=list,
        nullable=False,
    )
    detected_by: Mapped[DetectedBy] = mapped_column(
        Enum(DetectedBy, name="insight_detected_by", values_callable=enum_values),
        default=DetectedBy.SYSTEM,
        nullable=False,
    )
    detection_method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    status: Mapped[InsightStatus] = mapped_column(
        Enum(InsightStatus, name="insight_status", values_callable=enum_values),
        default=InsightStatus.ACTIVE,
        nullable=False,
    )
    acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    user_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_taken: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_taken_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("priority >= 1 AND priority <= 5", name="ck_connection_insights_priority"),
        CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_connection_insights_confidence_range",
        ),
        Index("ix_connection_insights_workspace_status", "workspace_id", "status"),
        Index("ix_connection_insights_workspace_type", "workspace_id", "insight_type"),
        Index("ix_connection_insights_primary_feature", "primary_feature_id"),
    )

    def __repr__(self) -> str:
        return generate_repr(self, "id", "insight_type", "severity", "status")
