"""FeatureImportanceScore model holding composite importance per feature."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, generate_repr


class FeatureImportanceScore(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Importance score row, one per feature.

    Attributes:
        workspace_id: Workspace of the scored feature
        feature_id: Scored feature (unique)
        overall_score: Weighted composite (0-100)
        dependency_score: From incoming dependency edges (0-100)
        blocking_score: From outgoing blocking edges (0-100)
        connection_score: From all active edges (0-100)
        business_value_score: From the business value rating (0-100)
        priority_score: From the priority rating (0-100)
        workflow_score: From the workflow stage (0-100)
        complexity_score: From the difficulty rating (0-100)
        incoming_dependency_count: Active dependency edges targeting the feature
        outgoing_dependency_count: Active dependency edges leaving the feature
        total_connection_count: Active edges touching the feature
        blocking_count: Active blocks edges leaving the feature
        is_on_critical_path: Member of the longest precedence chain
        critical_path_position: 1-based position on that chain
        is_bottleneck: Gates enough other features to be flagged
        workspace_rank: 1 = most important in the workspace
        percentile: Share of the workspace scoring strictly lower (0-100)
        calculation_weights: Weights snapshot used for this row
        calculation_version: Version of the weights configuration
        calculation_method: Aggregation method name
        calculated_at: When the score was last computed
    """

    __tablename__ = "feature_importance_scores"

    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False)
    feature_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    overall_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    dependency_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    blocking_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    connection_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    business_value_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    priority_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    workflow_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    complexity_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    incoming_dependency_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    outgoing_dependency_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_connection_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    blocking_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_on_critical_path: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    critical_path_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_bottleneck: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    workspace_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    percentile: Mapped[float | None] = mapped_column(Float, nullable=True)

    calculation_weights: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        default=dict,
        nullable=False,
    )
    calculation_version: Mapped[str] = mapped_column(String(16), default="v1.0", nullable=False)
    calculation_method: Mapped[str] = mapped_column(
        String(32), default="weighted_sum", nullable=False
    )
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "overall_score >= 0 AND overall_score <= 100",
            name="ck_feature_importance_overall_range",
        ),
        Index("ix_feature_importance_workspace_rank", "workspace_id", "workspace_rank"),
        Index("ix_feature_importance_workspace_score", "workspace_id", "overall_score"),
    )

    @property
    def component_scores(self) -> dict[str, float]:
        return {
            "dependency": self.dependency_score,
            "blocking": self.blocking_score,
            "connection": self.connection_score,
            "business_value": self.business_value_score,
            "priority": self.priority_score,
            "workflow": self.workflow_score,
            "complexity": self.complexity_score,
        }

    def __repr__(self) -> str:
        return generate_repr(self, "feature_id", "overall_score", "workspace_rank")
