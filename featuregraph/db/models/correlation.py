"""FeatureCorrelation model for similarity-detected candidate relationships."""

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
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_values, generate_repr


class CorrelationType(str, enum.Enum):
    """Relationship kind inferred from similarity components."""

    HIGH_SIMILARITY = "high_similarity"  # Potential duplicates
    COMPLEMENTARY = "complementary"
    SEQUENTIAL = "sequential"
    THEMATIC = "thematic"  # Share categories
    TECHNICAL = "technical"
    FUNCTIONAL = "functional"


class CorrelationStatus(str, enum.Enum):
    """Review status of a correlation.

    Lifecycle:
        DETECTED -> REVIEWED -> ACCEPTED -> CONVERTED
        DETECTED/REVIEWED/ACCEPTED -> REJECTED
    """

    DETECTED = "detected"
    REVIEWED = "reviewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CONVERTED = "converted"  # Turned into an explicit connection


class FeatureCorrelation(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Unordered feature pair proposed by the correlation detector.

    Pairs are canonicalized so ``feature_a_id < feature_b_id``; together with
    the unique constraint this guarantees a single row per pair.

    Attributes:
        workspace_id: Workspace both features belong to
        feature_a_id: Lexically smaller feature id
        feature_b_id: Lexically larger feature id
        correlation_score: Weighted text/category score (0-1)
        text_similarity: Jaccard similarity of name + purpose tokens (0-1)
        category_overlap: Shared categories over the larger category set (0-1)
        correlation_type: Inferred relationship kind
        common_keywords: Tokens shared by both texts
        common_categories: Categories shared by both features
        confidence: Confidence in the correlation (0-1)
        status: Review status
        user_rating: Optional 1-5 quality rating from a reviewer
        user_notes: Reviewer notes
        reviewed_at: When a reviewer last changed the status
    """

    __tablename__ = "feature_correlations"

    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False)
    feature_a_id: Mapped[str] = mapped_column(String(64), nullable=False)
    feature_b_id: Mapped[str] = mapped_column(String(64), nullable=False)
    correlation_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    text_similarity: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    category_overlap: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    correlation_type: Mapped[CorrelationType | None] = mapped_column(
        Enum(CorrelationType, name="correlation_type", values_callable=enum_values),
        nullable=True,
    )
    common_keywords: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        default=list,
        nullable=False,
    )
    common_categories: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        default=list,
        nullable=False,
    )
    detection_method: Mapped[str] = mapped_column(
        String(64), default="jaccard_category_overlap", nullable=False
    )
    detection_algorithm_version: Mapped[str] = mapped_column(
        String(16), default="v1.0", nullable=False
    )
    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    confidence: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)
    status: Mapped[CorrelationStatus] = mapped_column(
        Enum(CorrelationStatus, name="correlation_status", values_callable=enum_values),
        default=CorrelationStatus.DETECTED,
        nullable=False,
    )
    user_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("feature_a_id < feature_b_id", name="ck_feature_correlations_canonical_pair"),
        CheckConstraint(
            "correlation_score >= 0 AND correlation_score <= 1",
            name="ck_feature_correlations_score_range",
        ),
        CheckConstraint(
            "user_rating IS NULL OR (user_rating >= 1 AND user_rating <= 5)",
            name="ck_feature_correlations_rating_range",
        ),
        UniqueConstraint("feature_a_id", "feature_b_id", name="uq_feature_correlations_pair"),
        Index("ix_feature_correlations_workspace_score", "workspace_id", "correlation_score"),
        Index("ix_feature_correlations_status", "status"),
    )

    def other_feature_id(self, feature_id: str) -> str:
        """Return the id of the pair member that is not ``feature_id``."""
        return self.feature_b_id if self.feature_a_id == feature_id else self.feature_a_id

    def __repr__(self) -> str:
        return generate_repr(self, "id", "feature_a_id", "feature_b_id", "correlation_score")
