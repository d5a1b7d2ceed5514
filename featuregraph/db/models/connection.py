"""FeatureConnection model for typed, directed edges between features."""

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    Index,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_values, generate_repr


class ConnectionType(str, enum.Enum):
    """Kind of relationship between two features."""

    DEPENDENCY = "dependency"  # Source depends on target
    BLOCKS = "blocks"  # Source blocks target
    ENABLES = "enables"  # Source enables target
    COMPLEMENTS = "complements"
    CONFLICTS = "conflicts"
    RELATES_TO = "relates_to"
    DUPLICATES = "duplicates"
    SUPERSEDES = "supersedes"  # Source replaces target


class ConnectionStatus(str, enum.Enum):
    """Status of a connection.

    Only ``active`` edges count toward uniqueness, scoring and graph shape.
    """

    ACTIVE = "active"
    INACTIVE = "inactive"
    REJECTED = "rejected"
    PENDING_REVIEW = "pending_review"


class DiscoveredBy(str, enum.Enum):
    """How a connection was discovered."""

    USER = "user"
    AI = "ai"
    SYSTEM = "system"
    CORRELATION_ENGINE = "correlation_engine"


class FeatureConnection(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Directed edge between two features of the same workspace.

    Attributes:
        id: UUID primary key
        workspace_id: Workspace both features belong to
        source_feature_id: Edge origin
        target_feature_id: Edge destination
        connection_type: Relationship kind
        strength: Relationship strength (0.0-1.0)
        confidence: Confidence in the relationship (0.0-1.0)
        is_bidirectional: True when created as half of a forward/reverse pair
        reason: Why the connection exists
        evidence: Supporting evidence (keywords, notes, model output)
        discovered_by: user, ai, system or correlation_engine
        discovered_at: When the connection was discovered
        status: active, inactive, rejected or pending_review
        user_confirmed: Set when a user confirmed the connection
        user_rejected: Set when a user rejected the connection
        last_reviewed_at: Last user review timestamp
    """

    __tablename__ = "feature_connections"

    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_feature_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_feature_id: Mapped[str] = mapped_column(String(64), nullable=False)
    connection_type: Mapped[ConnectionType] = mapped_column(
        Enum(ConnectionType, name="connection_type", values_callable=enum_values),
        nullable=False,
    )
    strength: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)
    is_bidirectional: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    evidence: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        default=list,
        nullable=False,
    )
    discovered_by: Mapped[DiscoveredBy] = mapped_column(
        Enum(DiscoveredBy, name="connection_discovered_by", values_callable=enum_values),
        default=DiscoveredBy.USER,
        nullable=False,
    )
    discovered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    status: Mapped[ConnectionStatus] = mapped_column(
        Enum(ConnectionStatus, name="connection_status", values_callable=enum_values),
        default=ConnectionStatus.ACTIVE,
        nullable=False,
    )
    user_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    user_rejected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "source_feature_id != target_feature_id",
            name="ck_feature_connections_no_self_connection",
        ),
        CheckConstraint(
            "strength >= 0 AND strength <= 1",
            name="ck_feature_connections_strength_range",
        ),
        CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_feature_connections_confidence_range",
        ),
        Index(
            "uq_feature_connections_active_edge",
            "source_feature_id",
            "target_feature_id",
            "connection_type",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_feature_connections_source", "source_feature_id"),
        Index("ix_feature_connections_target", "target_feature_id"),
        Index("ix_feature_connections_workspace_status", "workspace_id", "status"),
    )

    def __repr__(self) -> str:
        return generate_repr(
            self, "id", "source_feature_id", "target_feature_id", "connection_type", "status"
        )
