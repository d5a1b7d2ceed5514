"""Feature model mirroring the host application's feature records.

The host application owns feature lifecycle. This table exists so the
engine can read snapshots from the same database; the engine never
writes to it outside of tests and seeding tools.
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, generate_repr


class BusinessValue(str, enum.Enum):
    """Business value rating of a feature."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Priority(str, enum.Enum):
    """Delivery priority of a feature."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class WorkflowStage(str, enum.Enum):
    """Stage of a feature in the delivery workflow."""

    IDEATION = "ideation"
    PLANNING = "planning"
    EXECUTION = "execution"
    COMPLETED = "completed"


class Difficulty(str, enum.Enum):
    """Estimated implementation difficulty."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Feature(Base):
    """Feature work item.

    Attribute columns are plain strings rather than enums: the engine must
    tolerate partially filled or out-of-range values written by the host.

    Attributes:
        id: Feature identifier assigned by the host application
        workspace_id: Workspace (tenant-scoped project) the feature belongs to
        name: Short feature name
        purpose: Free-text description of the feature's goal
        business_value: critical/high/medium/low (unvalidated)
        priority: critical/high/medium/low (unvalidated)
        workflow_stage: ideation/planning/execution/completed (unvalidated)
        difficulty: easy/medium/hard (unvalidated)
        categories: List of category tags
    """

    __tablename__ = "features"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    business_value: Mapped[str | None] = mapped_column(String(32), nullable=True)
    priority: Mapped[str | None] = mapped_column(String(32), nullable=True)
    workflow_stage: Mapped[str | None] = mapped_column(String(32), nullable=True)
    difficulty: Mapped[str | None] = mapped_column(String(32), nullable=True)
    categories: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        default=list,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (Index("ix_features_workspace_id", "workspace_id"),)

    def __repr__(self) -> str:
        return generate_repr(self, "id", "workspace_id", "name")
