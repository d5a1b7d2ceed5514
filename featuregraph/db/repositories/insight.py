"""Repository for ConnectionInsight rows."""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session

from featuregraph.db.models import (
    SEVERITY_RANK,
    ConnectionInsight,
    DetectedBy,
    InsightSeverity,
    InsightStatus,
)
from featuregraph.db.models.base import utc_now
from featuregraph.errors import InsightNotFoundError, InvalidStatusTransitionError

# Valid status transitions for insight lifecycle
VALID_STATUS_TRANSITIONS = {
    InsightStatus.ACTIVE: {
        InsightStatus.ACKNOWLEDGED,
        InsightStatus.RESOLVED,
        InsightStatus.DISMISSED,
        InsightStatus.OBSOLETE,
    },
    InsightStatus.ACKNOWLEDGED: {
        InsightStatus.RESOLVED,
        InsightStatus.DISMISSED,
        InsightStatus.OBSOLETE,
    },
    InsightStatus.RESOLVED: set(),  # Terminal
    InsightStatus.DISMISSED: {InsightStatus.ACTIVE},  # Can be restored
    InsightStatus.OBSOLETE: set(),  # Terminal
}

_severity_rank = case(
    {severity: rank for severity, rank in SEVERITY_RANK.items()},
    value=ConnectionInsight.severity,
    else_=0,
)


class InsightRepository:
    """Data access for insights."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, **fields: Any) -> ConnectionInsight:
        fields.setdefault("detected_at", utc_now())
        related = list(fields.get("related_feature_ids") or [])
        fields["related_feature_ids"] = related
        fields.setdefault(
            "affected_feature_count",
            len(related) + (1 if fields.get("primary_feature_id") else 0),
        )
        insight = ConnectionInsight(**fields)
        self.session.add(insight)
        self.session.flush()
        return insight

    def get_by_id(self, insight_id: UUID) -> Optional[ConnectionInsight]:
        return self.session.get(ConnectionInsight, insight_id)

    def get_by_id_or_raise(self, insight_id: UUID) -> ConnectionInsight:
        insight = self.get_by_id(insight_id)
        if insight is None:
            raise InsightNotFoundError(insight_id)
        return insight

    def mark_system_insights_obsolete(self, workspace_id: str) -> int:
        """Move every active system insight of a workspace to ``obsolete``."""
        result = self.session.execute(
            update(ConnectionInsight)
            .where(
                ConnectionInsight.workspace_id == workspace_id,
                ConnectionInsight.status == InsightStatus.ACTIVE,
                ConnectionInsight.detected_by == DetectedBy.SYSTEM,
            )
            .values(status=InsightStatus.OBSOLETE, updated_at=utc_now())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    def list_active(
        self,
        workspace_id: str,
        min_severity: InsightSeverity = InsightSeverity.LOW,
        limit: int = 50,
        now: Optional[datetime] = None,
    ) -> List[ConnectionInsight]:
        """Active, unexpired insights at or above ``min_severity``.

        Ordered by severity (highest first), then priority (highest first),
        then recency (newest first).
        """
        now = now or utc_now()
        allowed = [s for s in InsightSeverity if SEVERITY_RANK[s] >= SEVERITY_RANK[min_severity]]
        query = (
            select(ConnectionInsight)
            .where(
                ConnectionInsight.workspace_id == workspace_id,
                ConnectionInsight.status == InsightStatus.ACTIVE,
                ConnectionInsight.severity.in_(allowed),
                or_(ConnectionInsight.expires_at.is_(None), ConnectionInsight.expires_at > now),
            )
            .order_by(
                _severity_rank.desc(),
                ConnectionInsight.priority.desc(),
                ConnectionInsight.detected_at.desc(),
            )
            .limit(limit)
        )
        return list(self.session.execute(query).scalars())

    def count_by_status(self, workspace_id: str) -> dict[InsightStatus, int]:
        rows = self.session.execute(
            select(ConnectionInsight.status, func.count(ConnectionInsight.id))
            .where(ConnectionInsight.workspace_id == workspace_id)
            .group_by(ConnectionInsight.status)
        )
        return {status: count for status, count in rows}

    def update_status(
        self,
        insight_id: UUID,
        new_status: InsightStatus,
        **fields: Any,
    ) -> ConnectionInsight:
        """Move an insight through its lifecycle.

        Raises:
            InsightNotFoundError: If the insight does not exist
            InvalidStatusTransitionError: If the transition is not allowed
        """
        insight = self.get_by_id_or_raise(insight_id)
        if new_status not in VALID_STATUS_TRANSITIONS[insight.status]:
            raise InvalidStatusTransitionError("insight", insight.status, new_status)

        insight.status = new_status
        if new_status == InsightStatus.ACKNOWLEDGED:
            insight.acknowledged_at = utc_now()
        for name, value in fields.items():
            setattr(insight, name, value)
        if fields.get("action_taken"):
            insight.action_taken_at = utc_now()
        self.session.flush()
        return insight
