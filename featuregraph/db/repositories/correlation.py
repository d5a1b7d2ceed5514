"""Repository for FeatureCorrelation rows."""

from typing import Any, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from featuregraph.db.models import CorrelationStatus, FeatureCorrelation
from featuregraph.db.models.base import utc_now
from featuregraph.errors import CorrelationNotFoundError, InvalidStatusTransitionError
from featuregraph.logging_config import get_logger

logger = get_logger(__name__)

# Valid status transitions for correlation review
VALID_STATUS_TRANSITIONS = {
    CorrelationStatus.DETECTED: {
        CorrelationStatus.REVIEWED,
        CorrelationStatus.ACCEPTED,
        CorrelationStatus.REJECTED,
        CorrelationStatus.CONVERTED,
    },
    CorrelationStatus.REVIEWED: {
        CorrelationStatus.ACCEPTED,
        CorrelationStatus.REJECTED,
        CorrelationStatus.CONVERTED,
    },
    CorrelationStatus.ACCEPTED: {
        CorrelationStatus.REJECTED,
        CorrelationStatus.CONVERTED,
    },
    CorrelationStatus.REJECTED: {
        CorrelationStatus.REVIEWED,
    },
    CorrelationStatus.CONVERTED: set(),  # Terminal
}

DEFAULT_VISIBLE_STATUSES = (
    CorrelationStatus.DETECTED,
    CorrelationStatus.REVIEWED,
    CorrelationStatus.ACCEPTED,
)


def canonical_pair(feature_x_id: str, feature_y_id: str) -> Tuple[str, str]:
    """Order a pair so the lexically smaller id comes first."""
    return (feature_x_id, feature_y_id) if feature_x_id < feature_y_id else (feature_y_id, feature_x_id)


class CorrelationRepository:
    """Data access for feature correlations."""

    def __init__(self, session: Session):
        self.session = session

    def existing_pairs(self, workspace_id: str) -> Set[Tuple[str, str]]:
        """Canonical pairs already stored for a workspace, in any status."""
        rows = self.session.execute(
            select(FeatureCorrelation.feature_a_id, FeatureCorrelation.feature_b_id).where(
                FeatureCorrelation.workspace_id == workspace_id
            )
        )
        return {(a, b) for a, b in rows}

    def get_pair(self, feature_x_id: str, feature_y_id: str) -> Optional[FeatureCorrelation]:
        feature_a_id, feature_b_id = canonical_pair(feature_x_id, feature_y_id)
        return self.session.execute(
            select(FeatureCorrelation).where(
                FeatureCorrelation.feature_a_id == feature_a_id,
                FeatureCorrelation.feature_b_id == feature_b_id,
            )
        ).scalar_one_or_none()

    def create_if_absent(
        self,
        workspace_id: str,
        feature_x_id: str,
        feature_y_id: str,
        **fields: Any,
    ) -> Optional[FeatureCorrelation]:
        """Insert a canonicalized correlation unless the pair already exists.

        The insert runs in a SAVEPOINT; a concurrent writer that stored the
        same pair first makes this call return None instead of failing.
        """
        feature_a_id, feature_b_id = canonical_pair(feature_x_id, feature_y_id)
        if self.get_pair(feature_a_id, feature_b_id) is not None:
            return None

        correlation = FeatureCorrelation(
            workspace_id=workspace_id,
            feature_a_id=feature_a_id,
            feature_b_id=feature_b_id,
            detected_at=utc_now(),
            **fields,
        )
        try:
            with self.session.begin_nested():
                self.session.add(correlation)
                self.session.flush()
        except IntegrityError:
            logger.debug(f"Correlation {feature_a_id}/{feature_b_id} inserted concurrently; skipping")
            return None
        return correlation

    def get_by_id(self, correlation_id: UUID) -> Optional[FeatureCorrelation]:
        return self.session.get(FeatureCorrelation, correlation_id)

    def get_by_id_or_raise(self, correlation_id: UUID) -> FeatureCorrelation:
        correlation = self.get_by_id(correlation_id)
        if correlation is None:
            raise CorrelationNotFoundError(correlation_id)
        return correlation

    def search(
        self,
        workspace_id: str,
        feature_id: Optional[str] = None,
        min_score: float = 0.0,
        statuses: Optional[Iterable[CorrelationStatus]] = DEFAULT_VISIBLE_STATUSES,
        limit: Optional[int] = None,
    ) -> List[FeatureCorrelation]:
        """Correlations of a workspace ordered by score (highest first)."""
        query = select(FeatureCorrelation).where(
            FeatureCorrelation.workspace_id == workspace_id,
            FeatureCorrelation.correlation_score >= min_score,
        )
        if feature_id is not None:
            query = query.where(
                or_(
                    FeatureCorrelation.feature_a_id == feature_id,
                    FeatureCorrelation.feature_b_id == feature_id,
                )
            )
        if statuses is not None:
            query = query.where(FeatureCorrelation.status.in_(list(statuses)))
        query = query.order_by(
            FeatureCorrelation.correlation_score.desc(),
            FeatureCorrelation.feature_a_id,
            FeatureCorrelation.feature_b_id,
        )
        if limit is not None:
            query = query.limit(limit)
        return list(self.session.execute(query).scalars())

    def update_status(
        self,
        correlation_id: UUID,
        new_status: CorrelationStatus,
        **fields: Any,
    ) -> FeatureCorrelation:
        """Move a correlation through its review lifecycle.

        Raises:
            CorrelationNotFoundError: If the correlation does not exist
            InvalidStatusTransitionError: If the transition is not allowed
        """
        correlation = self.get_by_id_or_raise(correlation_id)
        if new_status not in VALID_STATUS_TRANSITIONS[correlation.status]:
            raise InvalidStatusTransitionError("correlation", correlation.status, new_status)

        correlation.status = new_status
        correlation.reviewed_at = utc_now()
        for name, value in fields.items():
            setattr(correlation, name, value)
        self.session.flush()
        return correlation
