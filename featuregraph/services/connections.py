"""Connection Store service.

Owns the edge invariants of the feature graph:
- a feature can never be connected to itself
- at most one ``active`` edge exists per (source, target, type)
- bidirectional creation is all-or-nothing

Callers pass enum values either as members or as plain strings; strings are
coerced and unknown values raise ``InvalidEnumValueError``.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from featuregraph.db.models import (
    ConnectionStatus,
    ConnectionType,
    DiscoveredBy,
    FeatureConnection,
)
from featuregraph.db.models.base import utc_now
from featuregraph.db.repositories import ConnectionRepository
from featuregraph.errors import (
    FeatureNotFoundError,
    SelfConnectionError,
    ValidationError,
    coerce_enum,
)
from featuregraph.features import FeatureStore
from featuregraph.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ConnectionView:
    """A connection seen from one feature, tagged with its direction."""

    connection_id: UUID
    feature_id: str
    related_feature_id: str
    direction: str  # "outgoing" or "incoming"
    connection_type: str
    strength: float
    confidence: float
    status: str
    is_bidirectional: bool
    discovered_by: str
    reason: Optional[str] = None
    discovered_at: Optional[datetime] = None

    @classmethod
    def from_connection(cls, feature_id: str, connection: FeatureConnection) -> "ConnectionView":
        outgoing = connection.source_feature_id == feature_id
        return cls(
            connection_id=connection.id,
            feature_id=feature_id,
            related_feature_id=connection.target_feature_id if outgoing else connection.source_feature_id,
            direction="outgoing" if outgoing else "incoming",
            connection_type=connection.connection_type.value,
            strength=connection.strength,
            confidence=connection.confidence,
            status=connection.status.value,
            is_bidirectional=connection.is_bidirectional,
            discovered_by=connection.discovered_by.value,
            reason=connection.reason,
            discovered_at=connection.discovered_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _check_unit_interval(name: str, value: float) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not 0.0 <= value <= 1.0:
        raise ValidationError(f"{name} must be between 0.0 and 1.0, got {value!r}")
    return float(value)


class ConnectionService:
    """Create, review and query typed edges between features."""

    def __init__(self, session: Session, feature_store: Optional[FeatureStore] = None):
        """Initialize the connection service.

        Args:
            session: Database session
            feature_store: Optional feature source; when given, both endpoints
                must exist and belong to the connection's workspace
        """
        self.session = session
        self.feature_store = feature_store
        self.repository = ConnectionRepository(session)

    # ----------------------------------------------------------------- create

    def create_connection(
        self,
        workspace_id: str,
        source_feature_id: str,
        target_feature_id: str,
        connection_type: ConnectionType | str,
        *,
        strength: float = 0.5,
        confidence: float = 0.5,
        reason: Optional[str] = None,
        evidence: Optional[Sequence[Any]] = None,
        discovered_by: DiscoveredBy | str = DiscoveredBy.USER,
        status: ConnectionStatus | str = ConnectionStatus.ACTIVE,
    ) -> UUID:
        """Create a directed connection.

        Args:
            workspace_id: Workspace both features belong to
            source_feature_id: Edge origin
            target_feature_id: Edge destination
            connection_type: Relationship kind
            strength: Relationship strength (0.0-1.0)
            confidence: Confidence in the relationship (0.0-1.0)
            reason: Why the connection exists
            evidence: Supporting evidence items
            discovered_by: Who discovered the connection
            status: Initial status

        Returns:
            Id of the new connection

        Raises:
            SelfConnectionError: If source and target are the same feature
            DuplicateConnectionError: If an active edge with the same
                (source, target, type) already exists
            InvalidEnumValueError: If an enum-typed argument is unknown
        """
        row = self._build_row(
            workspace_id,
            source_feature_id,
            target_feature_id,
            connection_type,
            strength=strength,
            confidence=confidence,
            reason=reason,
            evidence=evidence,
            discovered_by=discovered_by,
            status=status,
            is_bidirectional=False,
        )
        connection = self.repository.create(**row)
        logger.info(
            f"Created {row['connection_type'].value} connection "
            f"{source_feature_id} -> {target_feature_id} ({connection.id})"
        )
        return connection.id

    def create_bidirectional_connection(
        self,
        workspace_id: str,
        source_feature_id: str,
        target_feature_id: str,
        connection_type: ConnectionType | str,
        *,
        strength: float = 0.5,
        confidence: float = 0.5,
        reason: Optional[str] = None,
        evidence: Optional[Sequence[Any]] = None,
        discovered_by: DiscoveredBy | str = DiscoveredBy.USER,
        status: ConnectionStatus | str = ConnectionStatus.ACTIVE,
    ) -> UUID:
        """Create a forward and a reverse connection as one unit.

        If either insert fails, neither row is kept.

        Returns:
            Id of the forward connection
        """
        forward = self._build_row(
            workspace_id,
            source_feature_id,
            target_feature_id,
            connection_type,
            strength=strength,
            confidence=confidence,
            reason=reason,
            evidence=evidence,
            discovered_by=discovered_by,
            status=status,
            is_bidirectional=True,
        )
        reverse = {
            **forward,
            "source_feature_id": forward["target_feature_id"],
            "target_feature_id": forward["source_feature_id"],
            "evidence": list(forward["evidence"]),
        }
        created = self.repository.create_many([forward, reverse])
        logger.info(
            f"Created bidirectional {forward['connection_type'].value} connection "
            f"{source_feature_id} <-> {target_feature_id}"
        )
        return created[0].id

    # ------------------------------------------------------------- lifecycle

    def set_status(self, connection_id: UUID, status: ConnectionStatus | str) -> FeatureConnection:
        """Change the status of a connection.

        Moving an edge out of ``active`` frees its (source, target, type)
        slot; moving it back in fails if the slot was taken meanwhile.

        Raises:
            ConnectionNotFoundError: If the connection does not exist
            DuplicateConnectionError: If re-activation collides
        """
        status = coerce_enum(ConnectionStatus, status, "status")
        return self.repository.update_status(connection_id, status)

    def delete_connection(self, connection_id: UUID) -> FeatureConnection:
        """Soft-delete a connection by moving it to ``inactive``."""
        return self.repository.update_status(connection_id, ConnectionStatus.INACTIVE)

    def confirm_connection(self, connection_id: UUID) -> FeatureConnection:
        """Record a user confirmation and make the connection active."""
        return self.repository.update_status(
            connection_id,
            ConnectionStatus.ACTIVE,
            user_confirmed=True,
            user_rejected=False,
            last_reviewed_at=utc_now(),
        )

    def reject_connection(self, connection_id: UUID) -> FeatureConnection:
        """Record a user rejection and retire the connection."""
        return self.repository.update_status(
            connection_id,
            ConnectionStatus.REJECTED,
            user_confirmed=False,
            user_rejected=True,
            last_reviewed_at=utc_now(),
        )

    # ----------------------------------------------------------------- reads

    def get_connection(self, connection_id: UUID) -> FeatureConnection:
        return self.repository.get_by_id_or_raise(connection_id)

    def get_connections(
        self,
        feature_id: str,
        status: Optional[ConnectionStatus | str] = ConnectionStatus.ACTIVE,
    ) -> List[ConnectionView]:
        """Merged incoming and outgoing connections of a feature.

        Args:
            feature_id: Feature to look up
            status: Only return connections in this status (None for all)

        Returns:
            Connection views tagged ``outgoing`` or ``incoming``
        """
        if status is not None:
            status = coerce_enum(ConnectionStatus, status, "status")
        return [
            ConnectionView.from_connection(feature_id, connection)
            for connection in self.repository.list_for_feature(feature_id, status=status)
        ]

    def count_connections(self, feature_id: str) -> int:
        """Number of active connections touching a feature."""
        return self.repository.count_for_feature(feature_id)

    def connection_exists(self, feature_a_id: str, feature_b_id: str) -> bool:
        """True if an active edge links the features, in either direction."""
        return self.repository.exists_between(feature_a_id, feature_b_id)

    def get_workspace_connections(
        self,
        workspace_id: str,
        status: Optional[ConnectionStatus | str] = ConnectionStatus.ACTIVE,
    ) -> List[FeatureConnection]:
        if status is not None:
            status = coerce_enum(ConnectionStatus, status, "status")
        return self.repository.list_for_workspace(workspace_id, status=status)

    # --------------------------------------------------------------- helpers

    def _build_row(
        self,
        workspace_id: str,
        source_feature_id: str,
        target_feature_id: str,
        connection_type: ConnectionType | str,
        *,
        strength: float,
        confidence: float,
        reason: Optional[str],
        evidence: Optional[Sequence[Any]],
        discovered_by: DiscoveredBy | str,
        status: ConnectionStatus | str,
        is_bidirectional: bool,
    ) -> Dict[str, Any]:
        if source_feature_id == target_feature_id:
            raise SelfConnectionError(source_feature_id)

        row = {
            "workspace_id": workspace_id,
            "source_feature_id": source_feature_id,
            "target_feature_id": target_feature_id,
            "connection_type": coerce_enum(ConnectionType, connection_type, "connection_type"),
            "strength": _check_unit_interval("strength", strength),
            "confidence": _check_unit_interval("confidence", confidence),
            "reason": reason,
            "evidence": list(evidence or []),
            "discovered_by": coerce_enum(DiscoveredBy, discovered_by, "discovered_by"),
            "status": coerce_enum(ConnectionStatus, status, "status"),
            "is_bidirectional": is_bidirectional,
            "discovered_at": utc_now(),
        }
        if self.feature_store is not None:
            for feature_id in (source_feature_id, target_feature_id):
                feature = self.feature_store.get_feature(feature_id)
                if feature is None or feature.workspace_id != workspace_id:
                    raise FeatureNotFoundError(feature_id)
        return row
