"""Repository for FeatureConnection rows.

Uniqueness of active edges is enforced by the partial unique index on
``feature_connections``; inserts and re-activations run inside a SAVEPOINT
so a violation rolls back only the attempted change and surfaces as
``DuplicateConnectionError``.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from featuregraph.db.models import ConnectionStatus, ConnectionType, FeatureConnection
from featuregraph.errors import ConnectionNotFoundError, DuplicateConnectionError
from featuregraph.logging_config import get_logger

logger = get_logger(__name__)


class ConnectionRepository:
    """Data access for feature connections."""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------ writes

    def create(self, **fields: Any) -> FeatureConnection:
        """Insert one connection atomically.

        Raises:
            DuplicateConnectionError: If an active edge with the same
                (source, target, type) exists
        """
        return self.create_many([fields])[0]

    def create_many(self, rows: Sequence[Dict[str, Any]]) -> List[FeatureConnection]:
        """Insert several connections as one all-or-nothing unit.

        Raises:
            DuplicateConnectionError: If any row collides with an active edge;
                none of the rows are kept
        """
        connections = [FeatureConnection(**fields) for fields in rows]
        try:
            with self.session.begin_nested():
                for connection in connections:
                    self.session.add(connection)
                    self.session.flush()
        except IntegrityError as e:
            collided = self._first_collision(rows)
            logger.debug(f"Connection insert rejected by unique index: {e.orig}")
            raise DuplicateConnectionError(*collided) from e
        return connections

    def update_status(
        self,
        connection_id: UUID,
        status: ConnectionStatus,
        **fields: Any,
    ) -> FeatureConnection:
        """Change a connection's status (and optional review fields).

        Raises:
            ConnectionNotFoundError: If the connection does not exist
            DuplicateConnectionError: If re-activating collides with another
                active edge
        """
        connection = self.get_by_id_or_raise(connection_id)
        previous = connection.status
        try:
            with self.session.begin_nested():
                connection.status = status
                for name, value in fields.items():
                    setattr(connection, name, value)
                self.session.flush()
        except IntegrityError as e:
            self.session.refresh(connection)
            raise DuplicateConnectionError(
                connection.source_feature_id,
                connection.target_feature_id,
                connection.connection_type.value,
            ) from e
        logger.debug(f"Connection {connection_id} status {previous.value} -> {status.value}")
        return connection

    # ------------------------------------------------------------------- reads

    def get_by_id(self, connection_id: UUID) -> Optional[FeatureConnection]:
        return self.session.get(FeatureConnection, connection_id)

    def get_by_id_or_raise(self, connection_id: UUID) -> FeatureConnection:
        connection = self.get_by_id(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)
        return connection

    def find_active(
        self,
        source_feature_id: str,
        target_feature_id: str,
        connection_type: ConnectionType,
    ) -> Optional[FeatureConnection]:
        return self.session.execute(
            select(FeatureConnection).where(
                FeatureConnection.source_feature_id == source_feature_id,
                FeatureConnection.target_feature_id == target_feature_id,
                FeatureConnection.connection_type == connection_type,
                FeatureConnection.status == ConnectionStatus.ACTIVE,
            )
        ).scalar_one_or_none()

    def list_for_feature(
        self,
        feature_id: str,
        status: Optional[ConnectionStatus] = ConnectionStatus.ACTIVE,
    ) -> List[FeatureConnection]:
        """Connections where the feature is source or target."""
        query = select(FeatureConnection).where(
            or_(
                FeatureConnection.source_feature_id == feature_id,
                FeatureConnection.target_feature_id == feature_id,
            )
        )
        if status is not None:
            query = query.where(FeatureConnection.status == status)
        return list(self.session.execute(query.order_by(FeatureConnection.created_at)).scalars())

    def count_for_feature(self, feature_id: str) -> int:
        return self.session.execute(
            select(func.count(FeatureConnection.id)).where(
                or_(
                    FeatureConnection.source_feature_id == feature_id,
                    FeatureConnection.target_feature_id == feature_id,
                ),
                FeatureConnection.status == ConnectionStatus.ACTIVE,
            )
        ).scalar_one()

    def exists_between(self, feature_a_id: str, feature_b_id: str) -> bool:
        """True if an active edge links the two features in either direction."""
        query = select(FeatureConnection.id).where(
            or_(
                and_(
                    FeatureConnection.source_feature_id == feature_a_id,
                    FeatureConnection.target_feature_id == feature_b_id,
                ),
                and_(
                    FeatureConnection.source_feature_id == feature_b_id,
                    FeatureConnection.target_feature_id == feature_a_id,
                ),
            ),
            FeatureConnection.status == ConnectionStatus.ACTIVE,
        )
        return self.session.execute(query.limit(1)).first() is not None

    def list_for_workspace(
        self,
        workspace_id: str,
        status: Optional[ConnectionStatus] = ConnectionStatus.ACTIVE,
    ) -> List[FeatureConnection]:
        query = select(FeatureConnection).where(FeatureConnection.workspace_id == workspace_id)
        if status is not None:
            query = query.where(FeatureConnection.status == status)
        query = query.order_by(
            FeatureConnection.source_feature_id,
            FeatureConnection.target_feature_id,
            FeatureConnection.connection_type,
        )
        return list(self.session.execute(query).scalars())

    # ----------------------------------------------------------------- helpers

    def _first_collision(self, rows: Sequence[Dict[str, Any]]) -> Tuple[str, str, str]:
        for fields in rows:
            connection_type = fields["connection_type"]
            if self.find_active(fields["source_feature_id"], fields["target_feature_id"], connection_type):
                return fields["source_feature_id"], fields["target_feature_id"], connection_type.value
        first = rows[0]
        return first["source_feature_id"], first["target_feature_id"], first["connection_type"].value

