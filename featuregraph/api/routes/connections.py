"""API routes for the Connection Store."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from featuregraph.api.dependencies import get_db, get_feature_store
from featuregraph.api.models import (
    ConnectionCountResponse,
    ConnectionCreateRequest,
    ConnectionExistsResponse,
    ConnectionResponse,
    ConnectionStatusRequest,
    ConnectionViewResponse,
)
from featuregraph.db.models import ConnectionStatus
from featuregraph.features import FeatureStore
from featuregraph.services.connections import ConnectionService

router = APIRouter(tags=["connections"])


@router.post(
    "/workspaces/{workspace_id}/connections",
    response_model=ConnectionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_connection(
    workspace_id: str,
    request: ConnectionCreateRequest,
    db: Session = Depends(get_db),
    feature_store: FeatureStore = Depends(get_feature_store),
) -> ConnectionResponse:
    """Connect two features; ``bidirectional`` also creates the reverse edge."""
    service = ConnectionService(db, feature_store)
    create = service.create_bidirectional_connection if request.bidirectional else service.create_connection
    connection_id = create(
        workspace_id,
        request.source_feature_id,
        request.target_feature_id,
        request.connection_type,
        strength=request.strength,
        confidence=request.confidence,
        reason=request.reason,
        evidence=request.evidence,
        discovered_by=request.discovered_by,
    )
    return ConnectionResponse.model_validate(service.get_connection(connection_id))


@router.get("/workspaces/{workspace_id}/connections", response_model=List[ConnectionResponse])
def list_workspace_connections(
    workspace_id: str,
    connection_status: Optional[ConnectionStatus] = Query(default=ConnectionStatus.ACTIVE, alias="status"),
    db: Session = Depends(get_db),
) -> List[ConnectionResponse]:
    connections = ConnectionService(db).get_workspace_connections(workspace_id, status=connection_status)
    return [ConnectionResponse.model_validate(c) for c in connections]


@router.get("/features/{feature_id}/connections", response_model=List[ConnectionViewResponse])
def get_feature_connections(
    feature_id: str,
    connection_status: Optional[ConnectionStatus] = Query(default=ConnectionStatus.ACTIVE, alias="status"),
    db: Session = Depends(get_db),
) -> List[ConnectionViewResponse]:
    """Incoming and outgoing connections of a feature, tagged by direction."""
    views = ConnectionService(db).get_connections(feature_id, status=connection_status)
    return [ConnectionViewResponse(**view.to_dict()) for view in views]


@router.get("/features/{feature_id}/connections/count", response_model=ConnectionCountResponse)
def count_feature_connections(feature_id: str, db: Session = Depends(get_db)) -> ConnectionCountResponse:
    return ConnectionCountResponse(
        feature_id=feature_id,
        count=ConnectionService(db).count_connections(feature_id),
    )


@router.get("/connections/exists", response_model=ConnectionExistsResponse)
def connection_exists(
    feature_a: str = Query(..., min_length=1),
    feature_b: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
) -> ConnectionExistsResponse:
    """Whether an active edge links two features in either direction."""
    return ConnectionExistsResponse(
        feature_a_id=feature_a,
        feature_b_id=feature_b,
        exists=ConnectionService(db).connection_exists(feature_a, feature_b),
    )


@router.patch("/connections/{connection_id}/status", response_model=ConnectionResponse)
def set_connection_status(
    connection_id: UUID,
    request: ConnectionStatusRequest,
    db: Session = Depends(get_db),
) -> ConnectionResponse:
    connection = ConnectionService(db).set_status(connection_id, request.status)
    return ConnectionResponse.model_validate(connection)


@router.delete("/connections/{connection_id}", response_model=ConnectionResponse)
def delete_connection(connection_id: UUID, db: Session = Depends(get_db)) -> ConnectionResponse:
    """Soft-delete a connection (status becomes ``inactive``)."""
    return ConnectionResponse.model_validate(ConnectionService(db).delete_connection(connection_id))


@router.post("/connections/{connection_id}/confirm", response_model=ConnectionResponse)
def confirm_connection(connection_id: UUID, db: Session = Depends(get_db)) -> ConnectionResponse:
    return ConnectionResponse.model_validate(ConnectionService(db).confirm_connection(connection_id))


@router.post("/connections/{connection_id}/reject", response_model=ConnectionResponse)
def reject_connection(connection_id: UUID, db: Session = Depends(get_db)) -> ConnectionResponse:
    return ConnectionResponse.model_validate(ConnectionService(db).reject_connection(connection_id))
