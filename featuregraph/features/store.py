"""Feature Store seam.

The engine never owns feature records. It reads immutable snapshots from a
``FeatureStore`` at analysis time. Two implementations are provided: one
backed by the ``features`` table sharing the engine's database, and an
in-memory store for hosts that push snapshots directly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from featuregraph.db.models import Feature


@dataclass(frozen=True)
class FeatureSnapshot:
    """Attributes of a feature consumed by the engine.

    Rating fields are kept as raw strings; scoring maps unknown values to a
    neutral mid-point instead of rejecting them.
    """

    id: str
    workspace_id: str
    name: str = ""
    purpose: Optional[str] = None
    business_value: Optional[str] = None
    priority: Optional[str] = None
    workflow_stage: Optional[str] = None
    difficulty: Optional[str] = None
    categories: tuple = field(default_factory=tuple)

    @property
    def text(self) -> str:
        """Name and purpose joined for text similarity."""
        return f"{self.name or ''} {self.purpose or ''}"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "FeatureSnapshot":
        """Build a snapshot from a host payload (camelCase or snake_case keys)."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return None

        categories = pick("categories") or ()
        return cls(
            id=str(pick("id")),
            workspace_id=str(pick("workspace_id", "workspaceId")),
            name=pick("name") or "",
            purpose=pick("purpose"),
            business_value=pick("business_value", "businessValue"),
            priority=pick("priority"),
            workflow_stage=pick("workflow_stage", "workflowStage"),
            difficulty=pick("difficulty"),
            categories=tuple(str(c) for c in categories),
        )

    @classmethod
    def from_model(cls, feature: Feature) -> "FeatureSnapshot":
        return cls(
            id=feature.id,
            workspace_id=feature.workspace_id,
            name=feature.name or "",
            purpose=feature.purpose,
            business_value=feature.business_value,
            priority=feature.priority,
            workflow_stage=feature.workflow_stage,
            difficulty=feature.difficulty,
            categories=tuple(feature.categories or ()),
        )


class FeatureStore(ABC):
    """Read-only source of feature snapshots, scoped by workspace."""

    @abstractmethod
    def list_features(self, workspace_id: str) -> List[FeatureSnapshot]:
        """Return every feature of ``workspace_id`` ordered by id."""

    @abstractmethod
    def get_feature(self, feature_id: str) -> Optional[FeatureSnapshot]:
        """Return a single feature or None."""


class SqlFeatureStore(FeatureStore):
    """Feature store reading the ``features`` table through a session."""

    def __init__(self, session: Session):
        self.session = session

    def list_features(self, workspace_id: str) -> List[FeatureSnapshot]:
        rows = self.session.execute(
            select(Feature).where(Feature.workspace_id == workspace_id).order_by(Feature.id)
        ).scalars()
        return [FeatureSnapshot.from_model(row) for row in rows]

    def get_feature(self, feature_id: str) -> Optional[FeatureSnapshot]:
        row = self.session.get(Feature, feature_id)
        return FeatureSnapshot.from_model(row) if row else None


class InMemoryFeatureStore(FeatureStore):
    """Feature store holding snapshots pushed by the host application."""

    def __init__(self, features: Iterable[FeatureSnapshot] = ()):
        self._features: Dict[str, FeatureSnapshot] = {}
        for feature in features:
            self.put(feature)

    def put(self, feature: FeatureSnapshot) -> None:
        self._features[feature.id] = feature

    def remove(self, feature_id: str) -> None:
        self._features.pop(feature_id, None)

    def list_features(self, workspace_id: str) -> List[FeatureSnapshot]:
        return sorted(
            (f for f in self._features.values() if f.workspace_id == workspace_id),
            key=lambda f: f.id,
        )

    def get_feature(self, feature_id: str) -> Optional[FeatureSnapshot]:
        return self._features.get(feature_id)
