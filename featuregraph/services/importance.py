"""Importance Scorer.

Each feature gets seven component scores in [0, 100]:

    dependency      min(100, incoming dependency edges x 20)
    blocking        min(100, outgoing blocks edges x 25)
    connection      min(100, active edges x 10)
    business_value  critical 100, high 75, medium 50, low 25
    priority        critical 100, high 75, medium 50, low 25
    workflow        ideation 100, execution 75, planning 50, completed 25
    complexity      easy 75, medium 50, hard 25

Unknown or missing ratings score a neutral 50. The overall score is the
weighted sum under a versioned ``ScoringWeights`` object, which is stored
on every row so historical scores stay reproducible.
"""

from bisect import bisect_right
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from featuregraph.config import GraphConfig, ScoringWeights
from featuregraph.db.models import (
    BusinessValue,
    ConnectionType,
    Difficulty,
    FeatureConnection,
    FeatureImportanceScore,
    Priority,
    WorkflowStage,
)
from featuregraph.db.models.base import utc_now
from featuregraph.db.repositories import ConnectionRepository, ImportanceScoreRepository
from featuregraph.errors import FeatureNotFoundError
from featuregraph.features import FeatureSnapshot, FeatureStore
from featuregraph.logging_config import get_logger
from featuregraph.services.graph_analysis import GraphShape, analyze_graph_shape

logger = get_logger(__name__)

NEUTRAL_SCORE = 50.0

BUSINESS_VALUE_SCORES = {
    BusinessValue.CRITICAL.value: 100.0,
    BusinessValue.HIGH.value: 75.0,
    BusinessValue.MEDIUM.value: 50.0,
    BusinessValue.LOW.value: 25.0,
}
PRIORITY_SCORES = {
    Priority.CRITICAL.value: 100.0,
    Priority.HIGH.value: 75.0,
    Priority.MEDIUM.value: 50.0,
    Priority.LOW.value: 25.0,
}
WORKFLOW_SCORES = {
    WorkflowStage.IDEATION.value: 100.0,
    WorkflowStage.PLANNING.value: 50.0,
    WorkflowStage.EXECUTION.value: 75.0,
    WorkflowStage.COMPLETED.value: 25.0,
}
COMPLEXITY_SCORES = {
    Difficulty.EASY.value: 75.0,
    Difficulty.MEDIUM.value: 50.0,
    Difficulty.HARD.value: 25.0,
}

DEPENDENCY_POINTS = 20
BLOCKING_POINTS = 25
CONNECTION_POINTS = 10


def clamp_score(value: float) -> float:
    return round(min(100.0, max(0.0, float(value))), 2)


def rating_score(value: Optional[str], table: Mapping[str, float]) -> float:
    """Look up a rating; anything unknown scores ``NEUTRAL_SCORE``."""
    if not isinstance(value, str):
        return NEUTRAL_SCORE
    return table.get(value.strip().lower(), NEUTRAL_SCORE)


def count_score(count: int, points_per_edge: int) -> float:
    return clamp_score(max(0, count) * points_per_edge)


@dataclass
class EdgeCounts:
    """Active edge counts of one feature."""

    incoming_dependency: int = 0
    outgoing_dependency: int = 0
    total: int = 0
    blocking: int = 0


@dataclass
class ComponentScores:
    dependency: float
    blocking: float
    connection: float
    business_value: float
    priority: float
    workflow: float
    complexity: float

    def overall(self, weights: ScoringWeights) -> float:
        total = sum(getattr(self, name) * weight for name, weight in weights.weights().items())
        return clamp_score(total)

    def as_columns(self) -> Dict[str, float]:
        return {f"{name}_score": value for name, value in asdict(self).items()}


def compute_component_scores(feature: FeatureSnapshot, counts: EdgeCounts) -> ComponentScores:
    return ComponentScores(
        dependency=count_score(counts.incoming_dependency, DEPENDENCY_POINTS),
        blocking=count_score(counts.blocking, BLOCKING_POINTS),
        connection=count_score(counts.total, CONNECTION_POINTS),
        business_value=rating_score(feature.business_value, BUSINESS_VALUE_SCORES),
        priority=rating_score(feature.priority, PRIORITY_SCORES),
        workflow=rating_score(feature.workflow_stage, WORKFLOW_SCORES),
        complexity=rating_score(feature.difficulty, COMPLEXITY_SCORES),
    )


def count_edges(connections: Iterable[FeatureConnection]) -> Dict[str, EdgeCounts]:
    """Per-feature edge counts from a list of active connections."""
    counts: Dict[str, EdgeCounts] = defaultdict(EdgeCounts)
    for connection in connections:
        source = counts[connection.source_feature_id]
        target = counts[connection.target_feature_id]
        source.total += 1
        target.total += 1
        if connection.connection_type == ConnectionType.DEPENDENCY:
            source.outgoing_dependency += 1
            target.incoming_dependency += 1
        elif connection.connection_type == ConnectionType.BLOCKS:
            source.blocking += 1
    return counts


def rank_scores(scores: Sequence[Tuple[str, float]]) -> Dict[str, Tuple[int, float]]:
    """Assign workspace rank and percentile.

    Rank 1 is the highest overall score; equal scores are ordered by
    feature id. The percentile is the percent rank over the descending
    order (share of the other features scoring strictly higher), so the
    top feature is 0, the bottom one 100 and tied features share a value.
    A single feature gets 0.

    Returns:
        Mapping of feature id to (rank, percentile)
    """
    ordered = sorted(scores, key=lambda item: (-item[1], item[0]))
    n = len(ordered)
    ascending = sorted(score for _, score in ordered)
    result: Dict[str, Tuple[int, float]] = {}
    for rank, (feature_id, score) in enumerate(ordered, start=1):
        if n == 1:
            percentile = 0.0
        else:
            higher = n - bisect_right(ascending, score)
            percentile = round(higher / (n - 1) * 100, 2)
        result[feature_id] = (rank, percentile)
    return result


class ImportanceScorer:
    """Compute, rank and query feature importance scores."""

    def __init__(
        self,
        session: Session,
        feature_store: FeatureStore,
        weights: Optional[ScoringWeights] = None,
        graph_config: Optional[GraphConfig] = None,
    ):
        """Initialize the scorer.

        Args:
            session: Database session
            feature_store: Source of feature snapshots
            weights: Versioned scoring weights (validated here)
            graph_config: Critical path and bottleneck thresholds
        """
        self.session = session
        self.feature_store = feature_store
        self.weights = weights or ScoringWeights()
        self.weights.validate()
        self.graph_config = graph_config or GraphConfig()
        self.scores = ImportanceScoreRepository(session)
        self.connections = ConnectionRepository(session)

    def recalc_workspace_importance(self, workspace_id: str) -> int:
        """Recompute, flag and rank every feature of a workspace.

        Rows of features that left the workspace are deleted.

        Returns:
            Number of features scored
        """
        features = self.feature_store.list_features(workspace_id)
        connections = self.connections.list_for_workspace(workspace_id)
        feature_ids = [feature.id for feature in features]

        counts = count_edges(connections)
        shape = analyze_graph_shape(feature_ids, connections, self.graph_config)

        computed: List[Tuple[FeatureSnapshot, ComponentScores, float]] = []
        for feature in features:
            components = compute_component_scores(feature, counts.get(feature.id, EdgeCounts()))
            computed.append((feature, components, components.overall(self.weights)))

        ranking = rank_scores([(feature.id, overall) for feature, _, overall in computed])
        calculated_at = utc_now()
        for feature, components, overall in computed:
            rank, percentile = ranking[feature.id]
            self._store(
                workspace_id,
                feature.id,
                components,
                overall,
                counts.get(feature.id, EdgeCounts()),
                shape,
                calculated_at,
                workspace_rank=rank,
                percentile=percentile,
            )

        removed = self.scores.delete_except(workspace_id, feature_ids)
        logger.info(
            f"Scored {len(computed)} features in workspace {workspace_id} "
            f"(critical path {len(shape.critical_path)}, bottlenecks {len(shape.bottlenecks)}, "
            f"removed {removed} stale rows)"
        )
        return len(computed)

    def calculate_feature_importance(self, feature_id: str) -> FeatureImportanceScore:
        """Recompute one feature's component and overall scores.

        Rank, percentile and graph flags keep their last workspace-wide
        values; run ``recalc_workspace_importance`` to refresh them.

        Raises:
            FeatureNotFoundError: If the feature does not exist
        """
        feature = self.feature_store.get_feature(feature_id)
        if feature is None:
            raise FeatureNotFoundError(feature_id)

        counts = count_edges(self.connections.list_for_feature(feature_id)).get(feature_id, EdgeCounts())
        components = compute_component_scores(feature, counts)
        existing = self.scores.get_by_feature(feature_id)
        return self.scores.upsert(
            feature.workspace_id,
            feature_id,
            overall_score=components.overall(self.weights),
            **components.as_columns(),
            **self._count_columns(counts),
            is_on_critical_path=existing.is_on_critical_path if existing else False,
            is_bottleneck=existing.is_bottleneck if existing else False,
            calculation_weights=self.weights.snapshot(),
            calculation_version=self.weights.version,
            calculation_method=self.weights.method,
            calculated_at=utc_now(),
        )

    def get_feature_importance(self, feature_id: str) -> Optional[FeatureImportanceScore]:
        return self.scores.get_by_feature(feature_id)

    def get_top_important_features(self, workspace_id: str, limit: int = 10) -> List[FeatureImportanceScore]:
        """Top ``limit`` features by overall score, ties by feature id."""
        return self.scores.top(workspace_id, limit=limit)

    def get_workspace_scores(self, workspace_id: str) -> List[FeatureImportanceScore]:
        return self.scores.list_for_workspace(workspace_id)

    # --------------------------------------------------------------- helpers

    @staticmethod
    def _count_columns(counts: EdgeCounts) -> Dict[str, int]:
        return {
            "incoming_dependency_count": counts.incoming_dependency,
            "outgoing_dependency_count": counts.outgoing_dependency,
            "total_connection_count": counts.total,
            "blocking_count": counts.blocking,
        }

    def _store(
        self,
        workspace_id: str,
        feature_id: str,
        components: ComponentScores,
        overall: float,
        counts: EdgeCounts,
        shape: GraphShape,
        calculated_at: datetime,
        **ranking: Any,
    ) -> FeatureImportanceScore:
        return self.scores.upsert(
            workspace_id,
            feature_id,
            overall_score=overall,
            **components.as_columns(),
            **self._count_columns(counts),
            is_on_critical_path=shape.is_on_critical_path(feature_id),
            critical_path_position=shape.critical_path_position(feature_id),
            is_bottleneck=shape.is_bottleneck(feature_id),
            calculation_weights=self.weights.snapshot(),
            calculation_version=self.weights.version,
            calculation_method=self.weights.method,
            calculated_at=calculated_at,
            **ranking,
        )
