"""Insight Generator.

Turns importance scores and graph shape into lifecycle-tracked insights.
A workspace analysis obsoletes every active system insight first and then
runs the enabled passes:

- critical path: one ``critical_path`` insight per feature on the path
- bottleneck: one ``bottleneck_detected`` insight per bottleneck
- orphan: one ``orphaned_feature`` insight per feature without active edges
- cycle: one ``circular_dependency`` insight per precedence cycle

Insights created by users or AI are never touched by re-analysis.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from featuregraph.config import GraphConfig, InsightsConfig
from featuregraph.db.models import (
    ConnectionInsight,
    DetectedBy,
    FeatureImportanceScore,
    InsightSeverity,
    InsightStatus,
    InsightType,
)
from featuregraph.db.models.base import utc_now
from featuregraph.db.repositories import (
    ConnectionRepository,
    ImportanceScoreRepository,
    InsightRepository,
)
from featuregraph.errors import ValidationError, coerce_enum
from featuregraph.features import FeatureStore
from featuregraph.logging_config import get_logger
from featuregraph.services.graph_analysis import (
    build_precedence_graph,
    find_bottlenecks,
    find_cycles,
)

logger = get_logger(__name__)


@dataclass
class InsightSummary:
    """Outcome of one insight generation run."""

    workspace_id: str
    analyzed_at: datetime
    insights_created: int = 0
    obsoleted: int = 0
    breakdown: Dict[str, int] = field(
        default_factory=lambda: {
            "critical_path": 0,
            "bottlenecks": 0,
            "orphaned": 0,
            "circular_dependencies": 0,
        }
    )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["analyzed_at"] = self.analyzed_at.isoformat()
        return data


class InsightGenerator:
    """Generate, query and review insights of a workspace."""

    def __init__(
        self,
        session: Session,
        feature_store: FeatureStore,
        config: Optional[InsightsConfig] = None,
        graph_config: Optional[GraphConfig] = None,
    ):
        self.session = session
        self.feature_store = feature_store
        self.config = config or InsightsConfig()
        self.graph_config = graph_config or GraphConfig()
        self.insights = InsightRepository(session)
        self.scores = ImportanceScoreRepository(session)
        self.connections = ConnectionRepository(session)

    # -------------------------------------------------------------- analysis

    def analyze_workspace(self, workspace_id: str) -> InsightSummary:
        """Obsolete previous system insights and regenerate them.

        Expects importance scores to be current; the orchestrator runs the
        scorer first.
        """
        obsoleted = self.insights.mark_system_insights_obsolete(workspace_id)
        summary = self.generate(workspace_id)
        summary.obsoleted = obsoleted
        return summary

    def generate(self, workspace_id: str) -> InsightSummary:
        """Run the enabled passes without obsoleting anything."""
        summary = InsightSummary(workspace_id=workspace_id, analyzed_at=utc_now())
        features = self.feature_store.list_features(workspace_id)
        names = {feature.id: feature.name or feature.id for feature in features}
        connections = self.connections.list_for_workspace(workspace_id)
        scores = self.scores.list_for_workspace(workspace_id)

        if self.config.enable_critical_path:
            summary.breakdown["critical_path"] = self._critical_path_pass(workspace_id, scores, names)
        if self.config.enable_bottlenecks:
            gated = find_bottlenecks(names, connections, min_dependents=1)
            summary.breakdown["bottlenecks"] = self._bottleneck_pass(workspace_id, scores, gated, names)
        if self.config.enable_orphans:
            connected = set()
            for connection in connections:
                connected.add(connection.source_feature_id)
                connected.add(connection.target_feature_id)
            summary.breakdown["orphaned"] = self._orphan_pass(
                workspace_id, [fid for fid in names if fid not in connected], names
            )
        if self.config.detect_cycles:
            cycles = find_cycles(build_precedence_graph(names, connections))
            summary.breakdown["circular_dependencies"] = self._cycle_pass(workspace_id, cycles, names)

        summary.insights_created = sum(summary.breakdown.values())
        logger.info(
            f"Generated {summary.insights_created} insights for workspace {workspace_id}: "
            f"{summary.breakdown}"
        )
        return summary

    def _critical_path_pass(
        self,
        workspace_id: str,
        scores: Sequence[FeatureImportanceScore],
        names: Dict[str, str],
    ) -> int:
        on_path = sorted(
            (s for s in scores if s.is_on_critical_path and s.feature_id in names),
            key=lambda s: (s.critical_path_position or 0, s.feature_id),
        )
        for score in on_path:
            self.create_insight(
                workspace_id,
                InsightType.CRITICAL_PATH,
                title=f"Critical Path: {names[score.feature_id]}",
                description=(
                    f"This feature is on the critical path with {score.incoming_dependency_count} "
                    f"dependencies and blocks {score.blocking_count} other features."
                ),
                severity=InsightSeverity.HIGH,
                priority=4,
                primary_feature_id=score.feature_id,
                recommendation="Prioritize this feature to avoid project delays",
                confidence=0.9,
                impact_score=round(score.overall_score / 100, 4),
                analysis_data={
                    "critical_path_position": score.critical_path_position,
                    "overall_score": score.overall_score,
                },
                detected_by=DetectedBy.SYSTEM,
                detection_method="critical_path_analysis",
            )
        return len(on_path)

    def _bottleneck_pass(
        self,
        workspace_id: str,
        scores: Sequence[FeatureImportanceScore],
        gated: Dict[str, List[str]],
        names: Dict[str, str],
    ) -> int:
        bottlenecks = [s for s in scores if s.is_bottleneck and s.feature_id in names]
        for score in bottlenecks:
            blocked = gated.get(score.feature_id, [])
            self.create_insight(
                workspace_id,
                InsightType.BOTTLENECK_DETECTED,
                title=f"Bottleneck: {names[score.feature_id]}",
                description=f"This feature blocks {len(blocked)} other features from progressing.",
                severity=InsightSeverity.CRITICAL,
                priority=5,
                primary_feature_id=score.feature_id,
                related_feature_ids=blocked,
                recommendation="Complete this feature urgently to unblock dependent work",
                confidence=0.85,
                impact_score=round(score.overall_score / 100, 4),
                evidence=[names.get(fid, fid) for fid in blocked],
                detected_by=DetectedBy.SYSTEM,
                detection_method="bottleneck_detection",
            )
        return len(bottlenecks)

    def _orphan_pass(self, workspace_id: str, orphan_ids: Sequence[str], names: Dict[str, str]) -> int:
        for feature_id in orphan_ids:
            self.create_insight(
                workspace_id,
                InsightType.ORPHANED_FEATURE,
                title=f"Isolated: {names[feature_id]}",
                description="This feature has no connections to other features.",
                severity=InsightSeverity.LOW,
                priority=2,
                primary_feature_id=feature_id,
                recommendation="Consider connecting this feature or reviewing its relevance",
                confidence=0.95,
                detected_by=DetectedBy.SYSTEM,
                detection_method="orphan_detection",
            )
        return len(orphan_ids)

    def _cycle_pass(self, workspace_id: str, cycles: Sequence[List[str]], names: Dict[str, str]) -> int:
        for members in cycles:
            self.create_insight(
                workspace_id,
                InsightType.CIRCULAR_DEPENDENCY,
                title=f"Circular Dependency: {', '.join(names[fid] for fid in members)}",
                description=(
                    f"These {len(members)} features depend on each other in a cycle, "
                    f"so none of them can be completed first."
                ),
                severity=InsightSeverity.HIGH,
                priority=4,
                related_feature_ids=members,
                recommendation="Break the cycle by removing or reversing one of the dependencies",
                confidence=0.9,
                detected_by=DetectedBy.SYSTEM,
                detection_method="cycle_detection",
            )
        return len(cycles)

    # ------------------------------------------------------------- lifecycle

    def create_insight(
        self,
        workspace_id: str,
        insight_type: InsightType | str,
        title: str,
        *,
        description: Optional[str] = None,
        severity: InsightSeverity | str = InsightSeverity.MEDIUM,
        priority: int = 3,
        primary_feature_id: Optional[str] = None,
        related_feature_ids: Optional[Sequence[str]] = None,
        recommendation: Optional[str] = None,
        impact_assessment: Optional[str] = None,
        confidence: float = 0.5,
        impact_score: float = 0.5,
        analysis_data: Optional[Dict[str, Any]] = None,
        evidence: Optional[Sequence[Any]] = None,
        detected_by: DetectedBy | str = DetectedBy.USER,
        detection_method: Optional[str] = None,
    ) -> ConnectionInsight:
        """Store a new active insight.

        ``primary_feature_id`` may be omitted for workspace-wide findings.

        Raises:
            InvalidEnumValueError: If an enum-typed argument is unknown
            ValidationError: If priority is outside 1-5
        """
        if isinstance(priority, bool) or not isinstance(priority, int) or not 1 <= priority <= 5:
            raise ValidationError(f"priority must be an integer between 1 and 5, got {priority!r}")
        detected_at = utc_now()
        expires_at = None
        if self.config.insight_ttl_days:
            expires_at = detected_at + timedelta(days=self.config.insight_ttl_days)

        return self.insights.create(
            workspace_id=workspace_id,
            insight_type=coerce_enum(InsightType, insight_type, "insight_type"),
            severity=coerce_enum(InsightSeverity, severity, "severity"),
            priority=priority,
            primary_feature_id=primary_feature_id,
            related_feature_ids=list(related_feature_ids or []),
            title=title,
            description=description,
            recommendation=recommendation,
            impact_assessment=impact_assessment,
            confidence=confidence,
            impact_score=impact_score,
            analysis_data=dict(analysis_data or {}),
            evidence=list(evidence or []),
            detected_by=coerce_enum(DetectedBy, detected_by, "detected_by"),
            detection_method=detection_method,
            detected_at=detected_at,
            status=InsightStatus.ACTIVE,
            expires_at=expires_at,
        )

    def get_workspace_insights(
        self,
        workspace_id: str,
        min_severity: InsightSeverity | str = InsightSeverity.LOW,
        limit: int = 50,
    ) -> List[ConnectionInsight]:
        """Active, unexpired insights at or above ``min_severity``.

        Ordered by severity, then priority, then recency (all descending).
        """
        severity = coerce_enum(InsightSeverity, min_severity, "min_severity")
        return self.insights.list_active(workspace_id, min_severity=severity, limit=limit)

    def get_insight(self, insight_id: UUID) -> ConnectionInsight:
        return self.insights.get_by_id_or_raise(insight_id)

    def set_insight_status(
        self,
        insight_id: UUID,
        status: InsightStatus | str,
        notes: Optional[str] = None,
        action_taken: Optional[str] = None,
    ) -> ConnectionInsight:
        """Move an insight through its lifecycle.

        Raises:
            InsightNotFoundError: If the insight does not exist
            InvalidStatusTransitionError: If the transition is not allowed
        """
        status = coerce_enum(InsightStatus, status, "status")
        fields: Dict[str, Any] = {}
        if notes is not None:
            fields["user_notes"] = notes
        if action_taken is not None:
            fields["action_taken"] = action_taken
        return self.insights.update_status(insight_id, status, **fields)

    def acknowledge(self, insight_id: UUID, notes: Optional[str] = None) -> ConnectionInsight:
        return self.set_insight_status(insight_id, InsightStatus.ACKNOWLEDGED, notes=notes)

    def resolve(
        self,
        insight_id: UUID,
        action_taken: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ConnectionInsight:
        return self.set_insight_status(
            insight_id, InsightStatus.RESOLVED, notes=notes, action_taken=action_taken
        )

    def dismiss(self, insight_id: UUID, notes: Optional[str] = None) -> ConnectionInsight:
        return self.set_insight_status(insight_id, InsightStatus.DISMISSED, notes=notes)
