"""Repository for FeatureImportanceScore rows."""

from typing import Any, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from featuregraph.db.models import FeatureImportanceScore


class ImportanceScoreRepository:
    """Data access for importance scores (one row per feature)."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_feature(self, feature_id: str) -> Optional[FeatureImportanceScore]:
        return self.session.execute(
            select(FeatureImportanceScore).where(FeatureImportanceScore.feature_id == feature_id)
        ).scalar_one_or_none()

    def upsert(self, workspace_id: str, feature_id: str, **values: Any) -> FeatureImportanceScore:
        """Insert or update the score row of a feature."""
        score = self.get_by_feature(feature_id)
        if score is None:
            score = FeatureImportanceScore(workspace_id=workspace_id, feature_id=feature_id)
            self.session.add(score)
        score.workspace_id = workspace_id
        for name, value in values.items():
            setattr(score, name, value)
        self.session.flush()
        return score

    def list_for_workspace(self, workspace_id: str) -> List[FeatureImportanceScore]:
        """All score rows of a workspace in rank order (unranked rows last)."""
        query = (
            select(FeatureImportanceScore)
            .where(FeatureImportanceScore.workspace_id == workspace_id)
            .order_by(
                FeatureImportanceScore.workspace_rank.is_(None),
                FeatureImportanceScore.workspace_rank,
                FeatureImportanceScore.feature_id,
            )
        )
        return list(self.session.execute(query).scalars())

    def top(self, workspace_id: str, limit: int = 10) -> List[FeatureImportanceScore]:
        """Highest scoring features, ties broken by feature id."""
        query = (
            select(FeatureImportanceScore)
            .where(FeatureImportanceScore.workspace_id == workspace_id)
            .order_by(
                FeatureImportanceScore.overall_score.desc(),
                FeatureImportanceScore.feature_id,
            )
            .limit(limit)
        )
        return list(self.session.execute(query).scalars())

    def delete_except(self, workspace_id: str, keep_feature_ids: Iterable[str]) -> int:
        """Delete rows for features that are no longer part of the workspace."""
        keep = list(keep_feature_ids)
        stmt = delete(FeatureImportanceScore).where(FeatureImportanceScore.workspace_id == workspace_id)
        if keep:
            stmt = stmt.where(FeatureImportanceScore.feature_id.not_in(keep))
        result = self.session.execute(stmt.execution_options(synchronize_session="fetch"))
        return result.rowcount or 0
