"""Unit tests for the Importance Scorer."""

import pytest

from featuregraph.config import ConfigError, GraphConfig, ScoringWeights
from featuregraph.db.models import Feature, FeatureImportanceScore
from featuregraph.errors import FeatureNotFoundError
from featuregraph.features import FeatureSnapshot
from featuregraph.services.connections import ConnectionService
from featuregraph.services.importance import (
    BUSINESS_VALUE_SCORES,
    NEUTRAL_SCORE,
    EdgeCounts,
    ImportanceScorer,
    compute_component_scores,
    count_score,
    rank_scores,
    rating_score,
)


@pytest.fixture
def connect(session):
    service = ConnectionService(session)

    def _connect(source: str, target: str, connection_type: str = "dependency"):
        return service.create_connection("ws-1", source, target, connection_type)

    return _connect


@pytest.fixture
def scorer(session, feature_store):
    return ImportanceScorer(session, feature_store)


def _score(session, feature_id: str) -> FeatureImportanceScore:
    return ImportanceScorer(session, None).get_feature_importance(feature_id)


# =============================================================================
# Pure scoring
# =============================================================================


class TestComponentScores:
    """Test per-component scoring rules."""

    def test_count_score_is_capped(self):
        assert count_score(3, 20) == 60
        assert count_score(6, 20) == 100
        assert count_score(-2, 20) == 0

    def test_rating_lookup_is_case_insensitive(self):
        assert rating_score(" HIGH ", BUSINESS_VALUE_SCORES) == 75

    @pytest.mark.parametrize("value", [None, "", "urgent", 42])
    def test_unknown_rating_is_neutral(self, value):
        assert rating_score(value, BUSINESS_VALUE_SCORES) == NEUTRAL_SCORE

    def test_full_rating_table(self):
        feature = FeatureSnapshot(
            id="f",
            workspace_id="ws-1",
            business_value="critical",
            priority="high",
            workflow_stage="ideation",
            difficulty="easy",
        )

        components = compute_component_scores(feature, EdgeCounts(incoming_dependency=1, total=2, blocking=1))

        assert components.dependency == 20
        assert components.blocking == 25
        assert components.connection == 20
        assert components.business_value == 100
        assert components.priority == 75
        assert components.workflow == 100
        assert components.complexity == 75

    def test_overall_uses_weights(self):
        feature = FeatureSnapshot(id="f", workspace_id="ws-1")
        components = compute_component_scores(feature, EdgeCounts(incoming_dependency=3, total=3))

        assert components.overall(ScoringWeights()) == pytest.approx(41.5)

    def test_as_columns(self):
        components = compute_component_scores(FeatureSnapshot(id="f", workspace_id="ws-1"), EdgeCounts())

        assert components.as_columns()["business_value_score"] == NEUTRAL_SCORE
        assert set(components.as_columns()) == {
            "dependency_score",
            "blocking_score",
            "connection_score",
            "business_value_score",
            "priority_score",
            "workflow_score",
            "complexity_score",
        }


class TestRankScores:
    """Test rank and percentile assignment."""

    def test_rank_and_percentile(self):
        result = rank_scores([("a", 10.0), ("b", 30.0), ("c", 20.0)])

        assert result == {"b": (1, 0.0), "c": (2, 50.0), "a": (3, 100.0)}

    def test_percent_rank_runs_from_the_top(self):
        """Percentile counts the features ranked above, like PERCENT_RANK over a descending order."""
        result = rank_scores([("a", 90.0), ("b", 50.0), ("c", 10.0), ("d", 10.0), ("e", 5.0)])

        assert result["a"] == (1, 0.0)
        assert result["b"] == (2, 25.0)
        assert result["c"] == (3, 50.0)
        assert result["d"] == (4, 50.0)
        assert result["e"] == (5, 100.0)

    def test_ties_ordered_by_feature_id(self):
        result = rank_scores([("b", 5.0), ("a", 5.0), ("c", 1.0)])

        assert result["a"][0] == 1
        assert result["b"][0] == 2
        assert result["a"][1] == result["b"][1] == 0.0
        assert result["c"] == (3, 100.0)

    def test_single_feature(self):
        assert rank_scores([("only", 12.0)]) == {"only": (1, 0.0)}

    def test_empty(self):
        assert rank_scores([]) == {}


# =============================================================================
# Workspace recalculation
# =============================================================================


class TestRecalcWorkspaceImportance:
    """Test full workspace scoring against the database."""

    def test_dependency_score_three_and_six(self, session, scorer, add_features, connect):
        """3 incoming dependencies score 60; 6 are capped at 100."""
        add_features("core", "hub", "d1", "d2", "d3", "d4", "d5", "d6")
        for dependent in ("d1", "d2", "d3"):
            connect(dependent, "core")
        for dependent in ("d1", "d2", "d3", "d4", "d5", "d6"):
            connect(dependent, "hub")

        assert scorer.recalc_workspace_importance("ws-1") == 8

        core = _score(session, "core")
        hub = _score(session, "hub")
        assert core.dependency_score == 60
        assert core.incoming_dependency_count == 3
        assert hub.dependency_score == 100
        assert hub.incoming_dependency_count == 6
        assert _score(session, "d1").outgoing_dependency_count == 2

    def test_scores_stay_in_range_for_bad_attributes(self, session, scorer, add_features, feature_factory, connect):
        add_features(
            feature_factory("odd", business_value="priceless", priority="URGENT", workflow_stage="someday"),
            feature_factory("empty"),
            feature_factory("blocker", difficulty="impossible"),
        )
        for target in ("odd", "empty"):
            connect("blocker", target, "blocks")

        scorer.recalc_workspace_importance("ws-1")

        for score in scorer.get_workspace_scores("ws-1"):
            components = [
                score.dependency_score,
                score.blocking_score,
                score.connection_score,
                score.business_value_score,
                score.priority_score,
                score.workflow_score,
                score.complexity_score,
                score.overall_score,
            ]
            assert all(0 <= value <= 100 for value in components)
        odd = _score(session, "odd")
        assert odd.business_value_score == NEUTRAL_SCORE
        assert odd.priority_score == NEUTRAL_SCORE
        assert _score(session, "blocker").blocking_score == 50

    def test_unique_maximum_gets_rank_one(self, session, scorer, add_features, connect):
        add_features("core", "x", "y", "z")
        for dependent in ("x", "y", "z"):
            connect(dependent, "core")

        scorer.recalc_workspace_importance("ws-1")

        core = _score(session, "core")
        assert core.workspace_rank == 1
        assert core.percentile == 0.0
        assert core.overall_score == pytest.approx(41.5)
        assert [s.feature_id for s in scorer.get_workspace_scores("ws-1")] == ["core", "x", "y", "z"]

    def test_recalculation_is_idempotent(self, session, scorer, add_features, connect):
        add_features("core", "x", "y", "z")
        connect("x", "core")
        connect("core", "y", "blocks")

        scorer.recalc_workspace_importance("ws-1")
        first = {s.feature_id: (s.workspace_rank, s.percentile, s.overall_score) for s in scorer.get_workspace_scores("ws-1")}
        scorer.recalc_workspace_importance("ws-1")
        second = {s.feature_id: (s.workspace_rank, s.percentile, s.overall_score) for s in scorer.get_workspace_scores("ws-1")}

        assert first == second
        assert session.query(FeatureImportanceScore).count() == 4

    def test_equal_scores_ranked_by_feature_id(self, session, scorer, add_features):
        add_features("b", "c", "a")

        scorer.recalc_workspace_importance("ws-1")

        assert [(s.feature_id, s.workspace_rank) for s in scorer.get_workspace_scores("ws-1")] == [
            ("a", 1),
            ("b", 2),
            ("c", 3),
        ]

    def test_graph_flags(self, session, scorer, add_features, connect):
        add_features("a", "b", "c")
        connect("a", "b")
        connect("b", "c")

        scorer.recalc_workspace_importance("ws-1")

        assert _score(session, "c").is_on_critical_path
        assert _score(session, "c").critical_path_position == 1
        assert _score(session, "a").critical_path_position == 3
        assert not _score(session, "a").is_bottleneck

    def test_bottleneck_flag(self, session, feature_store, add_features, connect):
        add_features("hub", "x", "y")
        connect("x", "hub")
        connect("y", "hub")
        scorer = ImportanceScorer(session, feature_store, graph_config=GraphConfig(bottleneck_min_dependents=2))

        scorer.recalc_workspace_importance("ws-1")

        assert _score(session, "hub").is_bottleneck
        assert not _score(session, "x").is_bottleneck

    def test_weights_snapshot_stored(self, session, feature_store, add_features):
        add_features("a")
        weights = ScoringWeights(version="v9", dependency=0.30, complexity=0.0, workflow=0.05)
        ImportanceScorer(session, feature_store, weights).recalc_workspace_importance("ws-1")

        score = _score(session, "a")
        assert score.calculation_version == "v9"
        assert score.calculation_method == "weighted_sum"
        assert score.calculation_weights["dependency"] == 0.30
        assert score.calculated_at is not None

    def test_invalid_weights_rejected(self, session, feature_store):
        with pytest.raises(ConfigError):
            ImportanceScorer(session, feature_store, ScoringWeights(dependency=0.9))

    def test_rows_of_removed_features_deleted(self, session, scorer, add_features):
        add_features("a", "b")
        scorer.recalc_workspace_importance("ws-1")

        session.delete(session.get(Feature, "b"))
        session.flush()
        scorer.recalc_workspace_importance("ws-1")

        assert _score(session, "b") is None
        assert _score(session, "a").workspace_rank == 1

    def test_empty_workspace(self, scorer):
        assert scorer.recalc_workspace_importance("ws-empty") == 0
        assert scorer.get_workspace_scores("ws-empty") == []


class TestSingleFeatureImportance:
    """Test single-feature recompute and queries."""

    def test_calculate_keeps_rank_and_flags(self, session, scorer, add_features, connect):
        add_features("a", "b", "c")
        connect("a", "b")
        connect("b", "c")
        scorer.recalc_workspace_importance("ws-1")
        rank_before = _score(session, "c").workspace_rank

        connect("a", "c")
        score = scorer.calculate_feature_importance("c")

        assert score.incoming_dependency_count == 2
        assert score.dependency_score == 40
        assert score.workspace_rank == rank_before
        assert score.is_on_critical_path

    def test_calculate_without_previous_row(self, session, scorer, add_features):
        add_features("solo")

        score = scorer.calculate_feature_importance("solo")

        assert score.overall_score > 0
        assert score.workspace_rank is None
        assert score.is_on_critical_path is False

    def test_calculate_unknown_feature(self, scorer):
        with pytest.raises(FeatureNotFoundError):
            scorer.calculate_feature_importance("missing")

    def test_get_unknown_feature(self, scorer):
        assert scorer.get_feature_importance("missing") is None

    def test_top_features(self, session, scorer, add_features, connect):
        add_features("core", "x", "y", "z")
        for dependent in ("x", "y", "z"):
            connect(dependent, "core")
        scorer.recalc_workspace_importance("ws-1")

        top = scorer.get_top_important_features("ws-1", limit=2)

        assert [s.feature_id for s in top] == ["core", "x"]
