"""Analysis services operating on the feature graph."""

from featuregraph.services.cancellation import CancellationToken
from featuregraph.services.connections import ConnectionService, ConnectionView
from featuregraph.services.correlation import (
    CorrelationCandidate,
    CorrelationDetector,
    category_overlap,
    pair_score,
    similarity,
)
from featuregraph.services.graph_analysis import GraphShape, analyze_graph_shape
from featuregraph.services.importance import ImportanceScorer
from featuregraph.services.insights import InsightGenerator, InsightSummary
from featuregraph.services.orchestrator import AnalysisOrchestrator, AnalysisResult

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisResult",
    "CancellationToken",
    "ConnectionService",
    "ConnectionView",
    "CorrelationCandidate",
    "CorrelationDetector",
    "GraphShape",
    "ImportanceScorer",
    "InsightGenerator",
    "InsightSummary",
    "analyze_graph_shape",
    "category_overlap",
    "pair_score",
    "similarity",
]
