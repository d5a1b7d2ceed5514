"""
featuregraph - Relationship Graph and Analytics for Roadmap Features

Maintains typed connections between features of a workspace and derives
importance scores, correlation candidates and actionable insights from them.
"""

__version__ = "0.1.0"


def __getattr__(name: str):
    """Lazy imports for public API - avoids loading SQLAlchemy at import time."""
    if name == "AnalysisOrchestrator":
        from featuregraph.services.orchestrator import AnalysisOrchestrator
        return AnalysisOrchestrator
    if name == "ConnectionService":
        from featuregraph.services.connections import ConnectionService
        return ConnectionService
    if name == "CorrelationDetector":
        from featuregraph.services.correlation import CorrelationDetector
        return CorrelationDetector
    if name == "ImportanceScorer":
        from featuregraph.services.importance import ImportanceScorer
        return ImportanceScorer
    if name == "InsightGenerator":
        from featuregraph.services.insights import InsightGenerator
        return InsightGenerator
    if name == "FeatureGraphConfig":
        from featuregraph.config import FeatureGraphConfig
        return FeatureGraphConfig
    raise AttributeError(f"module 'featuregraph' has no attribute {name!r}")


__all__ = [
    "__version__",
    "AnalysisOrchestrator",
    "ConnectionService",
    "CorrelationDetector",
    "ImportanceScorer",
    "InsightGenerator",
    "FeatureGraphConfig",
]
