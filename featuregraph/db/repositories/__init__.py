"""Repositories encapsulating featuregraph persistence.

Services talk to storage only through these classes, so the analysis
logic stays independent of the database engine.
"""

from .analysis_job import AnalysisJobRepository
from .connection import ConnectionRepository
from .correlation import CorrelationRepository, canonical_pair
from .importance import ImportanceScoreRepository
from .insight import InsightRepository

__all__ = [
    "AnalysisJobRepository",
    "ConnectionRepository",
    "CorrelationRepository",
    "ImportanceScoreRepository",
    "InsightRepository",
    "canonical_pair",
]
