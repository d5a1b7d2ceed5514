"""Read-only access to the host application's feature records."""

from featuregraph.features.store import (
    FeatureSnapshot,
    FeatureStore,
    InMemoryFeatureStore,
    SqlFeatureStore,
)

__all__ = ["FeatureSnapshot", "FeatureStore", "InMemoryFeatureStore", "SqlFeatureStore"]
