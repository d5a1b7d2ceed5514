"""API routers, one module per engine component."""

from featuregraph.api.routes import analysis, connections, correlations, importance

__all__ = ["analysis", "connections", "correlations", "importance"]
