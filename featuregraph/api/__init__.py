"""HTTP API for the featuregraph engine."""

from featuregraph.api.app import create_app

__all__ = ["create_app"]
