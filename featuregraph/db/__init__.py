"""Persistence layer: ORM models, sessions and repositories."""
