"""Typed errors raised by the featuregraph engine.

Every error is local to the operation that raised it; none of them is
fatal to the host application.
"""

from enum import Enum
from typing import Iterable, Optional, Type, TypeVar

E = TypeVar("E", bound=Enum)


class FeatureGraphError(Exception):
    """Base class for all engine errors."""


class ConfigError(FeatureGraphError):
    """Raised when configuration is invalid or cannot be loaded."""


class ValidationError(FeatureGraphError, ValueError):
    """Raised when an input value is out of range or malformed."""


class InvalidEnumValueError(ValidationError):
    """Raised when a string does not name a member of the expected enum."""

    def __init__(self, field: str, value: object, allowed: Iterable[str]):
        self.field = field
        self.value = value
        self.allowed = list(allowed)
        super().__init__(
            f"Invalid {field} {value!r}; expected one of: {', '.join(self.allowed)}"
        )


class SelfConnectionError(FeatureGraphError):
    """Raised when a connection would link a feature to itself."""

    def __init__(self, feature_id: str):
        self.feature_id = feature_id
        super().__init__(f"Feature {feature_id} cannot be connected to itself")


class DuplicateConnectionError(FeatureGraphError):
    """Raised when an active edge already exists for (source, target, type)."""

    def __init__(self, source_feature_id: str, target_feature_id: str, connection_type: str):
        self.source_feature_id = source_feature_id
        self.target_feature_id = target_feature_id
        self.connection_type = connection_type
        super().__init__(
            f"An active {connection_type} connection from {source_feature_id} "
            f"to {target_feature_id} already exists"
        )


class NotFoundError(FeatureGraphError):
    """Raised when a requested record does not exist."""

    entity = "Record"

    def __init__(self, record_id: object):
        self.record_id = record_id
        super().__init__(f"{self.entity} {record_id} not found")


class ConnectionNotFoundError(NotFoundError):
    entity = "Connection"


class CorrelationNotFoundError(NotFoundError):
    entity = "Correlation"


class InsightNotFoundError(NotFoundError):
    entity = "Insight"


class FeatureNotFoundError(NotFoundError):
    entity = "Feature"


class AnalysisJobNotFoundError(NotFoundError):
    entity = "Analysis job"


class InvalidStatusTransitionError(FeatureGraphError):
    """Raised when a lifecycle status change is not allowed."""

    def __init__(self, entity: str, current_status: Enum, new_status: Enum):
        self.entity = entity
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            f"Cannot move {entity} from {current_status.value} to {new_status.value}"
        )


class AnalysisInProgressError(FeatureGraphError):
    """Raised when a workspace already has an analysis running."""

    def __init__(self, workspace_id: str, job_id: Optional[object] = None):
        self.workspace_id = workspace_id
        self.job_id = job_id
        detail = f" (job {job_id})" if job_id else ""
        super().__init__(f"Analysis already running for workspace {workspace_id}{detail}")


class AnalysisCancelledError(FeatureGraphError):
    """Raised inside a run when its cancellation token has been triggered."""

    def __init__(self, workspace_id: str, reason: str = "cancelled"):
        self.workspace_id = workspace_id
        self.reason = reason
        super().__init__(f"Analysis for workspace {workspace_id} {reason}")


class AnalysisTimeoutError(AnalysisCancelledError):
    """Raised when a run exceeds its time budget."""

    def __init__(self, workspace_id: str, budget_seconds: float):
        self.budget_seconds = budget_seconds
        super().__init__(workspace_id, reason=f"exceeded its {budget_seconds:g}s time budget")


def coerce_enum(enum_cls: Type[E], value: object, field: str) -> E:
    """Coerce ``value`` to ``enum_cls``.

    Accepts enum members and their string values (case-insensitive).

    Raises:
        InvalidEnumValueError: If ``value`` is not a member value
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    raise InvalidEnumValueError(field, value, [member.value for member in enum_cls])
