"""Correlation Detector.

Proposes candidate relationships between features of a workspace from two
lexical signals:

- text similarity: Jaccard index over lower-cased whitespace tokens of
  ``name + purpose``
- category overlap: shared categories over the larger category set

Detection is pairwise (quadratic in the number of features). Each unordered
pair is stored once, canonicalized so the lexically smaller id comes first,
and re-running a scan never inserts a second row for a known pair.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from featuregraph.config import CorrelationConfig
from featuregraph.db.models import (
    ConnectionType,
    CorrelationStatus,
    CorrelationType,
    DiscoveredBy,
    FeatureCorrelation,
)
from featuregraph.db.repositories import CorrelationRepository, canonical_pair
from featuregraph.db.repositories.correlation import (
    DEFAULT_VISIBLE_STATUSES,
    VALID_STATUS_TRANSITIONS,
)
from featuregraph.errors import (
    FeatureNotFoundError,
    InvalidStatusTransitionError,
    ValidationError,
    coerce_enum,
)
from featuregraph.features import FeatureSnapshot, FeatureStore
from featuregraph.logging_config import get_logger
from featuregraph.services.cancellation import CancellationToken
from featuregraph.services.connections import ConnectionService

logger = get_logger(__name__)

DETECTION_METHOD = "jaccard_category_overlap"
DETECTION_ALGORITHM_VERSION = "v1.0"


def tokenize(text: Optional[str]) -> FrozenSet[str]:
    """Distinct lower-cased whitespace tokens of ``text``."""
    if not text:
        return frozenset()
    return frozenset(text.lower().split())


def normalize_categories(categories: Optional[Iterable[str]]) -> FrozenSet[str]:
    """Categories compared case-insensitively, ignoring surrounding blanks."""
    if not categories:
        return frozenset()
    return frozenset(c.strip().lower() for c in categories if c and c.strip())


def jaccard(tokens_a: FrozenSet[str], tokens_b: FrozenSet[str]) -> float:
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return round(len(tokens_a & tokens_b) / len(union), 4)


def similarity(text_a: Optional[str], text_b: Optional[str]) -> float:
    """Jaccard similarity of two texts; 0.0 when both are empty.

    >>> similarity("payment gateway", "Payment Gateway")
    1.0
    """
    return jaccard(tokenize(text_a), tokenize(text_b))


def overlap(cats_a: FrozenSet[str], cats_b: FrozenSet[str]) -> float:
    larger = max(len(cats_a), len(cats_b))
    if larger == 0:
        return 0.0
    return round(len(cats_a & cats_b) / larger, 4)


def category_overlap(
    categories_a: Optional[Iterable[str]],
    categories_b: Optional[Iterable[str]],
) -> float:
    """|A ∩ B| / max(|A|, |B|); 0.0 when both are empty."""
    return overlap(normalize_categories(categories_a), normalize_categories(categories_b))


def pair_score(
    text_similarity: float,
    category_score: float,
    config: Optional[CorrelationConfig] = None,
) -> float:
    """Weighted correlation score (0.6 text + 0.4 category by default)."""
    config = config or CorrelationConfig()
    return round(config.text_weight * text_similarity + config.category_weight * category_score, 4)


def infer_correlation_type(
    text_similarity: float,
    category_score: float,
    config: Optional[CorrelationConfig] = None,
) -> CorrelationType:
    config = config or CorrelationConfig()
    if text_similarity >= config.high_similarity_threshold:
        return CorrelationType.HIGH_SIMILARITY
    if category_score >= config.thematic_category_threshold:
        return CorrelationType.THEMATIC
    return CorrelationType.FUNCTIONAL


@dataclass
class CorrelationCandidate:
    """A feature proposed as correlated with another one."""

    feature_id: str
    correlated_feature_id: str
    correlated_feature_name: str
    correlation_score: float
    text_similarity: float
    category_overlap: float
    correlation_type: CorrelationType
    common_keywords: List[str] = field(default_factory=list)
    common_categories: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["correlation_type"] = self.correlation_type.value
        return data


@dataclass(frozen=True)
class _Prepared:
    feature: FeatureSnapshot
    tokens: FrozenSet[str]
    categories: FrozenSet[str]

    @classmethod
    def of(cls, feature: FeatureSnapshot) -> "_Prepared":
        return cls(feature, tokenize(feature.text), normalize_categories(feature.categories))


class CorrelationDetector:
    """Find and persist correlation candidates for a workspace."""

    def __init__(
        self,
        session: Session,
        feature_store: FeatureStore,
        config: Optional[CorrelationConfig] = None,
    ):
        self.session = session
        self.feature_store = feature_store
        self.config = config or CorrelationConfig()
        self.repository = CorrelationRepository(session)

    def find_candidates(
        self,
        feature_id: str,
        min_threshold: Optional[float] = None,
    ) -> List[CorrelationCandidate]:
        """Rank the other features of the workspace against one feature.

        A feature is a candidate when its text similarity reaches
        ``min_threshold``. Candidates are ordered by correlation score
        (highest first), then by feature id.

        Raises:
            FeatureNotFoundError: If the feature does not exist
        """
        feature = self.feature_store.get_feature(feature_id)
        if feature is None:
            raise FeatureNotFoundError(feature_id)
        threshold = self._threshold(min_threshold)
        others = [
            _Prepared.of(other)
            for other in self.feature_store.list_features(feature.workspace_id)
            if other.id != feature.id
        ]
        return self._rank(_Prepared.of(feature), others, threshold)

    def detect_workspace_correlations(
        self,
        workspace_id: str,
        min_threshold: Optional[float] = None,
        token: Optional[CancellationToken] = None,
    ) -> int:
        """Scan every feature pair of a workspace and store new correlations.

        Pairs that already have a row (in any status) are skipped, so a
        second scan over unchanged data inserts nothing.

        Args:
            workspace_id: Workspace to scan
            min_threshold: Minimum text similarity (defaults to config)
            token: Checked once per feature; raises when cancelled or expired

        Returns:
            Number of correlations inserted
        """
        threshold = self._threshold(min_threshold)
        prepared = [_Prepared.of(f) for f in self.feature_store.list_features(workspace_id)]
        known = self.repository.existing_pairs(workspace_id)
        inserted = 0

        for index, current in enumerate(prepared):
            if token is not None:
                token.check()
            # Each unordered pair is compared once
            for candidate in self._rank(current, prepared[index + 1:], threshold):
                pair = canonical_pair(candidate.feature_id, candidate.correlated_feature_id)
                if pair in known:
                    continue
                known.add(pair)
                row = self.repository.create_if_absent(
                    workspace_id,
                    candidate.feature_id,
                    candidate.correlated_feature_id,
                    correlation_score=candidate.correlation_score,
                    text_similarity=candidate.text_similarity,
                    category_overlap=candidate.category_overlap,
                    correlation_type=candidate.correlation_type,
                    common_keywords=candidate.common_keywords,
                    common_categories=candidate.common_categories,
                    detection_method=DETECTION_METHOD,
                    detection_algorithm_version=DETECTION_ALGORITHM_VERSION,
                    confidence=candidate.correlation_score,
                    status=CorrelationStatus.DETECTED,
                )
                if row is not None:
                    inserted += 1

        logger.info(
            f"Correlation scan of workspace {workspace_id}: "
            f"{len(prepared)} features, {inserted} new correlations"
        )
        return inserted

    def get_correlations(
        self,
        workspace_id: str,
        feature_id: Optional[str] = None,
        min_score: float = 0.0,
        statuses: Optional[Sequence[CorrelationStatus | str]] = DEFAULT_VISIBLE_STATUSES,
        limit: Optional[int] = None,
    ) -> List[FeatureCorrelation]:
        """Stored correlations ordered by score (highest first)."""
        if statuses is not None:
            statuses = [coerce_enum(CorrelationStatus, s, "status") for s in statuses]
        return self.repository.search(
            workspace_id,
            feature_id=feature_id,
            min_score=min_score,
            statuses=statuses,
            limit=limit,
        )

    def set_correlation_status(
        self,
        correlation_id: UUID,
        status: CorrelationStatus | str,
        rating: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> FeatureCorrelation:
        """Record a review decision on a correlation.

        Raises:
            CorrelationNotFoundError: If the correlation does not exist
            InvalidStatusTransitionError: If the transition is not allowed
            ValidationError: If ``rating`` is outside 1-5
        """
        status = coerce_enum(CorrelationStatus, status, "status")
        fields: Dict[str, Any] = {}
        if rating is not None:
            if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
                raise ValidationError(f"rating must be an integer between 1 and 5, got {rating!r}")
            fields["user_rating"] = rating
        if notes is not None:
            fields["user_notes"] = notes
        return self.repository.update_status(correlation_id, status, **fields)

    def convert_to_connection(
        self,
        correlation_id: UUID,
        connection_type: ConnectionType | str = ConnectionType.RELATES_TO,
    ) -> UUID:
        """Turn a correlation into an explicit connection (a -> b).

        The connection and the status change are stored together: if the
        connection cannot be created, the correlation keeps its status.

        Returns:
            Id of the new connection
        """
        correlation = self.repository.get_by_id_or_raise(correlation_id)
        if CorrelationStatus.CONVERTED not in VALID_STATUS_TRANSITIONS[correlation.status]:
            raise InvalidStatusTransitionError(
                "correlation", correlation.status, CorrelationStatus.CONVERTED
            )
        kind = correlation.correlation_type.value if correlation.correlation_type else "detected"
        connection_id = ConnectionService(self.session).create_connection(
            correlation.workspace_id,
            correlation.feature_a_id,
            correlation.feature_b_id,
            connection_type,
            strength=min(1.0, max(0.0, correlation.correlation_score)),
            confidence=min(1.0, max(0.0, correlation.confidence)),
            reason=f"Converted from {kind} correlation",
            evidence=list(correlation.common_keywords or []),
            discovered_by=DiscoveredBy.CORRELATION_ENGINE,
        )
        self.repository.update_status(correlation_id, CorrelationStatus.CONVERTED)
        return connection_id

    # --------------------------------------------------------------- helpers

    def _threshold(self, min_threshold: Optional[float]) -> float:
        return self.config.min_threshold if min_threshold is None else min_threshold

    def _rank(
        self,
        current: _Prepared,
        others: Sequence[_Prepared],
        threshold: float,
    ) -> List[CorrelationCandidate]:
        candidates = []
        for other in others:
            text_score = jaccard(current.tokens, other.tokens)
            if text_score < threshold:
                continue
            category_score = overlap(current.categories, other.categories)
            candidates.append(
                CorrelationCandidate(
                    feature_id=current.feature.id,
                    correlated_feature_id=other.feature.id,
                    correlated_feature_name=other.feature.name,
                    correlation_score=pair_score(text_score, category_score, self.config),
                    text_similarity=text_score,
                    category_overlap=category_score,
                    correlation_type=infer_correlation_type(text_score, category_score, self.config),
                    common_keywords=sorted(current.tokens & other.tokens),
                    common_categories=sorted(current.categories & other.categories),
                )
            )
        candidates.sort(key=lambda c: (-c.correlation_score, c.correlated_feature_id))
        return candidates

