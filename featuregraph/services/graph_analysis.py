"""Graph-shape analysis over active connections.

Only ``dependency`` and ``blocks`` edges express ordering between features.
They are folded into a precedence graph where an edge ``u -> v`` means
"u has to be finished before v":

- ``A dependency B`` (A depends on B) gives ``B -> A``
- ``A blocks B`` gives ``A -> B``

From that graph we derive:

- the critical path: the longest precedence chain, counted in features.
  Cycles are condensed into a single step that contributes all of its
  members, so the graph is always a DAG when the chain is searched.
- bottlenecks: features gating at least ``bottleneck_min_dependents``
  other features directly.
- cycles: every strongly connected component with more than one member.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

import networkx as nx

from featuregraph.config import GraphConfig
from featuregraph.db.models import ConnectionType, FeatureConnection


@dataclass
class GraphShape:
    """Structural flags derived for one workspace."""

    critical_path: List[str] = field(default_factory=list)
    bottlenecks: Dict[str, List[str]] = field(default_factory=dict)
    cycles: List[List[str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._positions = {fid: i for i, fid in enumerate(self.critical_path, start=1)}

    def critical_path_position(self, feature_id: str) -> Optional[int]:
        """1-based position on the critical path, or None."""
        return self._positions.get(feature_id)

    def is_on_critical_path(self, feature_id: str) -> bool:
        return feature_id in self._positions

    def is_bottleneck(self, feature_id: str) -> bool:
        return feature_id in self.bottlenecks


def build_precedence_graph(
    feature_ids: Iterable[str],
    connections: Iterable[FeatureConnection],
) -> nx.DiGraph:
    """Precedence DiGraph over ``feature_ids``.

    Edges whose endpoints are not both in ``feature_ids`` are ignored.
    """
    graph = nx.DiGraph()
    graph.add_nodes_from(feature_ids)
    for connection in connections:
        source, target = connection.source_feature_id, connection.target_feature_id
        if source not in graph or target not in graph or source == target:
            continue
        if connection.connection_type == ConnectionType.DEPENDENCY:
            graph.add_edge(target, source)
        elif connection.connection_type == ConnectionType.BLOCKS:
            graph.add_edge(source, target)
    return graph


def find_cycles(graph: nx.DiGraph) -> List[List[str]]:
    """Strongly connected components with more than one member.

    Members are sorted; cycles are ordered by their smallest member.
    """
    cycles = [sorted(component) for component in nx.strongly_connected_components(graph) if len(component) > 1]
    return sorted(cycles, key=lambda members: members[0])


def longest_chain(graph: nx.DiGraph) -> List[str]:
    """Features along the longest precedence chain.

    Each condensed component contributes all of its members. Ties between
    chains of equal length go to the one whose components have the
    smallest feature ids.
    """
    if graph.number_of_nodes() == 0:
        return []

    condensed = nx.condensation(graph)
    members = {node: sorted(condensed.nodes[node]["members"]) for node in condensed.nodes}
    anchor = {node: group[0] for node, group in members.items()}

    length: Dict[int, int] = {}
    previous: Dict[int, Optional[int]] = {}
    for node in nx.lexicographical_topological_sort(condensed, key=lambda n: anchor[n]):
        best_pred = None
        for pred in condensed.predecessors(node):
            if (
                best_pred is None
                or length[pred] > length[best_pred]
                or (length[pred] == length[best_pred] and anchor[pred] < anchor[best_pred])
            ):
                best_pred = pred
        previous[node] = best_pred
        length[node] = len(members[node]) + (length[best_pred] if best_pred is not None else 0)

    end = min(length, key=lambda n: (-length[n], anchor[n]))
    chain: List[int] = []
    node: Optional[int] = end
    while node is not None:
        chain.append(node)
        node = previous[node]

    path: List[str] = []
    for node in reversed(chain):
        path.extend(members[node])
    return path


def find_bottlenecks(
    feature_ids: Iterable[str],
    connections: Iterable[FeatureConnection],
    min_dependents: int,
) -> Dict[str, List[str]]:
    """Features that directly gate at least ``min_dependents`` others.

    A feature gates the sources of its incoming ``dependency`` edges and
    the targets of its outgoing ``blocks`` edges.

    Returns:
        Mapping of bottleneck id to the sorted ids it gates
    """
    known: Set[str] = set(feature_ids)
    gated: Dict[str, Set[str]] = defaultdict(set)
    for connection in connections:
        source, target = connection.source_feature_id, connection.target_feature_id
        if source == target:
            continue
        if connection.connection_type == ConnectionType.DEPENDENCY:
            gated[target].add(source)
        elif connection.connection_type == ConnectionType.BLOCKS:
            gated[source].add(target)
    return {
        feature_id: sorted(dependents)
        for feature_id, dependents in sorted(gated.items())
        if feature_id in known and len(dependents) >= min_dependents
    }


def analyze_graph_shape(
    feature_ids: Sequence[str],
    connections: Sequence[FeatureConnection],
    config: Optional[GraphConfig] = None,
) -> GraphShape:
    """Compute critical path, bottlenecks and cycles for a workspace.

    Args:
        feature_ids: Features of the workspace
        connections: Active connections of the workspace
        config: Thresholds (defaults to ``GraphConfig()``)

    Returns:
        GraphShape; the critical path is empty when the longest chain is
        shorter than ``min_critical_path_length``
    """
    config = config or GraphConfig()
    graph = build_precedence_graph(feature_ids, connections)

    chain = longest_chain(graph)
    if len(chain) < config.min_critical_path_length:
        chain = []

    return GraphShape(
        critical_path=chain,
        bottlenecks=find_bottlenecks(feature_ids, connections, config.bottleneck_min_dependents),
        cycles=find_cycles(graph),
    )
