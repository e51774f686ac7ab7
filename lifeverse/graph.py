"""
Graph analytics over an influence matrix.

The matrix is lifted into a ``networkx.DiGraph`` whose edges carry the signed
``weight`` and its magnitude ``abs_weight``. Centrality is the weighted in/out
degree on ``abs_weight``; robustness measures how much of the graph stays
weakly connected after the most central metrics are removed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import networkx as nx

from .influence import iter_edges
from .metrics import METRIC_IDS


@dataclass
class CentralityEntry:
    metric: str
    score: float


@dataclass
class CentralityMetrics:
    top_outdegree: List[CentralityEntry]
    top_indegree: List[CentralityEntry]
    top_centrality: List[CentralityEntry]
    outdegree_by_metric: Dict[str, float]
    indegree_by_metric: Dict[str, float]
    centrality_by_metric: Dict[str, float]


@dataclass
class InfluenceConcentration:
    top1_share: float
    top3_share: float
    label: str


def influence_graph(
    matrix: Mapping[str, Mapping[str, float]],
    metric_ids: Sequence[str] = METRIC_IDS,
    include_self_loops: bool = False,
) -> nx.DiGraph:
    """Build a directed graph with one node per metric and one edge per non-zero weight."""
    graph = nx.DiGraph()
    graph.add_nodes_from(metric_ids)
    for from_id, to_id, weight in iter_edges(matrix):
        if from_id == to_id and not include_self_loops:
            continue
        graph.add_edge(from_id, to_id, weight=weight, abs_weight=abs(weight))
    return graph


def strongest_edges(
    matrix: Mapping[str, Mapping[str, float]], limit: int = 5
) -> List[Tuple[str, str, float]]:
    """Largest-magnitude off-diagonal edges, ties broken by ``(from, to)``."""
    graph = influence_graph(matrix)
    edges = [(u, v, float(data["weight"])) for u, v, data in graph.edges(data=True)]
    edges.sort(key=lambda edge: (-abs(edge[2]), edge[0], edge[1]))
    return edges[:limit]


def _top_three(scores: Dict[str, float]) -> List[CentralityEntry]:
    ranked = sorted(scores.items(), key=lambda item: -item[1])
    return [CentralityEntry(metric=metric, score=score) for metric, score in ranked[:3]]


def compute_centrality_metrics(graph: nx.DiGraph) -> CentralityMetrics:
    outdegree = {node: float(value) for node, value in graph.out_degree(weight="abs_weight")}
    indegree = {node: float(value) for node, value in graph.in_degree(weight="abs_weight")}
    centrality = {node: outdegree[node] + indegree[node] for node in graph.nodes}
    return CentralityMetrics(
        top_outdegree=_top_three(outdegree),
        top_indegree=_top_three(indegree),
        top_centrality=_top_three(centrality),
        outdegree_by_metric=outdegree,
        indegree_by_metric=indegree,
        centrality_by_metric=centrality,
    )


def compute_influence_concentration(centrality_by_metric: Mapping[str, float]) -> InfluenceConcentration:
    ordered = sorted(centrality_by_metric.values(), reverse=True)
    total = sum(ordered)
    if total <= 0:
        return InfluenceConcentration(top1_share=0.0, top3_share=0.0, label="distributed")
    top1_share = ordered[0] / total
    top3_share = sum(ordered[:3]) / total
    if top1_share >= 0.5:
        label = "single node"
    elif top3_share >= 0.75:
        label = "three nodes"
    else:
        label = "distributed"
    return InfluenceConcentration(top1_share=top1_share, top3_share=top3_share, label=label)


def largest_component_fraction(graph: nx.DiGraph, removed: Optional[Sequence[str]] = None) -> float:
    """Share of the remaining nodes inside the largest weakly connected component."""
    remaining = graph.copy()
    remaining.remove_nodes_from(removed or [])
    if remaining.number_of_nodes() == 0:
        return 0.0
    largest = max(len(component) for component in nx.weakly_connected_components(remaining))
    return largest / remaining.number_of_nodes()


def compute_robustness_score(graph: nx.DiGraph, centrality_rank: Sequence[str]) -> float:
    """Mean largest-component fraction after removing the top-1..3 central nodes."""
    removals = list(centrality_rank[:3])
    if not removals:
        return 1.0
    total = 0.0
    for k in range(1, len(removals) + 1):
        total += largest_component_fraction(graph, removals[:k])
    return round(total / len(removals), 3)
