"""Figures for simulation results and influence matrices (PNG output)."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import networkx as nx

from .graph import influence_graph
from .metrics import METRIC_IDS, metric_label
from .models import MultiverseRunResult

SERIES_LABELS = {
    "index": "Composite index",
    "p_collapse": "Collapse probability",
    "goal_score": "Goal score",
}
BRANCH_COLORS = {"gold": "#d4a017", "grey": "#7f8c8d", "abyss": "#c0392b"}


def plot_quantile_fan(
    result: MultiverseRunResult,
    output_path: str | os.PathLike[str],
    series: Sequence[str] = ("index", "p_collapse"),
    show_branches: bool = True,
) -> Path:
    """Fan chart of the p10-p90 band and the median for each requested series.

    Branch expected trajectories are overlaid when ``show_branches`` is set.
    """
    frame = result.quantiles_frame()
    available = [name for name in series if f"{name}_p50" in frame.columns]
    if not available:
        raise ValueError(f"None of the requested series {list(series)} are present in the result.")

    fig, axes = plt.subplots(len(available), 1, figsize=(9, 3.5 * len(available)), sharex=True)
    if len(available) == 1:
        axes = [axes]
    for ax, name in zip(axes, available):
        ax.fill_between(frame["day"], frame[f"{name}_p10"], frame[f"{name}_p90"], color="#3498db", alpha=0.25, label="p10-p90")
        ax.plot(frame["day"], frame[f"{name}_p50"], color="#2c3e50", linewidth=2, label="median")
        if show_branches and name in ("index", "p_collapse"):
            for branch in result.branches:
                if not branch.path_count:
                    continue
                trajectory = branch.expected_index if name == "index" else branch.expected_p_collapse
                ax.plot(
                    frame["day"],
                    trajectory,
                    linestyle="--",
                    color=BRANCH_COLORS.get(branch.id, "#95a5a6"),
                    label=f"{branch.name} ({branch.probability:.0%})",
                )
        ax.set_ylabel(SERIES_LABELS.get(name, name))
        ax.legend(loc="best", fontsize="small")
    axes[-1].set_xlabel("Simulated day")
    title = result.config.label or "Multiverse"
    fig.suptitle(f"{title}: {result.completed_runs} path(s)")
    fig.tight_layout()

    target = Path(output_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(target, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return target


def plot_influence_graph(
    matrix: Mapping[str, Mapping[str, float]],
    output_path: str | os.PathLike[str],
    threshold: float = 0.05,
    title: Optional[str] = None,
) -> Path:
    """Circular drawing of the influence graph; edges below ``threshold`` are hidden.

    Positive edges are green and negative edges red, with width scaled by
    absolute weight.
    """
    graph = influence_graph(matrix, METRIC_IDS)
    edges = [(u, v) for u, v, data in graph.edges(data=True) if data["abs_weight"] >= threshold]
    widths = [0.5 + 3.0 * graph[u][v]["abs_weight"] for u, v in edges]
    colors = ["#27ae60" if graph[u][v]["weight"] > 0 else "#c0392b" for u, v in edges]

    fig, ax = plt.subplots(figsize=(7, 7))
    positions = nx.circular_layout(graph)
    nx.draw_networkx_nodes(graph, positions, ax=ax, node_color="#ecf0f1", edgecolors="#2c3e50", node_size=1400)
    nx.draw_networkx_labels(
        graph,
        positions,
        labels={node: metric_label(node) for node in graph.nodes},
        ax=ax,
        font_size=8,
    )
    if edges:
        nx.draw_networkx_edges(
            graph,
            positions,
            edgelist=edges,
            width=widths,
            edge_color=colors,
            ax=ax,
            arrows=True,
            arrowsize=14,
            connectionstyle="arc3,rad=0.1",
            node_size=1400,
        )
    ax.set_title(title or "Influence graph")
    ax.axis("off")
    fig.tight_layout()

    target = Path(output_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(target, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return target
