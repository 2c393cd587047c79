"""
Projection of graph state onto drawable primitives.

:func:`project` is a pure function of the graph, the layout state and the
current selection; it knows nothing about Qt. The painter in
:mod:`graphview.graph_view` consumes the resulting :class:`Frame`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Set

import numpy as np

from .config import DEFAULT_VIEW, ViewConfig
from .graph_model import GraphModel, LayoutState, NodeGroup

LINK_WIDTH_SCALE = 1.5


def group_color(group: NodeGroup) -> str:
    match group:
        case NodeGroup.PROTAGONIST:
            return "#ffffff"
        case NodeGroup.HACKER:
            return "#10b981"
        case NodeGroup.ANTAGONIST:
            return "#ef4444"
        case NodeGroup.CORPORATE:
            return "#3b82f6"
        case NodeGroup.CIVILIAN:
            return "#9ca3af"
    raise ValueError(f"unhandled node group: {group!r}")


def link_width(strength: float) -> float:
    return float(np.sqrt(strength)) * LINK_WIDTH_SCALE


@dataclass
class Frame:
    node_positions: np.ndarray        # (n, 2), NaN while unplaced
    visible: np.ndarray               # (n,) bool
    node_colors: List[str]
    node_opacity: np.ndarray          # (n,)
    labels: List[str]
    selected_index: Optional[int]
    link_segments: np.ndarray         # (m, 2, 2)
    link_visible: np.ndarray          # (m,) bool
    link_widths: np.ndarray           # (m,)
    link_opacity: np.ndarray          # (m,)


def related_indices(graph: GraphModel, selected: int) -> Set[int]:
    """The selected node plus every node sharing a link with it."""
    return {selected} | graph.neighbour_indices(selected)


def project(
    graph: GraphModel,
    state: LayoutState,
    selected_id: Optional[str] = None,
    config: ViewConfig = DEFAULT_VIEW,
) -> Frame:
    n, m = len(graph.nodes), len(graph.links)
    positions = state.positions.copy()
    visible = ~np.isnan(positions).any(axis=1)

    selected = graph.index_of(selected_id) if selected_id is not None and selected_id in graph else None

    node_opacity = np.ones(n)
    link_opacity = np.full(m, config.link_opacity)
    if selected is not None:
        related = related_indices(graph, selected)
        dim = np.array([i not in related for i in range(n)], dtype=bool)
        node_opacity[dim] = config.dim_opacity
        touching = (graph.sources == selected) | (graph.targets == selected)
        link_opacity = np.where(touching, 1.0, config.dim_opacity * config.link_opacity)

    if m:
        segments = np.stack((positions[graph.sources], positions[graph.targets]), axis=1)
        link_visible = visible[graph.sources] & visible[graph.targets]
    else:
        segments = np.zeros((0, 2, 2))
        link_visible = np.zeros(0, dtype=bool)

    return Frame(
        node_positions=positions,
        visible=visible,
        node_colors=[group_color(node.group) for node in graph.nodes],
        node_opacity=node_opacity,
        labels=[node.name for node in graph.nodes],
        selected_index=selected,
        link_segments=segments,
        link_visible=link_visible,
        link_widths=np.array([link_width(l.strength) for l in graph.links], dtype=np.float64),
        link_opacity=np.asarray(link_opacity, dtype=np.float64),
    )
