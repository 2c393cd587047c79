from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

import networkx as nx
import numpy as np

from .errors import DanglingReferenceError, DuplicateNodeError, GraphBuildError

logger = logging.getLogger(__name__)

_NODE_KEYS = {"id", "name", "group", "displayGroup", "role", "description", "imageUrl", "image_url"}
_LINK_KEYS = {"source", "target", "source_id", "target_id", "strength", "plotPoint", "plot_point"}


class NodeGroup(Enum):
    PROTAGONIST = "Protagonist"
    ANTAGONIST = "Antagonist"
    HACKER = "Hacker"
    CORPORATE = "Corporate"
    CIVILIAN = "Civilian"

    @classmethod
    def parse(cls, value: "NodeGroup | str | None") -> "NodeGroup":
        """Map a raw group tag onto the closed set; unknown tags become CIVILIAN."""
        if isinstance(value, cls):
            return value
        if value is not None:
            wanted = str(value).strip().lower()
            for member in cls:
                if member.value.lower() == wanted or member.name.lower() == wanted:
                    return member
        return cls.CIVILIAN


@dataclass(frozen=True)
class Node:
    id: str
    name: str
    group: NodeGroup = NodeGroup.CIVILIAN
    role: str = ""
    description: str = ""
    image_url: str | None = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class Link:
    source: int   # index into GraphModel.nodes
    target: int
    strength: float = 1.0
    plot_point: str = ""
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_self_link(self) -> bool:
        return self.source == self.target


class LayoutState:
    """Mutable simulation state for every node, stored row-aligned with the node arena.

    ``positions`` is NaN until the simulation seeds it, ``pinned`` is NaN on
    every axis that is not held by a drag.
    """

    def __init__(self, num_nodes: int):
        self.positions = np.full((num_nodes, 2), np.nan, dtype=np.float64)
        self.velocities = np.zeros((num_nodes, 2), dtype=np.float64)
        self.pinned = np.full((num_nodes, 2), np.nan, dtype=np.float64)

    def __len__(self) -> int:
        return len(self.positions)

    @property
    def pinned_mask(self) -> np.ndarray:
        return ~np.isnan(self.pinned)

    @property
    def placed_mask(self) -> np.ndarray:
        return ~np.isnan(self.positions).any(axis=1)

    def pin(self, index: int, x: float, y: float) -> None:
        self.pinned[index] = (x, y)

    def unpin(self, index: int) -> None:
        self.pinned[index] = np.nan
        self.velocities[index] = 0.0


class GraphModel:
    """Nodes and links of one loaded graph.

    Nodes live in an ordered arena; links refer to them by index, so a graph
    reload never leaves a link pointing at a stale node object.
    """

    def __init__(self, nodes: List[Node], links: List[Link]):
        self.nodes: List[Node] = list(nodes)
        self.links: List[Link] = list(links)
        self._index: Dict[str, int] = {}
        for i, node in enumerate(self.nodes):
            if node.id in self._index:
                raise DuplicateNodeError(node.id)
            self._index[node.id] = i
        for i, link in enumerate(self.links):
            for end in (link.source, link.target):
                if not 0 <= end < len(self.nodes):
                    raise DanglingReferenceError(i, str(end))
        self.sources = np.fromiter((l.source for l in self.links), dtype=np.int64, count=len(self.links))
        self.targets = np.fromiter((l.target for l in self.links), dtype=np.int64, count=len(self.links))
        self.network = self._build_network()

    # ─── construction helpers ───────────────────────────────────────────
    @classmethod
    def from_records(
        cls,
        node_records: Iterable[Mapping[str, Any]],
        link_records: Iterable[Mapping[str, Any]],
        strict: bool = False,
    ) -> "GraphModel":
        """Build a graph from raw records that reference nodes by ``id``.

        Links whose endpoints are unknown are dropped (and logged) unless
        ``strict`` is set, in which case :class:`DanglingReferenceError` is
        raised. Duplicate node ids always raise :class:`DuplicateNodeError`.
        """
        node_records = _record_list("nodes", node_records)
        link_records = _record_list("links", link_records)
        nodes: List[Node] = []
        index: Dict[str, int] = {}
        for rec in node_records:
            if "id" not in rec:
                raise GraphBuildError(f"node record without id: {rec!r}")
            node_id = str(rec["id"])
            if node_id in index:
                raise DuplicateNodeError(node_id)
            index[node_id] = len(nodes)
            nodes.append(Node(
                id=node_id,
                name=str(rec.get("name", node_id)),
                group=NodeGroup.parse(rec.get("displayGroup", rec.get("group"))),
                role=str(rec.get("role", "")),
                description=str(rec.get("description", "")),
                image_url=rec.get("imageUrl", rec.get("image_url")),
                extra={k: v for k, v in rec.items() if k not in _NODE_KEYS},
            ))

        links: List[Link] = []
        dropped = 0
        for i, rec in enumerate(link_records):
            src = str(rec.get("source", rec.get("source_id")))
            tgt = str(rec.get("target", rec.get("target_id")))
            missing = next((end for end in (src, tgt) if end not in index), None)
            if missing is not None:
                if strict:
                    raise DanglingReferenceError(i, missing)
                logger.warning("Dropping link #%d (%s -> %s): unknown node id %r", i, src, tgt, missing)
                dropped += 1
                continue
            links.append(Link(
                source=index[src],
                target=index[tgt],
                strength=_parse_strength(i, rec.get("strength", 1.0)),
                plot_point=str(rec.get("plotPoint", rec.get("plot_point", ""))),
                extra={k: v for k, v in rec.items() if k not in _LINK_KEYS},
            ))

        graph = cls(nodes, links)
        logger.info("Built graph: %d nodes, %d links (%d dropped)", len(nodes), len(links), dropped)
        return graph

    @classmethod
    def load_json(cls, path: Path | str, strict: bool = False) -> "GraphModel":
        with open(path, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
        if not isinstance(payload, dict) or "nodes" not in payload:
            raise GraphBuildError(f"{path}: expected an object with 'nodes' and 'links'")
        return cls.from_records(payload["nodes"], payload.get("links", []), strict=strict)

    # ─── queries ────────────────────────────────────────────────────────
    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._index

    def index_of(self, node_id: str) -> int:
        return self._index[node_id]

    def node(self, node_id: str) -> Node:
        return self.nodes[self._index[node_id]]

    def _build_network(self) -> nx.MultiGraph:
        # undirected, keyed by node index; parallel and self links are kept
        G = nx.MultiGraph()
        G.add_nodes_from(range(len(self.nodes)))
        G.add_edges_from((l.source, l.target, {"strength": l.strength}) for l in self.links)
        return G

    def degree(self) -> np.ndarray:
        """Number of link endpoints at each node (a self link counts twice)."""
        return np.fromiter((d for _, d in self.network.degree()), dtype=np.int64, count=len(self.nodes))

    def neighbour_indices(self, index: int) -> Set[int]:
        return set(self.network.neighbors(index)) - {index}

    def neighbours(self, node_id: str) -> Set[str]:
        return {self.nodes[j].id for j in self.neighbour_indices(self._index[node_id])}

    def to_networkx(self) -> nx.MultiDiGraph:
        G = nx.MultiDiGraph()
        for node in self.nodes:
            G.add_node(node.id, name=node.name, group=node.group)
        for link in self.links:
            G.add_edge(self.nodes[link.source].id, self.nodes[link.target].id,
                       strength=link.strength, plot_point=link.plot_point)
        return G

    def new_state(self) -> LayoutState:
        return LayoutState(len(self.nodes))


def _record_list(kind: str, records: Any) -> List[Mapping[str, Any]]:
    if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
        raise GraphBuildError(f"{kind} must be a list of objects, got {type(records).__name__}")
    out = list(records)
    for i, rec in enumerate(out):
        if not isinstance(rec, Mapping):
            raise GraphBuildError(f"{kind}[{i}] must be an object, got {type(rec).__name__}")
    return out


def _parse_strength(link_index: int, raw: Any) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise GraphBuildError(f"link #{link_index}: strength {raw!r} is not a number") from None
    if not value > 0:
        raise GraphBuildError(f"link #{link_index}: strength must be positive, got {value}")
    return value


def position_of(graph: GraphModel, state: LayoutState, node_id: str) -> Optional[tuple[float, float]]:
    """Current position of ``node_id`` or ``None`` while still unplaced."""
    x, y = state.positions[graph.index_of(node_id)]
    if np.isnan(x) or np.isnan(y):
        return None
    return float(x), float(y)
