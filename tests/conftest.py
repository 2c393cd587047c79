from __future__ import annotations

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
os.environ["PYQTGRAPH_QT_LIB"] = "PyQt5"

from pathlib import Path

import networkx as nx
import numpy as np
import pytest

from graphview.graph_model import GraphModel

SAMPLE_GRAPH = Path(__file__).resolve().parent.parent / "data" / "sample_graph.json"


# ─── Helpers ──────────────────────────────────────────────────────────────────


def graph_from_networkx(G: nx.Graph) -> GraphModel:
    """Build a GraphModel from a networkx graph, stringifying node ids."""
    nodes = [{"id": str(n), "name": f"Node {n}", "group": "Civilian"} for n in G.nodes]
    links = [{"source": str(u), "target": str(v), "strength": 1} for u, v in G.edges]
    return GraphModel.from_records(nodes, links)


def chain(*ids: str, strengths=None) -> GraphModel:
    """Path graph a-b-c-... with optional per-link strengths."""
    strengths = strengths or [1] * (len(ids) - 1)
    nodes = [{"id": i, "name": i.upper()} for i in ids]
    links = [{"source": a, "target": b, "strength": s}
             for (a, b), s in zip(zip(ids, ids[1:]), strengths)]
    return GraphModel.from_records(nodes, links)


def pairwise_distances(positions: np.ndarray) -> np.ndarray:
    delta = positions[:, None, :] - positions[None, :, :]
    d = np.sqrt((delta ** 2).sum(-1))
    np.fill_diagonal(d, np.inf)
    return d


# ─── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def abc_graph() -> GraphModel:
    return chain("a", "b", "c", strengths=[5, 8])


@pytest.fixture
def sample_graph() -> GraphModel:
    return GraphModel.load_json(SAMPLE_GRAPH)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture(scope="session")
def qapp():
    from PyQt5.QtWidgets import QApplication
    app = QApplication.instance() or QApplication([])
    yield app
