"""Record resolution, the dangling-link policy and graph queries."""

from __future__ import annotations

import json
import logging

import numpy as np
import pytest

from graphview.errors import (
    DanglingReferenceError, DuplicateNodeError, GraphBuildError, GraphError,
)
from graphview.graph_model import GraphModel, LayoutState, NodeGroup, position_of

NODES = [
    {"id": "a", "name": "Alpha", "group": "Protagonist", "role": "lead", "season": 1},
    {"id": "b", "name": "Beta", "group": "hacker"},
    {"id": "c", "name": "Gamma"},
]


def test_links_resolve_to_node_indices():
    g = GraphModel.from_records(NODES, [
        {"source": "a", "target": "b", "strength": 5, "plotPoint": "met"},
        {"source_id": "b", "target_id": "c", "strength": 8},
    ])
    assert len(g) == 3
    assert [(l.source, l.target) for l in g.links] == [(0, 1), (1, 2)]
    assert g.links[0].plot_point == "met"
    assert g.nodes[g.links[1].target].id == "c"
    assert list(g.sources) == [0, 1]
    assert list(g.targets) == [1, 2]


def test_node_fields_are_parsed():
    g = GraphModel.from_records(NODES, [])
    a = g.node("a")
    assert a.group is NodeGroup.PROTAGONIST
    assert a.role == "lead"
    assert a.extra == {"season": 1}
    assert g.node("b").group is NodeGroup.HACKER
    assert g.node("c").group is NodeGroup.CIVILIAN


def test_node_id_is_immutable():
    g = GraphModel.from_records(NODES, [])
    with pytest.raises(AttributeError):
        g.nodes[0].id = "z"


def test_duplicate_node_id_rejected():
    with pytest.raises(DuplicateNodeError) as info:
        GraphModel.from_records(NODES + [{"id": "a", "name": "again"}], [])
    assert info.value.node_id == "a"
    assert isinstance(info.value, GraphError)


def test_dangling_link_is_dropped_and_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="graphview.graph_model"):
        g = GraphModel.from_records(NODES, [
            {"source": "a", "target": "b"},
            {"source": "a", "target": "ghost"},
            {"source": "b", "target": "c"},
        ])
    assert [(l.source, l.target) for l in g.links] == [(0, 1), (1, 2)]
    assert "ghost" in caplog.text


def test_dangling_link_rejected_in_strict_mode():
    with pytest.raises(DanglingReferenceError) as info:
        GraphModel.from_records(NODES, [{"source": "ghost", "target": "a"}], strict=True)
    assert info.value.missing == "ghost"
    assert info.value.link_index == 0


@pytest.mark.parametrize("strength", [0, -2, "strong", None])
def test_bad_strength_rejected(strength):
    with pytest.raises(GraphBuildError):
        GraphModel.from_records(NODES, [{"source": "a", "target": "b", "strength": strength}])


def test_node_without_id_rejected():
    with pytest.raises(GraphBuildError):
        GraphModel.from_records([{"name": "nobody"}], [])


@pytest.mark.parametrize("nodes,links", [
    ([None], []),
    (5, []),
    ("abc", []),
    ({"id": "a"}, []),
    (NODES, [1]),
    (NODES, [["a", "b"]]),
    (NODES, 7),
])
def test_malformed_records_rejected(nodes, links):
    with pytest.raises(GraphBuildError):
        GraphModel.from_records(nodes, links)


@pytest.mark.parametrize("payload", [
    {"nodes": [None]},
    {"nodes": 5},
    {"nodes": NODES, "links": [1]},
    {"nodes": NODES, "links": None},
])
def test_load_json_rejects_malformed_records(tmp_path, payload):
    path = tmp_path / "g.json"
    path.write_text(json.dumps(payload))
    with pytest.raises(GraphError):
        GraphModel.load_json(path)


def test_self_link_is_kept():
    g = GraphModel.from_records(NODES, [{"source": "a", "target": "a"}])
    assert g.links[0].is_self_link
    assert list(g.degree()) == [2, 0, 0]


def test_degree_and_neighbours(abc_graph):
    assert list(abc_graph.degree()) == [1, 2, 1]
    assert abc_graph.neighbours("b") == {"a", "c"}
    assert abc_graph.neighbours("a") == {"b"}


def test_network_view_counts_self_and_parallel_links():
    g = GraphModel.from_records(NODES, [
        {"source": "a", "target": "a"},
        {"source": "a", "target": "b"},
        {"source": "b", "target": "a"},
    ])
    assert g.network.number_of_edges() == 3
    assert list(g.degree()) == [4, 2, 0]
    assert g.neighbour_indices(0) == {1}
    assert g.neighbours("a") == {"b"}
    assert g.neighbours("c") == set()


def test_to_networkx(abc_graph):
    G = abc_graph.to_networkx()
    assert set(G.nodes) == {"a", "b", "c"}
    assert G.number_of_edges() == 2
    assert G["b"]["c"][0]["strength"] == 8


def test_display_group_key_is_accepted():
    g = GraphModel.from_records([{"id": "x", "name": "X", "displayGroup": "Corporate"}], [])
    assert g.node("x").group is NodeGroup.CORPORATE
    assert g.node("x").extra == {}


def test_group_parse():
    assert NodeGroup.parse("ANTAGONIST") is NodeGroup.ANTAGONIST
    assert NodeGroup.parse(" corporate ") is NodeGroup.CORPORATE
    assert NodeGroup.parse(NodeGroup.HACKER) is NodeGroup.HACKER
    assert NodeGroup.parse("Alien") is NodeGroup.CIVILIAN
    assert NodeGroup.parse(None) is NodeGroup.CIVILIAN


def test_load_json(tmp_path):
    path = tmp_path / "g.json"
    path.write_text(json.dumps({"nodes": NODES, "links": [{"source": "a", "target": "c", "strength": 2}]}))
    g = GraphModel.load_json(path)
    assert len(g.links) == 1
    assert g.links[0].strength == 2.0


def test_load_json_rejects_wrong_shape(tmp_path):
    path = tmp_path / "g.json"
    path.write_text(json.dumps([1, 2, 3]))
    with pytest.raises(GraphBuildError):
        GraphModel.load_json(path)


def test_sample_graph_loads(sample_graph):
    assert len(sample_graph) == 10
    assert len(sample_graph.links) == 13


def test_layout_state_starts_unplaced(abc_graph):
    state = abc_graph.new_state()
    assert isinstance(state, LayoutState)
    assert np.isnan(state.positions).all()
    assert not state.placed_mask.any()
    assert (state.velocities == 0).all()
    assert not state.pinned_mask.any()
    assert position_of(abc_graph, state, "a") is None

    state.positions[0] = (1.0, 2.0)
    assert position_of(abc_graph, state, "a") == (1.0, 2.0)


def test_layout_state_pin_and_unpin():
    state = LayoutState(2)
    state.velocities[:] = 3.0
    state.pin(1, 10.0, 20.0)
    assert state.pinned_mask[1].all()
    assert not state.pinned_mask[0].any()
    state.unpin(1)
    assert not state.pinned_mask.any()
    assert (state.velocities[1] == 0).all()
    assert (state.velocities[0] == 3.0).all()
