"""Each force in isolation, plus the quadtree and the registry."""

from __future__ import annotations

import numpy as np
import pytest

from graphview.errors import ForceConfigError
from graphview.forces import (
    CenterForce, CollideForce, Force, ForceRegistry, LinkForce, ManyBodyForce,
)
from graphview.graph_model import GraphModel
from graphview.quadtree import QuadTree

from conftest import chain


def _bind(force: Force, graph: GraphModel, positions, rng=None):
    state = graph.new_state()
    state.positions[:] = np.asarray(positions, dtype=float)
    force.initialize(graph, state, rng or np.random.default_rng(0))
    return state


def _isolated(n: int) -> GraphModel:
    return GraphModel.from_records([{"id": str(i), "name": str(i)} for i in range(n)], [])


# ─── Link force ───────────────────────────────────────────────────────────────


def test_link_force_pulls_toward_rest_length():
    g = chain("a", "b")
    force = LinkForce(distance=180)
    state = _bind(force, g, [(0, 0), (100, 0)])
    force(1.0)
    # (100 - 180) / 100 * alpha * strength(1) -> -80, split evenly (equal degree)
    np.testing.assert_allclose(state.velocities, [(-40, 0), (40, 0)])


def test_link_force_contracts_stretched_link():
    g = chain("a", "b")
    force = LinkForce(distance=50)
    state = _bind(force, g, [(0, 0), (100, 0)])
    force(0.5)
    assert state.velocities[0, 0] > 0
    assert state.velocities[1, 0] < 0


def test_link_force_bias_moves_low_degree_node_more():
    g = chain("a", "b", "c")          # b has degree 2
    force = LinkForce(distance=100)
    state = _bind(force, g, [(0, 0), (300, 0), (600, 0)])
    force(1.0)
    assert abs(state.velocities[0, 0]) > abs(state.velocities[1, 0])


def test_link_force_ignores_link_strength():
    weak = chain("a", "b", strengths=[1])
    strong = chain("a", "b", strengths=[10])
    results = []
    for g in (weak, strong):
        force = LinkForce(distance=180)
        state = _bind(force, g, [(0, 0), (100, 0)])
        force(1.0)
        results.append(state.velocities.copy())
    np.testing.assert_allclose(results[0], results[1])


def test_self_link_contributes_nothing():
    g = GraphModel.from_records([{"id": "a", "name": "A"}], [{"source": "a", "target": "a"}])
    force = LinkForce()
    state = _bind(force, g, [(5, 5)])
    force(1.0)
    assert (state.velocities == 0).all()


def test_link_force_coincident_endpoints_stay_finite():
    g = chain("a", "b")
    force = LinkForce()
    state = _bind(force, g, [(3, 3), (3, 3)])
    force(1.0)
    assert np.isfinite(state.velocities).all()


def test_link_force_rejects_bad_rest_length():
    with pytest.raises(ForceConfigError):
        LinkForce(distance=-1)


# ─── Many-body force ──────────────────────────────────────────────────────────


def test_many_body_repels_pair():
    force = ManyBodyForce(strength=-30)
    state = _bind(force, _isolated(2), [(0, 0), (10, 0)])
    force(1.0)
    # delta / d² = 10 / 100 = 0.1, times strength -30
    np.testing.assert_allclose(state.velocities, [(-3, 0), (3, 0)])


def test_many_body_conserves_momentum(rng):
    force = ManyBodyForce(strength=-100)
    state = _bind(force, _isolated(20), rng.uniform(0, 500, size=(20, 2)))
    force(0.7)
    np.testing.assert_allclose(state.velocities.sum(axis=0), 0, atol=1e-9)


def test_many_body_coincident_nodes_stay_finite():
    force = ManyBodyForce(strength=-1500)
    state = _bind(force, _isolated(3), [(5, 5), (5, 5), (5, 5)])
    force(1.0)
    assert np.isfinite(state.velocities).all()
    assert np.abs(state.velocities).sum() > 0


def test_many_body_distance_max_cuts_off():
    force = ManyBodyForce(strength=-30, distance_max=5)
    state = _bind(force, _isolated(2), [(0, 0), (10, 0)])
    force(1.0)
    assert (state.velocities == 0).all()


def test_barnes_hut_switches_at_threshold(rng):
    small = ManyBodyForce(barnes_hut_threshold=50)
    _bind(small, _isolated(10), rng.uniform(0, 100, (10, 2)))
    assert not small.uses_barnes_hut
    large = ManyBodyForce(barnes_hut_threshold=50)
    _bind(large, _isolated(50), rng.uniform(0, 100, (50, 2)))
    assert large.uses_barnes_hut


def test_barnes_hut_matches_exact(rng):
    n = 300
    positions = rng.uniform(0, 1000, size=(n, 2))
    graph = _isolated(n)

    exact = ManyBodyForce(strength=-30, barnes_hut_threshold=10_000)
    s_exact = _bind(exact, graph, positions)
    exact(1.0)

    approx = ManyBodyForce(strength=-30, theta=0.3, barnes_hut_threshold=1)
    s_approx = _bind(approx, graph, positions)
    approx(1.0)

    err = np.linalg.norm(s_approx.velocities - s_exact.velocities) / np.linalg.norm(s_exact.velocities)
    assert err < 0.05


def test_quadtree_aggregates_mass():
    pts = np.array([(0, 0), (10, 0), (0, 10), (10, 10)], dtype=float)
    tree = QuadTree(pts)
    assert tree.root.mass == 4
    assert (tree.root.cx, tree.root.cy) == pytest.approx((5, 5))
    # theta=0 disables approximation, so the result is the exact sum
    acc = tree.accumulate(0, 0.0, 1.0, np.inf)
    expected = sum((p - pts[0]) / ((p - pts[0]) ** 2).sum() for p in pts[1:])
    np.testing.assert_allclose(acc, expected)


def test_quadtree_empty_and_coincident():
    assert QuadTree(np.zeros((0, 2))).root.mass == 0
    tree = QuadTree(np.array([(1, 1), (1, 1)], dtype=float))
    np.testing.assert_allclose(tree.accumulate(0, 0.81, 1.0, np.inf), (0, 0))


# ─── Centering force ──────────────────────────────────────────────────────────


def test_center_force_moves_centroid_only():
    force = CenterForce(100, 100)
    state = _bind(force, _isolated(2), [(0, 0), (10, 0)])
    force(1.0)
    np.testing.assert_allclose(state.positions.mean(axis=0), (100, 100))
    np.testing.assert_allclose(state.positions[1] - state.positions[0], (10, 0))
    assert (state.velocities == 0).all()


def test_center_force_set_center():
    force = CenterForce(0, 0)
    state = _bind(force, _isolated(1), [(3, 4)])
    force.set_center(-1, 2)
    force(0.0)
    np.testing.assert_allclose(state.positions[0], (-1, 2))


# ─── Collision force ──────────────────────────────────────────────────────────


def test_collide_pushes_overlapping_pair_apart():
    force = CollideForce(radius=10)
    state = _bind(force, _isolated(2), [(0, 0), (10, 0)])
    force(1.0)
    # overlap 20 - 10 = 10, split evenly between equal radii
    np.testing.assert_allclose(state.velocities, [(-5, 0), (5, 0)])


def test_collide_ignores_separated_pair():
    force = CollideForce(radius=10)
    state = _bind(force, _isolated(2), [(0, 0), (25, 0)])
    force(1.0)
    assert (state.velocities == 0).all()


def test_collide_is_independent_of_alpha():
    results = []
    for alpha in (1.0, 0.0):
        force = CollideForce(radius=10)
        state = _bind(force, _isolated(2), [(0, 0), (10, 0)])
        force(alpha)
        results.append(state.velocities.copy())
    np.testing.assert_allclose(results[0], results[1])


def test_collide_coincident_nodes_separate():
    force = CollideForce(radius=10)
    state = _bind(force, _isolated(2), [(0, 0), (0, 0)])
    force(1.0)
    assert np.isfinite(state.velocities).all()
    assert np.abs(state.velocities).sum() > 0


# ─── Registry ─────────────────────────────────────────────────────────────────


def test_default_registry_order():
    reg = ForceRegistry.default(width=800, height=600)
    assert reg.names() == ["link", "charge", "center", "collide"]
    center = reg.get("center")
    assert (center.x, center.y) == (400, 300)


def test_register_replaces_in_place():
    reg = ForceRegistry.default()
    replacement = CenterForce(1, 1)
    reg.register("charge", replacement)
    assert reg.names() == ["link", "charge", "center", "collide"]
    assert reg.get("charge") is replacement


def test_remove_and_contains():
    reg = ForceRegistry.default()
    assert "collide" in reg
    reg.remove("collide")
    assert "collide" not in reg
    assert len(reg) == 3
    assert reg.remove("missing") is None


def test_bound_registry_initializes_new_forces(abc_graph):
    reg = ForceRegistry.default()
    state = abc_graph.new_state()
    rng = np.random.default_rng(0)
    reg.bind(abc_graph, state, rng)
    assert all(force.state is state for force in reg)
    late = reg.register("extra", CenterForce(1, 1))
    assert late.graph is abc_graph
    assert late.state is state
    assert late.rng is rng


def test_register_rejects_non_force():
    with pytest.raises(ForceConfigError):
        ForceRegistry().register("bogus", lambda alpha: None)


@pytest.mark.parametrize("factory", [
    lambda: CollideForce(radius=0),
    lambda: CollideForce(strength=2),
    lambda: CenterForce(strength=-1),
    lambda: ManyBodyForce(theta=-1),
    lambda: ManyBodyForce(distance_min=0),
])
def test_force_constructors_fail_fast(factory):
    with pytest.raises(ForceConfigError):
        factory()
