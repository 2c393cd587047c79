"""
Forces applied by the layout simulation.

Every force is a small stateful object: ``initialize`` binds it to a graph
and its :class:`~graphview.graph_model.LayoutState`, and calling it with the
current alpha adds its contribution to the node velocities (or, for the
centering force, shifts the positions). Forces run one after another in
registry order, each seeing the velocities left by the previous one.
"""
from __future__ import annotations

import logging
import math
from collections import OrderedDict
from typing import Iterator, List, Optional, Tuple

import numba as nb
import numpy as np

from .config import DEFAULT_LAYOUT, LayoutConfig
from .errors import ForceConfigError
from .graph_model import GraphModel, LayoutState
from .quadtree import QuadTree

logger = logging.getLogger(__name__)

__all__ = [
    "Force", "LinkForce", "ManyBodyForce", "CenterForce", "CollideForce", "ForceRegistry",
]


def _jiggle(rng: np.random.Generator, shape, scale: float) -> np.ndarray:
    return (rng.random(shape) - 0.5) * scale


def _separate_coincident(pos: np.ndarray, rng: np.random.Generator, scale: float) -> np.ndarray:
    """Copy of ``pos`` in which exactly coincident rows are nudged apart."""
    _, inverse, counts = np.unique(pos, axis=0, return_inverse=True, return_counts=True)
    dup = counts[inverse.reshape(-1)] > 1
    if not dup.any():
        return pos
    out = pos.copy()
    out[dup] += _jiggle(rng, (int(dup.sum()), 2), scale)
    return out


class Force:
    def __init__(self):
        self.graph: GraphModel | None = None
        self.state: LayoutState | None = None
        self.rng: np.random.Generator = np.random.default_rng()
        self.min_distance = DEFAULT_LAYOUT.min_distance

    def initialize(self, graph: GraphModel, state: LayoutState, rng: np.random.Generator) -> None:
        self.graph = graph
        self.state = state
        self.rng = rng

    def __call__(self, alpha: float) -> None:
        raise NotImplementedError


class LinkForce(Force):
    """Spring along every link with a fixed rest length.

    Strength is ``1 / min(degree)`` of the two endpoints and the correction
    is split by relative degree, so hubs move less. The link's own
    ``strength`` attribute is a display weight and is not used here.
    """

    def __init__(self, distance: float = DEFAULT_LAYOUT.link_distance):
        super().__init__()
        if not distance > 0:
            raise ForceConfigError(f"link rest length must be > 0, got {distance}")
        self.distance = float(distance)
        self._strengths = np.zeros(0)
        self._bias = np.zeros(0)
        self._active = np.zeros(0, dtype=bool)

    def initialize(self, graph, state, rng):
        super().initialize(graph, state, rng)
        count = graph.degree().astype(np.float64)
        src, tgt = graph.sources, graph.targets
        self._active = src != tgt
        cs = count[src] if len(src) else np.zeros(0)
        ct = count[tgt] if len(tgt) else np.zeros(0)
        with np.errstate(divide="ignore", invalid="ignore"):
            self._strengths = np.where(self._active, 1.0 / np.maximum(np.minimum(cs, ct), 1), 0.0)
            self._bias = np.where(cs + ct > 0, cs / (cs + ct), 0.5)

    def __call__(self, alpha):
        state = self.state
        if state is None or not self._active.any():
            return
        src = self.graph.sources[self._active]
        tgt = self.graph.targets[self._active]
        strength = self._strengths[self._active]
        bias = self._bias[self._active][:, None]

        predicted = state.positions + state.velocities
        delta = predicted[tgt] - predicted[src]
        zero = ~delta.any(axis=1)
        if zero.any():
            delta[zero] = _jiggle(self.rng, (int(zero.sum()), 2), self.min_distance)
        length = np.maximum(np.hypot(delta[:, 0], delta[:, 1]), self.min_distance)
        scale = (length - self.distance) / length * alpha * strength
        delta *= scale[:, None]

        np.add.at(state.velocities, tgt, -delta * bias)
        np.add.at(state.velocities, src, delta * (1 - bias))


class ManyBodyForce(Force):
    """Pairwise repulsion (or attraction, for positive strength) between all nodes.

    Below ``barnes_hut_threshold`` nodes the sum is exact and O(n²); at or
    above it a Barnes-Hut quadtree approximates far-away groups as a single
    mass, giving O(n log n).
    """

    def __init__(
        self,
        strength: float = DEFAULT_LAYOUT.charge_strength,
        distance_min: float = DEFAULT_LAYOUT.charge_distance_min,
        distance_max: float = DEFAULT_LAYOUT.charge_distance_max,
        theta: float = DEFAULT_LAYOUT.theta,
        barnes_hut_threshold: int = DEFAULT_LAYOUT.barnes_hut_threshold,
    ):
        super().__init__()
        if not math.isfinite(strength):
            raise ForceConfigError("many-body strength must be finite")
        if not 0 < distance_min <= distance_max:
            raise ForceConfigError("many-body distances must satisfy 0 < min <= max")
        if theta < 0:
            raise ForceConfigError(f"theta must be >= 0, got {theta}")
        self.strength = float(strength)
        self.distance_min2 = float(distance_min) ** 2
        self.distance_max2 = float(distance_max) ** 2
        self.theta2 = float(theta) ** 2
        self.barnes_hut_threshold = int(barnes_hut_threshold)

    @property
    def uses_barnes_hut(self) -> bool:
        return self.state is not None and len(self.state) >= self.barnes_hut_threshold

    def initialize(self, graph, state, rng):
        super().initialize(graph, state, rng)
        if self.uses_barnes_hut:
            logger.debug("Many-body force: %d nodes, using Barnes-Hut approximation", len(state))

    def __call__(self, alpha):
        state = self.state
        if state is None or len(state) < 2:
            return
        pos = _separate_coincident(state.positions, self.rng, self.min_distance)
        if self.uses_barnes_hut:
            acc = self._approximate(pos)
        else:
            acc = self._exact(pos)
        state.velocities += acc * (self.strength * alpha)

    def _exact(self, pos: np.ndarray) -> np.ndarray:
        delta = pos[None, :, :] - pos[:, None, :]        # (i, j) -> x_j - x_i
        l = (delta ** 2).sum(-1)
        np.fill_diagonal(l, np.inf)
        l = np.maximum(l, self.min_distance ** 2)
        near = l < self.distance_min2
        l = np.where(near, np.sqrt(self.distance_min2 * l), l)
        weight = np.where(l < self.distance_max2, 1.0 / l, 0.0)
        return (delta * weight[:, :, None]).sum(axis=1)

    def _approximate(self, pos: np.ndarray) -> np.ndarray:
        tree = QuadTree(pos)
        acc = np.empty_like(pos)
        for i in range(len(pos)):
            acc[i] = tree.accumulate(i, self.theta2, self.distance_min2, self.distance_max2)
        return acc


class CenterForce(Force):
    """Translates all nodes so their centroid moves to ``(x, y)``.

    Operates on positions rather than velocities and leaves the relative
    arrangement untouched.
    """

    def __init__(self, x: float = 0.0, y: float = 0.0, strength: float = DEFAULT_LAYOUT.center_strength):
        super().__init__()
        if not 0 <= strength <= 1:
            raise ForceConfigError(f"center strength must be in [0, 1], got {strength}")
        self.x = float(x)
        self.y = float(y)
        self.strength = float(strength)

    def set_center(self, x: float, y: float) -> None:
        self.x = float(x)
        self.y = float(y)

    def __call__(self, alpha):
        state = self.state
        if state is None or len(state) == 0:
            return
        placed = state.placed_mask
        if not placed.any():
            return
        centroid = state.positions[placed].mean(axis=0)
        shift = (centroid - (self.x, self.y)) * self.strength
        state.positions[placed] -= shift


@nb.njit(cache=True)
def _relax_collisions_numba(pos, vel, radii, strength, iterations, min_distance):
    n = pos.shape[0]
    for itr in range(iterations):
        for i in range(n):
            xi = pos[i, 0] + vel[i, 0]
            yi = pos[i, 1] + vel[i, 1]
            ri = radii[i]
            ri2 = ri * ri
            for j in range(i + 1, n):
                rj = radii[j]
                r = ri + rj
                x = xi - pos[j, 0] - vel[j, 0]
                y = yi - pos[j, 1] - vel[j, 1]
                l = x * x + y * y
                if l < r * r:
                    if l == 0.0:
                        x = (np.random.random() - 0.5) * min_distance
                        y = (np.random.random() - 0.5) * min_distance
                        l = x * x + y * y
                    l = max(np.sqrt(l), min_distance)
                    l = (r - l) / l * strength
                    x *= l
                    y *= l
                    share = rj * rj / (ri2 + rj * rj)
                    vel[i, 0] += x * share
                    vel[i, 1] += y * share
                    vel[j, 0] -= x * (1.0 - share)
                    vel[j, 1] -= y * (1.0 - share)
    return vel


class CollideForce(Force):
    """Treats nodes as discs and pushes overlapping pairs apart.

    Runs as a relaxation pass over the velocity-predicted positions, updating
    velocities pair by pair. Independent of alpha.
    """

    def __init__(
        self,
        radius: float = DEFAULT_LAYOUT.collision_radius,
        strength: float = DEFAULT_LAYOUT.collision_strength,
        iterations: int = DEFAULT_LAYOUT.collision_iterations,
    ):
        super().__init__()
        if not radius > 0:
            raise ForceConfigError(f"collision radius must be > 0, got {radius}")
        if not 0 <= strength <= 1:
            raise ForceConfigError(f"collision strength must be in [0, 1], got {strength}")
        if iterations < 1:
            raise ForceConfigError("collision iterations must be >= 1")
        self.radius = float(radius)
        self.strength = float(strength)
        self.iterations = int(iterations)
        self._radii = np.zeros(0)

    def initialize(self, graph, state, rng):
        super().initialize(graph, state, rng)
        self._radii = np.full(len(state), self.radius, dtype=np.float64)

    def __call__(self, alpha):
        state = self.state
        if state is None or len(state) < 2:
            return
        pos = np.ascontiguousarray(state.positions, dtype=np.float64)
        vel = np.ascontiguousarray(state.velocities, dtype=np.float64)
        vel = _relax_collisions_numba(pos, vel, self._radii, self.strength,
                                      self.iterations, self.min_distance)
        state.velocities[:] = vel


class ForceRegistry:
    """Ordered, name-keyed set of forces.

    Registering under an existing name replaces that force in place, keeping
    its slot in the application order. Once :meth:`bind` has attached the
    registry to a graph and its state, every force registered afterwards is
    initialized against them straight away.
    """

    def __init__(self):
        self._forces: "OrderedDict[str, Force]" = OrderedDict()
        self._binding: Optional[Tuple[GraphModel, LayoutState, np.random.Generator]] = None

    @classmethod
    def default(cls, config: LayoutConfig = DEFAULT_LAYOUT,
                width: float = 0.0, height: float = 0.0) -> "ForceRegistry":
        registry = cls()
        registry.register("link", LinkForce(config.link_distance))
        registry.register("charge", ManyBodyForce(
            config.charge_strength,
            config.charge_distance_min,
            config.charge_distance_max,
            config.theta,
            config.barnes_hut_threshold,
        ))
        registry.register("center", CenterForce(width / 2, height / 2, config.center_strength))
        registry.register("collide", CollideForce(
            config.collision_radius, config.collision_strength, config.collision_iterations))
        for force in registry:
            force.min_distance = config.min_distance
        return registry

    def register(self, name: str, force: Force) -> Force:
        if not isinstance(force, Force):
            raise ForceConfigError(f"{name!r} is not a Force: {force!r}")
        self._forces[name] = force
        if self._binding is not None:
            force.initialize(*self._binding)
        return force

    def bind(self, graph: GraphModel, state: LayoutState, rng: np.random.Generator) -> None:
        self._binding = (graph, state, rng)
        for force in self:
            force.initialize(graph, state, rng)

    def remove(self, name: str) -> Optional[Force]:
        return self._forces.pop(name, None)

    def get(self, name: str) -> Optional[Force]:
        return self._forces.get(name)

    def names(self) -> List[str]:
        return list(self._forces)

    def items(self) -> List[Tuple[str, Force]]:
        return list(self._forces.items())

    def __iter__(self) -> Iterator[Force]:
        return iter(list(self._forces.values()))

    def __len__(self) -> int:
        return len(self._forces)

    def __contains__(self, name: str) -> bool:
        return name in self._forces
