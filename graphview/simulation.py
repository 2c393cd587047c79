from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Union

import numpy as np
from PyQt5.QtCore import QObject, QTimer, pyqtSignal as Signal

from .config import DEFAULT_LAYOUT, LayoutConfig
from .forces import CenterForce, ForceRegistry
from .graph_model import GraphModel, LayoutState

logger = logging.getLogger(__name__)

INITIAL_RADIUS = 10.0
INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))


# ─── commands posted from the interaction layer ─────────────────────────
@dataclass(frozen=True)
class Pin:
    index: int
    x: float
    y: float


@dataclass(frozen=True)
class Unpin:
    index: int


@dataclass(frozen=True)
class SetAlphaTarget:
    value: float


Command = Union[Pin, Unpin, SetAlphaTarget]


def phyllotaxis(count: int, cx: float = 0.0, cy: float = 0.0, start: int = 0) -> np.ndarray:
    """Sunflower seed placement: evenly spread, deterministic starting positions."""
    i = np.arange(start, start + count, dtype=np.float64)
    radius = INITIAL_RADIUS * np.sqrt(0.5 + i)
    angle = i * INITIAL_ANGLE
    return np.column_stack((cx + radius * np.cos(angle), cy + radius * np.sin(angle)))


class LayoutSimulation:
    """Damped Euler integrator with a decaying temperature.

    Each :meth:`tick` drains the command queue, applies every registered
    force with the current ``alpha``, moves the nodes, then lets ``alpha``
    decay toward ``alpha_target``. The layout counts as converged once
    ``alpha`` drops below ``alpha_min``.
    """

    def __init__(
        self,
        graph: GraphModel,
        width: float = 0.0,
        height: float = 0.0,
        config: LayoutConfig = DEFAULT_LAYOUT,
        forces: Optional[ForceRegistry] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = config
        self.width = float(width)
        self.height = float(height)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.forces = forces if forces is not None else ForceRegistry.default(config, width, height)
        self.alpha = config.alpha
        self.alpha_target = config.alpha_target
        self.alpha_min = config.alpha_min
        self.alpha_decay = config.alpha_decay
        self.velocity_decay = config.velocity_decay
        self.tick_count = 0
        self._commands: Deque[Command] = deque()
        self._disposed = False
        self.graph: GraphModel = graph
        self.state: LayoutState = graph.new_state()
        self._initialize()

    # ------------------------------------------------------------------
    def _initialize(self) -> None:
        unplaced = ~self.state.placed_mask
        if unplaced.any():
            idx = np.flatnonzero(unplaced)
            seeds = phyllotaxis(len(self.state), self.width / 2, self.height / 2)
            self.state.positions[idx] = seeds[idx]
        self.forces.bind(self.graph, self.state, self.rng)

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def converged(self) -> bool:
        return self.alpha < self.alpha_min

    @property
    def center(self) -> tuple[float, float]:
        return self.width / 2, self.height / 2

    # ------------------------------------------------------------------
    def post(self, command: Command) -> None:
        """Queue a command; it takes effect at the start of the next tick."""
        if self._disposed:
            return
        self._commands.append(command)

    def flush_commands(self) -> int:
        n = 0
        while self._commands:
            cmd = self._commands.popleft()
            if isinstance(cmd, Pin):
                self.state.pin(cmd.index, cmd.x, cmd.y)
            elif isinstance(cmd, Unpin):
                self.state.unpin(cmd.index)
            elif isinstance(cmd, SetAlphaTarget):
                self.alpha_target = float(cmd.value)
            else:
                raise TypeError(f"unknown simulation command: {cmd!r}")
            n += 1
        return n

    def tick(self) -> bool:
        """Advance one step. Returns ``True`` while the layout is still active."""
        if self._disposed:
            logger.debug("Ignoring tick on a disposed simulation")
            return False
        self.flush_commands()

        for force in self.forces:
            force(self.alpha)

        state = self.state
        pinned = state.pinned_mask
        state.velocities *= 1.0 - self.velocity_decay
        state.velocities[pinned] = 0.0
        state.positions += state.velocities
        state.positions[pinned] = state.pinned[pinned]

        self.alpha += (self.alpha_target - self.alpha) * self.alpha_decay
        self.tick_count += 1
        return not self.converged

    def run(self, max_ticks: Optional[int] = None) -> int:
        """Tick until converged (or ``max_ticks``); returns the number of ticks run."""
        n = 0
        while not self._disposed and (max_ticks is None or n < max_ticks):
            n += 1
            if not self.tick():
                break
        return n

    def reheat(self, alpha: Optional[float] = None) -> None:
        self.alpha = self.config.alpha if alpha is None else float(alpha)

    def resize(self, width: float, height: float) -> None:
        """Move the centering target; positions and alpha are left alone."""
        self.width = float(width)
        self.height = float(height)
        center = self.forces.get("center")
        if isinstance(center, CenterForce):
            center.set_center(*self.center)

    def replace_graph(self, graph: GraphModel) -> None:
        self.graph = graph
        self.state = graph.new_state()
        self._commands.clear()
        self.alpha = self.config.alpha
        self.alpha_target = self.config.alpha_target
        self.tick_count = 0
        self._initialize()

    def dispose(self) -> None:
        if not self._disposed:
            self._disposed = True
            self._commands.clear()
            logger.info("Simulation disposed after %d ticks", self.tick_count)


class SimulationDriver(QObject):
    """Runs a :class:`LayoutSimulation` once per frame on the Qt event loop."""

    ticked = Signal()
    converged = Signal()
    stopped = Signal()

    def __init__(self, simulation: LayoutSimulation | None = None,
                 interval_ms: int = 16, parent: QObject | None = None):
        super().__init__(parent)
        self.simulation = simulation
        self._disposed = False
        self.timer = QTimer(self)
        self.timer.setInterval(interval_ms)
        self.timer.timeout.connect(self._frame)

    @property
    def running(self) -> bool:
        return self.timer.isActive()

    def set_simulation(self, simulation: LayoutSimulation | None) -> None:
        self.stop()
        if self.simulation is not None and self.simulation is not simulation:
            self.simulation.dispose()
        self.simulation = simulation

    def start(self) -> None:
        if self._disposed or self.simulation is None or self.simulation.disposed:
            return
        if not self.timer.isActive():
            logger.info("Starting layout (alpha=%.3f)", self.simulation.alpha)
            self.timer.start()

    def restart(self) -> None:
        self.start()

    def stop(self) -> None:
        if self.timer.isActive():
            self.timer.stop()
            self.stopped.emit()

    def dispose(self) -> None:
        self.stop()
        self._disposed = True
        if self.simulation is not None:
            self.simulation.dispose()

    def _frame(self) -> None:
        sim = self.simulation
        if self._disposed or sim is None or sim.disposed:
            self.timer.stop()
            return
        active = sim.tick()
        self.ticked.emit()
        if not active:
            self.timer.stop()
            logger.info("Layout converged after %d ticks", sim.tick_count)
            self.converged.emit()
