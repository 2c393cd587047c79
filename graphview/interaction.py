from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .config import DEFAULT_VIEW, ViewConfig
from .graph_model import Node
from .simulation import LayoutSimulation, Pin, SetAlphaTarget, Unpin

logger = logging.getLogger(__name__)


@dataclass
class ViewportTransform:
    """Pan/zoom mapping ``screen = world * k + (tx, ty)``.

    Lives entirely outside the simulation: moving the viewport never moves
    a node.
    """

    tx: float = 0.0
    ty: float = 0.0
    k: float = 1.0
    scale_extent: tuple[float, float] = DEFAULT_VIEW.scale_extent

    def to_screen(self, point):
        p = np.asarray(point, dtype=np.float64)
        return p * self.k + (self.tx, self.ty)

    def to_world(self, point):
        p = np.asarray(point, dtype=np.float64)
        return (p - (self.tx, self.ty)) / self.k

    def pan(self, dx: float, dy: float) -> None:
        self.tx += dx
        self.ty += dy

    def zoom_at(self, screen_point, factor: float) -> None:
        """Scale by ``factor`` keeping the world point under ``screen_point`` fixed."""
        lo, hi = self.scale_extent
        k = min(max(self.k * factor, lo), hi)
        if k == self.k:
            return
        wx, wy = self.to_world(screen_point)
        sx, sy = screen_point
        self.k = k
        self.tx = sx - wx * k
        self.ty = sy - wy * k

    def reset(self) -> None:
        self.tx = self.ty = 0.0
        self.k = 1.0

    def visible_rect(self, width: float, height: float) -> tuple[tuple[float, float], tuple[float, float]]:
        """World-space ``(x_range, y_range)`` covered by a ``width`` x ``height`` screen."""
        (x0, y0), (x1, y1) = self.to_world((0.0, 0.0)), self.to_world((width, height))
        return (float(x0), float(x1)), (float(y0), float(y1))


class DragState(Enum):
    FREE = "free"
    DRAGGING = "dragging"


class Gesture(Enum):
    IDLE = "idle"
    PRESSING_NODE = "pressing_node"
    PRESSING_CANVAS = "pressing_canvas"
    DRAGGING = "dragging"
    PANNING = "panning"


class InteractionController:
    """Turns pointer input (in screen pixels) into drags, pans, zooms and selections.

    Node drags reach the simulation only as queued commands. Selections are
    reported through ``on_select`` with the clicked :class:`Node`, or
    ``None`` for a click on empty canvas.
    """

    def __init__(
        self,
        simulation: LayoutSimulation,
        transform: ViewportTransform | None = None,
        config: ViewConfig = DEFAULT_VIEW,
        on_select: Optional[Callable[[Optional[Node]], None]] = None,
        on_reheat: Optional[Callable[[], None]] = None,
        on_viewport_changed: Optional[Callable[[], None]] = None,
    ):
        self.simulation = simulation
        self.config = config
        self.transform = transform or ViewportTransform(scale_extent=config.scale_extent)
        self.on_select = on_select
        self.on_reheat = on_reheat
        self.on_viewport_changed = on_viewport_changed
        self.gesture = Gesture.IDLE
        self._press_screen: np.ndarray | None = None
        self._last_screen: np.ndarray | None = None
        self._node: int | None = None

    # ------------------------------------------------------------------
    @property
    def dragging(self) -> int | None:
        return self._node if self.gesture is Gesture.DRAGGING else None

    def node_state(self, node_id: str) -> DragState:
        index = self.simulation.graph.index_of(node_id)
        return DragState.DRAGGING if self.dragging == index else DragState.FREE

    def node_at(self, screen_pos) -> int | None:
        """Index of the closest node whose disc contains ``screen_pos``."""
        positions = self.simulation.state.positions
        if len(positions) == 0:
            return None
        world = self.transform.to_world(screen_pos)
        d2 = ((positions - world) ** 2).sum(axis=1)
        d2 = np.where(np.isnan(d2), np.inf, d2)
        best = int(np.argmin(d2))
        if d2[best] <= self.config.node_radius ** 2:
            return best
        return None

    def set_simulation(self, simulation: LayoutSimulation) -> None:
        self.simulation = simulation
        self._reset_gesture()

    # ------------------------------------------------------------------
    def pointer_down(self, screen_pos) -> None:
        pos = np.asarray(screen_pos, dtype=np.float64)
        self._press_screen = pos
        self._last_screen = pos
        self._node = self.node_at(pos)
        self.gesture = Gesture.PRESSING_NODE if self._node is not None else Gesture.PRESSING_CANVAS

    def pointer_move(self, screen_pos) -> None:
        if self.gesture is Gesture.IDLE:
            return
        pos = np.asarray(screen_pos, dtype=np.float64)

        if self.gesture is Gesture.PRESSING_NODE and self._beyond_threshold(pos):
            self._start_drag()
        elif self.gesture is Gesture.PRESSING_CANVAS and self._beyond_threshold(pos):
            self.gesture = Gesture.PANNING
            self._last_screen = self._press_screen

        if self.gesture is Gesture.DRAGGING:
            wx, wy = self.transform.to_world(pos)
            self.simulation.post(Pin(self._node, float(wx), float(wy)))
        elif self.gesture is Gesture.PANNING:
            dx, dy = pos - self._last_screen
            self.transform.pan(float(dx), float(dy))
            self._viewport_changed()
        self._last_screen = pos

    def pointer_up(self, screen_pos) -> None:
        if self.gesture is Gesture.IDLE:
            return
        self.pointer_move(screen_pos)
        gesture, node = self.gesture, self._node
        self._reset_gesture()

        if gesture is Gesture.DRAGGING:
            self.simulation.post(Unpin(node))
            self.simulation.post(SetAlphaTarget(self.simulation.config.alpha_target))
            logger.debug("Drag end: node %s", self.simulation.graph.nodes[node].id)
        elif gesture is Gesture.PRESSING_NODE:
            self._select(self.simulation.graph.nodes[node])
        elif gesture is Gesture.PRESSING_CANVAS:
            self._select(None)

    def cancel(self) -> None:
        """Abort the current gesture, releasing any dragged node."""
        if self.gesture is Gesture.DRAGGING:
            self.simulation.post(Unpin(self._node))
            self.simulation.post(SetAlphaTarget(self.simulation.config.alpha_target))
        self._reset_gesture()

    def wheel(self, screen_pos, steps: float) -> None:
        self.transform.zoom_at(screen_pos, self.config.wheel_zoom_factor ** steps)
        self._viewport_changed()

    # ------------------------------------------------------------------
    def _start_drag(self) -> None:
        x, y = self.simulation.state.positions[self._node]
        self.simulation.post(Pin(self._node, float(x), float(y)))
        self.simulation.post(SetAlphaTarget(self.simulation.config.drag_alpha_target))
        self.gesture = Gesture.DRAGGING
        logger.debug("Drag start: node %s", self.simulation.graph.nodes[self._node].id)
        if self.on_reheat:
            self.on_reheat()

    def _beyond_threshold(self, pos: np.ndarray) -> bool:
        if self._press_screen is None:
            return False
        return float(np.hypot(*(pos - self._press_screen))) > self.config.click_threshold

    def _reset_gesture(self) -> None:
        self.gesture = Gesture.IDLE
        self._press_screen = self._last_screen = None
        self._node = None

    def _select(self, node: Optional[Node]) -> None:
        if self.on_select:
            self.on_select(node)

    def _viewport_changed(self) -> None:
        if self.on_viewport_changed:
            self.on_viewport_changed()
