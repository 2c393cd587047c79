from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np
import pyqtgraph as pg
from PyQt5.QtCore import Qt, QLineF
from PyQt5.QtGui import QColor, QPen
from PyQt5.QtWidgets import (
    QDockWidget, QGraphicsLineItem, QPushButton, QVBoxLayout, QWidget,
)

from .config import DEFAULT_LAYOUT, DEFAULT_VIEW, LayoutConfig, ViewConfig
from .graph_model import GraphModel, Node
from .interaction import InteractionController, ViewportTransform
from .renderer import Frame, project
from .selection_bus import SelectionBus
from .simulation import LayoutSimulation, SimulationDriver

logger = logging.getLogger(__name__)

__all__ = ["GraphViewBox", "GraphPainter", "GraphViewDock"]


def _color(hex_color: str, opacity: float) -> QColor:
    c = QColor(hex_color)
    c.setAlphaF(float(np.clip(opacity, 0.0, 1.0)))
    return c


# ---------------------------------------------------------------------------- #
# View box: routes raw mouse input to the interaction controller               #
# ---------------------------------------------------------------------------- #
class GraphViewBox(pg.ViewBox):
    """ViewBox whose mouse handling is replaced by an :class:`InteractionController`.

    pyqtgraph's own pan/zoom is switched off; the view range is driven from
    the controller's :class:`ViewportTransform` instead.
    """

    def __init__(self, *a, **kw):
        super().__init__(*a, **kw)
        self.controller: InteractionController | None = None
        self.setMouseEnabled(False, False)
        self.setMenuEnabled(False)
        self.enableAutoRange(enable=False)
        self.invertY(True)

    @staticmethod
    def _xy(pos) -> tuple[float, float]:
        return pos.x(), pos.y()

    def mouseClickEvent(self, ev):
        if self.controller is None or ev.button() != Qt.LeftButton:
            super().mouseClickEvent(ev)
            return
        p = self._xy(ev.pos())
        self.controller.pointer_down(p)
        self.controller.pointer_up(p)
        ev.accept()

    def mouseDragEvent(self, ev, axis=None):
        if self.controller is None or ev.button() != Qt.LeftButton:
            ev.ignore()
            return
        if ev.isStart():
            self.controller.pointer_down(self._xy(ev.buttonDownPos()))
        if ev.isFinish():
            self.controller.pointer_up(self._xy(ev.pos()))
        else:
            self.controller.pointer_move(self._xy(ev.pos()))
        ev.accept()

    def wheelEvent(self, ev, axis=None):
        if self.controller is None:
            ev.ignore()
            return
        delta = ev.delta() if hasattr(ev, "delta") else ev.angleDelta().y()
        self.controller.wheel(self._xy(ev.pos()), delta / 120.0)
        ev.accept()

    def apply_transform(self, transform: ViewportTransform) -> None:
        rect = self.boundingRect()
        if rect.width() <= 0 or rect.height() <= 0:
            return
        x_range, y_range = transform.visible_rect(rect.width(), rect.height())
        self.setRange(xRange=x_range, yRange=y_range, padding=0)


# ---------------------------------------------------------------------------- #
# Painter: Frame -> graphics items                                             #
# ---------------------------------------------------------------------------- #
class GraphPainter:
    """Keeps one graphics item per link and label plus a scatter for the discs."""

    def __init__(self, view: pg.ViewBox, config: ViewConfig = DEFAULT_VIEW):
        self.view = view
        self.config = config
        self.link_items: List[QGraphicsLineItem] = []
        self.label_items: List[pg.TextItem] = []
        self.node_scatter: pg.ScatterPlotItem | None = None

    def build(self, graph: GraphModel) -> None:
        self.clear()
        for _ in graph.links:
            item = QGraphicsLineItem()
            item.setZValue(0)
            item.hide()
            self.view.addItem(item)
            self.link_items.append(item)
        self.node_scatter = pg.ScatterPlotItem(pxMode=False, symbol="o")
        self.node_scatter.setZValue(10)
        self.view.addItem(self.node_scatter)
        for node in graph.nodes:
            label = pg.TextItem(node.name, color="w", anchor=(0.5, 0.0), fill=pg.mkBrush(0, 0, 0, 200))
            label.setZValue(20)
            label.hide()
            self.view.addItem(label)
            self.label_items.append(label)

    def clear(self) -> None:
        for item in self.link_items + self.label_items:
            self.view.removeItem(item)
        if self.node_scatter is not None:
            self.view.removeItem(self.node_scatter)
        self.link_items = []
        self.label_items = []
        self.node_scatter = None

    def paint(self, frame: Frame) -> None:
        if self.node_scatter is None:
            return
        cfg = self.config

        for item, seg, ok, width, opacity in zip(
            self.link_items, frame.link_segments, frame.link_visible,
            frame.link_widths, frame.link_opacity,
        ):
            if not ok:
                item.hide()
                continue
            pen = QPen(_color(cfg.link_color, opacity))
            pen.setWidthF(float(width))
            item.setPen(pen)
            item.setLine(QLineF(seg[0, 0], seg[0, 1], seg[1, 0], seg[1, 1]))
            item.show()

        idx = np.flatnonzero(frame.visible)
        brushes = [pg.mkBrush(_color(frame.node_colors[i], 0.9 * frame.node_opacity[i])) for i in idx]
        pens = [pg.mkPen(cfg.selection_color, width=3) if i == frame.selected_index else pg.mkPen(None)
                for i in idx]
        self.node_scatter.setData(
            pos=frame.node_positions[idx] if len(idx) else np.zeros((0, 2)),
            size=2 * cfg.node_radius,
            brush=brushes,
            pen=pens,
            data=idx.tolist(),
        )

        for i, label in enumerate(self.label_items):
            if not frame.visible[i]:
                label.hide()
                continue
            x, y = frame.node_positions[i]
            label.setPos(float(x), float(y) + cfg.label_offset)
            label.setOpacity(float(frame.node_opacity[i]))
            label.show()


# ---------------------------------------------------------------------------- #
# Main dock widget                                                             #
# ---------------------------------------------------------------------------- #
class GraphViewDock(QDockWidget):
    """Interactive force-directed view of one relationship graph."""

    def __init__(self, bus: SelectionBus, parent=None,
                 layout_config: LayoutConfig = DEFAULT_LAYOUT,
                 view_config: ViewConfig = DEFAULT_VIEW):
        super().__init__("Relationship Graph", parent)
        self.bus = bus
        self.layout_config = layout_config
        self.view_config = view_config

        # runtime
        self.graph: GraphModel | None = None
        self.simulation: LayoutSimulation | None = None
        self._selected_id: str | None = None
        self._paused = False
        self.transform = ViewportTransform(scale_extent=view_config.scale_extent)
        self.controller: InteractionController | None = None

        # GUI
        self.run_button = QPushButton("Pause Layout"); self.run_button.setEnabled(False)
        self.run_button.clicked.connect(self._toggle_sim)

        self.view = GraphViewBox(); self.view.setBackgroundColor(view_config.background)
        self.view.sigResized.connect(self._on_resized)
        self.plot = pg.PlotWidget(viewBox=self.view); self.plot.setBackground(view_config.background)
        self.plot.hideAxis('bottom'); self.plot.hideAxis('left'); self.plot.hideButtons()
        self.painter = GraphPainter(self.view, view_config)

        w = QWidget(); l = QVBoxLayout(w); l.setContentsMargins(0, 0, 0, 0)
        l.addWidget(self.run_button); l.addWidget(self.plot)
        self.setWidget(w)

        # timer
        self.driver = SimulationDriver(interval_ms=view_config.frame_interval_ms, parent=self)
        self.driver.ticked.connect(self.repaint_graph)
        self.driver.converged.connect(self._on_converged)

    # ============================================================================ #
    # Graph setup / teardown                                                       #
    # ============================================================================ #
    def set_graph(self, graph: GraphModel | None):
        self._clear_scene()
        self.graph = graph
        if graph is None:
            self.run_button.setEnabled(False)
            return

        width, height = self._viewport_size()
        self.simulation = LayoutSimulation(graph, width, height, self.layout_config)
        self.controller = InteractionController(
            self.simulation,
            self.transform,
            self.view_config,
            on_select=self.bus.set_node,
            on_reheat=self._start_sim,
            on_viewport_changed=self._on_viewport_changed,
        )
        self.view.controller = self.controller
        self.painter.build(graph)
        self.driver.set_simulation(self.simulation)
        self.run_button.setEnabled(True)
        self._start_sim()
        self.repaint_graph()

    def _clear_scene(self):
        self.driver.set_simulation(None)
        self.view.controller = None
        self.controller = None
        self.simulation = None
        self._selected_id = None
        self.painter.clear()

    def set_selected(self, node: Optional[Node]):
        self._selected_id = node.id if node is not None else None
        self.repaint_graph()

    # ============================================================================ #
    # Animation                                                                    #
    # ============================================================================ #
    def _start_sim(self):
        if self.simulation is not None:
            self._paused = False
            self.driver.start(); self.run_button.setText("Pause Layout")

    def _stop_sim(self):
        self._paused = True
        self.driver.stop(); self.run_button.setText("Resume Layout")

    def _toggle_sim(self):
        if self.driver.running:
            self._stop_sim()
        else:
            if self.simulation is not None and self.simulation.converged:
                self.simulation.reheat()
            self._start_sim()

    def _on_converged(self):
        self.run_button.setText("Resume Layout")

    def repaint_graph(self):
        if self.graph is None or self.simulation is None:
            return
        frame = project(self.graph, self.simulation.state, self._selected_id, self.view_config)
        self.painter.paint(frame)

    # ============================================================================ #
    # Viewport                                                                     #
    # ============================================================================ #
    def _viewport_size(self) -> tuple[float, float]:
        rect = self.view.boundingRect()
        return float(rect.width()), float(rect.height())

    def _on_viewport_changed(self):
        self.view.apply_transform(self.transform)

    def _on_resized(self):
        self.view.apply_transform(self.transform)
        if self.simulation is not None:
            self.simulation.resize(*self._viewport_size())
            if not self._paused:
                self.driver.restart()

    def dispose(self):
        self._clear_scene()
        self.driver.dispose()

    def closeEvent(self, e):
        # the dock can be shown again from the main window, so only pause
        self._stop_sim()
        super().closeEvent(e)
