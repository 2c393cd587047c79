# RelationGraphQ.py ---------------------------------------------------------
import os
os.environ["PYQTGRAPH_QT_LIB"] = "PyQt5"   # force pyqtgraph to PyQt5
os.environ.pop("QT_API", None)             # avoid other libs nudging Qt differently

import argparse
import logging
import sys
from pathlib import Path

from PyQt5.QtCore import Qt
from PyQt5.QtGui import QKeySequence
from PyQt5.QtWidgets import QApplication, QMainWindow, QMessageBox, QShortcut

from graphview.errors import GraphError
from graphview.graph_model import GraphModel, Node
from graphview.graph_view import GraphViewDock
from graphview.selection_bus import SelectionBus

logger = logging.getLogger("relationgraphq")

DEFAULT_GRAPH = Path(__file__).parent / "data" / "sample_graph.json"


class MainWin(QMainWindow):
    """Application shell: owns the graph and the current selection."""

    def __init__(self):
        super().__init__()
        self.setWindowTitle("RelationGraphQ")
        self.resize(1200, 800)

        self.bus = SelectionBus()
        self.graph: GraphModel | None = None
        self.selected: Node | None = None

        self.graph_dock = GraphViewDock(self.bus, self)
        self.addDockWidget(Qt.LeftDockWidgetArea, self.graph_dock)

        self.bus.nodeSelected.connect(self._on_node_selected)
        QShortcut(QKeySequence(Qt.Key_Escape), self, self.clear_selection)
        self._update_status()

    # ------------------------------------------------------------------
    def load_graph(self, path: Path) -> bool:
        try:
            graph = GraphModel.load_json(path)
        except (GraphError, OSError, ValueError) as exc:
            logger.error("Failed to load %s: %s", path, exc)
            QMessageBox.critical(self, "Failed to load graph", str(exc))
            return False

        self.graph = graph
        self.selected = None
        self.graph_dock.set_graph(graph)
        self._update_status()
        return True

    def clear_selection(self):
        if self.selected is not None:
            self.bus.set_node(None)

    def _on_node_selected(self, node: Node | None):
        self.selected = node
        self.graph_dock.set_selected(node)
        self._update_status()

    def _update_status(self):
        if self.graph is None:
            self.statusBar().showMessage("No graph loaded")
            return
        msg = f"NODES: {len(self.graph.nodes)}   LINKS: {len(self.graph.links)}"
        if self.selected is not None:
            msg += f"   SELECTED: {self.selected.name}"
            if self.selected.role:
                msg += f" ({self.selected.role})"
        self.statusBar().showMessage(msg)

    def closeEvent(self, e):
        self.graph_dock.dispose()
        super().closeEvent(e)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Interactive force-directed relationship graph")
    parser.add_argument("graph", nargs="?", type=Path, default=DEFAULT_GRAPH,
                        help="JSON file with 'nodes' and 'links'")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = QApplication(sys.argv[:1])
    win = MainWin()
    win.show()
    if not win.load_graph(args.graph):
        return 1
    return app.exec_()


if __name__ == "__main__":
    sys.exit(main())
