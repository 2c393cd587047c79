from PyQt5.QtCore import QObject, pyqtSignal as Signal


class SelectionBus(QObject):
    """Broadcasts click-selections made in the graph view to whoever owns the selection."""

    nodeSelected = Signal(object)   # Node, or None on deselect

    def set_node(self, node):
        self.nodeSelected.emit(node)
