"""Exceptions raised while building a graph or configuring the layout."""


class GraphError(Exception):
    """Base class for every layout-engine error."""


class GraphBuildError(GraphError, ValueError):
    """The node/link payload cannot be turned into a graph."""


class DuplicateNodeError(GraphBuildError):
    def __init__(self, node_id: str):
        super().__init__(f"duplicate node id: {node_id!r}")
        self.node_id = node_id


class DanglingReferenceError(GraphBuildError):
    def __init__(self, link_index: int, missing: str):
        super().__init__(f"link #{link_index} references unknown node id {missing!r}")
        self.link_index = link_index
        self.missing = missing


class ForceConfigError(GraphError, ValueError):
    """A force or integrator constant is out of range."""
