from __future__ import annotations

from typing import List, Optional

import numpy as np

MAX_DEPTH = 32


class QuadTreeNode:
    """One square cell of the tree with the aggregate mass of everything below it."""

    __slots__ = ("x0", "y0", "size", "mass", "cx", "cy", "children", "points")

    def __init__(self, x0: float, y0: float, size: float):
        self.x0 = x0
        self.y0 = y0
        self.size = size
        self.mass = 0.0
        self.cx = 0.0
        self.cy = 0.0
        self.children: Optional[List[Optional["QuadTreeNode"]]] = None
        self.points: List[int] = []

    @property
    def is_leaf(self) -> bool:
        return self.children is None


class QuadTree:
    """Barnes-Hut quadtree over a set of 2-D positions.

    Every point carries unit mass; a cell's centre of mass is the mean of
    the points it contains. Coincident points share one leaf.
    """

    def __init__(self, positions: np.ndarray, leaf_size: int = 1):
        self.positions = np.asarray(positions, dtype=np.float64)
        self.leaf_size = max(1, leaf_size)
        if len(self.positions) == 0:
            self.root = QuadTreeNode(0.0, 0.0, 1.0)
            return
        lo = self.positions.min(axis=0)
        hi = self.positions.max(axis=0)
        size = float(max(hi[0] - lo[0], hi[1] - lo[1], 1e-9)) * (1 + 1e-9)
        self.root = QuadTreeNode(float(lo[0]), float(lo[1]), size)
        self._build(self.root, np.arange(len(self.positions)), 0)

    def _build(self, cell: QuadTreeNode, idx: np.ndarray, depth: int) -> None:
        pts = self.positions[idx]
        cell.mass = float(len(idx))
        cell.cx, cell.cy = (float(v) for v in pts.mean(axis=0))
        if len(idx) <= self.leaf_size or depth >= MAX_DEPTH or np.all(pts == pts[0]):
            cell.points = idx.tolist()
            return
        half = cell.size / 2
        right = pts[:, 0] >= cell.x0 + half
        below = pts[:, 1] >= cell.y0 + half
        quadrant = right.astype(np.int64) + 2 * below.astype(np.int64)
        cell.children = [None, None, None, None]
        for q in range(4):
            sub = idx[quadrant == q]
            if len(sub) == 0:
                continue
            child = QuadTreeNode(cell.x0 + half * (q & 1), cell.y0 + half * (q >> 1), half)
            self._build(child, sub, depth + 1)
            cell.children[q] = child

    def accumulate(self, i: int, theta2: float, dist_min2: float, dist_max2: float) -> np.ndarray:
        """Sum of ``delta / d²`` from every other point onto point ``i``.

        Cells with ``size² / d² < theta²`` are treated as a single point mass.
        Squared distances are floored at ``dist_min2`` and pairs farther than
        ``dist_max2`` are ignored.
        """
        xi, yi = self.positions[i]
        fx = fy = 0.0
        stack = [self.root]
        while stack:
            cell = stack.pop()
            if cell.mass == 0:
                continue
            dx = cell.cx - xi
            dy = cell.cy - yi
            l = dx * dx + dy * dy
            if not cell.is_leaf and cell.size * cell.size < theta2 * l:
                if l < dist_max2:
                    if l < dist_min2:
                        l = np.sqrt(dist_min2 * l) if l > 0 else dist_min2
                    fx += dx * cell.mass / l
                    fy += dy * cell.mass / l
                continue
            if cell.is_leaf:
                for j in cell.points:
                    if j == i:
                        continue
                    dx = self.positions[j, 0] - xi
                    dy = self.positions[j, 1] - yi
                    l = dx * dx + dy * dy
                    if l >= dist_max2 or l == 0:
                        continue
                    if l < dist_min2:
                        l = np.sqrt(dist_min2 * l)
                    fx += dx / l
                    fy += dy / l
                continue
            stack.extend(c for c in cell.children if c is not None)
        return np.array((fx, fy))
