"""Point-region quad-tree for Barnes–Hut many-body approximation.

The index is rebuilt from scratch every simulation step. Each cell stores the
total weight and weighted coordinate sums of the points below it, so a cell
far enough from a query point can stand in for all of them:

    size / distance < theta  →  visit the cell as one aggregate

theta = 0 never aggregates and therefore reproduces the exact O(n²) sum.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Iterable
from dataclasses import dataclass

# Cells are never smaller than this on their longest side at the root.
MIN_ROOT_SIZE: float = 1.0
# Leaves at this depth hold any number of points instead of splitting again.
MAX_DEPTH: int = 32
JITTER_SCALE: float = 0.5
# Past this many tries a duplicate is indexed as-is and ends up in a bucket leaf.
MAX_JITTER_ATTEMPTS: int = 8

Visitor = Callable[[float, float, float, float], None]


def deterministic_jitter(key: str, scale: float = JITTER_SCALE) -> tuple[float, float]:
    """Reproducible offset in ``[-scale, scale]²`` derived from ``key``."""
    digest = hashlib.md5(key.encode()).hexdigest()
    x_val = int(digest[:8], 16) / 0xFFFFFFFF
    y_val = int(digest[8:16], 16) / 0xFFFFFFFF
    return (x_val * 2 * scale - scale, y_val * 2 * scale - scale)


@dataclass
class IndexedPoint:
    """A point as stored in the index (after any jitter)."""

    key: str
    x: float
    y: float
    weight: float = 1.0


class _Quad:
    __slots__ = ("x0", "y0", "size", "depth", "mass", "sx", "sy", "points", "children")

    def __init__(self, x0: float, y0: float, size: float, depth: int) -> None:
        self.x0 = x0
        self.y0 = y0
        self.size = size
        self.depth = depth
        self.mass = 0.0
        self.sx = 0.0
        self.sy = 0.0
        self.points: list[IndexedPoint] = []
        self.children: list[_Quad | None] | None = None

    def contains(self, x: float, y: float) -> bool:
        return self.x0 <= x <= self.x0 + self.size and self.y0 <= y <= self.y0 + self.size

    def insert(self, point: IndexedPoint) -> None:
        self.mass += point.weight
        self.sx += point.x * point.weight
        self.sy += point.y * point.weight

        if self.children is None:
            if not self.points or self.depth >= MAX_DEPTH:
                self.points.append(point)
                return
            # Occupied leaf: split and push the resident points down.
            residents = self.points
            self.points = []
            self.children = [None, None, None, None]
            for resident in residents:
                self._insert_child(resident)
        self._insert_child(point)

    def _insert_child(self, point: IndexedPoint) -> None:
        half = self.size / 2.0
        right = point.x >= self.x0 + half
        bottom = point.y >= self.y0 + half
        index = (2 if bottom else 0) + (1 if right else 0)
        child = self.children[index]
        if child is None:
            child = _Quad(
                self.x0 + (half if right else 0.0),
                self.y0 + (half if bottom else 0.0),
                half,
                self.depth + 1,
            )
            self.children[index] = child
        child.insert(point)


class SpatialIndex:
    """Barnes–Hut quad-tree over weighted, keyed points."""

    def __init__(self) -> None:
        self._root: _Quad | None = None
        self._points: dict[str, IndexedPoint] = {}

    @classmethod
    def build(cls, points: Iterable[tuple[str, float, float, float]]) -> SpatialIndex:
        """Index ``(key, x, y, weight)`` tuples.

        A point landing exactly on an already indexed point is moved by a
        deterministic jitter derived from its key before insertion. Where the
        jitter is below float resolution (very large coordinates) the point
        is kept as given after ``MAX_JITTER_ATTEMPTS`` tries.
        """
        index = cls()
        occupied: set[tuple[float, float]] = set()
        for key, x, y, weight in points:
            attempt = 0
            while (x, y) in occupied and attempt < MAX_JITTER_ATTEMPTS:
                dx, dy = deterministic_jitter(f"{key}:{attempt}")
                x, y = x + dx, y + dy
                attempt += 1
            occupied.add((x, y))
            index._points[key] = IndexedPoint(key=key, x=x, y=y, weight=weight)

        if not index._points:
            return index

        xs = [p.x for p in index._points.values()]
        ys = [p.y for p in index._points.values()]
        x0, y0 = min(xs), min(ys)
        extent = max(max(xs) - x0, max(ys) - y0, MIN_ROOT_SIZE)
        # Slight overshoot keeps points on the far edge inside the root cell.
        root = _Quad(x0, y0, extent * (1.0 + 1e-9), depth=0)
        for point in index._points.values():
            root.insert(point)
        index._root = root
        return index

    def __len__(self) -> int:
        return len(self._points)

    def __contains__(self, key: object) -> bool:
        return key in self._points

    def position(self, key: str) -> tuple[float, float]:
        """Indexed (possibly jittered) position of ``key``."""
        point = self._points[key]
        return (point.x, point.y)

    @property
    def total_weight(self) -> float:
        return self._root.mass if self._root is not None else 0.0

    @property
    def center_of_mass(self) -> tuple[float, float] | None:
        if self._root is None or self._root.mass == 0.0:
            return None
        return (self._root.sx / self._root.mass, self._root.sy / self._root.mass)

    def for_each_interaction(self, key: str, theta: float, visitor: Visitor) -> None:
        """Call ``visitor(x, y, weight, distance_squared)`` for everything but ``key``.

        Distances are measured from the indexed position of ``key``. Cells that
        contain the query point are always opened.
        """
        if self._root is None:
            return
        qx, qy = self.position(key)
        theta2 = theta * theta

        stack: list[_Quad] = [self._root]
        while stack:
            quad = stack.pop()
            if quad.mass == 0.0:
                continue

            if quad.children is None:
                for point in quad.points:
                    if point.key == key:
                        continue
                    dx = point.x - qx
                    dy = point.y - qy
                    visitor(point.x, point.y, point.weight, dx * dx + dy * dy)
                continue

            cx = quad.sx / quad.mass
            cy = quad.sy / quad.mass
            dx = cx - qx
            dy = cy - qy
            d2 = dx * dx + dy * dy
            if d2 > 0.0 and quad.size * quad.size < theta2 * d2 and not quad.contains(qx, qy):
                visitor(cx, cy, quad.mass, d2)
                continue

            stack.extend(child for child in quad.children if child is not None)
