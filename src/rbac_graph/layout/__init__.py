"""Force-directed layout: Barnes–Hut index, force kernels and the stepping engine."""

from rbac_graph.layout.engine import LayoutEngine, LayoutEvent, LayoutFrame, SimulationState
from rbac_graph.layout.quadtree import SpatialIndex

__all__ = ["LayoutEngine", "LayoutEvent", "LayoutFrame", "SimulationState", "SpatialIndex"]
