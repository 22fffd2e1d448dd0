"""Force-directed layout engine.

The engine owns the simulation state and is advanced one ``step()`` at a
time by its caller (a UI tick, an explicit loop). It is a small state machine
over ``alpha``:

  Running  (alpha > alpha_min)   each step applies link springs, many-body
                                 repulsion, centering, integrates, cools alpha
  Settled  (alpha <= alpha_min)  steps are no-ops; SETTLE fires once on entry
  Reheat                         alpha = max(alpha, reheat_alpha); REHEAT fires

Node positions live on the ``Node`` objects of the working graph, so a
renderer holding the graph always sees the latest frame.

Not thread-safe: stepping and interaction must be serialised by the caller.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from rbac_graph.config import MAX_SETTLE_STEPS, LayoutConfig
from rbac_graph.errors import InvalidCoordinate, InvariantViolation, UnknownNodeError
from rbac_graph.graph import Graph, Node
from rbac_graph.layout.forces import (
    Link,
    apply_center_force,
    apply_link_force,
    apply_many_body,
    build_index,
    integrate,
    new_accumulator,
    prepare_links,
)

logger = logging.getLogger(__name__)


class LayoutEvent(Enum):
    Settle = "settle"
    Reheat = "reheat"


@dataclass
class SimulationState:
    """Cooling schedule. ``velocity_decay`` is the fraction of velocity kept per step."""

    alpha: float
    alpha_min: float
    alpha_decay: float
    alpha_target: float
    velocity_decay: float

    @property
    def running(self) -> bool:
        return self.alpha > self.alpha_min


@dataclass(frozen=True)
class LayoutFrame:
    """Snapshot handed to renderers."""

    alpha: float
    settled: bool
    positions: dict[str, tuple[float, float]]
    edges: list[tuple[str, str]]


def check_point(x: float, y: float) -> tuple[float, float]:
    """Return ``(x, y)`` as floats, rejecting NaN and infinities."""
    x, y = float(x), float(y)
    if not (math.isfinite(x) and math.isfinite(y)):
        raise InvalidCoordinate(f"coordinates must be finite, got ({x}, {y})")
    return (x, y)


class LayoutEngine:
    """Owns node positions/velocities for one working graph and steps the simulation."""

    def __init__(self, graph: Graph | None = None, config: LayoutConfig | None = None) -> None:
        self.config = config if config is not None else LayoutConfig()
        self.state = SimulationState(
            alpha=self.config.alpha,
            alpha_min=self.config.alpha_min,
            alpha_decay=self.config.alpha_decay,
            alpha_target=self.config.alpha_target,
            velocity_decay=self.config.velocity_decay,
        )
        self.iterations = 0
        self._rng = random.Random(self.config.seed)
        self._graph = Graph()
        self._links: list[Link] = []
        self._settled = not self.state.running
        self._listeners: dict[LayoutEvent, list[Callable[[], None]]] = {event: [] for event in LayoutEvent}
        if graph is not None:
            self.set_graph(graph)

    # ─── Accessors ────────────────────────────────────────────────────────────

    @property
    def graph(self) -> Graph:
        return self._graph

    @property
    def alpha(self) -> float:
        return self.state.alpha

    @property
    def settled(self) -> bool:
        return self._settled

    def node(self, node_id: str) -> Node:
        try:
            return self._graph.nodes[node_id]
        except KeyError:
            raise UnknownNodeError(node_id) from None

    def positions(self) -> dict[str, tuple[float, float]]:
        return {node.id: (node.x, node.y) for node in self._graph.nodes.values()}

    def frame(self) -> LayoutFrame:
        return LayoutFrame(
            alpha=self.state.alpha,
            settled=self._settled,
            positions=self.positions(),
            edges=self._graph.edge_pairs(),
        )

    # ─── Events ───────────────────────────────────────────────────────────────

    def subscribe(self, event: LayoutEvent, callback: Callable[[], None]) -> None:
        self._listeners[event].append(callback)

    def _emit(self, event: LayoutEvent) -> None:
        for callback in self._listeners[event]:
            callback()

    # ─── Structure ────────────────────────────────────────────────────────────

    def set_graph(self, graph: Graph) -> None:
        """Swap the working graph and reheat.

        Nodes already in the current working graph keep position, velocity
        and pin. Every other node gets a fresh position near the canvas
        center and zero velocity.
        """
        graph.validate()
        previous = self._graph.nodes
        kept = 0
        for node_id, node in graph.nodes.items():
            old = previous.get(node_id)
            if old is not None and old.placed:
                if old is not node:
                    node.x, node.y = old.x, old.y
                    node.vx, node.vy = old.vx, old.vy
                    node.fixed = old.fixed
                kept += 1
            else:
                self._place(node)

        self._graph = graph
        self._links = prepare_links(graph)
        logger.info(
            "working graph: %d nodes (%d kept, %d new), %d edges",
            len(graph.nodes),
            kept,
            len(graph.nodes) - kept,
            len(graph.edges),
        )
        self.reheat()

    def _place(self, node: Node) -> None:
        node.vx = 0.0
        node.vy = 0.0
        if node.fixed is not None:
            node.x, node.y = node.fixed
            return
        cx, cy = self.config.center
        angle = self._rng.uniform(0.0, 2.0 * math.pi)
        radius = self.config.initial_radius * math.sqrt(self._rng.random())
        node.x = cx + radius * math.cos(angle)
        node.y = cy + radius * math.sin(angle)

    # ─── Pinning ──────────────────────────────────────────────────────────────

    def fix(self, node_id: str, x: float, y: float) -> None:
        """Hold ``node_id`` at ``(x, y)`` until ``unfix``."""
        point = check_point(x, y)
        node = self.node(node_id)
        node.fixed = point
        node.x, node.y = point
        node.vx = 0.0
        node.vy = 0.0

    def unfix(self, node_id: str) -> None:
        """Release a pin; the node restarts at rest from its fixed point."""
        node = self.node(node_id)
        if node.fixed is None:
            return
        node.x, node.y = node.fixed
        node.fixed = None
        node.vx = 0.0
        node.vy = 0.0

    def set_alpha_target(self, alpha_target: float) -> None:
        self.state.alpha_target = alpha_target

    # ─── Simulation ───────────────────────────────────────────────────────────

    def reheat(self) -> None:
        self.state.alpha = max(self.state.alpha, self.config.reheat_alpha)
        self._settled = False
        logger.debug("reheat: alpha=%.4f", self.state.alpha)
        self._emit(LayoutEvent.Reheat)

    def step(self) -> bool:
        """Advance one tick. Returns ``False`` once the layout has settled."""
        if self._settled:
            return False

        cfg = self.config
        nodes = list(self._graph.nodes.values())
        if nodes:
            forces = new_accumulator(nodes)
            apply_link_force(self._links, forces, cfg.link_distance)
            index = build_index(nodes)
            apply_many_body(nodes, index, forces, cfg.charge_strength, cfg.theta, cfg.distance_min2)
            apply_center_force(nodes, cfg.center, cfg.center_strength)
            integrate(nodes, forces, self.state.alpha, self.state.velocity_decay)
            self._check_finite(nodes)

        self.state.alpha += (self.state.alpha_target - self.state.alpha) * self.state.alpha_decay
        self.iterations += 1

        if not self.state.running:
            self._settled = True
            logger.info("layout settled after %d iterations (alpha=%.5f)", self.iterations, self.state.alpha)
            self._emit(LayoutEvent.Settle)
            return False
        return True

    def run(self, max_steps: int = MAX_SETTLE_STEPS) -> int:
        """Step until settled or ``max_steps`` is reached; return the steps taken."""
        taken = 0
        while taken < max_steps and not self._settled:
            self.step()
            taken += 1
        return taken

    def _check_finite(self, nodes: list[Node]) -> None:
        for node in nodes:
            if not (math.isfinite(node.x) and math.isfinite(node.y)):
                raise InvariantViolation(f"layout diverged at node {node.id!r}: ({node.x}, {node.y})")
