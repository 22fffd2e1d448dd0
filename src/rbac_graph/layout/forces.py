"""Force kernels for one simulation step.

Each kernel accumulates into a per-node ``[fx, fy]`` accumulator (or, for
centering, shifts positions directly). ``integrate`` then turns forces into
velocities and positions. Nodes with ``fixed`` set neither receive forces nor
move; they still attract and repel the others.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from rbac_graph.graph import Graph, Node
from rbac_graph.layout.quadtree import SpatialIndex, deterministic_jitter

ForceAccumulator = dict[str, list[float]]


@dataclass
class Link:
    """An edge resolved to its endpoint nodes, with precomputed spring parameters.

    ``strength`` is ``1 / min(degree)`` so hubs are pulled gently; ``bias``
    shifts the correction toward the lower-degree endpoint.
    """

    source: Node
    target: Node
    strength: float
    bias: float


def prepare_links(graph: Graph) -> list[Link]:
    degrees = graph.degrees()
    links: list[Link] = []
    for edge in graph.edges:
        if edge.source == edge.target:
            continue
        src_deg = degrees[edge.source]
        tgt_deg = degrees[edge.target]
        links.append(
            Link(
                source=graph.nodes[edge.source],
                target=graph.nodes[edge.target],
                strength=1.0 / min(src_deg, tgt_deg),
                bias=src_deg / (src_deg + tgt_deg),
            )
        )
    return links


def new_accumulator(nodes: Sequence[Node]) -> ForceAccumulator:
    return {node.id: [0.0, 0.0] for node in nodes}


def apply_link_force(links: Sequence[Link], forces: ForceAccumulator, distance: float) -> None:
    """Hooke springs of natural length ``distance`` along every link."""
    for link in links:
        src, tgt = link.source, link.target
        dx = tgt.x - src.x
        dy = tgt.y - src.y
        if dx == 0.0 and dy == 0.0:
            dx, dy = deterministic_jitter(f"{src.id}->{tgt.id}", scale=1e-6)
        length = (dx * dx + dy * dy) ** 0.5
        k = (length - distance) / length * link.strength
        dx *= k
        dy *= k

        tgt_force = forces[tgt.id]
        tgt_force[0] -= dx * link.bias
        tgt_force[1] -= dy * link.bias
        src_force = forces[src.id]
        src_force[0] += dx * (1.0 - link.bias)
        src_force[1] += dy * (1.0 - link.bias)


def build_index(nodes: Sequence[Node]) -> SpatialIndex:
    return SpatialIndex.build((node.id, node.x, node.y, 1.0) for node in nodes)


def apply_many_body(
    nodes: Sequence[Node],
    index: SpatialIndex,
    forces: ForceAccumulator,
    strength: float,
    theta: float,
    distance_min2: float,
) -> None:
    """Inverse-square charge between all nodes, approximated through ``index``.

    A negative ``strength`` repels.
    """
    for node in nodes:
        if node.fixed is not None:
            continue
        qx, qy = index.position(node.id)
        acc = forces[node.id]

        def visit(
            x: float,
            y: float,
            weight: float,
            d2: float,
            qx: float = qx,
            qy: float = qy,
            acc: list[float] = acc,
        ) -> None:
            if d2 < distance_min2:
                d2 = distance_min2
            scale = strength * weight / d2
            acc[0] += (x - qx) * scale
            acc[1] += (y - qy) * scale

        index.for_each_interaction(node.id, theta, visit)


def apply_center_force(nodes: Sequence[Node], center: tuple[float, float], strength: float) -> None:
    """Move the centroid of the free nodes ``strength`` of the way to ``center``."""
    free = [node for node in nodes if node.fixed is None]
    if not free or strength == 0.0:
        return
    mean_x = sum(node.x for node in free) / len(free)
    mean_y = sum(node.y for node in free) / len(free)
    shift_x = (mean_x - center[0]) * strength
    shift_y = (mean_y - center[1]) * strength
    for node in free:
        node.x -= shift_x
        node.y -= shift_y


def integrate(nodes: Sequence[Node], forces: ForceAccumulator, alpha: float, velocity_decay: float) -> None:
    """``v = (v + F) * velocity_decay``, ``p += v * alpha``; fixed nodes snap to ``fixed``."""
    for node in nodes:
        if node.fixed is not None:
            node.x, node.y = node.fixed
            node.vx = 0.0
            node.vy = 0.0
            continue
        fx, fy = forces[node.id]
        node.vx = (node.vx + fx) * velocity_decay
        node.vy = (node.vy + fy) * velocity_decay
        node.x += node.vx * alpha
        node.y += node.vy * alpha
