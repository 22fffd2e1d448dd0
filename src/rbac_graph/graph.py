"""Graph construction: binding records → deduplicated node/edge graph.

Node identity:
  - a binding node is identified by the binding's name;
  - a subject or role-reference node is identified by ``kind-name``, so the
    same subject referenced from several bindings collapses to one node.

Identity is carried by a tagged ``NodeKey``; the string id is only its
rendering. When a subject/roleRef id would collide with an id claimed by a
different key, it is qualified with ``#<role>``. Collisions are resolved over
the whole input, never by record order.

The price of order independence is that ids are stable only while the set of
colliding keys is. A snapshot that gains a binding named ``User-alice``
renames the existing subject ``User-alice`` to ``User-alice#subject``, and
``LayoutEngine.set_graph`` treats it as a new node with a fresh position.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import networkx as nx

from rbac_graph.errors import InvariantViolation, MalformedRecord, RecordElement
from rbac_graph.records import BINDING_KINDS, BindingRecord, RoleRef, Subject

logger = logging.getLogger(__name__)

ID_SEPARATOR = "-"
QUALIFIER_SEPARATOR = "#"

# ─── Identity ─────────────────────────────────────────────────────────────────


class NodeRole(Enum):
    """What a node stands for."""

    Binding = "binding"
    Subject = "subject"
    RoleRef = "roleRef"


@dataclass(frozen=True)
class NodeKey:
    """Tagged identity of a node. Binding keys leave ``kind`` empty."""

    role: NodeRole
    kind: str
    name: str

    @property
    def plain_id(self) -> str:
        if self.role is NodeRole.Binding:
            return self.name
        return f"{self.kind}{ID_SEPARATOR}{self.name}"

    @property
    def qualified_id(self) -> str:
        return f"{self.plain_id}{QUALIFIER_SEPARATOR}{self.role.value}"

    @property
    def label(self) -> str:
        if self.role is NodeRole.Binding:
            return self.name
        return f"{self.kind} - {self.name}"


# ─── Graph IR ─────────────────────────────────────────────────────────────────


@dataclass(eq=False)
class Node:
    """A diagram node plus the simulation state the layout engine keeps on it.

    ``x``/``y`` stay ``None`` until the layout engine places the node.
    ``fixed`` is set while the node is pinned or dragged.
    """

    id: str
    label: str
    kind: str | None = None
    role: NodeRole = NodeRole.Binding
    x: float | None = None
    y: float | None = None
    vx: float = 0.0
    vy: float = 0.0
    fixed: tuple[float, float] | None = None

    @property
    def placed(self) -> bool:
        return self.x is not None and self.y is not None

    @property
    def position(self) -> tuple[float, float] | None:
        if not self.placed:
            return None
        return (self.x, self.y)

    @property
    def velocity(self) -> tuple[float, float]:
        return (self.vx, self.vy)


@dataclass(frozen=True)
class Edge:
    """A binding → subject or binding → roleRef relation."""

    source: str
    target: str


@dataclass
class Graph:
    """Nodes keyed by id plus an ordered edge list.

    Edges are not deduplicated: two bindings granting the same role produce
    two edges into the shared roleRef node.
    """

    nodes: dict[str, Node] = field(default_factory=dict)
    edges: list[Edge] = field(default_factory=list)

    def add_node(self, node: Node) -> Node:
        """Insert ``node`` unless its id is taken; return the stored node."""
        return self.nodes.setdefault(node.id, node)

    def add_edge(self, source: str, target: str) -> Edge:
        edge = Edge(source=source, target=target)
        self.edges.append(edge)
        return edge

    def validate(self) -> None:
        """Raise ``InvariantViolation`` on dangling edges or non-finite positions."""
        for index, edge in enumerate(self.edges):
            for endpoint in (edge.source, edge.target):
                if endpoint not in self.nodes:
                    raise InvariantViolation(
                        f"edge {index} ({edge.source} -> {edge.target}) references missing node {endpoint!r}"
                    )
        for node in self.nodes.values():
            if node.placed and not (math.isfinite(node.x) and math.isfinite(node.y)):
                raise InvariantViolation(f"node {node.id!r} has non-finite position ({node.x}, {node.y})")
            if node.fixed is not None and not all(math.isfinite(v) for v in node.fixed):
                raise InvariantViolation(f"node {node.id!r} has non-finite fixed position {node.fixed}")

    def to_networkx(self) -> nx.MultiDiGraph:
        """Build a MultiDiGraph view; edge keys are indices into ``self.edges``."""
        g: nx.MultiDiGraph = nx.MultiDiGraph()
        for node_id, node in self.nodes.items():
            g.add_node(node_id, data=node)
        for index, edge in enumerate(self.edges):
            g.add_edge(edge.source, edge.target, key=index, data=edge)
        return g

    def degrees(self) -> dict[str, int]:
        """Undirected degree of every node, counting parallel edges."""
        return dict(self.to_networkx().degree())

    def binding_ids(self) -> list[str]:
        """Ids of RoleBinding/ClusterRoleBinding nodes, the selectable entries."""
        return [node.id for node in self.nodes.values() if node.kind in BINDING_KINDS]

    def edge_pairs(self) -> list[tuple[str, str]]:
        return [(edge.source, edge.target) for edge in self.edges]

    def to_node_link(self) -> dict[str, list[dict[str, Any]]]:
        """Serialise to the ``{"nodes": [...], "links": [...]}`` shape renderers consume."""
        nodes: list[dict[str, Any]] = []
        for node in self.nodes.values():
            item: dict[str, Any] = {"id": node.id, "kind": node.kind, "label": node.label}
            if node.placed:
                item["x"] = node.x
                item["y"] = node.y
            nodes.append(item)
        links = [{"source": edge.source, "target": edge.target} for edge in self.edges]
        return {"nodes": nodes, "links": links}


# ─── Builder ──────────────────────────────────────────────────────────────────


@dataclass
class _BindingPlan:
    """The validated parts of one record, before ids are assigned."""

    binding: NodeKey
    kind: str
    subjects: list[NodeKey]
    role_ref: NodeKey | None


def _is_text(value: object) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _ref_problem(ref: Subject | RoleRef | None) -> str | None:
    """Return why a subject/roleRef is unusable, or ``None`` if it is fine."""
    if ref is None:
        return "missing"
    if not _is_text(ref.kind):
        return "missing kind"
    if ID_SEPARATOR in ref.kind:
        return f"kind {ref.kind!r} contains {ID_SEPARATOR!r}"
    if not _is_text(ref.name):
        return "missing name"
    if not _is_text(ref.api_group):
        return "missing apiGroup"
    return None


class GraphBuilder:
    """Turns binding records into a ``Graph``.

    Malformed bindings, subjects and role references are skipped. Each one
    produces a ``MalformedRecord`` that is appended to ``diagnostics``, handed
    to ``on_diagnostic`` and logged.
    """

    def __init__(self, on_diagnostic: Callable[[MalformedRecord], None] | None = None) -> None:
        self.on_diagnostic = on_diagnostic
        self.diagnostics: list[MalformedRecord] = []

    def build(self, records: Iterable[BindingRecord]) -> Graph:
        self.diagnostics = []

        plans: list[_BindingPlan] = []
        for record in records:
            plan = self._plan(record)
            if plan is not None:
                plans.append(plan)

        ids = _assign_ids(plans)

        graph = Graph()
        for plan in plans:
            binding_id = ids[plan.binding]
            graph.add_node(Node(id=binding_id, label=plan.binding.label, kind=plan.kind, role=NodeRole.Binding))
            for key in plan.subjects:
                graph.add_node(Node(id=ids[key], label=key.label, role=NodeRole.Subject))
                graph.add_edge(binding_id, ids[key])
            if plan.role_ref is not None:
                key = plan.role_ref
                graph.add_node(Node(id=ids[key], label=key.label, role=NodeRole.RoleRef))
                graph.add_edge(binding_id, ids[key])

        graph.validate()
        logger.debug(
            "built graph: %d nodes, %d edges, %d diagnostics",
            len(graph.nodes),
            len(graph.edges),
            len(self.diagnostics),
        )
        return graph

    def _plan(self, record: BindingRecord) -> _BindingPlan | None:
        if not _is_text(record.name):
            self._report(record, RecordElement.Binding, "missing name")
            return None
        if not _is_text(record.kind):
            self._report(record, RecordElement.Binding, "missing kind")
            return None
        if ID_SEPARATOR in record.kind:
            self._report(record, RecordElement.Binding, f"kind {record.kind!r} contains {ID_SEPARATOR!r}")
            return None
        if not record.subjects:
            self._report(record, RecordElement.Binding, "no subjects")
            return None

        subjects: list[NodeKey] = []
        for subject in record.subjects:
            problem = _ref_problem(subject)
            if problem is not None:
                self._report(record, RecordElement.Subject, problem)
                continue
            subjects.append(NodeKey(NodeRole.Subject, subject.kind, subject.name))

        role_ref: NodeKey | None = None
        problem = _ref_problem(record.role_ref)
        if problem is not None:
            self._report(record, RecordElement.RoleRef, problem)
        else:
            role_ref = NodeKey(NodeRole.RoleRef, record.role_ref.kind, record.role_ref.name)

        return _BindingPlan(
            binding=NodeKey(NodeRole.Binding, "", record.name),
            kind=record.kind,
            subjects=subjects,
            role_ref=role_ref,
        )

    def _report(self, record: BindingRecord, element: RecordElement, reason: str) -> None:
        diagnostic = MalformedRecord(record=record, element=element, reason=reason)
        self.diagnostics.append(diagnostic)
        logger.warning("%s", diagnostic)
        if self.on_diagnostic is not None:
            self.on_diagnostic(diagnostic)


def _assign_ids(plans: list[_BindingPlan]) -> dict[NodeKey, str]:
    """Map every key to its string id, qualifying non-binding ids on collision."""
    claims: dict[str, set[NodeKey]] = defaultdict(set)
    for plan in plans:
        claims[plan.binding.plain_id].add(plan.binding)
        for key in plan.subjects:
            claims[key.plain_id].add(key)
        if plan.role_ref is not None:
            claims[plan.role_ref.plain_id].add(plan.role_ref)

    ids: dict[NodeKey, str] = {}
    for plain_id, keys in claims.items():
        contested = len(keys) > 1
        if contested:
            logger.warning("node id %r is claimed by %d distinct entities; qualifying", plain_id, len(keys))
        for key in keys:
            ids[key] = key.qualified_id if contested and key.role is not NodeRole.Binding else plain_id
    return ids


def build_graph(
    records: Iterable[BindingRecord],
    on_diagnostic: Callable[[MalformedRecord], None] | None = None,
) -> Graph:
    """Build a graph in one call; see ``GraphBuilder``."""
    return GraphBuilder(on_diagnostic=on_diagnostic).build(records)
