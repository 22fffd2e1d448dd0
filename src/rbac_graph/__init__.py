"""rbac_graph — graph construction and force-directed layout for RBAC bindings."""

from rbac_graph.config import LayoutConfig
from rbac_graph.errors import (
    InvalidCoordinate,
    InvariantViolation,
    MalformedRecord,
    RbacGraphError,
    RecordElement,
    UnknownNodeError,
)
from rbac_graph.graph import Edge, Graph, GraphBuilder, Node, NodeKey, NodeRole, build_graph
from rbac_graph.interaction import InteractionController
from rbac_graph.layout import LayoutEngine, LayoutEvent, LayoutFrame, SpatialIndex
from rbac_graph.records import BindingRecord, RoleRef, Subject, records_from_payload
from rbac_graph.subgraph import filter_subgraph

__version__ = "0.1.0"

__all__ = [
    "BindingRecord",
    "Edge",
    "Graph",
    "GraphBuilder",
    "InteractionController",
    "InvalidCoordinate",
    "InvariantViolation",
    "LayoutConfig",
    "LayoutEngine",
    "LayoutEvent",
    "LayoutFrame",
    "MalformedRecord",
    "Node",
    "NodeKey",
    "NodeRole",
    "RbacGraphError",
    "RecordElement",
    "RoleRef",
    "SpatialIndex",
    "Subject",
    "UnknownNodeError",
    "build_graph",
    "filter_subgraph",
    "records_from_payload",
]
