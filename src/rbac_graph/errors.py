"""Exceptions and diagnostics.

Malformed input never raises: it is reported as a ``MalformedRecord``
diagnostic and the offending element is skipped. Exceptions are reserved for
programming errors (``InvariantViolation``) and for bad arguments handed to
the interaction layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rbac_graph.records import BindingRecord


class RbacGraphError(Exception):
    """Base class for errors raised by this package."""


class InvariantViolation(RbacGraphError):
    """Internal state broke a graph or layout invariant (a bug, not bad input)."""


class InvalidCoordinate(RbacGraphError, ValueError):
    """A NaN or infinite coordinate was supplied."""


class UnknownNodeError(RbacGraphError, KeyError):
    """An operation referenced a node id that is not in the working graph."""

    def __init__(self, node_id: str) -> None:
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self) -> str:
        return f"unknown node id: {self.node_id!r}"


class RecordElement(Enum):
    """Which part of a binding record a diagnostic is about."""

    Binding = "binding"
    Subject = "subject"
    RoleRef = "roleRef"


@dataclass(frozen=True)
class MalformedRecord:
    """Diagnostic for a binding, subject or role reference that was skipped."""

    record: BindingRecord
    element: RecordElement
    reason: str

    def __str__(self) -> str:
        name = self.record.name or f"#{self.record.id}"
        return f"malformed {self.element.value} in binding {name!r}: {self.reason}"
