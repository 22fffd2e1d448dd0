"""Binding records: the input handed over by the ingestion layer.

Records are plain values. They are not validated on construction; the graph
builder checks them and reports problems as diagnostics so that one broken
binding never aborts a whole snapshot.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

CLUSTER_ROLE_BINDING_KIND = "ClusterRoleBinding"
ROLE_BINDING_KIND = "RoleBinding"
BINDING_KINDS = (CLUSTER_ROLE_BINDING_KIND, ROLE_BINDING_KIND)


@dataclass(frozen=True)
class Subject:
    """An entity (user, group, service account) granted a role."""

    kind: str | None
    api_group: str | None
    name: str | None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Subject:
        return cls(
            kind=payload.get("kind"),
            api_group=payload.get("apiGroup"),
            name=payload.get("name"),
        )


@dataclass(frozen=True)
class RoleRef:
    """The role a binding grants."""

    kind: str | None
    api_group: str | None
    name: str | None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> RoleRef:
        return cls(
            kind=payload.get("kind"),
            api_group=payload.get("apiGroup"),
            name=payload.get("name"),
        )


@dataclass(frozen=True)
class BindingRecord:
    """A RoleBinding or ClusterRoleBinding as served by ``/api/data``."""

    id: int
    name: str | None
    kind: str | None
    subjects: Sequence[Subject] | None = field(default_factory=tuple)
    role_ref: RoleRef | None = None
    raw: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> BindingRecord:
        """Decode one element of the ``/api/data`` JSON array.

        Missing keys become ``None`` rather than errors. ``details`` is
        accepted as an alias of ``raw``. A ``subjects`` value that is not a
        list counts as missing; a subject entry that is not an object becomes
        an empty ``Subject`` so the builder reports it instead of losing it.
        """
        subjects_payload = payload.get("subjects")
        subjects: tuple[Subject, ...] | None = None
        if isinstance(subjects_payload, list):
            subjects = tuple(
                Subject.from_dict(s) if isinstance(s, Mapping) else Subject(kind=None, api_group=None, name=None)
                for s in subjects_payload
            )

        role_ref_payload = payload.get("roleRef")
        role_ref = RoleRef.from_dict(role_ref_payload) if isinstance(role_ref_payload, Mapping) else None

        return cls(
            id=payload.get("id", 0),
            name=payload.get("name"),
            kind=payload.get("kind"),
            subjects=subjects,
            role_ref=role_ref,
            raw=payload.get("raw", payload.get("details")),
        )


def records_from_payload(payload: Sequence[Mapping[str, Any]] | None) -> list[BindingRecord]:
    """Decode a full ``/api/data`` snapshot. ``None`` (an empty response) yields ``[]``."""
    if payload is None:
        return []
    return [BindingRecord.from_dict(item) for item in payload]
