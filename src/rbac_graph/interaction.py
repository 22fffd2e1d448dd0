"""Interaction controller: pin/drag/release and selection changes.

Translates UI events into ``LayoutEngine`` calls without throwing away layout
progress. While any node is pinned the engine's ``alpha_target`` is held at
``reheat_alpha`` so the rest of the graph keeps responding to the drag; once
the last pin is released it falls back to the configured target and the
layout cools down again.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from rbac_graph.graph import Graph
from rbac_graph.layout.engine import LayoutEngine
from rbac_graph.subgraph import filter_subgraph

logger = logging.getLogger(__name__)


class InteractionController:
    def __init__(self, engine: LayoutEngine, graph: Graph) -> None:
        self.engine = engine
        self.full_graph = graph
        self.selection: frozenset[str] = frozenset()
        self._pinned: set[str] = set()
        engine.set_graph(graph)

    @property
    def pinned(self) -> frozenset[str]:
        return frozenset(self._pinned)

    # ─── Pointer events ───────────────────────────────────────────────────────

    def pin(self, node_id: str, x: float, y: float) -> None:
        """Start holding ``node_id`` at ``(x, y)`` and re-energise the layout."""
        self.engine.fix(node_id, x, y)
        self._pinned.add(node_id)
        self._sync_alpha_target()
        logger.debug("pin %s at (%s, %s)", node_id, x, y)
        self.engine.reheat()

    def drag(self, node_id: str, x: float, y: float) -> None:
        """Move a pinned node. A node that was never pinned is pinned first."""
        if node_id not in self._pinned:
            self.pin(node_id, x, y)
            return
        self.engine.fix(node_id, x, y)

    def release(self, node_id: str) -> None:
        """Let a pinned node move freely again. Unpinned nodes are left alone."""
        if node_id not in self._pinned:
            return
        self._pinned.discard(node_id)
        self.engine.unfix(node_id)
        self._sync_alpha_target()
        logger.debug("release %s", node_id)

    # ─── Selection ────────────────────────────────────────────────────────────

    def set_selection(self, ids: Iterable[str]) -> None:
        """Show the one-hop neighbourhood of ``ids``; an empty selection shows everything."""
        self.selection = frozenset(ids)
        working = filter_subgraph(self.full_graph, self.selection)
        self._drop_pins_outside(working)
        self.engine.set_graph(working)
        logger.debug("selection of %d ids -> %d nodes", len(self.selection), len(working.nodes))

    def reset_selection(self) -> None:
        self.set_selection(())

    def refresh(self, graph: Graph) -> None:
        """Replace the full graph with a new snapshot and re-apply the selection."""
        self.full_graph = graph
        self.set_selection(self.selection)

    # ─── Internals ────────────────────────────────────────────────────────────

    def _drop_pins_outside(self, working: Graph) -> None:
        for node_id in list(self._pinned):
            if node_id in working.nodes:
                continue
            self._pinned.discard(node_id)
            self.engine.unfix(node_id)
        self._sync_alpha_target()

    def _sync_alpha_target(self) -> None:
        if self._pinned:
            self.engine.set_alpha_target(self.engine.config.reheat_alpha)
        else:
            self.engine.set_alpha_target(self.engine.config.alpha_target)
