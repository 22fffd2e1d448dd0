"""Tests for layout/engine.py and layout/forces.py — the force simulation.

Covers:
  - convergence within the step bound for pathological graphs
    (empty, single node, disconnected, complete, hub-and-spoke, coincident)
  - no NaN/∞ positions while stepping
  - settle/reheat events and the alpha state machine
  - link springs and repulsion acting in the right direction
  - working-graph swaps preserving positions of surviving nodes
"""

from __future__ import annotations

import itertools
import math

import pytest

from rbac_graph.config import MAX_SETTLE_STEPS, LayoutConfig
from rbac_graph.errors import InvalidCoordinate, UnknownNodeError
from rbac_graph.graph import Graph, Node, build_graph
from rbac_graph.layout.engine import LayoutEngine, LayoutEvent
from rbac_graph.layout.forces import prepare_links
from rbac_graph.records import BindingRecord, RoleRef, Subject
from rbac_graph.subgraph import filter_subgraph

RBAC = "rbac.authorization.k8s.io"

# ─── Helpers ──────────────────────────────────────────────────────────────────


def make_graph(*edges: tuple[str, str], nodes: tuple[str, ...] = ()) -> Graph:
    """Build a Graph from (src, tgt) pairs plus optional isolated nodes."""
    graph = Graph()
    for node_id in nodes:
        graph.add_node(Node(id=node_id, label=node_id))
    for src, tgt in edges:
        graph.add_node(Node(id=src, label=src))
        graph.add_node(Node(id=tgt, label=tgt))
        graph.add_edge(src, tgt)
    return graph


def complete_graph(n: int) -> Graph:
    names = [f"k{i}" for i in range(n)]
    return make_graph(*itertools.combinations(names, 2))


def binding_graph() -> Graph:
    """Three bindings sharing subjects and roles."""
    records = [
        BindingRecord(
            id=i,
            name=f"b{i}",
            kind="RoleBinding",
            subjects=tuple(Subject(kind="User", api_group=RBAC, name=u) for u in users),
            role_ref=RoleRef(kind="ClusterRole", api_group=RBAC, name=role),
        )
        for i, (users, role) in enumerate(
            [(("alice", "bob"), "edit"), (("alice",), "view"), (("carol", "bob"), "edit")]
        )
    ]
    return build_graph(records)


def make_engine(graph: Graph | None = None, **overrides) -> LayoutEngine:
    """Engine with a fixed seed so placement is reproducible."""
    overrides.setdefault("seed", 42)
    return LayoutEngine(graph, LayoutConfig(**overrides))


def all_finite(engine: LayoutEngine) -> bool:
    return all(math.isfinite(x) and math.isfinite(y) for x, y in engine.positions().values())


def distance(a: Node, b: Node) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


# ─── Convergence ──────────────────────────────────────────────────────────────


class TestConvergence:
    @pytest.mark.parametrize(
        "graph_factory",
        [
            lambda: Graph(),
            lambda: make_graph(nodes=("solo",)),
            lambda: make_graph(nodes=tuple(f"n{i}" for i in range(12))),
            lambda: complete_graph(8),
            lambda: make_graph(*[("hub", f"leaf{i}") for i in range(30)]),
            binding_graph,
        ],
        ids=["empty", "single", "disconnected", "complete", "hub", "bindings"],
    )
    def test_settles_within_bound(self, graph_factory):
        """Every graph cools to alpha <= alpha_min within the step bound, positions finite throughout."""
        engine = make_engine(graph_factory())
        steps = 0
        while engine.step():
            steps += 1
            assert all_finite(engine)
            assert steps <= MAX_SETTLE_STEPS
        assert engine.settled
        assert engine.alpha <= engine.state.alpha_min
        assert all_finite(engine)

    def test_run_reports_steps(self):
        """Default cooling takes roughly 300 steps."""
        engine = make_engine(binding_graph())
        taken = engine.run()
        assert engine.settled
        assert 250 <= taken <= 350

    def test_run_respects_max_steps(self):
        engine = make_engine(binding_graph())
        assert engine.run(max_steps=10) == 10
        assert not engine.settled

    def test_coincident_start(self):
        """All nodes stacked on one point still spread out without NaN."""
        engine = make_engine(complete_graph(6))
        for node in engine.graph.nodes.values():
            node.x, node.y = 400.0, 300.0
        engine.run()
        assert all_finite(engine)
        positions = set(engine.positions().values())
        assert len(positions) == 6

    def test_initial_placement_near_center(self):
        engine = make_engine(binding_graph(), initial_radius=30.0)
        cx, cy = engine.config.center
        for x, y in engine.positions().values():
            assert math.hypot(x - cx, y - cy) <= 30.0 + 1e-9


# ─── Forces ───────────────────────────────────────────────────────────────────


class TestForces:
    def test_link_pulls_toward_rest_length(self):
        """Two linked nodes far apart end up near the 100-unit link distance."""
        engine = make_engine(make_graph(("a", "b")))
        a, b = engine.graph.nodes["a"], engine.graph.nodes["b"]
        a.x, a.y = 100.0, 300.0
        b.x, b.y = 500.0, 300.0
        engine.run()
        assert 90.0 < distance(a, b) < 115.0

    def test_repulsion_pushes_apart(self):
        """Two unlinked nodes drift apart."""
        engine = make_engine(make_graph(nodes=("a", "b")))
        a, b = engine.graph.nodes["a"], engine.graph.nodes["b"]
        a.x, a.y = 395.0, 300.0
        b.x, b.y = 405.0, 300.0
        engine.run()
        assert distance(a, b) > 10.0

    def test_centering(self):
        """The free nodes' centroid is pulled to the canvas center."""
        engine = make_engine(make_graph(("a", "b")))
        for node in engine.graph.nodes.values():
            node.x += 200.0
        engine.run()
        xs = [n.x for n in engine.graph.nodes.values()]
        ys = [n.y for n in engine.graph.nodes.values()]
        assert sum(xs) / 2 == pytest.approx(400.0, abs=1.0)
        assert sum(ys) / 2 == pytest.approx(300.0, abs=1.0)

    def test_link_strength_uses_smaller_degree(self):
        """Hub edges get strength 1 / min(degree) and lean their correction onto the leaf."""
        graph = make_graph(("hub", "l1"), ("hub", "l2"), ("hub", "l3"))
        links = prepare_links(graph)
        assert [link.strength for link in links] == [1.0, 1.0, 1.0]
        assert links[0].bias == pytest.approx(3 / 4)

    def test_fixed_node_does_not_move(self):
        engine = make_engine(make_graph(("a", "b"), ("a", "c")))
        engine.fix("a", 10.0, 20.0)
        for _ in range(50):
            engine.step()
            assert engine.graph.nodes["a"].position == (10.0, 20.0)


# ─── State Machine ────────────────────────────────────────────────────────────


class TestStateMachine:
    def test_settle_fires_once(self):
        engine = make_engine(binding_graph())
        settles: list[int] = []
        engine.subscribe(LayoutEvent.Settle, lambda: settles.append(engine.iterations))
        engine.run()
        for _ in range(10):
            assert engine.step() is False
        assert len(settles) == 1

    def test_settled_step_is_noop(self):
        engine = make_engine(binding_graph())
        engine.run()
        before = engine.positions()
        iterations = engine.iterations
        engine.step()
        assert engine.positions() == before
        assert engine.iterations == iterations

    def test_reheat_restarts(self):
        """Reheat raises alpha to reheat_alpha, fires REHEAT, and the next settle fires again."""
        engine = make_engine(binding_graph())
        reheats: list[float] = []
        settles: list[float] = []
        engine.subscribe(LayoutEvent.Reheat, lambda: reheats.append(engine.alpha))
        engine.subscribe(LayoutEvent.Settle, lambda: settles.append(engine.alpha))
        engine.run()
        engine.reheat()
        assert not engine.settled
        assert engine.alpha == pytest.approx(0.3)
        assert reheats == [pytest.approx(0.3)]
        assert engine.step() is True
        engine.run()
        assert len(settles) == 2

    def test_reheat_never_lowers_alpha(self):
        engine = make_engine(binding_graph())
        engine.reheat()
        assert engine.alpha == pytest.approx(1.0)

    def test_alpha_target_holds_simulation(self):
        """With alpha_target above alpha_min the layout never settles."""
        engine = make_engine(binding_graph())
        engine.set_alpha_target(0.3)
        assert engine.run() == MAX_SETTLE_STEPS
        assert not engine.settled
        engine.set_alpha_target(0.0)
        engine.run()
        assert engine.settled

    def test_frame(self):
        engine = make_engine(make_graph(("a", "b")))
        frame = engine.frame()
        assert frame.alpha == engine.alpha
        assert frame.settled is False
        assert set(frame.positions) == {"a", "b"}
        assert frame.edges == [("a", "b")]


# ─── Graph Swaps ──────────────────────────────────────────────────────────────


class TestSetGraph:
    def test_surviving_nodes_keep_position(self):
        full = binding_graph()
        engine = make_engine(full)
        engine.run(max_steps=40)
        before = engine.positions()
        velocities = {n.id: n.velocity for n in full.nodes.values()}

        engine.set_graph(filter_subgraph(full, {"b0"}))
        for node_id, node in engine.graph.nodes.items():
            assert (node.x, node.y) == before[node_id]
            assert node.velocity == velocities[node_id]

    def test_rebuilt_snapshot_keeps_position(self):
        """A graph rebuilt from the same records (new Node objects) inherits positions by id."""
        engine = make_engine(binding_graph())
        engine.run(max_steps=40)
        before = engine.positions()
        engine.set_graph(binding_graph())
        assert engine.positions() == before

    def test_new_nodes_are_placed(self):
        engine = make_engine(make_graph(("a", "b")))
        engine.run()
        engine.set_graph(make_graph(("a", "b"), ("b", "c")))
        c = engine.graph.nodes["c"]
        cx, cy = engine.config.center
        assert c.placed
        assert c.velocity == (0.0, 0.0)
        assert math.hypot(c.x - cx, c.y - cy) <= engine.config.initial_radius + 1e-9

    def test_set_graph_reheats(self):
        engine = make_engine(make_graph(("a", "b")))
        engine.run()
        reheats: list[bool] = []
        engine.subscribe(LayoutEvent.Reheat, lambda: reheats.append(True))
        engine.set_graph(make_graph(("a", "b"), ("b", "c")))
        assert reheats == [True]
        assert not engine.settled

    def test_reappearing_node_gets_fresh_position(self):
        """A node that left the working graph is re-placed near the center when it returns."""
        full = make_graph(("a", "b"), ("c", "d"))
        engine = make_engine(full)
        far = full.nodes["d"]
        engine.set_graph(filter_subgraph(full, {"a"}))
        far.x, far.y = 5000.0, 5000.0
        engine.set_graph(full)
        cx, cy = engine.config.center
        assert math.hypot(far.x - cx, far.y - cy) <= engine.config.initial_radius + 1e-9


# ─── Argument Checks ──────────────────────────────────────────────────────────


class TestArguments:
    def test_fix_rejects_nan(self):
        engine = make_engine(make_graph(("a", "b")))
        with pytest.raises(InvalidCoordinate):
            engine.fix("a", float("nan"), 0.0)

    def test_fix_rejects_unknown(self):
        engine = make_engine(make_graph(("a", "b")))
        with pytest.raises(UnknownNodeError):
            engine.fix("zz", 0.0, 0.0)

    def test_step_with_huge_coincident_pins(self):
        """Two nodes pinned on the same far-away point do not stall the step."""
        engine = make_engine(make_graph(("a", "c"), nodes=("b",)))
        engine.fix("a", 1e16, 1e16)
        engine.fix("b", 1e16, 1e16)
        assert engine.step() is True
        assert engine.graph.nodes["b"].position == (1e16, 1e16)
        assert all_finite(engine)

    def test_config_validation(self):
        with pytest.raises(ValueError):
            LayoutConfig(theta=1.5)
        with pytest.raises(ValueError):
            LayoutConfig(velocity_decay=1.0)
        with pytest.raises(ValueError):
            LayoutConfig(reheat_alpha=0.0)
