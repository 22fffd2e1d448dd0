"""Selection filter: one-hop neighbourhood of the selected nodes."""

from __future__ import annotations

from collections.abc import Iterable

from rbac_graph.graph import Graph


def filter_subgraph(graph: Graph, selected: Iterable[str]) -> Graph:
    """Return the union of the one-hop neighbourhoods of ``selected``.

    Each selected id that exists in ``graph`` contributes itself, every edge
    touching it and both endpoints of those edges. Ids absent from ``graph``
    are ignored. An empty selection returns ``graph`` itself.

    Result nodes are the same ``Node`` objects as in ``graph``, so layout
    state carries over between the full graph and the subgraph. Node and edge
    order follow ``graph``.
    """
    wanted = set(selected)
    if not wanted:
        return graph

    graph.validate()
    g = graph.to_networkx()
    present = [node_id for node_id in wanted if node_id in g]

    keep_nodes: set[str] = set(present)
    keep_edges: set[int] = set()
    for node_id in present:
        incident = list(g.out_edges(node_id, keys=True)) + list(g.in_edges(node_id, keys=True))
        for src, tgt, index in incident:
            keep_edges.add(index)
            keep_nodes.add(src)
            keep_nodes.add(tgt)

    return Graph(
        nodes={node_id: node for node_id, node in graph.nodes.items() if node_id in keep_nodes},
        edges=[edge for index, edge in enumerate(graph.edges) if index in keep_edges],
    )
