"""Topology graph: merges wired nodes and allocates tableau unknowns.

Unknown vector layout:
    x[0 : n_nodes]                 voltages of merged non-ground nodes 1..n_nodes
    x[n_nodes : n_nodes+n_branch]  branch currents, in component order

Merged node 0 is ground and has no unknown.
"""

from __future__ import annotations
from collections import defaultdict, deque
from typing import NamedTuple

from .errors import StructuralError
from .network import Network


class UnionFind:
    """Disjoint sets over placed node indices; the smallest index is the root."""

    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        root = i
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[i] != root:
            self.parent[i], i = root, self.parent[i]
        return root

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        # Keep ground (index 0) as the root of its set
        if ra < rb:
            self.parent[rb] = ra
        else:
            self.parent[ra] = rb


class Topology(NamedTuple):
    """Index assignment for one compiled network."""
    n_nodes: int  # merged non-ground nodes
    n_branches: int
    node_map: tuple[int, ...]  # placed node index -> merged node index
    node_names: tuple[tuple[str, ...], ...]  # merged node index -> placed names
    terminals: tuple[tuple[int, ...], ...]  # per component, merged node indices
    branch_index: tuple[int, ...]  # per component, x index of first branch (-1 if none)

    @property
    def n_total(self) -> int:
        return self.n_nodes + self.n_branches

    def label(self, unknown: int, network: Network) -> str:
        """Human-readable name of an unknown, e.g. 'V(out)' or 'I(V1)'."""
        if unknown < self.n_nodes:
            return f"V({'='.join(self.node_names[unknown + 1])})"
        for spec, first in zip(network.components, self.branch_index):
            if first >= 0 and first <= unknown < first + spec.branches:
                return f"I({spec.name})"
        return f"x[{unknown}]"


def build_topology(net: Network) -> Topology:
    """
    Merge wire-connected nodes and assign unknown indices.

    Raises StructuralError if the network is ill-posed (see validate_topology).
    """
    uf = UnionFind(len(net.nodes))
    for spec in net.components:
        if spec.kind == "Wire":
            uf.union(spec.nodes[0], spec.nodes[1])

    merged_of_root = {0: 0}
    node_map = []
    names = defaultdict(list)
    for node in net.nodes:
        root = uf.find(node.index)
        if root not in merged_of_root:
            merged_of_root[root] = len(merged_of_root)
        merged = merged_of_root[root]
        node_map.append(merged)
        names[merged].append(node.name)

    n_nodes = len(merged_of_root) - 1

    terminals = []
    branch_index = []
    next_branch = n_nodes
    for spec in net.components:
        terminals.append(tuple(node_map[i] for i in spec.nodes))
        if spec.branches > 0:
            branch_index.append(next_branch)
            next_branch += spec.branches
        else:
            branch_index.append(-1)

    topo = Topology(
        n_nodes=n_nodes,
        n_branches=next_branch - n_nodes,
        node_map=tuple(node_map),
        node_names=tuple(tuple(names[m]) for m in range(n_nodes + 1)),
        terminals=tuple(terminals),
        branch_index=tuple(branch_index),
    )
    validate_topology(net, topo)
    return topo


def validate_topology(net: Network, topo: Topology) -> None:
    """
    Fail fast on structural defects before any solve is attempted.

    - every non-ground node must be touched by at least two device terminals
      (one terminal means a dangling connection, none means an unused node)
    - every non-ground node must have a path to ground through devices
    """
    touches = [0] * (topo.n_nodes + 1)
    adjacency = defaultdict(set)
    for spec, terms in zip(net.components, topo.terminals):
        if spec.kind == "Wire":
            continue
        for t in terms:
            touches[t] += 1
        first = terms[0]
        for t in terms[1:]:
            adjacency[first].add(t)
            adjacency[t].add(first)

    def names(merged: int) -> str:
        return "=".join(topo.node_names[merged])

    for merged in range(1, topo.n_nodes + 1):
        if touches[merged] == 0:
            raise StructuralError(
                f"Node {names(merged)} is not connected to any device",
                nodes=topo.node_names[merged],
            )
        if touches[merged] == 1:
            owner = next(
                spec.name
                for spec, terms in zip(net.components, topo.terminals)
                if spec.kind != "Wire" and merged in terms
            )
            raise StructuralError(
                f"Dangling terminal: node {names(merged)} only connects to {owner}",
                nodes=topo.node_names[merged],
                components=(owner,),
            )

    reached = {0}
    queue = deque([0])
    while queue:
        cur = queue.popleft()
        for nxt in adjacency[cur]:
            if nxt not in reached:
                reached.add(nxt)
                queue.append(nxt)

    floating = [m for m in range(1, topo.n_nodes + 1) if m not in reached]
    if floating:
        flat = tuple(name for m in floating for name in topo.node_names[m])
        raise StructuralError(
            f"Floating node(s) with no path to ground: {', '.join(names(m) for m in floating)}",
            nodes=flat,
        )
