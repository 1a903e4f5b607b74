"""Network and Node classes for circuit topology (immutable/functional style)."""

from __future__ import annotations
from typing import NamedTuple, TYPE_CHECKING

from .errors import StructuralError

if TYPE_CHECKING:
    from .config import SolverConfig
    from .simulator import SimFns


class Node(NamedTuple):
    """A named connection point as placed by the user (0 = ground)."""
    name: str
    index: int


class ComponentRef(NamedTuple):
    """Reference to a component for later probing."""
    name: str
    kind: str  # "R", "C", "L", "VSource", etc.


class ComponentSpec(NamedTuple):
    """Specification for a component: terminals, branch count and fixed parameters."""
    name: str
    kind: str
    nodes: tuple[int, ...]  # placed node indices, one per terminal
    branches: int  # number of branch-current unknowns the device needs
    params: tuple[tuple[str, float], ...] = ()

    def param(self, name: str, default: float | None = None) -> float:
        for key, value in self.params:
            if key == name:
                return value
        if default is None:
            raise KeyError(f"{self.name} has no parameter {name!r}")
        return default


class Network(NamedTuple):
    """
    Immutable circuit network.

    Build using functional style:
        net = Network()
        net, n1 = net.node("n1")
        net, r1 = R(net, n1, net.gnd, name="R1", value=1e3)

    Every edit returns a new Network; compiled simulators hold on to the
    network they were built from, so structural edits only take effect
    after compiling again.
    """
    nodes: tuple[Node, ...] = (Node("gnd", 0),)
    components: tuple[ComponentSpec, ...] = ()

    @property
    def gnd(self) -> Node:
        """Ground node (reference, always 0V)."""
        return self.nodes[0]

    @property
    def num_nodes(self) -> int:
        """Number of placed non-ground nodes (before wire merging)."""
        return len(self.nodes) - 1

    def node(self, name: str) -> tuple[Network, Node]:
        """
        Create a new node, or return the existing node with this name.

        Returns (new_network, node).
        """
        for n in self.nodes:
            if n.name == name:
                return self, n

        new_node = Node(name, len(self.nodes))
        return self._replace(nodes=self.nodes + (new_node,)), new_node

    def component(self, name: str) -> ComponentSpec:
        for spec in self.components:
            if spec.name == name:
                return spec
        raise KeyError(f"No component named {name!r}")

    def add_component(self, spec: ComponentSpec) -> tuple[Network, ComponentRef]:
        """
        Add a component specification.

        Returns (new_network, component_ref).
        """
        if any(c.name == spec.name for c in self.components):
            raise StructuralError(
                f"Duplicate component name {spec.name!r}", components=(spec.name,)
            )
        for idx in spec.nodes:
            if not 0 <= idx < len(self.nodes):
                raise StructuralError(
                    f"{spec.name}: terminal refers to unknown node index {idx}",
                    components=(spec.name,),
                )
        new_net = self._replace(components=self.components + (spec,))
        return new_net, ComponentRef(spec.name, spec.kind)

    def remove(self, name: str) -> Network:
        """Return a network without the named component."""
        self.component(name)
        return self._replace(components=tuple(c for c in self.components if c.name != name))

    def rewire(self, name: str, *nodes: Node) -> Network:
        """Return a network with the named component's terminals moved to ``nodes``."""
        spec = self.component(name)
        if len(nodes) != len(spec.nodes):
            raise StructuralError(
                f"{name} has {len(spec.nodes)} terminals, got {len(nodes)} nodes",
                components=(name,),
            )
        moved = spec._replace(nodes=tuple(n.index for n in nodes))
        return self._replace(
            components=tuple(moved if c.name == name else c for c in self.components)
        )

    def compile(self, dt: float | None = None, config: SolverConfig | None = None) -> SimFns:
        """
        Create simulation functions from this network.

        Args:
            dt: Default transient timestep in seconds (None for DC-only use)
            config: Solver options (defaults to SolverConfig())

        Returns:
            SimFns with init, op, step and probe functions
        """
        from .simulator import compile_network
        return compile_network(self, dt, config)
