"""Front-end boundary: an index-addressed diagram in, per-index results out.

A diagram is a plain mapping, in the externally tagged shape a schematic
editor serializes:

    {
        "num_nodes": 3,
        "ground": 2,                      # optional, defaults to the last node
        "two_terminal": [
            [[2, 0], {"Battery": 5.0}],   # end terminal is the positive side
            [[0, 1], {"Resistor": 1e3}],
            [[1, 2], {"Capacitor": 1e-6}],
        ],
        "three_terminal": [
            [[e, b, c], {"NTransistor": 100.0}],   # emitter, base, collector; beta
        ],
    }

Two-terminal kinds: Wire, Resistor, Capacitor, Inductor, Diode, Battery,
Switch (the flag means *open*) and CurrentSource. An Inductor value is
either a number or [henrys, core_id]; inductors sharing a core_id are
ideally coupled, dotted at their first listed terminal. Currents reported for
two-terminal entries flow from the first listed terminal to the second.
"""

from __future__ import annotations
from typing import Any, Mapping, NamedTuple, Sequence

from . import components
from .errors import StructuralError
from .network import ComponentRef, Network, Node
from .simulator import SimFns, SimState


class SimOutputs(NamedTuple):
    """Results keyed by the diagram's own indices."""
    voltages: tuple[float, ...]  # one per diagram node
    two_terminal_current: tuple[float, ...]  # NaN for wires
    three_terminal_current: tuple[tuple[float, float, float], ...]  # into (emitter, base, collector)


class DiagramNetwork(NamedTuple):
    network: Network
    nodes: tuple[Node, ...]  # diagram node index -> Node
    two_terminal: tuple[ComponentRef, ...]
    three_terminal: tuple[ComponentRef, ...]


def _tagged(entry: Any) -> tuple[str, Any]:
    if isinstance(entry, str):
        return entry, None
    if isinstance(entry, Mapping) and len(entry) == 1:
        ((tag, value),) = entry.items()
        return tag, value
    raise ValueError(f"Cannot read component {entry!r}: expected a tag or a one-key mapping")


def _ground_index(diagram: Mapping, num_nodes: int) -> int:
    ground = diagram.get("ground", num_nodes - 1)
    if isinstance(ground, Sequence) and not isinstance(ground, str):
        distinct = sorted(set(ground))
        if len(distinct) != 1:
            raise StructuralError(
                f"Duplicate ground designation: nodes {distinct}",
                nodes=tuple(f"n{g}" for g in distinct),
            )
        ground = distinct[0]
    if not 0 <= ground < num_nodes:
        raise StructuralError(f"Ground node {ground} is outside 0..{num_nodes - 1}")
    return int(ground)


def _add_two_terminal(net: Network, tag: str, value: Any, a: Node, b: Node, name: str):
    if tag == "Wire":
        return components.Wire(net, a, b, name=name)
    if tag == "Resistor":
        return components.R(net, a, b, name=name, value=value)
    if tag == "Capacitor":
        return components.C(net, a, b, name=name, value=value)
    if tag == "Inductor":
        core = None
        if isinstance(value, Sequence):
            value, core = value
        return components.L(net, a, b, name=name, value=value, core=core)
    if tag == "Diode":
        return components.Diode(net, a, b, name=name)
    if tag == "Battery":
        return components.VSource(net, b, a, name=name, value=value)
    if tag == "Switch":
        return components.Switch(net, a, b, name=name, closed=not value)
    if tag == "CurrentSource":
        return components.ISource(net, a, b, name=name, value=value)
    raise ValueError(f"{name}: unknown two-terminal component {tag!r}")


def network_from_diagram(diagram: Mapping) -> DiagramNetwork:
    """
    Build a Network from an index-addressed diagram.

    Diagram node i becomes node "n<i>" (the ground index becomes gnd);
    component k of each list is named "<Tag><k>".

    Raises:
        StructuralError: duplicate ground, node index out of range
        InvalidParameterError: from the component factories
        ValueError: unknown component tag or malformed entry
    """
    num_nodes = int(diagram["num_nodes"])
    ground = _ground_index(diagram, num_nodes)

    net = Network()
    nodes = []
    for idx in range(num_nodes):
        if idx == ground:
            nodes.append(net.gnd)
        else:
            net, node = net.node(f"n{idx}")
            nodes.append(node)

    def lookup(indices: Sequence[int], count: int, name: str) -> list[Node]:
        if len(indices) != count:
            raise StructuralError(f"{name}: expected {count} terminals, got {len(indices)}", components=(name,))
        for i in indices:
            if not 0 <= i < num_nodes:
                raise StructuralError(f"{name}: node {i} is outside 0..{num_nodes - 1}", components=(name,))
        return [nodes[i] for i in indices]

    two_refs = []
    for k, (indices, entry) in enumerate(diagram.get("two_terminal", ())):
        tag, value = _tagged(entry)
        name = f"{tag}{k}"
        a, b = lookup(indices, 2, name)
        net, ref = _add_two_terminal(net, tag, value, a, b, name)
        two_refs.append(ref)

    three_refs = []
    for k, (indices, entry) in enumerate(diagram.get("three_terminal", ())):
        tag, beta = _tagged(entry)
        name = f"{tag}{k}"
        emitter, base, collector = lookup(indices, 3, name)
        if tag == "NTransistor":
            net, ref = components.NPN(net, collector, base, emitter, name=name, beta=beta)
        elif tag == "PTransistor":
            net, ref = components.PNP(net, collector, base, emitter, name=name, beta=beta)
        else:
            raise ValueError(f"{name}: unknown three-terminal component {tag!r}")
        three_refs.append(ref)

    return DiagramNetwork(net, tuple(nodes), tuple(two_refs), tuple(three_refs))


def outputs(sim: SimFns, state: SimState, mapped: DiagramNetwork) -> SimOutputs:
    """Read a state back in diagram order."""
    voltages = tuple(float(sim.v(state, node)) for node in mapped.nodes)

    two_terminal = []
    for ref in mapped.two_terminal:
        if ref.kind == "Wire":
            two_terminal.append(float("nan"))
            continue
        current = float(sim.i(state, ref))
        # Batteries are stored as sources with their terminals swapped
        two_terminal.append(-current if ref.kind == "VSource" else current)

    three_terminal = []
    for ref in mapped.three_terminal:
        ic, ib, ie = sim.terminal_currents(state, ref)
        three_terminal.append((ie, ib, ic))

    return SimOutputs(voltages, tuple(two_terminal), tuple(three_terminal))
