"""Circuit component factory functions (functional style).

Parameters are fixed at construction and validated here; a physically
invalid value raises InvalidParameterError instead of reaching a stamp.
"""

from __future__ import annotations
import math

from . import config
from .errors import InvalidParameterError
from .network import Network, Node, ComponentSpec, ComponentRef


def _positive(name: str, param: str, value: float) -> float:
    if value is None or not math.isfinite(value) or value <= 0:
        raise InvalidParameterError(name, param, value)
    return float(value)


def _finite(name: str, param: str, value: float) -> float:
    if value is None or not math.isfinite(value):
        raise InvalidParameterError(name, param, value)
    return float(value)


def Wire(net: Network, node_a: Node, node_b: Node, *, name: str) -> tuple[Network, ComponentRef]:
    """
    Connect two nodes with an ideal zero-impedance wire.

    Wires carry no stamp: the topology merges both ends into one node.
    """
    spec = ComponentSpec(name=name, kind="Wire", nodes=(node_a.index, node_b.index), branches=0)
    return net.add_component(spec)


def R(net: Network, node_a: Node, node_b: Node, *, name: str, value: float) -> tuple[Network, ComponentRef]:
    """
    Create a resistor.

    Args:
        net: Network to add to
        node_a: First terminal
        node_b: Second terminal
        name: Component name
        value: Resistance in Ohms (> 0)

    Returns:
        (new_network, component_ref)

    Example:
        net, r1 = R(net, n1, n2, name="R1", value=1000.0)  # 1 kΩ
    """
    spec = ComponentSpec(
        name=name,
        kind="R",
        nodes=(node_a.index, node_b.index),
        branches=0,
        params=(("R", _positive(name, "R", value)),),
    )
    return net.add_component(spec)


def C(
    net: Network,
    node_a: Node,
    node_b: Node,
    *,
    name: str,
    value: float,
    ic: float = 0.0,
) -> tuple[Network, ComponentRef]:
    """
    Create a capacitor.

    Args:
        net: Network to add to
        node_a: First terminal (positive for voltage reference)
        node_b: Second terminal
        name: Component name
        value: Capacitance in Farads (> 0)
        ic: Initial voltage V(a) - V(b) applied by SimFns.init

    Returns:
        (new_network, component_ref)
    """
    spec = ComponentSpec(
        name=name,
        kind="C",
        nodes=(node_a.index, node_b.index),
        branches=0,
        params=(("C", _positive(name, "C", value)), ("ic", _finite(name, "ic", ic))),
    )
    return net.add_component(spec)


def L(
    net: Network,
    node_a: Node,
    node_b: Node,
    *,
    name: str,
    value: float,
    ic: float = 0.0,
    core: int | None = None,
    coupling: float = 1.0,
) -> tuple[Network, ComponentRef]:
    """
    Create an inductor.

    Inductors wound on the same core are magnetically coupled; every pair on
    a core shares the mutual inductance M = sqrt(k1 * k2 * L1 * L2), with the
    dotted end at node_a.

    Args:
        net: Network to add to
        node_a: First terminal (dotted end when on a core)
        node_b: Second terminal
        name: Component name
        value: Inductance in Henrys (> 0)
        ic: Initial current from a to b applied by SimFns.init
        core: Core id (non-negative integer), None for a standalone inductor
        coupling: Coupling coefficient k of this winding to the core, in (0, 1]

    Returns:
        (new_network, component_ref)

    Example:
        net, lp = L(net, n1, net.gnd, name="Lp", value=1e-3, core=0)
        net, ls = L(net, n2, net.gnd, name="Ls", value=4e-3, core=0)  # 1:2 transformer
    """
    params = (("L", _positive(name, "L", value)), ("ic", _finite(name, "ic", ic)))
    if core is not None:
        if isinstance(core, bool) or int(core) != core or core < 0:
            raise InvalidParameterError(name, "core", core)
        if not 0.0 < coupling <= 1.0:
            raise InvalidParameterError(name, "coupling", coupling)
        params += (("core", float(core)), ("k", float(coupling)))

    spec = ComponentSpec(
        name=name,
        kind="L",
        nodes=(node_a.index, node_b.index),
        branches=1,  # inductor current
        params=params,
    )
    return net.add_component(spec)


def VSource(
    net: Network,
    node_p: Node,
    node_n: Node,
    *,
    name: str,
    value: float = 0.0,
) -> tuple[Network, ComponentRef]:
    """
    Create an ideal voltage source, V(p) - V(n) = value.

    The value can be overridden per step through the controls dict
    (``controls={name: volts}``).

    Example:
        net, vs = VSource(net, n1, net.gnd, name="vs", value=5.0)
    """
    spec = ComponentSpec(
        name=name,
        kind="VSource",
        nodes=(node_p.index, node_n.index),
        branches=1,  # source current
        params=(("V", _finite(name, "V", value)),),
    )
    return net.add_component(spec)


def ISource(
    net: Network,
    node_a: Node,
    node_b: Node,
    *,
    name: str,
    value: float = 0.0,
) -> tuple[Network, ComponentRef]:
    """
    Create an ideal current source driving ``value`` amperes from a,
    through the source, into b.

    The value can be overridden per step through the controls dict.
    """
    spec = ComponentSpec(
        name=name,
        kind="ISource",
        nodes=(node_a.index, node_b.index),
        branches=0,
        params=(("I", _finite(name, "I", value)),),
    )
    return net.add_component(spec)


def Switch(
    net: Network,
    node_a: Node,
    node_b: Node,
    *,
    name: str,
    closed: bool = False,
) -> tuple[Network, ComponentRef]:
    """
    Create an ideal switch.

    Closed: zero voltage drop. Open: zero current. The state is toggled
    between steps through the controls dict (``controls={name: True}``).
    """
    spec = ComponentSpec(
        name=name,
        kind="Switch",
        nodes=(node_a.index, node_b.index),
        branches=1,  # switch current
        params=(("closed", 1.0 if closed else 0.0),),
    )
    return net.add_component(spec)


def Diode(
    net: Network,
    anode: Node,
    cathode: Node,
    *,
    name: str,
    is_: float = config.DIODE_IS,
    n: float = config.DIODE_N,
    temperature: float = config.DIODE_TEMPERATURE_K,
) -> tuple[Network, ComponentRef]:
    """
    Create a junction diode, I = Is * (exp(V / (n*Vt)) - 1).

    Args:
        anode, cathode: Terminals (forward current flows anode -> cathode)
        is_: Saturation current (A)
        n: Emission coefficient
        temperature: Junction temperature (K)
    """
    spec = ComponentSpec(
        name=name,
        kind="Diode",
        nodes=(anode.index, cathode.index),
        branches=0,
        params=(
            ("Is", _positive(name, "Is", is_)),
            ("n", _positive(name, "n", n)),
            ("T", _positive(name, "T", temperature)),
        ),
    )
    return net.add_component(spec)


def _bjt(kind, net, collector, base, emitter, name, beta, alpha_r, is_, n, temperature):
    beta = _positive(name, "beta", beta)
    if not 0.0 < alpha_r < 1.0:
        raise InvalidParameterError(name, "alpha_r", alpha_r)
    spec = ComponentSpec(
        name=name,
        kind=kind,
        nodes=(collector.index, base.index, emitter.index),
        branches=0,
        params=(
            ("beta", beta),
            ("alpha_r", float(alpha_r)),
            ("Is", _positive(name, "Is", is_)),
            ("n", _positive(name, "n", n)),
            ("T", _positive(name, "T", temperature)),
        ),
    )
    return net.add_component(spec)


def NPN(
    net: Network,
    collector: Node,
    base: Node,
    emitter: Node,
    *,
    name: str,
    beta: float = config.BJT_BETA,
    alpha_r: float = config.BJT_ALPHA_R,
    is_: float = config.BJT_IS,
    n: float = config.BJT_N,
    temperature: float = config.DEFAULT_TEMPERATURE_K,
) -> tuple[Network, ComponentRef]:
    """
    Create an NPN bipolar transistor (Ebers-Moll transport model).

    Args:
        collector, base, emitter: Terminals
        beta: Forward current gain, alpha_F = beta / (1 + beta)
        alpha_r: Reverse alpha (0 < alpha_r < 1)
        is_: Junction saturation current (A)
        n: Junction emission coefficient
        temperature: Junction temperature (K)
    """
    return _bjt("NPN", net, collector, base, emitter, name, beta, alpha_r, is_, n, temperature)


def PNP(
    net: Network,
    collector: Node,
    base: Node,
    emitter: Node,
    *,
    name: str,
    beta: float = config.BJT_BETA,
    alpha_r: float = config.BJT_ALPHA_R,
    is_: float = config.BJT_IS,
    n: float = config.BJT_N,
    temperature: float = config.DEFAULT_TEMPERATURE_K,
) -> tuple[Network, ComponentRef]:
    """Create a PNP bipolar transistor, the polarity mirror of NPN."""
    return _bjt("PNP", net, collector, base, emitter, name, beta, alpha_r, is_, n, temperature)
