"""PyVolta - sparse tableau circuit simulator.

Builds a circuit from primitive elements (wires, resistors, capacitors,
inductors, sources, switches, diodes, bipolar transistors) and simulates it
in the time domain: sparse LU solves for linear circuits, Newton-Raphson
with junction limiting for nonlinear ones, trapezoidal or backward-Euler
companion models for reactive elements.

Usage:
    from pyvolta import Network, R, C, VSource

    net = Network()
    net, n1 = net.node("n1")
    net, n2 = net.node("n2")
    net, vs = VSource(net, n1, net.gnd, name="vs", value=5.0)
    net, r1 = R(net, n1, n2, name="R1", value=1e3)
    net, c1 = C(net, n2, net.gnd, name="C1", value=1e-6)

    sim = net.compile(dt=1e-6)
    state = sim.init()
    for _ in range(1000):
        state = sim.step(state)
    print(sim.v(state, n2))
"""

import jax

# Node voltages and branch currents span many decades; float32 is not enough
jax.config.update("jax_enable_x64", True)

from .config import SolverConfig  # noqa: E402
from .errors import (  # noqa: E402
    SimulationError,
    StructuralError,
    InvalidParameterError,
    SingularMatrixError,
    ConvergenceError,
    NRDivergence,
)
from .network import Network, Node, ComponentRef, ComponentSpec  # noqa: E402
from .components import Wire, R, C, L, VSource, ISource, Switch, Diode, NPN, PNP  # noqa: E402
from .simulator import SimState, SimFns, StepResult, Trajectory, compile_network  # noqa: E402
from .diagram import SimOutputs, network_from_diagram, outputs  # noqa: E402

__version__ = "0.1.0"

__all__ = [
    # Network building
    "Network",
    "Node",
    "ComponentRef",
    "ComponentSpec",
    # Components
    "Wire",
    "R",
    "C",
    "L",
    "VSource",
    "ISource",
    "Switch",
    "Diode",
    "NPN",
    "PNP",
    # Simulation
    "SolverConfig",
    "SimState",
    "SimFns",
    "StepResult",
    "Trajectory",
    "compile_network",
    # Diagram boundary
    "SimOutputs",
    "network_from_diagram",
    "outputs",
    # Errors
    "SimulationError",
    "StructuralError",
    "InvalidParameterError",
    "SingularMatrixError",
    "ConvergenceError",
    "NRDivergence",
    "__version__",
]
