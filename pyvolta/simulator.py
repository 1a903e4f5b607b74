"""
Transient simulator over the sparse tableau.

compile_network() fixes the topology of a Network once and returns a SimFns
bundle of closures:

    sim = net.compile(dt=1e-6)
    state = sim.init()
    state = sim.step(state, {"vs": 5.0})
    sim.v(state, n1)

Each step rebuilds the tableau from the committed state (companion models of
capacitors and inductors), runs Newton-Raphson when the circuit has a
nonlinear device, and commits the new operating point only if the solve
succeeded. A step whose Newton iteration fails is retried as two half steps.
"""

from __future__ import annotations
from typing import Callable, Mapping, NamedTuple, Union

import jax.numpy as jnp
import numpy as np
from jax import Array

from .config import SolverConfig
from .errors import ConvergenceError, SimulationError, SingularMatrixError
from .logging import logger
from .network import ComponentRef, Network, Node
from .newton import NewtonResult, solve_newton
from .stamps import bjt_terminal_currents
from .tableau import build_tableau, device_context, make_instances
from .topology import Topology, build_topology

Controls = Mapping[str, float]
ControlSchedule = Union[Controls, Callable[[float], Controls], None]


class SimState(NamedTuple):
    """
    Committed operating point (JAX arrays).

    device_voltages / device_currents are indexed like Network.components:
    V(a) - V(b) and the a -> b current for two-terminal devices, V(b) - V(e)
    and the collector current for transistors, NaN current for wires.
    """
    time: Array               # scalar
    x: Array                  # (n_total,) merged node voltages then branch currents
    device_voltages: Array    # (n_components,)
    device_currents: Array    # (n_components,)
    iterations: Array         # NR iterations spent on the last solve


class Trajectory(NamedTuple):
    """States of a run stacked along a leading time axis; probes accept it like a SimState."""
    time: Array               # (n_steps,)
    x: Array                  # (n_steps, n_total)
    device_voltages: Array    # (n_steps, n_components)
    device_currents: Array    # (n_steps, n_components)
    iterations: Array         # (n_steps,)


class StepResult(NamedTuple):
    """Outcome of try_step: on failure, state is the unchanged input state."""
    ok: bool
    state: SimState
    reason: str | None = None
    error: SimulationError | None = None


class SimFns(NamedTuple):
    """Collection of simulation functions bound to one compiled network."""
    init: Callable[..., SimState]
    op: Callable[..., SimState]
    step: Callable[..., SimState]
    try_step: Callable[..., StepResult]
    run: Callable[..., tuple[SimState, Trajectory]]
    v: Callable[[SimState, Node], Array]
    i: Callable[[SimState, ComponentRef], Array]
    terminal_currents: Callable[[SimState, ComponentRef], tuple[float, ...]]
    dt: float | None
    network: Network
    topology: Topology
    config: SolverConfig


def compile_network(net: Network, dt: float | None = None, config: SolverConfig | None = None) -> SimFns:
    """
    Build the topology of ``net`` and return its simulation functions.

    Args:
        net: Network to simulate
        dt: Default timestep (s); step() and run() accept an override
        config: Solver options (defaults to SolverConfig())

    Raises:
        StructuralError: floating node, dangling terminal, unused node
        ValueError: invalid dt or config
    """
    config = (config or SolverConfig()).validate()
    if dt is not None and not dt > 0:
        raise ValueError(f"dt must be positive, got {dt}")

    topo = build_topology(net)
    instances = make_instances(net, topo)
    nonlinear = tuple(inst for inst in instances if inst.kind.nonlinear)
    labels = tuple(topo.label(k, net) for k in range(topo.n_total))
    index_of = {spec.name: idx for idx, spec in enumerate(net.components)}
    n_components = len(instances)

    logger.debug(
        "compiled %d components: %d merged nodes, %d branches, %d nonlinear",
        n_components, topo.n_nodes, topo.n_branches, len(nonlinear),
    )

    def _junctions_at(x: np.ndarray) -> dict[int, tuple[float, ...]]:
        return {
            inst.index: inst.kind.junctions(device_context(inst, x, None, None, None, config))
            for inst in nonlinear
        }

    def _limit(proposed, previous) -> tuple[dict, bool]:
        limited_any = False
        out = {}
        for inst in nonlinear:
            new = tuple(proposed[inst.index])
            lim = inst.kind.limit(inst.spec, new, previous[inst.index])
            limited_any = limited_any or lim != new
            out[inst.index] = lim
        return out, limited_any

    def _solve(x0, v_prev, i_prev, h, controls) -> tuple[NewtonResult, np.ndarray, np.ndarray]:
        def assemble(x, junctions):
            return build_tableau(
                instances, topo.n_total, x, v_prev, i_prev, h, config, controls, junctions
            )

        result = solve_newton(
            assemble,
            x0,
            n_nodes=topo.n_nodes,
            config=config,
            junctions_at=_junctions_at if nonlinear else None,
            limit=_limit,
            labels=labels,
        )

        voltages = np.empty(n_components)
        currents = np.empty(n_components)
        for inst in instances:
            ctx = device_context(inst, result.x, v_prev, i_prev, h, config, controls)
            voltages[inst.index], currents[inst.index] = inst.kind.probe(ctx)
        return result, voltages, currents

    def _state(time, result: NewtonResult, voltages, currents) -> SimState:
        return SimState(
            time=jnp.asarray(time, dtype=jnp.float64),
            x=jnp.asarray(result.x),
            device_voltages=jnp.asarray(voltages),
            device_currents=jnp.asarray(currents),
            iterations=jnp.asarray(result.iterations),
        )

    def init() -> SimState:
        """Zero state at t=0 with capacitor and inductor initial conditions applied."""
        voltages = np.zeros(n_components)
        currents = np.zeros(n_components)
        for inst in instances:
            if inst.spec.kind == "C":
                voltages[inst.index] = inst.spec.param("ic")
            elif inst.spec.kind == "L":
                currents[inst.index] = inst.spec.param("ic")
            elif inst.spec.kind == "Wire":
                currents[inst.index] = np.nan
        return _state(0.0, NewtonResult(np.zeros(topo.n_total), 0, 0.0), voltages, currents)

    def op(controls: Controls | None = None, x0: np.ndarray | None = None) -> SimState:
        """
        DC operating point: capacitors open, inductors shorted.

        The result is a consistent initial state for transient stepping.
        """
        x_start = np.zeros(topo.n_total) if x0 is None else np.asarray(x0, dtype=np.float64)
        result, voltages, currents = _solve(x_start, None, None, None, controls)
        return _state(0.0, result, voltages, currents)

    def _single_step(state: SimState, controls, h: float) -> SimState:
        result, voltages, currents = _solve(
            np.asarray(state.x),
            np.asarray(state.device_voltages),
            np.asarray(state.device_currents),
            h,
            controls,
        )
        return _state(float(state.time) + h, result, voltages, currents)

    def _advance(state: SimState, controls, h: float, halvings_left: int) -> SimState:
        try:
            return _single_step(state, controls, h)
        except ConvergenceError as err:
            if halvings_left == 0:
                raise
            logger.info(
                "t=%.6g: no convergence with dt=%.3g after %d iterations, retrying as two steps",
                float(state.time), h, err.iterations,
            )
            mid = _advance(state, controls, h / 2.0, halvings_left - 1)
            return _advance(mid, controls, h / 2.0, halvings_left - 1)

    def _step_length(h: float | None) -> float:
        h = dt if h is None else h
        if h is None:
            raise ValueError("No timestep: compile with dt or pass dt= to step()")
        if not h > 0:
            raise ValueError(f"dt must be positive, got {h}")
        return float(h)

    def try_step(state: SimState, controls: Controls | None = None, dt: float | None = None) -> StepResult:
        """
        Advance one step, reporting failure instead of raising.

        Switch states and source values in ``controls`` hold for the whole
        step. On failure the returned state is ``state`` itself.
        """
        h = _step_length(dt)
        try:
            new_state = _advance(state, controls, h, config.max_step_halvings)
        except (SingularMatrixError, ConvergenceError) as err:
            logger.warning("t=%.6g: step abandoned (%s): %s", float(state.time), err.reason, err)
            return StepResult(False, state, err.reason, err)
        return StepResult(True, new_state)

    def step(state: SimState, controls: Controls | None = None, dt: float | None = None) -> SimState:
        """Advance one step; raises SingularMatrixError or ConvergenceError on failure."""
        result = try_step(state, controls, dt)
        if not result.ok:
            raise result.error
        return result.state

    def run(
        state: SimState,
        n_steps: int,
        controls: ControlSchedule = None,
        dt: float | None = None,
    ) -> tuple[SimState, Trajectory]:
        """
        Take n_steps steps.

        Args:
            state: Starting state (not included in the trajectory)
            n_steps: Number of steps
            controls: Fixed dict, or a callable t -> dict evaluated at the
                start of each step
            dt: Step length override

        Returns:
            (final_state, trajectory)
        """
        h = _step_length(dt)
        states = []
        for _ in range(n_steps):
            step_controls = controls(float(state.time)) if callable(controls) else controls
            state = step(state, step_controls, h)
            states.append(state)

        if states:
            traj = Trajectory(*(jnp.stack(field) for field in zip(*states)))
        else:
            traj = Trajectory(
                time=jnp.zeros(0),
                x=jnp.zeros((0, topo.n_total)),
                device_voltages=jnp.zeros((0, n_components)),
                device_currents=jnp.zeros((0, n_components)),
                iterations=jnp.zeros(0, dtype=jnp.int32),
            )
        return state, traj

    def v(state: SimState | Trajectory, node: Node) -> Array:
        """Voltage at a node (works on a single state or a whole trajectory)."""
        merged = topo.node_map[node.index]
        if merged == 0:
            return jnp.zeros_like(state.time)
        return state.x[..., merged - 1]

    def _component_index(component: ComponentRef) -> int:
        try:
            return index_of[component.name]
        except KeyError:
            raise KeyError(f"No component named {component.name!r} in this network") from None

    def i(state: SimState | Trajectory, component: ComponentRef) -> Array:
        """
        Current through a component.

        Two-terminal devices: current flowing from the first terminal through
        the device to the second. Transistors: collector current. Wires have
        no tracked current.
        """
        idx = _component_index(component)
        if component.kind == "Wire":
            raise ValueError(f"{component.name}: wire currents are not tracked (wires merge nodes)")
        return state.device_currents[..., idx]

    def terminal_currents(state: SimState, component: ComponentRef) -> tuple[float, ...]:
        """
        Currents flowing into each terminal, in terminal order.

        A transistor returns (collector, base, emitter); a two-terminal
        device returns (i, -i). The entries always sum to zero.
        """
        idx = _component_index(component)
        inst = instances[idx]
        if inst.spec.kind in ("NPN", "PNP"):
            ctx = device_context(inst, np.asarray(state.x), None, None, None, config)
            return bjt_terminal_currents(ctx)
        current = float(i(state, component))
        return current, -current

    return SimFns(
        init=init,
        op=op,
        step=step,
        try_step=try_step,
        run=run,
        v=v,
        i=i,
        terminal_currents=terminal_currents,
        dt=dt,
        network=net,
        topology=topo,
        config=config,
    )
