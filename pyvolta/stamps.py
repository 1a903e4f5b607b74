"""Device stamps: each device kind's additive contribution to (A, b).

A stamp is a pure function of a StampContext (terminal and branch indices,
the current iterate, the committed history of the device and the step
length) and returns coordinate-form entries. Entries are always added,
never assigned, so any number of devices may share a node and the order in
which devices are stamped does not matter.

Sign conventions:
    KCL row of node k:  sum of currents leaving node k through devices = b[k]
    device current:     flows from the first terminal, through the device,
                        to the second terminal
    transistor current: flows into each terminal (collector, base, emitter)
"""

from __future__ import annotations
import math
from typing import Callable, NamedTuple

import jax
import jax.numpy as jnp
import numpy as np

from .config import thermal_voltage
from .limiting import junction_vcrit, pnjlim
from .network import ComponentSpec

# Above this exponent the junction law continues linearly (keeps exp finite)
_EXP_ARG_MAX = 80.0


class StampContext(NamedTuple):
    """Everything a device may read while stamping or probing."""
    spec: ComponentSpec
    terminals: tuple[int, ...]  # merged node indices (0 = ground)
    branch: int  # x index of the first branch unknown, -1 if none
    x: np.ndarray  # current iterate (or solved operating point when probing)
    v_prev: float  # committed device voltage from the previous step
    i_prev: float  # committed device current from the previous step
    dt: float | None  # step length, None for a DC evaluation
    method: str  # "trapezoidal" or "backward_euler"
    control: float | None  # per-step override (source value, switch state)
    junctions: tuple[float, ...] | None  # limited junction voltages to linearize at
    gmin: float
    mutual: tuple[tuple[int, float, float], ...] = ()  # coupled windings: (branch, M, i_prev)


class Stamp(NamedTuple):
    """Coordinate-form contributions: A[rows, cols] += vals, b[rhs_rows] += rhs_vals."""
    rows: tuple[int, ...]
    cols: tuple[int, ...]
    vals: tuple[float, ...]
    rhs_rows: tuple[int, ...]
    rhs_vals: tuple[float, ...]


EMPTY_STAMP = Stamp((), (), (), (), ())


class StampBuilder:
    """Collects entries for one device; node arguments are merged node indices."""

    def __init__(self):
        self.rows, self.cols, self.vals = [], [], []
        self.rhs_rows, self.rhs_vals = [], []

    def add(self, row: int, col: int, val: float) -> None:
        """Add to A at tableau indices; negative indices (ground) are dropped."""
        if row >= 0 and col >= 0:
            self.rows.append(row)
            self.cols.append(col)
            self.vals.append(float(val))

    def add_rhs(self, row: int, val: float) -> None:
        if row >= 0:
            self.rhs_rows.append(row)
            self.rhs_vals.append(float(val))

    def conductance(self, a: int, b: int, g: float) -> None:
        ia, ib = a - 1, b - 1
        self.add(ia, ia, g)
        self.add(ib, ib, g)
        self.add(ia, ib, -g)
        self.add(ib, ia, -g)

    def current(self, a: int, b: int, i: float) -> None:
        """Fixed current i flowing from node a through the device to node b."""
        self.add_rhs(a - 1, -i)
        self.add_rhs(b - 1, i)

    def branch_kcl(self, a: int, b: int, k: int) -> None:
        """Branch current k leaves node a and enters node b."""
        self.add(a - 1, k, 1.0)
        self.add(b - 1, k, -1.0)

    def branch_voltage(self, k: int, a: int, b: int) -> None:
        """V(a) - V(b) in branch row k."""
        self.add(k, a - 1, 1.0)
        self.add(k, b - 1, -1.0)

    def build(self) -> Stamp:
        return Stamp(
            tuple(self.rows), tuple(self.cols), tuple(self.vals),
            tuple(self.rhs_rows), tuple(self.rhs_vals),
        )


def node_voltage(x: np.ndarray, node: int) -> float:
    return 0.0 if node == 0 else float(x[node - 1])


def _vab(ctx: StampContext) -> float:
    a, b = ctx.terminals[:2]
    return node_voltage(ctx.x, a) - node_voltage(ctx.x, b)


# --- Linear devices ---

def _stamp_wire(ctx: StampContext) -> Stamp:
    # Wire ends are merged by the topology
    return EMPTY_STAMP


def _probe_wire(ctx: StampContext) -> tuple[float, float]:
    return 0.0, math.nan


def _stamp_resistor(ctx: StampContext) -> Stamp:
    s = StampBuilder()
    a, b = ctx.terminals
    s.conductance(a, b, 1.0 / ctx.spec.param("R"))
    return s.build()


def _probe_resistor(ctx: StampContext) -> tuple[float, float]:
    v = _vab(ctx)
    return v, v / ctx.spec.param("R")


def _source_value(ctx: StampContext, key: str) -> float:
    return ctx.spec.param(key) if ctx.control is None else float(ctx.control)


def _stamp_vsource(ctx: StampContext) -> Stamp:
    s = StampBuilder()
    a, b = ctx.terminals
    k = ctx.branch
    s.branch_kcl(a, b, k)
    s.branch_voltage(k, a, b)
    s.add_rhs(k, _source_value(ctx, "V"))
    return s.build()


def _probe_branch(ctx: StampContext) -> tuple[float, float]:
    return _vab(ctx), float(ctx.x[ctx.branch])


def _stamp_isource(ctx: StampContext) -> Stamp:
    s = StampBuilder()
    a, b = ctx.terminals
    s.current(a, b, _source_value(ctx, "I"))
    return s.build()


def _probe_isource(ctx: StampContext) -> tuple[float, float]:
    return _vab(ctx), _source_value(ctx, "I")


def _switch_closed(ctx: StampContext) -> bool:
    state = ctx.spec.param("closed") if ctx.control is None else ctx.control
    return bool(state)


def _stamp_switch(ctx: StampContext) -> Stamp:
    s = StampBuilder()
    a, b = ctx.terminals
    k = ctx.branch
    s.branch_kcl(a, b, k)
    if _switch_closed(ctx):
        s.branch_voltage(k, a, b)  # V(a) - V(b) = 0
    else:
        s.add(k, k, 1.0)  # I = 0
    return s.build()


# --- Reactive devices (companion models) ---

def capacitor_companion(ctx: StampContext) -> tuple[float, float]:
    """
    Norton companion (geq, ieq) of a capacitor: i = geq * v - ieq.

    Trapezoidal: geq = 2C/dt, ieq = geq*v_prev + i_prev
    Backward Euler: geq = C/dt, ieq = geq*v_prev
    """
    c = ctx.spec.param("C")
    if ctx.method == "backward_euler":
        geq = c / ctx.dt
        return geq, geq * ctx.v_prev
    geq = 2.0 * c / ctx.dt
    return geq, geq * ctx.v_prev + ctx.i_prev


def _inductor_scale(ctx: StampContext) -> float:
    return (1.0 if ctx.method == "backward_euler" else 2.0) / ctx.dt


def inductor_companion(ctx: StampContext) -> tuple[float, float]:
    """
    Thevenin companion (req, veq) of an inductor: v = req * i + sum(rm_j * i_j) - veq.

    Trapezoidal: req = 2L/dt, veq = (2/dt)*flux_prev + v_prev
    Backward Euler: req = L/dt, veq = (1/dt)*flux_prev
    where flux_prev = L*i_prev + sum(M_j * i_prev_j) over windings on the
    same core, and rm_j = M_j * req / L (see mutual_resistances).
    """
    ind = ctx.spec.param("L")
    scale = _inductor_scale(ctx)
    flux_prev = ind * ctx.i_prev + sum(m * i_other for _, m, i_other in ctx.mutual)
    if ctx.method == "backward_euler":
        return scale * ind, scale * flux_prev
    return scale * ind, scale * flux_prev + ctx.v_prev


def mutual_resistances(ctx: StampContext) -> tuple[tuple[int, float], ...]:
    """(partner branch, M * 2/dt or M / dt) for each winding on the same core."""
    scale = _inductor_scale(ctx)
    return tuple((branch, scale * m) for branch, m, _ in ctx.mutual)


def _stamp_capacitor(ctx: StampContext) -> Stamp:
    if ctx.dt is None:
        return EMPTY_STAMP  # open circuit at DC
    s = StampBuilder()
    a, b = ctx.terminals
    geq, ieq = capacitor_companion(ctx)
    s.conductance(a, b, geq)
    s.current(a, b, -ieq)
    return s.build()


def _probe_capacitor(ctx: StampContext) -> tuple[float, float]:
    v = _vab(ctx)
    if ctx.dt is None:
        return v, 0.0
    geq, ieq = capacitor_companion(ctx)
    return v, geq * v - ieq


def _stamp_inductor(ctx: StampContext) -> Stamp:
    s = StampBuilder()
    a, b = ctx.terminals
    k = ctx.branch
    s.branch_kcl(a, b, k)
    s.branch_voltage(k, a, b)
    if ctx.dt is not None:
        req, veq = inductor_companion(ctx)
        s.add(k, k, -req)
        for other, rm in mutual_resistances(ctx):
            s.add(k, other, -rm)
        s.add_rhs(k, -veq)
    # At DC the branch row reads V(a) - V(b) = 0: a short circuit
    return s.build()


# --- Nonlinear devices ---

def _junction_exp(arg):
    clipped = jnp.minimum(arg, _EXP_ARG_MAX)
    return jnp.where(
        arg > _EXP_ARG_MAX,
        jnp.exp(_EXP_ARG_MAX) * (1.0 + arg - _EXP_ARG_MAX),
        jnp.exp(clipped),
    )


def _diode_current(vd, is_, nvt):
    return is_ * (_junction_exp(vd / nvt) - 1.0)


# (current, conductance) at a junction voltage
_diode_eval = jax.jit(jax.value_and_grad(_diode_current))


def _diode_nvt(spec: ComponentSpec) -> float:
    return spec.param("n") * thermal_voltage(spec.param("T"))


def _junctions_diode(ctx: StampContext) -> tuple[float, ...]:
    return (_vab(ctx),)


def _limit_diode(spec: ComponentSpec, new: tuple, old: tuple) -> tuple[float, ...]:
    nvt = _diode_nvt(spec)
    vcrit = junction_vcrit(nvt, spec.param("Is"))
    return (float(pnjlim(new[0], old[0], nvt, vcrit)),)


def _stamp_diode(ctx: StampContext) -> Stamp:
    """First-order Taylor expansion of the diode law around the junction voltage."""
    s = StampBuilder()
    a, b = ctx.terminals
    vd = ctx.junctions[0] if ctx.junctions is not None else _vab(ctx)
    i_d, g_d = _diode_eval(vd, ctx.spec.param("Is"), _diode_nvt(ctx.spec))
    i_d, g_d = float(i_d), float(g_d)
    s.conductance(a, b, g_d + ctx.gmin)
    s.current(a, b, i_d - g_d * vd)
    return s.build()


def _probe_diode(ctx: StampContext) -> tuple[float, float]:
    v = _vab(ctx)
    i_d, _ = _diode_eval(v, ctx.spec.param("Is"), _diode_nvt(ctx.spec))
    return v, float(i_d) + ctx.gmin * v


def _bjt_currents(v, polarity, alpha_f, alpha_r, is_, nvt):
    """
    Ebers-Moll transport model.

    v = terminal voltages (collector, base, emitter); returns the currents
    flowing into (collector, base, emitter). is_ is the emitter junction
    saturation current; the collector junction uses is_ * alpha_f / alpha_r
    so that alpha_f * I_ES = alpha_r * I_CS. PNP is the NPN law evaluated
    at negated voltages with negated currents.
    """
    vbe = polarity * (v[1] - v[2])
    vbc = polarity * (v[1] - v[0])
    i_f = is_ * (_junction_exp(vbe / nvt) - 1.0)
    i_r = is_ * (alpha_f / alpha_r) * (_junction_exp(vbc / nvt) - 1.0)
    ic = alpha_f * i_f - i_r
    ie = -i_f + alpha_r * i_r
    ib = -(ic + ie)
    return polarity * jnp.stack([ic, ib, ie])


_bjt_eval = jax.jit(
    lambda v, *args: (_bjt_currents(v, *args), jax.jacfwd(_bjt_currents)(v, *args))
)


def _bjt_args(spec: ComponentSpec) -> tuple[float, ...]:
    beta = spec.param("beta")
    polarity = 1.0 if spec.kind == "NPN" else -1.0
    nvt = spec.param("n") * thermal_voltage(spec.param("T"))
    return polarity, beta / (1.0 + beta), spec.param("alpha_r"), spec.param("Is"), nvt


def _junctions_bjt(ctx: StampContext) -> tuple[float, ...]:
    c, b, e = (node_voltage(ctx.x, t) for t in ctx.terminals)
    polarity = 1.0 if ctx.spec.kind == "NPN" else -1.0
    return polarity * (b - e), polarity * (b - c)


def _limit_bjt(spec: ComponentSpec, new: tuple, old: tuple) -> tuple[float, ...]:
    _, alpha_f, alpha_r, is_, nvt = _bjt_args(spec)
    # (b-e, b-c) junctions and their saturation currents
    vcrits = (junction_vcrit(nvt, is_), junction_vcrit(nvt, is_ * alpha_f / alpha_r))
    return tuple(float(pnjlim(vn, vo, nvt, vc)) for vn, vo, vc in zip(new, old, vcrits))


def _bjt_linearization_point(ctx: StampContext) -> np.ndarray:
    """Terminal voltages (c, b, e) reproducing the junction voltages, base at 0V."""
    polarity = 1.0 if ctx.spec.kind == "NPN" else -1.0
    if ctx.junctions is None:
        return np.array([node_voltage(ctx.x, t) for t in ctx.terminals])
    vbe, vbc = ctx.junctions
    return np.array([-polarity * vbc, 0.0, -polarity * vbe])


def _stamp_bjt(ctx: StampContext) -> Stamp:
    s = StampBuilder()
    v0 = _bjt_linearization_point(ctx)
    currents, jac = _bjt_eval(jnp.asarray(v0), *_bjt_args(ctx.spec))
    currents, jac = np.asarray(currents), np.asarray(jac)
    nodes = ctx.terminals
    for t, node_t in enumerate(nodes):
        for u, node_u in enumerate(nodes):
            s.add(node_t - 1, node_u - 1, jac[t, u])
        s.add_rhs(node_t - 1, float(jac[t] @ v0) - currents[t])
    c, b, e = nodes
    s.conductance(b, e, ctx.gmin)
    s.conductance(b, c, ctx.gmin)
    return s.build()


def bjt_terminal_currents(ctx: StampContext) -> tuple[float, float, float]:
    """Currents into (collector, base, emitter) at the operating point ctx.x."""
    v = np.array([node_voltage(ctx.x, t) for t in ctx.terminals])
    currents, _ = _bjt_eval(jnp.asarray(v), *_bjt_args(ctx.spec))
    ic, ib, ie = (float(i) for i in currents)
    vbe, vbc = v[1] - v[2], v[1] - v[0]
    ib += ctx.gmin * (vbe + vbc)
    ic -= ctx.gmin * vbc
    ie -= ctx.gmin * vbe
    return ic, ib, ie


def _probe_bjt(ctx: StampContext) -> tuple[float, float]:
    _, b, e = (node_voltage(ctx.x, t) for t in ctx.terminals)
    ic, _, _ = bjt_terminal_currents(ctx)
    return b - e, ic


class DeviceType(NamedTuple):
    """Per-kind behavior; one entry per device kind in DEVICE_TYPES."""
    stamp: Callable[[StampContext], Stamp]
    probe: Callable[[StampContext], tuple[float, float]]  # (voltage, current) at ctx.x
    nonlinear: bool = False
    reactive: bool = False
    junctions: Callable[[StampContext], tuple[float, ...]] | None = None
    limit: Callable[[ComponentSpec, tuple, tuple], tuple[float, ...]] | None = None


DEVICE_TYPES: dict[str, DeviceType] = {
    "Wire": DeviceType(_stamp_wire, _probe_wire),
    "R": DeviceType(_stamp_resistor, _probe_resistor),
    "VSource": DeviceType(_stamp_vsource, _probe_branch),
    "ISource": DeviceType(_stamp_isource, _probe_isource),
    "Switch": DeviceType(_stamp_switch, _probe_branch),
    "C": DeviceType(_stamp_capacitor, _probe_capacitor, reactive=True),
    "L": DeviceType(_stamp_inductor, _probe_branch, reactive=True),
    "Diode": DeviceType(
        _stamp_diode, _probe_diode, nonlinear=True,
        junctions=_junctions_diode, limit=_limit_diode,
    ),
    "NPN": DeviceType(
        _stamp_bjt, _probe_bjt, nonlinear=True,
        junctions=_junctions_bjt, limit=_limit_bjt,
    ),
    "PNP": DeviceType(
        _stamp_bjt, _probe_bjt, nonlinear=True,
        junctions=_junctions_bjt, limit=_limit_bjt,
    ),
}


def device_type(kind: str) -> DeviceType:
    try:
        return DEVICE_TYPES[kind]
    except KeyError:
        raise ValueError(f"Unknown component kind: {kind}") from None
