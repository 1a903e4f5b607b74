"""Tableau builder: assembles A x = b for one evaluation.

The builder holds no state between calls. Each call walks the device list,
collects every stamp in coordinate form and sums entries that land on the
same cell. Entries are sorted before summation, so the result does not
depend on the order in which devices are visited.
"""

from __future__ import annotations
import math
from collections import defaultdict
from typing import Mapping, NamedTuple, Sequence

import numpy as np
import scipy.sparse as sp

from .config import SolverConfig
from .network import ComponentSpec, Network
from .stamps import DeviceType, StampContext, device_type
from .topology import Topology


class DeviceInstance(NamedTuple):
    """A component bound to its merged terminals and branch index."""
    index: int  # position in Network.components (and in the state arrays)
    spec: ComponentSpec
    terminals: tuple[int, ...]
    branch: int
    kind: DeviceType
    mutual: tuple[tuple[int, int, float], ...] = ()  # (partner index, partner branch, M)


class Tableau(NamedTuple):
    A: sp.csc_matrix
    b: np.ndarray


def _core_couplings(net: Network, topo: Topology) -> dict[int, tuple[tuple[int, int, float], ...]]:
    """Mutual inductances between inductors wound on the same core, by component index."""
    cores = defaultdict(list)
    for idx, spec in enumerate(net.components):
        if spec.kind == "L" and spec.param("core", -1.0) >= 0:
            cores[spec.param("core")].append(idx)

    mutual = {}
    for members in cores.values():
        for idx in members:
            own = net.components[idx]
            mutual[idx] = tuple(
                (
                    other,
                    topo.branch_index[other],
                    math.sqrt(
                        own.param("k") * net.components[other].param("k")
                        * own.param("L") * net.components[other].param("L")
                    ),
                )
                for other in members
                if other != idx
            )
    return mutual


def make_instances(net: Network, topo: Topology) -> tuple[DeviceInstance, ...]:
    mutual = _core_couplings(net, topo)
    return tuple(
        DeviceInstance(idx, spec, terms, branch, device_type(spec.kind), mutual.get(idx, ()))
        for idx, (spec, terms, branch) in enumerate(
            zip(net.components, topo.terminals, topo.branch_index)
        )
    )


def device_context(
    inst: DeviceInstance,
    x: np.ndarray,
    v_prev: np.ndarray | None,
    i_prev: np.ndarray | None,
    dt: float | None,
    config: SolverConfig,
    controls: Mapping[str, float] | None = None,
    junctions: Mapping[int, tuple[float, ...]] | None = None,
) -> StampContext:
    return StampContext(
        spec=inst.spec,
        terminals=inst.terminals,
        branch=inst.branch,
        x=x,
        v_prev=0.0 if v_prev is None else float(v_prev[inst.index]),
        i_prev=0.0 if i_prev is None else float(i_prev[inst.index]),
        dt=dt,
        method=config.method,
        control=None if controls is None else controls.get(inst.spec.name),
        junctions=None if junctions is None else junctions.get(inst.index),
        gmin=config.gmin,
        mutual=tuple(
            (branch, m, 0.0 if i_prev is None else float(i_prev[other]))
            for other, branch, m in inst.mutual
        ),
    )


def _sum_duplicates(keys: Sequence[np.ndarray], vals: np.ndarray):
    """Sort entries by (keys, value) and sum runs with equal keys."""
    if vals.size == 0:
        return [k for k in keys], vals
    order = np.lexsort((vals,) + tuple(reversed(keys)))
    keys = [k[order] for k in keys]
    vals = vals[order]
    new_run = np.zeros(vals.size, dtype=bool)
    new_run[0] = True
    for k in keys:
        new_run[1:] |= k[1:] != k[:-1]
    starts = np.flatnonzero(new_run)
    return [k[starts] for k in keys], np.add.reduceat(vals, starts)


def build_tableau(
    instances: Sequence[DeviceInstance],
    n_total: int,
    x: np.ndarray,
    v_prev: np.ndarray | None,
    i_prev: np.ndarray | None,
    dt: float | None,
    config: SolverConfig,
    controls: Mapping[str, float] | None = None,
    junctions: Mapping[int, tuple[float, ...]] | None = None,
) -> Tableau:
    """
    Stamp every device at the iterate x and assemble the sparse system.

    Args:
        instances: Devices to stamp, in any order
        n_total: Number of unknowns (merged nodes + branches)
        x: Current iterate, linearization point for nonlinear devices
        v_prev, i_prev: Committed per-device voltage/current (reactive history)
        dt: Step length, None for a DC evaluation
        config: Solver options (companion rule, gmin)
        controls: Per-step source values / switch states by component name
        junctions: Limited junction voltages by component index

    Returns:
        Tableau(A, b) with A in CSC format
    """
    rows, cols, vals = [], [], []
    rhs_rows, rhs_vals = [], []
    for inst in instances:
        ctx = device_context(inst, x, v_prev, i_prev, dt, config, controls, junctions)
        stamp = inst.kind.stamp(ctx)
        rows.extend(stamp.rows)
        cols.extend(stamp.cols)
        vals.extend(stamp.vals)
        rhs_rows.extend(stamp.rhs_rows)
        rhs_vals.extend(stamp.rhs_vals)

    (r, c), v = _sum_duplicates(
        [np.asarray(rows, dtype=np.int64), np.asarray(cols, dtype=np.int64)],
        np.asarray(vals, dtype=np.float64),
    )
    A = sp.coo_matrix((v, (r, c)), shape=(n_total, n_total)).tocsc()

    (br,), bv = _sum_duplicates(
        [np.asarray(rhs_rows, dtype=np.int64)], np.asarray(rhs_vals, dtype=np.float64)
    )
    b = np.zeros(n_total)
    b[br] = bv
    return Tableau(A, b)
