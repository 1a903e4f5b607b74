"""Newton-Raphson driver.

Each iteration rebuilds the tableau linearized at the current iterate,
solves it, and checks the update against separate voltage and current
tolerance bands. Junction voltages of nonlinear devices are limited
between iterations (see limiting.py); an iteration in which any junction
was limited never counts as converged.
"""

from __future__ import annotations
from typing import Callable, Mapping, NamedTuple, Sequence

import numpy as np

from .config import SolverConfig
from .errors import ConvergenceError
from .linsolve import solve_linear
from .logging import logger
from .tableau import Tableau

Junctions = Mapping[int, tuple[float, ...]]


class NewtonResult(NamedTuple):
    x: np.ndarray
    iterations: int
    delta: float  # largest update measured in tolerance units (<= 1 when converged)


def update_ratio(x_new: np.ndarray, x_old: np.ndarray, n_nodes: int, config: SolverConfig) -> float:
    """
    Largest |x_new - x_old| relative to its tolerance band.

    Voltages (the first n_nodes unknowns) use reltol*|v| + vntol, branch
    currents use reltol*|i| + abstol.
    """
    if x_new.size == 0:
        return 0.0
    scale = np.maximum(np.abs(x_new), np.abs(x_old))
    floor = np.full(x_new.shape, config.abstol)
    floor[:n_nodes] = config.vntol
    tol = config.reltol * scale + floor
    return float(np.max(np.abs(x_new - x_old) / tol))


def solve_newton(
    assemble: Callable[[np.ndarray, Junctions | None], Tableau],
    x0: np.ndarray,
    *,
    n_nodes: int,
    config: SolverConfig,
    junctions_at: Callable[[np.ndarray], Junctions] | None = None,
    limit: Callable[[Junctions, Junctions], tuple[Junctions, bool]] | None = None,
    labels: Sequence[str] | None = None,
) -> NewtonResult:
    """
    Find x such that the tableau linearized at x is solved by x.

    Args:
        assemble: Builds the tableau at (iterate, junction voltages)
        x0: Initial guess (previous operating point, or zeros)
        n_nodes: Number of voltage unknowns at the front of x
        config: Iteration cap, tolerances, damping and limiting switch
        junctions_at: Junction voltages implied by an iterate; None for a
            linear circuit, which is solved once without iterating
        limit: Maps (proposed, previous) junctions to (limited, any_limited)
        labels: Unknown names forwarded to the linear solver

    Returns:
        NewtonResult with the converged iterate

    Raises:
        ConvergenceError: iteration cap reached; carries the last iterate
        SingularMatrixError: from the linear solver, not retried here
    """
    x = np.asarray(x0, dtype=np.float64)

    if junctions_at is None:
        tab = assemble(x, None)
        return NewtonResult(solve_linear(tab.A, tab.b, config, labels), 1, 0.0)

    junctions = junctions_at(x)
    ratio = float("inf")
    for iteration in range(1, config.max_nr_iters + 1):
        tab = assemble(x, junctions)
        x_solved = solve_linear(tab.A, tab.b, config, labels)
        x_new = x + config.damping * (x_solved - x)

        proposed = junctions_at(x_new)
        if config.limiting and limit is not None:
            junctions, limited = limit(proposed, junctions)
        else:
            junctions, limited = proposed, False

        ratio = update_ratio(x_new, x, n_nodes, config)
        logger.debug("NR iteration %d: update %.3e tol units, limited=%s", iteration, ratio, limited)
        x = x_new

        if ratio <= 1.0 and not limited:
            return NewtonResult(x, iteration, ratio)

    raise ConvergenceError(
        f"Newton-Raphson did not converge in {config.max_nr_iters} iterations "
        f"(last update {ratio:.3e} tolerance units)",
        x=x,
        iterations=config.max_nr_iters,
        delta=ratio,
    )
