"""Sparse linear solve of one assembled tableau.

The tableau is non-symmetric (KCL rows mixed with constitutive rows) and
has structurally zero diagonal entries for voltage-defined branches, so the
direct path uses SuperLU with partial pivoting. Rows are in different
units (siemens for KCL rows, ohms or plain volts for branch rows), so each U
pivot is measured against the largest entry of its own column; a pivot that
is negligible on that scale is rejected as singular. That is the signature
of a floating node or of conflicting ideal sources, and an answer computed
through it would be meaningless.
"""

from __future__ import annotations
from typing import Sequence

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .config import SolverConfig
from .errors import ConvergenceError, SingularMatrixError
from .logging import logger


def _singular(unknown: int | None, labels: Sequence[str] | None, detail: str) -> SingularMatrixError:
    label = labels[unknown] if (labels is not None and unknown is not None) else None
    where = f" at {label}" if label else ""
    return SingularMatrixError(
        f"Singular tableau matrix{where}: {detail}", unknown=unknown, label=label
    )


def _solve_lu(A: sp.csc_matrix, b: np.ndarray, config: SolverConfig, labels) -> np.ndarray:
    col_max = np.asarray(abs(A).max(axis=0).toarray()).ravel()
    empty = np.flatnonzero(col_max == 0.0)
    if empty.size:
        raise _singular(int(empty[0]), labels, "unknown appears in no equation")

    try:
        lu = spla.splu(A, permc_spec="COLAMD")
    except RuntimeError as err:
        # SuperLU reports an exactly zero pivot this way
        raise _singular(None, labels, str(err)) from err

    # Column j of U holds original unknown k where perm_c[k] == j
    unknown_of = np.argsort(lu.perm_c)
    # Each pivot relative to the largest entry of its own column of A
    scaled = np.abs(lu.U.diagonal()) / col_max[unknown_of]
    worst = int(np.argmin(scaled))
    if not scaled[worst] > config.pivot_tol:
        unknown = int(unknown_of[worst])
        raise _singular(
            unknown, labels,
            f"pivot {scaled[worst]:.3e} of its column scale is below {config.pivot_tol:.1e}",
        )
    return lu.solve(b)


def _solve_iterative(A: sp.csc_matrix, b: np.ndarray, config: SolverConfig, labels) -> np.ndarray:
    try:
        ilu = spla.spilu(A, drop_tol=1e-8, fill_factor=20)
    except RuntimeError as err:
        raise _singular(None, labels, f"preconditioner: {err}") from err
    M = spla.LinearOperator(A.shape, ilu.solve)

    method = spla.gmres if config.linear_solver == "gmres" else spla.bicgstab
    x, info = method(A, b, rtol=config.iterative_tol, atol=0.0, maxiter=10 * A.shape[0] + 100, M=M)
    if info > 0:
        raise ConvergenceError(
            f"{config.linear_solver} did not reach rtol={config.iterative_tol:.1e} "
            f"after {info} iterations",
            x=x,
            iterations=info,
        )
    if info < 0:
        raise _singular(None, labels, f"{config.linear_solver} breakdown (info={info})")
    return x


def solve_linear(
    A: sp.spmatrix,
    b: np.ndarray,
    config: SolverConfig,
    labels: Sequence[str] | None = None,
) -> np.ndarray:
    """
    Solve A x = b.

    Args:
        A: Square tableau matrix
        b: Right-hand side
        config: Selects "lu", "gmres" or "bicgstab" and their tolerances
        labels: Optional unknown names used in error messages

    Returns:
        Solution vector as a numpy array

    Raises:
        SingularMatrixError: no acceptable pivot, or a non-finite solution
        ConvergenceError: an iterative solver hit its iteration limit
    """
    n = b.shape[0]
    if n == 0:
        return np.zeros(0)

    A = sp.csc_matrix(A)
    if config.linear_solver == "lu":
        x = _solve_lu(A, b, config, labels)
    else:
        x = _solve_iterative(A, b, config, labels)

    bad = np.flatnonzero(~np.isfinite(x))
    if bad.size:
        raise _singular(int(bad[0]), labels, "solution is not finite")

    logger.debug("linear solve n=%d nnz=%d |x|max=%.3e", n, A.nnz, np.abs(x).max())
    return x
