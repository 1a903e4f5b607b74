"""Default configuration values for pyvolta simulations.

Physical constants, the default junction model constants, and the
SolverConfig bundle that is threaded through every solve.
"""

from __future__ import annotations
from typing import NamedTuple

# Physical constants (CODATA 2018 exact values)
K_BOLTZMANN = 1.380649e-23  # J/K
Q_ELECTRON = 1.602176634e-19  # C

# Default diode junction (Falstad's default diode)
DIODE_IS = 171.4352819281e-9  # saturation current (A)
DIODE_N = 2.0  # emission coefficient
DIODE_TEMPERATURE_K = 273.15 + 22.0

# Default bipolar transistor junctions
BJT_IS = 1e-14
BJT_N = 1.0
BJT_BETA = 100.0
BJT_ALPHA_R = 0.1

# Simulation temperature used when a device does not set its own
DEFAULT_TEMPERATURE_K = DIODE_TEMPERATURE_K

METHODS = ("trapezoidal", "backward_euler")
LINEAR_SOLVERS = ("lu", "gmres", "bicgstab")


def thermal_voltage(temperature_k: float = DEFAULT_TEMPERATURE_K) -> float:
    """kT/q in volts."""
    return K_BOLTZMANN * temperature_k / Q_ELECTRON


class SolverConfig(NamedTuple):
    """
    Solver options shared by the tableau builder, linear solver,
    Newton-Raphson driver and transient integrator.

    Voltage and current unknowns are checked against separate tolerance
    bands: |dv| <= reltol*|v| + vntol and |di| <= reltol*|i| + abstol.
    """
    method: str = "trapezoidal"
    max_nr_iters: int = 100
    reltol: float = 1e-3
    vntol: float = 1e-6
    abstol: float = 1e-12
    damping: float = 1.0
    limiting: bool = True
    gmin: float = 1e-12
    linear_solver: str = "lu"
    pivot_tol: float = 1e-13
    iterative_tol: float = 1e-12
    max_step_halvings: int = 4

    def validate(self) -> SolverConfig:
        """Raise ValueError on out-of-range options, return self otherwise."""
        if self.method not in METHODS:
            raise ValueError(f"method must be one of {METHODS}, got {self.method!r}")
        if self.linear_solver not in LINEAR_SOLVERS:
            raise ValueError(
                f"linear_solver must be one of {LINEAR_SOLVERS}, got {self.linear_solver!r}"
            )
        if self.max_nr_iters < 1:
            raise ValueError(f"max_nr_iters must be >= 1, got {self.max_nr_iters}")
        for name in ("reltol", "vntol", "abstol", "iterative_tol"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if not 0.0 < self.damping <= 1.0:
            raise ValueError(f"damping must be in (0, 1], got {self.damping}")
        if self.gmin < 0 or self.pivot_tol < 0:
            raise ValueError("gmin and pivot_tol must be non-negative")
        if self.max_step_halvings < 0:
            raise ValueError(f"max_step_halvings must be >= 0, got {self.max_step_halvings}")
        return self
