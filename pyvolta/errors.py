"""Simulation error taxonomy.

Every error carries a ``reason`` tag that front ends can render without
inspecting the exception type:

    StructuralError        "StructuralError"   ill-posed topology, found before solving
    InvalidParameterError  "InvalidParameter"  rejected at component construction
    SingularMatrixError    "SingularMatrix"    factorization found no acceptable pivot
    ConvergenceError       "NRDivergence"      Newton-Raphson iteration cap exceeded
"""

from __future__ import annotations


class SimulationError(Exception):
    """Base class for all pyvolta errors."""
    reason = "SimulationError"


class StructuralError(SimulationError):
    """Ill-posed topology: floating node, dangling terminal, duplicate ground."""
    reason = "StructuralError"

    def __init__(self, message: str, *, nodes=(), components=()):
        super().__init__(message)
        self.nodes = tuple(nodes)
        self.components = tuple(components)


class InvalidParameterError(SimulationError, ValueError):
    """Physically invalid device parameter."""
    reason = "InvalidParameter"

    def __init__(self, component: str, param: str, value):
        super().__init__(f"{component}: invalid {param}={value!r}")
        self.component = component
        self.param = param
        self.value = value


class SingularMatrixError(SimulationError):
    """The tableau matrix could not be factored."""
    reason = "SingularMatrix"

    def __init__(self, message: str, *, unknown: int | None = None, label: str | None = None):
        super().__init__(message)
        self.unknown = unknown
        self.label = label


class ConvergenceError(SimulationError):
    """Newton-Raphson did not converge within the iteration cap."""
    reason = "NRDivergence"

    def __init__(self, message: str, *, x=None, iterations: int = 0, delta: float = float("nan")):
        super().__init__(message)
        self.x = x  # last iterate
        self.iterations = iterations
        self.delta = delta


NRDivergence = ConvergenceError
