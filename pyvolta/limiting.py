"""PN-junction voltage limiting for Newton-Raphson.

Junction current is exponential in voltage, so a raw NR update of a few
volts can move the linearization point by many decades of current. pnjlim
compresses large forward steps logarithmically; the NR driver applies it
to every junction voltage between iterations and refuses to declare
convergence while any junction is still being limited.
"""

from __future__ import annotations
import math

import jax.numpy as jnp
from jax import Array


def junction_vcrit(nvt: float, is_: float) -> float:
    """Voltage above which the junction current curve bends sharply."""
    return nvt * math.log(nvt / (math.sqrt(2.0) * is_))


def pnjlim(vnew: Array, vold: Array, vt: float, vcrit: float) -> Array:
    """
    Limit a proposed junction voltage relative to the previous one.

    Args:
        vnew: Proposed junction voltage from the NR update
        vold: Junction voltage used for the previous linearization
        vt: n * thermal voltage of the junction
        vcrit: Critical voltage (see junction_vcrit)

    Returns:
        Junction voltage to linearize around next
    """
    vnew = jnp.asarray(vnew)
    vold = jnp.asarray(vold)
    delta = vnew - vold
    arg = 1.0 + delta / vt

    large_forward = (vnew > vcrit) & (jnp.abs(delta) > 2.0 * vt)

    from_forward = jnp.where(arg > 0, vold + vt * jnp.log(jnp.maximum(arg, 1e-30)), vcrit)
    from_reverse = vt * jnp.log(jnp.maximum(vnew / vt, 1e-30))
    limited = jnp.where(vold > 0, from_forward, from_reverse)

    return jnp.where(large_forward, limited, vnew)
