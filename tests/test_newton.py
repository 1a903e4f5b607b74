"""
Test: Newton-Raphson driver.

- an already converged operating point converges again in one iteration
- the iteration cap raises ConvergenceError carrying the last iterate
- split voltage / current tolerance bands
- junction limiting keeps a hard-driven diode from overflowing
"""
import math
import pytest


def _diode_network(v_source=5.0, r=1000.0):
    from pyvolta import Network, R, VSource, Diode

    net = Network()
    net, a = net.node("a")
    net, k = net.node("k")

    net, vs = VSource(net, a, net.gnd, name="vs", value=v_source)
    net, r1 = R(net, a, k, name="R1", value=r)
    net, d1 = Diode(net, k, net.gnd, name="D1")
    return net, k, d1


def test_converged_point_is_idempotent():
    import numpy as np

    net, k, d1 = _diode_network()
    sim = net.compile()

    state = sim.op()
    assert int(state.iterations) > 1

    again = sim.op(x0=state.x)
    assert int(again.iterations) == 1
    assert np.allclose(np.asarray(again.x), np.asarray(state.x), rtol=1e-6, atol=1e-9)


def test_iteration_cap_raises_convergence_error():
    from pyvolta import SolverConfig, ConvergenceError, NRDivergence

    net, k, d1 = _diode_network(v_source=20.0)
    sim = net.compile(config=SolverConfig(max_nr_iters=2))

    with pytest.raises(ConvergenceError) as exc_info:
        sim.op()

    err = exc_info.value
    assert err.iterations == 2
    assert err.x is not None and err.x.shape == (sim.topology.n_total,)
    assert err.reason == "NRDivergence"
    assert NRDivergence is ConvergenceError


def test_update_ratio_uses_separate_bands():
    import numpy as np
    from pyvolta.config import SolverConfig
    from pyvolta.newton import update_ratio

    cfg = SolverConfig(reltol=1e-3, vntol=1e-6, abstol=1e-12)
    x_old = np.array([1.0, 1e-3])
    # 0.05% on a voltage is within reltol, 0.5% on a current is not
    x_new = np.array([1.0005, 1e-3])
    assert update_ratio(x_new, x_old, 1, cfg) <= 1.0

    x_new = np.array([1.0, 1e-3 + 5e-6])
    assert update_ratio(x_new, x_old, 1, cfg) > 1.0

    assert update_ratio(np.zeros(0), np.zeros(0), 0, cfg) == 0.0


def test_limiting_handles_large_forward_drive():
    """50V straight into a diode through 10Ω: limiting walks the junction up without overflow."""
    net, k, d1 = _diode_network(v_source=50.0, r=10.0)
    sim = net.compile()

    state = sim.op()
    v_d = float(sim.v(state, k))
    i_d = float(sim.i(state, d1))

    assert math.isfinite(v_d) and 0.5 < v_d < 3.0
    assert i_d == pytest.approx((50.0 - v_d) / 10.0, rel=1e-3)


def test_damping_still_converges():
    from pyvolta import SolverConfig

    net, k, d1 = _diode_network()
    plain_sim = net.compile()
    plain = plain_sim.op()
    damped_sim = net.compile(config=SolverConfig(damping=0.5))
    damped = damped_sim.op()

    # Half steps close the gap on the 5V source node by 2x per iteration
    assert int(damped.iterations) >= 10
    assert float(damped_sim.v(damped, k)) == pytest.approx(float(plain_sim.v(plain, k)), abs=1e-3)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
