"""
Test: Singular tableau detection.

Conflicting ideal constraints pass the structural checks but leave the
tableau without an acceptable pivot. The solve must fail explicitly with
SingularMatrixError instead of returning a degenerate answer, and a
transient step that hits it must not advance time.
"""
import pytest


def _parallel_sources(v1, v2):
    from pyvolta import Network, R, VSource

    net = Network()
    net, a = net.node("a")

    net, s1 = VSource(net, a, net.gnd, name="V1", value=v1)
    net, s2 = VSource(net, a, net.gnd, name="V2", value=v2)
    net, r1 = R(net, a, net.gnd, name="R1", value=100.0)
    return net


def test_conflicting_voltage_sources():
    from pyvolta import SingularMatrixError

    sim = _parallel_sources(5.0, 3.0).compile(dt=1e-6)

    with pytest.raises(SingularMatrixError) as exc_info:
        sim.op()
    assert exc_info.value.reason == "SingularMatrix"


def test_redundant_voltage_sources():
    """Equal parallel sources are consistent but the split of current is not determined."""
    from pyvolta import SingularMatrixError

    sim = _parallel_sources(5.0, 5.0).compile()

    with pytest.raises(SingularMatrixError):
        sim.op()


def test_switch_shorting_source():
    """Closing a switch across a voltage source makes the system singular."""
    from pyvolta import Network, R, VSource, Switch, SingularMatrixError

    net = Network()
    net, a = net.node("a")

    net, vs = VSource(net, a, net.gnd, name="vs", value=5.0)
    net, r1 = R(net, a, net.gnd, name="R1", value=100.0)
    net, sw = Switch(net, a, net.gnd, name="sw")

    sim = net.compile(dt=1e-6)
    state = sim.step(sim.init(), {"sw": False})
    assert float(sim.v(state, a)) == pytest.approx(5.0)

    result = sim.try_step(state, {"sw": True})
    assert not result.ok
    assert result.reason == "SingularMatrix"
    assert isinstance(result.error, SingularMatrixError)
    assert result.state is state  # nothing committed

    with pytest.raises(SingularMatrixError):
        sim.step(state, {"sw": True})


def test_singular_error_names_unknown():
    """The reported label is one of the network's unknowns."""
    from pyvolta import SingularMatrixError
    from pyvolta.config import SolverConfig
    from pyvolta.linsolve import solve_linear
    import numpy as np
    import scipy.sparse as sp

    # Second column is a scaled copy of the first: numerically rank deficient
    A = sp.csc_matrix(np.array([[1.0, 2.0, 0.0], [2.0, 4.0, 0.0], [0.0, 0.0, 1.0]]))
    b = np.array([1.0, 2.0, 3.0])

    with pytest.raises(SingularMatrixError) as exc_info:
        solve_linear(A, b, SolverConfig(), labels=("V(a)", "V(b)", "I(vs)"))

    err = exc_info.value
    if err.unknown is not None:
        assert err.label in ("V(a)", "V(b)")


def test_stiff_circuit_is_not_singular():
    """Large companion resistance next to a tiny conductance is still well posed."""
    import numpy as np
    from pyvolta import Network, R, L, VSource

    # Vs -- L (10mH) -- R (1MΩ) -- GND at dt=1ns: 2L/dt = 2e7 ohm vs 1e-6 S
    net = Network()
    net, a = net.node("a")
    net, b = net.node("b")
    net, _ = VSource(net, a, net.gnd, name="vs", value=1.0)
    net, l1 = L(net, a, b, name="L1", value=10e-3)
    net, _ = R(net, b, net.gnd, name="R1", value=1e6)

    sim = net.compile(dt=1e-9)
    state = sim.step(sim.init())

    # First trapezoidal step from rest: 1V across req + R
    i_expected = 1.0 / (2e7 + 1e6)
    assert float(sim.i(state, l1)) == pytest.approx(i_expected, rel=1e-9)
    assert float(sim.v(state, b)) == pytest.approx(1e6 * i_expected, rel=1e-9)

    _, traj = sim.run(state, 50)
    v_b = np.asarray(sim.v(traj, b))
    assert np.all(np.diff(v_b) > 0)


def test_empty_system():
    import numpy as np
    import scipy.sparse as sp
    from pyvolta.config import SolverConfig
    from pyvolta.linsolve import solve_linear

    x = solve_linear(sp.csc_matrix((0, 0)), np.zeros(0), SolverConfig())
    assert x.shape == (0,)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
