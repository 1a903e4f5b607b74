"""
Test: RLC circuit resonance.

A series RLC circuit has resonant frequency f0 = 1/(2*pi*sqrt(LC)).
With low R, it should oscillate. With high R, it should be overdamped.

This validates:
- Inductor companion model
- RLC interaction (capacitor node history + inductor branch history)
"""
import math
import pytest


def _rlc_network(R_val):
    from pyvolta import Network, R, C, L, VSource

    # Circuit: Vs -- L -- R -- C -- GND
    net = Network()
    net, n1 = net.node("n1")  # after Vs
    net, n2 = net.node("n2")  # between L and R
    net, n3 = net.node("n3")  # between R and C (output)

    net, vs = VSource(net, n1, net.gnd, name="vs", value=0.0)
    net, l1 = L(net, n1, n2, name="L1", value=1e-3)
    net, r1 = R(net, n2, n3, name="R1", value=R_val)
    net, c1 = C(net, n3, net.gnd, name="C1", value=1e-6)
    return net, n3


def test_rlc_underdamped_oscillation():
    """Underdamped RLC should oscillate at approximately the resonant frequency."""
    # L=1mH, C=1µF -> f0 ≈ 5033 Hz, period T0 ≈ 199 µs
    net, n3 = _rlc_network(10.0)

    f0 = 1.0 / (2.0 * math.pi * math.sqrt(1e-3 * 1e-6))
    T0 = 1.0 / f0

    dt = 1e-6
    sim = net.compile(dt=dt)
    state = sim.init()
    controls = {"vs": 5.0}

    n_steps = int(3 * T0 / dt)
    voltages = []
    times = []

    for step in range(n_steps):
        state = sim.step(state, controls)
        voltages.append(float(sim.v(state, n3)))
        times.append(float(state.time))

    # Crossings of the 5V steady-state level
    crossings = []
    dc_level = 5.0
    for i in range(1, len(voltages)):
        if (voltages[i - 1] < dc_level <= voltages[i]) or \
           (voltages[i - 1] >= dc_level > voltages[i]):
            t_cross = times[i - 1] + (dc_level - voltages[i - 1]) / (voltages[i] - voltages[i - 1]) * dt
            crossings.append(t_cross)

    assert len(crossings) >= 4, f"Expected oscillation, got only {len(crossings)} crossings"

    half_periods = [crossings[i + 1] - crossings[i] for i in range(len(crossings) - 1)]
    measured_period = 2 * sum(half_periods) / len(half_periods)

    # Damping shifts the frequency slightly
    assert abs(measured_period - T0) / T0 < 0.05, \
        f"Period {measured_period*1e6:.1f}µs differs from expected {T0*1e6:.1f}µs"


def test_rlc_overdamped():
    """Overdamped RLC should not oscillate."""
    net, n3 = _rlc_network(1000.0)

    sim = net.compile(dt=1e-6)
    state = sim.init()
    controls = {"vs": 5.0}

    prev_v = 0.0
    overshoots = 0

    for step in range(1000):
        state = sim.step(state, controls)
        v = float(sim.v(state, n3))
        if v > 5.0:
            overshoots += 1
        if v < prev_v - 0.01:  # significant decrease
            overshoots += 1
        prev_v = v

    assert overshoots < 10, f"Expected overdamped (monotonic), got {overshoots} overshoots"


def test_rlc_energy_conserved_without_resistance_loss():
    """With R tiny, trapezoidal integration keeps the oscillation amplitude (no numerical damping)."""
    import numpy as np

    net, n3 = _rlc_network(1e-3)
    sim = net.compile(dt=1e-6)

    _, traj = sim.run(sim.init(), 1000, {"vs": 5.0})
    v = np.asarray(sim.v(traj, n3))

    first_peak = v[:200].max()
    last_peak = v[-200:].max()
    assert first_peak > 9.5
    assert last_peak > 0.97 * first_peak


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
