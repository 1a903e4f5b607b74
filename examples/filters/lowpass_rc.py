"""
Example: RC Low-Pass Filter

Demonstrates first-order RC low-pass filter behavior:
- Time constant: tau = R * C
- Step response: V_out = V_step * (1 - exp(-t / tau))
- Trapezoidal and backward Euler integration compared against the exact curve

Components used: R, C, VSource
"""
import math

import numpy as np

from pyvolta import Network, R, C, VSource, SolverConfig


def build_lowpass_filter(R_val=1000.0, C_val=1e-6, V_step=5.0):
    """Build RC low-pass filter.

    Circuit:
        Vin ---[R]---+--- Vout
                     |
                    [C]
                     |
                    GND
    """
    net = Network()
    net, n_in = net.node("in")
    net, n_out = net.node("out")

    net, vs = VSource(net, n_in, net.gnd, name="vs", value=V_step)
    net, r1 = R(net, n_in, n_out, name="R1", value=R_val)
    net, c1 = C(net, n_out, net.gnd, name="C1", value=C_val)

    return net, {"in": n_in, "out": n_out}, {"vs": vs, "R1": r1, "C1": c1}


def simulate_step_response(method="trapezoidal", R_val=1000.0, C_val=1e-6, V_step=5.0, n_tau=5):
    """Simulate step response and return time/voltage arrays.

    Args:
        method: "trapezoidal" or "backward_euler"
        R_val: Resistance in ohms
        C_val: Capacitance in farads
        V_step: Step voltage amplitude
        n_tau: Number of time constants to simulate

    Returns:
        times: Array of time values
        voltages: Array of output voltage values
    """
    net, nodes, _ = build_lowpass_filter(R_val, C_val, V_step)

    tau = R_val * C_val
    dt = tau / 100  # 100 samples per time constant
    n_steps = int(n_tau * tau / dt)

    sim = net.compile(dt=dt, config=SolverConfig(method=method))
    _, traj = sim.run(sim.init(), n_steps)

    return np.asarray(traj.time), np.asarray(sim.v(traj, nodes["out"]))


def main():
    print("=" * 60)
    print("RC Low-Pass Filter Example")
    print("=" * 60)

    R_val, C_val, V_step = 1000.0, 1e-6, 5.0
    tau = R_val * C_val
    print(f"\n   R = {R_val:.0f} ohm, C = {C_val*1e6:.1f} uF, tau = {tau*1e3:.2f} ms")

    for method in ("trapezoidal", "backward_euler"):
        times, v_out = simulate_step_response(method, R_val, C_val, V_step)
        exact = V_step * (1.0 - np.exp(-times / tau))
        idx_tau = int(np.argmin(np.abs(times - tau)))

        print(f"\n{method}")
        print("-" * 40)
        print(f"   V(tau):           {v_out[idx_tau]:.4f} V (expected: {V_step * (1 - math.exp(-1)):.4f})")
        print(f"   V(5 tau):         {v_out[-1]:.4f} V")
        print(f"   Max error:        {np.max(np.abs(v_out - exact)) * 1e3:.3f} mV")

    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
