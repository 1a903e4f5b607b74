"""
Example: Diode Clipper

A sine wave drives a series resistor into a pair of anti-parallel diodes.
The output follows the input until either diode turns on, then clips near
one forward drop. Each step is a Newton-Raphson solve; the number of
iterations per step is recorded in the trajectory.

Components used: R, Diode, VSource
"""
import math

import numpy as np

from pyvolta import Network, R, Diode, VSource


def build_clipper(R_val=1000.0):
    """Build an anti-parallel diode clipper.

    Circuit:
        Vin ---[R]---+--- Vout
                     |
                +----+----+
                |         |
               D1 v      ^ D2
                |         |
                +----+----+
                     |
                    GND
    """
    net = Network()
    net, n_in = net.node("in")
    net, n_out = net.node("out")

    net, vs = VSource(net, n_in, net.gnd, name="vs")
    net, r1 = R(net, n_in, n_out, name="R1", value=R_val)
    net, d1 = Diode(net, n_out, net.gnd, name="D1")
    net, d2 = Diode(net, net.gnd, n_out, name="D2")

    return net, {"in": n_in, "out": n_out}, {"vs": vs, "D1": d1, "D2": d2}


def simulate_clipper(amplitude=5.0, freq=1000.0, n_cycles=2, samples_per_cycle=200):
    """Drive the clipper with a sine and return (times, v_in, v_out, iterations)."""
    net, nodes, _ = build_clipper()

    dt = 1.0 / (freq * samples_per_cycle)
    sim = net.compile(dt=dt)
    omega = 2 * math.pi * freq

    def source(t):
        # value applied over the step that starts at t
        return {"vs": amplitude * math.sin(omega * (t + dt))}

    _, traj = sim.run(sim.init(), n_cycles * samples_per_cycle, source)

    return (
        np.asarray(traj.time),
        np.asarray(sim.v(traj, nodes["in"])),
        np.asarray(sim.v(traj, nodes["out"])),
        np.asarray(traj.iterations),
    )


def main():
    print("=" * 60)
    print("Diode Clipper Example")
    print("=" * 60)

    times, v_in, v_out, iterations = simulate_clipper()

    print(f"\n   Input peak:        {np.max(np.abs(v_in)):.3f} V")
    print(f"   Output max:        {np.max(v_out):.4f} V")
    print(f"   Output min:        {np.min(v_out):.4f} V")
    print(f"   NR iterations:     mean {np.mean(iterations):.2f}, max {int(np.max(iterations))}")

    print("\n   t (ms)     Vin (V)    Vout (V)")
    for k in range(0, len(times), 25):
        print(f"   {times[k]*1e3:7.3f}  {v_in[k]:9.4f}  {v_out[k]:9.4f}")

    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
