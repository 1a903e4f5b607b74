"""
Example: Voltage Divider

Demonstrates the voltage divider rule: V_out = V_in * R2 / (R1 + R2)

Two examples:
1. Simple 2-resistor divider built node by node
2. The same divider loaded from an index-addressed diagram (the JSON shape
   a schematic editor saves), with results mapped back to diagram indices

Components used: R, VSource
"""
import json

from pyvolta import Network, R, VSource, network_from_diagram, outputs


def build_simple_divider(V_in=10.0, R1=10000.0, R2=10000.0):
    """Build a simple 2-resistor voltage divider.

    Circuit:
        Vs ---[R1]---+---[R2]--- GND
                     |
                    Vout
    """
    net = Network()
    net, n_top = net.node("top")
    net, n_mid = net.node("mid")

    net, vs = VSource(net, n_top, net.gnd, name="vs", value=V_in)
    net, r1 = R(net, n_top, n_mid, name="R1", value=R1)
    net, r2 = R(net, n_mid, net.gnd, name="R2", value=R2)

    return net, {"top": n_top, "mid": n_mid}, {"vs": vs, "R1": r1, "R2": r2}


def simulate_simple_divider(V_in=10.0, R1=10000.0, R2=10000.0):
    """Solve the DC operating point and return (v_out, source current)."""
    net, nodes, comps = build_simple_divider(V_in, R1, R2)

    sim = net.compile()
    state = sim.op()

    v_out = float(sim.v(state, nodes["mid"]))
    i_src = float(sim.i(state, comps["vs"]))
    return v_out, i_src


DIAGRAM = """
{
    "num_nodes": 3,
    "two_terminal": [
        [[2, 0], {"Battery": 10.0}],
        [[0, 1], {"Resistor": 10000.0}],
        [[1, 2], {"Resistor": 20000.0}]
    ],
    "three_terminal": []
}
"""


def simulate_diagram():
    """Load the divider from JSON and return its SimOutputs."""
    mapped = network_from_diagram(json.loads(DIAGRAM))
    sim = mapped.network.compile()
    return outputs(sim, sim.op(), mapped)


def main():
    print("=" * 60)
    print("Voltage Divider Example")
    print("=" * 60)

    print("\n1. Simple Voltage Divider (R1 = R2 = 10k)")
    print("-" * 40)
    V_in = 10.0
    v_out, i_src = simulate_simple_divider(V_in=V_in)
    print(f"   Input voltage:    {V_in:.2f} V")
    print(f"   Output voltage:   {v_out:.4f} V")
    print(f"   Expected (50%):   {V_in * 0.5:.2f} V")
    # Source current flows p -> n through the source, so a source feeding a load reads negative
    print(f"   Source current:   {i_src * 1e3:.4f} mA")

    print("\n2. Diagram Divider (R1=10k, R2=20k)")
    print("-" * 40)
    out = simulate_diagram()
    for k, v in enumerate(out.voltages):
        print(f"   node {k}: {v:8.4f} V")
    for k, i in enumerate(out.two_terminal_current):
        print(f"   element {k}: {i * 1e3:8.4f} mA")
    print(f"   Expected tap:     {10.0 * 20000 / 30000:.4f} V")

    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
