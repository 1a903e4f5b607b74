"""
Test: Diagram boundary.

Index-addressed diagrams (the shape a schematic editor serializes) become
Networks; results come back as SimOutputs in the diagram's own indices.
"""
import json
import math

import pytest


DIVIDER = {
    "num_nodes": 3,
    "two_terminal": [
        [[2, 0], {"Battery": 10.0}],
        [[0, 1], {"Resistor": 1000.0}],
        [[1, 2], {"Resistor": 1000.0}],
    ],
    "three_terminal": [],
}


def test_divider_from_diagram():
    from pyvolta import network_from_diagram, outputs

    mapped = network_from_diagram(DIVIDER)
    sim = mapped.network.compile()
    out = outputs(sim, sim.op(), mapped)

    assert out.voltages[0] == pytest.approx(10.0)
    assert out.voltages[1] == pytest.approx(5.0, abs=1e-9)
    assert out.voltages[2] == 0.0  # last node is ground by default

    # Currents flow from the first listed terminal to the second
    assert out.two_terminal_current[0] == pytest.approx(5e-3)
    assert out.two_terminal_current[1] == pytest.approx(5e-3)
    assert out.two_terminal_current[2] == pytest.approx(5e-3)
    assert out.three_terminal_current == ()


def test_diagram_survives_json_round_trip():
    from pyvolta import network_from_diagram

    mapped = network_from_diagram(json.loads(json.dumps(DIVIDER)))
    assert [ref.name for ref in mapped.two_terminal] == ["Battery0", "Resistor1", "Resistor2"]


def test_explicit_ground_and_wires():
    from pyvolta import network_from_diagram, outputs

    diagram = {
        "num_nodes": 4,
        "ground": 0,
        "two_terminal": [
            [[0, 1], {"Battery": 3.0}],
            [[1, 2], "Wire"],
            [[2, 3], {"Resistor": 300.0}],
            [[3, 0], {"Resistor": 300.0}],
        ],
    }
    mapped = network_from_diagram(diagram)
    sim = mapped.network.compile()
    out = outputs(sim, sim.op(), mapped)

    assert out.voltages == pytest.approx((0.0, 3.0, 3.0, 1.5))
    assert math.isnan(out.two_terminal_current[1])
    assert out.two_terminal_current[2] == pytest.approx(5e-3)


def test_switch_flag_means_open():
    from pyvolta import network_from_diagram, outputs

    diagram = {
        "num_nodes": 3,
        "two_terminal": [
            [[2, 0], {"Battery": 5.0}],
            [[0, 1], {"Resistor": 1000.0}],
            [[1, 2], {"Switch": True}],
        ],
    }
    mapped = network_from_diagram(diagram)
    sim = mapped.network.compile(dt=1e-6)
    state = sim.step(sim.init())
    out = outputs(sim, state, mapped)

    assert out.voltages[1] == pytest.approx(5.0)
    assert abs(out.two_terminal_current[2]) < 1e-15

    # Close it through the controls dict
    sw = mapped.two_terminal[2]
    state = sim.step(state, {sw.name: True})
    assert outputs(sim, state, mapped).voltages[1] == pytest.approx(0.0, abs=1e-12)


def test_transistor_terminal_order():
    """Three-terminal entries list (emitter, base, collector) and report currents in that order."""
    from pyvolta import network_from_diagram, outputs

    # nodes: 0 vcc, 1 vbb, 2 base, 3 collector, 4 ground
    diagram = {
        "num_nodes": 5,
        "two_terminal": [
            [[4, 0], {"Battery": 5.0}],
            [[4, 1], {"Battery": 1.0}],
            [[1, 2], {"Resistor": 100e3}],
            [[0, 3], {"Resistor": 1000.0}],
        ],
        "three_terminal": [
            [[4, 2, 3], {"NTransistor": 100.0}],
        ],
    }
    mapped = network_from_diagram(diagram)
    sim = mapped.network.compile()
    out = outputs(sim, sim.op(), mapped)

    (ie, ib, ic), = out.three_terminal_current
    assert ic / ib == pytest.approx(100.0, rel=0.01)
    assert ie == pytest.approx(-(ib + ic))
    assert out.two_terminal_current[3] == pytest.approx(ic, rel=1e-3)


def test_duplicate_ground_rejected():
    from pyvolta import network_from_diagram, StructuralError

    diagram = dict(DIVIDER, ground=[0, 2])
    with pytest.raises(StructuralError) as exc_info:
        network_from_diagram(diagram)
    assert "Duplicate ground" in str(exc_info.value)


def test_bad_entries_rejected():
    from pyvolta import network_from_diagram, StructuralError, InvalidParameterError

    with pytest.raises(StructuralError):
        network_from_diagram({"num_nodes": 2, "two_terminal": [[[0, 5], {"Resistor": 1.0}]]})

    with pytest.raises(ValueError):
        network_from_diagram({"num_nodes": 2, "two_terminal": [[[0, 1], {"Memristor": 1.0}]]})

    with pytest.raises(InvalidParameterError):
        network_from_diagram({"num_nodes": 2, "two_terminal": [[[0, 1], {"Resistor": -1.0}]]})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
