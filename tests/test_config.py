"""
Test: SolverConfig validation and junction limiting.
"""
import pytest


def test_defaults_are_valid():
    from pyvolta import SolverConfig

    cfg = SolverConfig()
    assert cfg.validate() is cfg
    assert cfg.method == "trapezoidal"
    assert cfg.linear_solver == "lu"


@pytest.mark.parametrize(
    "overrides",
    [
        {"method": "gear2"},
        {"linear_solver": "cholesky"},
        {"max_nr_iters": 0},
        {"reltol": 0.0},
        {"vntol": -1e-6},
        {"damping": 0.0},
        {"damping": 1.5},
        {"gmin": -1e-12},
        {"max_step_halvings": -1},
    ],
)
def test_invalid_options_rejected(overrides):
    from pyvolta import SolverConfig

    with pytest.raises(ValueError):
        SolverConfig(**overrides).validate()


def test_compile_validates_config():
    from pyvolta import Network, R, VSource, SolverConfig

    net = Network()
    net, a = net.node("a")
    net, _ = VSource(net, a, net.gnd, name="vs", value=1.0)
    net, _ = R(net, a, net.gnd, name="R1", value=1.0)

    with pytest.raises(ValueError):
        net.compile(config=SolverConfig(method="euler"))


def test_thermal_voltage_room_temperature():
    from pyvolta.config import thermal_voltage

    assert thermal_voltage(300.0) == pytest.approx(0.025852, rel=1e-4)


class TestPnjlim:

    def test_small_step_unchanged(self):
        from pyvolta.limiting import pnjlim

        assert float(pnjlim(0.61, 0.60, 0.05, 0.62)) == 0.61

    def test_below_vcrit_unchanged(self):
        from pyvolta.limiting import pnjlim

        assert float(pnjlim(0.5, 0.0, 0.05, 0.62)) == 0.5

    def test_large_forward_step_compressed(self):
        import math
        from pyvolta.limiting import pnjlim

        limited = float(pnjlim(5.0, 0.6, 0.05, 0.62))
        assert limited == pytest.approx(0.6 + 0.05 * math.log(1 + 4.4 / 0.05))
        assert limited < 1.0

    def test_from_reverse_bias(self):
        import math
        from pyvolta.limiting import pnjlim

        limited = float(pnjlim(5.0, -1.0, 0.05, 0.62))
        assert limited == pytest.approx(0.05 * math.log(5.0 / 0.05))

    def test_vcrit(self):
        import math
        from pyvolta.limiting import junction_vcrit

        assert junction_vcrit(0.05, 1e-14) == pytest.approx(0.05 * math.log(0.05 / (math.sqrt(2) * 1e-14)))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
