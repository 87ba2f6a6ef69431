"""
test_solver.py - Unit tests per i moduli solver

Eseguire con: pytest tests/test_solver.py -v
"""

import pytest
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from spacetherm.core import (
    build_thermal_network, ValidationError, ConvergenceFailure, TimeoutExceeded,
)
from spacetherm.core.constants import STEFAN_BOLTZMANN
from spacetherm.solver import (
    SimulationConfig, SteadyStateSolver, TransientSolver, RunStatus,
    solve_steady_state, solve_transient, run_simulation, steady_state_config,
)
from spacetherm.solver.heat_flow import conductor_flow_jacobian, conductor_flows, net_heat
from spacetherm.solver.matrix_builder import build_jacobian


def two_node_network(G=10.0, C=100.0, Q=50.0, T_boundary=300.0):
    """Nodo A boundary, nodo B diffusion con carico costante: T_B = T_A + Q/G"""
    return build_thermal_network(
        nodes=[
            {"id": "A", "kind": "boundary", "boundary_temp": T_boundary},
            {"id": "B", "kind": "diffusion", "temperature": T_boundary, "capacitance": C},
        ],
        conductors=[{"id": "G", "type": "linear", "node_from": "B", "node_to": "A",
                     "conductance": G}],
        heat_loads=[{"id": "Q", "node_id": "B", "type": "constant", "value": Q}],
    )


def radiating_network(Q=100.0, area=0.5, emissivity=0.8):
    return build_thermal_network(
        nodes=[
            {"id": "plate", "kind": "diffusion", "temperature": 290.0, "capacitance": 500.0},
            {"id": "space", "kind": "boundary", "boundary_temp": 3.0},
        ],
        conductors=[{"id": "rad", "type": "radiation", "node_from": "plate",
                     "node_to": "space", "area": area, "view_factor": 1.0,
                     "emissivity": emissivity}],
        heat_loads=[{"id": "q", "node_id": "plate", "type": "constant", "value": Q}],
    )


HEAT_PIPE_CURVE = [
    (200.0, 0.5), (279.0, 0.5), (280.0, 5.0),
    (320.0, 5.0), (321.0, 0.5), (400.0, 0.5),
]


def heat_pipe_network(Q, T_cold):
    return build_thermal_network(
        nodes=[
            {"id": "hot", "kind": "diffusion", "temperature": T_cold + 5.0, "capacitance": 100.0},
            {"id": "cold", "kind": "boundary", "boundary_temp": T_cold},
        ],
        conductors=[{"id": "hp", "type": "heat_pipe", "node_from": "hot", "node_to": "cold",
                     "conductance_data": HEAT_PIPE_CURVE}],
        heat_loads=[{"id": "load", "node_id": "hot", "type": "constant", "value": Q}],
    )


def transient_config(method="rk4", time_end=100.0, **kwargs):
    defaults = dict(simulation_type="transient", solver_method=method, time_start=0.0,
                    time_end=time_end, time_step=0.5, tolerance=1e-6, max_step=5.0)
    defaults.update(kwargs)
    return SimulationConfig(**defaults)


class TestHeatFlow:
    """Test per la valutazione vettorizzata dei flussi"""

    def test_flow_sign(self):
        network = two_node_network()
        T = np.array([300.0, 310.0])
        assert conductor_flows(network, T)[0] == pytest.approx(100.0)   # B → A

    def test_net_heat_balance(self):
        network = two_node_network()
        F = net_heat(network, np.array([300.0, 305.0]), 0.0)
        assert F[network.index["B"]] == pytest.approx(0.0, abs=1e-9)

    def test_jacobian_is_sparse_and_symmetric_for_linear(self):
        network = two_node_network()
        J = build_jacobian(network, np.array([300.0, 305.0])).toarray()
        assert J[1, 1] == pytest.approx(-10.0)
        assert J[0, 1] == pytest.approx(J[1, 0])

    def test_conductor_jacobian_matches_finite_difference(self):
        """Radiazione e heat pipe sul tratto in discesa della curva (T_avg = 320.5 K)"""
        network = build_thermal_network(
            nodes=[
                {"id": "hot", "kind": "diffusion", "capacitance": 100.0},
                {"id": "cold", "kind": "boundary", "boundary_temp": 318.5},
                {"id": "plate", "kind": "diffusion", "capacitance": 100.0},
            ],
            conductors=[
                {"id": "hp", "type": "heat_pipe", "node_from": "hot", "node_to": "cold",
                 "conductance_data": HEAT_PIPE_CURVE},
                {"id": "rad", "type": "radiation", "node_from": "plate", "node_to": "cold",
                 "area": 1.0, "view_factor": 1.0, "emissivity": 0.9},
            ],
        )
        T = np.zeros(network.n_nodes)
        T[network.index["hot"]] = 322.5
        T[network.index["cold"]] = 318.5
        T[network.index["plate"]] = 350.0
        d_from, d_to = conductor_flow_jacobian(network, T)
        h = 1e-3
        for c in range(len(network.cond_from)):
            for i, analytic in ((network.cond_from[c], d_from[c]), (network.cond_to[c], d_to[c])):
                T_plus, T_minus = T.copy(), T.copy()
                T_plus[i] += h
                T_minus[i] -= h
                fd = (conductor_flows(network, T_plus)[c]
                      - conductor_flows(network, T_minus)[c]) / (2 * h)
                assert analytic == pytest.approx(fd, rel=1e-6)
        # G_eff = 2.75 W/K, dG/dT = -4.5 W/K²: ∂Q/∂T_from = 2.75 - 0.5·4.5·4
        hp = [c.id for c in network.conductors].index("hp")
        assert d_from[hp] == pytest.approx(-6.25)


class TestSteadyState:
    """Test per il solutore stazionario"""

    def test_two_node_scenario(self):
        """T_B = 300 + 50/10 = 305 K"""
        result = solve_steady_state(two_node_network())
        assert result.converged
        assert result.status == RunStatus.COMPLETED
        assert result.final_temperatures()["B"] == pytest.approx(305.0, abs=1e-6)

    def test_energy_conservation_parallel_conductors(self):
        """ΔT = Q / ΣG con due conduttori verso lo stesso boundary"""
        network = build_thermal_network(
            nodes=[{"id": "sink", "kind": "boundary", "boundary_temp": 280.0},
                   {"id": "box", "kind": "diffusion", "capacitance": 10.0}],
            conductors=[
                {"id": "g1", "type": "linear", "node_from": "box", "node_to": "sink",
                 "conductance": 2.0},
                {"id": "g2", "type": "contact", "node_from": "sink", "node_to": "box",
                 "conductance": 3.0},
            ],
            heat_loads=[{"id": "q", "node_id": "box", "value": 25.0}],
        )
        result = solve_steady_state(network)
        assert result.final_temperatures()["box"] == pytest.approx(285.0, abs=1e-6)
        assert result.energy_balance.is_balanced

    def test_radiation_equilibrium(self):
        """σεA(T⁴ - T_s⁴) = Q"""
        result = solve_steady_state(radiating_network(Q=100.0, area=0.5, emissivity=0.8))
        expected = (100.0 / (STEFAN_BOLTZMANN * 0.8 * 0.5) + 3.0**4) ** 0.25
        assert result.converged
        assert result.final_temperatures()["plate"] == pytest.approx(expected, rel=1e-6)

    def test_arithmetic_node(self):
        """Nodo senza massa tra due boundary: media pesata dalle conduttanze"""
        network = build_thermal_network(
            nodes=[{"id": "cold", "kind": "boundary", "boundary_temp": 300.0},
                   {"id": "hot", "kind": "boundary", "boundary_temp": 400.0},
                   {"id": "mid", "kind": "arithmetic"}],
            conductors=[
                {"id": "a", "type": "linear", "node_from": "cold", "node_to": "mid",
                 "conductance": 1.0},
                {"id": "b", "type": "linear", "node_from": "mid", "node_to": "hot",
                 "conductance": 3.0},
            ],
        )
        result = solve_steady_state(network)
        assert result.final_temperatures()["mid"] == pytest.approx(375.0, abs=1e-6)

    def test_idempotence(self):
        network = radiating_network()
        first = solve_steady_state(network, tolerance=1e-8)
        second = solve_steady_state(network.with_temperatures(first.final_temperatures()),
                                    tolerance=1e-8)
        for node_id, T in first.final_temperatures().items():
            assert abs(second.final_temperatures()[node_id] - T) <= 1e-8

    def test_boundary_invariance(self):
        result = solve_steady_state(radiating_network(Q=1e4))
        assert result.final_temperatures()["space"] == 3.0

    def test_iteration_cap_is_not_an_exception(self):
        config = steady_state_config(max_iterations=1, tolerance=1e-12)
        result = SteadyStateSolver(radiating_network(), config).solve()
        assert not result.converged
        assert result.status == RunStatus.NOT_CONVERGED
        assert result.failure_state is not None
        with pytest.raises(ConvergenceFailure):
            result.raise_for_status()

    @pytest.mark.parametrize("Q, T_cold, G_eff", [
        (2.0, 270.0, 0.5),      # sotto l'intervallo operativo
        (10.0, 290.0, 5.0),     # intervallo operativo
        (20.0, 330.0, 0.5),     # oltre l'intervallo operativo
    ])
    def test_heat_pipe_operating_points(self, Q, T_cold, G_eff):
        """ΔT = Q / G_eff(T_avg)"""
        config = steady_state_config(max_iterations=2000, tolerance=1e-8)
        result = SteadyStateSolver(heat_pipe_network(Q, T_cold), config).solve()
        delta_T = result.final_temperatures()["hot"] - T_cold
        assert result.converged
        assert delta_T == pytest.approx(Q / G_eff, rel=1e-3)


class TestTransient:
    """Test per il solutore transitorio"""

    def test_exponential_approach(self):
        """T_B(t) = 300 + 5·(1 - exp(-t·G/C)), τ = 10 s"""
        result = solve_transient(two_node_network(), transient_config(time_end=50.0))
        T_B = result.node_temperatures("B")
        expected = 300.0 + 5.0 * (1.0 - np.exp(-result.time_points / 10.0))
        assert result.status == RunStatus.COMPLETED
        assert result.time_points[0] == 0.0
        assert result.time_points[-1] == pytest.approx(50.0)
        np.testing.assert_allclose(T_B, expected, atol=1e-4)

    @pytest.mark.parametrize("method", ["rk4", "rk4_fixed", "implicit_euler", "crank_nicolson"])
    def test_all_methods_reach_steady_state(self, method):
        config = transient_config(method, time_end=300.0, tolerance=1e-5)
        result = solve_transient(two_node_network(), config)
        assert result.ok
        assert result.final_temperatures()["B"] == pytest.approx(305.0, abs=1e-2)

    def test_boundary_invariance(self):
        network = two_node_network(Q=5000.0)
        result = solve_transient(network, transient_config(time_end=20.0))
        assert np.all(result.node_temperatures("A") == 300.0)

    def test_energy_balance_attached(self):
        result = solve_transient(two_node_network(), transient_config(time_end=60.0))
        eb = result.energy_balance
        assert eb is not None
        assert eb.total_energy_in == pytest.approx(50.0 * 60.0)
        assert eb.is_balanced

    def test_radiation_cooldown_is_monotonic(self):
        network = radiating_network(Q=0.0)
        result = solve_transient(network, transient_config("implicit_euler", time_end=600.0,
                                                           time_step=5.0, max_step=60.0,
                                                           tolerance=1e-4))
        T = result.node_temperatures("plate")
        assert result.ok
        assert np.all(np.diff(T) <= 1e-9)

    def test_progress_callback(self):
        calls = []
        solve_transient(two_node_network(), transient_config("rk4_fixed", time_end=5.0),
                        progress_callback=lambda t, T: calls.append(t))
        assert len(calls) == 10
        assert calls == sorted(calls)
        assert calls[-1] == pytest.approx(5.0)

    def test_table_load(self):
        """Carico tabellare a gradino: la temperatura sale solo dopo t = 50 s"""
        network = build_thermal_network(
            nodes=[{"id": "A", "kind": "boundary", "boundary_temp": 300.0},
                   {"id": "B", "kind": "diffusion", "temperature": 300.0, "capacitance": 100.0}],
            conductors=[{"id": "G", "type": "linear", "node_from": "B", "node_to": "A",
                         "conductance": 10.0}],
            heat_loads=[{"id": "Q", "node_id": "B", "type": "table",
                         "time_values": [[0, 0], [50, 0], [50, 50], [100, 50]]}],
        )
        result = solve_transient(network, transient_config("rk4_fixed", time_end=100.0))
        T_B = result.node_temperatures("B")
        before = result.time_points < 50.0
        assert np.allclose(T_B[before], 300.0)
        assert T_B[-1] > 304.0

    def test_timeout_from_iteration_budget(self):
        config = transient_config("rk4_fixed", time_end=100.0, max_iterations=3)
        result = solve_transient(two_node_network(), config)
        assert result.status == RunStatus.FAILED
        assert result.failure_kind == "timeout"
        assert result.failure_reason.startswith("timeout")
        assert len(result.time_points) == 0
        assert result.failure_state is not None
        with pytest.raises(TimeoutExceeded):
            result.raise_for_status()

    def test_partial_trace(self):
        config = transient_config("rk4_fixed", time_end=100.0, max_iterations=3,
                                  keep_partial_trace=True)
        result = TransientSolver(two_node_network(), config).solve()
        assert result.status == RunStatus.FAILED
        assert len(result.time_points) == 4   # iniziale + 3 passi
        assert result.failure_time == pytest.approx(1.5)

    def test_orbital_run_is_finite(self):
        network = build_thermal_network(
            nodes=[{"id": "panel", "kind": "diffusion", "capacitance": 2000.0,
                    "temperature": 280.0, "area": 0.1, "absorptivity": 0.6,
                    "emissivity": 0.8},
                   {"id": "space", "kind": "boundary", "boundary_temp": 3.0}],
            conductors=[{"id": "rad", "type": "radiation", "node_from": "panel",
                         "node_to": "space", "area": 0.1, "view_factor": 1.0,
                         "emissivity": 0.8}],
            heat_loads=[{"id": "sun", "node_id": "panel", "type": "orbital",
                         "orbital_params": {"surface_type": "solar"}}],
            orbital_config={"altitude": 500.0, "inclination": 0.0, "raan": 0.0},
        )
        config = transient_config("crank_nicolson", time_end=5400.0, time_step=30.0,
                                  max_step=120.0, tolerance=1e-3)
        result = solve_transient(network, config)
        T = result.node_temperatures("panel")
        assert result.ok
        assert np.all(np.isfinite(T))
        # Riscaldamento al sole, raffreddamento in eclisse
        assert T.max() > 280.0
        assert T.max() - T.min() > 1.0

    def test_non_finite_temperature_fails_run(self):
        """Capacità minima e passo fisso enorme: RK4 diverge al primo passo"""
        network = build_thermal_network(
            nodes=[
                {"id": "plate", "kind": "diffusion", "temperature": 290.0, "capacitance": 1e-3},
                {"id": "space", "kind": "boundary", "boundary_temp": 3.0},
            ],
            conductors=[{"id": "rad", "type": "radiation", "node_from": "plate",
                         "node_to": "space", "area": 0.5, "view_factor": 1.0,
                         "emissivity": 0.8}],
            heat_loads=[{"id": "q", "node_id": "plate", "type": "constant", "value": 100.0}],
        )
        settings = dict(simulation_type="transient", solver_method="rk4_fixed",
                        time_start=0.0, time_end=1000.0, time_step=500.0)
        with np.errstate(over="ignore", invalid="ignore"):
            result = solve_transient(network, SimulationConfig(**settings))
            partial = solve_transient(network, SimulationConfig(keep_partial_trace=True,
                                                                **settings))

        assert result.status == RunStatus.FAILED
        assert not result.ok
        assert result.failure_kind == "numerical"
        assert "temperatura non finita a t = 500.000 s (nodi: plate)" in result.failure_reason
        assert result.failure_time == pytest.approx(500.0)
        assert set(result.failure_state) == {"plate", "space"}
        assert result.failure_state["space"] == 3.0
        assert result.time_points.size == 0

        assert partial.status == RunStatus.FAILED
        assert partial.failure_reason == result.failure_reason
        assert len(partial.time_points) == 1
        assert partial.time_points[-1] < 1000.0
        assert partial.node_temperatures("plate")[0] == pytest.approx(290.0)


class TestRunner:
    """Test per il dispatch e la configurazione"""

    def test_dict_config_camel_case(self):
        result = run_simulation(two_node_network(), {
            "simulationType": "transient", "solverMethod": "rk4_fixed",
            "timeStart": 0, "timeEnd": 10, "timeStep": 1,
        })
        assert result.ok
        assert result.config.time_end == 10

    def test_steady_dispatch(self):
        result = run_simulation(two_node_network(), steady_state_config())
        assert len(result.time_points) == 1
        assert result.final_temperatures()["B"] == pytest.approx(305.0, abs=1e-6)

    def test_invalid_config(self):
        with pytest.raises(ValidationError):
            SimulationConfig(time_start=0.0, time_end=10.0, time_step=20.0)
        with pytest.raises(ValidationError):
            SimulationConfig(solver_method="euler")
        with pytest.raises(ValidationError):
            SimulationConfig(max_step=1e-4, min_step=1e-3)

    def test_to_dict(self):
        data = run_simulation(two_node_network(), steady_state_config()).to_dict()
        assert data["status"] == "completed"
        assert data["nodeResults"][1]["nodeId"] == "B"
        assert "energyBalance" in data


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
