"""
test_core.py - Unit tests per i moduli core

Eseguire con: pytest tests/test_core.py -v
"""

import pytest
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from spacetherm.core import (
    build_thermal_network, ThermalModel, Node, Conductor, HeatLoad, OrbitalConfig,
    MaterialManager, MaterialType, ValidationError, NodeKind,
    conductor_flow, interpolate_geff, NodeProperty, ConductorProperty, parameter_target,
)
from spacetherm.core.conductors import radiation_flow
from spacetherm.core.constants import STEFAN_BOLTZMANN
from spacetherm.core.orbital import (
    compute_orbital_environment, orbital_state, orbital_heat_load, orbital_period,
    earth_view_factor, eclipse_fraction, generate_orbital_heat_profile,
)
from spacetherm.core.model import OrbitalHeatLoadParams
from spacetherm.core.parameters import parameter_from_dict, NodeField
from spacetherm.core.profiles import HeatLoadProfile, interpolate_time_values


def two_node_records():
    nodes = [
        {"id": "A", "kind": "boundary", "boundary_temp": 300.0},
        {"id": "B", "kind": "diffusion", "temperature": 300.0, "capacitance": 100.0},
    ]
    conductors = [{"id": "G", "type": "linear", "node_from": "B", "node_to": "A",
                   "conductance": 10.0}]
    loads = [{"id": "Q", "node_id": "B", "type": "constant", "value": 50.0}]
    return nodes, conductors, loads


LEO = {"altitude": 400.0, "inclination": 51.6, "raan": 0.0, "epoch": "2024-03-20T00:00:00Z"}


class TestNetworkBuilder:
    """Test per la costruzione e validazione della rete"""

    def test_build_two_node(self):
        """Indici, tipi e adiacenza"""
        network = build_thermal_network(*two_node_records())

        assert network.n_nodes == 2
        assert network.n_conductors == 1
        assert list(network.boundary_idx) == [network.index["A"]]
        assert list(network.diffusion_idx) == [network.index["B"]]
        assert network.initial_temperatures[network.index["A"]] == 300.0

        links_b = network.adjacency[network.index["B"]]
        assert len(links_b) == 1
        assert links_b[0].sign == -1   # B è il nodo "from"

    def test_arrays_are_readonly(self):
        network = build_thermal_network(*two_node_records())
        with pytest.raises(ValueError):
            network.initial_temperatures[0] = 1.0

    def test_camel_case_keys(self):
        """Le chiavi camelCase dei servizi esterni sono accettate"""
        network = build_thermal_network(
            nodes=[{"id": "a", "nodeType": "boundary", "boundaryTemp": 250.0},
                   {"id": "b", "nodeType": "diffusion", "capacitance": 10.0}],
            conductors=[{"id": "c", "conductorType": "linear", "nodeFrom": "a",
                         "nodeTo": "b", "conductance": 1.0}],
            heat_loads=[{"id": "q", "nodeId": "b", "loadType": "time_varying",
                         "timeValues": [{"time": 0, "value": 1}, {"time": 10, "value": 2}]}],
        )
        assert network.node("a").boundary_temp == 250.0
        assert network.node_loads[network.index["b"]][0].get_power(5.0) == pytest.approx(1.5)

    def test_unknown_node_reference(self):
        nodes, conductors, loads = two_node_records()
        conductors[0]["node_to"] = "X"
        with pytest.raises(ValidationError) as info:
            build_thermal_network(nodes, conductors, loads)
        assert info.value.entity_type == "conductor"
        assert info.value.entity_id == "G"

    def test_self_loop_rejected(self):
        nodes, conductors, loads = two_node_records()
        conductors[0]["node_to"] = "B"
        with pytest.raises(ValidationError):
            build_thermal_network(nodes, conductors, loads)

    def test_duplicate_ids_rejected(self):
        nodes, conductors, loads = two_node_records()
        nodes.append({"id": "B", "kind": "diffusion", "capacitance": 1.0})
        with pytest.raises(ValidationError):
            build_thermal_network(nodes, conductors, loads)

    def test_diffusion_requires_capacitance(self):
        nodes, conductors, loads = two_node_records()
        nodes[1]["capacitance"] = 0.0
        with pytest.raises(ValidationError) as info:
            build_thermal_network(nodes, conductors, loads)
        assert info.value.entity_id == "B"

    def test_capacitance_from_material(self):
        """C = massa · cp se la capacità non è data"""
        nodes, conductors, loads = two_node_records()
        nodes[1] = {"id": "B", "kind": "diffusion", "mass": 2.0, "material_id": "aluminum_6061"}
        network = build_thermal_network(nodes, conductors, loads)
        cp = MaterialManager().get("aluminum_6061").cp
        assert network.capacitance[network.index["B"]] == pytest.approx(2.0 * cp)

    def test_boundary_requires_temperature(self):
        nodes, conductors, loads = two_node_records()
        del nodes[0]["boundary_temp"]
        with pytest.raises(ValidationError):
            build_thermal_network(nodes, conductors, loads)

    def test_isolated_arithmetic_rejected(self):
        nodes, conductors, loads = two_node_records()
        nodes.append({"id": "M", "kind": "arithmetic"})
        with pytest.raises(ValidationError):
            build_thermal_network(nodes, conductors, loads)

    def test_radiation_invariants(self):
        nodes, _, loads = two_node_records()
        bad = [{"id": "R", "type": "radiation", "node_from": "B", "node_to": "A",
                "area": 1.0, "view_factor": 1.5, "emissivity": 0.8}]
        with pytest.raises(ValidationError):
            build_thermal_network(nodes, bad, loads)
        bad[0].update(view_factor=0.5, area=0.0)
        with pytest.raises(ValidationError):
            build_thermal_network(nodes, bad, loads)

    def test_heat_pipe_needs_two_ordered_points(self):
        nodes, _, loads = two_node_records()
        hp = [{"id": "HP", "type": "heat_pipe", "node_from": "B", "node_to": "A",
               "conductance_data": [[300.0, 1.0]]}]
        with pytest.raises(ValidationError):
            build_thermal_network(nodes, hp, loads)
        hp[0]["conductance_data"] = [[300.0, 1.0], [250.0, 2.0]]
        with pytest.raises(ValidationError):
            build_thermal_network(nodes, hp, loads)

    def test_orbital_load_requires_orbit(self):
        nodes, conductors, _ = two_node_records()
        loads = [{"id": "sun", "node_id": "B", "type": "orbital",
                  "orbital_params": {"surface_type": "solar"}}]
        with pytest.raises(ValidationError):
            build_thermal_network(nodes, conductors, loads)
        network = build_thermal_network(nodes, conductors, loads, orbital_config=LEO)
        assert network.orbital_environment is not None

    def test_invalid_enum_value(self):
        with pytest.raises(ValidationError):
            Node(id="n", kind="solid")

    def test_with_temperatures_keeps_boundaries(self):
        network = build_thermal_network(*two_node_records())
        seeded = network.with_temperatures({"A": 10.0, "B": 320.0})
        assert seeded.initial_temperatures[seeded.index["A"]] == 300.0
        assert seeded.initial_temperatures[seeded.index["B"]] == 320.0
        assert network.initial_temperatures[network.index["B"]] == 300.0


class TestConductors:
    """Test per i modelli dei conduttori"""

    def test_linear_and_contact(self):
        lin = Conductor("c1", "linear", "a", "b", conductance=2.0)
        con = Conductor("c2", "contact", "a", "b", conductance=2.0)
        assert conductor_flow(lin, 310.0, 300.0) == pytest.approx(20.0)
        assert conductor_flow(con, 300.0, 310.0) == pytest.approx(-20.0)

    def test_radiation(self):
        rad = Conductor("r", "radiation", "a", "b", area=2.0, view_factor=0.5, emissivity=0.8)
        expected = STEFAN_BOLTZMANN * 0.8 * 2.0 * 0.5 * (400.0**4 - 300.0**4)
        assert conductor_flow(rad, 400.0, 300.0) == pytest.approx(expected)
        assert radiation_flow(0.8, 2.0, 0.5, 300.0, 300.0) == 0.0

    def test_interpolate_geff(self):
        """Esatto ai punti, lineare tra i punti, saturato fuori"""
        points = [(250.0, 1.0), (300.0, 3.0), (350.0, 2.0)]
        assert interpolate_geff(points, 300.0) == pytest.approx(3.0)
        assert interpolate_geff(points, 275.0) == pytest.approx(2.0)
        assert interpolate_geff(points, 325.0) == pytest.approx(2.5)
        assert interpolate_geff(points, 100.0) == pytest.approx(1.0)
        assert interpolate_geff(points, 500.0) == pytest.approx(2.0)

    def test_interpolate_geff_step(self):
        """Con temperature ripetute vale l'ultimo punto"""
        points = [(200.0, 0.5), (280.0, 0.5), (280.0, 5.0), (320.0, 5.0)]
        assert interpolate_geff(points, 280.0) == pytest.approx(5.0)
        assert interpolate_geff(points, 279.0) == pytest.approx(0.5)

    def test_heat_pipe_flow(self):
        hp = Conductor("hp", "heat_pipe", "a", "b",
                       conductance_data=[(250.0, 1.0), (350.0, 3.0)])
        # T_avg = 300 → G = 2
        assert conductor_flow(hp, 310.0, 290.0) == pytest.approx(40.0)


class TestHeatLoadProfiles:

    def test_table_interpolation(self):
        table = [(0.0, 0.0), (100.0, 10.0)]
        assert interpolate_time_values(table, 50.0) == pytest.approx(5.0)
        assert interpolate_time_values(table, -10.0) == pytest.approx(0.0)
        assert interpolate_time_values(table, 1e6) == pytest.approx(10.0)

    def test_time_varying_alias(self):
        load = HeatLoad(id="q", node_id="n", type="time_varying", time_values=[(0, 1)])
        assert load.type.value == "table"


class TestOrbitalEnvironment:
    """Test per il modello ambientale orbitale"""

    def test_period(self):
        # ISS circa 92.6 minuti
        assert orbital_period(420.0) / 60.0 == pytest.approx(92.8, abs=0.5)

    def test_earth_view_factor_decreases(self):
        assert earth_view_factor(400.0) > earth_view_factor(2000.0) > earth_view_factor(35786.0)

    def test_eclipse_fraction_limits(self):
        assert 0.3 < eclipse_fraction(400.0, 0.0) < 0.45
        assert eclipse_fraction(400.0, 80.0) == 0.0

    def test_environment_summary(self):
        env = compute_orbital_environment(OrbitalConfig.from_dict(LEO))
        assert env.sunlit_fraction == pytest.approx(1.0 - env.eclipse_fraction)
        assert 1300.0 < env.solar_flux < 1420.0
        assert env.earth_ir < 237.0

    def test_state_is_pure(self):
        config = OrbitalConfig.from_dict(LEO)
        assert orbital_state(config, 1234.0) == orbital_state(config, 1234.0)

    def test_noon_is_sunlit_and_midnight_in_eclipse(self):
        config = OrbitalConfig(altitude=400.0, inclination=0.0, raan=0.0,
                               epoch="2024-03-20T00:00:00Z")
        period = orbital_period(400.0)
        noon = orbital_state(config, 0.0)
        midnight = orbital_state(config, period / 2.0)
        assert not noon.in_eclipse
        assert noon.solar_flux > 1300.0
        assert midnight.in_eclipse
        assert midnight.solar_flux == 0.0
        assert midnight.albedo_flux == 0.0
        assert midnight.earth_ir > 0.0

    def test_heat_load_surface_types(self):
        config = OrbitalConfig(altitude=400.0, inclination=0.0, raan=0.0)
        node = Node(id="n", area=1.0, absorptivity=0.5, emissivity=0.5)
        state = orbital_state(config, 0.0)
        anti = orbital_heat_load(config, 0.0, OrbitalHeatLoadParams("anti_earth"), node)
        earth = orbital_heat_load(config, 0.0, OrbitalHeatLoadParams("earth_facing"), node)
        solar = orbital_heat_load(config, 0.0, OrbitalHeatLoadParams("solar"), node)
        assert anti == pytest.approx(0.5 * state.solar_flux)
        assert solar == pytest.approx(anti + earth)

    def test_state_cache_is_per_profile(self):
        """Nessuna cache globale: ogni profilo orbitale tiene i propri stati"""
        assert not hasattr(orbital_state, "cache_info")
        config = OrbitalConfig(altitude=400.0, inclination=0.0, raan=0.0)
        node = Node(id="n", area=1.0, absorptivity=0.5, emissivity=0.5)
        load = HeatLoad(id="q", node_id="n", type="orbital",
                        orbital_params=OrbitalHeatLoadParams("solar"))
        first = HeatLoadProfile(load, node, config)
        second = HeatLoadProfile(load, node, config)
        power = first.get_power(600.0)
        assert power == pytest.approx(
            orbital_heat_load(config, 600.0, OrbitalHeatLoadParams("solar"), node))
        assert first.get_power(600.0) == power
        assert list(first._states) == [600.0]
        assert second._states == {}
        assert first.orbital_state(600.0) == orbital_state(config, 600.0)

    def test_profile_length(self):
        profile = generate_orbital_heat_profile(OrbitalConfig.from_dict(LEO), num_steps=36)
        assert profile.times.shape == (36,)
        assert profile.in_sunlight.any()

    def test_altitude_validation(self):
        nodes, conductors, _ = two_node_records()
        with pytest.raises(ValidationError):
            build_thermal_network(nodes, conductors, [],
                                  orbital_config=dict(LEO, altitude=100.0))


class TestMaterialManager:
    """Test per il database materiali"""

    def test_get_material(self):
        manager = MaterialManager()
        al = manager.get("aluminum_6061")
        assert al.cp > 800
        assert 0.0 <= al.absorptivity <= 1.0

    def test_categories(self):
        manager = MaterialManager()
        coatings = manager.list_materials(MaterialType.COATING)
        assert "white_paint" in coatings
        assert set(coatings) <= set(manager.list_materials())

    def test_unknown_material(self):
        with pytest.raises(KeyError):
            MaterialManager().get("unobtainium")

    def test_unknown_material_in_node(self):
        nodes, conductors, loads = two_node_records()
        nodes[1]["material_id"] = "unobtainium"
        with pytest.raises(ValidationError):
            build_thermal_network(nodes, conductors, loads)


class TestParameters:
    """Test per i riferimenti tipizzati ai parametri"""

    def test_key_and_get(self):
        model = build_thermal_network(*two_node_records()).model
        target = ConductorProperty("G", "conductance")
        assert target.key == "conductor_G_conductance"
        assert target.get(model) == 10.0

    def test_apply_returns_copy(self):
        model = build_thermal_network(*two_node_records()).model
        changed = NodeProperty("B", NodeField.CAPACITANCE).apply(model, 50.0)
        assert changed.node("B").capacitance == 50.0
        assert model.node("B").capacitance == 100.0

    def test_invalid_field_rejected(self):
        with pytest.raises(ValidationError):
            parameter_target("node", "B", "colour")
        with pytest.raises(ValidationError):
            parameter_target("satellite", "B", "mass")

    def test_from_dict_camel_case(self):
        target = parameter_from_dict({"entityType": "conductor", "entityId": "R",
                                      "property": "viewFactor"})
        assert target.key == "conductor_R_view_factor"

    def test_undefined_value(self):
        model = ThermalModel(nodes=(Node(id="n", capacitance=1.0),))
        with pytest.raises(ValidationError):
            NodeProperty("n", "mass").get(model)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
