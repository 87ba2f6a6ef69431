"""
main.py - Script principale per simulazioni termiche di veicoli spaziali

Esempio di workflow completo:
1. Costruisce la rete termica di un CubeSat 1U in orbita LEO
2. Risolve il caso stazionario
3. Simula un'orbita in transitorio
4. Analizza bilancio energetico e sensitività
5. Calcola un fattore di vista con ray tracing Monte Carlo
"""

import argparse
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from spacetherm.core import build_thermal_network
from spacetherm.core.orbital import compute_orbital_environment
from spacetherm.solver import SimulationConfig, solve_steady_state, solve_transient
from spacetherm.analysis import SensitivityAnalyzer
from spacetherm.radiation import make_disk, compute_view_factor


def create_cubesat():
    """Rete a 5 nodi: struttura, elettronica, batteria, pannello esterno, spazio"""
    nodes = [
        {"id": "structure", "name": "Struttura", "kind": "diffusion",
         "temperature": 290.0, "mass": 0.6, "material_id": "aluminum_6061", "area": 0.06},
        {"id": "obc", "name": "Elettronica", "kind": "diffusion",
         "temperature": 290.0, "mass": 0.15, "material_id": "fr4"},
        {"id": "battery", "name": "Batteria", "kind": "diffusion",
         "temperature": 290.0, "mass": 0.2, "material_id": "li_ion_cell"},
        {"id": "panel", "name": "Pannello", "kind": "arithmetic",
         "absorptivity": 0.9, "emissivity": 0.85, "area": 0.01},
        {"id": "space", "name": "Spazio profondo", "kind": "boundary", "boundary_temp": 3.0},
    ]
    conductors = [
        {"id": "c_obc", "type": "linear", "node_from": "obc", "node_to": "structure",
         "conductance": 0.5},
        {"id": "c_bat", "type": "contact", "node_from": "battery", "node_to": "structure",
         "conductance": 0.3},
        {"id": "c_panel", "type": "linear", "node_from": "panel", "node_to": "structure",
         "conductance": 1.0},
        {"id": "r_struct", "type": "radiation", "node_from": "structure", "node_to": "space",
         "area": 0.06, "view_factor": 1.0, "emissivity": 0.8},
        {"id": "r_panel", "type": "radiation", "node_from": "panel", "node_to": "space",
         "area": 0.01, "view_factor": 1.0, "emissivity": 0.85},
    ]
    heat_loads = [
        {"id": "q_obc", "node_id": "obc", "type": "constant", "value": 2.0},
        {"id": "q_bat", "node_id": "battery", "type": "table",
         "time_values": [[0, 0.5], [2700, 0.5], [2700, 1.5], [5400, 1.5]]},
        {"id": "q_sun", "node_id": "panel", "type": "orbital",
         "orbital_params": {"surface_type": "solar"}},
        {"id": "q_struct", "node_id": "structure", "type": "orbital",
         "orbital_params": {"surface_type": "earth_facing", "area": 0.01}},
    ]
    orbit = {"altitude": 500.0, "inclination": 51.6, "raan": 0.0,
             "epoch": "2024-03-20T00:00:00Z"}
    return nodes, conductors, heat_loads, orbit


def run_simulation():
    """Esegue una simulazione completa"""

    print("=" * 70)
    print("SPACECRAFT THERMAL NETWORK SIMULATION")
    print("=" * 70)

    # =========================================================================
    # 1. COSTRUZIONE
    # =========================================================================
    print("\n[1/5] Costruzione rete...")
    nodes, conductors, heat_loads, orbit = create_cubesat()
    network = build_thermal_network(nodes, conductors, heat_loads, orbit, verbose=True)

    env = compute_orbital_environment(network.model.orbital_config)
    print(f"  Periodo orbitale: {env.orbital_period / 60:.1f} min")
    print(f"  Angolo beta: {env.beta_angle:.1f}°, eclissi: {env.eclipse_fraction * 100:.1f}%")

    # =========================================================================
    # 2. STAZIONARIO
    # =========================================================================
    print("\n[2/5] Caso stazionario...")
    steady = solve_steady_state(network, verbose=True)
    for node_id, T in steady.final_temperatures().items():
        print(f"  {node_id:10s}: {T - 273.15:7.2f} °C")

    # =========================================================================
    # 3. TRANSITORIO SU UN'ORBITA
    # =========================================================================
    print("\n[3/5] Transitorio (un'orbita)...")
    config = SimulationConfig(
        simulation_type="transient",
        solver_method="rk4",
        time_start=0.0,
        time_end=env.orbital_period,
        time_step=10.0,
        tolerance=0.01,
        max_step=60.0,
        verbose=True,
    )
    t0 = time.time()
    result = solve_transient(network.with_temperatures(steady.final_temperatures()), config)
    print(f"  Passi: {result.iterations} (rifiutati {result.rejected_steps}), "
          f"{time.time() - t0:.2f} s")
    for node_id, stats in result.temperature_stats().items():
        print(f"  {node_id:10s}: min {stats['min'] - 273.15:7.2f} °C, "
              f"max {stats['max'] - 273.15:7.2f} °C")

    # =========================================================================
    # 4. BILANCIO E SENSITIVITÀ
    # =========================================================================
    print("\n[4/5] Bilancio energetico e sensitività...")
    if result.energy_balance is not None:
        print(result.energy_balance.summary())

    sensitivity = SensitivityAnalyzer(verbose=True).compute(network, steady)
    for entry in sorted(sensitivity.entries, key=lambda e: -abs(e.dT_dp))[:5]:
        print(f"  dT({entry.node_id})/d{entry.parameter_id} = {entry.dT_dp:+.3e}")

    # =========================================================================
    # 5. FATTORE DI VISTA
    # =========================================================================
    print("\n[5/5] Fattore di vista tra dischi coassiali (r = h = 1 m)...")
    a = make_disk("A", (0, 0, 0), (0, 0, 1), 1.0)
    b = make_disk("B", (0, 0, 1), (0, 0, -1), 1.0)
    vf = compute_view_factor(a, b, [a, b], n_rays="fast", seed=1)
    print(f"  F = {vf.view_factor:.4f} ± {vf.std_error:.4f} (analitico 0.3820)")

    return network, result, sensitivity


def run_quick_test():
    """Test rapido: due nodi, soluzione analitica T = 305 K"""
    network = build_thermal_network(
        nodes=[
            {"id": "hot", "kind": "diffusion", "temperature": 300.0, "capacitance": 1000.0},
            {"id": "sink", "kind": "boundary", "boundary_temp": 300.0},
        ],
        conductors=[{"id": "g", "type": "linear", "node_from": "hot", "node_to": "sink",
                     "conductance": 2.0}],
        heat_loads=[{"id": "q", "node_id": "hot", "type": "constant", "value": 10.0}],
        verbose=True,
    )
    result = solve_steady_state(network, verbose=True)
    print(f"T(hot) = {result.final_temperatures()['hot']:.4f} K (atteso 305 K)")
    return network


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Spacecraft Thermal Simulation")
    parser.add_argument("--quick", action="store_true", help="Run quick test")

    args = parser.parse_args()

    if args.quick:
        run_quick_test()
    else:
        run_simulation()
