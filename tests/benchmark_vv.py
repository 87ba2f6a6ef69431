"""
benchmark_vv.py - Verifica e validazione contro soluzioni analitiche

Script eseguibile (non raccolto da pytest) che confronta il motore con
casi di riferimento noti e misura i tempi.

CASI:
1. Rete a due nodi: stazionario T = T_b + Q/G
2. Transitorio esponenziale τ = C/G con tutti i metodi
3. Heat pipe con curva G_eff(T) a gradino (tre regimi)
4. Fattori di vista: dischi coassiali, piastre perpendicolari, sfere concentriche

Uso:
    python tests/benchmark_vv.py [--rays N]
"""

import argparse
import numpy as np
import time
import sys
import os

# Aggiungi il path del progetto
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from spacetherm.core import build_thermal_network
from spacetherm.solver import SimulationConfig, solve_steady_state, solve_transient
from spacetherm.radiation import make_disk, make_rectangle, make_sphere, compute_view_factor

HEAT_PIPE_CURVE = [
    (200.0, 0.5), (279.0, 0.5), (280.0, 5.0),
    (320.0, 5.0), (321.0, 0.5), (400.0, 0.5),
]


def two_node(G=10.0, C=100.0, Q=50.0):
    return build_thermal_network(
        nodes=[
            {"id": "A", "kind": "boundary", "boundary_temp": 300.0},
            {"id": "B", "kind": "diffusion", "temperature": 300.0, "capacitance": C},
        ],
        conductors=[{"id": "G", "type": "linear", "node_from": "B", "node_to": "A",
                     "conductance": G}],
        heat_loads=[{"id": "Q", "node_id": "B", "type": "constant", "value": Q}],
    )


def report(name, value, expected, tol):
    error = abs(value - expected) / abs(expected) if expected else abs(value)
    status = "OK" if error <= tol else "FALLITO"
    print(f"  {name:40s} {value:12.5f}  atteso {expected:10.5f}  "
          f"errore {100 * error:6.3f}%  [{status}]")
    return error <= tol


def bench_steady():
    print("\n[1] Stazionario a due nodi")
    t0 = time.time()
    result = solve_steady_state(two_node(), tolerance=1e-9)
    ok = report("T_B [K]", result.final_temperatures()["B"], 305.0, 1e-8)
    print(f"  Tempo: {1000 * (time.time() - t0):.2f} ms, iterazioni {result.iterations}")
    return ok


def bench_transient():
    print("\n[2] Transitorio esponenziale (τ = 10 s, t = 30 s)")
    expected = 300.0 + 5.0 * (1.0 - np.exp(-3.0))
    ok = True
    for method in ("rk4", "rk4_fixed", "implicit_euler", "crank_nicolson"):
        config = SimulationConfig(simulation_type="transient", solver_method=method,
                                  time_start=0.0, time_end=30.0, time_step=0.01,
                                  tolerance=1e-8, max_step=0.5, max_iterations=100_000)
        t0 = time.time()
        result = solve_transient(two_node(), config)
        # Eulero implicito è del primo ordine
        tol = 1e-3 if method == "implicit_euler" else 1e-5
        ok &= report(f"{method} T_B(30 s) [K]", result.final_temperatures()["B"],
                     expected, tol)
        print(f"  {'':40s} {result.iterations} passi, {time.time() - t0:.3f} s")
    return ok


def bench_heat_pipe():
    print("\n[3] Heat pipe con curva a gradino")
    ok = True
    for Q, T_cold, dT in ((2.0, 270.0, 4.0), (10.0, 290.0, 2.0), (20.0, 330.0, 40.0)):
        network = build_thermal_network(
            nodes=[
                {"id": "hot", "kind": "diffusion", "temperature": T_cold + 5.0,
                 "capacitance": 100.0},
                {"id": "cold", "kind": "boundary", "boundary_temp": T_cold},
            ],
            conductors=[{"id": "hp", "type": "heat_pipe", "node_from": "hot",
                         "node_to": "cold", "conductance_data": HEAT_PIPE_CURVE}],
            heat_loads=[{"id": "q", "node_id": "hot", "type": "constant", "value": Q}],
        )
        result = solve_steady_state(network, tolerance=1e-8, max_iterations=2000)
        ok &= report(f"Q = {Q:g} W, T_cold = {T_cold:g} K: ΔT [K]",
                     result.final_temperatures()["hot"] - T_cold, dT, 1e-3)
    return ok


def bench_view_factors(n_rays):
    print(f"\n[4] Fattori di vista ({n_rays} raggi)")
    cases = [
        ("dischi coassiali r = H",
         make_disk("A", (0, 0, 0), (0, 0, 1), 1.0),
         make_disk("B", (0, 0, 1), (0, 0, -1), 1.0), 0.382),
        ("piastre perpendicolari",
         make_rectangle("A", (0, 0, 0), (1, 0, 0), (0, 1, 0)),
         make_rectangle("B", (0, 0, 0), (0, 0, 1), (1, 0, 0)), 0.200),
        ("sfere concentriche",
         make_sphere("A", (0, 0, 0), 0.5),
         make_sphere("B", (0, 0, 0), 1.0, inward=True), 1.0),
    ]
    ok = True
    for name, a, b, expected in cases:
        t0 = time.time()
        result = compute_view_factor(a, b, [a, b], n_rays=n_rays, seed=0, n_workers=0)
        ok &= report(f"{name}", result.view_factor, expected, 0.05)
        print(f"  {'':40s} ± {result.std_error:.4f}, {time.time() - t0:.2f} s")
    return ok


def main():
    parser = argparse.ArgumentParser(description="Benchmark V&V")
    parser.add_argument("--rays", type=int, default=100_000, help="Raggi per fattore di vista")
    args = parser.parse_args()

    print("=" * 70)
    print("BENCHMARK V&V")
    print("=" * 70)

    results = [
        bench_steady(),
        bench_transient(),
        bench_heat_pipe(),
        bench_view_factors(args.rays),
    ]

    print("\n" + "=" * 70)
    print(f"RISULTATO: {sum(results)}/{len(results)} gruppi superati")
    print("=" * 70)
    return 0 if all(results) else 1


if __name__ == "__main__":
    sys.exit(main())
