"""
heat_flow.py - Valutazione vettorizzata dei flussi nella rete

=============================================================================
MODULE OVERVIEW
=============================================================================

Bilancio di ogni nodo i:

    C_i · dT_i/dt = Σ_c s_ic · Q_c(T) + Q_ext,i(t)

con s_ic = +1 se i è il nodo "to" del conduttore c, -1 se è il nodo "from".

I flussi dei conduttori lineari, di contatto e radiativi sono calcolati in
blocco sugli array della rete; gli heat pipe (pochi per modello) sono
valutati singolarmente sulla propria curva G_eff(T).

I nodi arithmetic (C = 0) soddisfano Σ Q = 0 a ogni istante: sono risolti
con iterazioni di Gauss-Seidel sulla conduttanza secante di ogni conduttore
(per la radiazione σεAF·(T1² + T2²)·(T1 + T2)).
=============================================================================
"""

from typing import Optional, Tuple

import numpy as np

from ..core.conductors import interpolate_piecewise, piecewise_slope
from ..core.network import ThermalNetwork

ARITHMETIC_MAX_ITER = 100
ARITHMETIC_TOL = 1e-4


def conductor_flows(network: ThermalNetwork, T: np.ndarray) -> np.ndarray:
    """Flusso [W] di ogni conduttore, positivo da node_from a node_to"""
    Tf = T[network.cond_from]
    Tt = T[network.cond_to]
    Q = network.cond_g * (Tf - Tt) + network.cond_rad * (Tf**4 - Tt**4)
    for c, (temps, values) in network.heat_pipe_tables.items():
        g_eff = interpolate_piecewise(temps, values, 0.5 * (Tf[c] + Tt[c]))
        Q[c] = g_eff * (Tf[c] - Tt[c])
    return Q


def net_conductor_heat(network: ThermalNetwork, T: np.ndarray,
                       flows: Optional[np.ndarray] = None) -> np.ndarray:
    """Calore netto [W] entrante in ogni nodo dai conduttori"""
    if flows is None:
        flows = conductor_flows(network, T)
    N = network.n_nodes
    return (np.bincount(network.cond_to, weights=flows, minlength=N)
            - np.bincount(network.cond_from, weights=flows, minlength=N))


def heat_load_vector(network: ThermalNetwork, t: float) -> np.ndarray:
    """Carichi esterni [W] applicati a ogni nodo al tempo t"""
    Q = np.zeros(network.n_nodes)
    for i, loads in enumerate(network.node_loads):
        for profile in loads:
            Q[i] += profile.get_power(t)
    return Q


def net_heat(network: ThermalNetwork, T: np.ndarray, t: float,
             loads: Optional[np.ndarray] = None) -> np.ndarray:
    """Calore netto [W] per nodo: conduttori + carichi esterni"""
    if loads is None:
        loads = heat_load_vector(network, t)
    return net_conductor_heat(network, T) + loads


def temperature_derivatives(network: ThermalNetwork, T: np.ndarray, t: float,
                            loads: Optional[np.ndarray] = None) -> np.ndarray:
    """dT/dt [K/s]; nullo per nodi arithmetic e boundary"""
    dTdt = np.zeros(network.n_nodes)
    idx = network.diffusion_idx
    if idx.size:
        dTdt[idx] = net_heat(network, T, t, loads)[idx] / network.capacitance[idx]
    return dTdt


def conductor_flow_jacobian(network: ThermalNetwork, T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Derivate (∂Q/∂T_from, ∂Q/∂T_to) di ogni conduttore"""
    Tf = T[network.cond_from]
    Tt = T[network.cond_to]
    d_from = network.cond_g + 4.0 * network.cond_rad * Tf**3
    d_to = -network.cond_g - 4.0 * network.cond_rad * Tt**3
    for c, (temps, values) in network.heat_pipe_tables.items():
        T_avg = 0.5 * (Tf[c] + Tt[c])
        g = interpolate_piecewise(temps, values, T_avg)
        dg = piecewise_slope(temps, values, T_avg)
        dT = Tf[c] - Tt[c]
        d_from[c] = g + 0.5 * dg * dT
        d_to[c] = -g + 0.5 * dg * dT
    return d_from, d_to


# =============================================================================
# RILASSAMENTO LOCALE (GAUSS-SEIDEL)
# =============================================================================

def _link_conductance(network: ThermalNetwork, c: int, T_i: float, T_j: float) -> float:
    """Conduttanza secante del conduttore c tra temperature T_i e T_j"""
    g = network.cond_g[c]
    if network.cond_rad[c] > 0.0:
        g += network.cond_rad[c] * (T_i**2 + T_j**2) * (T_i + T_j)
    if c in network.heat_pipe_tables:
        temps, values = network.heat_pipe_tables[c]
        g += interpolate_piecewise(temps, values, 0.5 * (T_i + T_j))
    return g


def gauss_seidel_sweep(network: ThermalNetwork, T: np.ndarray, node_indices: np.ndarray,
                       loads: np.ndarray) -> float:
    """
    Un passaggio di sostituzione diretta sui nodi indicati (modifica T).

    T_i = (Σ G_ij·T_j + Q_ext,i) / Σ G_ij

    Nodi con Σ G = 0 restano invariati.

    Returns:
        Massima variazione di temperatura [K]
    """
    max_change = 0.0
    for i in node_indices:
        sum_g = 0.0
        sum_gt = 0.0
        T_i = T[i]
        for link in network.adjacency[i]:
            T_j = T[link.other_index]
            g = _link_conductance(network, link.conductor_index, T_i, T_j)
            sum_g += g
            sum_gt += g * T_j
        if sum_g <= 0.0:
            continue
        new_T = max((sum_gt + loads[i]) / sum_g, 1.0)
        max_change = max(max_change, abs(new_T - T_i))
        T[i] = new_T
    return max_change


def solve_arithmetic_nodes(network: ThermalNetwork, T: np.ndarray, t: float,
                           loads: Optional[np.ndarray] = None,
                           max_iter: int = ARITHMETIC_MAX_ITER,
                           tolerance: float = ARITHMETIC_TOL) -> int:
    """
    Risolve in place le temperature dei nodi arithmetic (bilancio nullo).

    Returns:
        Numero di iterazioni eseguite
    """
    idx = network.arithmetic_idx
    if idx.size == 0:
        return 0
    if loads is None:
        loads = heat_load_vector(network, t)
    for iteration in range(1, max_iter + 1):
        if gauss_seidel_sweep(network, T, idx, loads) < tolerance:
            return iteration
    return max_iter
