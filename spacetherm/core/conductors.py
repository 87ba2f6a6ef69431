"""
conductors.py - Modelli costitutivi dei conduttori

=============================================================================
MODULE OVERVIEW
=============================================================================

Flusso termico Q [W] attraverso un conduttore, positivo da node_from a
node_to:

    linear / contact:   Q = G·(T_from - T_to)
    radiation:          Q = σ·ε·A·F·(T_from⁴ - T_to⁴)
    heat_pipe:          Q = G_eff(T_avg)·(T_from - T_to),  T_avg = (T_from + T_to)/2

G_eff(T) è interpolata linearmente a tratti sulla curva fornita, con
saturazione agli estremi. Ai punti di rottura il valore è esatto; con
temperature ripetute vale l'ultimo punto (nessuna media).

Tutte le funzioni sono pure. Le derivate per i solutori di Newton sono in
solver/heat_flow.py (conductor_flow_jacobian).
=============================================================================
"""

from typing import Sequence, Tuple

import numpy as np

from .constants import STEFAN_BOLTZMANN
from .model import Conductor, ConductorType


# =============================================================================
# INTERPOLAZIONE A TRATTI
# =============================================================================

def _as_table(points) -> Tuple[np.ndarray, np.ndarray]:
    table = np.asarray(points, dtype=float).reshape(-1, 2)
    return table[:, 0], table[:, 1]


def interpolate_piecewise(xs: np.ndarray, ys: np.ndarray, x: float) -> float:
    """
    Interpolazione lineare a tratti con saturazione agli estremi.

    xs deve essere non decrescente. Tabella vuota → 0, un solo punto → costante.
    """
    n = len(xs)
    if n == 0:
        return 0.0
    if n == 1 or x <= xs[0]:
        return float(ys[0])
    if x >= xs[-1]:
        return float(ys[-1])
    # lo = ultimo indice con xs[lo] <= x
    lo = int(np.searchsorted(xs, x, side="right")) - 1
    hi = lo + 1
    frac = (x - xs[lo]) / (xs[hi] - xs[lo])
    return float(ys[lo] + frac * (ys[hi] - ys[lo]))


def piecewise_slope(xs: np.ndarray, ys: np.ndarray, x: float) -> float:
    """Derivata dy/dx della stessa interpolazione (0 fuori dall'intervallo)"""
    n = len(xs)
    if n < 2 or x <= xs[0] or x >= xs[-1]:
        return 0.0
    lo = int(np.searchsorted(xs, x, side="right")) - 1
    hi = lo + 1
    return float((ys[hi] - ys[lo]) / (xs[hi] - xs[lo]))


def interpolate_geff(points: Sequence, T_avg: float) -> float:
    """
    Conduttanza effettiva di un heat pipe alla temperatura media T_avg.

    Args:
        points: Sequenza di (temperatura [K], conduttanza [W/K]) ordinata
        T_avg: Temperatura media dei due nodi [K]
    """
    temps, values = _as_table(points)
    return interpolate_piecewise(temps, values, T_avg)


# =============================================================================
# FLUSSI
# =============================================================================

def linear_flow(conductance: float, T_from: float, T_to: float) -> float:
    """Conduzione lineare"""
    return conductance * (T_from - T_to)


def contact_flow(conductance: float, T_from: float, T_to: float) -> float:
    """Conduttanza di contatto (stessa legge della conduzione lineare)"""
    return conductance * (T_from - T_to)


def radiation_flow(emissivity: float, area: float, view_factor: float,
                   T_from: float, T_to: float) -> float:
    """Scambio radiativo grigio tra due nodi"""
    return STEFAN_BOLTZMANN * emissivity * area * view_factor * (T_from**4 - T_to**4)


def heat_pipe_flow(points: Sequence, T_from: float, T_to: float) -> float:
    """Heat pipe con conduttanza dipendente dalla temperatura media"""
    g_eff = interpolate_geff(points, 0.5 * (T_from + T_to))
    return g_eff * (T_from - T_to)


def conductor_flow(conductor: Conductor, T_from: float, T_to: float) -> float:
    """Flusso attraverso un conduttore qualsiasi"""
    ctype = conductor.type
    if ctype == ConductorType.LINEAR:
        return linear_flow(conductor.conductance, T_from, T_to)
    if ctype == ConductorType.CONTACT:
        return contact_flow(conductor.conductance, T_from, T_to)
    if ctype == ConductorType.RADIATION:
        return radiation_flow(conductor.emissivity, conductor.area,
                              conductor.view_factor, T_from, T_to)
    return heat_pipe_flow(conductor.conductance_data, T_from, T_to)
