"""
matrix_builder.py - Assemblaggio dei sistemi sparsi di Newton

=============================================================================
MODULE OVERVIEW
=============================================================================

Jacobiano del calore netto F(T) rispetto alle temperature:

    J_ij = ∂F_i/∂T_j

Ogni conduttore c (from = a, to = b) con derivate (d_a, d_b) contribuisce:

    J[b, a] += d_a    J[b, b] += d_b      (calore entrante in b)
    J[a, a] -= d_a    J[a, b] -= d_b      (calore uscente da a)

Il contributo è assemblato in formato COO e convertito in CSR (i duplicati
si sommano).

SCHEMA THETA (transitorio implicito):
    θ = 1:   Eulero implicito
    θ = 1/2: Crank-Nicolson

    nodi diffusion:   R_i = C_i·(T_i - T_i^n)/dt - θ·F_i(T) - (1-θ)·F_i(T^n)
    nodi arithmetic:  R_i = -F_i(T)                (vincolo algebrico)

    A = D - W·J,  D = diag(C/dt) (0 per arithmetic), W = diag(θ) (1 per arithmetic)

Le incognite sono solo i nodi non-boundary (i boundary sono imposti).
=============================================================================
"""

import warnings
from typing import Optional, Tuple

import numpy as np
from scipy import sparse
from scipy.sparse import linalg as splinalg

from ..core.network import ThermalNetwork
from .heat_flow import conductor_flow_jacobian


def build_jacobian(network: ThermalNetwork, T: np.ndarray) -> sparse.csr_matrix:
    """Jacobiano sparso (N × N) del calore netto rispetto alle temperature"""
    N = network.n_nodes
    a = network.cond_from
    b = network.cond_to
    d_from, d_to = conductor_flow_jacobian(network, T)

    rows = np.concatenate([b, b, a, a])
    cols = np.concatenate([a, b, a, b])
    data = np.concatenate([d_from, d_to, -d_from, -d_to])
    return sparse.coo_matrix((data, (rows, cols)), shape=(N, N)).tocsr()


def free_indices(network: ThermalNetwork) -> np.ndarray:
    """Indici dei nodi non-boundary (incognite dei sistemi di Newton)"""
    return np.flatnonzero(~network.is_boundary)


def build_theta_matrix(network: ThermalNetwork, T: np.ndarray, dt: float,
                       theta: float) -> sparse.csr_matrix:
    """
    Matrice di Newton A = D - W·J per lo schema theta.

    Returns:
        A (N × N); le righe/colonne boundary vanno escluse dal chiamante
    """
    N = network.n_nodes
    mass_diag = np.zeros(N)
    weight = np.ones(N)
    idx = network.diffusion_idx
    mass_diag[idx] = network.capacitance[idx] / dt
    weight[idx] = theta

    J = build_jacobian(network, T)
    A = sparse.diags(mass_diag) - sparse.diags(weight) @ J
    return A.tocsr()


def restrict(A: sparse.spmatrix, idx: np.ndarray) -> sparse.csr_matrix:
    """Sottomatrice A[idx, idx]"""
    return A.tocsr()[idx][:, idx]


def solve_sparse(A: sparse.spmatrix, b: np.ndarray) -> Optional[np.ndarray]:
    """
    Soluzione diretta (LU) di A·x = b.

    Returns:
        x, oppure None se la matrice è singolare o la soluzione non è finita
    """
    if A.shape[0] == 0:
        return np.zeros(0)
    with warnings.catch_warnings():
        warnings.simplefilter("error", splinalg.MatrixRankWarning)
        try:
            x = splinalg.spsolve(A.tocsc(), b)
        except (splinalg.MatrixRankWarning, RuntimeError):
            return None
    x = np.atleast_1d(np.asarray(x, dtype=float))
    if not np.all(np.isfinite(x)):
        return None
    return x


def newton_system(network: ThermalNetwork, T: np.ndarray, F: np.ndarray
                  ) -> Tuple[sparse.csr_matrix, np.ndarray, np.ndarray]:
    """
    Sistema di Newton stazionario sui nodi liberi: J_ff·ΔT = -F_f.

    Returns:
        (J_ff, -F_f, indici liberi)
    """
    idx = free_indices(network)
    J = build_jacobian(network, T)
    return restrict(J, idx), -F[idx], idx
