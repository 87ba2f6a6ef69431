"""
steady_state.py - Solutore per il caso stazionario

=============================================================================
MODULE OVERVIEW
=============================================================================

Risolve il bilancio stazionario della rete:

    F_i(T) = Σ_c s_ic·Q_c(T) + Q_ext,i(t0) = 0     per ogni nodo non-boundary

METODO:
    Newton con Jacobiano sparso (scipy.sparse, fattorizzazione LU diretta):

        J_ff · ΔT = -F_f

    Il passo è limitato a ±100 K per iterazione e le temperature a T ≥ 1 K,
    così che la radiazione (T⁴) non porti l'iterazione fuori scala.

    Se il Jacobiano è singolare (per esempio un sotto-grafo senza percorso
    verso un boundary, o conduttanze nulle) l'iterazione passa a un
    passaggio di sostituzione diretta (Gauss-Seidel) sui nodi liberi.

CONVERGENZA:
    max |T^{k+1} - T^k| < tolerance. Il raggiungimento di max_iterations
    non solleva eccezioni: il risultato ha converged=False e stato
    NOT_CONVERGED.

I nodi boundary restano alla temperatura imposta. I carichi sono valutati
a config.time_start.

USAGE:
    config = SimulationConfig(simulation_type="steady_state", tolerance=1e-6)
    solver = SteadyStateSolver(network, config)
    result = solver.solve()
=============================================================================
"""

import time
from typing import Optional

import numpy as np

from ..core.errors import NumericalFailure, TimeoutExceeded
from ..core.network import ThermalNetwork
from .config import SimulationConfig, SimulationType, steady_state_config
from .heat_flow import conductor_flows, gauss_seidel_sweep, heat_load_vector, net_heat
from .matrix_builder import newton_system, solve_sparse
from .results import RunStatus, SimulationResult

MAX_STEP_K = 100.0
MIN_TEMPERATURE_K = 1.0


class SteadyStateSolver:
    """
    Solutore stazionario (Newton + rilassamento di riserva).
    """

    def __init__(self, network: ThermalNetwork, config: Optional[SimulationConfig] = None):
        """
        Inizializza il solver.

        Args:
            network: Rete termica
            config: Configurazione (tolleranza, iterazioni, verbose)
        """
        self.network = network
        self.config = config or SimulationConfig(simulation_type=SimulationType.STEADY_STATE)
        self.iterations = 0
        self.relaxation_sweeps = 0
        self.last_change = float("inf")

    def solve(self, initial: Optional[np.ndarray] = None) -> SimulationResult:
        """
        Risolve il problema stazionario.

        Args:
            initial: Temperature di partenza (default: iniziali della rete)

        Returns:
            SimulationResult con un solo istante (time_start)
        """
        network = self.network
        config = self.config
        t0 = config.time_start
        t_start = time.time()

        T = np.array(network.initial_temperatures if initial is None else initial, dtype=float)
        T[network.boundary_idx] = network.initial_temperatures[network.boundary_idx]
        loads = heat_load_vector(network, t0)

        if config.verbose:
            print(f"[STEADY] Newton su {network.n_nodes - len(network.boundary_idx)} incognite, "
                  f"tol = {config.tolerance:.1e} K")

        converged = False
        try:
            converged = self._iterate(T, loads, t_start)
        except (NumericalFailure, TimeoutExceeded) as e:
            return self._failed_result(e, T, t_start)

        F = net_heat(network, T, t0, loads)
        free = ~network.is_boundary
        residual = float(np.max(np.abs(F[free]))) if free.any() else 0.0
        t_solve = time.time() - t_start

        result = SimulationResult(
            time_points=np.array([t0]),
            node_ids=list(network.node_ids),
            temperatures=T[np.newaxis, :].copy(),
            conductor_ids=[c.id for c in network.conductors],
            flows=conductor_flows(network, T)[np.newaxis, :],
            converged=converged,
            iterations=self.iterations,
            status=RunStatus.COMPLETED if converged else RunStatus.NOT_CONVERGED,
            failure_reason=None if converged else (
                f"limite di {config.max_iterations} iterazioni raggiunto "
                f"(ultima variazione {self.last_change:.3e} K)"),
            failure_time=None if converged else t0,
            failure_state=None if converged else dict(zip(network.node_ids, T.tolist())),
            solve_time=t_solve,
            config=config,
            residual=residual,
        )

        from ..analysis.energy_balance import EnergyBalanceAnalyzer
        result.energy_balance = EnergyBalanceAnalyzer(network).analyze(result)

        if config.verbose:
            print(f"[RISULTATO] Tempo soluzione: {t_solve:.3f} s")
            print(f"[RISULTATO] Convergenza: {'SI' if converged else 'NO'}")
            print(f"[RISULTATO] Iterazioni: {self.iterations} "
                  f"(rilassamento: {self.relaxation_sweeps})")
            print(f"[RISULTATO] Residuo: {residual:.2e} W")
        return result

    def _iterate(self, T: np.ndarray, loads: np.ndarray, t_start: float) -> bool:
        """Ciclo di Newton; modifica T in place. Ritorna True se converge."""
        network = self.network
        config = self.config

        for iteration in range(1, config.max_iterations + 1):
            self.iterations = iteration
            F = net_heat(network, T, config.time_start, loads)
            J_ff, rhs, idx = newton_system(network, T, F)
            if idx.size == 0:
                self.last_change = 0.0
                return True

            delta = solve_sparse(J_ff, rhs)
            if delta is not None:
                delta = np.clip(delta, -MAX_STEP_K, MAX_STEP_K)
                T_new = np.maximum(T[idx] + delta, MIN_TEMPERATURE_K)
                change = float(np.max(np.abs(T_new - T[idx])))
                T[idx] = T_new
            else:
                self.relaxation_sweeps += 1
                change = gauss_seidel_sweep(network, T, idx, loads)

            if not np.all(np.isfinite(T)):
                raise NumericalFailure(f"temperatura non finita all'iterazione {iteration}",
                                       config.time_start, T)
            self.last_change = change

            if config.verbose and iteration % 10 == 0:
                print(f"[STEADY] Iter {iteration}: max ΔT = {change:.3e} K")
            if change < config.tolerance:
                return True
            if config.wall_time_limit is not None and time.time() - t_start > config.wall_time_limit:
                raise TimeoutExceeded(
                    f"timeout: superato il limite di {config.wall_time_limit:.1f} s "
                    f"dopo {iteration} iterazioni", config.time_start, T)
        return False

    def _failed_result(self, error, T: np.ndarray, t_start: float) -> SimulationResult:
        network = self.network
        if self.config.verbose:
            print(f"[ERRORE] Stazionario: {error.reason}")
        state = error.state if error.state is not None else T
        kwargs = dict(
            converged=False,
            iterations=self.iterations,
            status=RunStatus.FAILED,
            failure_reason=error.reason,
            failure_kind="timeout" if isinstance(error, TimeoutExceeded) else "numerical",
            failure_time=error.time,
            failure_state=dict(zip(network.node_ids, np.asarray(state).tolist())),
            solve_time=time.time() - t_start,
            config=self.config,
        )
        conductor_ids = [c.id for c in network.conductors]
        if self.config.keep_partial_trace:
            return SimulationResult(
                time_points=np.array([self.config.time_start]),
                node_ids=list(network.node_ids),
                temperatures=np.asarray(state, dtype=float)[np.newaxis, :],
                conductor_ids=conductor_ids,
                flows=np.zeros((1, len(conductor_ids))),
                **kwargs,
            )
        return SimulationResult.empty(network.node_ids, conductor_ids, **kwargs)


def solve_steady_state(network: ThermalNetwork, tolerance: float = 1e-6,
                       max_iterations: int = 1000, verbose: bool = False) -> SimulationResult:
    """
    Funzione di convenienza per risolvere il caso stazionario.

    Args:
        network: Rete termica
        tolerance: Tolleranza sulla variazione di temperatura [K]
        max_iterations: Limite di iterazioni
        verbose: Stampa informazioni

    Returns:
        SimulationResult
    """
    config = steady_state_config(max_iterations=max_iterations, tolerance=tolerance,
                                 verbose=verbose)
    return SteadyStateSolver(network, config).solve()
