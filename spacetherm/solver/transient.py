"""
transient.py - Solver per simulazioni transitorie

=============================================================================
TRANSIENT THERMAL NETWORK SOLVER
=============================================================================

Integra nel tempo il sistema:

    C_i · dT_i/dt = F_i(T, t)          nodi diffusion
    0             = F_i(T, t)          nodi arithmetic
    T_i           = T_boundary         nodi boundary

SCHEMI NUMERICI:
    rk4 (adattivo):
        Un passo completo dt e due mezzi passi dt/2. L'errore locale è
        stimato con Richardson: err = max|T_doppio - T_pieno| / 15.
        - err > tol e dt > min_step: passo rifiutato, dt *= max(0.1, 0.9·(tol/err)^¼)
        - altrimenti: T = T_doppio + (T_doppio - T_pieno)/15,
          dt *= min(5, 0.9·(tol/err)^¼), limitato a [min_step, max_step]

    rk4_fixed:
        Runge-Kutta classico a passo costante time_step.

    implicit_euler (θ = 1), crank_nicolson (θ = 1/2):
        Newton sul sistema accoppiato diffusion + arithmetic con Jacobiano
        sparso (vedi matrix_builder). Passo adattivo dal numero di
        iterazioni di Newton:
        - ≤ 3 iterazioni: dt raddoppia
        - ≥ 7 iterazioni: dt dimezza
        - non convergente: dt dimezza e il passo viene ripetuto

Negli schemi espliciti i nodi arithmetic sono risolti con Gauss-Seidel a
ogni stadio; i boundary sono imposti a ogni passo.

STATI:
    INITIALIZING → STEPPING → {COMPLETED, FAILED}

    FAILED se max_iterations (tentativi di passo) o wall_time_limit si
    esauriscono prima di time_end, o se compare una temperatura non finita.
    Il risultato riporta causa e stato al momento del fallimento.
=============================================================================
"""

import time
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from ..core.errors import NumericalFailure, TimeoutExceeded
from ..core.network import ThermalNetwork
from .config import SimulationConfig, SolverMethod
from .heat_flow import (
    conductor_flows,
    heat_load_vector,
    net_heat,
    solve_arithmetic_nodes,
    temperature_derivatives,
)
from .matrix_builder import build_theta_matrix, free_indices, restrict, solve_sparse
from .results import RunStatus, SimulationResult

MAX_NEWTON_ITER = 10
MIN_TEMPERATURE_K = 1.0

# Controllo del passo RK4
SAFETY = 0.9
MAX_GROWTH = 5.0
MIN_SHRINK = 0.1


class SolverState(Enum):
    INITIALIZING = "initializing"
    STEPPING = "stepping"
    COMPLETED = "completed"
    FAILED = "failed"


class TransientSolver:
    """
    Solver per simulazioni transitorie della rete termica.

    Ogni istanza possiede la propria storia e non condivide stato con altri
    run: più istanze possono girare in parallelo su reti distinte.
    """

    def __init__(self, network: ThermalNetwork, config: SimulationConfig,
                 progress_callback: Optional[Callable[[float, np.ndarray], None]] = None):
        """
        Inizializza il solver.

        Args:
            network: Rete termica
            config: Configurazione (metodo, tempi, tolleranze)
            progress_callback: callback(t, T) chiamata a ogni passo accettato
        """
        self.network = network
        self.config = config
        self.progress_callback = progress_callback
        self.state = SolverState.INITIALIZING

        self._times: List[float] = []
        self._temperatures: List[np.ndarray] = []
        self._flows: List[np.ndarray] = []
        self.accepted_steps = 0
        self.rejected_steps = 0
        self.attempts = 0
        self._t_wall_start = 0.0

    # =========================================================================
    # API
    # =========================================================================

    def solve(self) -> SimulationResult:
        """
        Esegue la simulazione da time_start a time_end.

        Returns:
            SimulationResult (stato FAILED in caso di errore numerico o timeout)
        """
        network = self.network
        config = self.config
        self._t_wall_start = time.time()
        self.state = SolverState.INITIALIZING

        t = config.time_start
        T = np.array(network.initial_temperatures, dtype=float)
        self._pin_boundaries(T)
        solve_arithmetic_nodes(network, T, t)
        self._record(t, T)

        if config.verbose:
            print(f"[TRANSIENT] Metodo: {config.solver_method.value}, "
                  f"t = [{config.time_start:.1f}, {config.time_end:.1f}] s, "
                  f"dt0 = {config.time_step:.3g} s, tol = {config.tolerance:.1e} K")

        self.state = SolverState.STEPPING
        try:
            method = config.solver_method
            if method == SolverMethod.RK4:
                self._integrate_rk4_adaptive(T)
            elif method == SolverMethod.RK4_FIXED:
                self._integrate_rk4_fixed(T)
            elif method == SolverMethod.IMPLICIT_EULER:
                self._integrate_theta(T, theta=1.0)
            else:
                self._integrate_theta(T, theta=0.5)
        except (NumericalFailure, TimeoutExceeded) as e:
            self.state = SolverState.FAILED
            return self._failed_result(e)

        self.state = SolverState.COMPLETED
        result = self._build_result(RunStatus.COMPLETED)

        from ..analysis.energy_balance import EnergyBalanceAnalyzer
        result.energy_balance = EnergyBalanceAnalyzer(network).analyze(result)

        if config.verbose:
            eb = result.energy_balance
            print(f"[RISULTATO] Tempo soluzione: {result.solve_time:.3f} s")
            print(f"[RISULTATO] Passi accettati: {self.accepted_steps}, "
                  f"rifiutati: {self.rejected_steps}")
            print(f"[RISULTATO] Bilancio energetico: errore {100 * eb.relative_error:.3f}% "
                  f"({'OK' if eb.is_balanced else 'passo troppo grande?'})")
        return result

    # =========================================================================
    # RUNGE-KUTTA 4
    # =========================================================================

    def _stage(self, T: np.ndarray, t: float) -> np.ndarray:
        """Derivate a uno stadio: boundary imposti, arithmetic in equilibrio"""
        loads = heat_load_vector(self.network, t)
        self._pin_boundaries(T)
        solve_arithmetic_nodes(self.network, T, t, loads)
        return temperature_derivatives(self.network, T, t, loads)

    def _rk4_step(self, T: np.ndarray, t: float, dt: float) -> np.ndarray:
        """Passo RK4 classico; restituisce un nuovo vettore"""
        y = T.copy()
        k1 = self._stage(y, t)
        y2 = y + 0.5 * dt * k1
        k2 = self._stage(y2, t + 0.5 * dt)
        y3 = y + 0.5 * dt * k2
        k3 = self._stage(y3, t + 0.5 * dt)
        y4 = y + dt * k3
        k4 = self._stage(y4, t + dt)
        out = y + (dt / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)
        return out

    def _integrate_rk4_adaptive(self, T: np.ndarray):
        config = self.config
        t = config.time_start
        t_end = config.time_end
        max_step = config.effective_max_step
        dt = min(config.time_step, max_step)
        diff = self.network.diffusion_idx

        while t < t_end - 1e-12 * max(1.0, abs(t_end)):
            self._check_budget(t, T)
            h = min(dt, t_end - t)

            full = self._rk4_step(T, t, h)
            half = self._rk4_step(T, t, 0.5 * h)
            double = self._rk4_step(half, t + 0.5 * h, 0.5 * h)
            error = float(np.max(np.abs(double[diff] - full[diff]))) / 15.0 if diff.size else 0.0

            if not np.isfinite(error):
                raise NumericalFailure(f"temperatura non finita a t = {t:.3f} s", t, T)

            if error > config.tolerance and h > config.min_step:
                self.rejected_steps += 1
                factor = max(MIN_SHRINK, SAFETY * (config.tolerance / error) ** 0.25)
                dt = max(config.min_step, h * factor)
                continue

            # Estrapolazione di Richardson
            T_new = double + (double - full) / 15.0
            t += h
            self._finish_step(T_new, t)
            T[:] = T_new

            if error == 0.0:
                factor = MAX_GROWTH
            else:
                factor = min(MAX_GROWTH, SAFETY * (config.tolerance / error) ** 0.25)
            dt = min(max(h * factor, config.min_step), max_step)

    def _integrate_rk4_fixed(self, T: np.ndarray):
        config = self.config
        t = config.time_start
        t_end = config.time_end
        while t < t_end - 1e-12 * max(1.0, abs(t_end)):
            self._check_budget(t, T)
            h = min(config.time_step, t_end - t)
            T_new = self._rk4_step(T, t, h)
            t += h
            self._finish_step(T_new, t)
            T[:] = T_new

    # =========================================================================
    # SCHEMA THETA (EULERO IMPLICITO / CRANK-NICOLSON)
    # =========================================================================

    def _newton_theta(self, T_old: np.ndarray, F_old: np.ndarray, t_new: float,
                      dt: float, theta: float):
        """
        Risolve il passo implicito con Newton.

        Returns:
            (T_new, iterazioni) oppure (None, iterazioni) se non converge
        """
        network = self.network
        free = free_indices(network)
        diff = network.diffusion_idx
        arith = network.arithmetic_idx
        C = network.capacitance
        loads = heat_load_vector(network, t_new)

        x = T_old.copy()
        for iteration in range(1, MAX_NEWTON_ITER + 1):
            F = net_heat(network, x, t_new, loads)
            R = np.zeros(network.n_nodes)
            R[diff] = (C[diff] * (x[diff] - T_old[diff]) / dt
                       - theta * F[diff] - (1.0 - theta) * F_old[diff])
            R[arith] = -F[arith]

            A = restrict(build_theta_matrix(network, x, dt, theta), free)
            delta = solve_sparse(A, -R[free])
            if delta is None:
                return None, iteration
            x[free] = np.maximum(x[free] + delta, MIN_TEMPERATURE_K)
            if not np.all(np.isfinite(x)):
                return None, iteration
            if float(np.max(np.abs(delta), initial=0.0)) < self.config.tolerance:
                return x, iteration
        return None, MAX_NEWTON_ITER

    def _integrate_theta(self, T: np.ndarray, theta: float):
        config = self.config
        network = self.network
        t = config.time_start
        t_end = config.time_end
        max_step = config.effective_max_step
        dt = min(config.time_step, max_step)
        F_old = net_heat(network, T, t)

        while t < t_end - 1e-12 * max(1.0, abs(t_end)):
            self._check_budget(t, T)
            h = min(dt, t_end - t)
            T_new, iterations = self._newton_theta(T, F_old, t + h, h, theta)

            if T_new is None:
                if h <= config.min_step:
                    raise NumericalFailure(
                        f"Newton non convergente con passo minimo {config.min_step:g} s "
                        f"a t = {t:.3f} s", t, T)
                self.rejected_steps += 1
                dt = max(config.min_step, 0.5 * h)
                continue

            t += h
            self._finish_step(T_new, t)
            T[:] = T_new
            F_old = net_heat(network, T, t)

            if iterations <= 3:
                dt = min(max_step, 2.0 * h)
            elif iterations >= 7:
                dt = max(config.min_step, 0.5 * h)
            else:
                dt = h

    # =========================================================================
    # SUPPORTO
    # =========================================================================

    def _pin_boundaries(self, T: np.ndarray):
        idx = self.network.boundary_idx
        T[idx] = self.network.initial_temperatures[idx]

    def _finish_step(self, T: np.ndarray, t: float):
        """Chiude un passo accettato: boundary, arithmetic, controlli, storia"""
        self._pin_boundaries(T)
        solve_arithmetic_nodes(self.network, T, t)
        if not np.all(np.isfinite(T)):
            bad = [self.network.node_ids[i] for i in np.flatnonzero(~np.isfinite(T))]
            raise NumericalFailure(
                f"temperatura non finita a t = {t:.3f} s (nodi: {', '.join(bad)})", t, T)
        self.accepted_steps += 1
        self._record(t, T)
        if self.progress_callback is not None:
            self.progress_callback(t, T.copy())
        if self.config.verbose and self.accepted_steps % 100 == 0:
            print(f"[TRANSIENT] t = {t:.1f} s, passi = {self.accepted_steps}, "
                  f"T = [{T.min():.2f}, {T.max():.2f}] K")

    def _check_budget(self, t: float, T: np.ndarray):
        """Budget di tentativi e di tempo di calcolo"""
        config = self.config
        if self.attempts >= config.max_iterations:
            raise TimeoutExceeded(
                f"timeout: max_iterations = {config.max_iterations} esaurito "
                f"a t = {t:.3f} s (time_end = {config.time_end:.3f} s)", t, T)
        if (config.wall_time_limit is not None
                and time.time() - self._t_wall_start > config.wall_time_limit):
            raise TimeoutExceeded(
                f"timeout: superato il limite di {config.wall_time_limit:.1f} s "
                f"a t = {t:.3f} s", t, T)
        self.attempts += 1

    def _record(self, t: float, T: np.ndarray):
        self._times.append(t)
        self._temperatures.append(T.copy())
        self._flows.append(conductor_flows(self.network, T))

    def _build_result(self, status: RunStatus, **kwargs) -> SimulationResult:
        network = self.network
        n_cond = network.n_conductors
        return SimulationResult(
            time_points=np.array(self._times),
            node_ids=list(network.node_ids),
            temperatures=np.array(self._temperatures).reshape(len(self._times), network.n_nodes),
            conductor_ids=[c.id for c in network.conductors],
            flows=np.array(self._flows).reshape(len(self._times), n_cond),
            converged=status == RunStatus.COMPLETED,
            iterations=self.accepted_steps,
            status=status,
            rejected_steps=self.rejected_steps,
            solve_time=time.time() - self._t_wall_start,
            config=self.config,
            **kwargs,
        )

    def _failed_result(self, error) -> SimulationResult:
        network = self.network
        if self.config.verbose:
            print(f"[ERRORE] Transitorio: {error.reason}")
        state = None
        if error.state is not None:
            state = dict(zip(network.node_ids, error.state.tolist()))
        kwargs = dict(
            failure_reason=error.reason,
            failure_kind="timeout" if isinstance(error, TimeoutExceeded) else "numerical",
            failure_time=error.time,
            failure_state=state,
        )
        if self.config.keep_partial_trace:
            return self._build_result(RunStatus.FAILED, **kwargs)
        return SimulationResult.empty(
            network.node_ids, [c.id for c in network.conductors],
            converged=False,
            iterations=self.accepted_steps,
            status=RunStatus.FAILED,
            rejected_steps=self.rejected_steps,
            solve_time=time.time() - self._t_wall_start,
            config=self.config,
            **kwargs,
        )


def solve_transient(network: ThermalNetwork, config: SimulationConfig,
                    progress_callback: Optional[Callable] = None) -> SimulationResult:
    """
    Funzione di convenienza per simulazioni transitorie.

    Args:
        network: Rete termica
        config: Configurazione della simulazione
        progress_callback: callback(t, T) a ogni passo accettato

    Returns:
        SimulationResult
    """
    return TransientSolver(network, config, progress_callback).solve()
