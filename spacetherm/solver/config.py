"""
config.py - Configurazione delle simulazioni
"""

import math
import os
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Optional

from ..core.errors import ValidationError
from ..core.model import _coerce_enum, _pick


class SimulationType(Enum):
    TRANSIENT = "transient"
    STEADY_STATE = "steady_state"


class SolverMethod(Enum):
    """
    Schemi di integrazione transitoria.

    - "rk4": Runge-Kutta 4 a passo adattivo (step doubling, stima di Richardson)
    - "rk4_fixed": Runge-Kutta 4 classico a passo costante
    - "implicit_euler": Eulero implicito (θ = 1) con Newton, passo adattivo
    - "crank_nicolson": trapezi (θ = 1/2) con Newton, passo adattivo
    """
    RK4 = "rk4"
    RK4_FIXED = "rk4_fixed"
    IMPLICIT_EULER = "implicit_euler"
    CRANK_NICOLSON = "crank_nicolson"


@dataclass
class SimulationConfig:
    """Configurazione di una simulazione

    Attributes:
        simulation_type: TRANSIENT o STEADY_STATE

        solver_method: Schema di integrazione (solo transitorio)

        time_start, time_end: Intervallo simulato [s]. Lo stazionario valuta
            i carichi a time_start.

        time_step: Passo [s]. Passo iniziale per gli schemi adattivi, passo
            costante per rk4_fixed.

        max_iterations: Budget di tentativi di passo (transitorio) o di
            iterazioni (stazionario).
            - transitorio: esaurito prima di time_end → TimeoutExceeded
            - stazionario: esaurito → converged=False, nessuna eccezione

        tolerance: Tolleranza [K].
            - rk4: errore locale di troncamento per passo
            - stazionario: massima variazione di temperatura tra iterazioni
            - implicito: correzione di Newton

        min_step, max_step: Limiti del passo adattivo [s]. max_step=None
            significa l'intera durata.

        wall_time_limit: Budget di tempo di calcolo [s] (None = illimitato)

        keep_partial_trace: In caso di errore numerico restituisce comunque
            la storia calcolata fino al fallimento.

        verbose: Stampa progresso e diagnostica
    """
    simulation_type: SimulationType = SimulationType.TRANSIENT
    solver_method: SolverMethod = SolverMethod.RK4
    time_start: float = 0.0
    time_end: float = 3600.0
    time_step: float = 10.0
    max_iterations: int = 100_000
    tolerance: float = 1e-4
    min_step: float = 1e-3
    max_step: Optional[float] = None
    wall_time_limit: Optional[float] = None
    keep_partial_trace: bool = False
    verbose: bool = False

    def __post_init__(self):
        self.simulation_type = _coerce_enum(SimulationType, self.simulation_type,
                                            "config", "simulation_type", "tipo di simulazione")
        self.solver_method = _coerce_enum(SolverMethod, self.solver_method,
                                          "config", "solver_method", "metodo")
        self.validate()

    @property
    def is_transient(self) -> bool:
        return self.simulation_type == SimulationType.TRANSIENT

    @property
    def duration(self) -> float:
        return self.time_end - self.time_start

    @property
    def effective_max_step(self) -> float:
        if self.max_step is None:
            return max(self.duration, self.min_step)
        return self.max_step

    def validate(self):
        """Controlla la coerenza dei parametri"""
        for f in ("time_start", "time_end", "time_step", "tolerance", "min_step"):
            if not math.isfinite(getattr(self, f)):
                raise ValidationError(f"{f} non finito", "config", f)
        if self.max_iterations < 1:
            raise ValidationError("max_iterations deve essere ≥ 1", "config", "max_iterations")
        if self.tolerance <= 0:
            raise ValidationError("tolerance deve essere > 0", "config", "tolerance")
        if self.wall_time_limit is not None and self.wall_time_limit <= 0:
            raise ValidationError("wall_time_limit deve essere > 0", "config", "wall_time_limit")

        if not self.is_transient:
            return
        if self.time_end <= self.time_start:
            raise ValidationError("time_end deve essere maggiore di time_start",
                                  "config", "time_end")
        if self.time_step <= 0:
            raise ValidationError("time_step deve essere > 0", "config", "time_step")
        if self.time_step > self.duration:
            raise ValidationError("time_step supera la durata della simulazione",
                                  "config", "time_step")
        if self.min_step <= 0:
            raise ValidationError("min_step deve essere > 0", "config", "min_step")
        if self.max_step is not None and self.max_step < self.min_step:
            raise ValidationError("max_step minore di min_step", "config", "max_step")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationConfig":
        """Accetta chiavi snake_case o camelCase (timeStart, solverMethod, ...)"""
        kwargs = {}
        for f in fields(cls):
            camel = f.name.split("_")[0] + "".join(p.title() for p in f.name.split("_")[1:])
            value = _pick(data, f.name, camel)
            if value is not None:
                kwargs[f.name] = value
        return cls(**kwargs)


def steady_state_config(max_iterations: int = 1000, tolerance: float = 1e-6,
                        verbose: bool = False) -> SimulationConfig:
    """Configurazione stazionaria usata dagli strumenti di analisi"""
    return SimulationConfig(
        simulation_type=SimulationType.STEADY_STATE,
        time_start=0.0,
        time_end=0.0,
        max_iterations=max_iterations,
        tolerance=tolerance,
        verbose=verbose,
    )


def resolve_workers(n_workers: int) -> int:
    """
    Numero effettivo di worker.

    Args:
        n_workers: 0 = tutti i core, -1 = tutti - 1, N = esattamente N (max core)
    """
    n_cpu = os.cpu_count() or 1
    if n_workers == 0:
        return n_cpu
    elif n_workers == -1:
        return max(1, n_cpu - 1)
    return max(1, min(n_workers, n_cpu))
