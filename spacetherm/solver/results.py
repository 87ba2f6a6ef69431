"""
results.py - Risultati delle simulazioni

La storia temporale è memorizzata come matrici (n_tempi × n_nodi) e
(n_tempi × n_conduttori); NodeResult e ConductorFlowResult sono viste per
singola entità nel formato scambiato con i servizi esterni.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import numpy as np

from ..core.errors import ConvergenceFailure, NumericalFailure, TimeoutExceeded

if TYPE_CHECKING:
    from ..analysis.energy_balance import EnergyBalanceResult
    from .config import SimulationConfig


class RunStatus(Enum):
    COMPLETED = "completed"
    NOT_CONVERGED = "not_converged"
    FAILED = "failed"


@dataclass
class NodeResult:
    """Storia di temperatura di un nodo"""
    node_id: str
    times: np.ndarray
    temperatures: np.ndarray


@dataclass
class ConductorFlowResult:
    """Storia del flusso attraverso un conduttore (positivo from → to)"""
    conductor_id: str
    times: np.ndarray
    flows: np.ndarray


@dataclass
class SimulationResult:
    """
    Risultato di una simulazione.

    Attributes:
        time_points: Istanti registrati [s]
        node_ids, temperatures: Temperature [K], forma (n_tempi, n_nodi)
        conductor_ids, flows: Flussi [W], forma (n_tempi, n_conduttori)
        converged: True se il run ha raggiunto il criterio di arresto
        iterations: Passi accettati (transitorio) o iterazioni (stazionario)
        status: COMPLETED, NOT_CONVERGED o FAILED
        failure_reason, failure_time, failure_state: Diagnostica del fallimento
        energy_balance: Bilancio energetico (consultivo)
    """
    time_points: np.ndarray
    node_ids: Sequence[str]
    temperatures: np.ndarray
    conductor_ids: Sequence[str]
    flows: np.ndarray
    converged: bool
    iterations: int
    status: RunStatus = RunStatus.COMPLETED
    rejected_steps: int = 0
    failure_reason: Optional[str] = None
    failure_kind: Optional[str] = None          # "timeout" | "numerical"
    failure_time: Optional[float] = None
    failure_state: Optional[Dict[str, float]] = None
    energy_balance: Optional["EnergyBalanceResult"] = None
    solve_time: float = 0.0
    config: Optional["SimulationConfig"] = None
    residual: float = 0.0
    _index: Dict[str, int] = field(default=None, repr=False)

    def __post_init__(self):
        self._index = {node_id: i for i, node_id in enumerate(self.node_ids)}

    # -------------------------------------------------------------------------
    # Viste
    # -------------------------------------------------------------------------

    @property
    def node_results(self) -> List[NodeResult]:
        return [NodeResult(node_id, self.time_points, self.temperatures[:, i])
                for i, node_id in enumerate(self.node_ids)]

    @property
    def conductor_flows(self) -> List[ConductorFlowResult]:
        return [ConductorFlowResult(cond_id, self.time_points, self.flows[:, c])
                for c, cond_id in enumerate(self.conductor_ids)]

    @property
    def energy_balance_error(self) -> float:
        if self.energy_balance is None:
            return float("nan")
        return self.energy_balance.relative_error

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.COMPLETED

    def node_temperatures(self, node_id: str) -> np.ndarray:
        return self.temperatures[:, self._index[node_id]]

    def final_temperatures(self) -> Dict[str, float]:
        """Temperature all'ultimo istante registrato"""
        if len(self.time_points) == 0:
            return {}
        last = self.temperatures[-1]
        return {node_id: float(last[i]) for i, node_id in enumerate(self.node_ids)}

    def temperature_stats(self) -> Dict[str, Dict[str, float]]:
        """Minimo, massimo e media nel tempo per ogni nodo"""
        if len(self.time_points) == 0:
            return {}
        return {
            node_id: {
                "min": float(self.temperatures[:, i].min()),
                "max": float(self.temperatures[:, i].max()),
                "mean": float(self.temperatures[:, i].mean()),
            }
            for i, node_id in enumerate(self.node_ids)
        }

    # -------------------------------------------------------------------------
    # Stato
    # -------------------------------------------------------------------------

    def raise_for_status(self) -> "SimulationResult":
        """
        Solleva l'eccezione corrispondente allo stato, se non COMPLETED.

        NOT_CONVERGED → ConvergenceFailure; FAILED → TimeoutExceeded o
        NumericalFailure secondo la causa.
        """
        state = None
        if self.failure_state is not None:
            state = np.array([self.failure_state[n] for n in self.node_ids])
        if self.status == RunStatus.NOT_CONVERGED:
            raise ConvergenceFailure(self.failure_reason or "iterazione non convergente",
                                     self.failure_time, state)
        if self.status == RunStatus.FAILED:
            reason = self.failure_reason or "simulazione fallita"
            if self.failure_kind == "timeout":
                raise TimeoutExceeded(reason, self.failure_time, state)
            raise NumericalFailure(reason, self.failure_time, state)
        return self

    # -------------------------------------------------------------------------
    # Serializzazione
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Struttura camelCase per i servizi esterni"""
        times = self.time_points.tolist()
        data = {
            "timePoints": times,
            "nodeResults": [
                {"nodeId": node_id, "times": times,
                 "temperatures": self.temperatures[:, i].tolist()}
                for i, node_id in enumerate(self.node_ids)
            ],
            "conductorFlows": [
                {"conductorId": cond_id, "times": times, "flows": self.flows[:, c].tolist()}
                for c, cond_id in enumerate(self.conductor_ids)
            ],
            "converged": self.converged,
            "iterations": self.iterations,
            "status": self.status.value,
            "energyBalanceError": self.energy_balance_error,
        }
        if self.energy_balance is not None:
            data["energyBalance"] = {
                "isBalanced": self.energy_balance.is_balanced,
                "relativeError": self.energy_balance.relative_error,
                "totalEnergyStored": self.energy_balance.total_energy_stored,
            }
        if self.status == RunStatus.FAILED or self.failure_reason:
            data["failure"] = {
                "reason": self.failure_reason,
                "time": self.failure_time,
                "state": self.failure_state,
            }
        return data

    @classmethod
    def empty(cls, node_ids: Sequence[str], conductor_ids: Sequence[str], **kwargs) -> "SimulationResult":
        """Risultato senza storia (run fallito senza traccia parziale)"""
        return cls(
            time_points=np.zeros(0),
            node_ids=list(node_ids),
            temperatures=np.zeros((0, len(node_ids))),
            conductor_ids=list(conductor_ids),
            flows=np.zeros((0, len(conductor_ids))),
            **kwargs,
        )
