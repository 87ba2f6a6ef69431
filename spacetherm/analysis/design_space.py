"""
design_space.py - Esplorazione dello spazio di progetto

=============================================================================
DESIGN SPACE EXPLORATION
=============================================================================

Campiona fino a 5 parametri del modello in intervalli [min, max], esegue un
run del solver per ogni campione e verifica i vincoli di temperatura.

CAMPIONAMENTO:
    "lhs" (Latin Hypercube):
        ogni intervallo è diviso in N strati di uguale ampiezza, si estrae
        un punto uniforme per strato e si permutano gli strati in modo
        indipendente per ogni parametro. Ogni strato di ogni parametro
        contiene esattamente un campione.
    "random":
        N campioni uniformi indipendenti.

    I campioni sono generati nel processo chiamante con un
    numpy.random.Generator (seed opzionale): il risultato non dipende dal
    numero di worker.

LIMITI:
    1-5 parametri, 10-100 campioni, min < max (altrimenti ValidationError)

Ogni campione:
    copia del modello con i valori applicati → rete → solver (stazionario
    di default) → min/max/media per nodo → vincoli

    infeasible se max(T) > temp_max oppure min(T) < temp_min per un nodo
    vincolato. Un campione il cui run fallisce è infeasible, senza
    risultati per nodo e con il messaggio d'errore.
=============================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from ..core.errors import ThermalNetworkError, ValidationError
from ..core.materials import MaterialManager
from ..core.model import ThermalModel, _coerce_enum, _pick
from ..core.network import ThermalNetwork, build_from_model
from ..core.parameters import ParameterTarget, parameter_from_dict, parameter_target
from ..solver.config import SimulationConfig, steady_state_config
from ..solver.parallel import map_runs
from ..solver.results import SimulationResult
from ..solver.runner import run_simulation

MIN_PARAMETERS = 1
MAX_PARAMETERS = 5
MIN_SAMPLES = 10
MAX_SAMPLES = 100


class SamplingMethod(Enum):
    LHS = "lhs"
    RANDOM = "random"


@dataclass(frozen=True)
class ExplorationParameter:
    """Parametro esplorato nell'intervallo [min_value, max_value]"""
    target: ParameterTarget
    min_value: float
    max_value: float

    @property
    def key(self) -> str:
        return self.target.key

    @classmethod
    def of(cls, entity_type: str, entity_id: str, prop: str,
           min_value: float, max_value: float) -> "ExplorationParameter":
        return cls(parameter_target(entity_type, entity_id, prop), min_value, max_value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExplorationParameter":
        return cls(
            target=parameter_from_dict(data),
            min_value=float(_pick(data, "min_value", "minValue")),
            max_value=float(_pick(data, "max_value", "maxValue")),
        )


@dataclass(frozen=True)
class ExplorationConstraint:
    """Limiti di temperatura [K] su un nodo"""
    node_id: str
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExplorationConstraint":
        return cls(
            node_id=_pick(data, "node_id", "nodeId"),
            temp_min=_pick(data, "temp_min", "tempMin"),
            temp_max=_pick(data, "temp_max", "tempMax"),
        )


@dataclass
class NodeSummary:
    """Statistiche di temperatura di un nodo in un campione"""
    node_id: str
    node_name: str
    min_temp: float
    max_temp: float
    mean_temp: float


@dataclass
class ExplorationSampleResult:
    """Esito di un campione dell'esplorazione"""
    sample_index: int
    param_values: Dict[str, float]
    node_results: List[NodeSummary] = field(default_factory=list)
    feasible: bool = False
    error: Optional[str] = None

    def node(self, node_id: str) -> NodeSummary:
        for summary in self.node_results:
            if summary.node_id == node_id:
                return summary
        raise KeyError(node_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sampleIndex": self.sample_index,
            "paramValues": dict(self.param_values),
            "nodeResults": [
                {"nodeId": s.node_id, "nodeName": s.node_name, "minTemp": s.min_temp,
                 "maxTemp": s.max_temp, "meanTemp": s.mean_temp}
                for s in self.node_results
            ],
            "feasible": self.feasible,
            "error": self.error,
        }


# =============================================================================
# CAMPIONAMENTO
# =============================================================================

def validate_exploration(parameters: Sequence[ExplorationParameter], num_samples: int):
    """Controlla numero di parametri, numero di campioni e intervalli"""
    if not MIN_PARAMETERS <= len(parameters) <= MAX_PARAMETERS:
        raise ValidationError(
            f"servono da {MIN_PARAMETERS} a {MAX_PARAMETERS} parametri "
            f"(ricevuti {len(parameters)})", "exploration", "parameters")
    if not MIN_SAMPLES <= num_samples <= MAX_SAMPLES:
        raise ValidationError(
            f"num_samples deve essere tra {MIN_SAMPLES} e {MAX_SAMPLES} "
            f"(ricevuto {num_samples})", "exploration", "num_samples")
    keys = set()
    for p in parameters:
        if not p.min_value < p.max_value:
            raise ValidationError(f"min_value ({p.min_value}) deve essere minore di "
                                  f"max_value ({p.max_value})", "exploration", p.key)
        if p.key in keys:
            raise ValidationError("parametro duplicato", "exploration", p.key)
        keys.add(p.key)


def latin_hypercube_sample(parameters: Sequence[ExplorationParameter], num_samples: int,
                           rng: Optional[np.random.Generator] = None) -> List[Dict[str, float]]:
    """
    Campioni Latin Hypercube.

    Returns:
        Lista di num_samples dizionari {chiave parametro: valore}
    """
    rng = rng if rng is not None else np.random.default_rng()
    columns = {}
    for p in parameters:
        width = (p.max_value - p.min_value) / num_samples
        lower = p.min_value + np.arange(num_samples) * width
        columns[p.key] = rng.permutation(lower + rng.random(num_samples) * width)
    return [{key: float(values[i]) for key, values in columns.items()}
            for i in range(num_samples)]


def random_sample(parameters: Sequence[ExplorationParameter], num_samples: int,
                  rng: Optional[np.random.Generator] = None) -> List[Dict[str, float]]:
    """Campioni uniformi indipendenti"""
    rng = rng if rng is not None else np.random.default_rng()
    columns = {p.key: rng.uniform(p.min_value, p.max_value, num_samples) for p in parameters}
    return [{key: float(values[i]) for key, values in columns.items()}
            for i in range(num_samples)]


def apply_parameter_sample(model: ThermalModel, parameters: Sequence[ExplorationParameter],
                           sample: Mapping[str, float]) -> ThermalModel:
    """Copia del modello con i valori del campione (il modello di partenza non cambia)"""
    for p in parameters:
        if p.key in sample:
            model = p.target.apply(model, sample[p.key])
    return model


# =============================================================================
# VALUTAZIONE
# =============================================================================

def summarize_nodes(result: SimulationResult, network: ThermalNetwork) -> List[NodeSummary]:
    """Minimo, massimo e media nel tempo per ogni nodo"""
    stats = result.temperature_stats()
    return [
        NodeSummary(node.id, node.name or node.id, stats[node.id]["min"],
                    stats[node.id]["max"], stats[node.id]["mean"])
        for node in network.nodes
    ]


def check_feasibility(node_results: Sequence[NodeSummary],
                      constraints: Sequence[ExplorationConstraint]) -> bool:
    """True se tutti i vincoli sono rispettati (nodi non presenti ignorati)"""
    by_id = {s.node_id: s for s in node_results}
    for c in constraints:
        summary = by_id.get(c.node_id)
        if summary is None:
            continue
        if c.temp_max is not None and summary.max_temp > c.temp_max:
            return False
        if c.temp_min is not None and summary.min_temp < c.temp_min:
            return False
    return True


def _run_sample(job) -> ExplorationSampleResult:
    """Worker: esegue un campione; gli errori diventano campioni infeasible"""
    index, model, parameters, sample, constraints, materials, config = job
    outcome = ExplorationSampleResult(sample_index=index, param_values=dict(sample))
    try:
        network = build_from_model(apply_parameter_sample(model, parameters, sample), materials)
        result = run_simulation(network, config)
    except ThermalNetworkError as e:
        outcome.error = str(e)
        return outcome
    if not result.ok:
        outcome.error = result.failure_reason or result.status.value
        return outcome
    outcome.node_results = summarize_nodes(result, network)
    outcome.feasible = check_feasibility(outcome.node_results, constraints)
    return outcome


class DesignSpaceExplorer:
    """
    Esploratore dello spazio di progetto.
    """

    def __init__(self, config: Optional[SimulationConfig] = None, n_workers: int = 1,
                 seed: Optional[int] = None, materials: Optional[MaterialManager] = None,
                 verbose: bool = False):
        """
        Args:
            config: Configurazione del solver per ogni campione (default stazionario)
            n_workers: Worker per i run indipendenti (1 = sequenziale)
            seed: Seed del generatore di campioni (None = non riproducibile)
            materials: Database materiali usato per ricostruire la rete
            verbose: Stampa avanzamento
        """
        self.config = config or steady_state_config()
        self.n_workers = n_workers
        self.seed = seed
        self.materials = materials
        self.verbose = verbose

    def sample(self, parameters: Sequence[ExplorationParameter], num_samples: int,
               method: str = "lhs") -> List[Dict[str, float]]:
        """Genera i campioni senza eseguirli"""
        method = _coerce_enum(SamplingMethod, method, "exploration", "method", "metodo")
        validate_exploration(parameters, num_samples)
        rng = np.random.default_rng(self.seed)
        if method == SamplingMethod.LHS:
            return latin_hypercube_sample(parameters, num_samples, rng)
        return random_sample(parameters, num_samples, rng)

    def explore(self, network: ThermalNetwork,
                parameters: Sequence[ExplorationParameter],
                constraints: Sequence[ExplorationConstraint] = (),
                num_samples: int = 20,
                method: str = "lhs") -> List[ExplorationSampleResult]:
        """
        Esegue l'esplorazione.

        Args:
            network: Rete di riferimento (i record sono in network.model)
            parameters: Parametri esplorati (1-5)
            constraints: Vincoli di temperatura
            num_samples: Numero di campioni (10-100)
            method: "lhs" o "random"

        Returns:
            Un ExplorationSampleResult per campione, nell'ordine di generazione
        """
        parameters = list(parameters)
        constraints = list(constraints)
        model = network.model
        for p in parameters:
            # Riferimenti a entità inesistenti o campi non definiti falliscono subito
            p.target.apply(model, p.min_value)

        samples = self.sample(parameters, num_samples, method)
        if self.verbose:
            print(f"[DSE] {len(samples)} campioni ({method}), "
                  f"{len(parameters)} parametri, {len(constraints)} vincoli")

        jobs = [(i, model, parameters, s, constraints, self.materials, self.config)
                for i, s in enumerate(samples)]
        results = map_runs(_run_sample, jobs, self.n_workers)

        if self.verbose:
            n_feasible = sum(r.feasible for r in results)
            n_failed = sum(r.error is not None for r in results)
            print(f"[DSE] Fattibili: {n_feasible}/{len(results)}, falliti: {n_failed}")
        return results
