"""
sensitivity.py - Matrice di sensibilità della temperatura ai parametri

=============================================================================
PARAMETER SENSITIVITY
=============================================================================

Per ogni parametro p del modello e ogni nodo non-boundary i:

    dT_i/dp ≈ (T_i(p + δ) - T_i(p)) / δ                 differenze in avanti
    dT_i/dp ≈ (T_i(p + δ) - T_i(p - δ)) / (2δ)          differenze centrali
    d²T_i/dp² ≈ (T_i(p + δ) - 2·T_i(p) + T_i(p - δ)) / δ²   (solo centrali)

    δ = max(|p| · 5%, 1e-10)

Ogni perturbazione è un run indipendente del solver (stazionario di
default, max 1000 iterazioni, tolleranza 1e-6 K) su una copia del modello:
nessun termine incrociato, solo sensibilità del primo ordine (diagonale).

PARAMETRI RACCOLTI:
    nodi non-boundary: absorptivity, emissivity (se definite),
                       capacitance, mass (se > 0)
    conduttori:        conductance (linear/contact, > 0),
                       view_factor ed emissivity (radiation)
    carichi:           value (solo carichi costanti)

Le proprietà frazionarie (α, ε, F) vicine a 1 sono perturbate verso il
basso nello schema in avanti. Nello schema centrale il passo è ridotto per
restare in [0, 1]; a un estremo (p = 0 o p = 1) si usa la differenza
unilaterale verso l'interno, con stima del secondo ordine nulla.

STATO:
    pending → running → {complete, failed}

Il fallimento di una singola perturbazione viene registrato in
SensitivityMatrix.failures e non interrompe le altre. La matrice è
"failed" solo se fallisce il run di riferimento.

WHAT-IF:
    T_whatif,i = T_base,i + Σ_p dT_i/dp · Δp
=============================================================================
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..core.errors import ThermalNetworkError, ValidationError
from ..core.materials import MaterialManager
from ..core.model import ConductorType, HeatLoadType, NodeKind, ThermalModel, _coerce_enum
from ..core.network import ThermalNetwork, build_from_model
from ..core.parameters import (
    ConductorField,
    ConductorProperty,
    HeatLoadProperty,
    NodeField,
    NodeProperty,
    ParameterTarget,
)
from ..solver.config import SimulationConfig, steady_state_config
from ..solver.parallel import map_runs
from ..solver.results import SimulationResult
from ..solver.runner import run_simulation

PERTURBATION_FRACTION = 0.05
MIN_PERTURBATION = 1e-10

_FRACTION_FIELDS = {NodeField.ABSORPTIVITY, NodeField.EMISSIVITY,
                    ConductorField.VIEW_FACTOR, ConductorField.EMISSIVITY}


class SensitivityStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


class DifferenceScheme(Enum):
    FORWARD = "forward"
    CENTRAL = "central"


@dataclass
class SensitivityEntry:
    """Sensibilità della temperatura di un nodo a un parametro"""
    parameter_id: str
    entity_type: str
    entity_id: str
    node_id: str
    baseline_value: float
    perturbed_value: float
    baseline_temperature: float             # [K]
    perturbed_temperature: float            # [K]
    dT_dp: float
    second_order_estimate: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "parameterId": self.parameter_id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "nodeId": self.node_id,
            "baseline": self.baseline_value,
            "perturbed": self.perturbed_value,
            "dT_dp": self.dT_dp,
            "secondOrderEstimate": self.second_order_estimate,
        }


@dataclass
class SensitivityMatrix:
    """Insieme delle sensibilità prodotte da un calcolo"""
    status: SensitivityStatus = SensitivityStatus.PENDING
    entries: List[SensitivityEntry] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)      # parameter_id → causa
    error_message: Optional[str] = None
    compute_time: float = 0.0

    @property
    def parameter_ids(self) -> List[str]:
        return list(dict.fromkeys(e.parameter_id for e in self.entries))

    @property
    def node_ids(self) -> List[str]:
        return list(dict.fromkeys(e.node_id for e in self.entries))

    def for_parameter(self, parameter_id: str) -> List[SensitivityEntry]:
        return [e for e in self.entries if e.parameter_id == parameter_id]

    def for_node(self, node_id: str) -> List[SensitivityEntry]:
        return [e for e in self.entries if e.node_id == node_id]

    def as_array(self) -> Tuple[List[str], List[str], np.ndarray]:
        """
        Matrice densa dT/dp.

        Returns:
            (parameter_ids, node_ids, S) con S[p, n] = dT_n/dp
        """
        params = self.parameter_ids
        nodes = self.node_ids
        p_index = {p: i for i, p in enumerate(params)}
        n_index = {n: j for j, n in enumerate(nodes)}
        S = np.zeros((len(params), len(nodes)))
        for e in self.entries:
            S[p_index[e.parameter_id], n_index[e.node_id]] = e.dT_dp
        return params, nodes, S

    def to_dict(self) -> Dict:
        return {
            "status": self.status.value,
            "entries": [e.to_dict() for e in self.entries],
            "failures": dict(self.failures),
            "errorMessage": self.error_message,
        }


# =============================================================================
# RACCOLTA PARAMETRI
# =============================================================================

def collect_parameters(model: ThermalModel) -> List[ParameterTarget]:
    """Parametri perturbabili del modello, nell'ordine dei record"""
    params: List[ParameterTarget] = []

    for node in model.nodes:
        if node.kind == NodeKind.BOUNDARY:
            continue
        if node.absorptivity is not None:
            params.append(NodeProperty(node.id, NodeField.ABSORPTIVITY))
        if node.emissivity is not None:
            params.append(NodeProperty(node.id, NodeField.EMISSIVITY))
        if node.capacitance is not None and node.capacitance > 0:
            params.append(NodeProperty(node.id, NodeField.CAPACITANCE))
        if node.mass is not None and node.mass > 0:
            params.append(NodeProperty(node.id, NodeField.MASS))

    for cond in model.conductors:
        if cond.type in (ConductorType.LINEAR, ConductorType.CONTACT):
            if cond.conductance is not None and cond.conductance > 0:
                params.append(ConductorProperty(cond.id, ConductorField.CONDUCTANCE))
        elif cond.type == ConductorType.RADIATION:
            if cond.view_factor is not None and cond.view_factor > 0:
                params.append(ConductorProperty(cond.id, ConductorField.VIEW_FACTOR))
            if cond.emissivity is not None and cond.emissivity > 0:
                params.append(ConductorProperty(cond.id, ConductorField.EMISSIVITY))

    for load in model.heat_loads:
        if load.type == HeatLoadType.CONSTANT:
            params.append(HeatLoadProperty(load.id))

    return params


def perturbation_step(target: ParameterTarget, value: float,
                      fraction: float = PERTURBATION_FRACTION,
                      central: bool = False) -> float:
    """Passo δ con segno per il parametro (negativo se p + δ esce da [0, 1])"""
    delta = max(abs(value * fraction), MIN_PERTURBATION)
    if target.field in _FRACTION_FIELDS:
        if central:
            room = min(value, 1.0 - value)
            if room > 0.0:
                delta = min(delta, room)
        elif value + delta > 1.0:
            delta = -delta
    return delta


def central_sides(target: ParameterTarget, value: float, delta: float) -> Tuple[bool, bool]:
    """Lati (p + δ, p - δ) che restano nel dominio del parametro"""
    if target.field not in _FRACTION_FIELDS:
        return True, True
    return value + delta <= 1.0, value - delta >= 0.0


# =============================================================================
# RUN DI PERTURBAZIONE
# =============================================================================

def _final_temperatures(job) -> Tuple[Optional[Dict[str, float]], Optional[str]]:
    """
    Worker: costruisce la rete dal modello ed esegue il solver.

    Returns:
        (temperature finali, None) oppure (None, causa del fallimento)
    """
    model, materials, config = job
    try:
        network = build_from_model(model, materials)
        result = run_simulation(network, config)
    except ThermalNetworkError as e:
        return None, str(e)
    if not result.ok:
        return None, result.failure_reason or result.status.value
    return result.final_temperatures(), None


class SensitivityAnalyzer:
    """
    Calcolo della matrice di sensibilità per differenze finite.
    """

    def __init__(self, perturbation: float = PERTURBATION_FRACTION,
                 scheme: str = "forward",
                 config: Optional[SimulationConfig] = None,
                 n_workers: int = 1,
                 materials: Optional[MaterialManager] = None,
                 verbose: bool = False):
        """
        Args:
            perturbation: Frazione di perturbazione (default 5%)
            scheme: "forward" (un run per parametro) o "central" (due run)
            config: Configurazione del solver (default: stazionario 1000 it, 1e-6 K)
            n_workers: Worker per i run indipendenti (1 = sequenziale)
            materials: Database materiali usato per ricostruire la rete
            verbose: Stampa avanzamento
        """
        if perturbation <= 0:
            raise ValidationError("la perturbazione deve essere > 0", "sensitivity", "perturbation")
        self.perturbation = perturbation
        self.scheme = _coerce_enum(DifferenceScheme, scheme, "sensitivity", "scheme", "schema")
        self.config = config or steady_state_config()
        self.n_workers = n_workers
        self.materials = materials
        self.verbose = verbose
        self.matrix = SensitivityMatrix()

    def compute(self, network: ThermalNetwork,
                baseline_result: Optional[SimulationResult] = None) -> SensitivityMatrix:
        """
        Calcola la matrice di sensibilità.

        Args:
            network: Rete di riferimento (i record sono in network.model)
            baseline_result: Risultato di riferimento già calcolato con la
                stessa configurazione; se assente viene eseguito

        Returns:
            SensitivityMatrix (anche in caso di fallimento, con stato FAILED)
        """
        t_start = time.time()
        matrix = SensitivityMatrix(status=SensitivityStatus.RUNNING)
        self.matrix = matrix
        model = network.model
        central = self.scheme == DifferenceScheme.CENTRAL

        try:
            targets = collect_parameters(model)
            if self.verbose:
                print(f"[SENS] {len(targets)} parametri, schema {self.scheme.value}, "
                      f"perturbazione {100 * self.perturbation:.1f}%")

            baseline = self._baseline(model, baseline_result)
            output_ids = [n.id for n in network.nodes if n.kind != NodeKind.BOUNDARY]

            values = [target.get(model) for target in targets]
            deltas = [perturbation_step(t, v, self.perturbation, central)
                      for t, v in zip(targets, values)]

            # Indici dei run (p + δ, p - δ) di ogni parametro, None se assente
            jobs = []
            slots = []
            for target, value, delta in zip(targets, values, deltas):
                sides = central_sides(target, value, delta) if central else (True, False)
                slot = []
                for sign, wanted in zip((1.0, -1.0), sides):
                    if not wanted:
                        slot.append(None)
                        continue
                    slot.append(len(jobs))
                    jobs.append((target.apply(model, value + sign * delta),
                                 self.materials, self.config))
                slots.append(tuple(slot))
            outcomes = map_runs(_final_temperatures, jobs, self.n_workers)
        except ThermalNetworkError as e:
            matrix.status = SensitivityStatus.FAILED
            matrix.error_message = str(e)
            matrix.compute_time = time.time() - t_start
            if self.verbose:
                print(f"[ERRORE] Sensibilità: {e}")
            return matrix

        for target, value, delta, (plus_at, minus_at) in zip(targets, values, deltas, slots):
            plus = minus = error = None
            if plus_at is not None:
                plus, error = outcomes[plus_at]
            if error is None and minus_at is not None:
                minus, error = outcomes[minus_at]
            if error is not None:
                matrix.failures[target.key] = error
                if self.verbose:
                    print(f"[SENS] {target.key}: fallito ({error})")
                continue

            two_sided = plus is not None and minus is not None
            step, perturbed = (delta, plus) if plus is not None else (-delta, minus)
            if central and not two_sided and self.verbose:
                print(f"[SENS] {target.key}: p = {value:g} al limite, differenza unilaterale")

            for node_id in output_ids:
                T_base = baseline[node_id]
                if two_sided:
                    T_plus = plus[node_id]
                    T_minus = minus[node_id]
                    dT_dp = (T_plus - T_minus) / (2.0 * delta)
                    second = (T_plus - 2.0 * T_base + T_minus) / (delta * delta)
                    T_pert = T_plus
                else:
                    T_pert = perturbed[node_id]
                    dT_dp = (T_pert - T_base) / step
                    second = 0.0
                matrix.entries.append(SensitivityEntry(
                    parameter_id=target.key,
                    entity_type=target.entity_type,
                    entity_id=target.entity_id,
                    node_id=node_id,
                    baseline_value=value,
                    perturbed_value=value + step,
                    baseline_temperature=T_base,
                    perturbed_temperature=T_pert,
                    dT_dp=dT_dp,
                    second_order_estimate=second,
                ))

        matrix.status = SensitivityStatus.COMPLETE
        matrix.compute_time = time.time() - t_start
        if self.verbose:
            print(f"[SENS] Completato: {len(matrix.entries)} voci, "
                  f"{len(matrix.failures)} fallimenti, {matrix.compute_time:.2f} s")
        return matrix

    def _baseline(self, model: ThermalModel,
                  baseline_result: Optional[SimulationResult]) -> Dict[str, float]:
        if baseline_result is not None and baseline_result.ok:
            return baseline_result.final_temperatures()
        temps, error = _final_temperatures((model, self.materials, self.config))
        if error is not None:
            raise ThermalNetworkError(f"run di riferimento fallito: {error}")
        return temps


# =============================================================================
# WHAT-IF (APPROSSIMAZIONE LINEARE)
# =============================================================================

def compute_delta_temperatures(entries: Sequence[SensitivityEntry],
                               deltas: Mapping[str, float]) -> Dict[str, float]:
    """ΔT per nodo: Σ_p dT/dp · Δp (solo nodi con almeno un contributo)"""
    delta_T: Dict[str, float] = {}
    for entry in entries:
        dp = deltas.get(entry.parameter_id)
        if not dp:
            continue
        delta_T[entry.node_id] = delta_T.get(entry.node_id, 0.0) + entry.dT_dp * dp
    return delta_T


def compute_what_if_temperatures(baseline: Mapping[str, float],
                                 entries: Sequence[SensitivityEntry],
                                 deltas: Mapping[str, float]) -> Dict[str, float]:
    """
    Temperature stimate dopo le variazioni dei parametri, senza ri-risolvere.

    Args:
        baseline: Temperature di riferimento per nodo [K]
        entries: Voci della matrice di sensibilità
        deltas: Variazione Δp per parameter_id

    Returns:
        Temperature stimate per ogni nodo di baseline
    """
    delta_T = compute_delta_temperatures(entries, deltas)
    return {node_id: T + delta_T.get(node_id, 0.0) for node_id, T in baseline.items()}


def compute_accuracy_score(entries: Sequence[SensitivityEntry],
                           deltas: Mapping[str, float]) -> int:
    """
    Indice di affidabilità 0-100 dell'approssimazione lineare.

    Decresce con il rapporto tra termine del secondo ordine e del primo
    (richiede lo schema centrale); 100 se non ci sono variazioni.
    """
    max_ratio = 0.0
    for entry in entries:
        dp = deltas.get(entry.parameter_id)
        if not dp:
            continue
        first = abs(entry.dT_dp * dp)
        if first < 1e-12:
            continue
        second = abs(entry.second_order_estimate * dp * dp)
        max_ratio = max(max_ratio, second / first)
    return max(0, round(100 - 100 * max_ratio))
