"""
failure_modes.py - Iniezione di modi di guasto nel modello termico

=============================================================================
FAILURE MODE ANALYSIS
=============================================================================

Ogni modo di guasto trasforma una copia del modello (il modello di partenza
non viene mai modificato):

    heater_failure           carico heat_load_id azzerato (valore e tabella)
    mli_degradation          nodi con ε < 0.1: ε × degradation_factor (def. 5), max 0.99
    coating_degradation_eol  α + absorbance_delta (def. 0.05), max 0.99, su nodi
                             con carichi orbitali e sui parametri orbitali
    attitude_loss_tumble     carichi orbitali → superficie "custom" con α / 6
                             (media sulle 6 facce)
    power_budget_reduction   carichi costanti e tabellari × power_scale_factor
                             (def. 0.5), mai negativi
    conductor_failure        conduttore conductor_id aperto: G = 0 (linear,
                             contact), curva nulla (heat pipe), ε = 0 (radiation)
    component_power_spike    carichi del nodo node_id × spike_factor (def. 2)

FailureModeAnalyzer esegue il caso nominale e ogni caso di guasto come run
indipendenti (transitorio RK4 su un'orbita di 5400 s di default) e riporta
per nodo la temperatura di picco e la differenza rispetto al nominale. Un
caso il cui run fallisce viene registrato con il messaggio d'errore.
=============================================================================
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..core.constants import DEFAULT_ABSORPTIVITY
from ..core.errors import ThermalNetworkError, ValidationError
from ..core.materials import MaterialManager
from ..core.model import (
    ConductancePoint,
    ConductorType,
    HeatLoadType,
    SurfaceType,
    ThermalModel,
    TimeValue,
    _coerce_enum,
    _pick,
)
from ..core.network import ThermalNetwork, build_from_model
from ..solver.config import SimulationConfig, SimulationType, SolverMethod
from ..solver.parallel import map_runs
from ..solver.runner import run_simulation

MLI_EMISSIVITY_THRESHOLD = 0.1
MAX_OPTICAL_PROPERTY = 0.99
TUMBLE_FACES = 6


class FailureType(Enum):
    HEATER_FAILURE = "heater_failure"
    MLI_DEGRADATION = "mli_degradation"
    COATING_DEGRADATION_EOL = "coating_degradation_eol"
    ATTITUDE_LOSS_TUMBLE = "attitude_loss_tumble"
    POWER_BUDGET_REDUCTION = "power_budget_reduction"
    CONDUCTOR_FAILURE = "conductor_failure"
    COMPONENT_POWER_SPIKE = "component_power_spike"


@dataclass(frozen=True)
class FailureModeParams:
    """Parametri dei modi di guasto (ognuno usa solo i propri)"""
    heat_load_id: Optional[str] = None
    degradation_factor: float = 5.0
    absorbance_delta: float = 0.05
    power_scale_factor: float = 0.5
    conductor_id: Optional[str] = None
    node_id: Optional[str] = None
    spike_factor: float = 2.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FailureModeParams":
        data = data or {}
        kwargs = {}
        for f in fields(cls):
            camel = f.name.split("_")[0] + "".join(p.title() for p in f.name.split("_")[1:])
            value = _pick(data, f.name, camel)
            if value is not None:
                kwargs[f.name] = value
        return cls(**kwargs)


def failure_analysis_config() -> SimulationConfig:
    """Configurazione di default: un'orbita (5400 s) con RK4 adattivo"""
    return SimulationConfig(
        simulation_type=SimulationType.TRANSIENT,
        solver_method=SolverMethod.RK4,
        time_start=0.0,
        time_end=5400.0,
        time_step=10.0,
        max_iterations=10_000,
        tolerance=0.01,
        min_step=0.01,
        max_step=100.0,
    )


# =============================================================================
# TRASFORMAZIONI
# =============================================================================

def _require(value, what: str, failure_type: FailureType):
    if value is None:
        raise ValidationError(f"parametro '{what}' obbligatorio", "failure_mode",
                              failure_type.value)
    return value


def _scale_table(time_values, factor: float, floor: Optional[float] = None):
    scaled = []
    for tv in time_values:
        value = tv.value * factor
        if floor is not None:
            value = max(value, floor)
        scaled.append(TimeValue(tv.time, value))
    return tuple(scaled)


def _heater_failure(model: ThermalModel, params: FailureModeParams) -> ThermalModel:
    load_id = _require(params.heat_load_id, "heat_load_id", FailureType.HEATER_FAILURE)
    load = model.heat_load(load_id)
    return model.replace_heat_load(load_id, value=0.0,
                                   time_values=_scale_table(load.time_values, 0.0))


def _mli_degradation(model: ThermalModel, params: FailureModeParams) -> ThermalModel:
    for node in model.nodes:
        if node.emissivity is not None and node.emissivity < MLI_EMISSIVITY_THRESHOLD:
            emissivity = min(node.emissivity * params.degradation_factor, MAX_OPTICAL_PROPERTY)
            model = model.replace_node(node.id, emissivity=emissivity)
    return model


def _orbital_absorptivity(model: ThermalModel, load) -> float:
    if load.orbital_params.absorptivity is not None:
        return load.orbital_params.absorptivity
    node = model.node(load.node_id)
    return node.absorptivity if node.absorptivity is not None else DEFAULT_ABSORPTIVITY


def _coating_degradation(model: ThermalModel, params: FailureModeParams) -> ThermalModel:
    delta = params.absorbance_delta
    orbital = [hl for hl in model.heat_loads
               if hl.type == HeatLoadType.ORBITAL and hl.orbital_params is not None]

    for node_id in dict.fromkeys(hl.node_id for hl in orbital):
        node = model.node(node_id)
        base = node.absorptivity if node.absorptivity is not None else DEFAULT_ABSORPTIVITY
        absorptivity = min(base + delta, MAX_OPTICAL_PROPERTY)
        model = model.replace_node(node_id, absorptivity=absorptivity)

    # Carichi senza α propria ereditano quella del nodo, già aggiornata
    for load in orbital:
        if load.orbital_params.absorptivity is None:
            continue
        absorptivity = min(load.orbital_params.absorptivity + delta, MAX_OPTICAL_PROPERTY)
        model = model.replace_heat_load(
            load.id, orbital_params=replace(load.orbital_params, absorptivity=absorptivity))
    return model


def _attitude_loss_tumble(model: ThermalModel, params: FailureModeParams) -> ThermalModel:
    for load in model.heat_loads:
        if load.type == HeatLoadType.ORBITAL and load.orbital_params is not None:
            absorptivity = _orbital_absorptivity(model, load) / TUMBLE_FACES
            orbital_params = replace(load.orbital_params, surface_type=SurfaceType.CUSTOM,
                                     surface_normal=None, absorptivity=absorptivity)
            model = model.replace_heat_load(load.id, orbital_params=orbital_params)
    return model


def _power_budget_reduction(model: ThermalModel, params: FailureModeParams) -> ThermalModel:
    scale = params.power_scale_factor
    for load in model.heat_loads:
        if load.type == HeatLoadType.CONSTANT:
            model = model.replace_heat_load(load.id, value=max(load.value * scale, 0.0))
        elif load.type == HeatLoadType.TABLE:
            model = model.replace_heat_load(
                load.id, time_values=_scale_table(load.time_values, scale, floor=0.0))
    return model


def _conductor_failure(model: ThermalModel, params: FailureModeParams) -> ThermalModel:
    cond_id = _require(params.conductor_id, "conductor_id", FailureType.CONDUCTOR_FAILURE)
    cond = model.conductor(cond_id)
    if cond.type == ConductorType.RADIATION:
        return model.replace_conductor(cond_id, emissivity=0.0)
    if cond.type == ConductorType.HEAT_PIPE:
        points = tuple(ConductancePoint(p.temperature, 0.0) for p in cond.conductance_data)
        return model.replace_conductor(cond_id, conductance_data=points)
    return model.replace_conductor(cond_id, conductance=0.0)


def _component_power_spike(model: ThermalModel, params: FailureModeParams) -> ThermalModel:
    node_id = _require(params.node_id, "node_id", FailureType.COMPONENT_POWER_SPIKE)
    model.node(node_id)
    factor = params.spike_factor
    for load in model.heat_loads:
        if load.node_id == node_id:
            model = model.replace_heat_load(
                load.id, value=load.value * factor,
                time_values=_scale_table(load.time_values, factor))
    return model


_TRANSFORMS = {
    FailureType.HEATER_FAILURE: _heater_failure,
    FailureType.MLI_DEGRADATION: _mli_degradation,
    FailureType.COATING_DEGRADATION_EOL: _coating_degradation,
    FailureType.ATTITUDE_LOSS_TUMBLE: _attitude_loss_tumble,
    FailureType.POWER_BUDGET_REDUCTION: _power_budget_reduction,
    FailureType.CONDUCTOR_FAILURE: _conductor_failure,
    FailureType.COMPONENT_POWER_SPIKE: _component_power_spike,
}


def apply_failure_mode(model: ThermalModel, failure_type, params=None) -> ThermalModel:
    """
    Applica un modo di guasto a una copia del modello.

    Args:
        model: Modello di partenza (non modificato)
        failure_type: FailureType o stringa ("heater_failure", ...)
        params: FailureModeParams o dizionario (chiavi snake_case o camelCase)

    Returns:
        Nuovo ThermalModel
    """
    failure_type = _coerce_enum(FailureType, failure_type, "failure_mode", str(failure_type),
                                "modo di guasto")
    if not isinstance(params, FailureModeParams):
        params = FailureModeParams.from_dict(params)
    return _TRANSFORMS[failure_type](model, params)


# =============================================================================
# ANALISI
# =============================================================================

@dataclass(frozen=True)
class FailureCase:
    """Caso di guasto da simulare"""
    failure_type: FailureType
    params: FailureModeParams = FailureModeParams()
    label: str = ""

    def __post_init__(self):
        object.__setattr__(self, "failure_type", _coerce_enum(
            FailureType, self.failure_type, "failure_case", self.label or "?", "modo di guasto"))
        if not isinstance(self.params, FailureModeParams):
            object.__setattr__(self, "params", FailureModeParams.from_dict(self.params))

    @property
    def name(self) -> str:
        return self.label or self.failure_type.value

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailureCase":
        return cls(
            failure_type=_pick(data, "failure_type", "failureType"),
            params=FailureModeParams.from_dict(data.get("params")),
            label=data.get("label") or "",
        )


@dataclass
class FailureCaseResult:
    """Esito di un caso di guasto"""
    case: FailureCase
    ok: bool = False
    peak_temperatures: Dict[str, float] = field(default_factory=dict)     # [K]
    min_temperatures: Dict[str, float] = field(default_factory=dict)      # [K]
    final_temperatures: Dict[str, float] = field(default_factory=dict)    # [K]
    delta_peak: Dict[str, float] = field(default_factory=dict)            # [K] vs nominale
    error: Optional[str] = None

    @property
    def worst_node(self) -> Optional[str]:
        """Nodo con il maggiore aumento di temperatura di picco"""
        if not self.delta_peak:
            return None
        return max(self.delta_peak, key=self.delta_peak.get)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failureType": self.case.failure_type.value,
            "label": self.case.name,
            "status": "completed" if self.ok else "failed",
            "peakTemperatures": dict(self.peak_temperatures),
            "minTemperatures": dict(self.min_temperatures),
            "deltaPeak": dict(self.delta_peak),
            "error": self.error,
        }


def _run_case(job) -> FailureCaseResult:
    """Worker: applica il guasto, costruisce la rete ed esegue il run"""
    case, model, materials, config = job
    outcome = FailureCaseResult(case=case)
    try:
        if case is not None:
            model = apply_failure_mode(model, case.failure_type, case.params)
        network = build_from_model(model, materials)
        result = run_simulation(network, config)
    except ThermalNetworkError as e:
        outcome.error = str(e)
        return outcome
    if not result.ok:
        outcome.error = result.failure_reason or result.status.value
        return outcome
    stats = result.temperature_stats()
    outcome.ok = True
    outcome.peak_temperatures = {n: s["max"] for n, s in stats.items()}
    outcome.min_temperatures = {n: s["min"] for n, s in stats.items()}
    outcome.final_temperatures = result.final_temperatures()
    return outcome


class FailureModeAnalyzer:
    """
    Simula un insieme di casi di guasto e li confronta con il nominale.
    """

    def __init__(self, config: Optional[SimulationConfig] = None, n_workers: int = 1,
                 materials: Optional[MaterialManager] = None, verbose: bool = False):
        """
        Args:
            config: Configurazione dei run (default: failure_analysis_config())
            n_workers: Worker per i run indipendenti (1 = sequenziale)
            materials: Database materiali usato per ricostruire la rete
            verbose: Stampa avanzamento
        """
        self.config = config or failure_analysis_config()
        self.n_workers = n_workers
        self.materials = materials
        self.verbose = verbose
        self.nominal: Optional[FailureCaseResult] = None

    def run(self, network: ThermalNetwork, cases: Sequence) -> List[FailureCaseResult]:
        """
        Esegue il caso nominale e tutti i casi di guasto.

        Args:
            network: Rete nominale (i record sono in network.model)
            cases: FailureCase o dizionari {failureType, params, label}

        Returns:
            Un FailureCaseResult per caso, nell'ordine ricevuto
        """
        cases = [c if isinstance(c, FailureCase) else FailureCase.from_dict(c) for c in cases]
        if not cases:
            raise ValidationError("serve almeno un caso di guasto", "failure_analysis", "cases")
        model = network.model

        if self.verbose:
            print(f"[FMEA] Caso nominale + {len(cases)} casi di guasto")

        jobs = [(None, model, self.materials, self.config)]
        jobs += [(case, model, self.materials, self.config) for case in cases]
        outcomes = map_runs(_run_case, jobs, self.n_workers)
        self.nominal = outcomes[0]
        results = outcomes[1:]

        for case, outcome in zip(cases, results):
            if outcome.ok and self.nominal.ok:
                outcome.delta_peak = {
                    n: T - self.nominal.peak_temperatures[n]
                    for n, T in outcome.peak_temperatures.items()
                }
            if self.verbose:
                if outcome.ok:
                    worst = outcome.worst_node
                    detail = (f"ΔT picco max {outcome.delta_peak[worst]:+.2f} K su '{worst}'"
                              if worst is not None else "nominale non disponibile")
                    print(f"[FMEA] {case.name}: {detail}")
                else:
                    print(f"[FMEA] {case.name}: fallito ({outcome.error})")
        return results
