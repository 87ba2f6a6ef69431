"""
network.py - Costruzione della rete termica

=============================================================================
MODULE OVERVIEW
=============================================================================

build_thermal_network trasforma i record del modello (nodi, conduttori,
carichi, orbita) nella rappresentazione usata dai solutori:

    - indicizzazione dei nodi (id → indice) e array per tipo di nodo
    - array dei coefficienti dei conduttori (vettorizzazione dei flussi)
    - liste di adiacenza per nodo: ConductorLink(conduttore, altro nodo, segno)
      con segno +1 per il nodo "to" (calore entrante), -1 per il nodo "from"
    - profili dei carichi termici raggruppati per nodo

La costruzione è pura: nessun effetto collaterale, nessun dato scartato.
Ogni violazione degli invarianti solleva ValidationError con il nome
dell'entità responsabile.

VALIDAZIONE:
    nodi:       id unici, diffusion con C > 0 (anche da massa·cp),
                boundary con temperatura imposta, arithmetic con almeno un
                conduttore incidente, 0 ≤ α, ε ≤ 1
    conduttori: nodi esistenti e distinti, G ≥ 0 (linear/contact),
                A > 0, 0 < F ≤ 1, 0 ≤ ε ≤ 1 (radiation),
                almeno 2 punti con temperature non decrescenti (heat_pipe)
    carichi:    nodo esistente, tabelle con tempi non decrescenti,
                carichi orbitali con parametri e configurazione orbitale
=============================================================================
"""

import math
import time
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Dict, Iterable, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from .constants import DEFAULT_ABSORPTIVITY, DEFAULT_EMISSIVITY, STEFAN_BOLTZMANN
from .errors import ValidationError
from .materials import MaterialManager
from .model import (
    Conductor,
    ConductorType,
    HeatLoad,
    HeatLoadType,
    Node,
    NodeKind,
    OrbitalConfig,
    ThermalModel,
)
from .orbital import OrbitalEnvironment, compute_orbital_environment, validate_orbital_config
from .profiles import HeatLoadProfile


class ConductorCode(IntEnum):
    """Codici numerici dei tipi di conduttore (per gli array vettorizzati)"""
    LINEAR = 0
    CONTACT = 1
    RADIATION = 2
    HEAT_PIPE = 3


_CONDUCTOR_CODES = {
    ConductorType.LINEAR: ConductorCode.LINEAR,
    ConductorType.CONTACT: ConductorCode.CONTACT,
    ConductorType.RADIATION: ConductorCode.RADIATION,
    ConductorType.HEAT_PIPE: ConductorCode.HEAT_PIPE,
}


class ConductorLink(NamedTuple):
    """Voce della lista di adiacenza di un nodo"""
    conductor_index: int
    other_index: int
    sign: int           # +1 nodo "to", -1 nodo "from"


def _readonly(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class ThermalNetwork:
    """
    Rete termica pronta per i solutori.

    Immutabile: ogni esecuzione la legge senza modificarla. Gli array sono
    in sola lettura; le varianti si costruiscono di nuovo dal modello.
    """
    model: ThermalModel
    nodes: Tuple[Node, ...]                 # nodi risolti (C, α, ε di default)
    node_ids: Tuple[str, ...]
    index: Mapping[str, int]
    capacitance: np.ndarray                 # [J/K], 0 per arithmetic/boundary
    initial_temperatures: np.ndarray        # [K], boundary già imposti
    diffusion_idx: np.ndarray
    arithmetic_idx: np.ndarray
    boundary_idx: np.ndarray

    conductors: Tuple[Conductor, ...]
    cond_from: np.ndarray
    cond_to: np.ndarray
    cond_code: np.ndarray                   # ConductorCode
    cond_g: np.ndarray                      # G [W/K] per linear/contact
    cond_rad: np.ndarray                    # σ·ε·A·F [W/K⁴] per radiation
    heat_pipe_tables: Mapping[int, Tuple[np.ndarray, np.ndarray]]

    adjacency: Tuple[Tuple[ConductorLink, ...], ...]
    node_loads: Tuple[Tuple[HeatLoadProfile, ...], ...]
    orbital_config: Optional[OrbitalConfig] = None
    orbital_environment: Optional[OrbitalEnvironment] = None

    @property
    def n_nodes(self) -> int:
        return len(self.node_ids)

    @property
    def n_conductors(self) -> int:
        return len(self.conductors)

    @property
    def is_boundary(self) -> np.ndarray:
        mask = np.zeros(self.n_nodes, dtype=bool)
        mask[self.boundary_idx] = True
        return mask

    def node(self, node_id: str) -> Node:
        return self.nodes[self.index[node_id]]

    def with_temperatures(self, temperatures: Union[Mapping[str, float], Sequence[float]]) -> "ThermalNetwork":
        """
        Copia della rete con nuove temperature iniziali.

        I nodi boundary restano alla temperatura imposta.
        """
        T = np.array(self.initial_temperatures, dtype=float)
        if isinstance(temperatures, Mapping):
            for node_id, value in temperatures.items():
                if node_id not in self.index:
                    raise ValidationError("non trovato", "node", node_id)
                T[self.index[node_id]] = float(value)
        else:
            values = np.asarray(temperatures, dtype=float)
            if values.shape != T.shape:
                raise ValidationError(
                    f"attese {T.size} temperature, ricevute {values.size}")
            T[:] = values
        T[self.boundary_idx] = self.initial_temperatures[self.boundary_idx]
        return replace(self, initial_temperatures=_readonly(T))


# =============================================================================
# VALIDAZIONE
# =============================================================================

def _check_fraction(value, entity_type, entity_id, what):
    if value is not None and not (0.0 <= value <= 1.0):
        raise ValidationError(f"{what} {value} fuori da [0, 1]", entity_type, entity_id)


def _check_finite(value, entity_type, entity_id, what):
    if value is not None and not math.isfinite(value):
        raise ValidationError(f"{what} non finito ({value})", entity_type, entity_id)


def _resolve_node(node: Node, materials: MaterialManager) -> Node:
    """Valida il nodo e completa C, α, ε da materiale o default"""
    for what in ("temperature", "capacitance", "boundary_temp", "area", "mass"):
        _check_finite(getattr(node, what), "node", node.id, what)
    _check_fraction(node.absorptivity, "node", node.id, "assorbività")
    _check_fraction(node.emissivity, "node", node.id, "emissività")

    material = None
    if node.material_id is not None:
        if node.material_id not in materials:
            raise ValidationError(f"materiale sconosciuto '{node.material_id}'", "node", node.id)
        material = materials.get(node.material_id)

    capacitance = node.capacitance
    if node.kind == NodeKind.DIFFUSION:
        if capacitance is None and material is not None and node.mass is not None:
            capacitance = material.heat_capacity(node.mass)
        if capacitance is None or capacitance <= 0:
            raise ValidationError("un nodo diffusion richiede capacità > 0", "node", node.id)
    else:
        capacitance = 0.0

    if node.kind == NodeKind.BOUNDARY:
        if node.boundary_temp is None:
            raise ValidationError("un nodo boundary richiede boundary_temp", "node", node.id)
        if node.boundary_temp <= 0:
            raise ValidationError(f"boundary_temp {node.boundary_temp} K non positiva",
                                  "node", node.id)
    elif node.temperature <= 0:
        raise ValidationError(f"temperatura iniziale {node.temperature} K non positiva",
                              "node", node.id)

    absorptivity = node.absorptivity
    emissivity = node.emissivity
    if absorptivity is None:
        absorptivity = material.absorptivity if material is not None else DEFAULT_ABSORPTIVITY
    if emissivity is None:
        emissivity = material.emissivity if material is not None else DEFAULT_EMISSIVITY

    return replace(node, capacitance=float(capacitance),
                   absorptivity=absorptivity, emissivity=emissivity)


def _validate_conductor(cond: Conductor, index: Mapping[str, int]):
    for end in (cond.node_from, cond.node_to):
        if end not in index:
            raise ValidationError(f"riferisce il nodo inesistente '{end}'", "conductor", cond.id)
    if cond.node_from == cond.node_to:
        raise ValidationError("node_from e node_to coincidono", "conductor", cond.id)

    if cond.type in (ConductorType.LINEAR, ConductorType.CONTACT):
        if cond.conductance is None:
            raise ValidationError("conduttanza mancante", "conductor", cond.id)
        _check_finite(cond.conductance, "conductor", cond.id, "conduttanza")
        if cond.conductance < 0:
            raise ValidationError(f"conduttanza negativa ({cond.conductance})",
                                  "conductor", cond.id)

    elif cond.type == ConductorType.RADIATION:
        if cond.area is None or not cond.area > 0:
            raise ValidationError("un conduttore radiativo richiede area > 0",
                                  "conductor", cond.id)
        if cond.view_factor is None or not (0.0 < cond.view_factor <= 1.0):
            raise ValidationError(f"fattore di vista {cond.view_factor} fuori da (0, 1]",
                                  "conductor", cond.id)
        if cond.emissivity is None:
            raise ValidationError("emissività mancante", "conductor", cond.id)
        _check_fraction(cond.emissivity, "conductor", cond.id, "emissività")

    elif cond.type == ConductorType.HEAT_PIPE:
        points = cond.conductance_data
        if len(points) < 2:
            raise ValidationError("un heat pipe richiede almeno 2 punti G_eff(T)",
                                  "conductor", cond.id)
        temps = [p.temperature for p in points]
        if any(b < a for a, b in zip(temps, temps[1:])):
            raise ValidationError("temperature della curva G_eff non ordinate",
                                  "conductor", cond.id)
        if any(p.conductance < 0 for p in points):
            raise ValidationError("conduttanza negativa nella curva G_eff",
                                  "conductor", cond.id)


def _validate_heat_load(load: HeatLoad, index: Mapping[str, int],
                        orbital_config: Optional[OrbitalConfig]):
    if load.node_id not in index:
        raise ValidationError(f"riferisce il nodo inesistente '{load.node_id}'",
                              "heat_load", load.id)
    _check_finite(load.value, "heat_load", load.id, "valore")

    if load.type == HeatLoadType.TABLE:
        times = [p.time for p in load.time_values]
        if not times:
            raise ValidationError("tabella tempo-valore vuota", "heat_load", load.id)
        if any(b < a for a, b in zip(times, times[1:])):
            raise ValidationError("tempi della tabella non ordinati", "heat_load", load.id)

    elif load.type == HeatLoadType.ORBITAL:
        if load.orbital_params is None:
            raise ValidationError("parametri orbitali mancanti", "heat_load", load.id)
        if orbital_config is None:
            raise ValidationError("carico orbitale senza configurazione orbitale",
                                  "heat_load", load.id)
        _check_fraction(load.orbital_params.absorptivity, "heat_load", load.id, "assorbività")
        _check_fraction(load.orbital_params.emissivity, "heat_load", load.id, "emissività")


def _check_unique(records: Iterable, entity_type: str):
    seen = set()
    for record in records:
        if record.id in seen:
            raise ValidationError("id duplicato", entity_type, record.id)
        seen.add(record.id)


# =============================================================================
# COSTRUZIONE
# =============================================================================

def _coerce(records, cls):
    return tuple(cls.from_dict(r) if isinstance(r, Mapping) else r for r in records or ())


def build_thermal_network(nodes: Sequence[Union[Node, dict]],
                          conductors: Sequence[Union[Conductor, dict]] = (),
                          heat_loads: Sequence[Union[HeatLoad, dict]] = (),
                          orbital_config: Optional[Union[OrbitalConfig, dict]] = None,
                          materials: Optional[MaterialManager] = None,
                          verbose: bool = False) -> ThermalNetwork:
    """
    Costruisce la rete termica dai record del modello.

    Args:
        nodes: Nodi (record o dizionari)
        conductors: Conduttori
        heat_loads: Carichi termici
        orbital_config: Configurazione orbitale (obbligatoria con carichi orbitali)
        materials: Database materiali (default: MaterialManager())
        verbose: Stampa un riepilogo della costruzione

    Returns:
        ThermalNetwork

    Raises:
        ValidationError: se un record viola gli invarianti del modello
    """
    if isinstance(orbital_config, Mapping):
        orbital_config = OrbitalConfig.from_dict(orbital_config)
    model = ThermalModel(
        nodes=_coerce(nodes, Node),
        conductors=_coerce(conductors, Conductor),
        heat_loads=_coerce(heat_loads, HeatLoad),
        orbital_config=orbital_config,
    )
    return build_from_model(model, materials=materials, verbose=verbose)


def build_from_model(model: ThermalModel, materials: Optional[MaterialManager] = None,
                     verbose: bool = False) -> ThermalNetwork:
    """Costruisce la rete termica da un ThermalModel"""
    t_start = time.time()
    if verbose:
        print(f"[BUILD] Costruzione rete termica ({len(model.nodes)} nodi, "
              f"{len(model.conductors)} conduttori, {len(model.heat_loads)} carichi)...")

    if not model.nodes:
        raise ValidationError("la rete termica non ha nodi")
    materials = materials or MaterialManager()

    _check_unique(model.nodes, "node")
    _check_unique(model.conductors, "conductor")
    _check_unique(model.heat_loads, "heat_load")

    orbital_env = None
    if model.orbital_config is not None:
        validate_orbital_config(model.orbital_config)
        orbital_env = compute_orbital_environment(model.orbital_config)

    # 1. Nodi
    nodes = tuple(_resolve_node(n, materials) for n in model.nodes)
    node_ids = tuple(n.id for n in nodes)
    index = {node_id: i for i, node_id in enumerate(node_ids)}
    N = len(nodes)

    capacitance = np.array([n.capacitance for n in nodes], dtype=float)
    T0 = np.array([n.boundary_temp if n.kind == NodeKind.BOUNDARY else n.temperature
                   for n in nodes], dtype=float)
    kinds = [n.kind for n in nodes]
    diffusion_idx = np.array([i for i, k in enumerate(kinds) if k == NodeKind.DIFFUSION], dtype=int)
    arithmetic_idx = np.array([i for i, k in enumerate(kinds) if k == NodeKind.ARITHMETIC], dtype=int)
    boundary_idx = np.array([i for i, k in enumerate(kinds) if k == NodeKind.BOUNDARY], dtype=int)

    # 2. Conduttori
    for cond in model.conductors:
        _validate_conductor(cond, index)

    M = len(model.conductors)
    cond_from = np.empty(M, dtype=int)
    cond_to = np.empty(M, dtype=int)
    cond_code = np.empty(M, dtype=int)
    cond_g = np.zeros(M)
    cond_rad = np.zeros(M)
    heat_pipe_tables = {}
    adjacency = [[] for _ in range(N)]

    for c, cond in enumerate(model.conductors):
        i, j = index[cond.node_from], index[cond.node_to]
        cond_from[c], cond_to[c] = i, j
        cond_code[c] = _CONDUCTOR_CODES[cond.type]
        if cond.type in (ConductorType.LINEAR, ConductorType.CONTACT):
            cond_g[c] = cond.conductance
        elif cond.type == ConductorType.RADIATION:
            cond_rad[c] = STEFAN_BOLTZMANN * cond.emissivity * cond.area * cond.view_factor
        else:
            table = np.asarray(cond.conductance_data, dtype=float)
            heat_pipe_tables[c] = (_readonly(table[:, 0].copy()), _readonly(table[:, 1].copy()))
        adjacency[i].append(ConductorLink(c, j, -1))
        adjacency[j].append(ConductorLink(c, i, +1))

    for i in arithmetic_idx:
        if not adjacency[i]:
            raise ValidationError("nodo arithmetic senza conduttori incidenti",
                                  "node", node_ids[i])

    # 3. Carichi termici
    node_loads = [[] for _ in range(N)]
    for load in model.heat_loads:
        _validate_heat_load(load, index, model.orbital_config)
        i = index[load.node_id]
        node_loads[i].append(HeatLoadProfile(load, nodes[i], model.orbital_config))

    network = ThermalNetwork(
        model=model,
        nodes=nodes,
        node_ids=node_ids,
        index=index,
        capacitance=_readonly(capacitance),
        initial_temperatures=_readonly(T0),
        diffusion_idx=_readonly(diffusion_idx),
        arithmetic_idx=_readonly(arithmetic_idx),
        boundary_idx=_readonly(boundary_idx),
        conductors=model.conductors,
        cond_from=_readonly(cond_from),
        cond_to=_readonly(cond_to),
        cond_code=_readonly(cond_code),
        cond_g=_readonly(cond_g),
        cond_rad=_readonly(cond_rad),
        heat_pipe_tables=heat_pipe_tables,
        adjacency=tuple(tuple(links) for links in adjacency),
        node_loads=tuple(tuple(loads) for loads in node_loads),
        orbital_config=model.orbital_config,
        orbital_environment=orbital_env,
    )

    if verbose:
        print(f"[BUILD] Completato in {time.time() - t_start:.3f} s")
        print(f"        Diffusion: {len(diffusion_idx)}, Arithmetic: {len(arithmetic_idx)}, "
              f"Boundary: {len(boundary_idx)}")
        if orbital_env is not None:
            print(f"        Orbita: T = {orbital_env.orbital_period:.0f} s, "
                  f"β = {orbital_env.beta_angle:.1f}°, "
                  f"eclisse = {100 * orbital_env.eclipse_fraction:.1f}%")
    return network
