"""
model.py - Record di input del modello termico

=============================================================================
MODULE OVERVIEW
=============================================================================

Un modello termico a parametri concentrati è composto da:

    - Node        nodi (diffusion, arithmetic, boundary)
    - Conductor   accoppiamenti tra due nodi (linear, contact, radiation, heat_pipe)
    - HeatLoad    carichi termici applicati ai nodi (constant, table, orbital)
    - OrbitalConfig  orbita circolare per i carichi ambientali

Tutti i record sono immutabili (dataclass frozen). Le varianti di un modello
(analisi di sensitività, esplorazione dello spazio di progetto, modi di
guasto) si ottengono con dataclasses.replace tramite ThermalModel.replace_*,
mai modificando i record originali.

I costruttori from_dict accettano sia chiavi snake_case sia le chiavi
camelCase usate dai servizi esterni (nodeFrom, boundaryTemp, timeValues, ...).
=============================================================================
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, NamedTuple, Optional, Tuple

from .errors import ValidationError


# =============================================================================
# ENUMERAZIONI
# =============================================================================

class NodeKind(Enum):
    """Tipo di nodo"""
    DIFFUSION = "diffusion"     # Massa termica finita (C > 0)
    ARITHMETIC = "arithmetic"   # Massa nulla, bilancio algebrico istantaneo
    BOUNDARY = "boundary"       # Temperatura imposta


class ConductorType(Enum):
    """Tipo di conduttore"""
    LINEAR = "linear"
    CONTACT = "contact"
    RADIATION = "radiation"
    HEAT_PIPE = "heat_pipe"


class HeatLoadType(Enum):
    """Tipo di carico termico"""
    CONSTANT = "constant"
    TABLE = "table"
    ORBITAL = "orbital"

    @classmethod
    def _missing_(cls, value):
        if value == "time_varying":
            return cls.TABLE
        return None


class SurfaceType(Enum):
    """Orientamento semplificato di una superficie esposta all'ambiente"""
    SOLAR = "solar"
    EARTH_FACING = "earth_facing"
    ANTI_EARTH = "anti_earth"
    CUSTOM = "custom"


class AttitudeMode(Enum):
    """Modo di assetto del veicolo"""
    NADIR_POINTING = "nadir_pointing"
    SUN_POINTING = "sun_pointing"


def _coerce_enum(enum_cls, value, entity_type: str, entity_id: str, what: str):
    """Converte stringhe in membri dell'enum, con errore di validazione"""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{what} non valido '{value}' (ammessi: {allowed})",
                              entity_type, entity_id) from None


def _pick(data: Dict[str, Any], *keys, default=None):
    """Primo valore non nullo tra le chiavi alternative"""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


# =============================================================================
# NODI
# =============================================================================

@dataclass(frozen=True)
class Node:
    """
    Nodo della rete termica.

    Attributes:
        id: Identificativo univoco
        kind: DIFFUSION, ARITHMETIC o BOUNDARY
        temperature: Temperatura iniziale [K]
        capacitance: Capacità termica [J/K] (nodi diffusion)
        boundary_temp: Temperatura imposta [K] (nodi boundary)
        area: Area esposta [m²] (carichi orbitali)
        mass: Massa [kg] (capacità da materiale se capacitance manca)
        absorptivity, emissivity: Proprietà ottiche (default dal materiale, poi 0.5)
        material_id: Chiave del MaterialManager
    """
    id: str
    name: str = ""
    kind: NodeKind = NodeKind.DIFFUSION
    temperature: float = 293.15
    capacitance: Optional[float] = None
    boundary_temp: Optional[float] = None
    area: Optional[float] = None
    mass: Optional[float] = None
    absorptivity: Optional[float] = None
    emissivity: Optional[float] = None
    material_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "kind",
                           _coerce_enum(NodeKind, self.kind, "node", self.id, "tipo di nodo"))
        if not self.name:
            object.__setattr__(self, "name", str(self.id))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            kind=_pick(data, "kind", "nodeType", "node_type", default="diffusion"),
            temperature=float(_pick(data, "temperature", default=293.15)),
            capacitance=_pick(data, "capacitance"),
            boundary_temp=_pick(data, "boundary_temp", "boundaryTemp"),
            area=_pick(data, "area"),
            mass=_pick(data, "mass"),
            absorptivity=_pick(data, "absorptivity"),
            emissivity=_pick(data, "emissivity"),
            material_id=_pick(data, "material_id", "materialId"),
        )


# =============================================================================
# CONDUTTORI
# =============================================================================

class ConductancePoint(NamedTuple):
    """Punto della curva G_eff(T) di un heat pipe"""
    temperature: float      # [K]
    conductance: float      # [W/K]


@dataclass(frozen=True)
class Conductor:
    """
    Accoppiamento termico tra node_from e node_to.

    Il flusso positivo va da node_from a node_to.
    """
    id: str
    type: ConductorType
    node_from: str
    node_to: str
    name: str = ""
    conductance: Optional[float] = None         # [W/K] linear/contact
    area: Optional[float] = None                # [m²] radiation
    view_factor: Optional[float] = None         # [-] radiation
    emissivity: Optional[float] = None          # [-] radiation (effettiva)
    conductance_data: Tuple[ConductancePoint, ...] = ()   # heat_pipe

    def __post_init__(self):
        object.__setattr__(self, "type", _coerce_enum(
            ConductorType, self.type, "conductor", self.id, "tipo di conduttore"))
        points = []
        for p in self.conductance_data or ():
            if isinstance(p, dict):
                p = ConductancePoint(float(p["temperature"]), float(p["conductance"]))
            else:
                p = ConductancePoint(float(p[0]), float(p[1]))
            points.append(p)
        object.__setattr__(self, "conductance_data", tuple(points))
        if not self.name:
            object.__setattr__(self, "name", str(self.id))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conductor":
        points = _pick(data, "conductance_data", "conductanceData", default=())
        if isinstance(points, dict):
            points = points.get("points", ())
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            type=_pick(data, "type", "conductorType", "conductor_type"),
            node_from=_pick(data, "node_from", "nodeFrom", "nodeFromId"),
            node_to=_pick(data, "node_to", "nodeTo", "nodeToId"),
            conductance=_pick(data, "conductance"),
            area=_pick(data, "area"),
            view_factor=_pick(data, "view_factor", "viewFactor"),
            emissivity=_pick(data, "emissivity"),
            conductance_data=points,
        )


# =============================================================================
# CARICHI TERMICI
# =============================================================================

class TimeValue(NamedTuple):
    """Punto (t, Q) di un carico tabellare"""
    time: float     # [s]
    value: float    # [W]


@dataclass(frozen=True)
class OrbitalHeatLoadParams:
    """
    Parametri di una superficie esposta all'ambiente orbitale.

    absorptivity, emissivity e area mancanti vengono presi dal nodo.
    surface_normal (terna di assetto) ha precedenza su surface_type.
    """
    surface_type: SurfaceType = SurfaceType.CUSTOM
    absorptivity: Optional[float] = None
    emissivity: Optional[float] = None
    area: Optional[float] = None
    surface_normal: Optional[Tuple[float, float, float]] = None

    def __post_init__(self):
        object.__setattr__(self, "surface_type", _coerce_enum(
            SurfaceType, self.surface_type, "heat_load", "orbital_params", "tipo di superficie"))
        if self.surface_normal is not None:
            object.__setattr__(self, "surface_normal",
                               tuple(float(v) for v in self.surface_normal))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrbitalHeatLoadParams":
        return cls(
            surface_type=_pick(data, "surface_type", "surfaceType", default="custom"),
            absorptivity=_pick(data, "absorptivity"),
            emissivity=_pick(data, "emissivity"),
            area=_pick(data, "area"),
            surface_normal=_pick(data, "surface_normal", "surfaceNormal"),
        )


@dataclass(frozen=True)
class HeatLoad:
    """Carico termico applicato a un nodo"""
    id: str
    node_id: str
    type: HeatLoadType = HeatLoadType.CONSTANT
    value: float = 0.0                          # [W] carichi costanti
    time_values: Tuple[TimeValue, ...] = ()     # carichi tabellari
    orbital_params: Optional[OrbitalHeatLoadParams] = None
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "type", _coerce_enum(
            HeatLoadType, self.type, "heat_load", self.id, "tipo di carico"))
        points = []
        for p in self.time_values or ():
            if isinstance(p, dict):
                p = TimeValue(float(p["time"]), float(p["value"]))
            else:
                p = TimeValue(float(p[0]), float(p[1]))
            points.append(p)
        object.__setattr__(self, "time_values", tuple(points))
        if isinstance(self.orbital_params, dict):
            object.__setattr__(self, "orbital_params",
                               OrbitalHeatLoadParams.from_dict(self.orbital_params))
        if not self.name:
            object.__setattr__(self, "name", str(self.id))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HeatLoad":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            node_id=_pick(data, "node_id", "nodeId"),
            type=_pick(data, "type", "loadType", "load_type", default="constant"),
            value=float(_pick(data, "value", default=0.0)),
            time_values=_pick(data, "time_values", "timeValues", default=()),
            orbital_params=_pick(data, "orbital_params", "orbitalParams"),
        )


# =============================================================================
# CONFIGURAZIONE ORBITALE
# =============================================================================

@dataclass(frozen=True)
class OrbitalConfig:
    """
    Orbita circolare.

    Attributes:
        altitude: Quota [km] (160-50000)
        inclination: Inclinazione [deg] (0-180)
        raan: Ascensione retta del nodo ascendente [deg] (0-360)
        epoch: Epoca ISO-8601 (UTC se senza fuso)
        phase: Anomalia a t=0 misurata dal mezzogiorno orbitale [deg]
        attitude: Modo di assetto
    """
    altitude: float
    inclination: float
    raan: float
    epoch: str = "2024-03-20T00:00:00Z"
    phase: float = 0.0
    attitude: AttitudeMode = AttitudeMode.NADIR_POINTING

    def __post_init__(self):
        object.__setattr__(self, "attitude", _coerce_enum(
            AttitudeMode, self.attitude, "orbital_config", "attitude", "modo di assetto"))

    @property
    def epoch_datetime(self) -> datetime:
        """Epoca come datetime UTC"""
        try:
            dt = datetime.fromisoformat(self.epoch.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"epoca non valida '{self.epoch}'",
                                  "orbital_config", "epoch") from None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrbitalConfig":
        return cls(
            altitude=float(data["altitude"]),
            inclination=float(data["inclination"]),
            raan=float(data["raan"]),
            epoch=str(_pick(data, "epoch", default="2024-03-20T00:00:00Z")),
            phase=float(_pick(data, "phase", default=0.0)),
            attitude=_pick(data, "attitude", "attitudeMode", default="nadir_pointing"),
        )


# =============================================================================
# CONTENITORE DEL MODELLO
# =============================================================================

@dataclass(frozen=True)
class ThermalModel:
    """
    Insieme immutabile dei record che definiscono un modello.

    È la sorgente da cui build_thermal_network costruisce la rete; gli
    strumenti batch ne producono copie perturbate.
    """
    nodes: Tuple[Node, ...] = ()
    conductors: Tuple[Conductor, ...] = ()
    heat_loads: Tuple[HeatLoad, ...] = ()
    orbital_config: Optional[OrbitalConfig] = None

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "conductors", tuple(self.conductors))
        object.__setattr__(self, "heat_loads", tuple(self.heat_loads))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThermalModel":
        orbital = _pick(data, "orbital_config", "orbitalConfig")
        return cls(
            nodes=tuple(Node.from_dict(n) for n in data.get("nodes", ())),
            conductors=tuple(Conductor.from_dict(c) for c in data.get("conductors", ())),
            heat_loads=tuple(HeatLoad.from_dict(h)
                             for h in _pick(data, "heat_loads", "heatLoads", default=())),
            orbital_config=OrbitalConfig.from_dict(orbital) if orbital else None,
        )

    # -------------------------------------------------------------------------
    # Accesso
    # -------------------------------------------------------------------------

    def node(self, node_id: str) -> Node:
        return _find(self.nodes, node_id, "node")

    def conductor(self, conductor_id: str) -> Conductor:
        return _find(self.conductors, conductor_id, "conductor")

    def heat_load(self, load_id: str) -> HeatLoad:
        return _find(self.heat_loads, load_id, "heat_load")

    # -------------------------------------------------------------------------
    # Copie modificate
    # -------------------------------------------------------------------------

    def replace_node(self, node_id: str, **changes) -> "ThermalModel":
        self.node(node_id)
        return replace(self, nodes=_replace_in(self.nodes, node_id, changes))

    def replace_conductor(self, conductor_id: str, **changes) -> "ThermalModel":
        self.conductor(conductor_id)
        return replace(self, conductors=_replace_in(self.conductors, conductor_id, changes))

    def replace_heat_load(self, load_id: str, **changes) -> "ThermalModel":
        self.heat_load(load_id)
        return replace(self, heat_loads=_replace_in(self.heat_loads, load_id, changes))


def _find(records: Iterable, record_id: str, entity_type: str):
    for record in records:
        if record.id == record_id:
            return record
    raise ValidationError("non trovato", entity_type, record_id)


def _replace_in(records: Tuple, record_id: str, changes: Dict[str, Any]) -> Tuple:
    return tuple(replace(r, **changes) if r.id == record_id else r for r in records)
