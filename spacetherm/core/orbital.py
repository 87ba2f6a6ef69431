"""
orbital.py - Modello dell'ambiente orbitale

=============================================================================
MODULE OVERVIEW
=============================================================================

Orbita circolare terrestre con sole analitico semplificato (~1° in
declinazione). Tutte le funzioni sono pure: dipendono solo da
(OrbitalConfig, tempo trascorso) e possono essere chiamate da più worker
in parallelo.

GEOMETRIA:
    a = R_E + h                         raggio orbitale
    T = 2π·√(a³/μ)                      periodo
    piano orbitale da inclinazione i e RAAN Ω
    u(t) = u_noon + phase + 2π·t/T      argomento di latitudine
    u_noon = direzione del sole proiettata nel piano (mezzogiorno orbitale)

ECLISSE (ombra cilindrica):
    r·ŝ < 0  e  |r - (r·ŝ)ŝ| < R_E

FLUSSI [W/m²]:
    solare  = S / d²                    (0 in eclisse)
    albedo  = a_E · S/d² · F_E · max(0, cos θ_ss)
    IR      = 237 · F_E
    F_E     = (R_E / a)²                fattore di vista di una piastra nadir

TERNA DI ASSETTO:
    nadir_pointing:  +X velocità, +Y normale all'orbita, +Z zenit
    sun_pointing:    +X verso il sole, +Z zenit proiettato, +Y = Z × X
=============================================================================
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

import numpy as np

from .constants import (
    DAYS_PER_YEAR,
    EARTH_ALBEDO,
    EARTH_IR,
    EARTH_MU,
    EARTH_RADIUS_KM,
    MAX_ALTITUDE_KM,
    MIN_ALTITUDE_KM,
    SOLAR_CONSTANT,
)
from .errors import ValidationError
from .model import AttitudeMode, Node, OrbitalConfig, OrbitalHeatLoadParams, SurfaceType

DEG_TO_RAD = math.pi / 180.0
RAD_TO_DEG = 180.0 / math.pi

Vector = Tuple[float, float, float]


# =============================================================================
# VALIDAZIONE
# =============================================================================

def validate_orbital_config(config: OrbitalConfig):
    """Controlla i limiti fisici della configurazione orbitale"""
    if not (MIN_ALTITUDE_KM <= config.altitude <= MAX_ALTITUDE_KM):
        raise ValidationError(
            f"quota {config.altitude} km fuori da [{MIN_ALTITUDE_KM}, {MAX_ALTITUDE_KM}]",
            "orbital_config", "altitude")
    if not (0.0 <= config.inclination <= 180.0):
        raise ValidationError(f"inclinazione {config.inclination}° fuori da [0, 180]",
                              "orbital_config", "inclination")
    if not (0.0 <= config.raan <= 360.0):
        raise ValidationError(f"RAAN {config.raan}° fuori da [0, 360]",
                              "orbital_config", "raan")
    config.epoch_datetime  # solleva ValidationError se non ISO-8601


# =============================================================================
# POSIZIONE DEL SOLE E PARAMETRI ORBITALI
# =============================================================================

def sun_position(when: datetime) -> Tuple[float, float, float]:
    """
    Posizione apparente del sole.

    Returns:
        (declinazione [rad], ascensione retta [rad], distanza Terra-Sole [AU])
    """
    day_of_year = when.timetuple().tm_yday
    # Anomalia media (perielio circa al 2 gennaio)
    M = (2.0 * math.pi / DAYS_PER_YEAR) * (day_of_year - 2)
    # Equazione del centro
    C = 0.0334 * math.sin(M) + 0.000349 * math.sin(2.0 * M)
    # Longitudine eclittica (102.9° = longitudine del perielio)
    lam = M + C + math.pi + 102.9 * DEG_TO_RAD
    obliquity = 23.4393 * DEG_TO_RAD

    declination = math.asin(math.sin(obliquity) * math.sin(lam))
    right_ascension = math.atan2(math.cos(obliquity) * math.sin(lam), math.cos(lam))
    distance = 1.0 - 0.0167 * math.cos(M)
    return declination, right_ascension, distance


def orbital_period(altitude_km: float) -> float:
    """Periodo di un'orbita circolare [s]"""
    a = (EARTH_RADIUS_KM + altitude_km) * 1000.0
    return 2.0 * math.pi * math.sqrt(a**3 / EARTH_MU)


def earth_view_factor(altitude_km: float) -> float:
    """Fattore di vista verso la Terra di una piastra nadir: sin²(ρ)"""
    rho = math.asin(EARTH_RADIUS_KM / (EARTH_RADIUS_KM + altitude_km))
    return math.sin(rho) ** 2


def beta_angle(inclination: float, raan: float, sun_declination: float,
               sun_right_ascension: float) -> float:
    """Angolo beta [deg] tra il piano orbitale e la direzione del sole"""
    i = inclination * DEG_TO_RAD
    omega = raan * DEG_TO_RAD
    beta = math.asin(
        math.cos(sun_declination) * math.sin(i) * math.sin(omega - sun_right_ascension)
        + math.sin(sun_declination) * math.cos(i)
    )
    return beta * RAD_TO_DEG


def eclipse_fraction(altitude_km: float, beta_deg: float) -> float:
    """Frazione d'orbita in ombra (modello cilindrico, massimo 0.5)"""
    beta = abs(beta_deg) * DEG_TO_RAD
    radius = EARTH_RADIUS_KM + altitude_km
    rho = math.asin(EARTH_RADIUS_KM / radius)
    if beta >= math.pi / 2 - rho:
        return 0.0

    h = altitude_km
    cos_arg = math.sqrt(h * h + 2.0 * EARTH_RADIUS_KM * h) / (radius * math.cos(beta))
    if cos_arg >= 1.0:
        return 0.0
    return min(max(math.acos(cos_arg) / math.pi, 0.0), 0.5)


@dataclass(frozen=True)
class OrbitalEnvironment:
    """Riassunto dell'ambiente orbitale all'epoca"""
    orbital_period: float       # [s]
    beta_angle: float           # [deg]
    eclipse_fraction: float     # [-]
    solar_flux: float           # [W/m²] corretto per la distanza
    albedo_flux: float          # [W/m²] picco (punto subsolare)
    earth_ir: float             # [W/m²] su piastra nadir
    earth_view_factor: float    # [-]
    sunlit_fraction: float      # [-]


def compute_orbital_environment(config: OrbitalConfig) -> OrbitalEnvironment:
    """Parametri ambientali riassuntivi per la configurazione"""
    declination, right_ascension, distance = sun_position(config.epoch_datetime)
    period = orbital_period(config.altitude)
    beta = beta_angle(config.inclination, config.raan, declination, right_ascension)
    fraction = eclipse_fraction(config.altitude, beta)
    f_earth = earth_view_factor(config.altitude)
    solar = SOLAR_CONSTANT / distance**2

    return OrbitalEnvironment(
        orbital_period=period,
        beta_angle=beta,
        eclipse_fraction=fraction,
        solar_flux=solar,
        albedo_flux=EARTH_ALBEDO * solar * f_earth,
        earth_ir=EARTH_IR * f_earth,
        earth_view_factor=f_earth,
        sunlit_fraction=1.0 - fraction,
    )


# =============================================================================
# STATO ORBITALE ISTANTANEO
# =============================================================================

@dataclass(frozen=True)
class OrbitalState:
    """
    Stato ambientale a un istante.

    I vettori sono tuple unitarie: sun_eci e position_eci in coordinate
    inerziali, sun_body e nadir_body nella terna di assetto.
    """
    time: float
    sun_eci: Vector
    position_eci: Vector
    sun_body: Vector
    nadir_body: Vector
    in_eclipse: bool
    solar_flux: float
    albedo_flux: float
    earth_ir: float
    earth_view_factor: float


def _unit(v: np.ndarray) -> np.ndarray:
    return v / np.linalg.norm(v)


def orbital_state(config: OrbitalConfig, elapsed: float) -> OrbitalState:
    """
    Stato ambientale dopo `elapsed` secondi dall'epoca.

    Funzione pura: stesso input, stesso output. Chi valuta ripetutamente
    gli stessi istanti (HeatLoadProfile) tiene la propria cache.
    """
    when = config.epoch_datetime + timedelta(seconds=float(elapsed))
    declination, right_ascension, distance = sun_position(when)
    sun = np.array([
        math.cos(declination) * math.cos(right_ascension),
        math.cos(declination) * math.sin(right_ascension),
        math.sin(declination),
    ])

    i = config.inclination * DEG_TO_RAD
    omega = config.raan * DEG_TO_RAD
    e1 = np.array([math.cos(omega), math.sin(omega), 0.0])
    e2 = np.array([-math.cos(i) * math.sin(omega), math.cos(i) * math.cos(omega), math.sin(i)])
    normal = np.cross(e1, e2)

    u_noon = math.atan2(float(sun @ e2), float(sun @ e1))
    period = orbital_period(config.altitude)
    u = u_noon + config.phase * DEG_TO_RAD + 2.0 * math.pi * elapsed / period

    r_hat = math.cos(u) * e1 + math.sin(u) * e2
    v_hat = -math.sin(u) * e1 + math.cos(u) * e2
    radius = EARTH_RADIUS_KM + config.altitude

    # Ombra cilindrica
    along = radius * float(r_hat @ sun)
    perpendicular = np.linalg.norm(radius * r_hat - along * sun)
    in_eclipse = bool(along < 0.0 and perpendicular < EARTH_RADIUS_KM)

    f_earth = (EARTH_RADIUS_KM / radius) ** 2
    solar_full = SOLAR_CONSTANT / distance**2
    cos_subsolar = max(0.0, float(r_hat @ sun))

    if config.attitude == AttitudeMode.SUN_POINTING:
        x_axis = sun
        z_axis = r_hat - float(r_hat @ sun) * sun
        z_axis = _unit(z_axis) if np.linalg.norm(z_axis) > 1e-9 else normal
        y_axis = np.cross(z_axis, x_axis)
    else:
        x_axis, y_axis, z_axis = v_hat, normal, r_hat
    frame = np.vstack([x_axis, y_axis, z_axis])

    return OrbitalState(
        time=float(elapsed),
        sun_eci=tuple(sun.tolist()),
        position_eci=tuple(r_hat.tolist()),
        sun_body=tuple((frame @ sun).tolist()),
        nadir_body=tuple((frame @ -r_hat).tolist()),
        in_eclipse=in_eclipse,
        solar_flux=0.0 if in_eclipse else solar_full,
        albedo_flux=0.0 if in_eclipse else EARTH_ALBEDO * solar_full * f_earth * cos_subsolar,
        earth_ir=EARTH_IR * f_earth,
        earth_view_factor=f_earth,
    )


# =============================================================================
# CARICO ASSORBITO DA UNA SUPERFICIE
# =============================================================================

def orbital_heat_load(config: OrbitalConfig, elapsed: float,
                      params: OrbitalHeatLoadParams, node: Optional[Node] = None,
                      state: Optional[OrbitalState] = None) -> float:
    """
    Potenza assorbita [W] da una superficie esposta all'ambiente.

    Con surface_normal (terna di assetto) i flussi sono pesati dal coseno
    verso sole e nadir; altrimenti si usano le regole per tipo di superficie:
        solar:        solare + albedo + IR
        earth_facing: albedo + IR
        anti_earth:   solare
        custom:       solare + albedo + IR

    state, se fornito, evita di ricalcolare orbital_state(config, elapsed).
    """
    alpha = _resolve(params.absorptivity, node, "absorptivity", 0.5)
    eps = _resolve(params.emissivity, node, "emissivity", 0.5)
    area = _resolve(params.area, node, "area", 0.0)
    if state is None:
        state = orbital_state(config, float(elapsed))

    if params.surface_normal is not None:
        n = _unit(np.asarray(params.surface_normal, dtype=float))
        cos_sun = max(0.0, float(n @ np.asarray(state.sun_body)))
        cos_nadir = max(0.0, float(n @ np.asarray(state.nadir_body)))
        return area * (alpha * state.solar_flux * cos_sun
                       + alpha * state.albedo_flux * cos_nadir
                       + eps * state.earth_ir * cos_nadir)

    surface = params.surface_type
    Q = 0.0
    if surface in (SurfaceType.SOLAR, SurfaceType.ANTI_EARTH, SurfaceType.CUSTOM):
        Q += alpha * state.solar_flux * area
    if surface in (SurfaceType.SOLAR, SurfaceType.EARTH_FACING, SurfaceType.CUSTOM):
        Q += alpha * state.albedo_flux * area
        Q += eps * state.earth_ir * area
    return Q


def _resolve(value, node, attr, default):
    if value is not None:
        return float(value)
    if node is not None and getattr(node, attr) is not None:
        return float(getattr(node, attr))
    return default


# =============================================================================
# PROFILO SU UN'ORBITA
# =============================================================================

@dataclass
class OrbitalHeatProfile:
    """Flussi ambientali campionati su un periodo orbitale"""
    times: np.ndarray
    solar_flux: np.ndarray
    albedo_flux: np.ndarray
    earth_ir: np.ndarray
    in_sunlight: np.ndarray


def generate_orbital_heat_profile(config: OrbitalConfig, num_steps: int = 360) -> OrbitalHeatProfile:
    """Campiona i flussi incidenti su num_steps istanti di un'orbita"""
    period = orbital_period(config.altitude)
    times = np.arange(num_steps) * (period / num_steps)
    states = [orbital_state(config, float(t)) for t in times]
    return OrbitalHeatProfile(
        times=times,
        solar_flux=np.array([s.solar_flux for s in states]),
        albedo_flux=np.array([s.albedo_flux for s in states]),
        earth_ir=np.array([s.earth_ir for s in states]),
        in_sunlight=np.array([not s.in_eclipse for s in states]),
    )
