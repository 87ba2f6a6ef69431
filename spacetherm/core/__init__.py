"""
Core - Modello, rete termica e modelli fisici
"""

from .errors import (
    ThermalNetworkError,
    ValidationError,
    NumericalFailure,
    ConvergenceFailure,
    TimeoutExceeded,
    GeometryError,
    RayTracingCancelled,
)
from .model import (
    NodeKind,
    ConductorType,
    HeatLoadType,
    SurfaceType,
    AttitudeMode,
    Node,
    Conductor,
    ConductancePoint,
    HeatLoad,
    TimeValue,
    OrbitalHeatLoadParams,
    OrbitalConfig,
    ThermalModel,
)
from .materials import MaterialManager, MaterialType, ThermalProperties
from .network import ThermalNetwork, ConductorLink, build_thermal_network, build_from_model
from .conductors import conductor_flow, interpolate_geff
from .orbital import compute_orbital_environment, orbital_state, orbital_heat_load
from .parameters import (
    NodeField,
    ConductorField,
    HeatLoadField,
    NodeProperty,
    ConductorProperty,
    HeatLoadProperty,
    parameter_target,
)
