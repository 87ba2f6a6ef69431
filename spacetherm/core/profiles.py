"""
profiles.py - Profili temporali dei carichi termici

=============================================================================
HEAT LOAD PROFILES
=============================================================================

Ogni HeatLoad del modello viene risolto in un HeatLoadProfile, che
restituisce la potenza [W] applicata al nodo al tempo t:

1. constant: valore fisso per tutta la simulazione
2. table:    lista di (tempo, valore) con interpolazione lineare,
             saturata al primo/ultimo valore fuori dall'intervallo
3. orbital:  potenza assorbita dall'ambiente orbitale (solare, albedo, IR)

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np

from .conductors import interpolate_piecewise
from .model import HeatLoad, HeatLoadType, Node, OrbitalConfig
from .orbital import OrbitalState, orbital_heat_load, orbital_state

ORBITAL_CACHE_SIZE = 4096


def interpolate_time_values(time_values, t: float) -> float:
    """Carico tabellare al tempo t (lineare a tratti, saturato agli estremi)"""
    table = np.asarray(time_values, dtype=float).reshape(-1, 2)
    return interpolate_piecewise(table[:, 0], table[:, 1], t)


@dataclass
class HeatLoadProfile:
    """
    Carico termico risolto, pronto per essere valutato dai solutori.

    Attributes:
        load: Record di origine
        node: Nodo a cui è applicato (per α, ε, area di default)
        orbital_config: Orbita (solo carichi orbitali)
    """
    load: HeatLoad
    node: Optional[Node] = None
    orbital_config: Optional[OrbitalConfig] = None

    # Cache per interpolazione veloce
    _times: np.ndarray = field(default=None, repr=False)
    _values: np.ndarray = field(default=None, repr=False)
    # Stati orbitali già calcolati da questo profilo, per istante
    _states: Dict[float, OrbitalState] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        if self.load.type == HeatLoadType.TABLE and self.load.time_values:
            table = np.asarray(self.load.time_values, dtype=float)
            self._times = table[:, 0]
            self._values = table[:, 1]

    @property
    def mode(self) -> HeatLoadType:
        return self.load.type

    def get_power(self, t: float) -> float:
        """
        Restituisce la potenza al tempo t.

        Args:
            t: Tempo [s]

        Returns:
            Potenza [W]
        """
        if self.mode == HeatLoadType.CONSTANT:
            return float(self.load.value)
        elif self.mode == HeatLoadType.TABLE:
            if self._times is None:
                return 0.0
            return interpolate_piecewise(self._times, self._values, t)
        elif self.mode == HeatLoadType.ORBITAL:
            if self.orbital_config is None or self.load.orbital_params is None:
                return 0.0
            return orbital_heat_load(self.orbital_config, t, self.load.orbital_params,
                                     self.node, self.orbital_state(t))
        return 0.0

    def get_power_array(self, times: np.ndarray) -> np.ndarray:
        """Potenza per un array di tempi"""
        times = np.asarray(times, dtype=float)
        if self.mode == HeatLoadType.CONSTANT:
            return np.full_like(times, float(self.load.value))
        return np.array([self.get_power(float(t)) for t in times])

    def orbital_state(self, t: float) -> OrbitalState:
        """Stato ambientale al tempo t, memorizzato in questo profilo"""
        t = float(t)
        state = self._states.get(t)
        if state is None:
            if len(self._states) >= ORBITAL_CACHE_SIZE:
                self._states.clear()
            state = orbital_state(self.orbital_config, t)
            self._states[t] = state
        return state
