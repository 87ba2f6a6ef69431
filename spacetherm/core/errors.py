"""
errors.py - Gerarchia delle eccezioni

Tutte le eccezioni derivano da ThermalNetworkError. Le classi mescolano
anche l'eccezione built-in più vicina (ValueError, RuntimeError) così che il
codice chiamante possa intercettarle anche in modo generico.
"""

from typing import Optional

import numpy as np


class ThermalNetworkError(Exception):
    """Errore base del motore termico"""


class ValidationError(ThermalNetworkError, ValueError):
    """
    Input non valido (nodo, conduttore, carico, configurazione).

    Attributes:
        entity_type: Tipo di entità ("node", "conductor", "heat_load", "config", ...)
        entity_id: Id dell'entità che ha causato l'errore (se disponibile)
    """

    def __init__(self, message: str, entity_type: Optional[str] = None,
                 entity_id: Optional[str] = None):
        if entity_type and entity_id is not None:
            message = f"{entity_type} '{entity_id}': {message}"
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id


class _SolverFailure(ThermalNetworkError, RuntimeError):
    """Fallimento durante l'integrazione, con lo stato al momento dell'errore"""

    def __init__(self, message: str, time: Optional[float] = None,
                 state: Optional[np.ndarray] = None):
        super().__init__(message)
        self.reason = message
        self.time = time
        self.state = None if state is None else np.array(state, dtype=float)


class NumericalFailure(_SolverFailure):
    """Temperatura non finita, passo sotto il minimo o Jacobiano degenere"""


class ConvergenceFailure(_SolverFailure):
    """Iterazione non convergente (sollevata solo su richiesta esplicita)"""


class TimeoutExceeded(_SolverFailure):
    """Budget di iterazioni o di tempo di calcolo esaurito"""


class GeometryError(ThermalNetworkError, ValueError):
    """Geometria degenere (triangolo ad area nulla, superficie vuota)"""


class RayTracingCancelled(ThermalNetworkError):
    """Calcolo del fattore di vista annullato dal chiamante"""

    def __init__(self, rays_complete: int = 0):
        super().__init__(f"Ray tracing annullato dopo {rays_complete} raggi")
        self.rays_complete = rays_complete
