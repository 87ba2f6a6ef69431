"""
runner.py - Punto d'ingresso unico per le simulazioni

run_simulation sceglie il solver in base a config.simulation_type. I
fallimenti numerici, di convergenza e di timeout non sollevano eccezioni:
finiscono nello stato del risultato (status, failure_reason,
failure_state). Una configurazione non valida solleva ValidationError
prima di iniziare.
"""

from typing import Any, Callable, Dict, Optional, Union

from ..core.errors import NumericalFailure, TimeoutExceeded
from ..core.network import ThermalNetwork
from .config import SimulationConfig
from .results import RunStatus, SimulationResult
from .steady_state import SteadyStateSolver
from .transient import TransientSolver


def run_simulation(network: ThermalNetwork,
                   config: Union[SimulationConfig, Dict[str, Any], None] = None,
                   progress_callback: Optional[Callable] = None) -> SimulationResult:
    """
    Esegue una simulazione stazionaria o transitoria.

    Args:
        network: Rete termica costruita con build_thermal_network
        config: SimulationConfig o dizionario (chiavi snake_case o camelCase)
        progress_callback: callback(t, T) per i run transitori

    Returns:
        SimulationResult
    """
    if config is None:
        config = SimulationConfig()
    elif isinstance(config, dict):
        config = SimulationConfig.from_dict(config)

    if config.is_transient:
        solver = TransientSolver(network, config, progress_callback)
    else:
        solver = SteadyStateSolver(network, config)

    try:
        return solver.solve()
    except (NumericalFailure, TimeoutExceeded) as e:
        # Fallimenti sollevati fuori dal ciclo principale dei solver
        if config.verbose:
            print(f"[ERRORE] {e.reason}")
        return SimulationResult.empty(
            network.node_ids, [c.id for c in network.conductors],
            converged=False,
            iterations=0,
            status=RunStatus.FAILED,
            failure_reason=e.reason,
            failure_kind="timeout" if isinstance(e, TimeoutExceeded) else "numerical",
            failure_time=e.time,
            config=config,
        )
