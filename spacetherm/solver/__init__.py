"""
Package solver - Solutori numerici per la rete termica
"""

from .config import SimulationConfig, SimulationType, SolverMethod, steady_state_config
from .results import SimulationResult, NodeResult, ConductorFlowResult, RunStatus
from .steady_state import SteadyStateSolver, solve_steady_state
from .transient import TransientSolver, SolverState, solve_transient
from .runner import run_simulation
from .parallel import map_runs

__all__ = [
    'SimulationConfig',
    'SimulationType',
    'SolverMethod',
    'steady_state_config',
    'SimulationResult',
    'NodeResult',
    'ConductorFlowResult',
    'RunStatus',
    'SteadyStateSolver',
    'solve_steady_state',
    'TransientSolver',
    'SolverState',
    'solve_transient',
    'run_simulation',
    'map_runs',
]
