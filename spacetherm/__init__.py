"""
Package spacetherm - Rete termica a parametri concentrati per veicoli spaziali
"""

from .core import (
    ThermalModel, Node, Conductor, HeatLoad,
    ThermalNetwork, MaterialManager,
    build_thermal_network, build_from_model,
    ThermalNetworkError, ValidationError, NumericalFailure, TimeoutExceeded,
)

from .solver import (
    SimulationConfig, SimulationResult, RunStatus,
    SteadyStateSolver, TransientSolver,
    solve_steady_state, solve_transient, run_simulation,
)

from .analysis import (
    EnergyBalanceAnalyzer, SensitivityAnalyzer,
    DesignSpaceExplorer, FailureModeAnalyzer,
)

from .radiation import (
    Surface, MonteCarloViewFactor, compute_view_factor,
)

__version__ = "0.1.0"
