"""
Package analysis - Analisi sui risultati e studi parametrici
"""

from .energy_balance import (
    EnergyBalanceAnalyzer,
    EnergyBalanceResult,
)
from .sensitivity import (
    SensitivityAnalyzer,
    SensitivityMatrix,
    SensitivityEntry,
    SensitivityStatus,
    collect_parameters,
    compute_what_if_temperatures,
    compute_delta_temperatures,
    compute_accuracy_score,
)
from .design_space import (
    DesignSpaceExplorer,
    ExplorationParameter,
    ExplorationConstraint,
    ExplorationSampleResult,
    latin_hypercube_sample,
    random_sample,
)
from .failure_modes import (
    FailureType,
    FailureModeParams,
    FailureCase,
    FailureCaseResult,
    FailureModeAnalyzer,
    apply_failure_mode,
)

__all__ = [
    'EnergyBalanceAnalyzer',
    'EnergyBalanceResult',
    'SensitivityAnalyzer',
    'SensitivityMatrix',
    'SensitivityEntry',
    'SensitivityStatus',
    'collect_parameters',
    'compute_what_if_temperatures',
    'compute_delta_temperatures',
    'compute_accuracy_score',
    'DesignSpaceExplorer',
    'ExplorationParameter',
    'ExplorationConstraint',
    'ExplorationSampleResult',
    'latin_hypercube_sample',
    'random_sample',
    'FailureType',
    'FailureModeParams',
    'FailureCase',
    'FailureCaseResult',
    'FailureModeAnalyzer',
    'apply_failure_mode',
]
