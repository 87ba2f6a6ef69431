"""
Package radiation - Geometria triangolata e fattori di vista Monte Carlo
"""

from .surfaces import (
    Surface,
    SceneGeometry,
    make_rectangle,
    make_disk,
    make_sphere,
)
from .view_factor import (
    RAY_COUNTS,
    ProgressChannel,
    ProgressUpdate,
    CancellationToken,
    ViewFactorResult,
    MonteCarloViewFactor,
    compute_view_factor,
)

__all__ = [
    'Surface',
    'SceneGeometry',
    'make_rectangle',
    'make_disk',
    'make_sphere',
    'RAY_COUNTS',
    'ProgressChannel',
    'ProgressUpdate',
    'CancellationToken',
    'ViewFactorResult',
    'MonteCarloViewFactor',
    'compute_view_factor',
]
