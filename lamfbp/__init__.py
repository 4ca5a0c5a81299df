# lamfbp/__init__.py
"""lamfbp - Filtered Back-Projection for Tomography and Laminography.

Frequency-domain FBP filtering with angular reweighting, memory-budgeted
block scheduling and single- or multi-device back-projection, built with
PyTorch.
"""

from .config import FBPOptions, ReconstructionConfig, load_options
from .errors import InvalidFilterKind, MissingWedgeWarning, ShapeMismatch
from .fbp import FBPResult, fbp
from .filters import design_filter, filter_kernel, filter_sinogram
from .geometry import laminography_vectors, projection_angles
from .planning import plan_blocks, plan_filter_blocks
from .projectors import (
    BackprojectionPath,
    LaminoBackprojectorFunction,
    LaminoProjectorFunction,
    backproject,
    backproject_partitioned,
    project,
    select_backprojection_path,
)
from .weights import angular_weights

__version__ = '0.1.0'

__all__ = [
    'fbp',
    'FBPResult',
    'FBPOptions',
    'ReconstructionConfig',
    'load_options',
    'ShapeMismatch',
    'InvalidFilterKind',
    'MissingWedgeWarning',
    'design_filter',
    'filter_kernel',
    'filter_sinogram',
    'angular_weights',
    'plan_blocks',
    'plan_filter_blocks',
    'laminography_vectors',
    'projection_angles',
    'BackprojectionPath',
    'LaminoProjectorFunction',
    'LaminoBackprojectorFunction',
    'backproject',
    'backproject_partitioned',
    'project',
    'select_backprojection_path',
]
