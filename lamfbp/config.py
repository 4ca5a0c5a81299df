"""Reconstruction geometry and FBP option records.

`ReconstructionConfig` describes the projection and volume sizes of a scan,
`FBPOptions` collects every recognized setting of :func:`lamfbp.fbp` with its
default. Both are immutable and validated once on construction.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import yaml

from .constants import FILTER_KINDS
from .errors import InvalidFilterKind


_PADDING_MODES = ('replicate', 'symmetric')


@dataclass(frozen=True)
class ReconstructionConfig:
    """Projection and volume extents of a reconstruction.

    Parameters
    ----------
    proj_width : int
        Number of detector columns.
    proj_height : int
        Number of detector rows (sinogram layers).
    n_angles : int
        Number of projections.
    vol_x, vol_y, vol_z : int
        Reconstructed volume extents.
    """
    proj_width: int
    proj_height: int
    n_angles: int
    vol_x: int
    vol_y: int
    vol_z: int

    def __post_init__(self):
        for name in ('proj_width', 'proj_height', 'n_angles', 'vol_x', 'vol_y', 'vol_z'):
            if int(getattr(self, name)) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

    @property
    def vol_shape(self) -> Tuple[int, int, int]:
        return (self.vol_x, self.vol_y, self.vol_z)

    @property
    def vol_elements(self) -> int:
        return self.vol_x * self.vol_y * self.vol_z

    def with_angles(self, n_angles: int) -> 'ReconstructionConfig':
        """Return a copy describing `n_angles` projections."""
        return dataclasses.replace(self, n_angles=int(n_angles))


@dataclass(frozen=True, eq=False)
class FBPOptions:
    """Settings of the filtered back-projection.

    Parameters
    ----------
    filter : str, optional
        Filter name, one of ``FILTER_KINDS`` (default: 'ram-lak').
    filter_value : float, optional
        Fraction of frequencies below Nyquist passed by the filter, in (0, 1]
        (default: 1.0).
    use_derivative : bool, optional
        Reconstruct from the phase derivative (default: False). Forced on for
        complex sinograms.
    valid_angles : array-like, optional
        Boolean mask or index list of projections to use (default: all).
    split : tuple of int, optional
        Volume blocks of the partitioned back-projection (default: (1, 1, 1)).
    split_sub : tuple of int, optional
        Sub-splitting of each back-projection task, 1 means no splitting
        (default: (1, 1, 1)).
    verbose : int, optional
        0 quiet, 1 standard info, 2 debug (default: 1).
    padding : float or str, optional
        Fill value for detector padding, or 'replicate' (alias 'symmetric')
        to extend the edge values, better for laminography and local
        tomography (default: 0.0).
    mask : array-like, optional
        2D (X, Y) or 3D (X, Y, Z) multiplier applied to the reconstruction.
    gpu : sequence, optional
        Accelerator devices used by the reconstruction (default: none).
    keep_on_gpu : bool, optional
        Keep the reconstruction on the accelerator. None keeps it there if
        the input sinogram was there (default: None).
    determine_weights : bool, optional
        Reweight projections for non-equidistant angles (default: True).
    only_filter_sinogram : bool, optional
        Return the filtered sinogram without back-projecting (default: False).
    deformation_fields : sequence of 3 arrays, optional
        Per-voxel (X, Y, Z) displacements in voxel units.
    """
    filter: str = 'ram-lak'
    filter_value: float = 1.0
    use_derivative: bool = False
    valid_angles: Optional[Any] = None
    split: Tuple[int, int, int] = (1, 1, 1)
    split_sub: Tuple[int, int, int] = (1, 1, 1)
    verbose: int = 1
    padding: Union[float, str] = 0.0
    mask: Optional[Any] = None
    gpu: Sequence[Any] = field(default_factory=tuple)
    keep_on_gpu: Optional[bool] = None
    determine_weights: bool = True
    only_filter_sinogram: bool = False
    deformation_fields: Optional[Sequence[Any]] = None

    def __post_init__(self):
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, 'filter', str(self.filter).lower())
        object.__setattr__(self, 'split', _as_split(self.split, 'split'))
        object.__setattr__(self, 'split_sub', _as_split(self.split_sub, 'split_sub'))
        object.__setattr__(self, 'gpu', tuple(self.gpu) if self.gpu is not None else ())

        if self.filter not in FILTER_KINDS:
            raise InvalidFilterKind(
                f"Invalid filter '{self.filter}' selected, expected one of {FILTER_KINDS}"
            )
        if not 0.0 < float(self.filter_value) <= 1.0:
            raise ValueError(f"filter_value must lie in (0, 1], got {self.filter_value}")
        if self.verbose not in (0, 1, 2):
            raise ValueError(f"verbose must be 0, 1 or 2, got {self.verbose}")
        if isinstance(self.padding, str):
            if self.padding.lower() not in _PADDING_MODES:
                raise ValueError(
                    f"padding must be a fill value or one of {_PADDING_MODES}, got '{self.padding}'"
                )
            object.__setattr__(self, 'padding', self.padding.lower())
        else:
            object.__setattr__(self, 'padding', float(self.padding))
        if self.deformation_fields is not None and len(self.deformation_fields) != 3:
            raise ValueError("deformation_fields must hold exactly 3 arrays (dx, dy, dz)")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'FBPOptions':
        """Build options from a mapping, rejecting unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown FBP options: {sorted(unknown)}")
        return cls(**values)

    def replace(self, **changes) -> 'FBPOptions':
        return dataclasses.replace(self, **changes)


def _as_split(value, name):
    if isinstance(value, int):
        value = (1, 1, value)
    value = tuple(int(v) for v in value)
    if len(value) != 3 or any(v < 1 for v in value):
        raise ValueError(f"{name} must be three positive integers, got {value}")
    return value


def load_options(path: str) -> FBPOptions:
    """Read FBP options from a YAML file.

    Parameters
    ----------
    path : str
        YAML file holding a mapping of option names to values.

    Returns
    -------
    FBPOptions
        Validated options; keys absent from the file keep their defaults.
    """
    with open(path, "r", encoding="utf-8") as f:
        values = yaml.safe_load(f) or {}
    if not isinstance(values, dict):
        raise ValueError(f"Option file {path} must contain a mapping")
    return FBPOptions.from_dict(values)
