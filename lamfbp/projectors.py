"""Parallel-beam laminography projector and back-projectors.

The projector pair is voxel-driven: every voxel center is mapped onto each
detector and linked to the four surrounding detector pixels with bilinear
weights. Back-projection gathers with these weights, projection scatters
with them, so the two operators are exact adjoints.

Two back-projection paths share one signature:

- :func:`backproject` runs on a single device, optionally sub-splitting the
  volume into smaller tasks.
- :func:`backproject_partitioned` splits the volume into blocks distributed
  over a device list and assembles the result on the host.
"""

import enum
import itertools

import torch

from .blocks import block_slices
from .constants import INT32_MAX, _DTYPE, _MAX_SINGLE_PROJ_SIZE
from .errors import ShapeMismatch
from .geometry import complete_vectors, detector_coordinates, voxel_coordinates
from .utils import DeviceManager, vprint

# Largest (projections x voxels) tap table evaluated at once
_CHUNK_ELEMENTS = 2 ** 24


# ============================================================================
# Interpolation Core
# ============================================================================

def _bilinear_taps(rows, cols, n_rows, n_cols):
    """Flat pixel indices and bilinear weights of the 4 neighbouring pixels.

    Taps falling outside the detector get weight 0.
    """
    r0 = torch.floor(rows)
    c0 = torch.floor(cols)
    fr = rows - r0
    fc = cols - c0
    r0 = r0.long()
    c0 = c0.long()
    taps = []
    for dr, wr in ((0, 1 - fr), (1, fr)):
        for dc, wc in ((0, 1 - fc), (1, fc)):
            r = r0 + dr
            c = c0 + dc
            valid = (r >= 0) & (r < n_rows) & (c >= 0) & (c < n_cols)
            idx = r.clamp(0, n_rows - 1) * n_cols + c.clamp(0, n_cols - 1)
            taps.append((idx, wr * wc * valid))
    return taps


def _chunks(n_angles, n_points):
    step = max(1, _CHUNK_ELEMENTS // max(n_points, 1))
    for start in range(0, n_angles, step):
        yield slice(start, min(start + step, n_angles))


def _backproject_points(images, vectors, points, det_shape):
    """Sum of interpolated detector values over all projections.

    images : (n_angles, rows * cols), points : (M, 3) -> (M,)
    """
    out = torch.zeros(points.shape[0], dtype=images.dtype, device=images.device)
    for sl in _chunks(images.shape[0], points.shape[0]):
        rows, cols = detector_coordinates(points, vectors[sl], det_shape)
        block = images[sl]
        for idx, w in _bilinear_taps(rows, cols, *det_shape):
            out += (torch.gather(block, 1, idx) * w.to(images.dtype)).sum(dim=0)
    return out


def _project_points(values, vectors, points, det_shape):
    """Scatter voxel values onto all detectors, adjoint of `_backproject_points`.

    values : (M,), points : (M, 3) -> (n_angles, rows * cols)
    """
    n_angles = vectors.shape[0]
    out = torch.zeros((n_angles, det_shape[0] * det_shape[1]), dtype=values.dtype, device=values.device)
    for sl in _chunks(n_angles, points.shape[0]):
        rows, cols = detector_coordinates(points, vectors[sl], det_shape)
        block = out[sl]
        for idx, w in _bilinear_taps(rows, cols, *det_shape):
            block.scatter_add_(1, idx, w.to(values.dtype) * values.unsqueeze(0))
    return out


def _to_images(sinogram):
    """(rows, cols, angles) -> (angles, rows * cols)"""
    n_rows, n_cols, n_angles = sinogram.shape
    return sinogram.permute(2, 0, 1).reshape(n_angles, n_rows * n_cols)


def _from_images(images, det_shape):
    """(angles, rows * cols) -> (rows, cols, angles)"""
    return images.reshape(-1, det_shape[0], det_shape[1]).permute(1, 2, 0).contiguous()


# ============================================================================
# Volume Regions
# ============================================================================

def _split_region(region, split):
    """Split a region (tuple of slices) into sub-regions, `split` per axis."""
    per_axis = []
    for sl, n in zip(region, split):
        per_axis.append([slice(sl.start + s.start, sl.start + s.stop)
                         for s in block_slices(sl.stop - sl.start, n)])
    return list(itertools.product(*per_axis))


def _region_points(vol_shape, region, deformation_fields, device, dtype):
    points = voxel_coordinates(vol_shape, region, device=device, dtype=dtype)
    if deformation_fields is not None:
        shift = torch.stack(
            [torch.as_tensor(f)[region].to(device=device, dtype=dtype) for f in deformation_fields],
            dim=-1,
        )
        points = points + shift
    return points.reshape(-1, 3)


def _backproject_region(sinogram, vectors, vol_shape, region, split_sub, deformation_fields):
    """Back-project into one region of the volume, sub-split by `split_sub`."""
    det_shape = tuple(sinogram.shape[:2])
    device = sinogram.device
    images = _to_images(sinogram)
    vectors = vectors.to(device=device, dtype=sinogram.dtype)
    out = torch.zeros(tuple(sl.stop - sl.start for sl in region), dtype=sinogram.dtype, device=device)
    for sub in _split_region(region, split_sub):
        points = _region_points(vol_shape, sub, deformation_fields, device, sinogram.dtype)
        local = tuple(slice(s.start - r.start, s.stop - r.start) for s, r in zip(sub, region))
        out[local] = _backproject_points(images, vectors, points, det_shape).reshape(out[local].shape)
    return out


def _full_region(vol_shape):
    return tuple(slice(0, n) for n in vol_shape)


# ============================================================================
# PyTorch Autograd Functions
# ============================================================================

class LaminoProjectorFunction(torch.autograd.Function):
    """
    Summary
    -------
    PyTorch autograd function for the parallel-beam laminography projection.

    Notes
    -----
    The forward pass maps a volume of shape (X, Y, Z) to a sinogram of shape
    (rows, cols, angles); the backward pass applies the adjoint
    back-projection. Runs on the device of the volume.

    Examples
    --------
    >>> vectors = laminography_vectors(90, lamino_angle=math.radians(60))
    >>> volume = torch.rand(32, 32, 8, requires_grad=True)
    >>> sino = LaminoProjectorFunction.apply(volume, vectors, (16, 48))
    >>> sino.sum().backward()
    """
    @staticmethod
    def forward(ctx, volume, vectors, det_shape):
        """Project a volume onto every detector.

        Parameters
        ----------
        volume : torch.Tensor
            Volume of shape (X, Y, Z).
        vectors : torch.Tensor
            Geometry vectors, shape (n_angles, 3) or (n_angles, 12).
        det_shape : tuple of int
            Detector (rows, cols).

        Returns
        -------
        torch.Tensor
            Sinogram of shape (rows, cols, n_angles).
        """
        device = DeviceManager.get_device(volume)
        volume = volume.to(dtype=_DTYPE).contiguous()
        vectors = complete_vectors(vectors).to(device=device, dtype=_DTYPE)
        det_shape = (int(det_shape[0]), int(det_shape[1]))
        vol_shape = tuple(volume.shape)

        points = _region_points(vol_shape, _full_region(vol_shape), None, device, _DTYPE)
        images = _project_points(volume.reshape(-1), vectors, points, det_shape)

        ctx.save_for_backward(vectors)
        ctx.intermediate = (vol_shape, det_shape)
        return _from_images(images, det_shape)

    @staticmethod
    def backward(ctx, grad_sinogram):
        (vectors,) = ctx.saved_tensors
        vol_shape, det_shape = ctx.intermediate
        grad_sinogram = grad_sinogram.to(dtype=_DTYPE).contiguous()
        grad_volume = _backproject_region(grad_sinogram, vectors, vol_shape, _full_region(vol_shape),
                                          (1, 1, 1), None)
        return grad_volume, None, None


class LaminoBackprojectorFunction(torch.autograd.Function):
    """
    Summary
    -------
    PyTorch autograd function for the parallel-beam laminography
    back-projection.

    Notes
    -----
    The forward pass maps a sinogram of shape (rows, cols, angles) to a
    volume of shape (X, Y, Z); the backward pass applies the adjoint
    projection.

    Examples
    --------
    >>> sino = torch.rand(16, 48, 90, requires_grad=True)
    >>> vol = LaminoBackprojectorFunction.apply(sino, vectors, (32, 32, 8))
    >>> vol.sum().backward()
    """
    @staticmethod
    def forward(ctx, sinogram, vectors, vol_shape):
        device = DeviceManager.get_device(sinogram)
        sinogram = sinogram.to(dtype=_DTYPE).contiguous()
        vectors = complete_vectors(vectors).to(device=device, dtype=_DTYPE)
        vol_shape = tuple(int(n) for n in vol_shape)

        volume = _backproject_region(sinogram, vectors, vol_shape, _full_region(vol_shape), (1, 1, 1), None)

        ctx.save_for_backward(vectors)
        ctx.intermediate = (vol_shape, tuple(sinogram.shape[:2]))
        return volume

    @staticmethod
    def backward(ctx, grad_volume):
        (vectors,) = ctx.saved_tensors
        vol_shape, det_shape = ctx.intermediate
        grad_volume = grad_volume.to(dtype=_DTYPE).contiguous()
        points = _region_points(vol_shape, _full_region(vol_shape), None, grad_volume.device, _DTYPE)
        images = _project_points(grad_volume.reshape(-1), vectors, points, det_shape)
        return _from_images(images, det_shape), None, None


def project(volume, vectors, det_shape):
    """Forward projection of a volume, see :class:`LaminoProjectorFunction`."""
    return LaminoProjectorFunction.apply(volume, vectors, det_shape)


# ============================================================================
# Back-projection Paths
# ============================================================================

class BackprojectionPath(enum.Enum):
    SINGLE_DEVICE = 'single_device'
    PARTITIONED = 'partitioned'


def _check_inputs(sinogram, config, vectors):
    if tuple(sinogram.shape) != (config.proj_height, config.proj_width, config.n_angles):
        raise ShapeMismatch(
            f"Sinogram shape {tuple(sinogram.shape)} does not match config "
            f"{(config.proj_height, config.proj_width, config.n_angles)}"
        )
    vectors = complete_vectors(vectors)
    if vectors.shape[0] != config.n_angles:
        raise ShapeMismatch(f"Got {vectors.shape[0]} geometry vectors for {config.n_angles} projections")
    return vectors


def backproject(sinogram, config, vectors, split=(1, 1, 1), split_sub=(1, 1, 1), gpu=(),
                verbose=1, deformation_fields=None):
    """Back-project a sinogram on a single device.

    Parameters
    ----------
    sinogram : torch.Tensor
        Filtered sinogram of shape (proj_height, proj_width, n_angles).
    config : ReconstructionConfig
        Projection and volume extents.
    vectors : array-like
        Geometry vectors, shape (n_angles, 3) or (n_angles, 12).
    split : tuple of int, optional
        Unused on this path, accepted for a common signature.
    split_sub : tuple of int, optional
        Number of sub-tasks per volume axis (default: (1, 1, 1)).
    gpu : sequence, optional
        Device list; the first device is used, otherwise the sinogram's.
    verbose : int, optional
        Verbosity level (default: 1).
    deformation_fields : sequence of 3 arrays, optional
        Per-voxel (X, Y, Z) displacements in voxel units.

    Returns
    -------
    torch.Tensor
        Volume of shape (vol_x, vol_y, vol_z) on the computing device.
    """
    vectors = _check_inputs(sinogram, config, vectors)
    devices = DeviceManager.resolve(gpu)
    device = devices[0] if devices else DeviceManager.get_device(sinogram)
    sinogram = DeviceManager.ensure_device(sinogram.to(_DTYPE), device)
    vprint(2, verbose, "backproject: volume %s on %s, split_sub %s", config.vol_shape, device, split_sub)
    return _backproject_region(sinogram, vectors, config.vol_shape, _full_region(config.vol_shape),
                               split_sub, deformation_fields)


def backproject_partitioned(sinogram, config, vectors, split=(1, 1, 1), split_sub=(1, 1, 1), gpu=(),
                            verbose=1, deformation_fields=None):
    """Back-project a sinogram block-wise over several devices.

    The volume is split into ``split`` blocks per axis; blocks are assigned
    round-robin to the devices in `gpu` (the sinogram's device without a
    list) and each block is sub-split by `split_sub`. Parameters are those
    of :func:`backproject`.

    Returns
    -------
    torch.Tensor
        Volume of shape (vol_x, vol_y, vol_z) on the host.
    """
    vectors = _check_inputs(sinogram, config, vectors)
    devices = DeviceManager.resolve(gpu) or [DeviceManager.get_device(sinogram)]
    sinogram = sinogram.to(_DTYPE)
    # one copy of the sinogram per device
    resident = {}
    regions = _split_region(_full_region(config.vol_shape), split)
    vprint(1, verbose, "backproject_partitioned: %d blocks on %d devices", len(regions), len(devices))

    volume = torch.zeros(config.vol_shape, dtype=_DTYPE)
    for i, region in enumerate(regions):
        device = devices[i % len(devices)]
        if device not in resident:
            resident[device] = DeviceManager.ensure_device(sinogram, device)
        vprint(2, verbose, "block %d/%d on %s", i + 1, len(regions), device)
        volume[region] = _backproject_region(resident[device], vectors, config.vol_shape, region,
                                             split_sub, deformation_fields).cpu()
    return volume


BACKPROJECTORS = {
    BackprojectionPath.SINGLE_DEVICE: backproject,
    BackprojectionPath.PARTITIONED: backproject_partitioned,
}


def select_backprojection_path(sinogram, config, gpu=()):
    """Choose the back-projection path.

    The single-device path is used when the sinogram already lives on an
    accelerator, or when the projections are smaller than 4096 pixels, the
    volume has fewer than 2**31 - 1 voxels and at most one device is
    requested. Everything else goes through the partitioned path.
    """
    if DeviceManager.is_accelerator(sinogram):
        return BackprojectionPath.SINGLE_DEVICE
    small = (max(config.proj_width, config.proj_height) < _MAX_SINGLE_PROJ_SIZE
             and config.vol_elements < INT32_MAX)
    if small and len(gpu) <= 1:
        return BackprojectionPath.SINGLE_DEVICE
    return BackprojectionPath.PARTITIONED
