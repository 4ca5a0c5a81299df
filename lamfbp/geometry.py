"""Geometry vectors for parallel-beam laminography.

Projection geometry is stored one row per projection as 12 components
``[ray(3), det_center(3), u(3), v(3)]``: the ray direction, the detector
center and the detector column/row step vectors. Rows holding only the 3
ray components are accepted and completed with a centered detector frame.

The rotation angle ``theta`` and the laminography tilt ``lamino_angle`` of
each projection follow from the ray direction

    ray = (sin(lamino) * cos(theta), sin(lamino) * sin(theta), cos(lamino))

so ``lamino_angle = pi/2`` is standard tomography around the z-axis.
"""

import math

import numpy as np
import torch

from .errors import ShapeMismatch


# ============================================================================
# Trajectory Generation
# ============================================================================

def laminography_vectors(n_views, lamino_angle=math.pi / 2, start_angle=0.0, end_angle=None,
                         det_spacing=1.0, angles=None, device='cpu', dtype=torch.float64):
    """Generate parallel-beam laminography geometry vectors.

    Parameters
    ----------
    n_views : int
        Number of projection views.
    lamino_angle : float, optional
        Angle between the rotation axis and the beam in radians
        (default: pi/2, standard tomography).
    start_angle : float, optional
        Starting rotation angle in radians (default: 0.0).
    end_angle : float, optional
        Ending rotation angle in radians, excluded (default: pi).
    det_spacing : float, optional
        Detector pixel size in voxel units (default: 1.0).
    angles : array-like, optional
        Explicit rotation angles in radians, overrides the uniform sampling.
    device : str or torch.device, optional
        Device for the returned tensor (default: 'cpu').
    dtype : torch.dtype, optional
        Data type of the returned tensor (default: torch.float64).

    Returns
    -------
    vectors : torch.Tensor
        Geometry vectors, shape (n_views, 12).

    Examples
    --------
    >>> vectors = laminography_vectors(180, lamino_angle=math.radians(60))
    >>> vectors.shape
    torch.Size([180, 12])
    """
    if angles is None:
        if end_angle is None:
            end_angle = math.pi
        step = (end_angle - start_angle) / n_views
        angles = start_angle + torch.arange(n_views, device=device, dtype=dtype) * step
    else:
        angles = torch.as_tensor(angles, dtype=dtype, device=device)
        if angles.numel() != n_views:
            raise ValueError(f"Expected {n_views} angles, got {angles.numel()}")

    cos_t = torch.cos(angles)
    sin_t = torch.sin(angles)
    cos_l = math.cos(lamino_angle)
    sin_l = math.sin(lamino_angle)

    vectors = torch.zeros((n_views, 12), device=device, dtype=dtype)

    # Ray direction
    vectors[:, 0] = sin_l * cos_t
    vectors[:, 1] = sin_l * sin_t
    vectors[:, 2] = cos_l

    # Detector center stays at the origin (parallel beam)

    # Detector u-direction (columns), tangent to the rotation
    vectors[:, 6] = -sin_t * det_spacing
    vectors[:, 7] = cos_t * det_spacing
    vectors[:, 8] = 0.0

    # Detector v-direction (rows), tilted with the beam
    vectors[:, 9] = -cos_l * cos_t * det_spacing
    vectors[:, 10] = -cos_l * sin_t * det_spacing
    vectors[:, 11] = sin_l * det_spacing

    return vectors


def complete_vectors(vectors):
    """Return 12-component geometry vectors.

    Ray-only rows (3 components) get a detector centered at the origin with
    unit pixel size, u orthogonal to the ray in the xy-plane and v = ray x u.
    """
    vectors = torch.as_tensor(vectors)
    if not vectors.is_floating_point():
        vectors = vectors.to(torch.float64)
    if vectors.ndim != 2 or vectors.shape[1] not in (3, 12):
        raise ShapeMismatch(
            f"Geometry vectors must have shape (n_angles, 3) or (n_angles, 12), got {tuple(vectors.shape)}"
        )
    if vectors.shape[1] == 12:
        return vectors

    ray = vectors / torch.linalg.norm(vectors, dim=1, keepdim=True)
    u = torch.stack([-ray[:, 1], ray[:, 0], torch.zeros_like(ray[:, 0])], dim=1)
    u_norm = torch.linalg.norm(u, dim=1, keepdim=True)
    # ray along z: pick the x-axis
    along_z = u_norm[:, 0] < 1e-9
    u = torch.where(along_z[:, None], torch.tensor([1.0, 0.0, 0.0], dtype=u.dtype, device=u.device),
                    u / u_norm.clamp_min(1e-12))
    v = torch.linalg.cross(ray, u, dim=1)
    return torch.cat([ray, torch.zeros_like(ray), u, v], dim=1)


# ============================================================================
# Angle Recovery
# ============================================================================

def projection_angles(vectors):
    """Rotation and laminography angles of each projection.

    Parameters
    ----------
    vectors : array-like
        Geometry vectors, shape (n_angles, 3) or (n_angles, 12).

    Returns
    -------
    theta : numpy.ndarray
        Rotation angle of each projection in radians, in [0, 2*pi).
    lamino_angle : numpy.ndarray
        Angle between the beam and the rotation axis in radians.
    """
    if isinstance(vectors, torch.Tensor):
        vectors = vectors.detach().cpu().numpy()
    vectors = np.asarray(vectors, dtype=np.float64)
    vx, vy, vz = vectors[:, 0], vectors[:, 1], vectors[:, 2]

    theta = np.pi - np.arctan2(vy, -vx)
    # |v_x / cos(theta)| == hypot(v_x, v_y), stable where cos(theta) vanishes
    lamino_angle = np.pi / 2 - np.arctan2(vz, np.hypot(vx, vy))
    return theta, lamino_angle


# ============================================================================
# Coordinate Mapping
# ============================================================================

def voxel_coordinates(vol_shape, region=None, device='cpu', dtype=torch.float32):
    """World coordinates of voxel centers.

    The volume is centered on the origin with unit voxel size; the center of
    an axis of length n sits at index n/2 - 0.5.

    Parameters
    ----------
    vol_shape : tuple of int
        Full volume extents (X, Y, Z).
    region : tuple of slice, optional
        Sub-block of the volume, default is the whole volume.
    device : str or torch.device, optional
        Device of the returned tensor.
    dtype : torch.dtype, optional
        Data type of the returned tensor.

    Returns
    -------
    torch.Tensor
        Coordinates of shape (x, y, z, 3) for the selected region.
    """
    if region is None:
        region = tuple(slice(0, n) for n in vol_shape)
    axes = []
    for n, sl in zip(vol_shape, region):
        idx = torch.arange(sl.start, sl.stop, device=device, dtype=dtype)
        axes.append(idx - (n / 2 - 0.5))
    xx, yy, zz = torch.meshgrid(*axes, indexing='ij')
    return torch.stack([xx, yy, zz], dim=-1)


def detector_coordinates(points, vectors, det_shape):
    """Project world points onto each detector.

    Parameters
    ----------
    points : torch.Tensor
        World coordinates, shape (M, 3).
    vectors : torch.Tensor
        Geometry vectors, shape (n_angles, 12).
    det_shape : tuple of int
        Detector (rows, columns).

    Returns
    -------
    rows, cols : torch.Tensor
        Fractional detector indices, each of shape (n_angles, M).
    """
    vectors = vectors.to(dtype=points.dtype, device=points.device)
    ray, det, u, v = vectors[:, 0:3], vectors[:, 3:6], vectors[:, 6:9], vectors[:, 9:12]
    phi = torch.stack([ray, u, v], dim=2)
    phi_inv = torch.linalg.pinv(phi)
    alpha = torch.einsum('nij,mj->nmi', phi_inv, points) \
        - torch.einsum('nij,nj->ni', phi_inv, det)[:, None, :]
    n_rows, n_cols = det_shape
    cols = alpha[..., 1] + (n_cols / 2 - 0.5)
    rows = alpha[..., 2] + (n_rows / 2 - 0.5)
    return rows, cols
