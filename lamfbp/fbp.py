"""Filtered back-projection for tomography and laminography.

:func:`fbp` validates the inputs, optionally drops invalid projections,
converts complex (phase) data to its phase derivative, filters the sinogram
with angular reweighting in memory-planned blocks, back-projects it on a
single device or partitioned over several, and applies an optional mask.
"""

from typing import NamedTuple, Optional

import torch

from .blocks import run_blocked
from .config import FBPOptions, ReconstructionConfig
from .errors import ShapeMismatch
from .filters import design_filter, filter_kernel, filter_sinogram
from .geometry import complete_vectors
from .phase import phase_gradient_1d
from .planning import filter_device, plan_blocks, plan_filter_blocks
from .projectors import BACKPROJECTORS, BackprojectionPath, select_backprojection_path
from .utils import DeviceManager, _as_real, _as_tensor, host_available_memory, vprint
from .weights import angular_weights


class FBPResult(NamedTuple):
    """Outputs of :func:`fbp`.

    rec : torch.Tensor or None
        Reconstruction of shape (vol_x, vol_y, vol_z), None when only the
        sinogram was filtered.
    sinogram : torch.Tensor
        Sinogram handed to the back-projection (filtered unless the filter
        is 'none').
    H : torch.Tensor or None
        Filter kernel of shape (order, n_angles), None without filtering.
    """
    rec: Optional[torch.Tensor]
    sinogram: torch.Tensor
    H: Optional[torch.Tensor]


def _validate(sinogram, config, vectors, options):
    if sinogram.ndim != 3:
        raise ShapeMismatch(f"Sinogram must be 3D (layers, width, angles), got {sinogram.ndim}D")
    n_layers, n_w, n_proj = sinogram.shape
    if n_w != config.proj_width:
        raise ShapeMismatch(f"Wrong sinogram width: {n_w} != proj_width {config.proj_width}")
    if n_layers != config.proj_height:
        raise ShapeMismatch(f"Wrong sinogram height: {n_layers} != proj_height {config.proj_height}")
    if n_w % 2:
        raise ShapeMismatch(f"Only even width of sinogram is supported, got {n_w}")
    if n_proj != config.n_angles:
        raise ShapeMismatch(f"Wrong number of projections: {n_proj} != n_angles {config.n_angles}")
    if vectors.shape[0] != n_proj:
        raise ShapeMismatch(f"Got {vectors.shape[0]} geometry vectors for {n_proj} projections")
    if options.mask is not None:
        mask_shape = tuple(_as_tensor(options.mask).shape)
        if mask_shape not in (config.vol_shape[:2], config.vol_shape):
            raise ShapeMismatch(
                f"Wrong size of reconstruction mask {mask_shape}, expected "
                f"{config.vol_shape[:2]} or {config.vol_shape}"
            )
    if options.deformation_fields is not None:
        for f in options.deformation_fields:
            if tuple(_as_tensor(f).shape) != config.vol_shape:
                raise ShapeMismatch(
                    f"Deformation field shape {tuple(_as_tensor(f).shape)} does not match volume {config.vol_shape}"
                )


def _angle_selection(valid_angles, n_proj):
    """Index tensor of the valid projections, None if all are valid."""
    valid = torch.as_tensor(valid_angles)
    if valid.dtype == torch.bool:
        if valid.numel() != n_proj:
            raise ShapeMismatch(f"valid_angles mask has {valid.numel()} entries for {n_proj} projections")
        if bool(valid.all()):
            return None
        valid = torch.nonzero(valid.reshape(-1)).reshape(-1)
    else:
        valid = valid.reshape(-1).long()
    if valid.numel() == 0:
        raise ShapeMismatch("valid_angles selects no projection")
    if int(valid.min()) < -n_proj or int(valid.max()) >= n_proj:
        raise ShapeMismatch(f"valid_angles indices out of range for {n_proj} projections")
    return valid


def fbp(sinogram, config: ReconstructionConfig, vectors, options: Optional[FBPOptions] = None, **kwargs):
    """Filtered back-projection reconstruction.

    Parameters
    ----------
    sinogram : torch.Tensor or numpy.ndarray
        Projections of shape (layers, width, angles). Complex input is
        treated as phase-contrast data and reconstructed from its phase
        derivative.
    config : ReconstructionConfig
        Projection and volume extents; ``proj_height``, ``proj_width`` and
        ``n_angles`` must match the sinogram.
    vectors : array-like
        Geometry vectors, one row per projection, shape (angles, 3) or
        (angles, 12).
    options : FBPOptions, optional
        Reconstruction settings. Defaults of :class:`FBPOptions` if None.
    **kwargs
        Individual settings overriding `options`.

    Returns
    -------
    FBPResult
        ``(rec, sinogram, H)``.

    Raises
    ------
    ShapeMismatch
        If the sinogram, vectors, mask or deformation fields do not match
        `config`, the sinogram width is odd or `valid_angles` selects no
        projection.
    InvalidFilterKind
        If the filter name is not recognized.

    Examples
    --------
    >>> config = ReconstructionConfig(128, 16, 180, 128, 128, 16)
    >>> vectors = laminography_vectors(180, lamino_angle=math.radians(61))
    >>> rec, sino_filt, H = fbp(sinogram, config, vectors, filter='hann', padding='replicate')
    """
    if options is None:
        options = FBPOptions(**kwargs)
    elif kwargs:
        options = options.replace(**kwargs)
    r = options

    vprint(1, r.verbose, '====== FBP ==========')

    sinogram = _as_real(sinogram)
    vectors = complete_vectors(vectors)
    on_gpu = DeviceManager.is_accelerator(sinogram)
    keep_on_gpu = on_gpu if r.keep_on_gpu is None else r.keep_on_gpu

    _validate(sinogram, config, vectors, r)

    if r.valid_angles is not None:
        selection = _angle_selection(r.valid_angles, sinogram.shape[2])
        if selection is not None:
            sinogram = sinogram[:, :, selection.to(sinogram.device)]
            vectors = vectors[selection]
            vprint(2, r.verbose, 'Using %d of %d projections', sinogram.shape[2], config.n_angles)

    n_layers, n_w, n_proj = sinogram.shape
    config = config.with_angles(n_proj)

    use_derivative = r.use_derivative
    if sinogram.is_complex():
        use_derivative = True
        sinogram = phase_gradient_1d(sinogram, dim=1, eps=0.01)

    H = None
    if r.filter != 'none':
        # account for laminography tilt + unequal spacing of the tomo angles
        weights = angular_weights(vectors, r.determine_weights, n_proj, r.verbose)
        filt = design_filter(r.filter, n_w, r.filter_value, use_derivative)
        H = filter_kernel(filt, weights)

        # blocks run where they are budgeted: requested devices, else the
        # sinogram's accelerator, else the current CUDA device or the host
        filter_gpu = tuple(r.gpu) or (DeviceManager.get_device(sinogram) if on_gpu else filter_device(),)
        n_elements = H.shape[0] * config.proj_height * config.n_angles
        n_blocks = plan_filter_blocks(n_elements, filter_gpu)
        vprint(2, r.verbose, 'Filtering %d elements in %d blocks', n_elements, n_blocks)

        sinogram = run_blocked(filter_sinogram, sinogram, H, n_w, r.padding,
                               n_blocks=n_blocks, axis=-1, split_aux=(True, False, False),
                               gpu=filter_gpu, verbose=r.verbose, move_to_gpu=on_gpu)

    rec = None
    if not r.only_filter_sinogram:
        path = select_backprojection_path(sinogram, config, r.gpu)
        bp_sinogram = sinogram if path is BackprojectionPath.SINGLE_DEVICE else sinogram.cpu()
        vprint(2, r.verbose, 'Back-projection path: %s', path.value)
        rec = BACKPROJECTORS[path](bp_sinogram, config, vectors, split=r.split, split_sub=r.split_sub,
                                   gpu=r.gpu, verbose=r.verbose, deformation_fields=r.deformation_fields)

        # apply apodization function if provided, on the host
        if r.mask is not None:
            mask = _as_tensor(r.mask, dtype=rec.dtype)
            if mask.ndim == 2:
                mask = mask[:, :, None]
            n_blocks = plan_blocks(rec.numel(), host_available_memory(), 3 * rec.element_size())
            rec = run_blocked(torch.mul, rec.cpu(), mask.cpu(), n_blocks=n_blocks, axis=-1,
                              split_aux=(True,), verbose=r.verbose)

        if not keep_on_gpu:
            rec = rec.cpu()

    return FBPResult(rec, sinogram, H)
