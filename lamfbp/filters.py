"""Frequency-domain FBP filters.

This module designs the 1D ramp filter and its apodized variants and applies
a per-projection 2D filter to a sinogram of shape (layers, width, angles).
"""

import math

import numpy as np
import torch
import torch.nn.functional as F
from scipy.signal import windows

from .constants import _MIN_FILTER_ORDER
from .errors import InvalidFilterKind, ShapeMismatch


def filter_order(length):
    """Padded filter length, ``max(64, next_pow2(2 * length))``."""
    return max(_MIN_FILTER_ORDER, 2 ** int(math.ceil(math.log2(2 * length))))


def _round_half_up(x):
    return int(math.floor(x + 0.5))


def design_filter(filter, length, d=1.0, derivative=False):
    """Fourier transform of the FBP filter.

    Parameters
    ----------
    filter : str
        One of 'ram-lak', 'shepp-logan', 'cosine', 'hamming', 'hann', 'parzen'.
    length : int
        Width of the projections.
    d : float, optional
        Fraction of the frequencies below Nyquist passed by the filter
        (default: 1.0).
    derivative : bool, optional
        Design the filter for phase-derivative projections: a flat response
        turned into a Hilbert kernel (default: False).

    Returns
    -------
    filt : torch.Tensor
        Filter of length ``filter_order(length)`` in FFT order. Real and even
        for standard filters, imaginary and odd for derivative filters.

    Raises
    ------
    InvalidFilterKind
        If `filter` is not a recognized name.

    Examples
    --------
    >>> filt = design_filter('shepp-logan', 128)
    >>> filt.shape
    torch.Size([256])
    """
    order = filter_order(length)
    k = np.arange(order // 2 + 1)

    # Ramp up to Nyquist, flat for derivative data
    if derivative:
        filt = np.ones(k.size)
    else:
        filt = 2.0 * k / order
    w = 2 * np.pi * k / order

    name = str(filter).lower()
    if name == 'ram-lak':
        pass
    elif name == 'shepp-logan':
        # index 0 excluded, sin(x)/x is 1 there
        wd = w[1:] / (2 * d)
        filt[1:] = filt[1:] * (np.sin(wd) / wd)
    elif name == 'cosine':
        filt[1:] = filt[1:] * np.cos(w[1:] / (2 * d))
    elif name == 'hamming':
        filt[1:] = filt[1:] * (.54 + .46 * np.cos(w[1:] / d))
    elif name == 'hann':
        filt[1:] = filt[1:] * (1 + np.cos(w[1:] / d)) / 2
    elif name == 'parzen':
        n_win = max(_round_half_up(2 * filt.size * d) - 1, 1)
        aux = windows.parzen(n_win)
        aux = aux[_round_half_up(n_win / 2) - 1:]
        filt[:aux.size] = filt[:aux.size] * aux
        filt[aux.size:] = 0
    else:
        raise InvalidFilterKind(f"Invalid filter '{filter}' selected")

    # Crop the frequency response
    filt[w > np.pi * d] = 0

    if derivative:
        full = np.concatenate([filt, -filt[-2:0:-1]]) / (1j * np.pi)
        return torch.from_numpy(full.astype(np.complex128))
    full = np.concatenate([filt, filt[-2:0:-1]])
    return torch.from_numpy(full)


def filter_kernel(filt, weights):
    """Combine a 1D filter with per-projection weights.

    Parameters
    ----------
    filt : torch.Tensor
        1D filter from :func:`design_filter`, shape (order,).
    weights : array-like or float
        Per-projection weights, shape (n_angles,).

    Returns
    -------
    torch.Tensor
        Kernel ``H`` of shape (order, n_angles).
    """
    weights = torch.as_tensor(weights, dtype=torch.float64).reshape(1, -1)
    return filt.reshape(-1, 1) * weights


def filter_sinogram(sinogram, H, width, padding=0.0):
    """Filter every projection of a sinogram in the frequency domain.

    Parameters
    ----------
    sinogram : torch.Tensor
        Real sinogram of shape (layers, width, angles).
    H : torch.Tensor
        Filter kernel of shape (order, angles) or (order, 1), FFT order.
    width : int
        Width of the projections, even.
    padding : float or str, optional
        Constant used to pad the projections to the filter length, or
        'replicate' / 'symmetric' to extend the edge values (default: 0.0).

    Returns
    -------
    torch.Tensor
        Filtered sinogram with the shape and real dtype of the input.
    """
    n_layers, n_w, n_angles = sinogram.shape
    order = H.shape[0]
    if n_w != width:
        raise ShapeMismatch(f"Sinogram width {n_w} does not match expected width {width}")
    if (order - width) % 2 or order < width:
        raise ShapeMismatch(f"Filter length {order} cannot symmetrically pad width {width}")
    pad = (order - width) // 2
    real_dtype = sinogram.dtype if sinogram.dtype == torch.float64 else torch.float32
    complex_dtype = torch.complex128 if real_dtype == torch.float64 else torch.complex64

    # Zero pad projections, important to avoid negative values in air around
    sino = sinogram.to(real_dtype).transpose(1, 2)
    if isinstance(padding, str):
        sino = F.pad(sino, (pad, pad), mode='replicate')
    else:
        sino = F.pad(sino, (pad, pad), mode='constant', value=float(padding))
    sino = sino.transpose(1, 2)

    sino = torch.fft.fft(sino.to(complex_dtype), dim=1)
    H = H.to(device=sino.device, dtype=complex_dtype)
    sino = sino * H.unsqueeze(0)
    sino = torch.fft.ifft(sino, dim=1).real

    # Truncate the filtered projections
    return sino[:, pad:pad + width, :].contiguous()
