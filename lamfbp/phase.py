"""Phase derivative of complex projections."""

import math

import torch


def phase_gradient_1d(img, dim=1, eps=0.01):
    """Derivative of the phase of a complex array along one axis.

    The derivative is taken on the complex field, ``Im(conj(x) * dx) / |x|^2``,
    so phase wrapping does not need to be resolved first. ``dx`` is a
    Fourier-space derivative.

    Parameters
    ----------
    img : torch.Tensor
        Complex array, e.g. a sinogram of shape (layers, width, angles).
    dim : int, optional
        Axis of differentiation (default: 1, detector columns).
    eps : float, optional
        Floor of the squared amplitude, relative to its maximum (default:
        0.01). Only pixels weaker than the floor are damped; the derivative
        of a field stronger than it is unbiased.

    Returns
    -------
    torch.Tensor
        Real phase derivative in radians per pixel, same shape as `img`.
    """
    if not img.is_complex():
        raise TypeError("phase_gradient_1d expects a complex array")
    n = img.shape[dim]
    real_dtype = torch.float64 if img.dtype == torch.complex128 else torch.float32

    k = torch.fft.fftfreq(n, device=img.device, dtype=real_dtype) * (2 * math.pi)
    if n % 2 == 0:
        k[n // 2] = 0  # Nyquist has no defined derivative
    shape = [1] * img.ndim
    shape[dim] = n
    k = k.reshape(shape)

    d_img = torch.fft.ifft(torch.fft.fft(img, dim=dim) * (1j * k), dim=dim)
    power = img.abs() ** 2
    return (torch.conj(img) * d_img).imag / power.clamp_min(eps * power.max())
