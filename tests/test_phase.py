"""Tests for the phase derivative of complex projections."""

import math

import pytest
import torch

from lamfbp.phase import phase_gradient_1d


def test_phase_gradient_of_smooth_phase():
    n = 64
    cols = torch.arange(n, dtype=torch.float64)
    phase = 0.3 * torch.sin(2 * math.pi * cols / n)
    img = torch.exp(1j * phase).reshape(1, n, 1).repeat(2, 1, 3)

    grad = phase_gradient_1d(img, dim=1)

    expected = 0.3 * 2 * math.pi / n * torch.cos(2 * math.pi * cols / n)
    assert grad.dtype == torch.float64
    assert grad.shape == img.shape
    assert torch.allclose(grad[1, :, 2], expected, atol=1e-8)


def test_phase_gradient_ignores_global_phase_and_amplitude():
    n = 32
    cols = torch.arange(n, dtype=torch.float64)
    phase = 0.2 * torch.cos(2 * math.pi * 2 * cols / n)
    img = torch.exp(1j * phase)
    rotated = 3.0 * img * torch.exp(torch.tensor(2.5j, dtype=torch.complex128))
    assert torch.allclose(phase_gradient_1d(img, dim=0), phase_gradient_1d(rotated, dim=0), atol=1e-10)


def test_pixels_below_amplitude_floor_are_damped():
    n = 32
    cols = torch.arange(n, dtype=torch.float64)
    img = torch.exp(1j * 0.2 * torch.sin(2 * math.pi * cols / n))
    img[10:14] = 0

    grad = phase_gradient_1d(img, dim=0)

    assert torch.all(torch.isfinite(grad))
    assert torch.all(grad[10:14] == 0)


def test_phase_gradient_requires_complex_input():
    with pytest.raises(TypeError):
        phase_gradient_1d(torch.zeros(4, 8, 2))


if __name__ == '__main__':
    pytest.main([str(__file__.replace('\\', '/')), '-v'])
