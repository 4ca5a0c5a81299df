"""Tests for geometry vectors, angle recovery and coordinate mapping."""

import math

import numpy as np
import pytest
import torch

from lamfbp import ShapeMismatch, laminography_vectors, projection_angles
from lamfbp.geometry import complete_vectors, detector_coordinates, voxel_coordinates


@pytest.mark.parametrize('lamino_deg', [90.0, 61.0, 30.0])
def test_angle_recovery(lamino_deg):
    angles = np.linspace(0.1, 6.0, 25)
    lamino = math.radians(lamino_deg)
    vectors = laminography_vectors(angles.size, lamino_angle=lamino, angles=angles)
    theta, lamino_angle = projection_angles(vectors)
    assert np.allclose(theta, angles)
    assert np.allclose(lamino_angle, lamino)


def test_angle_recovery_where_cosine_vanishes():
    angles = np.array([math.pi / 2, 3 * math.pi / 2])
    vectors = laminography_vectors(2, lamino_angle=math.radians(45), angles=angles)
    _, lamino_angle = projection_angles(vectors)
    assert np.allclose(lamino_angle, math.radians(45))


def test_detector_frame_is_orthonormal():
    vectors = laminography_vectors(12, lamino_angle=math.radians(70), start_angle=0.3, end_angle=5.0)
    ray, u, v = vectors[:, 0:3], vectors[:, 6:9], vectors[:, 9:12]
    for a, b in [(ray, u), (ray, v), (u, v)]:
        assert torch.allclose((a * b).sum(dim=1), torch.zeros(12, dtype=torch.float64), atol=1e-12)
    for a in (ray, u, v):
        assert torch.allclose(torch.linalg.norm(a, dim=1), torch.ones(12, dtype=torch.float64))


def test_ray_only_vectors_are_completed():
    vectors = laminography_vectors(16, lamino_angle=math.radians(55), end_angle=2 * math.pi)
    completed = complete_vectors(vectors[:, :3])
    assert completed.shape == (16, 12)
    assert torch.allclose(completed, vectors, atol=1e-12)


def test_ray_along_rotation_axis_is_completed():
    completed = complete_vectors(torch.tensor([[0.0, 0.0, 1.0]], dtype=torch.float64))
    assert torch.allclose(completed[0, 6:9], torch.tensor([1.0, 0.0, 0.0], dtype=torch.float64))
    assert torch.allclose(completed[0, 9:12], torch.tensor([0.0, 1.0, 0.0], dtype=torch.float64))


def test_complete_vectors_rejects_other_widths():
    with pytest.raises(ShapeMismatch):
        complete_vectors(torch.zeros(4, 6))


def test_voxel_coordinates_are_centered():
    coords = voxel_coordinates((4, 3, 2))
    assert coords.shape == (4, 3, 2, 3)
    assert torch.allclose(coords[0, 0, 0], torch.tensor([-1.5, -1.0, -0.5]))
    assert torch.allclose(coords.reshape(-1, 3).mean(dim=0), torch.zeros(3))


def test_voxel_coordinates_of_region():
    full = voxel_coordinates((6, 5, 4))
    region = (slice(2, 5), slice(0, 5), slice(1, 3))
    assert torch.equal(voxel_coordinates((6, 5, 4), region), full[region])


def test_origin_maps_to_detector_center():
    vectors = laminography_vectors(9, lamino_angle=math.radians(60), end_angle=2 * math.pi)
    rows, cols = detector_coordinates(torch.zeros(1, 3, dtype=torch.float64), vectors, (10, 24))
    assert rows.shape == (9, 1)
    assert torch.allclose(rows, torch.full_like(rows, 4.5))
    assert torch.allclose(cols, torch.full_like(cols, 11.5))


def test_tomography_detector_coordinates():
    # at theta=0 the detector columns run along y and the rows along z
    vectors = laminography_vectors(1)
    point = torch.tensor([[7.0, 2.0, -1.0]], dtype=torch.float64)
    rows, cols = detector_coordinates(point, vectors, (8, 16))
    assert torch.isclose(cols[0, 0], torch.tensor(2.0 + 7.5, dtype=torch.float64))
    assert torch.isclose(rows[0, 0], torch.tensor(-1.0 + 3.5, dtype=torch.float64))


def test_detector_spacing_scales_coordinates():
    point = torch.tensor([[0.0, 3.0, 0.0]], dtype=torch.float64)
    _, cols = detector_coordinates(point, laminography_vectors(1, det_spacing=0.5), (1, 16))
    assert torch.isclose(cols[0, 0], torch.tensor(6.0 + 7.5, dtype=torch.float64))


if __name__ == '__main__':
    pytest.main([str(__file__.replace('\\', '/')), '-v'])
