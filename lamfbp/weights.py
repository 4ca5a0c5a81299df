"""Angular weighting of projections.

Back-projection approximates an integral over the rotation angle, so each
projection is weighted by the angular interval it represents. Non-uniform
sampling gets per-projection interval weights; the laminography tilt scales
every projection by ``sin(lamino_angle)``.
"""

import warnings

import numpy as np

from .errors import MissingWedgeWarning, ShapeMismatch
from .geometry import projection_angles
from .utils import vprint


def interval_weights(theta):
    """Normalized angular interval of each projection.

    Projections at ``theta`` and ``theta + pi`` measure the same line
    integrals, so angles are reduced modulo pi relative to the first one.
    Interior projections get half the distance between their sorted
    neighbours, the first and last ones the distance to their single
    neighbour. Weights above twice the median (a missing wedge) are clamped
    to the median.

    Parameters
    ----------
    theta : numpy.ndarray
        Rotation angles in radians, shape (n_angles,).

    Returns
    -------
    weights : numpy.ndarray
        Weights with mean 1, in the order of `theta`.
    clamped : numpy.ndarray
        Boolean mask of the projections whose weight was clamped.
    """
    theta = np.asarray(theta, dtype=np.float64)
    n = theta.size
    if n < 2:
        return np.ones(n), np.zeros(n, dtype=bool)

    theta = np.mod(theta - theta[0], np.pi)
    ind_sort = np.argsort(theta, kind='stable')
    theta_sort = theta[ind_sort]

    weights_sorted = np.zeros(n)
    weights_sorted[1:-1] = (theta_sort[2:] - theta_sort[:-2]) / 2
    weights_sorted[0] = theta_sort[1] - theta_sort[0]
    weights_sorted[-1] = theta_sort[-1] - theta_sort[-2]

    weights = np.empty(n)
    weights[ind_sort] = weights_sorted

    median = np.median(weights)
    clamped = weights > 2 * median
    if clamped.any():
        weights[clamped] = median
    mean = weights.mean()
    if mean > 0:
        weights = weights / mean
    else:
        # all projections at one angle
        weights = np.ones(n)
    return weights, clamped


def angular_weights(vectors, determine_weights=True, n_angles=None, verbose=1):
    """Per-projection FBP weights.

    Parameters
    ----------
    vectors : array-like
        Geometry vectors, shape (n_angles, 3) or (n_angles, 12).
    determine_weights : bool, optional
        Correct for non-equidistant angles (default: True). Otherwise
        constant angular sampling is assumed.
    n_angles : int, optional
        Expected number of projections, checked against `vectors`.
    verbose : int, optional
        Verbosity level (default: 1).

    Returns
    -------
    numpy.ndarray
        Weights ``w_i * pi / (2 * n_angles) * sin(lamino_i)``, shape (n_angles,).

    Raises
    ------
    ShapeMismatch
        If the number of vectors differs from `n_angles`.

    Warns
    -----
    MissingWedgeWarning
        If a gap in the angular sampling forced a weight to be clamped.
    """
    theta, lamino_angle = projection_angles(vectors)
    if n_angles is None:
        n_angles = theta.size
    if theta.size != n_angles:
        raise ShapeMismatch(f"Got {theta.size} geometry vectors for {n_angles} projections")

    if determine_weights:
        weights, clamped = interval_weights(theta)
        if clamped.any():
            msg = ('Too large angular jump for FBP weighting, assuming missing wedge tomo '
                   f'({int(clamped.sum())} weights clamped to the median)')
            vprint(2, verbose, msg)
            warnings.warn(msg, MissingWedgeWarning, stacklevel=2)
    else:
        weights = np.ones(n_angles)

    return weights * (np.pi / 2 / n_angles) * np.sin(lamino_angle)
