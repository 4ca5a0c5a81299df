"""Global constants and limits for the lamfbp package.

This module defines the data types, integer ceilings and memory budget
multipliers used when filtering and back-projecting laminography data.
"""

import numpy as np
import torch

# ---------------------------------------------------------------------------
# Data Types and Numerical Constants
# ---------------------------------------------------------------------------

_DTYPE = torch.float32
"""Default real data type for sinograms and volumes (torch.float32)."""

INT32_MAX = int(np.iinfo(np.int32).max)
"""Largest element count a single kernel pass may address."""

# ---------------------------------------------------------------------------
# Filter Design
# ---------------------------------------------------------------------------

FILTER_KINDS = ('ram-lak', 'shepp-logan', 'cosine', 'hamming', 'hann', 'parzen', 'none')
"""Recognized FBP filter names."""

_MIN_FILTER_ORDER = 64
"""Shortest padded detector length used by the frequency-domain filter."""

# ---------------------------------------------------------------------------
# Memory Budget
# ---------------------------------------------------------------------------

# Accelerator path: complex working copy plus FFT scratch for every
# element of the padded sinogram (8 bytes x 4 buffers).
_GPU_BYTES_PER_ELEMENT = 8 * 4
"""Bytes budgeted per padded sinogram element on an accelerator."""

# Host path shares the process memory with the caller, budget 6 copies.
_HOST_BYTES_PER_ELEMENT = 6 * 8
"""Bytes budgeted per padded sinogram element on the host."""

_HOST_MEMORY_CAP = 20e9
"""Largest host block budget in bytes, regardless of reported free memory."""

# ---------------------------------------------------------------------------
# Back-projection Path Thresholds
# ---------------------------------------------------------------------------

_MAX_SINGLE_PROJ_SIZE = 4096
"""Projection width/height from which the partitioned projector is used."""
