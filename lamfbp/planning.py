"""Memory-budgeted block planning.

The filtering workload is split into blocks along the projection axis so
that each block fits the accelerator or host memory budget and never
addresses more elements than a 32-bit index can express.
"""

import math

import torch

from .constants import (
    INT32_MAX,
    _GPU_BYTES_PER_ELEMENT,
    _HOST_BYTES_PER_ELEMENT,
    _HOST_MEMORY_CAP,
)
from .utils import DeviceManager, gpu_available_memory, host_available_memory


def plan_blocks(n_elements, available_memory, bytes_per_element, n_devices=0):
    """Number of blocks a workload must be split into.

    Parameters
    ----------
    n_elements : int
        Number of elements processed.
    available_memory : float
        Memory budget in bytes.
    bytes_per_element : float
        Bytes needed per element, working buffers included.
    n_devices : int, optional
        Number of requested devices; every device gets at least one block
        (default: 0).

    Returns
    -------
    int
        Block count, at least 1.

    Examples
    --------
    >>> plan_blocks(2**33, 2**30, 8, 1)
    64
    """
    if available_memory <= 0:
        raise ValueError(f"available_memory must be positive, got {available_memory}")
    n_blocks = math.ceil(bytes_per_element * n_elements / available_memory)
    n_blocks = max(n_blocks, math.ceil(n_elements / INT32_MAX))
    n_blocks = max(n_blocks, int(n_devices))
    return max(n_blocks, 1)


def plan_filter_blocks(n_elements, gpu=(), available_memory=None):
    """Block count for filtering `n_elements` padded sinogram elements.

    The budget follows the device the first block runs on: the first entry
    of `gpu`, or the current CUDA device when none is requested. A CUDA
    device is budgeted with its free memory at 32 bytes per element, the host
    with its available memory (capped at 20 GB) at 48 bytes per element.

    Parameters
    ----------
    n_elements : int
        Padded sinogram element count, ``order * layers * angles``.
    gpu : sequence, optional
        Requested devices.
    available_memory : float, optional
        Override of the probed memory budget in bytes.

    Returns
    -------
    int
        Block count.
    """
    device = filter_device(gpu)
    if device.type == "cuda":
        if available_memory is None:
            available_memory = gpu_available_memory(device)
        return plan_blocks(n_elements, available_memory, _GPU_BYTES_PER_ELEMENT, len(gpu))

    if available_memory is None:
        available_memory = host_available_memory()
    available_memory = min(available_memory, _HOST_MEMORY_CAP)
    return plan_blocks(n_elements, available_memory, _HOST_BYTES_PER_ELEMENT, len(gpu))


def filter_device(gpu=()):
    """Device the first filter block runs on.

    The first requested device, else the current CUDA device when one is
    visible, else the host.
    """
    devices = DeviceManager.resolve(gpu)
    if devices:
        return devices[0]
    if DeviceManager.gpu_count() > 0:
        return torch.device("cuda", torch.cuda.current_device())
    return torch.device("cpu")
