"""Utility classes and helper functions for lamfbp.

This module provides device management, accelerator and host memory probes,
verbosity-gated logging and tensor conversion helpers.
"""

import logging

import numpy as np
import psutil
import torch

from .constants import _DTYPE, _HOST_MEMORY_CAP

logger = logging.getLogger("lamfbp")


# ============================================================================
# Device Management Utilities
# ============================================================================

class DeviceManager:
    """Utilities for managing PyTorch tensor devices."""

    @staticmethod
    def get_device(tensor):
        """Get the device of a PyTorch tensor.

        Parameters
        ----------
        tensor : torch.Tensor
            Tensor whose device to determine.

        Returns
        -------
        torch.device
            Device of the tensor or CPU if unavailable.

        Examples
        --------
        >>> DeviceManager.get_device(torch.tensor([1, 2, 3]))
        device(type='cpu')
        """
        return tensor.device if hasattr(tensor, "device") else torch.device("cpu")

    @staticmethod
    def ensure_device(tensor, device):
        """Ensure a tensor resides on a given device.

        Parameters
        ----------
        tensor : torch.Tensor
            Tensor to move.
        device : torch.device
            Desired device.

        Returns
        -------
        torch.Tensor
            Tensor on the specified device. Unchanged if already on it.
        """
        if hasattr(tensor, "to") and tensor.device != torch.device(device):
            return tensor.to(device)
        return tensor

    @staticmethod
    def is_accelerator(tensor):
        """Return True if `tensor` lives on a non-CPU device."""
        return DeviceManager.get_device(tensor).type != "cpu"

    @staticmethod
    def gpu_count():
        """Number of visible CUDA devices, 0 without CUDA."""
        return torch.cuda.device_count() if torch.cuda.is_available() else 0

    @staticmethod
    def resolve(devices):
        """Convert a device list (ints, strings or devices) to torch devices.

        Integers are CUDA ordinals.
        """
        out = []
        for d in devices or ():
            out.append(torch.device("cuda", d) if isinstance(d, int) else torch.device(d))
        return out


# ============================================================================
# Memory Probes
# ============================================================================

def gpu_available_memory(device=None):
    """Free memory of a CUDA device in bytes.

    Parameters
    ----------
    device : torch.device or int, optional
        CUDA device to query. Current device if None.

    Returns
    -------
    int
        Bytes reported free by the CUDA runtime.
    """
    if device is None:
        device = torch.cuda.current_device()
    free, _total = torch.cuda.mem_get_info(device)
    return int(free)


def host_available_memory(cap=_HOST_MEMORY_CAP):
    """Available host memory in bytes, never more than `cap`."""
    return float(min(psutil.virtual_memory().available, cap))


# ============================================================================
# Logging
# ============================================================================

def vprint(level, verbose, msg, *args):
    """Log `msg` if the verbosity setting reaches `level`.

    Level 1 messages are logged as INFO, level 2 messages as DEBUG.
    """
    if verbose >= level:
        logger.log(logging.INFO if level <= 1 else logging.DEBUG, msg, *args)


# ============================================================================
# Tensor Conversion
# ============================================================================

def _as_tensor(array, dtype=None, device=None):
    """Convert numpy arrays and sequences to torch tensors, leave tensors alone
    except for the requested dtype/device."""
    if isinstance(array, torch.Tensor):
        out = array
    else:
        out = torch.as_tensor(np.asarray(array))
    if dtype is not None and out.dtype != dtype:
        out = out.to(dtype)
    if device is not None:
        out = DeviceManager.ensure_device(out, device)
    return out


def _as_real(array, device=None):
    """Convert to the default real dtype unless the input is complex."""
    out = _as_tensor(array, device=device)
    if out.is_complex():
        return out.to(torch.complex64) if out.dtype != torch.complex128 else out
    if out.dtype != torch.float64:
        out = out.to(_DTYPE)
    return out
