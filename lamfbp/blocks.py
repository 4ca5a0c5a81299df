"""Block-wise execution of array functions.

:func:`run_blocked` splits an array into independent blocks along one axis,
evaluates a function on each block on one of the requested devices and
concatenates the results.
"""

import torch

from .utils import DeviceManager, vprint


def block_slices(length, n_blocks):
    """Split ``range(length)`` into at most `n_blocks` contiguous slices."""
    n_blocks = max(1, min(int(n_blocks), length))
    bounds = [round(i * length / n_blocks) for i in range(n_blocks + 1)]
    return [slice(a, b) for a, b in zip(bounds[:-1], bounds[1:]) if b > a]


def run_blocked(fn, data, *aux, n_blocks=1, axis=-1, split_aux=None, gpu=(),
                verbose=1, move_to_gpu=False):
    """Apply `fn` block-wise along `axis`.

    Parameters
    ----------
    fn : callable
        ``fn(block, *aux_block)`` returning an array whose extent along
        `axis` equals the block's.
    data : torch.Tensor
        Array to process.
    *aux : object
        Extra arguments passed to `fn`.
    n_blocks : int, optional
        Number of blocks (default: 1).
    axis : int, optional
        Axis along which `data` is split (default: -1).
    split_aux : sequence of bool, optional
        Which `aux` arrays are sliced along `axis` together with `data`;
        the others are passed whole. Default: none.
    gpu : sequence, optional
        Devices the blocks are distributed over round-robin. Without
        devices, blocks run where `data` lives.
    verbose : int, optional
        Verbosity level (default: 1).
    move_to_gpu : bool, optional
        Keep the result on the device of the first block instead of moving
        it back to the host (default: False).

    Returns
    -------
    torch.Tensor
        Concatenated block results.
    """
    if split_aux is None:
        split_aux = (False,) * len(aux)
    if len(split_aux) != len(aux):
        raise ValueError(f"split_aux has {len(split_aux)} entries for {len(aux)} aux arguments")

    devices = DeviceManager.resolve(gpu)
    home = DeviceManager.get_device(data)
    axis = axis % data.ndim
    slices = block_slices(data.shape[axis], n_blocks)
    vprint(2, verbose, "run_blocked: %d blocks along axis %d on %s",
           len(slices), axis, [str(d) for d in devices] or str(home))

    results = []
    for i, sl in enumerate(slices):
        device = devices[i % len(devices)] if devices else home
        index = (slice(None),) * axis + (sl,)
        block = DeviceManager.ensure_device(data[index], device)
        args = []
        for arr, do_split in zip(aux, split_aux):
            aux_axis = arr.ndim - data.ndim + axis if do_split else None
            # singleton axes broadcast against every block
            if do_split and arr.shape[aux_axis] != 1:
                arr = arr[(slice(None),) * aux_axis + (sl,)]
            if isinstance(arr, torch.Tensor):
                arr = DeviceManager.ensure_device(arr, device)
            args.append(arr)
        out = fn(block, *args)
        if not move_to_gpu:
            out = out.cpu()
        elif devices:
            out = DeviceManager.ensure_device(out, devices[0])
        results.append(out)

    return torch.cat(results, dim=axis)
