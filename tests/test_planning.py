"""Tests for the memory-budgeted block planning."""

import math
from unittest.mock import patch

import psutil
import pytest
import torch

from lamfbp import plan_blocks, plan_filter_blocks
from lamfbp.constants import INT32_MAX
from lamfbp.planning import filter_device
from lamfbp.utils import DeviceManager


def test_plan_blocks_example():
    assert plan_blocks(2**33, 2**30, 8, 1) == 64


def test_plan_blocks_int32_ceiling():
    # memory is no constraint here
    assert plan_blocks(2**33, 1e30, 1, 0) == math.ceil(2**33 / INT32_MAX)
    assert plan_blocks(INT32_MAX, 1e30, 1, 0) == 1


@pytest.mark.parametrize('n_devices', [0, 1, 3, 8])
def test_plan_blocks_never_below_device_count(n_devices):
    assert plan_blocks(10, 1e9, 8, n_devices) >= max(n_devices, 1)


@pytest.mark.parametrize('factor', [1, 2, 5])
def test_plan_blocks_scales_linearly(factor):
    base = plan_blocks(2**28, 2**28, 32, 1)
    assert plan_blocks(factor * 2**28, 2**28, 32, 1) == factor * base


def test_plan_blocks_minimum_is_one():
    assert plan_blocks(0, 1e9, 8, 0) == 1


def test_plan_blocks_rejects_empty_budget():
    with pytest.raises(ValueError):
        plan_blocks(10, 0, 8, 1)


def test_host_budget_from_probe():
    with patch.object(DeviceManager, 'gpu_count', return_value=0), \
            patch.object(psutil, 'virtual_memory') as mock_virtual_memory:
        mock_virtual_memory.return_value.available = 4.8e7
        # 48 bytes per element on the host
        assert plan_filter_blocks(10**7) == 10


def test_host_budget_is_capped():
    with patch.object(DeviceManager, 'gpu_count', return_value=0), \
            patch.object(psutil, 'virtual_memory') as mock_virtual_memory:
        mock_virtual_memory.return_value.available = 1e12
        assert plan_filter_blocks(10**9) == math.ceil(48e9 / 20e9)


def test_gpu_budget_from_probe():
    with patch.object(DeviceManager, 'gpu_count', return_value=2), \
            patch.object(torch.cuda, 'mem_get_info', return_value=(2**30, 2**32)) as mock_mem_get_info:
        # 32 bytes per element on an accelerator
        assert plan_filter_blocks(2**28, gpu=[0]) == 8
        # every requested device gets a block
        assert plan_filter_blocks(2**20, gpu=[0, 1]) == 2
        assert mock_mem_get_info.call_args[0][0] == torch.device('cuda', 0)


def test_filter_device():
    with patch.object(DeviceManager, 'gpu_count', return_value=0):
        assert filter_device() == torch.device('cpu')
    with patch.object(DeviceManager, 'gpu_count', return_value=1), \
            patch.object(torch.cuda, 'current_device', return_value=0):
        assert filter_device() == torch.device('cuda', 0)
        assert filter_device(['cpu']) == torch.device('cpu')
        assert filter_device([1]) == torch.device('cuda', 1)


def test_host_blocks_use_host_budget_with_cuda_visible():
    with patch.object(DeviceManager, 'gpu_count', return_value=2), \
            patch.object(torch.cuda, 'mem_get_info') as mock_mem_get_info, \
            patch.object(psutil, 'virtual_memory') as mock_virtual_memory:
        mock_virtual_memory.return_value.available = 4.8e7
        assert plan_filter_blocks(10**7, gpu=['cpu']) == 10
    mock_mem_get_info.assert_not_called()


def test_explicit_budget_overrides_probe():
    with patch.object(DeviceManager, 'gpu_count', return_value=0):
        assert plan_filter_blocks(10**6, available_memory=48e6) == 1
        assert plan_filter_blocks(10**6, available_memory=12e6) == 4


if __name__ == '__main__':
    pytest.main([str(__file__.replace('\\', '/')), '-v'])
