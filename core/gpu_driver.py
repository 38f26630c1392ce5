# -*- coding: utf-8 -*-
"""
NVIDIA driver session used by the GPU lifecycle controller.

A session is opened, queried and unloaded once per refresh. Any session object
works as long as it offers the same methods as `NvmlDriverSession`; tests pass
in fakes.
"""
import sys
from typing import Any, List, Optional

import psutil
import pynvml

from .models import BoundProcess
from .wmi_probe import find_pnp_instance_id


# --- Custom exceptions ---
class GPUDriverError(Exception):
    """Base exception for GPU driver session errors."""
    def __init__(self, message, original_exception=None):
        super().__init__(message)
        self.original_exception = original_exception

class GPUDriverUnavailableError(GPUDriverError):
    """Raised when the driver library cannot be loaded or initialized."""
    pass

class GPUNotPoweredError(GPUDriverError):
    """Raised when the device is present but currently powered down."""
    pass


def _decode(value: Any) -> str:
    # Older bindings return bytes
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return str(value)


class NvmlDriverSession:
    """
    Thin wrapper over NVML (nvidia-ml-py).

    NVML errors are translated into the GPUDriverError hierarchy; a lost or
    unpowered GPU raises GPUNotPoweredError.
    """
    _NOT_POWERED_CODES = (pynvml.NVML_ERROR_GPU_IS_LOST,)

    def __init__(self, device_index: int = 0):
        self._device_index = device_index
        self._initialized = False

    def _translate(self, operation: str, error: 'pynvml.NVMLError') -> GPUDriverError:
        code = getattr(error, 'value', None)
        if code in self._NOT_POWERED_CODES:
            return GPUNotPoweredError(f"{operation}: GPU not powered ({error})", error)
        return GPUDriverError(f"{operation} failed: {error}", error)

    # --- Session lifecycle ---
    def initialize(self):
        try:
            pynvml.nvmlInit()
        except pynvml.NVMLError as e:
            raise GPUDriverUnavailableError(f"Failed to initialize NVML: {e}", e)
        self._initialized = True

    def unload(self):
        if not self._initialized:
            return
        try:
            pynvml.nvmlShutdown()
        except pynvml.NVMLError as e:
            raise GPUDriverError(f"Failed to shut down NVML: {e}", e)
        finally:
            self._initialized = False

    # --- Queries ---
    def get_device(self) -> Optional[Any]:
        """Returns the device handle, or None if no NVIDIA device is enumerated."""
        try:
            if pynvml.nvmlDeviceGetCount() <= self._device_index:
                return None
            return pynvml.nvmlDeviceGetHandleByIndex(self._device_index)
        except pynvml.NVMLError as e:
            raise self._translate("Device enumeration", e)

    def get_device_name(self, device: Any) -> str:
        try:
            return _decode(pynvml.nvmlDeviceGetName(device))
        except pynvml.NVMLError as e:
            raise self._translate("Device name query", e)

    def get_performance_state(self, device: Any) -> int:
        """Current P-state number (0 is maximum performance)."""
        try:
            return int(pynvml.nvmlDeviceGetPerformanceState(device))
        except pynvml.NVMLError as e:
            raise self._translate("Performance state query", e)

    def is_display_connected(self, device: Any) -> bool:
        try:
            return bool(pynvml.nvmlDeviceGetDisplayActive(device))
        except pynvml.NVMLError as e:
            raise self._translate("Display query", e)

    def get_bound_processes(self, device: Any) -> List[BoundProcess]:
        """Graphics and compute processes holding a context on the device, by unique PID."""
        try:
            running = (list(pynvml.nvmlDeviceGetGraphicsRunningProcesses(device)) +
                       list(pynvml.nvmlDeviceGetComputeRunningProcesses(device)))
        except pynvml.NVMLError as e:
            raise self._translate("Process query", e)

        processes: List[BoundProcess] = []
        seen = set()
        for info in running:
            pid = int(info.pid)
            if pid in seen:
                continue
            seen.add(pid)
            try:
                name = psutil.Process(pid).name()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                name = ""
            processes.append(BoundProcess(pid=pid, name=name))
        return processes

    def get_platform_id(self, device: Any) -> str:
        """
        Plug-and-Play instance id of the device where WMI can resolve it,
        otherwise its PCI bus id.
        """
        try:
            pci = pynvml.nvmlDeviceGetPciInfo(device)
        except pynvml.NVMLError as e:
            raise self._translate("PCI info query", e)

        instance_id = find_pnp_instance_id(int(pci.pciDeviceId))
        if instance_id:
            return instance_id
        bus_id = _decode(pci.busId).strip('\x00')
        if not bus_id:
            print("NVML returned an empty PCI bus id.", file=sys.stderr)
        return bus_id
