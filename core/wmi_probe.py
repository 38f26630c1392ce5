# -*- coding: utf-8 -*-
"""
Windows Management Instrumentation lookups for the GPU lifecycle controller:
the hybrid-graphics capability probe and the PCI -> Plug-and-Play instance id
mapping used by device restarts.

Both degrade to "nothing found" where WMI is not available.
"""
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

# Import WMI if available, with a clear fallback path.
_wmi_available = False
try:
    import wmi
    import pythoncom
    _wmi_available = True
except ImportError:
    wmi = None
    pythoncom = None

from config.settings import (
    WMI_CIMV2_NAMESPACE, WMI_VIDEO_CONTROLLER_CLASS, WMI_PNP_ENTITY_CLASS, NVIDIA_PCI_VENDOR_ID
)


@contextmanager
def _wmi_connection() -> Iterator[Any]:
    """Initializes COM for the calling thread and yields a CIMv2 connection."""
    pythoncom.CoInitializeEx(pythoncom.COINIT_MULTITHREADED)
    try:
        yield wmi.WMI(namespace=WMI_CIMV2_NAMESPACE)
    finally:
        try:
            pythoncom.CoUninitialize()
        except Exception as e:
            print(f"Error during COM uninitialization: {e}", file=sys.stderr)


def has_dedicated_gpu() -> bool:
    """
    Hybrid-graphics capability probe.

    True when Windows enumerates two or more video controllers or any NVIDIA
    controller, which means a discrete GPU exists even if the NVIDIA driver
    cannot currently reach it.
    """
    if not _wmi_available:
        return False
    try:
        with _wmi_connection() as conn:
            controllers = conn.query(f"SELECT Name FROM {WMI_VIDEO_CONTROLLER_CLASS}")
            names = [str(getattr(c, 'Name', '') or '') for c in controllers]
    except Exception as e:
        print(f"Hybrid graphics probe failed: {e}", file=sys.stderr)
        return False
    return len(names) >= 2 or any('nvidia' in name.lower() for name in names)


def find_pnp_instance_id(pci_device_id: int) -> Optional[str]:
    """
    Looks up the Plug-and-Play instance id for an NVML PCI device id
    (device id in the high 16 bits, vendor id in the low 16 bits).
    """
    if not _wmi_available:
        return None
    vendor = pci_device_id & 0xFFFF
    device = (pci_device_id >> 16) & 0xFFFF
    if vendor != NVIDIA_PCI_VENDOR_ID:
        return None

    pattern = f"%VEN_{vendor:04X}&DEV_{device:04X}%"
    try:
        with _wmi_connection() as conn:
            entities = conn.query(
                f"SELECT PNPDeviceID FROM {WMI_PNP_ENTITY_CLASS} WHERE PNPDeviceID LIKE '{pattern}'")
            for entity in entities:
                instance_id = getattr(entity, 'PNPDeviceID', None)
                if instance_id:
                    return str(instance_id)
    except Exception as e:
        print(f"PnP instance lookup failed for {pattern}: {e}", file=sys.stderr)
    return None
