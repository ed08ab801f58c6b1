"""Device backend registry.

Backends live in :mod:`daq` and must subclass
:class:`~daq.base_device.BaseScanDevice` with a non-empty ``DEVICE_KEY``. This
module imports every ``*.py`` file in the package (excluding the base class,
error table, registry and module initialisers), collects concrete subclasses,
and exposes helpers for listing and creating them by key.

Example::

    from daq.registry import create_device, list_devices

    for device in list_devices():
        print(device.key, device.name)
    device = create_device("simulated", seed=0)
"""

from __future__ import annotations

import importlib
import inspect
import logging
import os
import pkgutil
from dataclasses import dataclass
from typing import Dict, List, Type

from .base_device import BaseScanDevice

logger = logging.getLogger(__name__)

_EXCLUDE = {"base_device", "errors", "registry", "__init__"}
_REGISTRY: Dict[str, "DeviceDescriptor"] = {}
_scanned = False


@dataclass
class DeviceDescriptor:
    """Metadata for a discovered device backend."""

    key: str
    name: str
    cls: Type[BaseScanDevice]
    module: str
    description: str = ""


def scan_devices(force: bool = False) -> None:
    """Populate the registry by inspecting modules under :mod:`daq`."""

    global _scanned
    if _scanned and not force:
        return

    _REGISTRY.clear()
    package = __name__.rsplit(".", 1)[0]
    for module_info in pkgutil.iter_modules([os.path.dirname(__file__)], package + "."):
        short_name = module_info.name.rsplit(".", 1)[-1]
        if short_name in _EXCLUDE:
            continue
        try:
            module = importlib.import_module(module_info.name)
        except Exception as exc:
            logger.debug("Failed to import device module %s: %s", module_info.name, exc)
            continue

        for _, obj in inspect.getmembers(module, inspect.isclass):
            if not issubclass(obj, BaseScanDevice) or obj is BaseScanDevice:
                continue
            if inspect.isabstract(obj) or not obj.DEVICE_KEY:
                continue
            if obj.DEVICE_KEY in _REGISTRY:
                continue
            doc = inspect.getdoc(obj)
            _REGISTRY[obj.DEVICE_KEY] = DeviceDescriptor(
                key=obj.DEVICE_KEY,
                name=obj.device_class_name(),
                cls=obj,
                module=obj.__module__,
                description=doc.splitlines()[0] if doc else "",
            )

    _scanned = True


def list_devices() -> List[DeviceDescriptor]:
    """Return descriptors for all discovered backends."""

    scan_devices()
    return list(_REGISTRY.values())


def create_device(key: str, **kwargs) -> BaseScanDevice:
    """Instantiate the backend associated with ``key``."""

    scan_devices()
    descriptor = _REGISTRY.get(key)
    if descriptor is None:
        known = ", ".join(sorted(_REGISTRY)) or "none"
        raise KeyError(f"No device backend registered for key {key!r} (known: {known})")
    return descriptor.cls(**kwargs)


__all__ = ["scan_devices", "list_devices", "create_device", "DeviceDescriptor"]
