"""Capture driver registry for magswipe.

Drivers live in :mod:`daq` and must subclass :class:`~daq.base_source.BaseSource`.
This module loads any ``*.py`` file in the package (excluding
``base_source.py``, ``registry.py`` and module initialisers), searches for
concrete subclasses, and exposes helpers for listing and creating known
drivers.

Example::

    from daq.registry import list_drivers

    for driver in list_drivers():
        print(driver.key, driver.name)
"""

from __future__ import annotations

import importlib
import inspect
import logging
import os
import pkgutil
from dataclasses import dataclass
from typing import Dict, List, Type

from .base_source import BaseSource

logger = logging.getLogger(__name__)

_EXCLUDE = {"base_source", "registry", "__init__"}
_REGISTRY: Dict[str, "DriverDescriptor"] = {}
_scanned = False


@dataclass
class DriverDescriptor:
    """Metadata for a discovered capture driver."""

    key: str
    name: str
    cls: Type[BaseSource]
    module: str


def scan_drivers(force: bool = False) -> None:
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
        except ImportError as exc:
            logger.debug("Failed to import capture module %s: %s", module_info.name, exc)
            continue

        for _, obj in inspect.getmembers(module, inspect.isclass):
            if not issubclass(obj, BaseSource) or obj is BaseSource:
                continue
            if inspect.isabstract(obj):
                continue
            key = short_name.replace("_source", "")
            if key in _REGISTRY:
                continue
            _REGISTRY[key] = DriverDescriptor(
                key=key,
                name=obj.device_class_name(),
                cls=obj,
                module=obj.__module__,
            )

    _scanned = True


def list_drivers() -> List[DriverDescriptor]:
    """Return descriptors for all discovered drivers, sorted by key."""

    scan_drivers()
    return [_REGISTRY[key] for key in sorted(_REGISTRY)]


def create_source(key: str, **kwargs) -> BaseSource:
    """Instantiate the driver registered under ``key`` (e.g. ``"soundcard"``, ``"file"``)."""

    scan_drivers()
    descriptor = _REGISTRY.get(key)
    if descriptor is None:
        raise KeyError(f"No capture driver registered for key {key!r}")
    return descriptor.cls(**kwargs)


__all__ = ["scan_drivers", "list_drivers", "create_source", "DriverDescriptor"]
