"""Top-level package for the modhooks extension registry.

This package exposes the process-wide :data:`EXTENSION_REGISTRY` which
lets mods and game subsystems contribute ordered behaviour to named
extension points.
"""

from __future__ import annotations

from .config import PointConfig, RegistryConfig
from .exceptions import (
    ConfigurationError,
    DuplicateExtensionPoint,
    ExtensionRegistryError,
    HandlerFailure,
    HandlerNotFound,
    HandlerSignatureError,
    RegistrySealedError,
    UnknownExtensionPoint,
)
from .plugin_manager import PluginError, PluginManager, PluginRecord
from .registry import (
    EXTENSION_REGISTRY,
    DispatchResult,
    ExtensionPoint,
    ExtensionRegistry,
    FailureMode,
    Outcome,
    Policy,
    Registration,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DispatchResult",
    "DuplicateExtensionPoint",
    "EXTENSION_REGISTRY",
    "ExtensionPoint",
    "ExtensionRegistry",
    "ExtensionRegistryError",
    "FailureMode",
    "HandlerFailure",
    "HandlerNotFound",
    "HandlerSignatureError",
    "Outcome",
    "PluginError",
    "PluginManager",
    "PluginRecord",
    "PointConfig",
    "Policy",
    "Registration",
    "RegistryConfig",
    "RegistrySealedError",
    "UnknownExtensionPoint",
]
