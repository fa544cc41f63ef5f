# -*- coding: utf-8 -*-
"""
Archimedes: plugin capability & slot registry
"""

__author__ = "Archimedes"
__version__ = "0.1.0"

# 异常
from .exceptions import (
    ArchimedesError,
    DependencyUnsatisfiedError,
    FieldCollisionError,
    InvalidVersionError,
    MalformedManifestError,
    ManifestNotFoundError,
    NotValidError,
    PluginConfigurationError,
    PluginError,
    PluginNotFoundError,
    PluginStateError,
    StillActiveError,
)

# 插件系统
from .plugins.config.registry_config import RegistryConfig
from .plugins.dependency.manifest import PluginManifest, TrustLevel, parse_manifest
from .plugins.dependency.resolver import DependencyResolver
from .plugins.extensions.fields import FieldSchemaMerger
from .plugins.extensions.slots import SlotRegistry
from .plugins.lifecycle.plugin_registry import InstalledPlugin, PluginRegistry, PluginState
from .plugins.security.trust_policy import TrustPolicy
from .plugins.validation import ErrorCode, ValidationResult

__all__ = [
    # 插件系统
    "PluginRegistry",
    "PluginState",
    "InstalledPlugin",
    "RegistryConfig",
    "PluginManifest",
    "TrustLevel",
    "parse_manifest",
    "TrustPolicy",
    "DependencyResolver",
    "SlotRegistry",
    "FieldSchemaMerger",
    "ValidationResult",
    "ErrorCode",
    # 异常
    "ArchimedesError",
    "PluginError",
    "PluginNotFoundError",
    "ManifestNotFoundError",
    "PluginConfigurationError",
    "MalformedManifestError",
    "InvalidVersionError",
    "PluginStateError",
    "NotValidError",
    "StillActiveError",
    "DependencyUnsatisfiedError",
    "FieldCollisionError",
]
