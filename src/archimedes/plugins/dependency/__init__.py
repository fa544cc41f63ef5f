# -*- coding: utf-8 -*-
"""
插件依赖管理

提供插件清单、版本范围与依赖解析。
"""

from .manifest import (
    FieldDeclaration,
    FieldValidation,
    PluginManifest,
    PluginScope,
    SlotDeclaration,
    TrustLevel,
    parse_manifest,
)
from .resolver import DependencyResolver
from .versions import DependencySpec, parse_semver, range_to_specifier

__all__ = [
    "PluginManifest",
    "SlotDeclaration",
    "FieldDeclaration",
    "FieldValidation",
    "TrustLevel",
    "PluginScope",
    "parse_manifest",
    "DependencyResolver",
    "DependencySpec",
    "parse_semver",
    "range_to_specifier",
]
