# -*- coding: utf-8 -*-
"""
外部数据来源

插件清单来源与已安装模块版本来源。
"""

from .manifest_source import (
    DirectoryManifestSource,
    InMemoryManifestSource,
    ManifestSource,
    load_manifest_file,
)
from .module_source import (
    DirectoryModuleVersionSource,
    ModuleVersionSource,
    StaticModuleVersionSource,
)

__all__ = [
    "ManifestSource",
    "InMemoryManifestSource",
    "DirectoryManifestSource",
    "load_manifest_file",
    "ModuleVersionSource",
    "StaticModuleVersionSource",
    "DirectoryModuleVersionSource",
]
