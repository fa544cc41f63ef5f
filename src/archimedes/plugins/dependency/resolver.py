# -*- coding: utf-8 -*-
"""
插件依赖解析器

检查清单 extends 中的版本范围是否被已安装模块满足。
"""

import logging
from typing import Iterable, List, Mapping, Optional, Union

from packaging.version import InvalidVersion, Version

from ..sources.module_source import ModuleVersionSource, StaticModuleVersionSource
from ..validation import ErrorCode, ValidationResult
from .manifest import PluginManifest

InstalledModules = Union[ModuleVersionSource, Mapping[str, str]]


class DependencyResolver:
    """
    依赖解析器

    不支持部分满足：任何一条依赖失败，整个清单即无效。
    """

    def __init__(self, module_source: Optional[InstalledModules] = None):
        self.logger = logging.getLogger(__name__)
        self.module_source = self._as_source(module_source)

    @staticmethod
    def _as_source(installed: Optional[InstalledModules]) -> ModuleVersionSource:
        if installed is None:
            return StaticModuleVersionSource()
        if isinstance(installed, ModuleVersionSource):
            return installed
        return StaticModuleVersionSource(installed)

    def resolve(
        self,
        manifest: PluginManifest,
        installed_modules: Optional[InstalledModules] = None,
    ) -> ValidationResult:
        """
        解析清单依赖

        Args:
            manifest: 插件清单
            installed_modules: 已安装模块（来源或 {module_id: version}），
                缺省时使用解析器自身的模块来源

        Returns:
            ValidationResult，错误以模块ID为键
        """
        source = (
            self.module_source
            if installed_modules is None
            else self._as_source(installed_modules)
        )
        result = ValidationResult()

        for dependency in manifest.dependencies:
            module_id = dependency.module_id
            installed = source.get_installed_version(module_id)

            if installed is None:
                result.add_error(
                    module_id, "module not installed", ErrorCode.DEPENDENCY_UNSATISFIED
                )
                continue

            try:
                version = Version(installed)
            except InvalidVersion:
                result.add_error(
                    module_id,
                    f"invalid installed version: {installed}",
                    ErrorCode.DEPENDENCY_UNSATISFIED,
                )
                continue

            if not dependency.is_satisfied_by(version):
                result.add_error(
                    module_id,
                    f"version mismatch: required {dependency.version_range}, found {installed}",
                    ErrorCode.DEPENDENCY_UNSATISFIED,
                )

        if result.is_valid:
            self.logger.debug(f"插件 {manifest.id} 的 {len(manifest.extends)} 个依赖均已满足")
        else:
            self.logger.warning(f"插件 {manifest.id} 依赖未满足: {result.errors}")
        return result

    @staticmethod
    def plugins_extending(
        module_id: str, manifests: Iterable[PluginManifest]
    ) -> List[PluginManifest]:
        """列出 extends 中引用了指定模块的清单"""
        return [
            manifest
            for manifest in manifests
            if any(dep.module_id == module_id for dep in manifest.dependencies)
        ]
