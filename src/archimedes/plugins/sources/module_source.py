# -*- coding: utf-8 -*-
"""
模块版本来源

依赖解析器通过 get_installed_version 查询已安装模块的版本，未安装返回 None。
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from ...exceptions import MalformedManifestError
from .manifest_source import load_manifest_file

DEFAULT_MODULE_MANIFESTS = ("manifest.json", "manifest.yaml", "manifest.yml")


class ModuleVersionSource(ABC):
    """已安装模块版本来源"""

    @abstractmethod
    def get_installed_version(self, module_id: str) -> Optional[str]:
        """返回模块版本，未安装时返回 None"""

    @abstractmethod
    def installed_modules(self) -> Dict[str, str]:
        """返回 {module_id: version}"""


class StaticModuleVersionSource(ModuleVersionSource):
    """基于字典的版本来源，版本可在运行时调整"""

    def __init__(self, versions: Optional[Mapping[str, str]] = None):
        self._versions: Dict[str, str] = {k: str(v) for k, v in (versions or {}).items()}

    def get_installed_version(self, module_id: str) -> Optional[str]:
        return self._versions.get(module_id)

    def installed_modules(self) -> Dict[str, str]:
        return dict(self._versions)

    def set_version(self, module_id: str, version: str) -> None:
        self._versions[module_id] = str(version)

    def remove(self, module_id: str) -> None:
        self._versions.pop(module_id, None)


class DirectoryModuleVersionSource(ModuleVersionSource):
    """
    从模块目录读取版本

    每个子目录是一个模块，其清单中的 version 字段即已安装版本；
    清单中的 name 字段优先作为模块ID，缺省时使用目录名。
    """

    def __init__(
        self,
        modules_path: Path,
        filenames: Sequence[str] = DEFAULT_MODULE_MANIFESTS,
    ):
        self.logger = logging.getLogger(__name__)
        self.modules_path = Path(modules_path)
        self.filenames = tuple(filenames)
        self._versions: Optional[Dict[str, str]] = None

    def refresh(self) -> Dict[str, str]:
        """重新扫描模块目录"""
        versions: Dict[str, str] = {}
        if not self.modules_path.is_dir():
            self.logger.warning(f"模块目录不存在: {self.modules_path}")
            self._versions = versions
            return versions

        for module_dir in sorted(p for p in self.modules_path.iterdir() if p.is_dir()):
            for filename in self.filenames:
                manifest_path = module_dir / filename
                if not manifest_path.exists():
                    continue
                try:
                    data = load_manifest_file(manifest_path)
                except MalformedManifestError as e:
                    self.logger.error(f"读取模块清单失败 {manifest_path}: {e}")
                    break
                version = data.get("version")
                if version is not None:
                    versions[str(data.get("name") or module_dir.name)] = str(version)
                break

        self.logger.debug(f"在 {self.modules_path} 中发现 {len(versions)} 个模块")
        self._versions = versions
        return versions

    def installed_modules(self) -> Dict[str, str]:
        if self._versions is None:
            self.refresh()
        return dict(self._versions)

    def get_installed_version(self, module_id: str) -> Optional[str]:
        return self.installed_modules().get(module_id)
