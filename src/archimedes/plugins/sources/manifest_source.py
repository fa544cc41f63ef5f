# -*- coding: utf-8 -*-
"""
清单来源

为注册表提供原始清单文档，按插件ID与作用域（全局或组织）检索。
"""

import copy
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from ...exceptions import ManifestNotFoundError, MalformedManifestError

DEFAULT_MANIFEST_FILENAMES = ("manifest.json", "manifest.yaml", "manifest.yml")


def load_manifest_file(manifest_path: Path) -> Dict[str, Any]:
    """
    从文件读取原始清单（JSON 或 YAML）

    Raises:
        FileNotFoundError: 文件不存在
        MalformedManifestError: 格式不支持或内容无法解析
    """
    manifest_path = Path(manifest_path)
    if not manifest_path.exists():
        raise FileNotFoundError(f"manifest file not found: {manifest_path}")

    suffix = manifest_path.suffix.lower()
    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise MalformedManifestError(
                    f"unsupported manifest format: {manifest_path.suffix}"
                )
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        message = f"cannot parse {manifest_path.name}: {e}"
        raise MalformedManifestError(message, {"manifest": message}) from e

    if not isinstance(data, dict):
        message = f"{manifest_path.name} must contain an object"
        raise MalformedManifestError(message, {"manifest": message})
    return data


class ManifestSource(ABC):
    """原始清单来源"""

    @abstractmethod
    def load(self, plugin_id: str, organization_id: Optional[int] = None) -> Dict[str, Any]:
        """
        读取原始清单

        Raises:
            ManifestNotFoundError: 清单不存在
        """

    @abstractmethod
    def list_ids(self, organization_id: Optional[int] = None) -> List[str]:
        """列出某作用域下可用的插件ID；organization_id 为 None 表示全局"""


class InMemoryManifestSource(ManifestSource):
    """内存清单来源"""

    def __init__(self) -> None:
        self._documents: Dict[Tuple[Optional[int], str], Dict[str, Any]] = {}

    def add(self, raw: Dict[str, Any], organization_id: Optional[int] = None) -> None:
        plugin_id = raw.get("id")
        if not isinstance(plugin_id, str) or not plugin_id:
            raise MalformedManifestError("manifest without id", {"id": "Field required"})
        self._documents[(organization_id, plugin_id)] = copy.deepcopy(raw)

    def remove(self, plugin_id: str, organization_id: Optional[int] = None) -> None:
        self._documents.pop((organization_id, plugin_id), None)

    def load(self, plugin_id: str, organization_id: Optional[int] = None) -> Dict[str, Any]:
        try:
            return copy.deepcopy(self._documents[(organization_id, plugin_id)])
        except KeyError:
            raise ManifestNotFoundError(plugin_id, organization_id)

    def list_ids(self, organization_id: Optional[int] = None) -> List[str]:
        return sorted(pid for org, pid in self._documents if org == organization_id)


class DirectoryManifestSource(ManifestSource):
    """
    目录清单来源

    全局插件: <plugins_path>/<plugin_id>/manifest.json
    租户插件: <tenants_path>/<organization_id>/plugins/<plugin_id>/manifest.json
    """

    def __init__(
        self,
        plugins_path: Optional[Path] = None,
        tenants_path: Optional[Path] = None,
        filenames: Sequence[str] = DEFAULT_MANIFEST_FILENAMES,
    ):
        self.logger = logging.getLogger(__name__)
        self.plugins_path = Path(plugins_path) if plugins_path else None
        self.tenants_path = Path(tenants_path) if tenants_path else None
        self.filenames = tuple(filenames)

    def _root(self, organization_id: Optional[int]) -> Optional[Path]:
        if organization_id is None:
            return self.plugins_path
        if self.tenants_path is None:
            return None
        return self.tenants_path / str(organization_id) / "plugins"

    def _manifest_path(self, plugin_dir: Path) -> Optional[Path]:
        for filename in self.filenames:
            candidate = plugin_dir / filename
            if candidate.exists():
                return candidate
        return None

    def load(self, plugin_id: str, organization_id: Optional[int] = None) -> Dict[str, Any]:
        root = self._root(organization_id)
        manifest_path = self._manifest_path(root / plugin_id) if root else None
        if manifest_path is None:
            raise ManifestNotFoundError(plugin_id, organization_id)
        self.logger.debug(f"读取插件清单 {manifest_path}")
        return load_manifest_file(manifest_path)

    def list_ids(self, organization_id: Optional[int] = None) -> List[str]:
        root = self._root(organization_id)
        if root is None or not root.is_dir():
            return []
        return sorted(
            d.name for d in root.iterdir() if d.is_dir() and self._manifest_path(d)
        )
