# -*- coding: utf-8 -*-
"""
全局测试配置
提供共享的清单样例、信任策略与注册表fixture
"""

import json
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator

import pytest

from archimedes.plugins.dependency.resolver import DependencyResolver
from archimedes.plugins.lifecycle.plugin_registry import PluginRegistry
from archimedes.plugins.security.trust_policy import TrustPolicy
from archimedes.plugins.sources.manifest_source import InMemoryManifestSource
from archimedes.plugins.sources.module_source import StaticModuleVersionSource


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """创建一个临时目录。"""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def make_manifest() -> Callable[..., Dict[str, Any]]:
    """构造原始清单文档"""

    def _make(plugin_id: str = "p1", **overrides: Any) -> Dict[str, Any]:
        raw: Dict[str, Any] = {
            "id": plugin_id,
            "name": plugin_id.upper(),
            "version": "1.0.0",
            "trustLevel": "community",
            "capabilities": ["ui.slots"],
        }
        raw.update(overrides)
        return raw

    return _make


@pytest.fixture
def trust_policy() -> TrustPolicy:
    return TrustPolicy.default()


@pytest.fixture
def module_source() -> StaticModuleVersionSource:
    """已安装模块: contacts 1.4.2, invoicing 2.0.0"""
    return StaticModuleVersionSource({"contacts": "1.4.2", "invoicing": "2.0.0"})


@pytest.fixture
def manifest_source() -> InMemoryManifestSource:
    return InMemoryManifestSource()


@pytest.fixture
def registry(
    trust_policy: TrustPolicy,
    module_source: StaticModuleVersionSource,
    manifest_source: InMemoryManifestSource,
) -> PluginRegistry:
    return PluginRegistry(
        trust_policy=trust_policy,
        resolver=DependencyResolver(module_source),
        manifest_source=manifest_source,
    )


@pytest.fixture
def write_manifest() -> Callable[[Path, Dict[str, Any]], Path]:
    """把清单写入 <directory>/<id>/manifest.json"""

    def _write(directory: Path, raw: Dict[str, Any], filename: str = "manifest.json") -> Path:
        plugin_dir = directory / raw["id"]
        plugin_dir.mkdir(parents=True, exist_ok=True)
        path = plugin_dir / filename
        path.write_text(json.dumps(raw), encoding="utf-8")
        return path

    return _write
