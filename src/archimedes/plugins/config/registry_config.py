# -*- coding: utf-8 -*-
"""
插件注册表配置
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import Field, field_validator

from ...exceptions import PluginConfigurationError
from ..dependency.manifest import TENANT_PLUGIN_ID_TEMPLATE
from ..extensions.slots import DEFAULT_SLOT_PRIORITY
from ..sources.manifest_source import DEFAULT_MANIFEST_FILENAMES
from .base_config import BaseConfig

_PATH_FIELDS = ("plugins_path", "tenants_path", "modules_path", "trust_policy_path")


class RegistryConfig(BaseConfig):
    """插件注册表配置"""

    plugins_path: Optional[Path] = Field(default=None, description="全局插件目录")
    tenants_path: Optional[Path] = Field(default=None, description="租户插件根目录")
    modules_path: Optional[Path] = Field(default=None, description="已安装模块目录")
    manifest_filenames: List[str] = Field(
        default_factory=lambda: list(DEFAULT_MANIFEST_FILENAMES),
        min_length=1,
        description="按顺序查找的清单文件名",
    )
    trust_policy_path: Optional[Path] = Field(
        default=None, description="自定义信任等级表，缺省使用内置表"
    )
    default_slot_priority: int = Field(
        default=DEFAULT_SLOT_PRIORITY, description="清单未声明优先级时使用的插槽优先级"
    )
    tenant_plugin_id_template: str = Field(default=TENANT_PLUGIN_ID_TEMPLATE)
    modules: Dict[str, str] = Field(
        default_factory=dict, description="静态模块版本，优先于 modules_path"
    )
    log_level: str = Field(default="INFO")

    @field_validator("tenant_plugin_id_template")
    @classmethod
    def validate_template(cls, v: str) -> str:
        """模板必须同时包含组织ID与插件ID"""
        if "{organization_id}" not in v or "{plugin_id}" not in v:
            raise ValueError(
                "tenant_plugin_id_template must contain {organization_id} and {plugin_id}"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator("modules", mode="before")
    @classmethod
    def stringify_versions(cls, v: object) -> object:
        # YAML 会把 1.0 解析为浮点数
        if isinstance(v, dict):
            return {str(k): str(version) for k, version in v.items()}
        return v

    @classmethod
    def from_file(cls, path: Path, env: Optional[str] = None) -> "RegistryConfig":
        """
        从 YAML 或 JSON 文件加载配置

        相对路径以配置文件所在目录为基准。

        Raises:
            PluginConfigurationError: 文件不存在、无法解析或配置无效
        """
        path = Path(path)
        if not path.exists():
            raise PluginConfigurationError(f"config file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise PluginConfigurationError(f"cannot parse config {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise PluginConfigurationError(f"config {path} must contain a mapping")

        try:
            config = cls.load_from_dict(data, env=env)
        except ValueError as e:
            raise PluginConfigurationError(f"invalid config {path}: {e}") from e

        base_dir = path.parent
        for name in _PATH_FIELDS:
            value = getattr(config, name)
            if value is not None and not value.is_absolute():
                setattr(config, name, base_dir / value)
        return config
