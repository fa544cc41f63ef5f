# -*- coding: utf-8 -*-
"""
Archimedes 基础配置模块
提供基于 Pydantic 的配置验证机制，支持环境变量解析和多环境配置
"""

import copy
import os
import re
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, model_validator

T = TypeVar("T", bound="BaseConfig")

# 环境变量匹配模式: ${VAR_NAME}
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z0-9_]+)\}")


def resolve_env_vars(value: Any) -> Any:
    """
    递归替换 ${VAR_NAME} 占位符

    Raises:
        ValueError: 引用的环境变量未设置
    """
    if isinstance(value, str):

        def _lookup(match: "re.Match[str]") -> str:
            name = match.group(1)
            resolved = os.getenv(name)
            if resolved is None:
                raise ValueError(f"环境变量 '{name}' 未设置")
            return resolved

        return ENV_VAR_PATTERN.sub(_lookup, value)
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env_vars(v) for v in value]
    return value


def deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """深度合并两个字典，overrides 中的值覆盖 base 中的值"""
    result = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class BaseConfig(BaseModel):
    """
    配置基类

    1. **严格模式验证**：禁止额外字段，防止配置拼写错误
    2. **环境变量解析**：自动解析 "${VAR_NAME}" 格式的环境变量
    3. **多环境配置**：根据 APP_ENV 环境变量选择配置段
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    @model_validator(mode="before")
    @classmethod
    def _resolve_env_vars(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return resolve_env_vars(data)

    @classmethod
    def load_from_dict(
        cls: Type[T],
        config_data: Dict[str, Any],
        env: Optional[str] = None,
    ) -> T:
        """
        从字典加载配置，支持环境特定的配置覆盖

        配置结构示例：
        {
            "default": {"plugins_path": "plugins"},
            "production": {"plugins_path": "/srv/archimedes/plugins"}
        }

        没有 default 段时整个字典即为配置。

        Args:
            config_data: 配置字典
            env: 目标环境，为 None 时使用 os.getenv("APP_ENV", "development")

        Returns:
            配置模型实例
        """
        if "default" not in config_data:
            return cls(**config_data)

        if env is None:
            env = os.getenv("APP_ENV", "development")

        merged = deep_merge(config_data.get("default") or {}, config_data.get(env) or {})
        return cls(**merged)
