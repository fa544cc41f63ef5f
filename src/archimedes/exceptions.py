# -*- coding: utf-8 -*-
"""
Archimedes 核心异常
"""

from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from .plugins.validation import ValidationResult


class ArchimedesError(Exception):
    """所有 Archimedes 自定义异常的基类。"""

    pass


# region 插件异常


class PluginError(ArchimedesError):
    """与插件相关的错误的基类。"""

    pass


class PluginNotFoundError(PluginError, KeyError):
    """当找不到指定的插件时引发。"""

    def __init__(self, plugin_id: str, message: Optional[str] = None):
        self.plugin_id = plugin_id
        super().__init__(message or f"plugin '{plugin_id}' is not installed")

    def __str__(self) -> str:
        # KeyError 默认会给消息加引号
        return str(self.args[0])


class ManifestNotFoundError(PluginNotFoundError):
    """当清单来源中不存在指定插件的清单时引发。"""

    def __init__(self, plugin_id: str, organization_id: Optional[int] = None):
        self.organization_id = organization_id
        super().__init__(
            plugin_id,
            f"manifest for plugin '{plugin_id}' not found"
            + (f" (organization {organization_id})" if organization_id else ""),
        )


class PluginConfigurationError(PluginError, ValueError):
    """当注册表配置或信任等级表无效时引发。"""

    pass


# endregion

# region 清单异常


class MalformedManifestError(PluginError, ValueError):
    """清单结构不合法（缺少必需字段、字段类型错误等）。"""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        self.errors: Dict[str, str] = dict(errors or {})
        super().__init__(message)


class InvalidVersionError(MalformedManifestError):
    """清单版本号不是 MAJOR.MINOR.PATCH 形式。"""

    def __init__(self, version: str):
        self.version = version
        message = f"invalid version '{version}': expected MAJOR.MINOR.PATCH"
        super().__init__(message, {"version": message})


# endregion

# region 生命周期异常


class PluginStateError(PluginError):
    """插件状态机使用不当的基类。"""

    def __init__(self, plugin_id: str, message: str):
        self.plugin_id = plugin_id
        super().__init__(message)


class NotValidError(PluginStateError):
    """对未通过验证的插件执行激活等操作时引发。"""

    def __init__(self, plugin_id: str, result: Optional["ValidationResult"] = None):
        self.result = result
        message = f"plugin '{plugin_id}' is not valid"
        if result is not None and result.errors:
            details = "; ".join(f"{k}: {v}" for k, v in result.errors.items())
            message = f"{message}: {details}"
        super().__init__(plugin_id, message)


class StillActiveError(PluginStateError):
    """卸载或覆盖一个仍处于激活状态的插件时引发。"""

    def __init__(self, plugin_id: str):
        super().__init__(
            plugin_id, f"plugin '{plugin_id}' is still active; deactivate it first"
        )


class DependencyUnsatisfiedError(PluginStateError):
    """激活时插件依赖的模块缺失或版本不匹配。"""

    def __init__(self, plugin_id: str, result: "ValidationResult"):
        self.result = result
        details = "; ".join(f"{k}: {v}" for k, v in result.errors.items())
        super().__init__(
            plugin_id, f"plugin '{plugin_id}' has unsatisfied dependencies: {details}"
        )


class FieldCollisionError(PluginError):
    """两个激活插件为同一模型声明了同名字段。"""

    def __init__(
        self, model: str, field: str, owner_plugin_id: str, conflicting_plugin_id: str
    ):
        self.model = model
        self.field = field
        self.owner_plugin_id = owner_plugin_id
        self.conflicting_plugin_id = conflicting_plugin_id
        super().__init__(
            f"field '{model}.{field}' is declared by both "
            f"'{owner_plugin_id}' and '{conflicting_plugin_id}'"
        )


# endregion
