# -*- coding: utf-8 -*-
"""
自定义字段合并器

把激活插件声明的自定义字段按模型合并。合并结果在构造时一次性计算，
之后不再修改；激活集合变化时由注册表重新构造。
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from ...exceptions import FieldCollisionError, PluginError
from .field_types import FieldType, cast_value, validate_value

if TYPE_CHECKING:
    from ..dependency.manifest import FieldDeclaration, PluginManifest


@dataclass(frozen=True)
class MergedField:
    """合并后的字段定义"""

    model: str
    name: str
    type: FieldType
    owner_plugin_id: str
    validation: Mapping[str, Any] = field(default_factory=dict, compare=False)
    label: Optional[str] = None
    required: bool = False
    options: Optional[Tuple[Mapping[str, Any], ...]] = None
    help_text: Optional[str] = None
    placeholder: Optional[str] = None
    group: Optional[str] = None

    @classmethod
    def from_declaration(cls, declaration: "FieldDeclaration", plugin_id: str) -> "MergedField":
        options = declaration.options
        return cls(
            model=declaration.model,
            name=declaration.name,
            type=declaration.type,
            owner_plugin_id=plugin_id,
            validation=MappingProxyType(declaration.validation.to_rules()),
            label=declaration.label,
            required=declaration.required,
            options=tuple(MappingProxyType(dict(o)) for o in options) if options else None,
            help_text=declaration.help_text,
            placeholder=declaration.placeholder,
            group=declaration.group,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "label": self.label or self.name.replace("_", " ").title(),
            "required": self.required,
            "validation": dict(self.validation),
            "options": [dict(o) for o in self.options] if self.options else None,
            "helpText": self.help_text,
            "placeholder": self.placeholder,
            "group": self.group,
            "pluginId": self.owner_plugin_id,
        }


class FieldSchemaMerger:
    """
    字段模式合并器

    按插件ID字典序遍历，第一个声明 (model, name) 的插件拥有该字段；
    另一插件再声明同一字段即为冲突，该模型的合并整体失败。
    """

    def __init__(self, plugins: Optional[Mapping[str, "PluginManifest"]] = None):
        """
        Args:
            plugins: {注册表插件ID: 清单}，通常为当前激活的插件
        """
        self.logger = logging.getLogger(__name__)
        self._schemas: Dict[str, Mapping[str, MergedField]] = {}
        self._collisions: Dict[str, FieldCollisionError] = {}
        self._merge(plugins or {})

    def _merge(self, plugins: Mapping[str, "PluginManifest"]) -> None:
        merged: Dict[str, Dict[str, MergedField]] = {}

        for plugin_id in sorted(plugins):
            for declaration in plugins[plugin_id].fields:
                model_fields = merged.setdefault(declaration.model, {})
                owner = model_fields.get(declaration.name)
                if owner is None:
                    model_fields[declaration.name] = MergedField.from_declaration(
                        declaration, plugin_id
                    )
                elif owner.owner_plugin_id != plugin_id:
                    self._collisions.setdefault(
                        declaration.model,
                        FieldCollisionError(
                            declaration.model,
                            declaration.name,
                            owner.owner_plugin_id,
                            plugin_id,
                        ),
                    )

        for model, model_fields in merged.items():
            if model not in self._collisions:
                self._schemas[model] = MappingProxyType(model_fields)

        if self._collisions:
            self.logger.debug(f"字段冲突的模型: {sorted(self._collisions)}")

    def merge_for_model(self, model: str) -> Mapping[str, MergedField]:
        """
        获取模型的合并字段

        Returns:
            只读的 {字段名: MergedField}；无插件字段的模型返回空映射

        Raises:
            FieldCollisionError: 两个插件声明了该模型的同名字段
        """
        collision = self._collisions.get(model)
        if collision is not None:
            raise FieldCollisionError(
                collision.model,
                collision.field,
                collision.owner_plugin_id,
                collision.conflicting_plugin_id,
            )
        return self._schemas.get(model, MappingProxyType({}))

    def merge_all(self) -> Dict[str, Mapping[str, MergedField]]:
        """
        获取所有模型的合并字段

        Raises:
            FieldCollisionError: 第一个发生冲突的模型（按模型名排序）
        """
        return {model: self.merge_for_model(model) for model in self.models()}

    @property
    def has_collisions(self) -> bool:
        return bool(self._collisions)

    def models(self) -> List[str]:
        return sorted(set(self._schemas) | set(self._collisions))

    def field_count(self) -> int:
        return sum(len(fields) for fields in self._schemas.values())

    def field_definitions(self) -> Dict[str, List[Dict[str, Any]]]:
        """按模型分组的字段定义，供管理界面渲染表单"""
        return {
            model: [f.to_dict() for f in fields.values()]
            for model, fields in self.merge_all().items()
        }

    def _field(self, model: str, name: str) -> Optional[MergedField]:
        return self.merge_for_model(model).get(name)

    def validate_value(self, model: str, name: str, value: Any) -> List[str]:
        """
        按字段定义校验值

        Returns:
            错误消息列表，为空表示通过
        """
        merged = self._field(model, name)
        if merged is None:
            return [f"Field {name} is not defined for {model}"]
        return validate_value(
            name,
            merged.type,
            value,
            required=merged.required,
            validation=merged.validation,
            options=merged.options,
        )

    def cast_value(self, model: str, name: str, value: Any) -> Any:
        """
        将值转换为字段声明的类型

        Raises:
            PluginError: 字段未被任何插件声明
        """
        merged = self._field(model, name)
        if merged is None:
            raise PluginError(f"field '{model}.{name}' is not declared by any active plugin")
        return cast_value(merged.type, value)
