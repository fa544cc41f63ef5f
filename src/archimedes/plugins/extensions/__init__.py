# -*- coding: utf-8 -*-
"""
插件扩展点

UI 插槽注册表与自定义字段合并器。
"""

from .field_types import FieldType
from .fields import FieldSchemaMerger, MergedField
from .slots import DEFAULT_SLOT_PRIORITY, SlotBinding, SlotRegistry

__all__ = [
    "DEFAULT_SLOT_PRIORITY",
    "SlotBinding",
    "SlotRegistry",
    "FieldType",
    "MergedField",
    "FieldSchemaMerger",
]
