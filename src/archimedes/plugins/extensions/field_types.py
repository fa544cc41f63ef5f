# -*- coding: utf-8 -*-
"""
自定义字段类型

插件声明的字段值校验与类型转换。
"""

import json
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import AnyUrl, TypeAdapter, ValidationError

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class FieldType(str, Enum):
    """插件字段类型"""

    STRING = "string"
    TEXT = "text"
    TEXTAREA = "textarea"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    EMAIL = "email"
    URL = "url"
    SELECT = "select"
    JSON = "json"


STRING_TYPES = {FieldType.STRING, FieldType.TEXT, FieldType.TEXTAREA}
NUMERIC_TYPES = {FieldType.INTEGER, FieldType.NUMBER}

_BOOLEAN_VALUES = (0, 1, "0", "1")

_adapters: Dict[FieldType, TypeAdapter] = {
    FieldType.INTEGER: TypeAdapter(int),
    FieldType.NUMBER: TypeAdapter(float),
    FieldType.DATE: TypeAdapter(date),
    FieldType.DATETIME: TypeAdapter(datetime),
    FieldType.URL: TypeAdapter(AnyUrl),
}


def _conforms(field_type: FieldType, value: Any) -> bool:
    adapter = _adapters.get(field_type)
    if adapter is None:
        return True
    if isinstance(value, bool):
        # bool 是 int 的子类，不作为数值接受
        return False
    try:
        adapter.validate_python(value)
    except ValidationError:
        return False
    return True


def _option_values(options: Optional[Sequence[Mapping[str, Any]]]) -> List[Any]:
    return [option.get("value") for option in options or [] if isinstance(option, Mapping)]


def validate_value(
    name: str,
    field_type: FieldType,
    value: Any,
    *,
    required: bool = False,
    validation: Optional[Mapping[str, Any]] = None,
    options: Optional[Sequence[Mapping[str, Any]]] = None,
) -> List[str]:
    """
    校验字段值

    Args:
        name: 字段名
        field_type: 字段类型
        value: 待校验的值
        required: 是否必填
        validation: 校验规则（min/max/maxLength/pattern/patternMessage）
        options: select 类型的可选项

    Returns:
        错误消息列表，为空表示通过
    """
    rules = validation or {}
    errors: List[str] = []

    if value is None or value == "":
        if required:
            errors.append(f"Field {name} is required")
        return errors

    if field_type in STRING_TYPES:
        if not isinstance(value, str):
            errors.append(f"Field {name} must be a string")
        elif "maxLength" in rules and len(value) > rules["maxLength"]:
            errors.append(f"Field {name} exceeds maximum length of {rules['maxLength']}")

    elif field_type in NUMERIC_TYPES:
        if not _conforms(field_type, value):
            errors.append(f"Field {name} must be a number")
        else:
            number = float(value)
            if "min" in rules and number < rules["min"]:
                errors.append(f"Field {name} must be at least {rules['min']}")
            if "max" in rules and number > rules["max"]:
                errors.append(f"Field {name} must be at most {rules['max']}")

    elif field_type == FieldType.BOOLEAN:
        if not (isinstance(value, bool) or value in _BOOLEAN_VALUES):
            errors.append(f"Field {name} must be a boolean")

    elif field_type in (FieldType.DATE, FieldType.DATETIME):
        if not _conforms(field_type, value):
            errors.append(f"Field {name} must be a valid date")

    elif field_type == FieldType.EMAIL:
        if not isinstance(value, str) or not EMAIL_PATTERN.match(value):
            errors.append(f"Field {name} must be a valid email")

    elif field_type == FieldType.URL:
        if not isinstance(value, str) or not _conforms(field_type, value):
            errors.append(f"Field {name} must be a valid URL")

    elif field_type == FieldType.SELECT:
        if value not in _option_values(options):
            errors.append(f"Field {name} has an invalid value")

    pattern = rules.get("pattern")
    if pattern and isinstance(value, str) and not re.search(pattern, value):
        errors.append(rules.get("patternMessage") or f"Field {name} format is invalid")

    return errors


def cast_value(field_type: FieldType, value: Any) -> Any:
    """将值转换为字段类型对应的 Python 类型"""
    if value is None:
        return None

    if field_type == FieldType.INTEGER:
        return int(value)
    if field_type == FieldType.NUMBER:
        return float(value)
    if field_type == FieldType.BOOLEAN:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if field_type == FieldType.DATE:
        return _adapters[FieldType.DATE].validate_python(value)
    if field_type == FieldType.DATETIME:
        return _adapters[FieldType.DATETIME].validate_python(value)
    if field_type == FieldType.JSON:
        return value if isinstance(value, (dict, list)) else json.loads(value)
    return str(value)
