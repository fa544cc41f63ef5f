# -*- coding: utf-8 -*-
"""
插件验证结果

每次（重新）验证清单都会生成新的 ValidationResult，不做持久化。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


class ErrorCode(str, Enum):
    """验证错误类别"""

    MALFORMED_MANIFEST = "malformed_manifest"
    INVALID_VERSION = "invalid_version"
    CAPABILITY_NOT_PERMITTED = "capability_not_permitted"
    TRUST_LEVEL_REQUIRED = "trust_level_required"
    DEPENDENCY_UNSATISFIED = "dependency_unsatisfied"


@dataclass
class ValidationResult:
    """
    验证结果

    errors 以字段名（或能力、模块名）为键，消息原样展示给管理界面。
    codes 与 errors 同键，记录每条错误的类别。
    """

    errors: Dict[str, str] = field(default_factory=dict)
    codes: Dict[str, ErrorCode] = field(default_factory=dict)
    warnings: Dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, key: str, message: str, code: ErrorCode) -> None:
        """添加一条错误，同一键只保留第一条"""
        if key in self.errors:
            return
        self.errors[key] = message
        self.codes[key] = code

    def add_warning(self, key: str, message: str) -> None:
        self.warnings.setdefault(key, message)

    def errors_with_code(self, code: ErrorCode) -> Dict[str, str]:
        """按错误类别筛选"""
        return {k: v for k, v in self.errors.items() if self.codes.get(k) == code}

    def merge(self, other: Optional["ValidationResult"]) -> "ValidationResult":
        """合并另一个结果，返回新对象"""
        merged = ValidationResult(
            errors=dict(self.errors),
            codes=dict(self.codes),
            warnings=dict(self.warnings),
        )
        if other is None:
            return merged
        for key, message in other.errors.items():
            merged.add_error(key, message, other.codes[key])
        for key, message in other.warnings.items():
            merged.add_warning(key, message)
        return merged

    def to_dict(self) -> Dict[str, object]:
        return {
            "isValid": self.is_valid,
            "errors": dict(self.errors),
            "warnings": dict(self.warnings),
        }
