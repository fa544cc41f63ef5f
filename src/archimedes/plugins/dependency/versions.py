# -*- coding: utf-8 -*-
"""
版本与版本范围

清单版本必须是 MAJOR.MINOR.PATCH；依赖范围支持比较运算符、^、~ 与精确版本，
最终统一转换为 packaging 的 SpecifierSet。
"""

import re
from dataclasses import dataclass
from typing import List, Tuple

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from ...exceptions import InvalidVersionError

SEMVER_PATTERN = re.compile(r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)$")

# "contacts >= 1.0.0" / "contacts ^1.2.0" / "contacts"
EXTENDS_PATTERN = re.compile(r"^\s*([A-Za-z][A-Za-z0-9_\-]*)\s*(.*?)\s*$")

_CLAUSE_PATTERN = re.compile(r"^(>=|<=|==|!=|~=|>|<|=|\^|~)?\s*([0-9][0-9A-Za-z.\-+]*)$")


def parse_semver(value: str) -> Version:
    """解析清单版本号，要求三段式语义化版本"""
    if not isinstance(value, str) or not SEMVER_PATTERN.match(value.strip()):
        raise InvalidVersionError(str(value))
    return Version(value.strip())


def _release(version: Version) -> Tuple[int, int, int]:
    parts = list(version.release[:3])
    while len(parts) < 3:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def _translate_clause(clause: str) -> List[str]:
    match = _CLAUSE_PATTERN.match(clause.strip())
    if not match:
        raise ValueError(f"invalid version range clause: '{clause}'")
    operator, raw_version = match.group(1) or "=", match.group(2)

    try:
        version = Version(raw_version)
    except InvalidVersion:
        raise ValueError(f"invalid version in range: '{raw_version}'")

    major, minor, patch = _release(version)

    if operator == "^":
        if major > 0:
            upper = f"{major + 1}.0.0"
        elif minor > 0:
            upper = f"0.{minor + 1}.0"
        else:
            upper = f"0.0.{patch + 1}"
        return [f">={raw_version}", f"<{upper}"]

    if operator == "~":
        return [f">={raw_version}", f"<{major}.{minor + 1}.0"]

    if operator == "=":
        return [f"=={raw_version}"]

    return [f"{operator}{raw_version}"]


def range_to_specifier(expression: str) -> SpecifierSet:
    """
    将版本范围表达式转换为 SpecifierSet

    空表达式表示接受任意版本；多个子句以逗号分隔。

    Raises:
        ValueError: 表达式无法解析
    """
    expression = (expression or "").strip()
    if not expression:
        return SpecifierSet()

    specifiers: List[str] = []
    for clause in expression.split(","):
        if not clause.strip():
            raise ValueError(f"empty clause in version range: '{expression}'")
        specifiers.extend(_translate_clause(clause))

    try:
        return SpecifierSet(",".join(specifiers))
    except InvalidSpecifier as e:
        raise ValueError(f"invalid version range '{expression}': {e}")


@dataclass(frozen=True)
class DependencySpec:
    """extends 中的一条依赖：(模块ID, 版本范围)"""

    module_id: str
    version_range: str = ""

    @classmethod
    def parse(cls, expression: str) -> "DependencySpec":
        if not isinstance(expression, str):
            raise ValueError(f"dependency must be a string, got {type(expression).__name__}")
        match = EXTENDS_PATTERN.match(expression)
        if not match:
            raise ValueError(f"invalid dependency expression: '{expression}'")
        module_id, version_range = match.group(1), match.group(2)
        # 提前校验，使非法范围在解析清单时即被拒绝
        range_to_specifier(version_range)
        return cls(module_id=module_id, version_range=version_range)

    @property
    def specifier(self) -> SpecifierSet:
        return range_to_specifier(self.version_range)

    def is_satisfied_by(self, version: Version) -> bool:
        return self.specifier.contains(version, prereleases=True)

    def __str__(self) -> str:
        if self.version_range:
            return f"{self.module_id} {self.version_range}"
        return self.module_id
