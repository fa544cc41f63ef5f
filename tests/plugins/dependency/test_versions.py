# -*- coding: utf-8 -*-
"""
版本与版本范围测试
"""

import pytest
from packaging.version import Version

from archimedes.exceptions import InvalidVersionError
from archimedes.plugins.dependency.versions import (
    DependencySpec,
    parse_semver,
    range_to_specifier,
)


class TestParseSemver:
    def test_valid(self):
        assert parse_semver("1.2.3") == Version("1.2.3")

    @pytest.mark.parametrize("value", ["1.2", "1.2.3-beta", "1.02.3", ""])
    def test_invalid(self, value):
        with pytest.raises(InvalidVersionError):
            parse_semver(value)


class TestRangeToSpecifier:
    """测试版本范围表达式"""

    @pytest.mark.parametrize(
        "expression, inside, outside",
        [
            (">=1.0.0", ["1.0.0", "3.2.1"], ["0.9.9"]),
            ("<2.0.0", ["1.9.9"], ["2.0.0"]),
            (">=1.0.0, <2.0.0", ["1.5.0"], ["2.0.0", "0.1.0"]),
            ("^1.2.0", ["1.2.0", "1.9.9"], ["1.1.9", "2.0.0"]),
            ("^0.2.1", ["0.2.5"], ["0.3.0"]),
            ("^0.0.3", ["0.0.3"], ["0.0.4"]),
            ("~1.2.0", ["1.2.9"], ["1.3.0"]),
            ("=1.4.2", ["1.4.2"], ["1.4.3"]),
            ("1.4.2", ["1.4.2"], ["1.4.1"]),
            ("!=1.4.2", ["1.4.3"], ["1.4.2"]),
        ],
    )
    def test_ranges(self, expression, inside, outside):
        specifier = range_to_specifier(expression)
        for version in inside:
            assert specifier.contains(version), f"{version} 应在 {expression} 内"
        for version in outside:
            assert not specifier.contains(version), f"{version} 不应在 {expression} 内"

    def test_empty_range_accepts_anything(self):
        assert range_to_specifier("").contains("42.0.0")

    @pytest.mark.parametrize("expression", [">>1.0.0", "^abc", ">=1.0.0,", "latest"])
    def test_invalid_range(self, expression):
        with pytest.raises(ValueError):
            range_to_specifier(expression)


class TestDependencySpec:
    def test_parse_with_range(self):
        spec = DependencySpec.parse("contacts >= 1.0.0")
        assert spec.module_id == "contacts"
        assert spec.version_range == ">= 1.0.0"
        assert str(spec) == "contacts >= 1.0.0"

    def test_parse_bare_module(self):
        spec = DependencySpec.parse("contacts")
        assert spec.version_range == ""
        assert spec.is_satisfied_by(Version("0.0.1"))

    def test_is_satisfied_by(self):
        spec = DependencySpec.parse("invoicing ^2.0.0")
        assert spec.is_satisfied_by(Version("2.3.0"))
        assert not spec.is_satisfied_by(Version("3.0.0"))

    def test_parse_rejects_bad_range(self):
        with pytest.raises(ValueError):
            DependencySpec.parse("contacts >=one")
