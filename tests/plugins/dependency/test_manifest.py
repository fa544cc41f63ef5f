# -*- coding: utf-8 -*-
"""
插件清单模型测试
"""

import pytest
from pydantic import ValidationError

from archimedes.exceptions import InvalidVersionError, MalformedManifestError
from archimedes.plugins.dependency.manifest import (
    PluginScope,
    TrustLevel,
    parse_manifest,
)
from archimedes.plugins.extensions.field_types import FieldType


class TestTrustLevel:
    """测试信任等级排序"""

    def test_rank_order(self):
        assert TrustLevel.COMMUNITY.rank < TrustLevel.VERIFIED.rank
        assert TrustLevel.VERIFIED.rank < TrustLevel.CERTIFIED.rank
        assert TrustLevel.CERTIFIED.rank < TrustLevel.CORE.rank

    def test_is_at_least(self):
        assert TrustLevel.CERTIFIED.is_at_least(TrustLevel.VERIFIED)
        assert TrustLevel.VERIFIED.is_at_least(TrustLevel.VERIFIED)
        assert not TrustLevel.COMMUNITY.is_at_least(TrustLevel.VERIFIED)


class TestParseManifest:
    """测试 parse_manifest"""

    def test_valid_manifest(self, make_manifest):
        """测试有效的清单"""
        manifest = parse_manifest(
            make_manifest(
                slots=[{"slot": "contacts.detail.sidebar", "component": "CardA", "priority": 50}],
                extends=["contacts >= 1.0.0"],
            )
        )
        assert manifest.id == "p1"
        assert manifest.version == "1.0.0"
        assert manifest.trust_level == TrustLevel.COMMUNITY
        assert manifest.capabilities == ("ui.slots",)
        assert manifest.slots[0].component == "CardA"
        assert manifest.slots[0].priority == 50
        assert manifest.scope == PluginScope.GLOBAL
        assert manifest.dependencies[0].module_id == "contacts"

    @pytest.mark.parametrize("missing", ["id", "version", "trustLevel"])
    def test_required_fields(self, make_manifest, missing):
        """测试缺少必需字段"""
        raw = make_manifest()
        del raw[missing]
        with pytest.raises(MalformedManifestError) as exc_info:
            parse_manifest(raw)
        assert missing in exc_info.value.errors

    def test_unknown_trust_level(self, make_manifest):
        with pytest.raises(MalformedManifestError) as exc_info:
            parse_manifest(make_manifest(trustLevel="gold"))
        assert "trustLevel" in exc_info.value.errors

    @pytest.mark.parametrize("version", ["1.0", "1.0.0.0", "v1.0.0", "01.2.3", "latest"])
    def test_invalid_version(self, make_manifest, version):
        """测试无效的版本格式"""
        with pytest.raises(InvalidVersionError) as exc_info:
            parse_manifest(make_manifest(version=version))
        assert "version" in exc_info.value.errors
        assert isinstance(exc_info.value, MalformedManifestError)

    def test_invalid_plugin_id(self, make_manifest):
        with pytest.raises(MalformedManifestError) as exc_info:
            parse_manifest(make_manifest(plugin_id="Bad Id"))
        assert "id" in exc_info.value.errors

    def test_not_a_mapping(self):
        with pytest.raises(MalformedManifestError):
            parse_manifest(["id", "p1"])

    def test_unknown_capabilities_are_kept(self, make_manifest):
        """未知能力原样保留，由信任策略负责标记"""
        manifest = parse_manifest(
            make_manifest(capabilities=["ui.slots", "holo.deck", "ui.slots"])
        )
        assert manifest.capabilities == ("ui.slots", "holo.deck")
        assert manifest.has_capability("holo.deck")

    def test_legacy_keys(self, make_manifest):
        """旧键名 requires / extensionPoints"""
        manifest = parse_manifest(
            make_manifest(
                requires=["contacts >=1.0.0"],
                extensionPoints=[{"slot": "contacts.list.toolbar", "component": "Btn"}],
            )
        )
        assert manifest.extends == ("contacts >=1.0.0",)
        assert manifest.slots[0].slot == "contacts.list.toolbar"
        assert manifest.slots[0].priority == 10

    def test_invalid_dependency_range(self, make_manifest):
        """测试无效的依赖版本范围"""
        with pytest.raises(MalformedManifestError) as exc_info:
            parse_manifest(make_manifest(extends=["contacts >>1.0.0"]))
        assert any(key.startswith("extends") for key in exc_info.value.errors)

    def test_field_declarations(self, make_manifest):
        manifest = parse_manifest(
            make_manifest(
                trustLevel="verified",
                fields=[
                    {
                        "model": "Contact",
                        "name": "lead_score",
                        "type": "integer",
                        "validation": {"min": 0, "max": 100},
                        "helpText": "0-100",
                    }
                ],
            )
        )
        declaration = manifest.fields[0]
        assert declaration.type == FieldType.INTEGER
        assert declaration.validation.to_rules() == {"min": 0, "max": 100}
        assert declaration.help_text == "0-100"

    def test_unknown_field_type(self, make_manifest):
        with pytest.raises(MalformedManifestError):
            parse_manifest(
                make_manifest(fields=[{"model": "Contact", "name": "x", "type": "colour"}])
            )

    @pytest.mark.parametrize(
        "validation, key",
        [
            ({"pattern": "[unclosed"}, "fields.0.validation.pattern"),
            ({"maxLength": "five"}, "fields.0.validation.maxLength"),
            ({"maxLength": -1}, "fields.0.validation.maxLength"),
            ({"min": "zero"}, "fields.0.validation.min"),
        ],
    )
    def test_invalid_field_validation_rules(self, make_manifest, validation, key):
        """字段校验规则在解析时检查"""
        field = {"model": "Contact", "name": "code", "type": "string", "validation": validation}
        with pytest.raises(MalformedManifestError) as exc_info:
            parse_manifest(make_manifest(trustLevel="verified", fields=[field]))
        assert any(k.startswith(key) for k in exc_info.value.errors)

    def test_numeric_rule_strings_are_coerced(self, make_manifest):
        field = {
            "model": "Contact",
            "name": "code",
            "type": "string",
            "validation": {"maxLength": "5", "pattern": "^[A-Z]+$"},
        }
        manifest = parse_manifest(make_manifest(trustLevel="verified", fields=[field]))
        assert manifest.fields[0].validation.to_rules() == {"maxLength": 5, "pattern": "^[A-Z]+$"}

    def test_tenant_scope(self, make_manifest):
        manifest = parse_manifest(make_manifest(), scope=PluginScope.TENANT, organization_id=7)
        assert manifest.scope == PluginScope.TENANT
        assert manifest.organization_id == 7
        assert manifest.registry_id() == "tenant_7_p1"

    def test_tenant_scope_requires_organization(self, make_manifest):
        with pytest.raises(MalformedManifestError):
            parse_manifest(make_manifest(scope="tenant"))

    def test_global_registry_id(self, make_manifest):
        assert parse_manifest(make_manifest()).registry_id() == "p1"

    def test_manifest_is_immutable(self, make_manifest):
        manifest = parse_manifest(make_manifest())
        with pytest.raises(ValidationError):
            manifest.version = "2.0.0"

    def test_to_dict_uses_aliases(self, make_manifest):
        data = parse_manifest(make_manifest()).to_dict()
        assert data["trustLevel"] == "community"
        assert data["id"] == "p1"
