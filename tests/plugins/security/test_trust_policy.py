# -*- coding: utf-8 -*-
"""
信任策略测试
"""

import pytest

from archimedes.exceptions import PluginConfigurationError
from archimedes.plugins.dependency.manifest import TrustLevel, parse_manifest
from archimedes.plugins.security.trust_policy import TrustPolicy
from archimedes.plugins.validation import ErrorCode

LEVELS = [TrustLevel.COMMUNITY, TrustLevel.VERIFIED, TrustLevel.CERTIFIED, TrustLevel.CORE]


class TestAllowedCapabilities:
    """测试白名单分层"""

    def test_whitelists_are_strictly_increasing(self, trust_policy):
        for lower, higher in zip(LEVELS, LEVELS[1:]):
            lower_set = trust_policy.allowed_capabilities(lower)
            higher_set = trust_policy.allowed_capabilities(higher)
            assert lower_set < higher_set, f"{lower.value} 应是 {higher.value} 的真子集"

    def test_default_table(self, trust_policy):
        assert trust_policy.allowed_capabilities(TrustLevel.COMMUNITY) == {
            "ui.slots",
            "ui.widgets",
            "api.read",
        }
        verified = trust_policy.allowed_capabilities(TrustLevel.VERIFIED)
        assert {"fields.add", "api.write", "api.webhooks"} <= verified
        assert "db.migrate" not in verified
        certified = trust_policy.allowed_capabilities(TrustLevel.CERTIFIED)
        assert {"db.migrate", "cron", "queue", "models.create"} <= certified
        assert "system.full" in trust_policy.allowed_capabilities(TrustLevel.CORE)

    def test_accepts_plain_strings(self, trust_policy):
        assert trust_policy.allowed_capabilities("community") == trust_policy.allowed_capabilities(
            TrustLevel.COMMUNITY
        )

    def test_required_level(self, trust_policy):
        assert trust_policy.required_level("fields.add") == TrustLevel.VERIFIED
        assert trust_policy.required_level("no.such.thing") == TrustLevel.CORE


class TestValidate:
    """测试清单能力验证"""

    def test_permitted_capabilities(self, trust_policy, make_manifest):
        result = trust_policy.validate(
            parse_manifest(make_manifest(capabilities=["ui.slots", "api.read"]))
        )
        assert result.is_valid

    @pytest.mark.parametrize(
        "level, capability",
        [
            ("community", "fields.add"),
            ("community", "api.write"),
            ("verified", "db.migrate"),
            ("certified", "permissions.manage"),
        ],
    )
    def test_capability_above_trust_level(self, trust_policy, make_manifest, level, capability):
        manifest = parse_manifest(
            make_manifest(trustLevel=level, capabilities=["ui.slots", capability])
        )
        result = trust_policy.validate(manifest)
        assert not result.is_valid
        assert result.errors[capability] == f"capability not permitted at trust level {level}"
        assert result.codes[capability] == ErrorCode.CAPABILITY_NOT_PERMITTED
        assert "ui.slots" not in result.errors

    def test_every_offending_capability_is_reported(self, trust_policy, make_manifest):
        manifest = parse_manifest(make_manifest(capabilities=["fields.add", "cron", "ui.slots"]))
        result = trust_policy.validate(manifest)
        assert set(result.errors_with_code(ErrorCode.CAPABILITY_NOT_PERMITTED)) == {
            "fields.add",
            "cron",
        }

    def test_unknown_capability_below_core(self, trust_policy, make_manifest):
        manifest = parse_manifest(make_manifest(trustLevel="certified", capabilities=["holo.deck"]))
        result = trust_policy.validate(manifest)
        assert result.errors == {"holo.deck": "capability not permitted at trust level certified"}

    def test_unknown_capability_at_core_is_a_warning(self, trust_policy, make_manifest):
        manifest = parse_manifest(make_manifest(trustLevel="core", capabilities=["holo.deck"]))
        result = trust_policy.validate(manifest)
        assert result.is_valid
        assert result.warnings == {"holo.deck": "unknown capability"}

    def test_field_surface_requires_verified(self, trust_policy, make_manifest):
        fields = [{"model": "Contact", "name": "lead_score", "type": "integer"}]
        community = parse_manifest(make_manifest(fields=fields))
        result = trust_policy.validate(community)
        assert result.errors == {
            "fields": "declaring fields requires trust level verified or higher"
        }
        assert result.codes["fields"] == ErrorCode.TRUST_LEVEL_REQUIRED

        verified = parse_manifest(
            make_manifest(trustLevel="verified", capabilities=["fields.add"], fields=fields)
        )
        assert trust_policy.validate(verified).is_valid

    def test_migrations_surface_requires_certified(self, trust_policy, make_manifest):
        manifest = parse_manifest(
            make_manifest(trustLevel="verified", migrations=["2026_01_01_create_table"])
        )
        result = trust_policy.validate(manifest)
        assert "migrations" in result.errors


class TestPolicyLoading:
    """测试白名单表加载"""

    def test_from_mapping(self):
        policy = TrustPolicy.from_mapping(
            {
                "capabilities": {
                    "a": "community",
                    "b": "verified",
                    "c": "certified",
                    "d": "core",
                }
            }
        )
        assert policy.allowed_capabilities(TrustLevel.VERIFIED) == {"a", "b"}
        assert policy.is_allowed("c", TrustLevel.CORE)

    def test_level_without_new_capability_is_rejected(self):
        with pytest.raises(PluginConfigurationError, match="introduce no capabilities"):
            TrustPolicy({"a": "community", "b": "verified", "c": "core"})

    def test_unknown_level_is_rejected(self):
        with pytest.raises(PluginConfigurationError, match="unknown trust level"):
            TrustPolicy({"a": "platinum"})

    def test_levels_out_of_order(self):
        with pytest.raises(PluginConfigurationError):
            TrustPolicy.from_mapping(
                {"levels": ["core", "community"], "capabilities": {"a": "community"}}
            )

    def test_missing_capability_table(self):
        with pytest.raises(PluginConfigurationError):
            TrustPolicy.from_mapping({"levels": []})

    def test_from_yaml(self, temp_dir):
        path = temp_dir / "trust.yaml"
        path.write_text(
            "capabilities:\n"
            "  ui.slots: community\n"
            "  fields.add: verified\n"
            "  db.migrate: certified\n"
            "  system.full: core\n"
            "surfaces:\n"
            "  fields: verified\n",
            encoding="utf-8",
        )
        policy = TrustPolicy.from_yaml(path)
        assert policy.known_capabilities == {"ui.slots", "fields.add", "db.migrate", "system.full"}

    def test_from_yaml_missing_file(self, temp_dir):
        with pytest.raises(PluginConfigurationError, match="not found"):
            TrustPolicy.from_yaml(temp_dir / "missing.yaml")
