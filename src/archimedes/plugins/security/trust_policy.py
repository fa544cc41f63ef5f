# -*- coding: utf-8 -*-
"""
Archimedes 插件信任策略

按信任等级限定插件可以声明的能力。白名单表是配置数据（trust_levels.yaml），
新增能力只需修改表，无需改动验证代码。
"""

import logging
from importlib import resources
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional

import yaml

from ...exceptions import PluginConfigurationError
from ..dependency.manifest import PluginManifest, TrustLevel
from ..validation import ErrorCode, ValidationResult

DEFAULT_POLICY_FILE = "trust_levels.yaml"


def _to_level(value: Any, context: str) -> TrustLevel:
    try:
        return TrustLevel(value)
    except ValueError:
        raise PluginConfigurationError(f"unknown trust level '{value}' for {context}")


class TrustPolicy:
    """
    信任策略

    每个能力映射到允许声明它的最低信任等级；某等级允许的能力集合为
    最低等级不高于它的全部能力，因此各等级的白名单单调递增。
    """

    def __init__(
        self,
        requirements: Mapping[str, Any],
        surfaces: Optional[Mapping[str, Any]] = None,
    ):
        """
        初始化信任策略

        Args:
            requirements: {capability: 最低信任等级}
            surfaces: {清单区段: 最低信任等级}，如 fields/routes/models/migrations

        Raises:
            PluginConfigurationError: 等级未知或某个等级没有引入任何新能力
        """
        self.logger = logging.getLogger(__name__)
        self._requirements: Dict[str, TrustLevel] = {
            capability: _to_level(level, capability)
            for capability, level in requirements.items()
        }
        self._surfaces: Dict[str, TrustLevel] = {
            surface: _to_level(level, surface)
            for surface, level in (surfaces or {}).items()
        }
        self._check_layering()
        self._allowed: Dict[TrustLevel, FrozenSet[str]] = {
            level: frozenset(
                capability
                for capability, required in self._requirements.items()
                if level.is_at_least(required)
            )
            for level in TrustLevel
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TrustPolicy":
        """从字典（YAML 文档结构）创建策略"""
        if not isinstance(data, Mapping) or "capabilities" not in data:
            raise PluginConfigurationError("trust policy requires a 'capabilities' table")

        levels = data.get("levels")
        if levels is not None and list(levels) != [level.value for level in TrustLevel]:
            raise PluginConfigurationError(
                f"trust levels must be listed in order "
                f"{[level.value for level in TrustLevel]}, got {list(levels)}"
            )
        return cls(data["capabilities"] or {}, data.get("surfaces") or {})

    @classmethod
    def from_yaml(cls, path: Path) -> "TrustPolicy":
        """从 YAML 文件加载策略"""
        path = Path(path)
        if not path.exists():
            raise PluginConfigurationError(f"trust policy file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise PluginConfigurationError(f"cannot parse trust policy {path}: {e}")
        return cls.from_mapping(data or {})

    @classmethod
    def default(cls) -> "TrustPolicy":
        """加载随包发布的默认白名单"""
        text = resources.files(__package__).joinpath(DEFAULT_POLICY_FILE).read_text(
            encoding="utf-8"
        )
        return cls.from_mapping(yaml.safe_load(text))

    def _check_layering(self) -> None:
        """每个等级必须至少引入一个新能力，保证白名单严格递增"""
        introduced = {level: 0 for level in TrustLevel}
        for required in self._requirements.values():
            introduced[required] += 1
        empty = [level.value for level, count in introduced.items() if count == 0]
        if empty:
            raise PluginConfigurationError(
                f"trust levels introduce no capabilities: {empty}"
            )

    @property
    def known_capabilities(self) -> FrozenSet[str]:
        return frozenset(self._requirements)

    def required_level(self, capability: str) -> TrustLevel:
        """能力所需的最低等级，未知能力需要 core"""
        return self._requirements.get(capability, TrustLevel.CORE)

    def allowed_capabilities(self, trust_level: TrustLevel) -> FrozenSet[str]:
        """某信任等级允许声明的能力集合"""
        return self._allowed[TrustLevel(trust_level)]

    def is_allowed(self, capability: str, trust_level: TrustLevel) -> bool:
        return TrustLevel(trust_level).is_at_least(self.required_level(capability))

    def validate(self, manifest: PluginManifest) -> ValidationResult:
        """
        按信任等级验证清单声明的能力与扩展区段

        任何一条错误都会使整个清单无效，不存在部分能力生效的情况。
        """
        result = ValidationResult()
        level = manifest.trust_level

        for capability in manifest.capabilities:
            if not self.is_allowed(capability, level):
                result.add_error(
                    capability,
                    f"capability not permitted at trust level {level.value}",
                    ErrorCode.CAPABILITY_NOT_PERMITTED,
                )
            elif capability not in self._requirements:
                result.add_warning(capability, "unknown capability")

        for surface, required in self._surfaces.items():
            if getattr(manifest, surface, None) and not level.is_at_least(required):
                result.add_error(
                    surface,
                    f"declaring {surface} requires trust level {required.value} or higher",
                    ErrorCode.TRUST_LEVEL_REQUIRED,
                )

        if not result.is_valid:
            self.logger.warning(f"插件 {manifest.id} 信任验证失败: {result.errors}")
        return result
