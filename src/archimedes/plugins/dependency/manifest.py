# -*- coding: utf-8 -*-
"""
插件清单模型

定义插件的身份、信任等级、能力、依赖、UI 插槽和自定义字段声明。
清单加载后不可变。
"""

import re
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    ValidationError,
    field_validator,
    model_validator,
)

from ...exceptions import MalformedManifestError
from ..extensions.field_types import FieldType
from ..extensions.slots import DEFAULT_SLOT_PRIORITY
from .versions import SEMVER_PATTERN, DependencySpec, parse_semver

TENANT_PLUGIN_ID_TEMPLATE = "tenant_{organization_id}_{plugin_id}"


def tenant_id_pattern(template: str = TENANT_PLUGIN_ID_TEMPLATE) -> "re.Pattern[str]":
    """匹配按模板限定的租户插件ID；全局插件不能使用这种形式的ID"""
    pattern = re.escape(template)
    pattern = pattern.replace(re.escape("{organization_id}"), r"-?\d+")
    pattern = pattern.replace(re.escape("{plugin_id}"), r".+")
    return re.compile(pattern)

# 兼容旧清单的键名
LEGACY_KEYS = {"requires": "extends", "extensionPoints": "slots"}


class TrustLevel(str, Enum):
    """信任等级，L1 → L4"""

    COMMUNITY = "community"  # L1: UI 插槽、只读 API
    VERIFIED = "verified"  # L2: + 自定义字段、写 API、webhook
    CERTIFIED = "certified"  # L3: + 自定义模型、迁移、定时任务
    CORE = "core"  # L4: 完全系统访问（仅限模块）

    @property
    def rank(self) -> int:
        return _TRUST_RANKS[self]

    def is_at_least(self, other: "TrustLevel") -> bool:
        return self.rank >= other.rank


_TRUST_RANKS = {
    TrustLevel.COMMUNITY: 1,
    TrustLevel.VERIFIED: 2,
    TrustLevel.CERTIFIED: 3,
    TrustLevel.CORE: 4,
}


class PluginScope(str, Enum):
    """插件作用域"""

    GLOBAL = "global"
    TENANT = "tenant"


class SlotDeclaration(BaseModel):
    """插槽绑定声明"""

    model_config = ConfigDict(frozen=True, extra="ignore")

    slot: str = Field(..., min_length=1, description="插槽名称")
    component: str = Field(..., min_length=1, description="组件引用")
    priority: int = Field(default=DEFAULT_SLOT_PRIORITY, description="排序优先级，越小越靠前")
    props: Dict[str, Any] = Field(default_factory=dict, description="传给组件的附加属性")


class FieldValidation(BaseModel):
    """字段校验规则，在解析清单时检查，避免在校验字段值时才失败"""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    min: Optional[Union[int, float]] = None
    max: Optional[Union[int, float]] = None
    max_length: Optional[NonNegativeInt] = Field(default=None, alias="maxLength")
    pattern: Optional[str] = None
    pattern_message: Optional[str] = Field(default=None, alias="patternMessage")

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: Optional[str]) -> Optional[str]:
        """正则表达式必须能编译"""
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"invalid pattern: {e}")
        return v

    def to_rules(self) -> Dict[str, Any]:
        """以清单键名返回已设置的规则"""
        return self.model_dump(by_alias=True, exclude_none=True)


class FieldDeclaration(BaseModel):
    """自定义字段声明"""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    model: str = Field(..., min_length=1, description="目标模型")
    name: str = Field(..., min_length=1, description="字段名")
    type: FieldType = Field(default=FieldType.STRING, description="字段类型")
    validation: FieldValidation = Field(default_factory=FieldValidation, description="校验规则")
    label: Optional[str] = None
    required: bool = False
    options: Optional[List[Dict[str, Any]]] = None
    help_text: Optional[str] = Field(default=None, alias="helpText")
    placeholder: Optional[str] = None
    group: Optional[str] = None


class PluginManifest(BaseModel):
    """
    插件清单模型

    必需字段为 id、version、trustLevel。未知的能力标记原样保留，
    由信任策略而不是解析器负责标记。
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    # 基本信息
    id: str = Field(..., pattern=r"^[a-z][a-z0-9_-]*$", description="插件ID")
    name: str = Field(default="", description="显示名称")
    version: str = Field(..., description="语义化版本 MAJOR.MINOR.PATCH")
    description: str = Field(default="", description="插件描述")
    author: str = Field(default="Unknown", description="插件作者")
    author_url: Optional[str] = Field(default=None, alias="authorUrl")
    license: Optional[str] = None
    icon: Optional[str] = None
    category: Optional[str] = None

    # 信任与能力
    trust_level: TrustLevel = Field(..., alias="trustLevel", description="信任等级")
    capabilities: Tuple[str, ...] = Field(default=(), description="声明的能力")

    # 依赖："<moduleId> <range>"
    extends: Tuple[str, ...] = Field(default=(), description="扩展的模块及版本范围")

    # 扩展内容
    slots: Tuple[SlotDeclaration, ...] = Field(default=())
    fields: Tuple[FieldDeclaration, ...] = Field(default=())
    models: Tuple[Any, ...] = Field(default=())
    routes: Tuple[Any, ...] = Field(default=())
    events: Tuple[Any, ...] = Field(default=())
    migrations: Tuple[Any, ...] = Field(default=())
    settings: Dict[str, Any] = Field(default_factory=dict)

    # 作用域
    scope: PluginScope = Field(default=PluginScope.GLOBAL)
    organization_id: Optional[int] = Field(default=None, alias="organizationId")

    @model_validator(mode="before")
    @classmethod
    def _apply_legacy_keys(cls, data: Any) -> Any:
        """旧键名 requires / extensionPoints 映射到 extends / slots"""
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        for legacy, current in LEGACY_KEYS.items():
            if legacy in data:
                legacy_value = data.pop(legacy)
                data.setdefault(current, legacy_value)
        return data

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """验证版本格式"""
        if not SEMVER_PATTERN.match(v):
            raise ValueError(f"invalid version '{v}': expected MAJOR.MINOR.PATCH")
        return v

    @field_validator("capabilities")
    @classmethod
    def dedupe_capabilities(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """去重并保留声明顺序"""
        return tuple(dict.fromkeys(c.strip() for c in v if c.strip()))

    @field_validator("extends")
    @classmethod
    def validate_extends(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """验证依赖版本范围"""
        return tuple(str(DependencySpec.parse(expression)) for expression in v)

    @model_validator(mode="after")
    def _check_scope(self) -> "PluginManifest":
        if self.scope == PluginScope.TENANT and self.organization_id is None:
            raise ValueError("tenant-scoped manifests require organizationId")
        return self

    @property
    def capability_set(self) -> frozenset:
        return frozenset(self.capabilities)

    @property
    def dependencies(self) -> List[DependencySpec]:
        return [DependencySpec.parse(expression) for expression in self.extends]

    def has_capability(self, capability: str) -> bool:
        return capability in self.capability_set

    def registry_id(self, template: str = TENANT_PLUGIN_ID_TEMPLATE) -> str:
        """注册表中的ID；租户插件加前缀以避免与全局插件冲突"""
        if self.scope == PluginScope.TENANT:
            return template.format(organization_id=self.organization_id, plugin_id=self.id)
        return self.id

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _format_loc(loc: Tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc) or "manifest"


def parse_manifest(
    raw: Any,
    *,
    scope: Optional[PluginScope] = None,
    organization_id: Optional[int] = None,
) -> PluginManifest:
    """
    解析原始清单文档

    Args:
        raw: JSON 形式的清单（dict）
        scope: 覆盖清单中的作用域（由清单来源决定）
        organization_id: 租户作用域的组织ID

    Returns:
        不可变的 PluginManifest

    Raises:
        InvalidVersionError: 版本号不是三段式语义化版本
        MalformedManifestError: 缺少必需字段或字段不合法
    """
    if not isinstance(raw, Mapping):
        message = f"manifest must be an object, got {type(raw).__name__}"
        raise MalformedManifestError(message, {"manifest": message})

    data = dict(raw)
    if scope is not None:
        data["scope"] = PluginScope(scope).value
    if organization_id is not None:
        data["organizationId"] = organization_id

    # 版本错误单独报告为 InvalidVersionError
    if isinstance(data.get("version"), str):
        parse_semver(data["version"])

    try:
        return PluginManifest.model_validate(data)
    except ValidationError as e:
        errors: Dict[str, str] = {}
        for error in e.errors():
            errors.setdefault(_format_loc(error["loc"]), error["msg"])
        details = "; ".join(f"{k}: {v}" for k, v in errors.items())
        raise MalformedManifestError(f"malformed manifest: {details}", errors) from e

