# -*- coding: utf-8 -*-
"""
插件注册表

管理已安装插件（全局与租户作用域）的生命周期：安装时经信任策略与依赖解析
验证，激活集合变化时重建插槽注册表与字段合并器，并以不可变快照整体发布。
"""

import copy
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ...exceptions import (
    DependencyUnsatisfiedError,
    FieldCollisionError,
    InvalidVersionError,
    MalformedManifestError,
    NotValidError,
    PluginConfigurationError,
    PluginNotFoundError,
    StillActiveError,
)
from ..config.registry_config import RegistryConfig
from ..dependency.manifest import (
    TENANT_PLUGIN_ID_TEMPLATE,
    PluginManifest,
    PluginScope,
    parse_manifest,
    tenant_id_pattern,
)
from ..dependency.resolver import DependencyResolver
from ..extensions.fields import FieldSchemaMerger, MergedField
from ..extensions.slots import DEFAULT_SLOT_PRIORITY, SlotRegistry
from ..security.trust_policy import TrustPolicy
from ..sources.manifest_source import DirectoryManifestSource, ManifestSource
from ..sources.module_source import (
    DirectoryModuleVersionSource,
    ModuleVersionSource,
    StaticModuleVersionSource,
)
from ..validation import ErrorCode, ValidationResult


class PluginState(str, Enum):
    """插件状态枚举"""

    PENDING = "pending"  # 已解析，尚未验证
    VALID = "valid"  # 验证通过，未激活
    INVALID = "invalid"  # 验证失败
    ACTIVE = "active"  # 已激活
    UNINSTALLED = "uninstalled"  # 已卸载（终态）


class InstalledPlugin:
    """已安装插件记录"""

    def __init__(
        self,
        plugin_id: str,
        raw: Any,
        manifest: Optional[PluginManifest] = None,
        organization_id: Optional[int] = None,
    ):
        """
        初始化插件记录

        Args:
            plugin_id: 注册表中的插件ID（租户插件已加前缀）
            raw: 原始清单文档
            manifest: 解析后的清单，解析失败时为 None
            organization_id: 租户插件所属组织
        """
        self.plugin_id = plugin_id
        self.raw = copy.deepcopy(raw)
        self.manifest = manifest
        self.organization_id = organization_id
        self.state = PluginState.PENDING
        self.validation = ValidationResult()
        self.installed_at = datetime.now()
        self.activated_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.state_history: List[Tuple[datetime, PluginState, PluginState]] = []

    def set_state(self, new_state: PluginState, error_msg: Optional[str] = None) -> None:
        """设置插件状态"""
        old_state = self.state
        self.state = new_state
        self.state_history.append((datetime.now(), old_state, new_state))

        if error_msg:
            self.last_error = error_msg
        if new_state == PluginState.ACTIVE:
            self.activated_at = datetime.now()

    @property
    def is_valid(self) -> bool:
        return self.state in (PluginState.VALID, PluginState.ACTIVE)

    @property
    def active(self) -> bool:
        return self.state == PluginState.ACTIVE

    @property
    def scope(self) -> PluginScope:
        return PluginScope.GLOBAL if self.organization_id is None else PluginScope.TENANT

    def to_dict(self) -> Dict[str, Any]:
        manifest = self.manifest
        return {
            "id": self.plugin_id,
            "name": manifest.name if manifest else None,
            "version": manifest.version if manifest else None,
            "trustLevel": manifest.trust_level.value if manifest else None,
            "scope": self.scope.value,
            "organizationId": self.organization_id,
            "state": self.state.value,
            "active": self.active,
            "validation": self.validation.to_dict(),
            "installedAt": self.installed_at.isoformat(),
            "activatedAt": self.activated_at.isoformat() if self.activated_at else None,
        }

    def __repr__(self) -> str:
        return f"InstalledPlugin({self.plugin_id!r}, state={self.state.value})"


@dataclass(frozen=True)
class RegistrySnapshot:
    """
    激活集合的不可变快照

    全局视图只包含全局插件；组织视图包含全局插件与该组织的租户插件。
    没有激活租户插件的组织使用全局视图。
    """

    active: Mapping[str, PluginManifest]
    slot_views: Mapping[Optional[int], SlotRegistry]
    field_views: Mapping[Optional[int], FieldSchemaMerger]

    def slots(self, organization_id: Optional[int] = None) -> SlotRegistry:
        return self.slot_views.get(organization_id, self.slot_views[None])

    def fields(self, organization_id: Optional[int] = None) -> FieldSchemaMerger:
        return self.field_views.get(organization_id, self.field_views[None])


HookCallback = Callable[..., None]


class PluginRegistry:
    """
    插件注册表

    写操作（install/activate/deactivate/uninstall）由可重入锁串行化；
    读操作只读取当前快照引用，不加锁。
    """

    def __init__(
        self,
        trust_policy: Optional[TrustPolicy] = None,
        resolver: Optional[DependencyResolver] = None,
        manifest_source: Optional[ManifestSource] = None,
        default_slot_priority: int = DEFAULT_SLOT_PRIORITY,
        tenant_plugin_id_template: str = TENANT_PLUGIN_ID_TEMPLATE,
    ):
        """
        初始化插件注册表

        Args:
            trust_policy: 信任策略，缺省使用内置信任等级表
            resolver: 依赖解析器，缺省没有任何已安装模块
            manifest_source: 清单来源，discover 时使用
            default_slot_priority: 清单未声明优先级时的插槽优先级
            tenant_plugin_id_template: 租户插件ID模板
        """
        self.logger = logging.getLogger(__name__)
        self.trust_policy = trust_policy or TrustPolicy.default()
        self.resolver = resolver or DependencyResolver()
        self.manifest_source = manifest_source
        self.default_slot_priority = default_slot_priority
        self.tenant_plugin_id_template = tenant_plugin_id_template
        self._tenant_id_pattern = tenant_id_pattern(tenant_plugin_id_template)

        self._plugins: Dict[str, InstalledPlugin] = {}
        self._lock = threading.RLock()
        self._snapshot = self._build_snapshot({})

        # 生命周期钩子
        self._lifecycle_hooks: Dict[str, List[HookCallback]] = {
            "after_install": [],
            "after_activate": [],
            "after_deactivate": [],
            "after_uninstall": [],
            "on_error": [],
        }

        self.logger.info("插件注册表已初始化")

    @classmethod
    def from_config(cls, config: RegistryConfig) -> "PluginRegistry":
        """根据配置装配信任策略、清单来源与模块版本来源"""
        if config.trust_policy_path is not None:
            trust_policy = TrustPolicy.from_yaml(config.trust_policy_path)
        else:
            trust_policy = TrustPolicy.default()

        module_source: ModuleVersionSource
        if config.modules:
            module_source = StaticModuleVersionSource(config.modules)
        elif config.modules_path is not None:
            module_source = DirectoryModuleVersionSource(
                config.modules_path, config.manifest_filenames
            )
        else:
            module_source = StaticModuleVersionSource()

        manifest_source = None
        if config.plugins_path is not None or config.tenants_path is not None:
            manifest_source = DirectoryManifestSource(
                config.plugins_path, config.tenants_path, config.manifest_filenames
            )

        return cls(
            trust_policy=trust_policy,
            resolver=DependencyResolver(module_source),
            manifest_source=manifest_source,
            default_slot_priority=config.default_slot_priority,
            tenant_plugin_id_template=config.tenant_plugin_id_template,
        )

    # region 快照

    def _build_snapshot(self, active: Mapping[str, PluginManifest]) -> RegistrySnapshot:
        """
        根据激活集合构造快照，构造完成前不发布

        Raises:
            FieldCollisionError: 任一视图中存在字段冲突
        """
        global_plugins = {
            pid: m for pid, m in active.items() if m.scope == PluginScope.GLOBAL
        }
        organizations = sorted(
            {m.organization_id for m in active.values() if m.scope == PluginScope.TENANT}
        )

        views: Dict[Optional[int], Dict[str, PluginManifest]] = {None: global_plugins}
        for organization_id in organizations:
            view = dict(global_plugins)
            view.update(
                (pid, m)
                for pid, m in active.items()
                if m.scope == PluginScope.TENANT and m.organization_id == organization_id
            )
            views[organization_id] = view

        slot_views: Dict[Optional[int], SlotRegistry] = {}
        field_views: Dict[Optional[int], FieldSchemaMerger] = {}
        for organization_id, plugins in views.items():
            merger = FieldSchemaMerger(plugins)
            merger.merge_all()
            field_views[organization_id] = merger
            slot_views[organization_id] = self._build_slots(plugins).freeze()

        self.logger.debug(
            f"构造快照: {len(active)} 个激活插件, {len(organizations)} 个组织视图"
        )
        return RegistrySnapshot(
            active=MappingProxyType(dict(active)),
            slot_views=MappingProxyType(slot_views),
            field_views=MappingProxyType(field_views),
        )

    def _build_slots(self, plugins: Mapping[str, PluginManifest]) -> SlotRegistry:
        registry = SlotRegistry()
        for plugin_id in sorted(plugins):
            for declaration in plugins[plugin_id].slots:
                priority = (
                    declaration.priority
                    if "priority" in declaration.model_fields_set
                    else self.default_slot_priority
                )
                registry.register(
                    declaration.slot,
                    plugin_id,
                    declaration.component,
                    priority,
                    declaration.props,
                )
        return registry

    def _active_manifests(self) -> Dict[str, PluginManifest]:
        return {
            pid: record.manifest
            for pid, record in self._plugins.items()
            if record.active and record.manifest is not None
        }

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    # endregion

    # region 验证

    def _qualify(self, plugin_id: str, organization_id: Optional[int]) -> str:
        if organization_id is None:
            return plugin_id
        return self.tenant_plugin_id_template.format(
            organization_id=organization_id, plugin_id=plugin_id
        )

    def _is_reserved_id(self, plugin_id: str, organization_id: Optional[int]) -> bool:
        """全局插件ID不能与租户插件的限定ID同形"""
        return organization_id is None and bool(self._tenant_id_pattern.fullmatch(plugin_id))

    def _validate_raw(
        self, raw: Any, organization_id: Optional[int]
    ) -> Tuple[Optional[PluginManifest], ValidationResult]:
        """解析并验证原始清单；解析失败以数据形式返回"""
        scope = PluginScope.TENANT if organization_id is not None else None
        try:
            manifest = parse_manifest(raw, scope=scope, organization_id=organization_id)
        except MalformedManifestError as e:
            code = (
                ErrorCode.INVALID_VERSION
                if isinstance(e, InvalidVersionError)
                else ErrorCode.MALFORMED_MANIFEST
            )
            result = ValidationResult()
            for key, message in (e.errors or {"manifest": str(e)}).items():
                result.add_error(key, message, code)
            return None, result

        if manifest.scope == PluginScope.GLOBAL and self._is_reserved_id(manifest.id, None):
            result = ValidationResult()
            result.add_error(
                "id",
                f"id '{manifest.id}' is reserved for tenant plugins",
                ErrorCode.MALFORMED_MANIFEST,
            )
            return None, result

        result = self.trust_policy.validate(manifest).merge(self.resolver.resolve(manifest))
        return manifest, result

    def _apply_validation(
        self,
        record: InstalledPlugin,
        manifest: Optional[PluginManifest],
        result: ValidationResult,
    ) -> None:
        record.manifest = manifest
        record.validation = result
        if result.is_valid:
            record.set_state(PluginState.VALID)
        else:
            details = "; ".join(f"{k}: {v}" for k, v in result.errors.items())
            record.set_state(PluginState.INVALID, details)
            self.logger.warning(f"插件 {record.plugin_id} 验证失败: {result.errors}")

    # endregion

    # region 生命周期

    def install(self, raw: Any, organization_id: Optional[int] = None) -> InstalledPlugin:
        """
        安装插件

        清单错误不会抛出异常：插件以 Invalid 状态保存，验证结果供管理界面展示。
        没有可用 id 的文档（包括使用租户限定形式 id 的全局清单）无法保存，
        返回一个未登记的 Invalid 记录。

        Args:
            raw: 原始清单文档
            organization_id: 租户插件所属组织；为 None 时按清单中的 scope 处理

        Returns:
            插件记录

        Raises:
            StillActiveError: 同一ID的插件仍处于激活状态
        """
        raw_id = raw.get("id") if isinstance(raw, Mapping) else None
        if organization_id is None and isinstance(raw, Mapping):
            organization_id = raw.get("organizationId", raw.get("organization_id"))
            if raw.get("scope", PluginScope.GLOBAL.value) != PluginScope.TENANT.value:
                organization_id = None

        with self._lock:
            manifest, result = self._validate_raw(raw, organization_id)

            if manifest is not None:
                plugin_id = manifest.registry_id(self.tenant_plugin_id_template)
                organization_id = manifest.organization_id
            elif (
                isinstance(raw_id, str)
                and raw_id
                and not self._is_reserved_id(raw_id, organization_id)
            ):
                plugin_id = self._qualify(raw_id, organization_id)
            else:
                record = InstalledPlugin("", raw, None, organization_id)
                self._apply_validation(record, None, result)
                self.logger.warning(f"清单缺少可用的 id，未登记: {result.errors}")
                return record

            existing = self._plugins.get(plugin_id)
            if existing is not None and existing.active:
                raise StillActiveError(plugin_id)

            record = InstalledPlugin(plugin_id, raw, manifest, organization_id)
            self._apply_validation(record, manifest, result)
            self._plugins[plugin_id] = record

        action = "重新安装" if existing is not None else "安装"
        self.logger.info(f"插件 {plugin_id} {action}完成，状态: {record.state.value}")
        self._execute_hooks("after_install", record)
        return record

    def activate(self, plugin_id: str) -> InstalledPlugin:
        """
        激活插件

        重新检查依赖并构造新快照，成功后整体发布；任何失败都不改变
        注册表状态，插件保持 Valid/未激活。

        Raises:
            PluginNotFoundError: 插件不存在
            NotValidError: 插件未通过验证
            DependencyUnsatisfiedError: 激活时依赖不再满足
            FieldCollisionError: 与已激活插件的字段冲突
        """
        with self._lock:
            record = self.get(plugin_id)

            if record.active:
                self.logger.warning(f"插件 {plugin_id} 已激活")
                return record

            try:
                if record.state != PluginState.VALID or record.manifest is None:
                    raise NotValidError(plugin_id, record.validation)

                dependencies = self.resolver.resolve(record.manifest)
                if not dependencies.is_valid:
                    raise DependencyUnsatisfiedError(plugin_id, dependencies)

                active = self._active_manifests()
                active[plugin_id] = record.manifest
                snapshot = self._build_snapshot(active)
            except (NotValidError, DependencyUnsatisfiedError, FieldCollisionError) as e:
                record.last_error = str(e)
                self.logger.error(f"激活插件 {plugin_id} 失败: {e}")
                self._execute_hooks("on_error", record, e)
                raise

            record.set_state(PluginState.ACTIVE)
            self._snapshot = snapshot

        self.logger.info(f"插件 {plugin_id} 已激活")
        self._execute_hooks("after_activate", record)
        return record

    def deactivate(self, plugin_id: str) -> InstalledPlugin:
        """
        停用插件，移除其插槽绑定与字段

        Raises:
            PluginNotFoundError: 插件不存在
            NotValidError: 插件未通过验证
        """
        with self._lock:
            record = self.get(plugin_id)

            if record.state == PluginState.VALID:
                self.logger.warning(f"插件 {plugin_id} 未激活")
                return record
            if not record.active:
                raise NotValidError(plugin_id, record.validation)

            active = self._active_manifests()
            active.pop(plugin_id, None)
            snapshot = self._build_snapshot(active)

            record.set_state(PluginState.VALID)
            self._snapshot = snapshot

        self.logger.info(f"插件 {plugin_id} 已停用")
        self._execute_hooks("after_deactivate", record)
        return record

    def uninstall(self, plugin_id: str) -> InstalledPlugin:
        """
        卸载插件

        Raises:
            PluginNotFoundError: 插件不存在
            StillActiveError: 插件仍处于激活状态
        """
        with self._lock:
            record = self.get(plugin_id)
            if record.active:
                raise StillActiveError(plugin_id)

            record.set_state(PluginState.UNINSTALLED)
            del self._plugins[plugin_id]

        self.logger.info(f"插件 {plugin_id} 已卸载")
        self._execute_hooks("after_uninstall", record)
        return record

    def revalidate(self, plugin_id: str) -> ValidationResult:
        """
        重新验证未激活的插件，在 Valid 与 Invalid 之间切换

        Raises:
            PluginNotFoundError: 插件不存在
            StillActiveError: 插件处于激活状态
        """
        with self._lock:
            record = self.get(plugin_id)
            if record.active:
                raise StillActiveError(plugin_id)

            manifest, result = self._validate_raw(record.raw, record.organization_id)
            self._apply_validation(record, manifest, result)

        self.logger.info(f"插件 {plugin_id} 重新验证完成，状态: {record.state.value}")
        return result

    def discover(self, organization_id: Optional[int] = None) -> int:
        """
        从清单来源安装全部插件

        已激活的插件保持不变；无法读取的清单记录错误后跳过。

        Returns:
            达到 Valid 状态的插件数量

        Raises:
            PluginConfigurationError: 未配置清单来源
        """
        if self.manifest_source is None:
            raise PluginConfigurationError("no manifest source configured")

        count = 0
        for source_id in self.manifest_source.list_ids(organization_id):
            plugin_id = self._qualify(source_id, organization_id)
            existing = self._plugins.get(plugin_id)
            if existing is not None and existing.active:
                self.logger.debug(f"插件 {plugin_id} 已激活，跳过")
                continue

            try:
                raw = self.manifest_source.load(source_id, organization_id)
            except (MalformedManifestError, PluginNotFoundError) as e:
                self.logger.error(f"读取插件 {plugin_id} 的清单失败: {e}")
                continue

            record = self.install(raw, organization_id=organization_id)
            if record.state == PluginState.VALID:
                count += 1

        scope = "全局" if organization_id is None else f"组织 {organization_id}"
        self.logger.info(f"在{scope}中发现 {count} 个有效插件")
        return count

    def activate_all(self, organization_id: Optional[int] = None) -> Dict[str, bool]:
        """按插件ID顺序激活全部 Valid 插件，返回 {plugin_id: 是否成功}"""
        results: Dict[str, bool] = {}
        for record in self.list_plugins(PluginState.VALID, organization_id):
            try:
                self.activate(record.plugin_id)
                results[record.plugin_id] = True
            except (DependencyUnsatisfiedError, FieldCollisionError, NotValidError):
                results[record.plugin_id] = False
        return results

    # endregion

    # region 查询

    def get(self, plugin_id: str) -> InstalledPlugin:
        """
        获取插件记录

        Raises:
            PluginNotFoundError: 插件不存在
        """
        record = self._plugins.get(plugin_id)
        if record is None:
            raise PluginNotFoundError(plugin_id)
        return record

    def __contains__(self, plugin_id: object) -> bool:
        return plugin_id in self._plugins

    def __len__(self) -> int:
        return len(self._plugins)

    def list_plugins(
        self,
        state: Optional[PluginState] = None,
        organization_id: Optional[int] = None,
    ) -> List[InstalledPlugin]:
        """
        列出插件

        Args:
            state: 只列出该状态的插件
            organization_id: 只列出该组织可见的插件（全局插件与其租户插件）
        """
        records = sorted(self._plugins.values(), key=lambda r: r.plugin_id)
        return [
            r
            for r in records
            if (state is None or r.state == state)
            and (
                organization_id is None
                or r.organization_id is None
                or r.organization_id == organization_id
            )
        ]

    def active_plugins(self) -> List[str]:
        return sorted(self._snapshot.active)

    def plugins_for_module(self, module_id: str) -> List[InstalledPlugin]:
        """列出扩展指定模块的插件"""
        manifests = [r.manifest for r in self._plugins.values() if r.manifest is not None]
        extending = {
            m.registry_id(self.tenant_plugin_id_template)
            for m in self.resolver.plugins_extending(module_id, manifests)
        }
        return [r for r in self.list_plugins() if r.plugin_id in extending]

    def validate_all(self) -> Dict[str, ValidationResult]:
        """对每个插件重新运行验证并返回结果，不改变插件状态"""
        with self._lock:
            records = list(self._plugins.values())
        return {
            r.plugin_id: self._validate_raw(r.raw, r.organization_id)[1]
            for r in sorted(records, key=lambda r: r.plugin_id)
        }

    def slots(self, organization_id: Optional[int] = None) -> SlotRegistry:
        """当前发布的插槽注册表（只读）"""
        return self._snapshot.slots(organization_id)

    def fields(self, organization_id: Optional[int] = None) -> FieldSchemaMerger:
        """当前发布的字段合并器"""
        return self._snapshot.fields(organization_id)

    def resolve_slot(self, slot: str, organization_id: Optional[int] = None) -> Tuple[str, ...]:
        return self.slots(organization_id).resolve(slot)

    def merge_for_model(
        self, model: str, organization_id: Optional[int] = None
    ) -> Mapping[str, MergedField]:
        return self.fields(organization_id).merge_for_model(model)

    def statistics(self) -> Dict[str, Any]:
        """注册表统计信息"""
        records = list(self._plugins.values())
        snapshot = self._snapshot

        by_state: Dict[str, int] = {state.value: 0 for state in PluginState}
        by_trust_level: Dict[str, int] = {}
        by_scope: Dict[str, int] = {scope.value: 0 for scope in PluginScope}
        for record in records:
            by_state[record.state.value] += 1
            by_scope[record.scope.value] += 1
            if record.manifest is not None:
                level = record.manifest.trust_level.value
                by_trust_level[level] = by_trust_level.get(level, 0) + 1
        del by_state[PluginState.UNINSTALLED.value]

        slot_names = {name for view in snapshot.slot_views.values() for name in view.slots()}
        # 各组织视图都包含全局字段，按 (插件, 模型, 字段) 去重
        merged_fields = {
            (f.owner_plugin_id, f.model, f.name)
            for view in snapshot.field_views.values()
            for fields in view.merge_all().values()
            for f in fields.values()
        }

        return {
            "total": len(records),
            "active": len(snapshot.active),
            "by_state": by_state,
            "by_trust_level": by_trust_level,
            "by_scope": by_scope,
            "slot_count": len(slot_names),
            "custom_field_count": len(merged_fields),
        }

    # endregion

    # region 钩子

    def add_lifecycle_hook(self, hook_name: str, callback: HookCallback) -> None:
        """添加生命周期钩子"""
        if hook_name in self._lifecycle_hooks:
            self._lifecycle_hooks[hook_name].append(callback)
        else:
            raise ValueError(f"未知的钩子类型: {hook_name}")

    def remove_lifecycle_hook(self, hook_name: str, callback: HookCallback) -> None:
        """移除生命周期钩子"""
        callbacks = self._lifecycle_hooks.get(hook_name, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _execute_hooks(
        self,
        hook_name: str,
        record: InstalledPlugin,
        exception: Optional[Exception] = None,
    ) -> None:
        """执行生命周期钩子；钩子失败只记录日志"""
        for callback in list(self._lifecycle_hooks.get(hook_name, [])):
            try:
                if exception is not None:
                    callback(record.plugin_id, record, exception)
                else:
                    callback(record.plugin_id, record)
            except Exception as e:
                self.logger.error(f"执行钩子 {hook_name} 失败: {e}")

    # endregion
