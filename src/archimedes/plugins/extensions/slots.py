# -*- coding: utf-8 -*-
"""
UI 插槽注册表

插槽名 → 按 (priority, plugin_id) 排序的组件绑定。每次修改都会发布一个
新的不可变索引，读取方只会看到修改前或修改后的完整索引。
"""

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ...exceptions import PluginError

DEFAULT_SLOT_PRIORITY = 10


@dataclass(frozen=True)
class SlotBinding:
    """插槽绑定"""

    slot: str
    plugin_id: str
    component: str
    priority: int = DEFAULT_SLOT_PRIORITY
    props: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @property
    def sort_key(self) -> Tuple[int, str]:
        return self.priority, self.plugin_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slot": self.slot,
            "pluginId": self.plugin_id,
            "component": self.component,
            "priority": self.priority,
            "props": dict(self.props),
        }


class SlotRegistry:
    """
    插槽注册表

    写操作在锁内基于当前索引构造新索引后整体替换；读操作不加锁，
    只读取一次索引引用。
    """

    def __init__(self, bindings: Iterable[SlotBinding] = ()):
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._frozen = False

        index: Dict[str, List[SlotBinding]] = {}
        for binding in bindings:
            existing = index.setdefault(binding.slot, [])
            existing[:] = [b for b in existing if b.plugin_id != binding.plugin_id]
            existing.append(binding)
        self._index: Mapping[str, Tuple[SlotBinding, ...]] = self._publishable(index)

    @staticmethod
    def _publishable(
        index: Mapping[str, Iterable[SlotBinding]]
    ) -> Mapping[str, Tuple[SlotBinding, ...]]:
        return MappingProxyType(
            {
                slot: tuple(sorted(bindings, key=lambda b: b.sort_key))
                for slot, bindings in index.items()
                if bindings
            }
        )

    def _check_writable(self) -> None:
        if self._frozen:
            raise PluginError("slot registry is frozen; it is a published snapshot")

    def register(
        self,
        slot: str,
        plugin_id: str,
        component: str,
        priority: int = DEFAULT_SLOT_PRIORITY,
        props: Optional[Mapping[str, Any]] = None,
    ) -> SlotBinding:
        """
        注册插槽绑定

        同一 (slot, plugin_id) 重复注册会替换原绑定。

        Returns:
            新的绑定
        """
        binding = SlotBinding(
            slot=slot,
            plugin_id=plugin_id,
            component=component,
            priority=priority,
            props=MappingProxyType(dict(props or {})),
        )
        with self._lock:
            self._check_writable()
            index = {s: list(b) for s, b in self._index.items()}
            current = index.setdefault(slot, [])
            replaced = any(b.plugin_id == plugin_id for b in current)
            current[:] = [b for b in current if b.plugin_id != plugin_id]
            current.append(binding)
            self._index = self._publishable(index)

        action = "替换" if replaced else "注册"
        self.logger.debug(f"{action}插槽绑定 {slot} <- {plugin_id}:{component} ({priority})")
        return binding

    def unregister_all(self, plugin_id: str) -> int:
        """
        移除插件的全部绑定

        Returns:
            移除的绑定数量
        """
        with self._lock:
            self._check_writable()
            removed = 0
            index: Dict[str, List[SlotBinding]] = {}
            for slot, bindings in self._index.items():
                kept = [b for b in bindings if b.plugin_id != plugin_id]
                removed += len(bindings) - len(kept)
                index[slot] = kept
            if removed:
                self._index = self._publishable(index)

        if removed:
            self.logger.debug(f"移除插件 {plugin_id} 的 {removed} 个插槽绑定")
        return removed

    def freeze(self) -> "SlotRegistry":
        """冻结注册表，之后的修改将引发 PluginError"""
        with self._lock:
            self._frozen = True
        return self

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def resolve(self, slot: str) -> Tuple[str, ...]:
        """按优先级升序、插件ID字典序返回组件引用；未知插槽返回空元组"""
        return tuple(binding.component for binding in self._index.get(slot, ()))

    def bindings(self, slot: str) -> Tuple[SlotBinding, ...]:
        return self._index.get(slot, ())

    def slots(self) -> List[str]:
        return sorted(self._index)

    def has_bindings(self, slot: str) -> bool:
        return slot in self._index

    def plugin_bindings(self, plugin_id: str) -> List[SlotBinding]:
        index = self._index
        return [b for slot in sorted(index) for b in index[slot] if b.plugin_id == plugin_id]

    def __len__(self) -> int:
        return sum(len(bindings) for bindings in self._index.values())

    def __contains__(self, slot: object) -> bool:
        return slot in self._index
