# -*- coding: utf-8 -*-
"""
插槽注册表测试
"""

import threading

import pytest

from archimedes.exceptions import PluginError
from archimedes.plugins.extensions.slots import SlotBinding, SlotRegistry

SIDEBAR = "contacts.detail.sidebar"


@pytest.fixture
def slots() -> SlotRegistry:
    return SlotRegistry()


class TestSlotRegistry:
    """测试 SlotRegistry"""

    def test_resolve_unknown_slot_is_empty(self, slots):
        assert slots.resolve("nowhere") == ()
        assert not slots.has_bindings("nowhere")

    def test_resolve_orders_by_priority_then_plugin_id(self, slots):
        slots.register(SIDEBAR, "zeta", "Z", 5)
        slots.register(SIDEBAR, "beta", "B", 20)
        slots.register(SIDEBAR, "alpha", "A", 20)
        slots.register(SIDEBAR, "gamma", "G", 10)
        assert slots.resolve(SIDEBAR) == ("Z", "G", "A", "B")

    def test_order_does_not_depend_on_registration_order(self):
        bindings = [("p3", "C", 1), ("p1", "A", 1), ("p2", "B", 0)]
        first, second = SlotRegistry(), SlotRegistry()
        for plugin_id, component, priority in bindings:
            first.register(SIDEBAR, plugin_id, component, priority)
        for plugin_id, component, priority in reversed(bindings):
            second.register(SIDEBAR, plugin_id, component, priority)
        assert first.resolve(SIDEBAR) == second.resolve(SIDEBAR) == ("B", "A", "C")

    def test_resolve_is_idempotent(self, slots):
        slots.register(SIDEBAR, "p1", "A", 3)
        slots.register(SIDEBAR, "p2", "B", 1)
        assert slots.resolve(SIDEBAR) == slots.resolve(SIDEBAR)

    def test_register_replaces_same_pair(self, slots):
        """同一 (slot, plugin_id) 只保留一个绑定"""
        slots.register(SIDEBAR, "p1", "Old", 1)
        slots.register(SIDEBAR, "p1", "New", 30)
        assert slots.resolve(SIDEBAR) == ("New",)
        assert len(slots.bindings(SIDEBAR)) == 1
        assert slots.bindings(SIDEBAR)[0].priority == 30

    def test_same_plugin_in_different_slots(self, slots):
        slots.register(SIDEBAR, "p1", "A")
        slots.register("contacts.list.toolbar", "p1", "B")
        assert slots.slots() == ["contacts.detail.sidebar", "contacts.list.toolbar"]
        assert len(slots) == 2

    def test_default_priority(self, slots):
        binding = slots.register(SIDEBAR, "p1", "A")
        assert binding.priority == 10

    def test_unregister_all(self, slots):
        slots.register(SIDEBAR, "p1", "A")
        slots.register("contacts.list.toolbar", "p1", "B")
        slots.register(SIDEBAR, "p2", "C")

        assert slots.unregister_all("p1") == 2
        assert slots.resolve(SIDEBAR) == ("C",)
        assert slots.resolve("contacts.list.toolbar") == ()
        assert slots.slots() == [SIDEBAR]

    def test_unregister_unknown_plugin(self, slots):
        slots.register(SIDEBAR, "p1", "A")
        assert slots.unregister_all("ghost") == 0
        assert slots.resolve(SIDEBAR) == ("A",)

    def test_props_are_read_only(self, slots):
        props = {"title": "Score"}
        binding = slots.register(SIDEBAR, "p1", "A", props=props)
        props["title"] = "Changed"
        assert binding.props["title"] == "Score"
        with pytest.raises(TypeError):
            binding.props["title"] = "x"

    def test_plugin_bindings(self, slots):
        slots.register("b.slot", "p1", "B")
        slots.register("a.slot", "p1", "A")
        slots.register("a.slot", "p2", "C")
        assert [b.component for b in slots.plugin_bindings("p1")] == ["A", "B"]

    def test_constructed_from_bindings(self):
        registry = SlotRegistry(
            [
                SlotBinding(SIDEBAR, "p2", "B", 1),
                SlotBinding(SIDEBAR, "p1", "A", 1),
                SlotBinding(SIDEBAR, "p2", "B2", 0),
            ]
        )
        assert registry.resolve(SIDEBAR) == ("B2", "A")

    def test_frozen_registry_rejects_mutation(self, slots):
        slots.register(SIDEBAR, "p1", "A")
        slots.freeze()
        assert slots.is_frozen
        with pytest.raises(PluginError):
            slots.register(SIDEBAR, "p2", "B")
        with pytest.raises(PluginError):
            slots.unregister_all("p1")
        assert slots.resolve(SIDEBAR) == ("A",)

    def test_readers_never_see_partial_index(self, slots):
        """并发读取时只会看到完整的绑定集合"""
        stop = threading.Event()
        seen = set()

        def reader():
            while not stop.is_set():
                seen.add(slots.resolve(SIDEBAR))

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for thread in threads:
            thread.start()
        for _ in range(200):
            slots.register(SIDEBAR, "p1", "A", 1)
            slots.register(SIDEBAR, "p2", "B", 2)
            slots.unregister_all("p1")
            slots.unregister_all("p2")
        stop.set()
        for thread in threads:
            thread.join()

        assert seen <= {(), ("A",), ("A", "B"), ("B",)}
