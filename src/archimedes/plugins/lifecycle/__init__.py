# -*- coding: utf-8 -*-
"""
插件生命周期管理模块

负责插件的安装、验证、激活与卸载，以及扩展点快照的发布。
"""

from .plugin_registry import InstalledPlugin, PluginRegistry, PluginState, RegistrySnapshot
