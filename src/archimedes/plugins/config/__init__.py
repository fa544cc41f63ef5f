# -*- coding: utf-8 -*-
"""
配置模块
"""

from .base_config import BaseConfig
from .registry_config import RegistryConfig

__all__ = ["BaseConfig", "RegistryConfig"]
