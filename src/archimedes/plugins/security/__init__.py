# -*- coding: utf-8 -*-
"""
插件信任策略
"""

from .trust_policy import TrustPolicy

__all__ = ["TrustPolicy"]
