# rugradar/config/__init__.py
"""Configuration package for RugRadar."""

from .settings import settings, Settings
from .autotrade import (
    AutoTradePolicyConfig,
    ExecutionConfig,
    apply_execution_update,
    apply_policy_update,
)

__all__ = [
    "settings",
    "Settings",
    "AutoTradePolicyConfig",
    "ExecutionConfig",
    "apply_policy_update",
    "apply_execution_update",
]
