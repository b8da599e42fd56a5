# 配置模块
"""配置加载和管理"""

from apnger.config.loader import (
    load_config,
    apply_cli_overrides,
    deep_merge,
    options_from_config,
)
from apnger.config.defaults import DEFAULT_CONFIG

__all__ = [
    "load_config",
    "apply_cli_overrides",
    "deep_merge",
    "options_from_config",
    "DEFAULT_CONFIG",
]
