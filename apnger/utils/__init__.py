# 工具模块
"""通用工具函数"""

from apnger.utils.logging import setup_logging
from apnger.utils.files import format_size, workspace

__all__ = [
    "setup_logging",
    "format_size",
    "workspace",
]
