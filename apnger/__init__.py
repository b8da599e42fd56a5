# APNGer - 视频转动态表情导出引擎
"""
APNGer 包

主要模块:
- config: 配置加载
- core: 平台规格、滤镜链、调色板编码、体积优化、精灵图
- service: 多平台导出编排
- utils: 工具函数
"""

__version__ = "1.0.0"

from apnger.config import load_config, apply_cli_overrides, options_from_config
from apnger.service import ExportOrchestrator, summarize_results

__all__ = [
    "__version__",
    "load_config",
    "apply_cli_overrides",
    "options_from_config",
    "ExportOrchestrator",
    "summarize_results",
]
