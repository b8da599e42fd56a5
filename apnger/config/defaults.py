#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
默认配置常量

定义程序的默认配置值
"""

# ============================================================
# 路径配置
# ============================================================
DEFAULT_OUTPUT_FOLDER = "./output"
DEFAULT_LOG_FOLDER = "./logs"

# 临时工作目录前缀（位于输出目录内）
WORKSPACE_PREFIX = ".apnger_"
# 超过该时长（秒）未修改的工作目录才视为遗留
STALE_WORKSPACE_AGE = 6 * 3600

# ============================================================
# 外部工具
# ============================================================
DEFAULT_FFMPEG = "ffmpeg"
DEFAULT_FFPROBE = "ffprobe"
FFMPEG_TIMEOUT = 600  # 单条 ffmpeg 命令超时（秒）
FFPROBE_TIMEOUT = 30

# ============================================================
# 处理选项
# ============================================================
DEFAULT_CHROMA_COLOR = "#00FF00"
DEFAULT_SIMILARITY = 0.3
DEFAULT_BLEND = 0.1
DEFAULT_QUALITY = "balanced"

# ============================================================
# 导出配置
# ============================================================
MAX_WORKERS = 1  # >1 时多个平台并行导出
PREVIEW_POSITION = 0.33  # 预览帧取时长的 33% 处

# ============================================================
# 帧数预算
# ============================================================
DEFAULT_SAMPLING = "fps"  # fps 或 select

# ============================================================
# 默认配置字典（用于配置加载）
# ============================================================
DEFAULT_CONFIG = {
    "paths": {
        "output": DEFAULT_OUTPUT_FOLDER,
        "log": DEFAULT_LOG_FOLDER,
    },
    "ffmpeg": {
        "ffmpeg_path": DEFAULT_FFMPEG,
        "ffprobe_path": DEFAULT_FFPROBE,
        "timeout": FFMPEG_TIMEOUT,
        "probe_timeout": FFPROBE_TIMEOUT,
        "print_cmd": False,
    },
    "processing": {
        "chroma_key": {
            "enabled": False,
            "color": DEFAULT_CHROMA_COLOR,
            "similarity": DEFAULT_SIMILARITY,
            "blend": DEFAULT_BLEND,
        },
        "crop": None,
        "trim": None,
        "quality": DEFAULT_QUALITY,
    },
    "export": {
        "platforms": None,  # None 表示全部平台
        "max_workers": MAX_WORKERS,
        "preview": False,
        "preview_position": PREVIEW_POSITION,
    },
    "frame_budget": {
        "sampling": DEFAULT_SAMPLING,
    },
    "logging": {
        "level": "INFO",
        "console_level": None,
        "plain": False,
        "json_console": False,
        "show_progress": True,
    },
}
