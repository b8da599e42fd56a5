#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
工具可用性检测

在程序启动时检测 ffmpeg/ffprobe 是否可用，以及导出所需的滤镜是否编译进 ffmpeg
"""

import re
import subprocess
import logging
from typing import List, Tuple

logger = logging.getLogger("ToolCheck")

REQUIRED_FILTERS = ("chromakey", "despill", "palettegen", "paletteuse", "tile")


def check_binary(binary: str) -> Tuple[bool, str]:
    """
    检测可执行文件能否运行

    Args:
        binary: 可执行文件名或路径

    Returns:
        (是否可用, 错误信息)
    """
    try:
        result = subprocess.run(
            [binary, "-hide_banner", "-version"],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except FileNotFoundError:
        return False, f"{binary} 未安装或不在 PATH 中"
    except subprocess.TimeoutExpired:
        return False, f"{binary} 检测超时"
    except OSError as e:
        return False, f"{binary} 检测失败: {e}"

    if result.returncode != 0:
        return False, f"{binary} 返回错误: {result.stderr[:100]}"
    return True, ""


def parse_filter_names(output: str) -> List[str]:
    """从 `ffmpeg -filters` 输出中提取滤镜名"""
    names = []
    for line in output.splitlines():
        # 形如 " ... chromakey         V->V       Turns a certain color ..."
        match = re.match(r"^\s*[A-Z.|]{2,3}\s+(\S+)\s+\S+->\S+", line)
        if match:
            names.append(match.group(1))
    return names


def missing_filters(ffmpeg: str = "ffmpeg") -> Tuple[List[str], str]:
    """
    检查导出所需的滤镜

    Returns:
        (缺失的滤镜列表, 错误信息)
    """
    try:
        result = subprocess.run(
            [ffmpeg, "-hide_banner", "-filters"],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        return list(REQUIRED_FILTERS), f"无法列出滤镜: {e}"

    available = set(parse_filter_names(result.stdout))
    return [name for name in REQUIRED_FILTERS if name not in available], ""


def check_tools(ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe") -> Tuple[bool, List[str]]:
    """
    检测导出依赖的外部工具

    Returns:
        (全部可用, 问题列表)
    """
    problems = []

    for binary in (ffmpeg, ffprobe):
        available, error = check_binary(binary)
        if available:
            logger.info(f"✓ {binary} 可用")
        else:
            logger.warning(f"✗ {error}")
            problems.append(error)

    if not problems:
        missing, error = missing_filters(ffmpeg)
        if error:
            problems.append(error)
        elif missing:
            problems.append(f"ffmpeg 缺少滤镜: {', '.join(missing)}")

    return not problems, problems
