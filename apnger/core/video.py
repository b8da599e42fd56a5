#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
视频信息获取模块

通过 ffprobe 读取源视频的尺寸、帧率和时长
"""

import os
import json
import subprocess
import logging
from typing import Any, Dict, Optional

from apnger.core.errors import NoVideoStream, UnreadableMetadata
from apnger.core.models import VideoMetadata

logger = logging.getLogger(__name__)


def parse_frame_rate(value: Optional[str]) -> int:
    """
    解析帧率并四舍五入为整数

    帧率格式可能是 "30/1"、"30000/1001" 或 "25"，无法解析时返回 0
    """
    if not value:
        return 0
    try:
        if "/" in value:
            num, den = value.split("/", 1)
            if float(den) == 0:
                return 0
            return int(round(float(num) / float(den)))
        return int(round(float(value)))
    except ValueError:
        return 0


def _parse_duration(*candidates: Any) -> float:
    for value in candidates:
        try:
            duration = float(value)
        except (TypeError, ValueError):
            continue
        if duration > 0:
            return duration
    return 0.0


def parse_probe_output(path: str, output: str) -> VideoMetadata:
    """
    解析 ffprobe 的 JSON 输出

    Raises:
        NoVideoStream: 没有视频流
        UnreadableMetadata: JSON 无法解析或缺少尺寸
    """
    try:
        data: Dict[str, Any] = json.loads(output or "{}")
    except json.JSONDecodeError as e:
        raise UnreadableMetadata(path, f"JSON 解析失败: {e}") from e

    streams = data.get("streams") or []
    if not streams:
        raise NoVideoStream(path)

    stream = streams[0]
    try:
        width = int(stream["width"])
        height = int(stream["height"])
    except (KeyError, TypeError, ValueError) as e:
        raise UnreadableMetadata(path, "缺少宽高信息") from e

    fmt = data.get("format") or {}
    duration = _parse_duration(stream.get("duration"), fmt.get("duration"))

    try:
        size = os.path.getsize(path)
    except OSError:
        size = 0

    return VideoMetadata(
        path=path,
        width=width,
        height=height,
        fps=parse_frame_rate(stream.get("r_frame_rate")),
        duration=duration,
        size=size,
    )


class FFprobeProber:
    """ffprobe 元数据探测"""

    def __init__(self, ffprobe_path: str = "ffprobe", timeout: Optional[float] = 30):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def build_command(self, path: str) -> list:
        return [
            self.ffprobe_path, "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "stream=width,height,r_frame_rate,duration",
            "-show_entries", "format=duration",
            "-of", "json",
            path,
        ]

    def probe(self, path: str) -> VideoMetadata:
        """
        获取视频元数据

        Args:
            path: 视频文件路径

        Returns:
            VideoMetadata

        Raises:
            NoVideoStream: 文件中没有视频流
            UnreadableMetadata: 文件不存在、ffprobe 失败或超时
        """
        if not os.path.isfile(path):
            raise UnreadableMetadata(path, "文件不存在")

        try:
            result = subprocess.run(
                self.build_command(path),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise UnreadableMetadata(path, "ffprobe 超时") from e
        except OSError as e:
            raise UnreadableMetadata(path, f"无法启动 ffprobe: {e}") from e

        if result.returncode != 0:
            raise UnreadableMetadata(path, (result.stderr or "").strip()[-200:] or None)

        metadata = parse_probe_output(path, result.stdout)
        logger.debug(
            f"探测结果: {metadata.width}x{metadata.height}, "
            f"{metadata.fps}fps, {metadata.duration:.2f}s",
            extra={"file": metadata.name},
        )
        return metadata
