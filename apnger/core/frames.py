#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
帧数预算规划

根据源时长/帧率与平台帧数上限决定输出帧率，
保证输出帧数不超过预算，同时不高于请求的帧率。
"""

import math
from dataclasses import dataclass
from typing import Optional

from apnger.core.errors import MetadataError

SAMPLING_FPS = "fps"
SAMPLING_SELECT = "select"

# 帧率文本保留 5 位小数
RATE_SCALE = 10 ** 5


def total_source_frames(duration: float, source_fps: float) -> int:
    """源视频总帧数（向下取整）"""
    if duration <= 0 or source_fps <= 0:
        raise MetadataError(
            f"无效的视频元数据: duration={duration}, fps={source_fps}"
        )
    return int(math.floor(duration * source_fps))


def truncate_rate(value: float) -> float:
    """向零截断到 5 位小数，截断后的帧率不会高于原值"""
    # round 吸收浮点乘法误差，避免 2.3 被截成 2.29999
    return math.floor(round(value * RATE_SCALE, 6)) / RATE_SCALE


def format_rate(value: float) -> str:
    """帧率文本，保证相同输入得到相同输出，且不高于输入值"""
    text = f"{truncate_rate(value):.5f}"
    return text.rstrip("0").rstrip(".")


@dataclass(frozen=True)
class FrameRateDecision:
    """时间重采样决策"""

    fps: float
    total_source_frames: int
    max_frames: Optional[int] = None
    budget_applied: bool = False
    stride: Optional[int] = None

    @property
    def stage(self) -> str:
        """滤镜链中的帧率阶段"""
        if self.stride:
            # 按模数抽帧后重写时间戳
            return (
                f"select='not(mod(n\\,{self.stride}))',"
                f"setpts=N/({format_rate(self.fps)}*TB)"
            )
        return f"fps={format_rate(self.fps)}"

    def output_frames(self, duration: float) -> int:
        """重采样后的输出帧数"""
        if self.stride:
            return math.ceil(self.total_source_frames / self.stride)
        return int(math.floor(duration * self.fps))


def plan_frame_rate(
    duration: float,
    source_fps: float,
    target_fps: float,
    max_frames: Optional[int] = None,
    sampling: str = SAMPLING_FPS,
) -> FrameRateDecision:
    """
    计算输出帧率

    Args:
        duration: 参与编码的时长（秒）
        source_fps: 源帧率
        target_fps: 期望帧率
        max_frames: 平台帧数上限，None 表示不限
        sampling: fps（恒定帧率重采样）或 select（按模数抽帧）

    Returns:
        FrameRateDecision

    Raises:
        MetadataError: duration 或 source_fps 非正
    """
    total = total_source_frames(duration, source_fps)

    if not max_frames or total <= max_frames:
        return FrameRateDecision(
            fps=target_fps, total_source_frames=total, max_frames=max_frames
        )

    effective_fps = max_frames / duration
    capped = min(target_fps, truncate_rate(effective_fps))

    if sampling == SAMPLING_SELECT:
        stride = math.ceil(total / max_frames)
        sampled_fps = source_fps / stride
        # 抽帧后的帧率同样不能超过上限
        while sampled_fps > capped:
            stride += 1
            sampled_fps = source_fps / stride
        return FrameRateDecision(
            fps=sampled_fps,
            total_source_frames=total,
            max_frames=max_frames,
            budget_applied=True,
            stride=stride,
        )

    return FrameRateDecision(
        fps=capped,
        total_source_frames=total,
        max_frames=max_frames,
        budget_applied=True,
    )
