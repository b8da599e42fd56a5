#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
精灵图拼接

把视频抽成不超过帧数上限的方形帧，按行优先排列到固定边长的画布上。
帧数和帧率写进文件名，播放端据此还原动画。
"""

import os
import glob
import math
import logging
from dataclasses import dataclass
from typing import Optional

from apnger.core.errors import EncodeInvocationError, ValidationError
from apnger.core.filters import build_filter_chain
from apnger.core.frames import FrameRateDecision, total_source_frames
from apnger.core.models import PlatformSpec, ProcessingOptions, VideoMetadata
from apnger.utils.files import format_size, get_file_size, move_file

logger = logging.getLogger(__name__)

FRAME_PATTERN = "frame_%04d.png"
FRAME_GLOB = "frame_*.png"


@dataclass(frozen=True)
class SpriteSheetPlan:
    """精灵图网格规划"""

    total_frames: int
    target_fps: int
    frame_count: int
    grid_size: int
    cell_size: int
    sheet_size: int


@dataclass(frozen=True)
class SpriteSheetResult:
    path: str
    size: int
    frame_count: int
    fps: int
    grid_size: int
    cell_size: int
    within_budget: bool = True


def plan_sprite_sheet(
    duration: float, source_fps: float, max_frames: int, sheet_size: int
) -> SpriteSheetPlan:
    """
    计算帧数、帧率与网格

    Args:
        duration: 参与编码的时长（秒）
        source_fps: 源帧率
        max_frames: 帧数上限
        sheet_size: 画布边长

    Returns:
        SpriteSheetPlan
    """
    if max_frames <= 0:
        raise ValidationError(f"帧数上限必须为正: {max_frames}")

    total = total_source_frames(duration, source_fps)
    if total > max_frames:
        target_fps = max(1, int(round(max_frames / duration)))
    else:
        target_fps = max(1, int(round(source_fps)))

    frame_count = max(1, min(total, max_frames))
    grid_size = math.ceil(math.sqrt(frame_count))
    cell_size = sheet_size // grid_size

    return SpriteSheetPlan(
        total_frames=total,
        target_fps=target_fps,
        frame_count=frame_count,
        grid_size=grid_size,
        cell_size=cell_size,
        sheet_size=sheet_size,
    )


def sprite_sheet_name(base_name: str, frame_count: int, fps: int) -> str:
    """{base}_{帧数}frames_{帧率}fps.png"""
    return f"{base_name}_{frame_count}frames_{fps}fps.png"


def count_frames(frames_dir: str) -> int:
    return len(glob.glob(os.path.join(frames_dir, FRAME_GLOB)))


class SpriteSheetAssembler:
    """抽帧 + 拼图"""

    def __init__(self, encoder, workdir: str):
        self.encoder = encoder
        self.workdir = workdir

    def assemble(
        self,
        metadata: VideoMetadata,
        options: ProcessingOptions,
        spec: PlatformSpec,
        output_dir: str,
        plan: Optional[SpriteSheetPlan] = None,
    ) -> SpriteSheetResult:
        """
        生成精灵图并移动到输出目录

        Raises:
            EncodeInvocationError: 抽帧或拼图失败、没有抽到任何帧
            FilesystemError: 移动或读取大小失败
        """
        duration = options.effective_duration(metadata.duration)
        plan = plan or plan_sprite_sheet(
            duration, metadata.fps, spec.max_frames or 64, spec.width
        )
        logger.info(
            f"精灵图规划: {plan.frame_count} 帧 @ {plan.target_fps}fps, "
            f"{plan.grid_size}x{plan.grid_size} 网格, 单元 {plan.cell_size}px",
            extra={"platform": spec.platform_id},
        )

        chain = build_filter_chain(
            metadata,
            plan.cell_size,
            plan.cell_size,
            chroma_key=options.chroma_key,
            crop=options.crop,
            frame_rate=FrameRateDecision(
                fps=plan.target_fps, total_source_frames=plan.total_frames
            ),
        )

        frames_dir = os.path.join(self.workdir, "frames")
        os.makedirs(frames_dir, exist_ok=True)
        frame_pattern = os.path.join(frames_dir, FRAME_PATTERN)

        self.encoder.extract_frames(
            metadata.path, chain.text, plan.frame_count, frame_pattern, trim=options.trim
        )

        # 实际帧数可能少于规划（时长取整、裁切窗口）
        produced = count_frames(frames_dir)
        if produced == 0:
            raise EncodeInvocationError("抽帧没有产生任何帧")
        if produced != plan.frame_count:
            logger.debug(
                f"实际抽取 {produced} 帧（规划 {plan.frame_count}）",
                extra={"platform": spec.platform_id},
            )

        sheet_path = os.path.join(self.workdir, "spritesheet.png")
        self.encoder.tile_frames(
            frame_pattern, plan.target_fps, plan.grid_size, plan.sheet_size, sheet_path
        )

        size = get_file_size(sheet_path)
        within_budget = size <= spec.max_bytes
        if not within_budget:
            logger.warning(
                f"精灵图 {format_size(size)} 超过 {format_size(spec.max_bytes)}",
                extra={"platform": spec.platform_id},
            )

        final_path = os.path.join(
            output_dir, sprite_sheet_name(metadata.base_name, produced, plan.target_fps)
        )
        move_file(sheet_path, final_path)

        return SpriteSheetResult(
            path=final_path,
            size=size,
            frame_count=produced,
            fps=plan.target_fps,
            grid_size=plan.grid_size,
            cell_size=plan.cell_size,
            within_budget=within_budget,
        )
