#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
平台规格注册表

每个平台对应一个描述符：规格 + 降级阶梯 + 初始编码参数 + 是否走精灵图分支。
新增平台只需在 PLATFORMS 中登记，无需修改编排逻辑。
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from apnger.core.errors import ValidationError
from apnger.core.models import (
    ContainerKind,
    CropRegion,
    DitherSpec,
    EncodeParameters,
    PlatformSpec,
    QualityPreset,
    VideoMetadata,
)

KB = 1024
MB = 1024 * 1024

STEP_FPS = "fps"
STEP_COLORS = "colors"
STEP_SCALE = "scale"


@dataclass(frozen=True)
class LadderStep:
    """
    降级阶梯中的一级

    kind=fps:    fps > above 时 fps = max(floor, fps - delta)
    kind=colors: colors > above 时 colors = max(floor, colors - delta)，delta 为 None 时直接降到 floor
    kind=scale:  max(宽, 高) > above 时宽高乘以 factor（不低于阶梯的最小尺寸）
    """

    kind: str
    above: float
    delta: Optional[float] = None
    floor: float = 1
    factor: float = 1.0


@dataclass(frozen=True)
class DegradationLadder:
    """按顺序尝试的参数降级序列"""

    steps: Tuple[LadderStep, ...]
    min_dimension: int = 16
    min_fps: float = 1
    min_colors: int = 2


# 画质预设: (颜色倍率, 帧率倍率)
QUALITY_SCALES: Dict[QualityPreset, Tuple[float, float]] = {
    QualityPreset.MAXIMUM: (1.25, 1.0),
    QualityPreset.BALANCED: (1.0, 1.0),
    QualityPreset.SMALLEST: (0.5, 0.75),
}


@dataclass(frozen=True)
class PlatformDescriptor:
    """平台描述符"""

    spec: PlatformSpec
    ladder: Optional[DegradationLadder] = None
    initial_fps_cap: Optional[int] = None
    initial_colors: int = 256
    compression_level: Optional[int] = None
    dither: DitherSpec = field(default_factory=DitherSpec)
    stats_mode: str = "diff"
    max_attempts: int = 10
    strict_budget: bool = True
    sprite_sheet: bool = False

    @property
    def platform_id(self) -> str:
        return self.spec.platform_id


PLATFORMS: Dict[str, PlatformDescriptor] = {
    "twitch": PlatformDescriptor(
        spec=PlatformSpec(
            platform_id="twitch",
            display_name="Twitch Animated Emote",
            container=ContainerKind.GIF,
            width=112,
            height=112,
            max_bytes=1 * MB,
            max_frames=60,
            description="GIF 112×112, max 60 frames, 1MB limit",
        ),
        ladder=DegradationLadder(
            steps=(
                LadderStep(STEP_FPS, above=15, delta=5, floor=15),
                LadderStep(STEP_COLORS, above=128, delta=64, floor=128),
                LadderStep(STEP_FPS, above=10, delta=2, floor=10),
                LadderStep(STEP_COLORS, above=64, floor=64),
                LadderStep(STEP_SCALE, above=96, factor=0.9),
            ),
            min_dimension=64,
        ),
        initial_fps_cap=30,
        initial_colors=256,
        dither=DitherSpec("bayer", bayer_scale=3),
        max_attempts=10,
        strict_budget=True,
    ),
    "discord-sticker": PlatformDescriptor(
        spec=PlatformSpec(
            platform_id="discord-sticker",
            display_name="Discord Sticker",
            container=ContainerKind.APNG,
            width=320,
            height=320,
            max_bytes=512 * KB,
            description="APNG 320×320, 512KB limit",
        ),
        # 512KB 很紧，起点更激进，阶梯更长
        ladder=DegradationLadder(
            steps=(
                LadderStep(STEP_FPS, above=8, delta=2, floor=1),
                LadderStep(STEP_COLORS, above=96, delta=32, floor=64),
                LadderStep(STEP_FPS, above=6, delta=1, floor=1),
                LadderStep(STEP_SCALE, above=240, factor=0.88),
                LadderStep(STEP_COLORS, above=64, floor=64),
                LadderStep(STEP_FPS, above=4, delta=1, floor=1),
                LadderStep(STEP_SCALE, above=0, factor=0.82),
            ),
            min_dimension=64,
        ),
        initial_fps_cap=10,
        initial_colors=192,
        compression_level=9,
        dither=DitherSpec("sierra2_4a"),
        max_attempts=15,
        strict_budget=True,
    ),
    "discord-emote": PlatformDescriptor(
        spec=PlatformSpec(
            platform_id="discord-emote",
            display_name="Discord Animated Emote",
            container=ContainerKind.GIF,
            width=128,
            height=128,
            max_bytes=256 * KB,
            description="GIF 128×128, 256KB limit",
        ),
        ladder=DegradationLadder(
            steps=(
                LadderStep(STEP_FPS, above=10, delta=2, floor=1),
                LadderStep(STEP_COLORS, above=64, floor=64),
                LadderStep(STEP_SCALE, above=96, factor=0.9),
                LadderStep(STEP_FPS, above=8, delta=1, floor=1),
                LadderStep(STEP_SCALE, above=0, factor=0.85),
            ),
            min_dimension=32,
        ),
        initial_fps_cap=15,
        initial_colors=128,
        dither=DitherSpec("bayer", bayer_scale=2),
        max_attempts=10,
        strict_budget=False,
    ),
    "7tv": PlatformDescriptor(
        spec=PlatformSpec(
            platform_id="7tv",
            display_name="7TV Emote",
            container=ContainerKind.GIF,
            width=128,
            height=128,
            max_bytes=3 * MB,
            allow_wide=True,
            max_aspect_ratio=4.0,
            description="GIF, flexible dimensions, high quality",
        ),
        ladder=DegradationLadder(
            steps=(
                LadderStep(STEP_FPS, above=24, delta=6, floor=24),
                LadderStep(STEP_COLORS, above=128, delta=64, floor=128),
                LadderStep(STEP_FPS, above=15, delta=3, floor=15),
                LadderStep(STEP_SCALE, above=96, factor=0.9),
            ),
            min_dimension=64,
        ),
        initial_fps_cap=None,
        initial_colors=256,
        dither=DitherSpec("bayer", bayer_scale=5, diff_mode="rectangle"),
        max_attempts=10,
        strict_budget=False,
    ),
    "7tv-spritesheet": PlatformDescriptor(
        spec=PlatformSpec(
            platform_id="7tv-spritesheet",
            display_name="7TV Sprite Sheet",
            container=ContainerKind.SPRITE_SHEET,
            width=1024,
            height=1024,
            max_bytes=10 * MB,
            max_frames=64,
            description="1024×1024 sprite sheet with square frames, FPS/frame count in filename",
        ),
        sprite_sheet=True,
    ),
}


def list_platforms() -> List[str]:
    """注册表中的全部平台标识"""
    return list(PLATFORMS.keys())


def get_platform(platform_id: str) -> PlatformDescriptor:
    """
    按标识获取平台描述符

    Raises:
        ValidationError: 未知平台
    """
    try:
        return PLATFORMS[platform_id]
    except KeyError:
        raise ValidationError(
            f"未知平台: {platform_id}（可选: {', '.join(PLATFORMS)}）"
        ) from None


def resolve_target_size(
    spec: PlatformSpec,
    metadata: VideoMetadata,
    crop: Optional[CropRegion] = None,
) -> Tuple[int, int]:
    """
    计算目标尺寸

    只有 allow_wide 的平台才允许宽度超过规格，最宽 max_aspect_ratio:1。
    """
    if not spec.allow_wide:
        return spec.width, spec.height

    if crop is not None:
        aspect = crop.aspect_ratio
    else:
        aspect = metadata.width / metadata.height if metadata.height else 1.0

    if aspect <= 1.0:
        return spec.width, spec.height

    max_ratio = spec.max_aspect_ratio or 1.0
    width = int(round(spec.height * min(aspect, max_ratio)))
    return max(width, spec.width), spec.height


def seed_parameters(
    descriptor: PlatformDescriptor,
    metadata: VideoMetadata,
    quality: QualityPreset,
    target_size: Tuple[int, int],
) -> EncodeParameters:
    """根据平台与画质预设生成首轮编码参数"""
    color_scale, fps_scale = QUALITY_SCALES[quality]

    fps = metadata.fps
    if descriptor.initial_fps_cap is not None:
        fps = min(fps, descriptor.initial_fps_cap)
    fps = max(1, int(round(fps * fps_scale)))

    colors = int(round(descriptor.initial_colors * color_scale))
    colors = max(2, min(256, colors))

    width, height = target_size
    return EncodeParameters(
        width=width,
        height=height,
        fps=fps,
        colors=colors,
        compression_level=descriptor.compression_level,
        dither=descriptor.dither,
    )
