#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
滤镜链构建

将抠像、裁剪、目标尺寸与帧率决策转换为 ffmpeg 滤镜图文本。
纯函数：相同输入总是得到逐字节相同的输出。
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from apnger.core.errors import ValidationError
from apnger.core.frames import FrameRateDecision
from apnger.core.models import ChromaKeyConfig, CropRegion, VideoMetadata

# 去溢色后的色彩补偿
DESPILL_MIX = 0.5
DESPILL_EXPAND = 0
EQ_GAMMA = 1.1
EQ_SATURATION = 1.05


@dataclass(frozen=True)
class FilterChain:
    """有序的滤镜阶段"""

    stages: Tuple[str, ...]

    @property
    def text(self) -> str:
        return ",".join(self.stages)

    def __str__(self) -> str:
        return self.text

    def has_stage(self, name: str) -> bool:
        return any(stage.split("=", 1)[0] == name for stage in self.stages)


def _num(value: float) -> str:
    return f"{value:g}"


def validate_crop(crop: CropRegion, metadata: VideoMetadata) -> None:
    """
    校验裁剪区域

    Raises:
        ValidationError: 尺寸非正、偏移为负或超出源画面
    """
    if crop.width <= 0 or crop.height <= 0:
        raise ValidationError(f"裁剪尺寸必须为正: {crop.width}x{crop.height}")
    if crop.x < 0 or crop.y < 0:
        raise ValidationError(f"裁剪偏移不能为负: x={crop.x}, y={crop.y}")
    if crop.x + crop.width > metadata.width or crop.y + crop.height > metadata.height:
        raise ValidationError(
            f"裁剪区域 {crop.width}x{crop.height}+{crop.x}+{crop.y} "
            f"超出源画面 {metadata.width}x{metadata.height}"
        )


def chroma_key_stages(chroma_key: ChromaKeyConfig) -> Tuple[str, ...]:
    """抠像 → 去溢色 → 色彩补偿"""
    stages = [
        f"chromakey={chroma_key.hex}:{_num(chroma_key.similarity)}:{_num(chroma_key.blend)}"
    ]
    channel = chroma_key.dominant_channel
    if channel is not None:
        stages.append(
            f"despill=type={channel}:mix={_num(DESPILL_MIX)}:expand={DESPILL_EXPAND}"
        )
        # 仅在去溢色后补偿饱和度损失
        stages.append(f"eq=gamma={_num(EQ_GAMMA)}:saturation={_num(EQ_SATURATION)}")
    return tuple(stages)


def build_filter_chain(
    metadata: VideoMetadata,
    width: int,
    height: int,
    chroma_key: Optional[ChromaKeyConfig] = None,
    crop: Optional[CropRegion] = None,
    frame_rate: Optional[FrameRateDecision] = None,
) -> FilterChain:
    """
    构建滤镜链

    Args:
        metadata: 源视频信息
        width: 目标宽度
        height: 目标高度
        chroma_key: 抠像配置（未启用时忽略）
        crop: 源坐标系中的裁剪区域
        frame_rate: 帧率决策，None 表示不加帧率阶段（单帧预览/抽帧）

    Returns:
        FilterChain
    """
    if width <= 0 or height <= 0:
        raise ValidationError(f"目标尺寸必须为正: {width}x{height}")
    if crop is not None:
        validate_crop(crop, metadata)

    stages = []

    if chroma_key is not None and chroma_key.enabled:
        stages.extend(chroma_key_stages(chroma_key))

    if crop is not None:
        stages.append(f"crop={crop.width}:{crop.height}:{crop.x}:{crop.y}")

    # 放大到完全覆盖目标框后居中裁切，不留边
    stages.append(f"scale={width}:{height}:force_original_aspect_ratio=increase")
    stages.append(f"crop={width}:{height}")

    if frame_rate is not None:
        stages.append(frame_rate.stage)

    return FilterChain(stages=tuple(stages))
