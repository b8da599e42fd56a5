#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
调色板编解码

两遍编码：第一遍从滤镜后的画面统计调色板，第二遍用同一滤镜链加调色板量化输出。
两遍共用 build_chain 的结果，保证统计的就是最终输出的像素。
"""

import os
import logging


from apnger.core.encoder import container_flags
from apnger.core.filters import FilterChain, build_filter_chain
from apnger.core.frames import SAMPLING_FPS, FrameRateDecision, plan_frame_rate
from apnger.core.models import EncodeParameters, ProcessingOptions, VideoMetadata
from apnger.core.platforms import PlatformDescriptor

logger = logging.getLogger(__name__)


class PaletteCodec:
    """单个平台的两遍调色板编码器"""

    def __init__(
        self,
        encoder,
        metadata: VideoMetadata,
        options: ProcessingOptions,
        descriptor: PlatformDescriptor,
        workdir: str,
        sampling: str = SAMPLING_FPS,
    ):
        self.encoder = encoder
        self.metadata = metadata
        self.options = options
        self.descriptor = descriptor
        self.workdir = workdir
        self.sampling = sampling

    @property
    def platform_id(self) -> str:
        return self.descriptor.platform_id

    def palette_path(self, attempt: int) -> str:
        return os.path.join(self.workdir, f"{self.platform_id}_palette_{attempt}.png")

    def output_path(self, attempt: int) -> str:
        ext = self.descriptor.spec.container.extension
        return os.path.join(self.workdir, f"{self.platform_id}_attempt_{attempt}.{ext}")

    def frame_decision(self, params: EncodeParameters) -> FrameRateDecision:
        """本次参数在平台帧数上限下的实际输出帧率"""
        return plan_frame_rate(
            self.options.effective_duration(self.metadata.duration),
            self.metadata.fps,
            params.fps,
            max_frames=self.descriptor.spec.max_frames,
            sampling=self.sampling,
        )

    def fit_frame_budget(self, params: EncodeParameters) -> EncodeParameters:
        """
        把参数中的帧率压到帧数预算允许的值

        首轮参数的帧率若高于预算帧率，降帧率的阶梯步骤不会改变输出，
        因此在开始尝试前先对齐。
        """
        decision = self.frame_decision(params)
        if decision.fps >= params.fps:
            return params
        logger.debug(
            f"帧数预算: {params.fps:g}fps → {decision.fps:g}fps",
            extra={"platform": self.platform_id},
        )
        return params.replace(fps=decision.fps)

    def build_chain(self, params: EncodeParameters) -> FilterChain:
        """按本次参数构建滤镜链（帧率受平台帧数上限约束）"""
        decision = self.frame_decision(params)
        if decision.budget_applied:
            logger.debug(
                f"帧数预算生效: {decision.total_source_frames} 帧 → "
                f"{decision.fps:.3g}fps",
                extra={"platform": self.platform_id},
            )
        return build_filter_chain(
            self.metadata,
            params.width,
            params.height,
            chroma_key=self.options.chroma_key,
            crop=self.options.crop,
            frame_rate=decision,
        )

    def generate_palette(
        self, chain: FilterChain, params: EncodeParameters, palette_path: str
    ) -> None:
        """第一遍：生成调色板"""
        self.encoder.generate_palette(
            self.metadata.path,
            chain.text,
            params.colors,
            self.descriptor.stats_mode,
            palette_path,
            trim=self.options.trim,
        )

    def apply_palette(
        self,
        chain: FilterChain,
        params: EncodeParameters,
        palette_path: str,
        output_path: str,
    ) -> None:
        """第二遍：调色板量化并封装"""
        flags = container_flags(
            self.descriptor.spec.container, params.compression_level
        )
        self.encoder.encode(
            self.metadata.path,
            chain.text,
            palette_path,
            params.dither.option_text(),
            output_path,
            extra_flags=flags,
            trim=self.options.trim,
        )

