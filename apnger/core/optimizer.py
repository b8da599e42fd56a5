#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
体积优化器

INIT → GENERATE_PALETTE → ENCODE → CHECK_SIZE → PASS
                                        ↓
                                     DEGRADE → GENERATE_PALETTE ...
                                        ↓
                                      FAIL

每次尝试的参数由纯函数 degrade() 从上一次参数推导，尝试次数有上限。
"""

import os
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Set, Tuple

from apnger.core.errors import EncodeInvocationError, FilesystemError, SizeBudgetExceeded
from apnger.core.models import EncodeParameters, OptimizationAttempt, ProgressEvent
from apnger.core.platforms import (
    STEP_COLORS,
    STEP_FPS,
    STEP_SCALE,
    DegradationLadder,
    LadderStep,
    PlatformDescriptor,
)
from apnger.utils.files import format_size, remove_file

logger = logging.getLogger(__name__)


class OptimizerState(Enum):
    INIT = "init"
    GENERATE_PALETTE = "generate_palette"
    ENCODE = "encode"
    CHECK_SIZE = "check_size"
    DEGRADE = "degrade"
    PASS = "pass"
    FAIL = "fail"


def _apply_step(
    params: EncodeParameters, step: LadderStep, ladder: DegradationLadder
) -> Optional[EncodeParameters]:
    """应用单级降级，前置条件不满足或参数无变化时返回 None"""
    if step.kind == STEP_FPS:
        if params.fps <= step.above:
            return None
        fps = max(step.floor, ladder.min_fps, params.fps - (step.delta or 1))
        if fps >= params.fps:
            return None
        return params.replace(fps=fps)

    if step.kind == STEP_COLORS:
        if params.colors <= step.above:
            return None
        if step.delta is None:
            colors = step.floor
        else:
            colors = max(step.floor, params.colors - step.delta)
        colors = int(max(2, ladder.min_colors, colors))
        if colors >= params.colors:
            return None
        return params.replace(colors=colors)

    if step.kind == STEP_SCALE:
        if max(params.width, params.height) <= step.above:
            return None
        width = max(ladder.min_dimension, int(params.width * step.factor))
        height = max(ladder.min_dimension, int(params.height * step.factor))
        # 只缩小不放大
        width = min(width, params.width)
        height = min(height, params.height)
        if (width, height) == (params.width, params.height):
            return None
        return params.replace(width=width, height=height)

    raise ValueError(f"未知的降级类型: {step.kind}")


def degrade(
    params: EncodeParameters, ladder: Optional[DegradationLadder]
) -> Optional[EncodeParameters]:
    """
    计算下一次尝试的参数

    按阶梯顺序应用第一个前置条件成立的降级；全部不适用时回到逐帧降帧率，
    帧率也到底时返回 None。

    Args:
        params: 上一次尝试的参数
        ladder: 平台降级阶梯

    Returns:
        新参数，阶梯用尽时为 None
    """
    if ladder is None:
        return None

    for step in ladder.steps:
        degraded = _apply_step(params, step, ladder)
        if degraded is not None:
            return degraded

    floor = max(1, ladder.min_fps)
    if params.fps > floor:
        return params.replace(fps=max(floor, params.fps - 1))
    return None


@dataclass
class OptimizationOutcome:
    """优化结果"""

    output_path: str
    size: int
    params: EncodeParameters
    attempts: List[OptimizationAttempt] = field(default_factory=list)
    within_budget: bool = True


class SizeOptimizer:
    """在平台体积上限内寻找画质最高的编码参数"""

    def __init__(
        self,
        codec,
        descriptor: PlatformDescriptor,
        filesystem: Callable[[str], int] = os.path.getsize,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    ):
        self.codec = codec
        self.descriptor = descriptor
        self.filesystem = filesystem
        self.on_progress = on_progress
        self.state = OptimizerState.INIT

    @property
    def platform_id(self) -> str:
        return self.descriptor.platform_id

    def _transition(self, state: OptimizerState, attempt: Optional[int] = None):
        self.state = state
        logger.debug(
            f"状态 → {state.value}",
            extra={"platform": self.platform_id, "attempt": attempt},
        )

    def _emit(self, stage: str, attempt: int, message: str = ""):
        if self.on_progress is None:
            return
        # 10% 起步，尝试越多越接近 90%
        progress = 10 + int(80 * (attempt - 1) / max(1, self.descriptor.max_attempts))
        self.on_progress(
            ProgressEvent(
                platform_id=self.platform_id,
                stage=stage,
                progress=progress,
                attempt=attempt,
                message=message,
            )
        )

    def _stat(self, path: str) -> int:
        try:
            return self.filesystem(path)
        except OSError as e:
            raise FilesystemError(f"无法读取文件大小: {path} ({e})") from e

    def _next_distinct(
        self, params: EncodeParameters, tried: Set[Tuple[str, int]]
    ) -> Optional[EncodeParameters]:
        """降级到一组输出不同于已尝试过的参数，阶梯用尽时返回 None"""
        candidate = degrade(params, self.descriptor.ladder)
        while candidate is not None:
            chain = self.codec.build_chain(candidate)
            if (chain.text, candidate.colors) not in tried:
                return candidate
            candidate = degrade(candidate, self.descriptor.ladder)
        return None

    def optimize(self, initial: EncodeParameters) -> OptimizationOutcome:
        """
        执行尝试循环

        Raises:
            SizeBudgetExceeded: 严格平台在尝试用尽后仍超限
            EncodeInvocationError: 所有尝试都没有产出文件
        """
        max_bytes = self.descriptor.spec.max_bytes
        max_attempts = self.descriptor.max_attempts
        attempts: List[OptimizationAttempt] = []
        tried: Set[Tuple[str, int]] = set()
        best: Optional[OptimizationOutcome] = None
        best_size: Optional[int] = None
        last_error: Optional[EncodeInvocationError] = None

        self._transition(OptimizerState.INIT)
        params = self.codec.fit_frame_budget(initial)

        for index in range(1, max_attempts + 1):
            palette_path = self.codec.palette_path(index)
            output_path = self.codec.output_path(index)
            chain = self.codec.build_chain(params)
            tried.add((chain.text, params.colors))
            try:
                self._transition(OptimizerState.GENERATE_PALETTE, index)
                self._emit("palette", index, params.describe())
                self.codec.generate_palette(chain, params, palette_path)

                self._transition(OptimizerState.ENCODE, index)
                self._emit("encode", index, params.describe())
                self.codec.apply_palette(chain, params, palette_path, output_path)
            except EncodeInvocationError as e:
                last_error = e
                logger.warning(
                    f"第 {index} 次尝试编码失败: {e}",
                    extra={"platform": self.platform_id, "attempt": index},
                )
                attempts.append(
                    OptimizationAttempt(index, params, None, False, error=str(e))
                )
                remove_file(palette_path)
                remove_file(output_path)
            else:
                remove_file(palette_path)

                self._transition(OptimizerState.CHECK_SIZE, index)
                size = self._stat(output_path)
                passed = size <= max_bytes
                attempts.append(OptimizationAttempt(index, params, size, passed))
                self._emit(
                    "check", index, f"{format_size(size)} / {format_size(max_bytes)}"
                )
                logger.info(
                    f"第 {index} 次尝试: {params.describe()} → {format_size(size)}"
                    f"{'' if passed else ' (超限)'}",
                    extra={"platform": self.platform_id, "attempt": index},
                )

                if passed:
                    if best is not None:
                        remove_file(best.output_path)
                    self._transition(OptimizerState.PASS, index)
                    return OptimizationOutcome(
                        output_path=output_path,
                        size=size,
                        params=params,
                        attempts=attempts,
                    )

                if best_size is None or size < best_size:
                    best_size = size
                    if not self.descriptor.strict_budget:
                        if best is not None:
                            remove_file(best.output_path)
                        best = OptimizationOutcome(
                            output_path=output_path,
                            size=size,
                            params=params,
                            within_budget=False,
                        )
                        output_path = None
                if output_path is not None:
                    remove_file(output_path)

            self._transition(OptimizerState.DEGRADE, index)
            next_params = self._next_distinct(params, tried)
            if next_params is None:
                logger.info(
                    "降级阶梯已用尽", extra={"platform": self.platform_id}
                )
                break
            params = next_params

        self._transition(OptimizerState.FAIL)

        if best is not None:
            best.attempts = attempts
            logger.warning(
                f"未能压缩到 {format_size(max_bytes)} 以内，"
                f"保留最小结果 {format_size(best.size)}",
                extra={"platform": self.platform_id},
            )
            return best

        if best_size is None and last_error is not None:
            last_error.attempts = len(attempts)
            raise last_error

        raise SizeBudgetExceeded(
            self.platform_id, len(attempts), max_bytes, best_size=best_size
        )
