#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
帧数预算规划测试
"""

import pytest

from apnger.core.errors import MetadataError
from apnger.core.frames import (
    SAMPLING_SELECT,
    format_rate,
    plan_frame_rate,
    total_source_frames,
    truncate_rate,
)


class TestTotalSourceFrames:
    """源帧数计算测试"""

    def test_floor(self):
        """测试向下取整"""
        assert total_source_frames(2.5, 30) == 75
        assert total_source_frames(2.55, 10) == 25

    @pytest.mark.parametrize("duration,fps", [(0, 30), (-1, 30), (5, 0)])
    def test_invalid_metadata(self, duration, fps):
        """测试时长或帧率非正时报错"""
        with pytest.raises(MetadataError):
            total_source_frames(duration, fps)


class TestPlanFrameRate:
    """输出帧率决策测试"""

    def test_under_budget_keeps_target(self):
        """测试帧数未超预算时保持期望帧率"""
        decision = plan_frame_rate(2.0, 30, 30, max_frames=60)
        assert decision.fps == 30
        assert decision.budget_applied is False
        assert decision.stage == "fps=30"

    def test_no_budget(self):
        """测试没有帧数上限"""
        decision = plan_frame_rate(100.0, 60, 24)
        assert decision.fps == 24
        assert decision.budget_applied is False

    def test_over_budget_caps_fps(self):
        """测试超预算时按上限/时长降帧率"""
        decision = plan_frame_rate(5.0, 30, 30, max_frames=60)
        assert decision.budget_applied is True
        assert decision.fps == pytest.approx(12.0)
        assert decision.stage == "fps=12"
        assert decision.output_frames(5.0) <= 60

    def test_long_high_rate_source(self):
        """测试 10 秒 60fps 源在 60 帧上限下输出 6fps"""
        decision = plan_frame_rate(10.0, 60, 60, max_frames=60)
        assert decision.total_source_frames == 600
        assert decision.fps == 6
        assert decision.stage == "fps=6"
        assert decision.output_frames(10.0) == 60

    def test_never_exceeds_requested_fps(self):
        """测试预算帧率高于期望帧率时仍使用期望帧率"""
        decision = plan_frame_rate(10.0, 30, 5, max_frames=60)
        assert decision.fps == 5

    def test_lower_of_target_and_budget(self):
        """测试取期望帧率与预算帧率中的较小者"""
        decision = plan_frame_rate(10.0, 30, 10, max_frames=60)
        assert decision.fps == pytest.approx(6.0)

    @pytest.mark.parametrize(
        "duration,source_fps,max_frames",
        [(3.3, 30, 60), (7.0, 60, 60), (12.5, 24, 64), (1.1, 60, 60)],
    )
    def test_output_within_budget(self, duration, source_fps, max_frames):
        """测试输出帧数不超过预算"""
        decision = plan_frame_rate(duration, source_fps, source_fps, max_frames=max_frames)
        assert decision.output_frames(duration) <= max_frames
        assert decision.fps <= source_fps

    def test_deterministic_text(self):
        """测试相同输入得到相同的阶段文本"""
        a = plan_frame_rate(7.0, 30, 30, max_frames=60)
        b = plan_frame_rate(7.0, 30, 30, max_frames=60)
        assert a.stage == b.stage
        assert a.stage == f"fps={format_rate(60 / 7.0)}"

    def test_select_sampling(self):
        """测试按模数抽帧"""
        decision = plan_frame_rate(5.0, 30, 30, max_frames=60, sampling=SAMPLING_SELECT)
        assert decision.stride == 3
        assert decision.fps == pytest.approx(10.0)
        assert decision.stage == "select='not(mod(n\\,3))',setpts=N/(10*TB)"
        assert decision.output_frames(5.0) == 50

    def test_select_sampling_respects_requested_fps(self):
        """测试抽帧后的帧率也不超过期望帧率"""
        decision = plan_frame_rate(5.0, 30, 5, max_frames=60, sampling=SAMPLING_SELECT)
        assert decision.fps <= 5
        assert decision.stride == 6

    def test_zero_duration(self):
        """测试时长为 0 报错"""
        with pytest.raises(MetadataError):
            plan_frame_rate(0, 30, 30, max_frames=60)


class TestFormatRate:
    """帧率文本测试"""

    def test_integer(self):
        assert format_rate(12.0) == "12"

    def test_fraction_truncated(self):
        """测试小数部分截断而不是四舍五入"""
        assert format_rate(60 / 7) == "8.57142"
        assert format_rate(60 / 9.7) == "6.18556"

    def test_exact_decimal(self):
        assert format_rate(2.3) == "2.3"
        assert truncate_rate(2.3) == 2.3


class TestStageNeverExceedsCap:
    """滤镜文本中的帧率不高于上限"""

    @staticmethod
    def _stage_fps(stage):
        assert stage.startswith("fps=")
        return float(stage[len("fps="):])

    @pytest.mark.parametrize(
        "duration,source_fps,target_fps,max_frames",
        [
            (9.7, 30, 30, 60),
            (7.0, 30, 30, 60),
            (3.3, 60, 60, 60),
            (11.1, 24, 24, 64),
            (13.37, 60, 25, 60),
            (2.9, 30, 12, 60),
        ],
    )
    def test_stage_within_cap(self, duration, source_fps, target_fps, max_frames):
        decision = plan_frame_rate(duration, source_fps, target_fps, max_frames=max_frames)
        cap = min(target_fps, max_frames / duration)
        stage_fps = self._stage_fps(decision.stage)
        assert stage_fps <= cap
        assert decision.fps <= cap
        # 文本与决策中的帧率一致
        assert stage_fps == pytest.approx(decision.fps, abs=1e-5)
