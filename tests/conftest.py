#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
pytest 配置文件
"""

import os
import sys
import copy
import threading

import pytest

# 添加项目根目录到 Python 路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from apnger.config.defaults import DEFAULT_CONFIG
from apnger.core.errors import EncodeInvocationError
from apnger.core.models import VideoMetadata


class FakeEncoder:
    """
    编码器测试替身

    不调用 ffmpeg，按脚本写出指定大小的文件并记录调用。

    Args:
        sizes: {平台标识: [第1次编码大小, 第2次, ...]}，用尽后重复最后一个
        default_size: 未指定平台时的输出大小
        fail_platforms: 编码总是失败的平台
        fail_attempts: {平台标识: {失败的尝试序号}}
        frames_to_write: 抽帧时实际写出的帧数，None 表示按请求帧数
        sheet_size: 拼图输出大小
    """

    def __init__(
        self,
        sizes=None,
        default_size=1000,
        fail_platforms=(),
        fail_attempts=None,
        frames_to_write=None,
        sheet_size=2048,
    ):
        self.sizes = sizes or {}
        self.default_size = default_size
        self.fail_platforms = set(fail_platforms)
        self.fail_attempts = fail_attempts or {}
        self.frames_to_write = frames_to_write
        self.sheet_size = sheet_size
        self.calls = []
        self._encode_counts = {}
        self._lock = threading.Lock()

    @staticmethod
    def _write(path, size):
        with open(path, "wb") as f:
            f.write(b"\0" * size)

    @staticmethod
    def _platform_of(path):
        name = os.path.basename(path)
        for marker in ("_attempt_", "_palette_"):
            if marker in name:
                return name.split(marker)[0], int(name.split(marker)[1].split(".")[0])
        return None, None

    def calls_of(self, method):
        return [c for c in self.calls if c[0] == method]

    def generate_palette(self, source, filter_text, colors, stats_mode, palette_path, trim=None):
        with self._lock:
            self.calls.append(("generate_palette", dict(
                source=source, filter_text=filter_text, colors=colors,
                stats_mode=stats_mode, palette_path=palette_path, trim=trim,
            )))
        platform, attempt = self._platform_of(palette_path)
        if platform in self.fail_platforms:
            raise EncodeInvocationError("调色板生成失败: No such filter:", stderr="No such filter:")
        self._write(palette_path, 768)

    def encode(self, source, filter_text, palette_path, dither_text, output_path,
               extra_flags=(), trim=None):
        with self._lock:
            self.calls.append(("encode", dict(
                source=source, filter_text=filter_text, palette_path=palette_path,
                dither_text=dither_text, output_path=output_path,
                extra_flags=list(extra_flags), trim=trim,
            )))
        platform, attempt = self._platform_of(output_path)
        if attempt in self.fail_attempts.get(platform, ()):
            raise EncodeInvocationError("编码失败: Conversion failed", stderr="Conversion failed")
        with self._lock:
            index = self._encode_counts.get(platform, 0)
            self._encode_counts[platform] = index + 1
        scripted = self.sizes.get(platform)
        if scripted:
            size = scripted[min(index, len(scripted) - 1)]
        else:
            size = self.default_size
        self._write(output_path, size)

    def extract_frames(self, source, filter_text, frame_count, frame_pattern, trim=None):
        with self._lock:
            self.calls.append(("extract_frames", dict(
                source=source, filter_text=filter_text, frame_count=frame_count,
                frame_pattern=frame_pattern, trim=trim,
            )))
        count = frame_count if self.frames_to_write is None else self.frames_to_write
        for i in range(1, count + 1):
            self._write(frame_pattern % i, 16)

    def tile_frames(self, frame_pattern, fps, grid_size, sheet_size, output_path):
        with self._lock:
            self.calls.append(("tile_frames", dict(
                frame_pattern=frame_pattern, fps=fps, grid_size=grid_size,
                sheet_size=sheet_size, output_path=output_path,
            )))
        self._write(output_path, self.sheet_size)

    def extract_still(self, source, filter_text, timestamp, output_path):
        with self._lock:
            self.calls.append(("extract_still", dict(
                source=source, filter_text=filter_text, timestamp=timestamp,
                output_path=output_path,
            )))
        self._write(output_path, 64)


@pytest.fixture
def fake_encoder_cls():
    return FakeEncoder


@pytest.fixture
def metadata(tmp_path):
    """1920x1080, 30fps, 5 秒的源视频"""
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"\0" * 10)
    return VideoMetadata(
        path=str(source), width=1920, height=1080, fps=30, duration=5.0, size=10
    )


@pytest.fixture
def square_metadata(tmp_path):
    """640x640, 24fps, 2 秒的源视频"""
    source = tmp_path / "square.mp4"
    source.write_bytes(b"\0" * 10)
    return VideoMetadata(
        path=str(source), width=640, height=640, fps=24, duration=2.0, size=10
    )


@pytest.fixture
def sample_config(tmp_path):
    """返回测试用配置"""
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["paths"]["output"] = str(tmp_path / "output")
    config["paths"]["log"] = str(tmp_path / "logs")
    return config
