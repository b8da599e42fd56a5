#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
FFmpeg 编码器模块

构建和执行 FFmpeg 命令：调色板生成、调色板量化编码、抽帧、拼图、单帧预览
"""

import subprocess
import logging
from typing import List, Optional, Sequence, Tuple

from apnger.core.errors import EncodeInvocationError
from apnger.core.models import ContainerKind, TrimWindow

logger = logging.getLogger(__name__)

# 常见的 ffmpeg 错误模式，命中时直接作为错误信息
KNOWN_ERRORS = [
    "No such filter:",
    "Invalid data found when processing input",
    "No such file or directory",
    "Error opening output",
    "Unknown encoder",
    "Impossible to convert between the formats",
    "Error initializing filter",
]

STDERR_TAIL = 500


def format_time(seconds: float) -> str:
    return f"{seconds:.3f}"


def format_command(cmd: Sequence[str]) -> str:
    return " ".join(f'"{arg}"' if " " in str(arg) else str(arg) for arg in cmd)


def execute_ffmpeg(cmd: list, timeout: Optional[float] = None) -> Tuple[bool, Optional[str]]:
    """
    执行 FFmpeg 命令并检查错误

    Args:
        cmd: FFmpeg 命令列表
        timeout: 超时秒数，None 表示不限

    Returns:
        (成功标志, 错误信息)
    """
    from apnger.utils.process import (
        register_process,
        unregister_process,
        is_shutdown_requested,
    )

    if is_shutdown_requested():
        return False, "程序正在退出"

    logger.debug(f"FFmpeg 命令: {format_command(cmd)}")

    try:
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            universal_newlines=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as e:
        return False, f"无法启动 ffmpeg: {e}"

    register_process(process)
    try:
        try:
            _, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            return False, f"ffmpeg 执行超时（{timeout}s）"
    finally:
        unregister_process(process)

    if process.returncode != 0:
        stderr = stderr or ""
        for error_pattern in KNOWN_ERRORS:
            if error_pattern in stderr:
                return False, error_pattern
        return False, stderr[-STDERR_TAIL:] if len(stderr) > STDERR_TAIL else stderr

    return True, None


# ============================================================
# 命令构建
# ============================================================


def build_input_args(source: str, trim: Optional[TrimWindow] = None) -> List[str]:
    """输入参数，裁切使用输入端 seek 以加快处理"""
    args: List[str] = []
    if trim is not None:
        args.extend(["-ss", format_time(trim.start), "-to", format_time(trim.end)])
    args.extend(["-i", source])
    return args


def container_flags(
    container: ContainerKind, compression_level: Optional[int] = None
) -> List[str]:
    """输出容器相关参数（无限循环播放）"""
    if container is ContainerKind.APNG:
        flags = ["-f", "apng", "-plays", "0"]
        if compression_level is not None:
            flags.extend(["-compression_level", str(compression_level)])
        return flags
    if container is ContainerKind.GIF:
        return ["-loop", "0"]
    return []


def build_palette_command(
    ffmpeg: str,
    source: str,
    filter_text: str,
    colors: int,
    stats_mode: str,
    palette_path: str,
    trim: Optional[TrimWindow] = None,
) -> List[str]:
    """第一遍：从滤镜后的画面提取调色板"""
    palettegen = f"palettegen=max_colors={colors}"
    if stats_mode:
        palettegen += f":stats_mode={stats_mode}"
    cmd = [ffmpeg, "-y", "-hide_banner"]
    cmd.extend(build_input_args(source, trim))
    cmd.extend(["-vf", f"{filter_text},{palettegen}", palette_path])
    return cmd


def build_encode_command(
    ffmpeg: str,
    source: str,
    filter_text: str,
    palette_path: str,
    dither_text: str,
    output_path: str,
    extra_flags: Sequence[str] = (),
    trim: Optional[TrimWindow] = None,
) -> List[str]:
    """第二遍：同一滤镜链 + 调色板量化"""
    cmd = [ffmpeg, "-y", "-hide_banner"]
    cmd.extend(build_input_args(source, trim))
    cmd.extend(["-i", palette_path])
    cmd.extend(["-lavfi", f"{filter_text}[x];[x][1:v]paletteuse={dither_text}"])
    cmd.extend(extra_flags)
    cmd.append(output_path)
    return cmd


def build_frames_command(
    ffmpeg: str,
    source: str,
    filter_text: str,
    frame_count: int,
    frame_pattern: str,
    trim: Optional[TrimWindow] = None,
) -> List[str]:
    """逐帧导出 PNG"""
    cmd = [ffmpeg, "-y", "-hide_banner"]
    cmd.extend(build_input_args(source, trim))
    cmd.extend(
        [
            "-vf", filter_text,
            "-frames:v", str(frame_count),
            "-fps_mode", "passthrough",
            frame_pattern,
        ]
    )
    return cmd


def build_tile_command(
    ffmpeg: str,
    frame_pattern: str,
    fps: int,
    grid_size: int,
    sheet_size: int,
    output_path: str,
) -> List[str]:
    """把帧序列按行优先拼成一张图，多余格子保持透明"""
    tile_filter = (
        f"format=rgba,"
        f"tile={grid_size}x{grid_size}:color=0x00000000,"
        f"pad={sheet_size}:{sheet_size}:0:0:color=0x00000000"
    )
    return [
        ffmpeg, "-y", "-hide_banner",
        "-framerate", str(fps),
        "-i", frame_pattern,
        "-vf", tile_filter,
        "-frames:v", "1",
        output_path,
    ]


def build_still_command(
    ffmpeg: str,
    source: str,
    filter_text: str,
    timestamp: float,
    output_path: str,
) -> List[str]:
    """在指定时间点导出单帧"""
    return [
        ffmpeg, "-y", "-hide_banner",
        "-ss", format_time(timestamp),
        "-i", source,
        "-vf", filter_text,
        "-frames:v", "1",
        output_path,
    ]


class FFmpegEncoder:
    """
    外部编码器能力

    每个方法都是阻塞调用；ffmpeg 非零退出、超时或无法启动时抛出 EncodeInvocationError。
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout: Optional[float] = None,
        print_cmd: bool = False,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.print_cmd = print_cmd

    def _run(self, cmd: List[str], label: str) -> None:
        if self.print_cmd:
            logger.info(f"[命令] {format_command(cmd)}", extra={"stage": label})
        success, error = execute_ffmpeg(cmd, timeout=self.timeout)
        if not success:
            raise EncodeInvocationError(f"{label}失败: {error}", stderr=error or "")

    def generate_palette(
        self,
        source: str,
        filter_text: str,
        colors: int,
        stats_mode: str,
        palette_path: str,
        trim: Optional[TrimWindow] = None,
    ) -> None:
        cmd = build_palette_command(
            self.ffmpeg_path, source, filter_text, colors, stats_mode, palette_path, trim
        )
        self._run(cmd, "调色板生成")

    def encode(
        self,
        source: str,
        filter_text: str,
        palette_path: str,
        dither_text: str,
        output_path: str,
        extra_flags: Sequence[str] = (),
        trim: Optional[TrimWindow] = None,
    ) -> None:
        cmd = build_encode_command(
            self.ffmpeg_path,
            source,
            filter_text,
            palette_path,
            dither_text,
            output_path,
            extra_flags,
            trim,
        )
        self._run(cmd, "编码")

    def extract_frames(
        self,
        source: str,
        filter_text: str,
        frame_count: int,
        frame_pattern: str,
        trim: Optional[TrimWindow] = None,
    ) -> None:
        cmd = build_frames_command(
            self.ffmpeg_path, source, filter_text, frame_count, frame_pattern, trim
        )
        self._run(cmd, "抽帧")

    def tile_frames(
        self,
        frame_pattern: str,
        fps: int,
        grid_size: int,
        sheet_size: int,
        output_path: str,
    ) -> None:
        cmd = build_tile_command(
            self.ffmpeg_path, frame_pattern, fps, grid_size, sheet_size, output_path
        )
        self._run(cmd, "精灵图拼接")

    def extract_still(
        self, source: str, filter_text: str, timestamp: float, output_path: str
    ) -> None:
        cmd = build_still_command(
            self.ffmpeg_path, source, filter_text, timestamp, output_path
        )
        self._run(cmd, "预览帧导出")
