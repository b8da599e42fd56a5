#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
异常定义

MetadataError 会终止整个导出请求；其余异常只影响单个平台，
由编排层捕获并转换为失败的 ExportResult。
"""

from typing import Optional


class ApngerError(Exception):
    """所有导出引擎异常的基类"""


class ValidationError(ApngerError, ValueError):
    """用户参数（裁剪、抠像、裁切时间、平台标识）不合法"""


class MetadataError(ApngerError):
    """源视频元数据不可用或无效（致命，终止整个请求）"""


class NoVideoStream(MetadataError):
    """源文件中没有视频流"""

    def __init__(self, path: str):
        super().__init__(f"文件中没有视频流: {path}")
        self.path = path


class UnreadableMetadata(MetadataError):
    """ffprobe 失败或输出无法解析"""

    def __init__(self, path: str, reason: Optional[str] = None):
        message = f"无法读取视频元数据: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.path = path
        self.reason = reason


class EncodeInvocationError(ApngerError):
    """ffmpeg 进程以非零状态退出、超时或无法启动"""

    def __init__(self, message: str, stderr: str = "", attempts: int = 0):
        super().__init__(message)
        self.stderr = stderr
        # 优化器放弃前已执行的尝试次数
        self.attempts = attempts


class SizeBudgetExceeded(ApngerError):
    """尝试次数用尽仍未满足体积上限"""

    def __init__(
        self,
        platform_id: str,
        attempts: int,
        max_bytes: int,
        best_size: Optional[int] = None,
    ):
        limit_kb = max_bytes / 1024
        message = (
            f"{platform_id} 在 {attempts} 次尝试后仍无法压缩到 {limit_kb:.0f}KB 以内"
        )
        if best_size is not None:
            message += f"（最小结果 {best_size / 1024:.0f}KB）"
        message += "，请尝试更短的片段或更低的画质预设"
        super().__init__(message)
        self.platform_id = platform_id
        self.attempts = attempts
        self.max_bytes = max_bytes
        self.best_size = best_size


class FilesystemError(ApngerError):
    """临时目录、文件大小读取或移动失败"""
