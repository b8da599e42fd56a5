#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
文件操作工具模块

临时工作目录、文件大小、移动与输出命名
"""

import os
import shutil
import logging
import tempfile
from contextlib import contextmanager
from typing import Iterator

from apnger.config.defaults import WORKSPACE_PREFIX
from apnger.core.errors import FilesystemError

logger = logging.getLogger(__name__)


def format_size(size_bytes: float) -> str:
    """人类可读的文件大小"""
    if size_bytes >= 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.2f}MB"
    return f"{size_bytes / 1024:.1f}KB"


def get_file_size(path: str) -> int:
    """
    读取文件大小

    Raises:
        FilesystemError: 文件不存在或无法访问
    """
    try:
        return os.path.getsize(path)
    except OSError as e:
        raise FilesystemError(f"无法读取文件大小: {path} ({e})") from e


def remove_file(path: str) -> None:
    """删除中间产物，失败只记录日志"""
    if not path or not os.path.exists(path):
        return
    try:
        os.remove(path)
    except OSError as e:
        logger.warning(f"[清理] 删除文件失败 {path}: {e}")


def move_file(src: str, dst: str) -> str:
    """
    移动文件（覆盖已存在的目标）

    Raises:
        FilesystemError: 移动失败
    """
    try:
        os.makedirs(os.path.dirname(os.path.abspath(dst)), exist_ok=True)
        if os.path.exists(dst):
            os.remove(dst)
        shutil.move(src, dst)
    except OSError as e:
        raise FilesystemError(f"无法移动文件 {src} → {dst}: {e}") from e
    return dst


def output_name(base_name: str, platform_id: str, extension: str) -> str:
    """最终输出文件名: {base}_{platform}.{ext}"""
    return f"{base_name}_{platform_id}.{extension}"


def create_workspace(output_dir: str) -> str:
    """
    在输出目录下创建随机命名的临时工作目录

    Raises:
        FilesystemError: 创建失败
    """
    try:
        os.makedirs(output_dir, exist_ok=True)
        return tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=output_dir)
    except OSError as e:
        raise FilesystemError(f"无法创建临时工作目录: {output_dir} ({e})") from e


def remove_workspace(path: str) -> None:
    """删除临时工作目录，失败只记录日志"""
    if not path or not os.path.isdir(path):
        return
    try:
        shutil.rmtree(path)
        logger.debug(f"[清理] 删除临时工作目录: {path}")
    except OSError as e:
        logger.warning(f"[清理] 删除临时工作目录失败 {path}: {e}")


@contextmanager
def workspace(output_dir: str) -> Iterator[str]:
    """临时工作目录的作用域：退出时无论成功失败都会删除"""
    path = create_workspace(output_dir)
    try:
        yield path
    finally:
        remove_workspace(path)


def platform_workdir(root: str, platform_id: str) -> str:
    """每个平台独立的子目录"""
    path = os.path.join(root, platform_id)
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"无法创建平台目录: {path} ({e})") from e
    return path
