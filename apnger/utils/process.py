#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
进程管理模块

管理 FFmpeg 子进程，支持优雅退出时清理所有进程
"""

import os
import shutil
import signal
import logging
import time
import threading
from typing import Optional, Set

from apnger.config.defaults import STALE_WORKSPACE_AGE, WORKSPACE_PREFIX

# 全局进程集合和锁
_ffmpeg_processes: Set = set()
_process_lock = threading.Lock()
_shutdown_requested = False


def register_process(process) -> None:
    """
    注册一个 FFmpeg 进程到全局集合

    Args:
        process: subprocess.Popen 对象
    """
    with _process_lock:
        _ffmpeg_processes.add(process)


def unregister_process(process) -> None:
    with _process_lock:
        _ffmpeg_processes.discard(process)


def is_shutdown_requested() -> bool:
    return _shutdown_requested


def terminate_all_ffmpeg() -> None:
    """
    终止所有注册的 FFmpeg 进程

    先发 SIGTERM，3 秒内未退出再 SIGKILL。
    """
    global _shutdown_requested
    _shutdown_requested = True

    with _process_lock:
        processes = list(_ffmpeg_processes)

    if not processes:
        return

    logging.info(f"正在终止 {len(processes)} 个 FFmpeg 进程...")

    for process in processes:
        try:
            if process.poll() is None:
                process.terminate()
                logging.debug(f"已发送 SIGTERM 到进程 {process.pid}")
        except OSError as e:
            logging.warning(f"终止进程时出错: {e}")

    for process in processes:
        try:
            if process.poll() is None:
                process.wait(timeout=3)
        except Exception:
            try:
                process.kill()
                logging.debug(f"已发送 SIGKILL 到进程 {process.pid}")
            except OSError as e:
                logging.warning(f"强制结束进程失败: {e}")

    logging.info("所有 FFmpeg 进程已终止")


def cleanup_stale_workspaces(
    output_dir: str,
    max_age: float = STALE_WORKSPACE_AGE,
    now: Optional[float] = None,
) -> int:
    """
    清理上次异常退出遗留的临时工作目录

    同一输出目录可能有其他导出正在进行，最近修改过的工作目录保留不动。

    Args:
        output_dir: 输出目录
        max_age: 目录最后修改距今超过该秒数才删除
        now: 当前时间戳，默认 time.time()

    Returns:
        清理的目录数量
    """
    if not os.path.isdir(output_dir):
        return 0

    cutoff = (time.time() if now is None else now) - max_age
    cleaned_count = 0
    for entry in os.listdir(output_dir):
        path = os.path.join(output_dir, entry)
        if not entry.startswith(WORKSPACE_PREFIX) or not os.path.isdir(path):
            continue
        try:
            if os.path.getmtime(path) > cutoff:
                logging.debug(f"[清理] 跳过仍在使用的临时目录: {path}")
                continue
            shutil.rmtree(path)
            logging.info(f"[清理] 删除遗留临时目录: {path}")
            cleaned_count += 1
        except OSError as e:
            logging.warning(f"[清理] 删除遗留临时目录失败 {path}: {e}")

    return cleaned_count


def setup_signal_handlers() -> None:
    """
    设置信号处理器，捕获 SIGINT (Ctrl+C) 和 SIGTERM
    """

    def signal_handler(signum, frame):
        sig_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        logging.warning(f"收到 {sig_name} 信号，正在清理...")
        terminate_all_ffmpeg()
        raise KeyboardInterrupt()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
