#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
启动准备模块

统一处理编码、遗留临时目录清理、日志初始化、信号/进程管理、外部工具检测。
"""

import sys
import io
import logging
from typing import Dict, Any

from apnger.utils.process import (
    cleanup_stale_workspaces,
    setup_signal_handlers,
)
from apnger.utils.logging import setup_logging
from apnger.utils.encoder_check import check_tools


def enforce_utf8_windows() -> None:
    """在 Windows 强制 stdout/stderr 使用 UTF-8，避免中文乱码"""
    if sys.platform != "win32":
        return
    if sys.stdout.encoding != "utf-8":
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    if sys.stderr.encoding != "utf-8":
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding="utf-8", errors="replace")


def prepare_environment(config: Dict[str, Any], check: bool = True) -> Dict[str, Any]:
    """
    启动前统一准备工作：编码、日志初始化、信号处理、遗留目录清理、工具检测。

    Args:
        config: 已加载并应用 CLI 覆盖的配置
        check: 是否检测 ffmpeg/ffprobe

    Returns:
        更新后的配置（含日志文件路径与工具检测结果）
    """
    enforce_utf8_windows()

    # 信号处理需尽早注册
    setup_signal_handlers()

    logging_cfg = config.get("logging", {})
    log_file = setup_logging(
        config["paths"]["log"],
        level=logging_cfg.get("level", "INFO"),
        plain=logging_cfg.get("plain", False),
        json_console=logging_cfg.get("json_console", False),
        console_level=logging_cfg.get("console_level"),
    )
    config.setdefault("logging", {})["log_file"] = log_file

    cleaned = cleanup_stale_workspaces(config["paths"]["output"])
    if cleaned > 0:
        logging.info(f"启动清理: 删除 {cleaned} 个遗留临时目录")

    config["tools"] = {"ok": True, "problems": []}
    if check:
        logging.info("检测外部工具可用性...")
        ffmpeg_cfg = config.get("ffmpeg", {})
        ok, problems = check_tools(
            ffmpeg_cfg.get("ffmpeg_path", "ffmpeg"),
            ffmpeg_cfg.get("ffprobe_path", "ffprobe"),
        )
        for problem in problems:
            logging.error(problem)
        config["tools"] = {"ok": ok, "problems": problems}

    return config
