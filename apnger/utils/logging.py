#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
日志配置

每条导出日志可通过 extra 携带平台、尝试序号、源文件和阶段。
控制台把平台与尝试序号渲染为行首标签，便于并行导出时区分各平台；
日志文件保留全部 key=value 字段；JSON 行输出供 CI 或前端采集。
"""

import os
import sys
import json
import logging
import datetime
from typing import Any, Dict

import colorama

# 行首标签之外的上下文字段
TRAILER_KEYS = ("file", "stage")
CONTEXT_KEYS = ("platform", "attempt") + TRAILER_KEYS

LEVEL_COLORS = {
    logging.DEBUG: colorama.Fore.LIGHTBLACK_EX,
    logging.WARNING: colorama.Fore.YELLOW,
    logging.ERROR: colorama.Fore.RED,
    logging.CRITICAL: colorama.Back.RED,
}
TAG_COLOR = colorama.Fore.CYAN


def _resolve_level(level: Any) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    context = {}
    for key in CONTEXT_KEYS:
        value = getattr(record, key, None)
        if value not in (None, ""):
            context[key] = value
    return context


def _emote_tag(context: Dict[str, Any]) -> str:
    """平台与尝试序号组成的标签，如 [twitch #3]"""
    platform = context.get("platform")
    if platform is None:
        return ""
    attempt = context.get("attempt")
    return f"[{platform} #{attempt}]" if attempt else f"[{platform}]"


class ConsoleFormatter(logging.Formatter):
    """控制台：时间 级别 [平台 #尝试] 消息 (file=... stage=...)"""

    def __init__(self, enable_color: bool = False):
        super().__init__()
        self.enable_color = enable_color

    def format(self, record: logging.LogRecord) -> str:
        context = _context(record)
        tag = _emote_tag(context)
        trailer = " ".join(f"{k}={context[k]}" for k in TRAILER_KEYS if k in context)
        message = record.getMessage()
        if trailer:
            message = f"{message} ({trailer})"

        ts = datetime.datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<5}"
        if self.enable_color:
            color = LEVEL_COLORS.get(record.levelno)
            if color:
                level = f"{color}{level}{colorama.Style.RESET_ALL}"
                message = f"{color}{message}{colorama.Style.RESET_ALL}"
            if tag:
                tag = f"{TAG_COLOR}{tag}{colorama.Style.RESET_ALL}"
        return " ".join(part for part in (ts, level, tag, message) if part)


class FileFormatter(logging.Formatter):
    """日志文件：全部上下文以 key=value 记录，附带异常堆栈"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.datetime.fromtimestamp(record.created).strftime(
            "%Y-%m-%d %H:%M:%S"
        )
        fields = " ".join(f"{k}={v}" for k, v in _context(record).items())
        line = f"{ts} | {record.levelname:<7} | {record.name} | {record.getMessage()}"
        if fields:
            line = f"{line} | {fields}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class JsonFormatter(logging.Formatter):
    """JSON 行：上下文字段作为顶层键"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(_context(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(
    log_folder: str,
    level: Any = "INFO",
    plain: bool = False,
    json_console: bool = False,
    console_level: Any = None,
) -> str:
    """
    配置根日志记录器：文件记录全部 DEBUG 日志，控制台按级别过滤

    Args:
        log_folder: 日志文件夹路径
        level: 日志级别（字符串或数字）
        plain: 控制台禁用彩色
        json_console: 控制台使用 JSON 行输出
        console_level: 控制台单独的级别，默认为 level

    Returns:
        日志文件路径
    """
    os.makedirs(log_folder, exist_ok=True)
    timestamp = datetime.datetime.now().strftime("%Y%m%d%H%M%S")
    log_file = os.path.join(log_folder, f"export_{timestamp}.log")

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(FileFormatter())
    root.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(_resolve_level(console_level or level))
    if json_console:
        console_handler.setFormatter(JsonFormatter())
    else:
        color = not plain and sys.stdout.isatty()
        if color:
            # Windows 终端需要 colorama 转换 ANSI 转义
            colorama.init()
        console_handler.setFormatter(ConsoleFormatter(enable_color=color))
    root.addHandler(console_handler)

    root.log(_resolve_level(level), f"日志写入 {log_file}")
    return log_file
