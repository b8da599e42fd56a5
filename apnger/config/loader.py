#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
配置加载器

支持从 YAML 文件加载配置，并实现配置优先级合并
优先级: 命令行参数 > 配置文件 > 程序默认值
"""

import os
import logging
import copy
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

from apnger.config.defaults import (
    DEFAULT_CONFIG,
    DEFAULT_LOG_FOLDER,
    DEFAULT_OUTPUT_FOLDER,
)
from apnger.core.models import ProcessingOptions


def find_default_config() -> Optional[str]:
    """
    查找默认配置文件

    按以下顺序查找:
    1. 程序同目录下的 config.yaml
    2. 用户目录下的 .apnger/config.yaml

    Returns:
        找到的配置文件路径，如果没找到返回 None
    """
    script_dir = Path(__file__).parent.parent.parent
    local_config = script_dir / "config.yaml"
    if local_config.exists():
        return str(local_config)

    home_config = Path.home() / ".apnger" / "config.yaml"
    if home_config.exists():
        return str(home_config)

    return None


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    深度合并两个字典，override 中的值会覆盖 base 中的值

    Args:
        base: 基础字典
        override: 覆盖字典

    Returns:
        合并后的字典
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    加载配置文件

    Args:
        config_path: 配置文件路径，如果为 None 则使用默认路径

    Returns:
        配置字典
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path is None:
        config_path = find_default_config()
    elif not os.path.exists(config_path):
        logging.warning(f"配置文件不存在: {config_path}，使用默认配置")
        return config

    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logging.warning(f"加载配置文件失败: {e}，使用默认配置")
            return config

        if not isinstance(file_config, dict):
            logging.warning(f"配置文件格式错误（顶层应为映射）: {config_path}")
            return config

        logging.info(f"已加载配置文件: {config_path}")
        return deep_merge(config, file_config)

    return config


def apply_cli_overrides(config: Dict[str, Any], args) -> Dict[str, Any]:
    """
    将命令行参数覆盖到配置中

    优先级: 命令行参数 > 配置文件 > 程序默认值

    Args:
        config: 配置字典
        args: 命令行参数

    Returns:
        更新后的配置字典
    """
    # 路径覆盖
    paths = config.setdefault("paths", {})
    if getattr(args, "output", None) and args.output != DEFAULT_OUTPUT_FOLDER:
        paths["output"] = args.output
    if getattr(args, "log", None) and args.log != DEFAULT_LOG_FOLDER:
        paths["log"] = args.log

    # 处理选项覆盖
    processing = config.setdefault("processing", {})
    if getattr(args, "chroma_key", None):
        chroma = dict(processing.get("chroma_key") or {})
        chroma["enabled"] = True
        chroma["color"] = args.chroma_key
        processing["chroma_key"] = chroma
    if getattr(args, "similarity", None) is not None:
        processing["chroma_key"] = dict(processing.get("chroma_key") or {})
        processing["chroma_key"]["similarity"] = args.similarity
    if getattr(args, "blend", None) is not None:
        processing["chroma_key"] = dict(processing.get("chroma_key") or {})
        processing["chroma_key"]["blend"] = args.blend
    if getattr(args, "crop", None):
        processing["crop"] = args.crop
    if getattr(args, "trim", None):
        start, end = args.trim
        processing["trim"] = {"start": start, "end": end}
    if getattr(args, "quality", None):
        processing["quality"] = args.quality

    # 导出覆盖
    export = config.setdefault("export", {})
    if getattr(args, "platforms", None):
        export["platforms"] = [
            p.strip() for p in args.platforms.split(",") if p.strip()
        ]
    if getattr(args, "max_workers", None):
        export["max_workers"] = args.max_workers
    if getattr(args, "preview", False):
        export["preview"] = True

    if getattr(args, "print_cmd", False):
        config.setdefault("ffmpeg", {})["print_cmd"] = True

    # 日志覆盖
    logging_cfg = config.setdefault("logging", {})
    verbose = getattr(args, "verbose", 0) or 0
    quiet = getattr(args, "quiet", 0) or 0
    if verbose:
        logging_cfg["level"] = "DEBUG"
    elif quiet == 1:
        logging_cfg["level"] = "WARNING"
    elif quiet >= 2:
        logging_cfg["level"] = "ERROR"
    if getattr(args, "plain", False):
        logging_cfg["plain"] = True
    if getattr(args, "json_logs", False):
        logging_cfg["json_console"] = True
    if getattr(args, "no_progress", False):
        logging_cfg["show_progress"] = False

    return config


def options_from_config(config: Dict[str, Any]) -> ProcessingOptions:
    """
    从合并后的配置构建处理选项

    Raises:
        ValidationError: 处理选项不合法
    """
    processing = {
        key: value
        for key, value in (config.get("processing") or {}).items()
        if value is not None
    }
    return ProcessingOptions.from_dict(processing)
