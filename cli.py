#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
APNGer - CLI 入口

命令行参数解析，把一个视频导出为各平台的动态表情
"""

import os
import sys
import logging
import argparse
import traceback
from typing import Dict, Any, List

# 确保可以导入 apnger 模块
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from apnger.bootstrap import prepare_environment
from apnger.config import load_config, apply_cli_overrides, options_from_config
from apnger.config.defaults import DEFAULT_LOG_FOLDER, DEFAULT_OUTPUT_FOLDER
from apnger.core.encoder import FFmpegEncoder
from apnger.core.errors import ApngerError, MetadataError, ValidationError
from apnger.core.models import ProgressEvent, QualityPreset
from apnger.core.platforms import list_platforms
from apnger.core.video import FFprobeProber
from apnger.service import ExportOrchestrator, PlatformPlan, summarize_results
from apnger.utils.process import terminate_all_ffmpeg


def parse_crop(value: str) -> Dict[str, int]:
    """解析 X,Y,W,H 形式的裁剪区域"""
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError(f"裁剪区域格式应为 X,Y,W,H: {value}")
    try:
        x, y, width, height = (int(p) for p in parts)
    except ValueError:
        raise argparse.ArgumentTypeError(f"裁剪区域必须是整数: {value}") from None
    return {"x": x, "y": y, "width": width, "height": height}


def parse_arguments(argv: List[str] = None):
    """解析命令行参数"""
    parser = argparse.ArgumentParser(
        description="APNGer - 视频转 Twitch / Discord / 7TV 动态表情",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
可用平台: {', '.join(list_platforms())}

使用示例:
  # 导出全部平台
  python main.py input.mp4 -o ./output

  # 绿幕抠像，只导出 Discord 贴纸
  python main.py input.mp4 -p discord-sticker --chroma-key "#00FF00"

  # 查看导出计划（不实际编码）
  python main.py input.mp4 --dry-run
        """,
    )

    parser.add_argument("input", help="输入视频文件")
    parser.add_argument("-o", "--output", default=DEFAULT_OUTPUT_FOLDER,
                        help=f"输出文件夹路径 (默认: {DEFAULT_OUTPUT_FOLDER})")
    parser.add_argument("-l", "--log", default=DEFAULT_LOG_FOLDER,
                        help=f"日志文件夹路径 (默认: {DEFAULT_LOG_FOLDER})")
    parser.add_argument("-p", "--platforms", default=None,
                        help="逗号分隔的平台列表 (默认: 全部)")

    # 处理选项
    parser.add_argument("--chroma-key", metavar="COLOR", default=None,
                        help="启用抠像并指定颜色，如 #00FF00")
    parser.add_argument("--similarity", type=float, default=None,
                        help="抠像相似度 0-1 (默认: 0.3)")
    parser.add_argument("--blend", type=float, default=None,
                        help="抠像边缘过渡 0-1 (默认: 0.1)")
    parser.add_argument("--crop", type=parse_crop, default=None, metavar="X,Y,W,H",
                        help="源视频坐标系中的裁剪区域")
    parser.add_argument("--trim", type=float, nargs=2, default=None,
                        metavar=("START", "END"), help="只导出 START-END 秒")
    parser.add_argument("--quality", choices=[q.value for q in QualityPreset],
                        default=None, help="画质预设 (默认: balanced)")

    # 配置文件选项
    parser.add_argument("--config", type=str, default=None,
                        help="配置文件路径 (YAML 格式)")

    # 执行选项
    parser.add_argument("--max-workers", type=int, default=None,
                        help="并行导出的平台数 (默认: 1)")
    parser.add_argument("--preview", action="store_true",
                        help="额外导出每个平台的单帧预览")
    parser.add_argument("--dry-run", action="store_true",
                        help="仅显示导出计划，不实际编码")

    # 日志选项
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="count", default=0, help="输出调试日志")
    verbosity.add_argument("-q", "--quiet", action="count", default=0,
                           help="减少输出：-q 只显示警告，-qq 只显示错误")
    parser.add_argument("--plain", action="store_true", help="禁用彩色输出")
    parser.add_argument("--json-logs", action="store_true", help="控制台输出 JSON 行日志")
    parser.add_argument("--no-progress", action="store_true", help="不显示进度")
    parser.add_argument("--print-cmd", action="store_true", help="打印每条 ffmpeg 命令")

    return parser.parse_args(argv)


def log_plan(plans: List[PlatformPlan]) -> None:
    """输出导出计划"""
    logging.info("[DRY RUN] 预览模式，不实际执行")
    for plan in plans:
        spec = plan.descriptor.spec
        logging.info(f"- {spec.display_name} ({spec.platform_id}): {spec.description}")
        if plan.sprite_plan is not None:
            sp = plan.sprite_plan
            logging.info(
                f"    {sp.frame_count} 帧 @ {sp.target_fps}fps, "
                f"{sp.grid_size}x{sp.grid_size} 网格, 单元 {sp.cell_size}px"
            )
            continue
        logging.info(f"    首轮参数: {plan.params.describe()}")
        logging.info(f"    滤镜链: {plan.chain.text}")


def make_progress_logger(enabled: bool):
    if not enabled:
        return None

    def on_progress(event: ProgressEvent) -> None:
        attempt = f" #{event.attempt}" if event.attempt else ""
        logging.info(
            f"[进度] {event.stage}{attempt} {event.progress}% {event.message}".rstrip(),
            extra={"platform": event.platform_id},
        )

    return on_progress


def run(args, config: Dict[str, Any]) -> int:
    """运行导出任务"""
    ffmpeg_cfg = config["ffmpeg"]
    encoder = FFmpegEncoder(
        ffmpeg_cfg["ffmpeg_path"],
        timeout=ffmpeg_cfg.get("timeout"),
        print_cmd=ffmpeg_cfg.get("print_cmd", False),
    )
    prober = FFprobeProber(ffmpeg_cfg["ffprobe_path"], timeout=ffmpeg_cfg.get("probe_timeout"))
    orchestrator = ExportOrchestrator(encoder, prober, config)

    options = options_from_config(config)
    platforms = config["export"]["platforms"]
    output_folder = config["paths"]["output"]

    logging.info("=" * 60)
    logging.info("APNGer - 动态表情导出")
    logging.info("=" * 60)
    logging.info(f"输入文件: {args.input}")
    logging.info(f"输出目录: {output_folder}")
    logging.info(f"画质预设: {options.quality.value}")
    if options.keying:
        logging.info(f"抠像颜色: {options.chroma_key.hex}")
    logging.info("-" * 60)

    metadata = prober.probe(args.input)

    if args.dry_run:
        log_plan(orchestrator.plan(metadata, options, platforms))
        return 0

    on_progress = make_progress_logger(config["logging"].get("show_progress", True))
    results = orchestrator.export(metadata, output_folder, options, platforms, on_progress)

    if config["export"].get("preview"):
        for result in results:
            if not result.success:
                continue
            preview_path = os.path.join(
                output_folder, f"{metadata.base_name}_{result.platform_id}_preview.png"
            )
            try:
                orchestrator.generate_preview(
                    metadata, result.platform_id, options, preview_path
                )
            except ApngerError as e:
                logging.warning(
                    f"预览帧导出失败: {e}", extra={"platform": result.platform_id}
                )

    return summarize_results(results, config["logging"].get("log_file"))


def main(argv: List[str] = None) -> int:
    """主函数"""
    args = parse_arguments(argv)

    try:
        config = load_config(args.config)
        config = apply_cli_overrides(config, args)
        config = prepare_environment(config)

        if not config["tools"]["ok"]:
            logging.error("外部工具不可用！请检查 ffmpeg/ffprobe 安装。")
            return 1

        return run(args, config)

    except (MetadataError, ValidationError) as e:
        logging.error(f"{e}")
        return 2
    except KeyboardInterrupt:
        logging.warning("用户中断操作")
        terminate_all_ffmpeg()
        return 130
    except Exception as e:
        logging.critical(f"程序执行过程中发生严重错误: {e}")
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
