#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
服务层

提供可被 CLI/GUI/API 复用的多平台导出入口。
"""

import os
import logging
import concurrent.futures
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from apnger.config.defaults import DEFAULT_CONFIG
from apnger.core.errors import (
    ApngerError,
    FilesystemError,
    MetadataError,
    ValidationError,
)
from apnger.core.filters import FilterChain, build_filter_chain, validate_crop
from apnger.core.models import (
    EncodeParameters,
    ExportResult,
    ProcessingOptions,
    ProgressEvent,
    VideoMetadata,
)
from apnger.core.optimizer import SizeOptimizer
from apnger.core.palette import PaletteCodec
from apnger.core.platforms import (
    PlatformDescriptor,
    get_platform,
    list_platforms,
    resolve_target_size,
    seed_parameters,
)
from apnger.core.spritesheet import (
    SpriteSheetAssembler,
    SpriteSheetPlan,
    plan_sprite_sheet,
)
from apnger.utils.files import (
    format_size,
    move_file,
    output_name,
    platform_workdir,
    workspace,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class PlatformPlan:
    """单个平台的导出计划（用于预览/dry-run）"""

    descriptor: PlatformDescriptor
    target_size: tuple
    params: Optional[EncodeParameters] = None
    chain: Optional[FilterChain] = None
    sprite_plan: Optional[SpriteSheetPlan] = None


def validate_metadata(metadata: VideoMetadata) -> None:
    """
    校验源视频元数据

    Raises:
        MetadataError: 尺寸、帧率或时长非正
    """
    if metadata.width <= 0 or metadata.height <= 0:
        raise MetadataError(
            f"无效的视频尺寸: {metadata.width}x{metadata.height} ({metadata.path})"
        )
    if metadata.fps <= 0:
        raise MetadataError(f"无效的视频帧率: {metadata.fps} ({metadata.path})")
    if metadata.duration <= 0:
        raise MetadataError(f"无效的视频时长: {metadata.duration} ({metadata.path})")


def validate_options(options: ProcessingOptions, metadata: VideoMetadata) -> None:
    """
    校验处理选项与源视频是否匹配

    Raises:
        ValidationError: 裁剪区域越界或裁切窗口落在视频之外
    """
    if options.crop is not None:
        validate_crop(options.crop, metadata)
    if options.trim is not None and options.trim.start >= metadata.duration:
        raise ValidationError(
            f"裁切起点 {options.trim.start}s 超出视频时长 {metadata.duration:.2f}s"
        )


def resolve_platforms(platform_ids: Optional[Iterable[str]]) -> List[PlatformDescriptor]:
    """
    解析平台列表，None 或空表示全部平台

    Raises:
        ValidationError: 未知平台
    """
    ids = list(platform_ids or list_platforms())
    descriptors = []
    seen = set()
    for platform_id in ids:
        if platform_id in seen:
            continue
        seen.add(platform_id)
        descriptors.append(get_platform(platform_id))
    return descriptors


def _safe_emit(callback: Optional[ProgressCallback], event: ProgressEvent) -> None:
    """进度回调只用于展示，回调异常不影响导出"""
    if callback is None:
        return
    try:
        callback(event)
    except Exception as e:
        logger.warning(
            f"进度回调异常: {e}", extra={"platform": event.platform_id}
        )


class ExportOrchestrator:
    """
    多平台导出编排

    每个平台在临时工作目录的独立子目录中完成编码，
    单个平台失败只影响自己的 ExportResult。
    """

    def __init__(self, encoder, prober=None, config: Optional[Dict[str, Any]] = None):
        self.encoder = encoder
        self.prober = prober
        self.config = config or DEFAULT_CONFIG

    @property
    def sampling(self) -> str:
        return self.config.get("frame_budget", {}).get("sampling", "fps")

    @property
    def max_workers(self) -> int:
        return int(self.config.get("export", {}).get("max_workers", 1) or 1)

    def plan(
        self,
        metadata: VideoMetadata,
        options: ProcessingOptions,
        platforms: Optional[Iterable[str]] = None,
    ) -> List[PlatformPlan]:
        """
        计算每个平台的目标尺寸、首轮参数和滤镜链，不调用编码器

        Raises:
            MetadataError: 元数据无效
            ValidationError: 选项不合法或未知平台
        """
        validate_metadata(metadata)
        validate_options(options, metadata)
        plans = []
        for descriptor in resolve_platforms(platforms):
            spec = descriptor.spec
            duration = options.effective_duration(metadata.duration)
            if descriptor.sprite_sheet:
                sprite_plan = plan_sprite_sheet(
                    duration, metadata.fps, spec.max_frames or 64, spec.width
                )
                plans.append(
                    PlatformPlan(
                        descriptor=descriptor,
                        target_size=(sprite_plan.cell_size, sprite_plan.cell_size),
                        sprite_plan=sprite_plan,
                    )
                )
                continue

            target = resolve_target_size(spec, metadata, options.crop)
            codec = PaletteCodec(
                self.encoder, metadata, options, descriptor, "", self.sampling
            )
            params = codec.fit_frame_budget(
                seed_parameters(descriptor, metadata, options.quality, target)
            )
            plans.append(
                PlatformPlan(
                    descriptor=descriptor,
                    target_size=target,
                    params=params,
                    chain=codec.build_chain(params),
                )
            )
        return plans

    def export(
        self,
        metadata: VideoMetadata,
        output_dir: str,
        options: Optional[ProcessingOptions] = None,
        platforms: Optional[Iterable[str]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ExportResult]:
        """
        导出到多个平台

        Args:
            metadata: 源视频信息
            output_dir: 输出目录
            options: 处理选项
            platforms: 平台标识列表，None 表示全部
            on_progress: 进度回调

        Returns:
            与请求顺序一致的 ExportResult 列表

        Raises:
            MetadataError: 元数据无效（任何平台开始前）
            ValidationError: 选项不合法或未知平台（任何平台开始前）
        """
        options = options or ProcessingOptions()
        validate_metadata(metadata)
        validate_options(options, metadata)
        descriptors = resolve_platforms(platforms)

        logger.info(
            f"开始导出: {metadata.width}x{metadata.height}, {metadata.fps}fps, "
            f"{metadata.duration:.2f}s → {', '.join(d.platform_id for d in descriptors)}",
            extra={"file": metadata.name},
        )

        try:
            with workspace(output_dir) as root:
                return self._run_platforms(
                    descriptors, metadata, options, root, output_dir, on_progress
                )
        except FilesystemError as e:
            # 平台内的错误已在 _export_platform 中转换，这里只剩工作目录创建失败
            logger.error(f"{e}", extra={"file": metadata.name})
            results = []
            for descriptor in descriptors:
                _safe_emit(
                    on_progress,
                    ProgressEvent(descriptor.platform_id, "failed", 100, message=str(e)),
                )
                results.append(
                    ExportResult.failed(
                        descriptor.platform_id, descriptor.spec.display_name, str(e)
                    )
                )
            return results

    def _run_platforms(
        self,
        descriptors: List[PlatformDescriptor],
        metadata: VideoMetadata,
        options: ProcessingOptions,
        root: str,
        output_dir: str,
        on_progress: Optional[ProgressCallback],
    ) -> List[ExportResult]:
        if self.max_workers > 1 and len(descriptors) > 1:
            workers = min(self.max_workers, len(descriptors))
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [
                    executor.submit(
                        self._export_platform,
                        descriptor, metadata, options, root, output_dir, on_progress,
                    )
                    for descriptor in descriptors
                ]
                return [future.result() for future in futures]

        return [
            self._export_platform(
                descriptor, metadata, options, root, output_dir, on_progress
            )
            for descriptor in descriptors
        ]

    def export_file(
        self,
        path: str,
        output_dir: str,
        options: Optional[ProcessingOptions] = None,
        platforms: Optional[Iterable[str]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ExportResult]:
        """探测源文件后导出"""
        if self.prober is None:
            raise MetadataError("未配置元数据探测器")
        metadata = self.prober.probe(path)
        return self.export(metadata, output_dir, options, platforms, on_progress)

    def _export_platform(
        self,
        descriptor: PlatformDescriptor,
        metadata: VideoMetadata,
        options: ProcessingOptions,
        root: str,
        output_dir: str,
        on_progress: Optional[ProgressCallback],
    ) -> ExportResult:
        platform_id = descriptor.platform_id
        display_name = descriptor.spec.display_name
        extra = {"platform": platform_id, "file": metadata.name}

        _safe_emit(on_progress, ProgressEvent(platform_id, "start", 0))
        logger.info(f"[开始] {display_name}", extra=extra)

        try:
            workdir = platform_workdir(root, platform_id)
            if descriptor.sprite_sheet:
                result = self._export_sprite_sheet(
                    descriptor, metadata, options, workdir, output_dir
                )
            else:
                result = self._export_optimized(
                    descriptor, metadata, options, workdir, output_dir, on_progress
                )
        except ApngerError as e:
            logger.error(f"[失败] {e}", extra=extra)
            _safe_emit(
                on_progress, ProgressEvent(platform_id, "failed", 100, message=str(e))
            )
            return ExportResult.failed(
                platform_id, display_name, str(e), attempts=getattr(e, "attempts", 0)
            )
        except Exception as e:
            logger.exception(f"[失败] 未预期的错误: {e}", extra=extra)
            _safe_emit(
                on_progress, ProgressEvent(platform_id, "failed", 100, message=str(e))
            )
            return ExportResult.failed(platform_id, display_name, f"未预期的错误: {e}")

        logger.info(
            f"[完成] {os.path.basename(result.path)} {format_size(result.size)}"
            f"{'' if result.within_budget else ' (超出体积上限)'}",
            extra=extra,
        )
        _safe_emit(
            on_progress,
            ProgressEvent(platform_id, "complete", 100, message=result.path),
        )
        return result

    def _export_optimized(
        self,
        descriptor: PlatformDescriptor,
        metadata: VideoMetadata,
        options: ProcessingOptions,
        workdir: str,
        output_dir: str,
        on_progress: Optional[ProgressCallback],
    ) -> ExportResult:
        spec = descriptor.spec
        target = resolve_target_size(spec, metadata, options.crop)
        initial = seed_parameters(descriptor, metadata, options.quality, target)

        codec = PaletteCodec(
            self.encoder, metadata, options, descriptor, workdir, self.sampling
        )
        optimizer = SizeOptimizer(
            codec, descriptor, on_progress=lambda event: _safe_emit(on_progress, event)
        )
        outcome = optimizer.optimize(initial)

        final_path = os.path.join(
            output_dir,
            output_name(metadata.base_name, spec.platform_id, spec.container.extension),
        )
        move_file(outcome.output_path, final_path)

        warning = None
        if not outcome.within_budget:
            warning = (
                f"{format_size(outcome.size)} 超过 {format_size(spec.max_bytes)} 上限，"
                f"已保留最小结果"
            )
        return ExportResult.ok(
            spec.platform_id,
            spec.display_name,
            final_path,
            outcome.size,
            attempts=len(outcome.attempts),
            within_budget=outcome.within_budget,
            warning=warning,
        )

    def _export_sprite_sheet(
        self,
        descriptor: PlatformDescriptor,
        metadata: VideoMetadata,
        options: ProcessingOptions,
        workdir: str,
        output_dir: str,
    ) -> ExportResult:
        spec = descriptor.spec
        assembler = SpriteSheetAssembler(self.encoder, workdir)
        sheet = assembler.assemble(metadata, options, spec, output_dir)
        warning = None
        if not sheet.within_budget:
            warning = f"{format_size(sheet.size)} 超过 {format_size(spec.max_bytes)} 上限"
        return ExportResult.ok(
            spec.platform_id,
            spec.display_name,
            sheet.path,
            sheet.size,
            attempts=1,
            within_budget=sheet.within_budget,
            warning=warning,
        )

    def generate_preview(
        self,
        metadata: VideoMetadata,
        platform_id: str,
        options: Optional[ProcessingOptions],
        output_path: str,
        position: Optional[float] = None,
    ) -> str:
        """
        按平台滤镜链导出一张 PNG 预览帧

        Args:
            metadata: 源视频信息
            platform_id: 平台标识
            options: 处理选项
            output_path: 预览图路径
            position: 在（裁切后）时长中的相对位置，默认取配置

        Returns:
            预览图路径
        """
        options = options or ProcessingOptions()
        validate_metadata(metadata)
        validate_options(options, metadata)
        descriptor = get_platform(platform_id)

        if position is None:
            position = self.config.get("export", {}).get("preview_position", 0.33)
        if not 0.0 <= position <= 1.0:
            raise ValidationError(f"预览位置必须在 0-1 之间: {position}")

        if descriptor.sprite_sheet:
            sprite_plan = plan_sprite_sheet(
                options.effective_duration(metadata.duration),
                metadata.fps,
                descriptor.spec.max_frames or 64,
                descriptor.spec.width,
            )
            width = height = sprite_plan.cell_size
        else:
            width, height = resolve_target_size(descriptor.spec, metadata, options.crop)

        chain = build_filter_chain(
            metadata,
            width,
            height,
            chroma_key=options.chroma_key,
            crop=options.crop,
        )
        start = options.trim.start if options.trim is not None else 0.0
        timestamp = start + options.effective_duration(metadata.duration) * position

        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        self.encoder.extract_still(metadata.path, chain.text, timestamp, output_path)
        logger.info(
            f"[预览] {output_path} @ {timestamp:.2f}s",
            extra={"platform": platform_id, "file": metadata.name},
        )
        return output_path


def summarize_results(results: List[ExportResult], log_file_path: str = None) -> int:
    """
    统计并输出结果摘要

    Returns:
        进程退出码：0 全部成功，1 存在失败平台
    """
    success = [r for r in results if r.success]
    failed = [r for r in results if not r.success]
    over_budget = [r for r in success if not r.within_budget]

    logger.info("=" * 60)
    logger.info("导出完成统计")
    logger.info("-" * 60)
    logger.info(
        f"平台数: {len(results)}, 成功: {len(success)}, 失败: {len(failed)}, "
        f"超出体积上限: {len(over_budget)}"
    )
    for result in results:
        if result.success:
            status = "✓" if result.within_budget else "!"
            logger.info(
                f"  {status} {result.display_name}: {os.path.basename(result.path)} "
                f"{format_size(result.size)}（{result.attempts} 次尝试）"
            )
            if result.warning:
                logger.info(f"    {result.warning}")
        else:
            logger.info(f"  ✗ {result.display_name}: {result.error}")
    if log_file_path:
        logger.info(f"日志文件: {log_file_path}")
    logger.info("=" * 60)

    return 0 if not failed else 1
