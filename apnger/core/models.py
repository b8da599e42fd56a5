#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
数据模型

源视频元数据、平台规格、用户处理选项以及优化过程中的参数/结果。
除 ExportResult 之外的所有值类型在创建后都不可变。
"""

import os
import re
import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from apnger.core.errors import ValidationError

_HEX_COLOR = re.compile(r"^(?:#|0x)?([0-9a-f]{6}|[0-9a-f]{3})$", re.IGNORECASE)


class ContainerKind(Enum):
    """输出容器类型"""

    GIF = "gif"
    APNG = "apng"
    SPRITE_SHEET = "sprite-sheet"

    @property
    def extension(self) -> str:
        # APNG 与精灵图都以 .png 结尾
        return "gif" if self is ContainerKind.GIF else "png"


class QualityPreset(Enum):
    """画质预设"""

    MAXIMUM = "maximum"
    BALANCED = "balanced"
    SMALLEST = "smallest"


@dataclass(frozen=True)
class VideoMetadata:
    """ffprobe 探测得到的源视频信息"""

    path: str
    width: int
    height: int
    fps: int
    duration: float
    size: int = 0

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def base_name(self) -> str:
        return os.path.splitext(self.name)[0]


@dataclass(frozen=True)
class PlatformSpec:
    """目标平台规格"""

    platform_id: str
    display_name: str
    container: ContainerKind
    width: int
    height: int
    max_bytes: int
    max_frames: Optional[int] = None
    allow_wide: bool = False
    max_aspect_ratio: Optional[float] = None
    description: str = ""


@dataclass(frozen=True)
class ChromaKeyConfig:
    """
    抠像配置

    similarity 控制目标颜色周围的接受半径，blend 控制半径边界处
    半透明过渡带的宽度，两者都在 [0, 1] 区间内。
    """

    enabled: bool = False
    color: Tuple[int, int, int] = (0, 255, 0)
    similarity: float = 0.3
    blend: float = 0.1

    def __post_init__(self):
        if len(self.color) != 3 or any(not 0 <= c <= 255 for c in self.color):
            raise ValidationError(f"抠像颜色必须是 0-255 的 RGB 三元组: {self.color}")
        if not 0.0 <= self.similarity <= 1.0:
            raise ValidationError(f"similarity 必须在 0-1 之间: {self.similarity}")
        if not 0.0 <= self.blend <= 1.0:
            raise ValidationError(f"blend 必须在 0-1 之间: {self.blend}")

    @classmethod
    def from_hex(
        cls,
        color: str,
        similarity: float = 0.3,
        blend: float = 0.1,
        enabled: bool = True,
    ) -> "ChromaKeyConfig":
        """从 #RRGGBB / 0xRRGGBB / #RGB 格式创建"""
        match = _HEX_COLOR.match(str(color).strip())
        if not match:
            raise ValidationError(f"无法解析颜色: {color}")
        digits = match.group(1)
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        rgb = tuple(int(digits[i:i + 2], 16) for i in (0, 2, 4))
        return cls(
            enabled=enabled,
            color=rgb,
            similarity=float(similarity),
            blend=float(blend),
        )

    @property
    def hex(self) -> str:
        """ffmpeg 颜色写法，如 0x00FF00"""
        return "0x{:02X}{:02X}{:02X}".format(*self.color)

    @property
    def dominant_channel(self) -> Optional[str]:
        """主导通道：绿幕返回 green，蓝幕返回 blue，否则 None"""
        r, g, b = self.color
        if g > r and g > b:
            return "green"
        if b > r and b > g:
            return "blue"
        return None


@dataclass(frozen=True)
class CropRegion:
    """源视频坐标系中的裁剪区域"""

    x: int
    y: int
    width: int
    height: int

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height else 0.0


@dataclass(frozen=True)
class TrimWindow:
    """单个裁切时间窗口（秒）"""

    start: float
    end: float

    def __post_init__(self):
        if self.start < 0:
            raise ValidationError(f"裁切起点不能为负: {self.start}")
        if self.end <= self.start:
            raise ValidationError(
                f"裁切终点必须大于起点: start={self.start}, end={self.end}"
            )

    @property
    def duration(self) -> float:
        return self.end - self.start


_OPTION_KEYS = {"chroma_key", "crop", "trim", "segments", "quality"}


@dataclass(frozen=True)
class ProcessingOptions:
    """用户处理选项，所有可识别的选项都显式列出"""

    chroma_key: Optional[ChromaKeyConfig] = None
    crop: Optional[CropRegion] = None
    trim: Optional[TrimWindow] = None
    quality: QualityPreset = QualityPreset.BALANCED

    @property
    def keying(self) -> bool:
        return self.chroma_key is not None and self.chroma_key.enabled

    def effective_duration(self, source_duration: float) -> float:
        """裁切后实际参与编码的时长"""
        if self.trim is None:
            return source_duration
        end = min(self.trim.end, source_duration)
        return max(0.0, end - self.trim.start)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ProcessingOptions":
        """
        从字典构建（配置文件 / 前端传参）

        Raises:
            ValidationError: 未知键、字段缺失、多段时间线合并
        """
        data = dict(data or {})
        unknown = set(data) - _OPTION_KEYS
        if unknown:
            raise ValidationError(f"未知的处理选项: {', '.join(sorted(unknown))}")

        chroma_key = None
        ck = data.get("chroma_key")
        if ck and not isinstance(ck, Mapping):
            raise ValidationError(f"抠像配置应为映射: {ck!r}")
        if ck:
            chroma_key = ChromaKeyConfig.from_hex(
                ck.get("color", "#00FF00"),
                similarity=ck.get("similarity", 0.3),
                blend=ck.get("blend", 0.1),
                enabled=bool(ck.get("enabled", True)),
            )

        crop = None
        if data.get("crop"):
            c = data["crop"]
            try:
                crop = CropRegion(
                    x=int(c["x"]),
                    y=int(c["y"]),
                    width=int(c["width"]),
                    height=int(c["height"]),
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ValidationError(f"裁剪区域格式错误: {c}") from e

        trim = _trim_from_dict(data.get("trim"), data.get("segments"))

        try:
            quality = QualityPreset(data.get("quality", QualityPreset.BALANCED.value))
        except ValueError as e:
            raise ValidationError(f"未知的画质预设: {data.get('quality')}") from e

        return cls(chroma_key=chroma_key, crop=crop, trim=trim, quality=quality)


def _trim_from_dict(trim: Any, segments: Any) -> Optional[TrimWindow]:
    if trim and segments:
        raise ValidationError("trim 与 segments 不能同时指定")

    if segments:
        if not all(isinstance(s, Mapping) for s in segments):
            raise ValidationError(f"时间段应为映射列表: {segments!r}")
        enabled = [s for s in segments if s.get("enabled", True)]
        if len(enabled) > 1:
            # 多段时间线合并未实现
            raise ValidationError(
                f"暂不支持多段时间线合并（收到 {len(enabled)} 段），请只保留一段"
            )
        if not enabled:
            return None
        seg = enabled[0]
        start = seg.get("start", seg.get("startTime"))
        end = seg.get("end", seg.get("endTime"))
        try:
            return TrimWindow(float(start), float(end))
        except (TypeError, ValueError) as e:
            raise ValidationError(f"时间段格式错误: {seg}") from e

    if trim:
        try:
            return TrimWindow(float(trim["start"]), float(trim["end"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"裁切时间格式错误: {trim}") from e
    return None


@dataclass(frozen=True)
class DitherSpec:
    """paletteuse 的抖动参数"""

    mode: str = "bayer"
    bayer_scale: Optional[int] = None
    diff_mode: Optional[str] = None

    def option_text(self) -> str:
        parts = [f"dither={self.mode}"]
        if self.mode == "bayer" and self.bayer_scale is not None:
            parts.append(f"bayer_scale={self.bayer_scale}")
        if self.diff_mode:
            parts.append(f"diff_mode={self.diff_mode}")
        return ":".join(parts)


@dataclass(frozen=True)
class EncodeParameters:
    """单次尝试的编码参数（每次降级都会生成新实例）"""

    width: int
    height: int
    fps: float
    colors: int
    compression_level: Optional[int] = None
    dither: DitherSpec = DitherSpec()

    def __post_init__(self):
        if not 2 <= self.colors <= 256:
            raise ValidationError(f"调色板颜色数必须在 2-256 之间: {self.colors}")
        if self.width <= 0 or self.height <= 0:
            raise ValidationError(f"尺寸必须为正: {self.width}x{self.height}")
        if self.fps <= 0:
            raise ValidationError(f"帧率必须为正: {self.fps}")

    def replace(self, **changes) -> "EncodeParameters":
        return dataclasses.replace(self, **changes)

    def describe(self) -> str:
        return f"{self.width}x{self.height}, {self.fps:g}fps, {self.colors} colors"


@dataclass(frozen=True)
class OptimizationAttempt:
    """一次优化尝试的记录"""

    index: int
    params: EncodeParameters
    size: Optional[int]
    passed: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ExportResult:
    """单个平台的导出结果"""

    platform_id: str
    display_name: str
    path: str
    size: int
    success: bool
    error: Optional[str] = None
    attempts: int = 0
    within_budget: bool = True
    warning: Optional[str] = None

    @classmethod
    def ok(
        cls,
        platform_id: str,
        display_name: str,
        path: str,
        size: int,
        attempts: int = 1,
        within_budget: bool = True,
        warning: Optional[str] = None,
    ) -> "ExportResult":
        return cls(
            platform_id=platform_id,
            display_name=display_name,
            path=path,
            size=size,
            success=True,
            attempts=attempts,
            within_budget=within_budget,
            warning=warning,
        )

    @classmethod
    def failed(
        cls, platform_id: str, display_name: str, error: str, attempts: int = 0
    ) -> "ExportResult":
        return cls(
            platform_id=platform_id,
            display_name=display_name,
            path="",
            size=0,
            success=False,
            error=error,
            attempts=attempts,
            within_budget=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class ProgressEvent:
    """进度通知（仅供展示，不影响控制流）"""

    platform_id: str
    stage: str
    progress: int
    attempt: Optional[int] = None
    message: str = ""
