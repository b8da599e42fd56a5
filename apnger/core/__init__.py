# 核心模块
"""导出引擎核心功能"""

from apnger.core.errors import (
    ApngerError,
    ValidationError,
    MetadataError,
    NoVideoStream,
    UnreadableMetadata,
    EncodeInvocationError,
    SizeBudgetExceeded,
    FilesystemError,
)
from apnger.core.models import (
    ContainerKind,
    QualityPreset,
    VideoMetadata,
    PlatformSpec,
    ChromaKeyConfig,
    CropRegion,
    TrimWindow,
    ProcessingOptions,
    EncodeParameters,
    ExportResult,
    ProgressEvent,
)
from apnger.core.platforms import get_platform, list_platforms
from apnger.core.encoder import FFmpegEncoder, execute_ffmpeg
from apnger.core.video import FFprobeProber

__all__ = [
    "ApngerError",
    "ValidationError",
    "MetadataError",
    "NoVideoStream",
    "UnreadableMetadata",
    "EncodeInvocationError",
    "SizeBudgetExceeded",
    "FilesystemError",
    "ContainerKind",
    "QualityPreset",
    "VideoMetadata",
    "PlatformSpec",
    "ChromaKeyConfig",
    "CropRegion",
    "TrimWindow",
    "ProcessingOptions",
    "EncodeParameters",
    "ExportResult",
    "ProgressEvent",
    "get_platform",
    "list_platforms",
    "FFmpegEncoder",
    "execute_ffmpeg",
    "FFprobeProber",
]
