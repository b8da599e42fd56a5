#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
导出编排测试
"""

import os
import dataclasses

import pytest

from apnger.core.errors import FilesystemError, MetadataError, ValidationError
from apnger.core.models import (
    ChromaKeyConfig,
    CropRegion,
    ProcessingOptions,
    TrimWindow,
)
from apnger.core.platforms import get_platform, list_platforms
from apnger.service import ExportOrchestrator, summarize_results
import apnger.utils.files as files_module

KB = 1024
MB = 1024 * 1024


def _workspaces(output_dir):
    if not os.path.isdir(output_dir):
        return []
    return [name for name in os.listdir(output_dir) if name.startswith(".apnger_")]


class FakeProber:
    def __init__(self, metadata):
        self.metadata = metadata
        self.paths = []

    def probe(self, path):
        self.paths.append(path)
        return self.metadata


class TestExport:
    """多平台导出测试"""

    def test_all_platforms(self, metadata, tmp_path, fake_encoder_cls, sample_config):
        encoder = fake_encoder_cls()
        output_dir = str(tmp_path / "out")
        results = ExportOrchestrator(encoder, config=sample_config).export(
            metadata, output_dir, ProcessingOptions()
        )

        assert [r.platform_id for r in results] == list_platforms()
        assert all(r.success for r in results)
        names = sorted(os.path.basename(r.path) for r in results)
        assert names == sorted([
            "clip_twitch.gif",
            "clip_discord-sticker.png",
            "clip_discord-emote.gif",
            "clip_7tv.gif",
            "clip_64frames_13fps.png",
        ])
        for result in results:
            assert os.path.exists(result.path)
        # 临时工作目录被删除
        assert _workspaces(output_dir) == []

    def test_failure_is_isolated(self, metadata, tmp_path, fake_encoder_cls):
        """测试单个平台失败不影响其他平台"""
        encoder = fake_encoder_cls(fail_platforms={"twitch"})
        output_dir = str(tmp_path / "out")
        results = ExportOrchestrator(encoder).export(
            metadata, output_dir, platforms=["twitch", "discord-emote"]
        )
        twitch, emote = results
        assert twitch.success is False
        assert "No such filter" in twitch.error
        assert twitch.attempts == get_platform("twitch").max_attempts
        assert emote.success is True
        assert _workspaces(output_dir) == []

    def test_strict_budget_failure(self, metadata, tmp_path, fake_encoder_cls):
        encoder = fake_encoder_cls(sizes={"discord-sticker": [10 * MB]})
        results = ExportOrchestrator(encoder).export(
            metadata, str(tmp_path / "out"), platforms=["discord-sticker"]
        )
        result = results[0]
        assert result.success is False
        assert "discord-sticker" in result.error
        assert result.attempts == get_platform("discord-sticker").max_attempts

    def test_strict_failure_beside_success(self, metadata, tmp_path, fake_encoder_cls):
        """测试严格平台超限失败时同一请求的其他平台照常导出"""
        encoder = fake_encoder_cls(sizes={"discord-sticker": [10 * MB]})
        output_dir = str(tmp_path / "out")
        sticker, twitch = ExportOrchestrator(encoder).export(
            metadata, output_dir, platforms=["discord-sticker", "twitch"]
        )
        assert sticker.success is False
        assert not sticker.path
        assert "discord-sticker" in sticker.error
        assert sticker.attempts == 15
        assert twitch.success is True
        assert twitch.within_budget is True
        assert os.path.basename(twitch.path) == "clip_twitch.gif"
        assert sorted(os.listdir(output_dir)) == ["clip_twitch.gif"]

    def test_lenient_over_budget(self, metadata, tmp_path, fake_encoder_cls):
        """测试宽松平台超限时仍然成功但带警告"""
        encoder = fake_encoder_cls(sizes={"discord-emote": [300 * KB]})
        result = ExportOrchestrator(encoder).export(
            metadata, str(tmp_path / "out"), platforms=["discord-emote"]
        )[0]
        assert result.success is True
        assert result.within_budget is False
        assert result.error is None
        assert "256" in result.warning
        assert result.size == 300 * KB

    def test_invalid_metadata_aborts(self, metadata, tmp_path, fake_encoder_cls):
        """测试元数据无效时不执行任何平台"""
        encoder = fake_encoder_cls()
        bad = dataclasses.replace(metadata, fps=0)
        with pytest.raises(MetadataError):
            ExportOrchestrator(encoder).export(bad, str(tmp_path / "out"))
        assert encoder.calls == []

    def test_zero_duration_aborts(self, metadata, tmp_path, fake_encoder_cls):
        encoder = fake_encoder_cls()
        with pytest.raises(MetadataError):
            ExportOrchestrator(encoder).export(
                dataclasses.replace(metadata, duration=0.0), str(tmp_path / "out")
            )

    def test_unknown_platform(self, metadata, tmp_path, fake_encoder_cls):
        encoder = fake_encoder_cls()
        with pytest.raises(ValidationError):
            ExportOrchestrator(encoder).export(
                metadata, str(tmp_path / "out"), platforms=["twitch", "tiktok"]
            )
        assert encoder.calls == []

    def test_crop_out_of_bounds(self, metadata, tmp_path, fake_encoder_cls):
        encoder = fake_encoder_cls()
        options = ProcessingOptions(crop=CropRegion(1800, 0, 400, 400))
        with pytest.raises(ValidationError):
            ExportOrchestrator(encoder).export(metadata, str(tmp_path / "out"), options)

    def test_trim_beyond_duration(self, metadata, tmp_path, fake_encoder_cls):
        encoder = fake_encoder_cls()
        options = ProcessingOptions(trim=TrimWindow(6.0, 8.0))
        with pytest.raises(ValidationError):
            ExportOrchestrator(encoder).export(metadata, str(tmp_path / "out"), options)

    def test_trim_passed_to_encoder(self, metadata, tmp_path, fake_encoder_cls):
        encoder = fake_encoder_cls()
        options = ProcessingOptions(trim=TrimWindow(1.0, 3.0))
        ExportOrchestrator(encoder).export(
            metadata, str(tmp_path / "out"), options, platforms=["twitch"]
        )
        assert encoder.calls_of("encode")[0][1]["trim"] == TrimWindow(1.0, 3.0)

    def test_progress_events(self, metadata, tmp_path, fake_encoder_cls):
        events = []
        ExportOrchestrator(fake_encoder_cls()).export(
            metadata, str(tmp_path / "out"), platforms=["twitch"], on_progress=events.append
        )
        stages = [e.stage for e in events]
        assert stages[0] == "start"
        assert stages[-1] == "complete"
        assert "palette" in stages and "encode" in stages and "check" in stages

    def test_failed_progress_event(self, metadata, tmp_path, fake_encoder_cls):
        events = []
        ExportOrchestrator(fake_encoder_cls(fail_platforms={"twitch"})).export(
            metadata, str(tmp_path / "out"), platforms=["twitch"], on_progress=events.append
        )
        assert events[-1].stage == "failed"
        assert events[-1].progress == 100

    def test_progress_callback_errors_ignored(self, metadata, tmp_path, fake_encoder_cls):
        """测试进度回调异常不影响导出"""

        def broken(event):
            raise RuntimeError("ui gone")

        results = ExportOrchestrator(fake_encoder_cls()).export(
            metadata, str(tmp_path / "out"), platforms=["twitch"], on_progress=broken
        )
        assert results[0].success is True

    def test_parallel_keeps_request_order(
        self, metadata, tmp_path, fake_encoder_cls, sample_config
    ):
        sample_config["export"]["max_workers"] = 3
        requested = ["7tv", "twitch", "discord-sticker", "discord-emote"]
        results = ExportOrchestrator(fake_encoder_cls(), config=sample_config).export(
            metadata, str(tmp_path / "out"), platforms=requested
        )
        assert [r.platform_id for r in results] == requested
        assert all(r.success for r in results)

    def test_workspace_creation_failure(
        self, metadata, tmp_path, fake_encoder_cls, monkeypatch
    ):
        """测试工作目录创建失败时每个平台都返回失败结果"""

        def fail(output_dir):
            raise FilesystemError("disk full")

        monkeypatch.setattr(files_module, "create_workspace", fail)
        encoder = fake_encoder_cls()
        results = ExportOrchestrator(encoder).export(
            metadata, str(tmp_path / "out"), platforms=["twitch", "7tv"]
        )
        assert [r.success for r in results] == [False, False]
        assert all("disk full" in r.error for r in results)
        assert encoder.calls == []

    def test_export_file_probes_first(self, metadata, tmp_path, fake_encoder_cls):
        prober = FakeProber(metadata)
        results = ExportOrchestrator(fake_encoder_cls(), prober).export_file(
            metadata.path, str(tmp_path / "out"), platforms=["twitch"]
        )
        assert prober.paths == [metadata.path]
        assert results[0].success is True

    def test_duplicate_platforms_collapsed(self, metadata, tmp_path, fake_encoder_cls):
        results = ExportOrchestrator(fake_encoder_cls()).export(
            metadata, str(tmp_path / "out"), platforms=["twitch", "twitch"]
        )
        assert len(results) == 1


class TestPlan:
    """导出计划测试"""

    def test_plan(self, metadata, fake_encoder_cls):
        encoder = fake_encoder_cls()
        plans = ExportOrchestrator(encoder).plan(metadata, ProcessingOptions())
        by_id = {p.descriptor.platform_id: p for p in plans}
        assert by_id["twitch"].target_size == (112, 112)
        assert by_id["7tv"].target_size == (228, 128)
        assert by_id["twitch"].chain.stages[-1] == "fps=12"
        assert by_id["7tv-spritesheet"].sprite_plan.grid_size == 8
        assert encoder.calls == []


class TestPreview:
    """预览帧测试"""

    def test_preview(self, metadata, tmp_path, fake_encoder_cls):
        encoder = fake_encoder_cls()
        chroma = ChromaKeyConfig.from_hex("#00FF00")
        options = ProcessingOptions(chroma_key=chroma, trim=TrimWindow(1.0, 3.0))
        output = str(tmp_path / "preview" / "p.png")
        path = ExportOrchestrator(encoder).generate_preview(
            metadata, "twitch", options, output
        )
        assert os.path.exists(path)
        call = encoder.calls_of("extract_still")[0][1]
        assert call["timestamp"] == pytest.approx(1.66)
        assert call["filter_text"].startswith("chromakey=")
        assert "fps=" not in call["filter_text"]

    def test_preview_position_range(self, metadata, tmp_path, fake_encoder_cls):
        with pytest.raises(ValidationError):
            ExportOrchestrator(fake_encoder_cls()).generate_preview(
                metadata, "twitch", None, str(tmp_path / "p.png"), position=1.5
            )


class TestSummarize:
    def test_exit_codes(self, metadata, tmp_path, fake_encoder_cls):
        ok = ExportOrchestrator(fake_encoder_cls()).export(
            metadata, str(tmp_path / "a"), platforms=["twitch"]
        )
        assert summarize_results(ok) == 0
        failed = ExportOrchestrator(fake_encoder_cls(fail_platforms={"twitch"})).export(
            metadata, str(tmp_path / "b"), platforms=["twitch"]
        )
        assert summarize_results(failed) == 1
