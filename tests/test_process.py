#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
遗留工作目录清理测试
"""

import os
import time

from apnger.config.defaults import STALE_WORKSPACE_AGE, WORKSPACE_PREFIX
from apnger.utils.process import cleanup_stale_workspaces


class TestCleanupStaleWorkspaces:
    """启动时清理遗留临时目录"""

    def _make(self, root, name, age):
        path = root / name
        path.mkdir()
        (path / "twitch_attempt_1.gif").write_bytes(b"\0")
        stamp = time.time() - age
        os.utime(path, (stamp, stamp))
        return path

    def test_only_old_removed(self, tmp_path):
        """测试只删除超过时限的目录，并发运行中的目录保留"""
        old = self._make(tmp_path, f"{WORKSPACE_PREFIX}old", STALE_WORKSPACE_AGE + 60)
        live = self._make(tmp_path, f"{WORKSPACE_PREFIX}live", 5)
        assert cleanup_stale_workspaces(str(tmp_path)) == 1
        assert not old.exists()
        assert live.exists()

    def test_other_entries_untouched(self, tmp_path):
        other = self._make(tmp_path, "keep_me", STALE_WORKSPACE_AGE * 2)
        (tmp_path / f"{WORKSPACE_PREFIX}file").write_bytes(b"\0")
        assert cleanup_stale_workspaces(str(tmp_path)) == 0
        assert other.exists()
        assert (tmp_path / f"{WORKSPACE_PREFIX}file").exists()

    def test_custom_age(self, tmp_path):
        live = self._make(tmp_path, f"{WORKSPACE_PREFIX}a", 120)
        assert cleanup_stale_workspaces(str(tmp_path), max_age=60) == 1
        assert not live.exists()

    def test_missing_dir(self, tmp_path):
        assert cleanup_stale_workspaces(str(tmp_path / "nope")) == 0
