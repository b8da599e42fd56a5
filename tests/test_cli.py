#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
命令行与工具检测测试
"""

import argparse

import pytest

from cli import parse_arguments, parse_crop
from apnger.utils.encoder_check import REQUIRED_FILTERS, parse_filter_names

FILTERS_OUTPUT = """Filters:
  T.. = Timeline support
  .S. = Slice threading
  ..C = Command support
  A = Audio input/output
  | = Source or sink filter
 TSC chromakey         V->V       Turns a certain color into transparency.
 T.. despill           V->V       Despill video.
 ... palettegen        V->V       Find the optimal palette for a given stream.
 ... paletteuse        VV->V      Use a palette to downsample an input video stream.
 ... tile              V->V       Tile several successive frames together.
"""


class TestParseCrop:
    def test_valid(self):
        assert parse_crop("10, 20,300,200") == {"x": 10, "y": 20, "width": 300, "height": 200}

    @pytest.mark.parametrize("value", ["1,2,3", "a,b,c,d", ""])
    def test_invalid(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_crop(value)


class TestParseArguments:
    """命令行参数测试"""

    def test_defaults(self):
        args = parse_arguments(["in.mp4"])
        assert args.input == "in.mp4"
        assert args.platforms is None
        assert args.verbose == 0
        assert args.quiet == 0
        assert args.dry_run is False

    def test_full(self):
        args = parse_arguments([
            "in.mp4", "-p", "twitch,7tv", "--chroma-key", "#00FF00",
            "--trim", "1", "2.5", "--crop", "0,0,100,100",
            "--quality", "smallest", "-qq", "--json-logs",
        ])
        assert args.platforms == "twitch,7tv"
        assert args.trim == [1.0, 2.5]
        assert args.crop == {"x": 0, "y": 0, "width": 100, "height": 100}
        assert args.quality == "smallest"
        assert args.quiet == 2
        assert args.json_logs is True

    def test_verbose_and_quiet_exclusive(self):
        with pytest.raises(SystemExit):
            parse_arguments(["in.mp4", "-v", "-q"])

    def test_unknown_quality(self):
        with pytest.raises(SystemExit):
            parse_arguments(["in.mp4", "--quality", "ultra"])


class TestFilterNames:
    def test_parse(self):
        names = parse_filter_names(FILTERS_OUTPUT)
        assert names == ["chromakey", "despill", "palettegen", "paletteuse", "tile"]
        assert set(REQUIRED_FILTERS) <= set(names)
