#!/usr/bin/env python3
"""
Tests for link directive emission and target platform parsing.
"""

import io
import json
from unittest.mock import patch

import pytest

from verovio_build.linking import LinkDirective, cxx_runtime, emit, link_directives, rerun_directives
from verovio_build.platforms import TargetPlatform


class TestTargetPlatform:
    """Test target triple parsing."""

    @pytest.mark.parametrize("triple,os_name,env", [
        ("x86_64-unknown-linux-gnu", "linux", "gnu"),
        ("aarch64-unknown-linux-musl", "linux", "musl"),
        ("x86_64-apple-darwin", "macos", ""),
        ("aarch64-apple-darwin", "macos", ""),
        ("x86_64-pc-windows-msvc", "windows", "msvc"),
        ("x86_64-pc-windows-gnu", "windows", "gnu"),
        ("x86_64-unknown-freebsd", "freebsd", ""),
        ("aarch64-linux-android", "android", ""),
        ("armv7-linux-androideabi", "android", ""),
    ])
    def test_from_triple(self, triple, os_name, env):
        target = TargetPlatform.from_triple(triple)
        assert target.os == os_name
        assert target.env == env
        assert str(target) == triple

    @pytest.mark.parametrize("system,os_name,msvc", [
        ("Linux", "linux", False),
        ("Darwin", "macos", False),
        ("Windows", "windows", True),
    ])
    def test_detect_host(self, system, os_name, msvc):
        with patch("verovio_build.platforms.platform.system", return_value=system):
            target = TargetPlatform.detect()
        assert target.os == os_name
        assert target.is_msvc is msvc
        assert target.triple is None

    def test_msvc_detection(self):
        assert TargetPlatform.from_triple("x86_64-pc-windows-msvc").is_msvc
        assert not TargetPlatform.from_triple("x86_64-pc-windows-gnu").is_msvc
        assert not TargetPlatform.from_triple("x86_64-unknown-linux-gnu").is_msvc


class TestCxxRuntime:
    """Test the C++ runtime link name per target."""

    def test_linux(self):
        assert cxx_runtime(TargetPlatform.from_triple("x86_64-unknown-linux-gnu")) == "stdc++"

    def test_macos(self):
        assert cxx_runtime(TargetPlatform.from_triple("aarch64-apple-darwin")) == "c++"

    def test_windows_gnu_matches_linux(self):
        assert cxx_runtime(TargetPlatform.from_triple("x86_64-pc-windows-gnu")) == "stdc++"

    def test_windows_msvc_links_nothing(self):
        assert cxx_runtime(TargetPlatform.from_triple("x86_64-pc-windows-msvc")) is None

    def test_unknown_os_links_nothing(self):
        assert cxx_runtime(TargetPlatform.from_triple("x86_64-unknown-freebsd")) is None

    @pytest.mark.parametrize("triple", ["aarch64-linux-android", "armv7-linux-androideabi"])
    def test_android_links_nothing(self, triple):
        target = TargetPlatform.from_triple(triple)
        assert not target.is_linux
        assert cxx_runtime(target) is None


class TestLinkDirectives:
    """Test the full directive set."""

    def test_linux_directives(self, tmp_path):
        rendered = [d.render() for d in link_directives(TargetPlatform.from_triple("x86_64-unknown-linux-gnu"), tmp_path)]
        assert rendered == [
            f"cargo:rustc-link-search=native={tmp_path}",
            "cargo:rustc-link-lib=static=verovio",
            "cargo:rustc-link-lib=stdc++",
        ]

    def test_msvc_directives_have_no_runtime(self, tmp_path):
        directives = link_directives(TargetPlatform.from_triple("x86_64-pc-windows-msvc"), tmp_path)
        assert len(directives) == 2
        assert directives[1] == LinkDirective("rustc-link-lib", "static=verovio")

    def test_rerun_directives(self, tmp_path):
        assert rerun_directives() == [LinkDirective("rerun-if-env-changed", "VEROVIO_SOURCE_DIR")]
        with_source = rerun_directives(tmp_path)
        assert LinkDirective("rerun-if-changed", str(tmp_path / "tools/c_wrapper.cpp")) in with_source

    def test_emit_cargo_format(self):
        stream = io.StringIO()
        emit([LinkDirective("rustc-link-lib", "static=verovio")], stream)
        assert stream.getvalue() == "cargo:rustc-link-lib=static=verovio\n"

    def test_emit_json_format(self):
        stream = io.StringIO()
        emit([LinkDirective("rustc-link-lib", "c++")], stream, fmt="json")
        assert json.loads(stream.getvalue()) == [{"key": "rustc-link-lib", "value": "c++"}]
