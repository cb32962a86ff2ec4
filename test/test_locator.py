#!/usr/bin/env python3
"""
Tests for priority-ordered source discovery.
"""

import pytest

from conftest import FakeDownloader, make_tarball, make_verovio_tree
from verovio_build.cache import CacheLayout
from verovio_build.errors import (
    CacheDirectoryError,
    ExtractionError,
    HttpStatusError,
    IntegrityMismatchError,
    InvalidOverrideError,
    SourceNotFoundError,
)
from verovio_build.integrity import sha256_bytes
from verovio_build.locator import (
    CachedExtraction,
    ExplicitOverride,
    FreshDownload,
    LocalCheckout,
    SourceLocator,
)


@pytest.fixture
def layout(tmp_path, release, linux_target):
    return CacheLayout.for_workspace(tmp_path / "ws", release, linux_target)


class TestPriorityOrder:
    """Test that the first matching strategy wins."""

    def test_strategy_order(self, layout):
        names = [name for name, _ in SourceLocator(layout).strategies()]
        assert names == ["override", "local-checkout", "cached-extraction", "fresh-download"]

    def test_override_wins_over_local_checkout(self, layout, tmp_path):
        override = make_verovio_tree(tmp_path / "override")
        checkout = make_verovio_tree(tmp_path / "checkout")

        origin = SourceLocator(layout, override=str(override), local_checkout=checkout).locate()

        assert origin == ExplicitOverride(override)

    def test_local_checkout_is_canonicalized(self, layout, tmp_path):
        make_verovio_tree(tmp_path / "verovio")
        crate = tmp_path / "crates" / "sys"
        crate.mkdir(parents=True)

        origin = SourceLocator(layout, local_checkout=crate / ".." / ".." / "verovio").locate()

        assert isinstance(origin, LocalCheckout)
        assert origin.path == (tmp_path / "verovio").resolve()
        assert ".." not in origin.path.parts

    def test_local_checkout_without_marker_is_skipped(self, layout, tmp_path, fake_downloader):
        empty_checkout = tmp_path / "verovio"
        empty_checkout.mkdir()
        make_verovio_tree(layout.extracted_dir)

        origin = SourceLocator(layout, local_checkout=empty_checkout, downloader=fake_downloader).locate()

        assert isinstance(origin, CachedExtraction)
        assert fake_downloader.calls == []

    def test_cached_extraction_avoids_network(self, layout, fake_downloader):
        make_verovio_tree(layout.extracted_dir)

        origin = SourceLocator(layout, downloader=fake_downloader).locate()

        assert origin == CachedExtraction(layout.extracted_dir)
        assert fake_downloader.calls == []


class TestInvalidOverride:
    """Test that a bad override is a hard failure."""

    @pytest.mark.failure_scenario
    def test_override_without_marker_fails(self, layout, tmp_path, fake_downloader):
        bad = tmp_path / "not-verovio"
        bad.mkdir()
        checkout = make_verovio_tree(tmp_path / "checkout")
        make_verovio_tree(layout.extracted_dir)

        locator = SourceLocator(layout, override=str(bad), local_checkout=checkout,
                                downloader=fake_downloader)
        with pytest.raises(InvalidOverrideError) as exc_info:
            locator.locate()

        assert str(bad) in str(exc_info.value)
        assert "'src'" in str(exc_info.value)
        assert fake_downloader.calls == []

    @pytest.mark.failure_scenario
    def test_override_missing_directory_fails(self, layout, tmp_path):
        with pytest.raises(InvalidOverrideError):
            SourceLocator(layout, override=str(tmp_path / "nope")).locate()


class TestFreshDownload:
    """Test the download, verify and extract strategy."""

    def test_download_extracts_and_removes_archive(self, layout, fake_downloader, release):
        origin = SourceLocator(layout, downloader=fake_downloader).locate()

        assert origin == FreshDownload(layout.extracted_dir)
        assert (layout.extracted_dir / "src").is_dir()
        assert fake_downloader.calls == [release.url]
        assert not layout.archive_path.exists()

    def test_second_locate_reuses_extraction(self, layout, fake_downloader):
        SourceLocator(layout, downloader=fake_downloader).locate()
        origin = SourceLocator(layout, downloader=fake_downloader).locate()

        assert isinstance(origin, CachedExtraction)
        assert len(fake_downloader.calls) == 1

    @pytest.mark.security
    def test_hash_mismatch_deletes_archive(self, layout, release):
        tampered = make_tarball(release.extracted_dir_name, {"src/evil.cpp": "// evil\n"})
        downloader = FakeDownloader({release.url: tampered})

        with pytest.raises(IntegrityMismatchError) as exc_info:
            SourceLocator(layout, downloader=downloader).locate()

        error = exc_info.value
        assert error.expected == release.sha256
        assert error.actual == sha256_bytes(tampered)
        assert release.sha256 in str(error)
        assert error.actual in str(error)
        assert f"curl -sL {release.url} | shasum -a 256" in str(error)
        assert not layout.archive_path.exists()
        assert not layout.extracted_dir.exists()

    @pytest.mark.failure_scenario
    def test_download_failure_lists_attempted_locations(self, layout, tmp_path, release):
        checkout = tmp_path / "verovio"

        with pytest.raises(SourceNotFoundError) as exc_info:
            SourceLocator(layout, local_checkout=checkout, downloader=FakeDownloader()).locate()

        message = str(exc_info.value)
        assert str(checkout) in message
        assert str(layout.extracted_dir) in message
        assert release.url in message
        assert "status 404" in message
        assert isinstance(exc_info.value.__cause__, HttpStatusError)
        assert any("VEROVIO_SOURCE_DIR" in step for step in exc_info.value.remediation())

    @pytest.mark.security
    def test_rejected_extraction_is_not_reused(self, layout, release):
        files = {
            "src/toolkit.cpp": "// toolkit\n",
            "src/doc.cpp": "// doc\n",
            "../../escape.txt": "escaped\n",
        }
        unsafe = make_tarball(release.extracted_dir_name, files)
        matching = type(release)(release.version, sha256_bytes(unsafe), release.url_template)
        layout = CacheLayout(layout.root, matching, layout.target)

        with pytest.raises(ExtractionError):
            SourceLocator(layout, downloader=FakeDownloader({matching.url: unsafe})).locate()

        assert not layout.extracted_dir.exists()
        assert not any(p.name.startswith(".extract-") for p in layout.source_dir.iterdir())
        with pytest.raises(SourceNotFoundError):
            SourceLocator(layout, downloader=FakeDownloader()).locate()

    def test_stale_tree_without_marker_is_replaced(self, layout, fake_downloader):
        stale = layout.extracted_dir / "include"
        stale.mkdir(parents=True)
        (stale / "partial.h").write_text("// partial\n")

        origin = SourceLocator(layout, downloader=fake_downloader).locate()

        assert origin == FreshDownload(layout.extracted_dir)
        assert (layout.extracted_dir / "tools" / "c_wrapper.cpp").is_file()
        assert not (stale / "partial.h").exists()

    @pytest.mark.failure_scenario
    def test_unwritable_cache_directory(self, layout, fake_downloader):
        layout.root.parent.mkdir(parents=True)
        layout.root.write_text("not a directory")

        with pytest.raises(CacheDirectoryError) as exc_info:
            SourceLocator(layout, downloader=fake_downloader).locate()

        assert str(layout.source_dir) in str(exc_info.value)
        assert fake_downloader.calls == []

    @pytest.mark.failure_scenario
    def test_archive_without_expected_directory(self, layout, release):
        wrong_top = make_tarball("some-other-name")
        matching = type(release)(release.version, sha256_bytes(wrong_top), release.url_template)
        layout = CacheLayout(layout.root, matching, layout.target)
        downloader = FakeDownloader({matching.url: wrong_top})

        with pytest.raises(ExtractionError) as exc_info:
            SourceLocator(layout, downloader=downloader).locate()
        assert str(layout.extracted_dir) in str(exc_info.value)


class TestSourceNotFound:
    """Test the aggregate failure."""

    @pytest.mark.failure_scenario
    def test_download_disabled_lists_attempted_locations(self, layout, tmp_path, release):
        checkout = tmp_path / "verovio"

        locator = SourceLocator(layout, local_checkout=checkout, allow_download=False)
        with pytest.raises(SourceNotFoundError) as exc_info:
            locator.locate()

        message = str(exc_info.value)
        assert str(checkout) in message
        assert str(layout.extracted_dir) in message
        assert release.url in message
        assert len(exc_info.value.attempted) == 3
        assert any("VEROVIO_SOURCE_DIR" in step for step in exc_info.value.remediation())
