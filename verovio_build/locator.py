"""
Discovery of the Verovio source tree.

Sources are tried in a fixed priority order and the first match wins:

1. ``VEROVIO_SOURCE_DIR`` - for corporate/restricted networks
2. Local checkout at ``../../verovio`` - for development workflows
3. Cached extraction under ``target/verovio-cache/verovio-source/``
4. Fresh download of the pinned GitHub release archive

An explicit override that does not look like a Verovio tree is an error in
its own right. Discovery never falls through to the later priorities in that
case.
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from .archive import extract_tarball
from .cache import CacheLayout
from .downloader import Downloader
from .errors import (
    CacheDirectoryError,
    DownloadError,
    ExtractionError,
    IntegrityMismatchError,
    InvalidOverrideError,
    SourceNotFoundError,
)
from .integrity import Mismatch, verify_file
from .release import MARKER_SUBPATH


@dataclass(frozen=True)
class ExplicitOverride:
    path: Path
    kind = "override"


@dataclass(frozen=True)
class LocalCheckout:
    path: Path
    kind = "local-checkout"


@dataclass(frozen=True)
class CachedExtraction:
    path: Path
    kind = "cached-extraction"


@dataclass(frozen=True)
class FreshDownload:
    path: Path
    kind = "fresh-download"


SourceOrigin = Union[ExplicitOverride, LocalCheckout, CachedExtraction, FreshDownload]

Strategy = Callable[[], Optional[SourceOrigin]]


def has_marker(path: Path, marker: str = MARKER_SUBPATH) -> bool:
    """True if path is a directory containing the marker subpath."""
    return path.is_dir() and (path / marker).exists()


class SourceLocator:
    """Finds exactly one usable Verovio source directory."""

    def __init__(self, layout: CacheLayout, override: Optional[Union[str, Path]] = None,
                 local_checkout: Optional[Union[str, Path]] = None,
                 downloader: Optional[Downloader] = None, allow_download: bool = True,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the locator.

        Args:
            layout: Cache layout for the pinned release
            override: Value of VEROVIO_SOURCE_DIR, if set
            local_checkout: Candidate path of a local checkout
            downloader: Downloader used for the fresh-download strategy
            allow_download: Whether the fresh-download strategy may run
            logger: Diagnostic sink
        """
        self.layout = layout
        self.release = layout.release
        self.override = override
        self.local_checkout = Path(local_checkout) if local_checkout else None
        self.downloader = downloader
        self.allow_download = allow_download
        self.logger = logger or logging.getLogger("verovio-build.locator")
        self.tried: List[str] = []

    def strategies(self) -> List[Tuple[str, Strategy]]:
        """Discovery strategies in priority order."""
        return [
            (ExplicitOverride.kind, self.find_override),
            (LocalCheckout.kind, self.find_local_checkout),
            (CachedExtraction.kind, self.find_cached_extraction),
            (FreshDownload.kind, self.download_source),
        ]

    def locate(self) -> SourceOrigin:
        """
        Run the strategies in order and return the first match.

        Raises:
            InvalidOverrideError: VEROVIO_SOURCE_DIR is set but invalid
            SourceNotFoundError: No strategy produced a source tree, or the
                download failed
            IntegrityMismatchError, ExtractionError: The downloaded archive
                could not be used
        """
        self.tried = []
        for name, strategy in self.strategies():
            origin = strategy()
            if origin is not None:
                self.logger.info(f"Using Verovio source from {name}: {origin.path}")
                return origin
        raise SourceNotFoundError(self.tried)

    def find_override(self) -> Optional[ExplicitOverride]:
        if not self.override:
            return None
        path = Path(self.override)
        self.tried.append(f"VEROVIO_SOURCE_DIR: {path}")
        if not has_marker(path):
            raise InvalidOverrideError(str(self.override), MARKER_SUBPATH)
        return ExplicitOverride(path)

    def find_local_checkout(self) -> Optional[LocalCheckout]:
        if self.local_checkout is None:
            return None
        self.tried.append(f"local checkout: {self.local_checkout}")
        if not self.local_checkout.exists():
            return None
        canonical = self.local_checkout.resolve()
        if has_marker(canonical):
            return LocalCheckout(canonical)
        return None

    def find_cached_extraction(self) -> Optional[CachedExtraction]:
        extracted_dir = self.layout.extracted_dir
        self.tried.append(f"cached extraction: {extracted_dir}")
        if has_marker(extracted_dir):
            return CachedExtraction(extracted_dir)
        return None

    def download_source(self) -> Optional[FreshDownload]:
        """
        Download, verify and extract the pinned release archive.

        Returns:
            FreshDownload for the extracted tree, or None when downloads
            are disabled

        Raises:
            SourceNotFoundError: The download itself failed
            IntegrityMismatchError: The archive does not match the pinned hash
            ExtractionError: The archive could not be unpacked
            CacheDirectoryError: The cache directory is not writable
        """
        url = self.release.url
        if not self.allow_download or self.downloader is None:
            self.tried.append(f"download from {url} (disabled)")
            return None
        self.tried.append(f"download from {url}")

        self.logger.warning("Verovio source not found locally, downloading from GitHub...")
        try:
            source_dir = self.layout.ensure(self.layout.source_dir)
        except OSError as e:
            raise CacheDirectoryError(f"Failed to create cache directory {self.layout.source_dir}: {e}") from e
        archive_path = self.layout.archive_path

        try:
            self.downloader.fetch_to_file(url, archive_path)
        except DownloadError as e:
            raise SourceNotFoundError(self.tried, reason=str(e)) from e

        self.logger.info("Verifying download integrity...")
        try:
            outcome = verify_file(archive_path, self.release.sha256)
        except OSError as e:
            archive_path.unlink(missing_ok=True)
            raise ExtractionError(f"Failed to read {archive_path} for hashing: {e}") from e

        if isinstance(outcome, Mismatch):
            archive_path.unlink(missing_ok=True)
            raise IntegrityMismatchError(
                expected=self.release.sha256,
                actual=outcome.actual,
                url=url,
                hash_command=self.release.hash_command(),
                version=self.release.version,
            )
        self.logger.info("SHA256 hash verified successfully")

        self.logger.info("Extracting Verovio source...")
        extracted_dir = self._extract_staged(archive_path, source_dir)

        archive_path.unlink(missing_ok=True)
        self.logger.info(f"Verovio source extracted to: {extracted_dir}")
        return FreshDownload(extracted_dir)

    def _extract_staged(self, archive_path: Path, source_dir: Path) -> Path:
        """
        Extract into a private directory and move the tree into place.

        The extracted directory either appears complete or not at all, so an
        interrupted or rejected extraction is never picked up as a cached one.
        """
        extracted_dir = self.layout.extracted_dir
        try:
            staging = Path(tempfile.mkdtemp(prefix=".extract-", dir=str(source_dir)))
        except OSError as e:
            raise CacheDirectoryError(f"Failed to create staging directory in {source_dir}: {e}") from e

        try:
            extract_tarball(archive_path, staging, log=self.logger)
            staged_tree = staging / self.release.extracted_dir_name
            if not has_marker(staged_tree):
                raise ExtractionError(
                    f"Extraction completed but expected directory not found: {extracted_dir}\n"
                    "Please report this issue or set VEROVIO_SOURCE_DIR to use a local copy."
                )
            try:
                if extracted_dir.exists():
                    # Left over without its marker; has_marker already rejected it.
                    shutil.rmtree(extracted_dir)
                os.replace(staged_tree, extracted_dir)
            except OSError as e:
                raise CacheDirectoryError(f"Failed to move extracted source to {extracted_dir}: {e}") from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)
        return extracted_dir
