"""
Prebuilt static libraries published with verovioxide releases.

Each release ships a ``hashes.json`` manifest mapping target triples to the
SHA256 of that target's library. The manifest is cached per release so the
hashes are only fetched once.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from .cache import CacheLayout
from .downloader import Downloader
from .errors import (
    PREBUILT_REMEDIATION,
    CacheDirectoryError,
    DownloadError,
    IntegrityMismatchError,
    PrebuiltUnavailableError,
)
from .integrity import Match, Mismatch, verify_file
from .release import PREBUILT_RELEASE_VERSION, SUPPORTED_PREBUILT_TARGETS, prebuilt_base_url


def prebuilt_lib_name(triple: str, verovio_version: str) -> str:
    if "windows" in triple and "msvc" in triple:
        return f"verovio-{verovio_version}-{triple}.lib"
    return f"libverovio-{verovio_version}-{triple}.a"


class PrebuiltFetcher:
    """Downloads and verifies a prebuilt Verovio library for one target."""

    def __init__(self, layout: CacheLayout, downloader: Downloader,
                 release_version: str = PREBUILT_RELEASE_VERSION,
                 logger: Optional[logging.Logger] = None):
        self.layout = layout
        self.downloader = downloader
        self.release_version = release_version
        self.base_url = prebuilt_base_url(release_version)
        self.logger = logger or logging.getLogger("verovio-build.prebuilt")

    @property
    def hashes_url(self) -> str:
        return f"{self.base_url}/hashes.json"

    @property
    def hashes_cache_path(self) -> Path:
        return self.layout.root / f"hashes-v{self.release_version}.json"

    def _unsupported(self, triple: str, reason: str) -> PrebuiltUnavailableError:
        return PrebuiltUnavailableError(
            f"{reason}\nSupported targets: {', '.join(SUPPORTED_PREBUILT_TARGETS)}."
        )

    def load_manifest(self) -> Dict[str, str]:
        """
        Return the target-to-hash manifest, downloading it if not cached.

        Raises:
            PrebuiltUnavailableError: The manifest is missing or malformed
        """
        cache_path = self.hashes_cache_path
        if cache_path.is_file():
            try:
                raw = cache_path.read_text()
            except OSError as e:
                raise PrebuiltUnavailableError(f"Failed to read cached hash manifest {cache_path}: {e}") from e
        else:
            self.logger.info(f"Downloading hash manifest from: {self.hashes_url}")
            try:
                raw = self.downloader.fetch(self.hashes_url).decode("utf-8")
            except DownloadError as e:
                raise PrebuiltUnavailableError(
                    f"Failed to download hash manifest: {e}\n"
                    f"Prebuilt binaries may not be available for v{self.release_version}."
                ) from e
            except UnicodeDecodeError as e:
                raise PrebuiltUnavailableError(f"Hash manifest is not valid UTF-8: {e}") from e

        try:
            manifest = json.loads(raw)
        except json.JSONDecodeError as e:
            cache_path.unlink(missing_ok=True)
            raise PrebuiltUnavailableError(f"Hash manifest is not valid JSON: {e}") from e
        if not isinstance(manifest, dict):
            cache_path.unlink(missing_ok=True)
            raise PrebuiltUnavailableError("Hash manifest must be a JSON object")

        if not cache_path.is_file():
            try:
                self.layout.ensure(cache_path.parent)
                cache_path.write_text(raw)
            except OSError as e:
                self.logger.warning(f"Failed to cache hash manifest: {e}")
        return manifest

    def fetch(self, triple: str) -> Path:
        """
        Obtain a verified prebuilt library for a target triple.

        Returns:
            Path to the library inside the cache directory

        Raises:
            PrebuiltUnavailableError: Target unsupported or manifest lacks it
            DownloadError: The library download failed
            IntegrityMismatchError: The library does not match its hash
            CacheDirectoryError: The prebuilt cache is not usable
        """
        if triple not in SUPPORTED_PREBUILT_TARGETS:
            raise self._unsupported(triple, f"Target '{triple}' is not supported for prebuilt binaries.")

        manifest = self.load_manifest()
        expected = manifest.get(triple)
        if not expected:
            raise self._unsupported(triple, f"No prebuilt library available for target '{triple}'.")

        lib_name = prebuilt_lib_name(triple, self.layout.release.version)
        lib_path = self.layout.root / lib_name

        try:
            self.layout.ensure(self.layout.root)
            if lib_path.is_file():
                if isinstance(verify_file(lib_path, expected), Match):
                    self.logger.info(f"Using cached prebuilt library: {lib_path}")
                    return lib_path
                lib_path.unlink()
        except OSError as e:
            raise CacheDirectoryError(f"Failed to use prebuilt cache {self.layout.root}: {e}") from e

        url = f"{self.base_url}/{lib_name}"
        self.logger.info(f"Downloading prebuilt Verovio library from: {url}")
        self.downloader.fetch_to_file(url, lib_path)

        try:
            outcome = verify_file(lib_path, expected)
        except OSError as e:
            raise CacheDirectoryError(f"Failed to read downloaded library {lib_path}: {e}") from e
        if isinstance(outcome, Mismatch):
            lib_path.unlink(missing_ok=True)
            raise IntegrityMismatchError(
                expected=expected,
                actual=outcome.actual,
                url=url,
                hash_command=f"curl -sL {url} | shasum -a 256",
                remediation_steps=PREBUILT_REMEDIATION,
            )
        self.logger.info("Prebuilt library verified successfully")
        return lib_path
