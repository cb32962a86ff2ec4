"""
End-to-end acquisition, compilation and caching of the Verovio library.

Cold path::

    SourceLocator -> [Downloader -> verify -> extract] -> CompilerInvoker
        -> CompiledArtifactCache.store -> link directives

Warm path::

    CompiledArtifactCache.should_use_cache -> link directives

Every step is synchronous and runs to completion before the next begins.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .cache import CacheLayout, CompiledArtifactCache
from .compiler import CompilerInvoker, ensure_version_header
from .config import BuildSettings
from .downloader import Downloader
from .errors import PrebuiltUnavailableError, VerovioBuildError
from .linking import LinkDirective, link_directives, rerun_directives
from .locator import SourceLocator, SourceOrigin
from .prebuilt import PrebuiltFetcher


logger = logging.getLogger("verovio-build.pipeline")

MODE_SKIPPED = "skipped"
MODE_PREBUILT = "prebuilt"
MODE_CACHED = "cached"
MODE_COMPILED = "compiled"


@dataclass
class BuildResult:
    """Outcome of one pipeline run."""
    mode: str
    directives: List[LinkDirective] = field(default_factory=list)
    artifact: Optional[Path] = None
    origin: Optional[SourceOrigin] = None
    cache_stored: bool = False

    @property
    def skipped(self) -> bool:
        return self.mode == MODE_SKIPPED

    @property
    def cache_hit(self) -> bool:
        return self.mode == MODE_CACHED


def run(settings: BuildSettings, downloader: Optional[Downloader] = None,
        compiler: Optional[CompilerInvoker] = None,
        log: Optional[logging.Logger] = None) -> BuildResult:
    """
    Run the pipeline for one build.

    Args:
        settings: Build settings for this run
        downloader: Downloader to use (one is created on demand)
        compiler: Compiler invoker to use (one is created on demand)
        log: Diagnostic sink

    Returns:
        BuildResult describing what was linked and how it was obtained

    Raises:
        VerovioBuildError: Any fatal pipeline failure
    """
    log = log or logger
    layout = CacheLayout.for_workspace(settings.workspace_root, settings.release, settings.target)
    directives = rerun_directives()

    def get_downloader() -> Downloader:
        nonlocal downloader
        if downloader is None:
            downloader = Downloader(timeout=settings.download_timeout, logger=log)
        return downloader

    if settings.prebuilt:
        try:
            lib_path = fetch_prebuilt(settings, layout, get_downloader(), log)
        except VerovioBuildError as e:
            if not settings.bundled:
                raise
            log.warning(f"Prebuilt download failed, falling back to bundled compilation: {e}")
        else:
            directives += link_directives(settings.target, lib_path.parent)
            return BuildResult(MODE_PREBUILT, directives, artifact=lib_path)

    if not settings.bundled:
        log.info("Bundled mode not enabled, skipping Verovio build")
        return BuildResult(MODE_SKIPPED)

    cache = CompiledArtifactCache(layout, force_rebuild=settings.force_rebuild, logger=log)
    if cache.should_use_cache():
        directives += link_directives(settings.target, layout.artifact_dir)
        return BuildResult(MODE_CACHED, directives, artifact=cache.artifact_path)

    # --- Full compilation path ---
    out_dir = settings.require_out_dir()

    locator = SourceLocator(
        layout,
        override=settings.source_override,
        local_checkout=settings.local_checkout,
        downloader=None if settings.offline else get_downloader(),
        allow_download=not settings.offline,
        logger=log,
    )
    origin = locator.locate()
    directives = rerun_directives(origin.path)

    if ensure_version_header(origin.path):
        log.info(f"Generated placeholder git_commit.h in {origin.path}")

    if compiler is None:
        compiler = CompilerInvoker(settings.target, out_dir, logger=log, opt_level=settings.opt_level)
    library = compiler.compile(origin.path)

    stored = cache.store(library)
    directives += link_directives(settings.target, library.parent)
    return BuildResult(MODE_COMPILED, directives, artifact=library, origin=origin, cache_stored=stored)


def fetch_prebuilt(settings: BuildSettings, layout: CacheLayout, downloader: Downloader,
                   log: logging.Logger) -> Path:
    triple = settings.target.triple
    if not triple:
        raise PrebuiltUnavailableError("TARGET is not set; cannot select a prebuilt library")
    fetcher = PrebuiltFetcher(layout, downloader, logger=log)
    return fetcher.fetch(triple)
