"""
On-disk cache for downloaded sources and the compiled Verovio library.

Layout, rooted under the workspace's transient build directory so that it
survives incremental builds but is removed by a full clean::

    <workspace-root>/target/verovio-cache/
        lib-<VERSION>/libverovio.a | verovio.lib
        verovio-source/
            verovio-<VERSION>.tar.gz     (transient)
            verovio-version-<VERSION>/   (extracted tree)

The cache assumes a single writer. Concurrent builds sharing one cache
directory are not supported and no file locking is performed.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union

from .errors import CacheWriteError
from .platforms import TargetPlatform
from .release import PinnedRelease


CACHE_DIR_NAME = "verovio-cache"
SOURCE_SUBDIR = "verovio-source"


class CacheLayout:
    """Deterministic paths inside the cache directory."""

    def __init__(self, root: Union[str, Path], release: PinnedRelease, target: TargetPlatform):
        self.root = Path(root)
        self.release = release
        self.target = target

    @classmethod
    def for_workspace(cls, workspace_root: Union[str, Path], release: PinnedRelease,
                      target: TargetPlatform) -> "CacheLayout":
        return cls(Path(workspace_root) / "target" / CACHE_DIR_NAME, release, target)

    @property
    def source_dir(self) -> Path:
        return self.root / SOURCE_SUBDIR

    @property
    def archive_path(self) -> Path:
        return self.source_dir / self.release.archive_name

    @property
    def extracted_dir(self) -> Path:
        return self.source_dir / self.release.extracted_dir_name

    @property
    def artifact_dir(self) -> Path:
        # Keyed by pinned version so a version bump never reuses a stale library.
        return self.root / f"lib-{self.release.version}"

    @property
    def artifact_path(self) -> Path:
        return self.artifact_dir / self.target.static_lib_name

    @staticmethod
    def ensure(path: Path) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        return path


class CompiledArtifactCache:
    """Decides whether compilation can be skipped, and stores fresh builds."""

    def __init__(self, layout: CacheLayout, force_rebuild: bool = False,
                 logger: Optional[logging.Logger] = None):
        """
        Args:
            layout: Cache paths for the pinned release and target
            force_rebuild: Ignore any cached library
            logger: Diagnostic sink
        """
        self.layout = layout
        self.force_rebuild = force_rebuild
        self.logger = logger or logging.getLogger("verovio-build.cache")

    @property
    def artifact_path(self) -> Path:
        return self.layout.artifact_path

    def should_use_cache(self) -> bool:
        """
        Check whether a cached library exists and may be used.

        Returns False if force-rebuild is active or no cached library file
        exists. The file's content is not validated.
        """
        if self.force_rebuild:
            self.logger.warning("force-rebuild enabled, recompiling Verovio")
            return False

        cached_lib = self.artifact_path
        if cached_lib.is_file():
            self.logger.info(f"Using cached Verovio library from {cached_lib}")
            return True

        self.logger.info(f"No cached Verovio library found at {cached_lib}, compiling from source")
        return False

    def store(self, compiled_path: Union[str, Path], strict: bool = False) -> bool:
        """
        Copy a freshly compiled library into the cache.

        Failures only cost a future recompilation, so they are logged as
        warnings unless strict is set.

        Args:
            compiled_path: Library produced by the compiler
            strict: Raise CacheWriteError instead of warning

        Returns:
            True if the library was cached
        """
        compiled_path = Path(compiled_path)
        dest = self.artifact_path

        if not compiled_path.is_file():
            if strict:
                raise CacheWriteError(f"Compiled library not found at {compiled_path}")
            self.logger.warning(f"Compiled library not found at {compiled_path}, caching skipped")
            return False

        tmp_name = None
        try:
            self.layout.ensure(dest.parent)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=str(dest.parent))
            os.close(fd)
            shutil.copyfile(compiled_path, tmp_name)
            os.replace(tmp_name, dest)
            tmp_name = None
        except OSError as e:
            if strict:
                raise CacheWriteError(f"Failed to cache library to {dest}: {e}") from e
            self.logger.warning(f"Failed to cache library: {e}. Future builds may recompile.")
            return False
        finally:
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

        self.logger.info(f"Cached Verovio library to {dest}")
        return True
