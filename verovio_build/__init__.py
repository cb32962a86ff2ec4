"""
Build-time acquisition, compilation and caching of the Verovio C++ library.

Usage:
    verovio-build --bundled --manifest-dir crates/verovioxide-sys --out-dir build/out
    python -m verovio_build --prebuilt --target x86_64-unknown-linux-gnu
"""

__version__ = "0.1.0"

from .config import BuildSettings
from .errors import VerovioBuildError
from .pipeline import BuildResult, run
from .release import VEROVIO_RELEASE, PinnedRelease

__all__ = [
    "BuildResult",
    "BuildSettings",
    "PinnedRelease",
    "VEROVIO_RELEASE",
    "VerovioBuildError",
    "run",
]
