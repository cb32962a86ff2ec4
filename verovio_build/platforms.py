"""
Target platform model.

Link names, library file names and compiler flags all depend on the target
OS family and on whether the toolchain is MSVC. Both are derived from a
target triple such as ``x86_64-pc-windows-msvc`` or, when no triple is
given, from the host.
"""

import platform
from dataclasses import dataclass
from typing import Optional

from .release import LIBRARY_NAME


MACOS = "macos"
LINUX = "linux"
WINDOWS = "windows"
ANDROID = "android"


@dataclass(frozen=True)
class TargetPlatform:
    """Operating system family and toolchain environment of a build target."""
    os: str
    env: str = ""
    triple: Optional[str] = None

    @classmethod
    def from_triple(cls, triple: str) -> "TargetPlatform":
        """
        Parse a target triple.

        Args:
            triple: Target triple, e.g. "aarch64-apple-darwin"

        Returns:
            TargetPlatform for the triple. Unrecognised systems keep their
            raw name as the os family.
        """
        parts = triple.strip().lower().split("-")
        if "darwin" in parts or ("apple" in parts and "ios" not in parts):
            os_name = MACOS
        elif any(part.startswith("android") for part in parts):
            os_name = ANDROID
        elif "linux" in parts:
            os_name = LINUX
        elif "windows" in parts:
            os_name = WINDOWS
        else:
            os_name = parts[2] if len(parts) > 2 else parts[-1]

        env = ""
        last = parts[-1]
        for candidate in ("msvc", "gnullvm", "gnu", "musl"):
            if last.startswith(candidate):
                env = candidate
                break

        return cls(os=os_name, env=env, triple=triple)

    @classmethod
    def detect(cls) -> "TargetPlatform":
        """Describe the host as a build target."""
        system = platform.system().lower()
        if system == "linux":
            return cls(os=LINUX, env="gnu")
        elif system == "darwin":
            return cls(os=MACOS)
        elif system in ("windows", "win32"):
            return cls(os=WINDOWS, env="msvc")
        return cls(os=system)

    @property
    def is_windows(self) -> bool:
        return self.os == WINDOWS

    @property
    def is_macos(self) -> bool:
        return self.os == MACOS

    @property
    def is_linux(self) -> bool:
        return self.os == LINUX

    @property
    def is_msvc(self) -> bool:
        return self.is_windows and self.env == "msvc"

    @property
    def static_lib_name(self) -> str:
        if self.is_msvc:
            return f"{LIBRARY_NAME}.lib"
        return f"lib{LIBRARY_NAME}.a"

    def __str__(self) -> str:
        if self.triple:
            return self.triple
        return f"{self.os}-{self.env}" if self.env else self.os
