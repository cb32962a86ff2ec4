"""
Exception hierarchy for the Verovio build pipeline.

Every fatal condition raised by a pipeline component is a subclass of
VerovioBuildError. Only the command-line entry point turns these into a
process exit status.
"""

from typing import List, Optional


SOURCE_REMEDIATION = [
    "Set VEROVIO_SOURCE_DIR environment variable to your local Verovio source",
    "Initialize the git submodule: git submodule update --init",
    "Ensure you have network access to download from GitHub",
]

PREBUILT_REMEDIATION = [
    "Use the bundled mode to compile from source instead",
    "Check your network connection",
    "Verify the target platform is supported",
]


class VerovioBuildError(Exception):
    """Base exception for build pipeline failures."""

    def remediation(self) -> List[str]:
        """Steps a human can take to resolve the failure."""
        return []


class ConfigurationError(VerovioBuildError):
    """Build settings are missing or malformed."""
    pass


class SourceNotFoundError(VerovioBuildError):
    """No discovery strategy yielded a usable source directory."""

    def __init__(self, attempted: List[str], reason: Optional[str] = None):
        self.attempted = list(attempted)
        self.reason = reason
        lines = ["Could not find a Verovio source tree. Locations tried:"]
        lines.extend(f"  - {location}" for location in self.attempted)
        if reason:
            lines.extend(["", reason])
        super().__init__("\n".join(lines))

    def remediation(self) -> List[str]:
        return list(SOURCE_REMEDIATION)


class InvalidOverrideError(VerovioBuildError):
    """VEROVIO_SOURCE_DIR is set but does not point at a Verovio tree."""

    def __init__(self, path: str, marker: str = "src"):
        self.path = path
        self.marker = marker
        super().__init__(
            f"VEROVIO_SOURCE_DIR is set to '{path}' but it doesn't appear to be a "
            f"valid Verovio source directory. Expected to find a '{marker}' subdirectory."
        )

    def remediation(self) -> List[str]:
        return list(SOURCE_REMEDIATION)


class DownloadError(VerovioBuildError):
    """Base class for failed downloads."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(message)

    def remediation(self) -> List[str]:
        return list(SOURCE_REMEDIATION)


class TransportError(DownloadError):
    """The request never produced an HTTP response."""

    def __init__(self, url: str, reason: str):
        self.reason = reason
        super().__init__(url, f"Failed to download {url}: {reason}")


class HttpStatusError(DownloadError):
    """The server answered with a non-2xx status."""

    def __init__(self, url: str, status_code: int):
        self.status_code = status_code
        super().__init__(url, f"HTTP error downloading {url}: status {status_code}")


class IntegrityMismatchError(VerovioBuildError):
    """Downloaded content does not hash to the pinned value."""

    def __init__(self, expected: str, actual: str, url: str,
                 hash_command: Optional[str] = None, version: Optional[str] = None,
                 remediation_steps: Optional[List[str]] = None):
        self.expected = expected
        self.actual = actual
        self.url = url
        self.hash_command = hash_command
        self.version = version
        self.remediation_steps = SOURCE_REMEDIATION if remediation_steps is None else remediation_steps
        lines = [
            f"SHA256 hash mismatch for {url}",
            "",
            f"Expected: {expected}",
            f"Actual:   {actual}",
            "",
            "This could indicate:",
            "1. A corrupted download - try again",
        ]
        if version:
            lines.append(f"2. The pinned SHA256 needs updating for version {version}")
        else:
            lines.append("2. The pinned SHA256 needs updating")
        lines.append("3. A supply chain attack (unlikely but verify manually)")
        if hash_command:
            lines.extend(["", "To update the hash, run:", f"  {hash_command}"])
        super().__init__("\n".join(lines))

    def remediation(self) -> List[str]:
        return list(self.remediation_steps)


class ExtractionError(VerovioBuildError):
    """The archive is corrupt, unsupported or unsafe to unpack."""

    def remediation(self) -> List[str]:
        return list(SOURCE_REMEDIATION)


class CompilationError(VerovioBuildError):
    """The native toolchain reported a failure."""

    def __init__(self, message: str, command: Optional[List[str]] = None,
                 returncode: Optional[int] = None):
        self.command = command
        self.returncode = returncode
        super().__init__(message)

    def remediation(self) -> List[str]:
        return [
            "Check the compiler output above for the failing translation unit",
            "Ensure a C++20 compiler is installed (set CXX to choose one)",
        ]


class CacheWriteError(VerovioBuildError):
    """The compiled artifact could not be persisted. Never fatal."""
    pass


class CacheDirectoryError(VerovioBuildError):
    """The cache directory or a source tree could not be written."""

    def remediation(self) -> List[str]:
        return [
            "Check that the workspace target directory is writable",
            "Remove target/verovio-cache and run the build again",
        ]


class PrebuiltUnavailableError(VerovioBuildError):
    """No prebuilt library can be used for the current target."""

    def remediation(self) -> List[str]:
        return list(PREBUILT_REMEDIATION)
