"""
Pinned upstream releases.

The pinned version and the SHA256 of its source archive travel together:
whenever VEROVIO_VERSION changes, VEROVIO_TARBALL_SHA256 must be updated too.
"""

from dataclasses import dataclass


VEROVIO_VERSION = "5.7.0"

# curl -sL https://github.com/rism-digital/verovio/archive/refs/tags/version-5.7.0.tar.gz | shasum -a 256
VEROVIO_TARBALL_SHA256 = "bf7483504ddbf2d7ff59ae53b547e6347f89f82583559bf264d97b3624279d5e"

VEROVIO_URL_TEMPLATE = "https://github.com/rism-digital/verovio/archive/refs/tags/version-{version}.tar.gz"

# Presence of this subdirectory identifies a Verovio source tree.
MARKER_SUBPATH = "src"

LIBRARY_NAME = "verovio"

# Prebuilt static libraries published alongside verovioxide releases.
PREBUILT_RELEASE_VERSION = "0.1.0"
PREBUILT_BASE_URL_TEMPLATE = "https://github.com/oxur/verovioxide/releases/download/v{version}"

SUPPORTED_PREBUILT_TARGETS = (
    "x86_64-apple-darwin",
    "aarch64-apple-darwin",
    "x86_64-unknown-linux-gnu",
    "aarch64-unknown-linux-gnu",
    "x86_64-pc-windows-msvc",
)


@dataclass(frozen=True)
class PinnedRelease:
    """An upstream version and the expected hash of its source archive."""
    version: str
    sha256: str
    url_template: str = VEROVIO_URL_TEMPLATE

    @property
    def url(self) -> str:
        return self.url_template.format(version=self.version)

    @property
    def archive_name(self) -> str:
        return f"verovio-{self.version}.tar.gz"

    @property
    def extracted_dir_name(self) -> str:
        """Top-level directory inside the GitHub tag archive."""
        return f"verovio-version-{self.version}"

    def hash_command(self) -> str:
        """Shell command that recomputes the archive hash."""
        return f"curl -sL {self.url} | shasum -a 256"


VEROVIO_RELEASE = PinnedRelease(VEROVIO_VERSION, VEROVIO_TARBALL_SHA256)


def prebuilt_base_url(release_version: str = PREBUILT_RELEASE_VERSION) -> str:
    return PREBUILT_BASE_URL_TEMPLATE.format(version=release_version)
