"""
Pytest configuration and fixtures for the Verovio build pipeline tests.

Nothing here touches the network or a real compiler: downloads are served
by FakeDownloader and compilation is replaced by FakeCompiler or by a
patched subprocess.run.
"""

import io
import tarfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from verovio_build.errors import HttpStatusError
from verovio_build.integrity import sha256_bytes
from verovio_build.platforms import TargetPlatform
from verovio_build.release import PinnedRelease


TEST_VERSION = "9.9.9"

# Relative paths of a minimal Verovio tree and their contents.
VEROVIO_TREE = {
    "src/toolkit.cpp": "// toolkit\n",
    "src/doc.cpp": "// doc\n",
    "src/main.cpp": "int main() { return 0; }\n",
    "src/hum/humlib.cpp": "// humlib\n",
    "src/midi/MidiFile.cpp": "// midi\n",
    "src/crc/crc.cpp": "// crc\n",
    "src/json/jsonxx.cc": "// json\n",
    "src/pugi/pugixml.cpp": "// pugi\n",
    "libmei/dist/atts_shared.cpp": "// atts\n",
    "libmei/addons/att.cpp": "// att\n",
    "tools/c_wrapper.cpp": "// wrapper\n",
    "tools/c_wrapper.h": "// wrapper header\n",
    "include/vrv/toolkit.h": "// header\n",
}


def make_verovio_tree(root: Path) -> Path:
    """Create a minimal Verovio source tree under root."""
    for relative, content in VEROVIO_TREE.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


def make_tarball(top_dir: str, files: Optional[Dict[str, str]] = None) -> bytes:
    """Build a gzipped tarball in memory with every file under top_dir."""
    files = VEROVIO_TREE if files is None else files
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for relative, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(f"{top_dir}/{relative}")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class FakeDownloader:
    """Serves canned responses by URL and records every request."""

    def __init__(self, responses: Optional[Dict[str, bytes]] = None):
        self.responses = dict(responses or {})
        self.calls: List[str] = []

    def _lookup(self, url: str) -> bytes:
        self.calls.append(url)
        if url not in self.responses:
            raise HttpStatusError(url, 404)
        return self.responses[url]

    def fetch(self, url: str) -> bytes:
        return self._lookup(url)

    def fetch_to_file(self, url: str, dest) -> Path:
        data = self._lookup(url)
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)
        return dest


class FakeCompiler:
    """Stands in for CompilerInvoker; writes a dummy library."""

    def __init__(self, out_dir: Path, target: TargetPlatform):
        self.out_dir = Path(out_dir)
        self.target = target
        self.compiled: List[Path] = []

    def compile(self, source_root) -> Path:
        self.compiled.append(Path(source_root))
        self.out_dir.mkdir(parents=True, exist_ok=True)
        library = self.out_dir / self.target.static_lib_name
        library.write_bytes(b"!<arch>\n")
        return library


@pytest.fixture
def linux_target() -> TargetPlatform:
    return TargetPlatform.from_triple("x86_64-unknown-linux-gnu")


@pytest.fixture
def tarball() -> bytes:
    return make_tarball(f"verovio-version-{TEST_VERSION}")


@pytest.fixture
def release(tarball) -> PinnedRelease:
    """A pinned release whose hash matches the test tarball."""
    return PinnedRelease(
        TEST_VERSION,
        sha256_bytes(tarball),
        url_template="https://example.invalid/verovio/version-{version}.tar.gz",
    )


@pytest.fixture
def workspace(tmp_path) -> Dict[str, Path]:
    """A workspace with the crate manifest two levels below the root."""
    root = tmp_path / "workspace"
    manifest_dir = root / "crates" / "verovioxide-sys"
    manifest_dir.mkdir(parents=True)
    out_dir = root / "target" / "debug" / "build" / "out"
    return {"root": root, "manifest_dir": manifest_dir, "out_dir": out_dir}


@pytest.fixture
def verovio_tree(tmp_path) -> Path:
    return make_verovio_tree(tmp_path / "verovio-src")


@pytest.fixture
def fake_downloader(release, tarball) -> FakeDownloader:
    return FakeDownloader({release.url: tarball})
