"""
Streaming extraction of gzipped source tarballs.

The archive is decompressed and unpacked in a single pass. No intermediate
``.tar`` is ever written. Integrity must be checked by the caller before
extraction.
"""

import io
import logging
import os
import tarfile
from pathlib import Path
from typing import Optional, Union

from .errors import ExtractionError


logger = logging.getLogger("verovio-build.archive")


def _is_within(base: Path, target: Path) -> bool:
    try:
        target.relative_to(base)
    except ValueError:
        return False
    return True


def _check_member(member: tarfile.TarInfo, dest_dir: Path) -> None:
    """Reject members that would write outside dest_dir."""
    name = member.name
    if os.path.isabs(name) or name.startswith(("/", "\\")):
        raise ExtractionError(f"Refusing to extract absolute path: {name}")

    target = (dest_dir / name).resolve()
    if not _is_within(dest_dir, target):
        raise ExtractionError(f"Refusing to extract path outside destination: {name}")

    if member.issym() or member.islnk():
        if member.issym():
            link_target = (target.parent / member.linkname).resolve()
        else:
            link_target = (dest_dir / member.linkname).resolve()
        if os.path.isabs(member.linkname) or not _is_within(dest_dir, link_target):
            raise ExtractionError(
                f"Refusing to extract link pointing outside destination: {name} -> {member.linkname}"
            )

    if member.isdev():
        raise ExtractionError(f"Refusing to extract device file: {name}")


def extract_tarball(archive: Union[str, Path, bytes], dest_dir: Union[str, Path],
                    log: Optional[logging.Logger] = None) -> Path:
    """
    Extract a .tar.gz archive into a directory.

    Args:
        archive: Path to the archive, or its raw bytes
        dest_dir: Directory to extract into (created if missing)
        log: Diagnostic sink

    Returns:
        The destination directory

    Raises:
        ExtractionError: The archive is corrupt, unsupported or unsafe
    """
    log = log or logger
    dest_dir = Path(dest_dir)
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExtractionError(f"Failed to create extraction directory {dest_dir}: {e}") from e
    dest_dir = dest_dir.resolve()

    if isinstance(archive, (bytes, bytearray)):
        fileobj = io.BytesIO(archive)
        description = f"<{len(archive)} bytes>"
    else:
        try:
            fileobj = open(archive, "rb")
        except OSError as e:
            raise ExtractionError(f"Failed to open tarball {archive}: {e}") from e
        description = str(archive)

    log.info(f"Extracting {description} to {dest_dir}")
    count = 0
    try:
        with fileobj, tarfile.open(fileobj=fileobj, mode="r|gz") as tar:
            for member in tar:
                _check_member(member, dest_dir)
                if hasattr(tarfile, "data_filter"):
                    tar.extract(member, dest_dir, filter="data")
                else:
                    tar.extract(member, dest_dir)
                count += 1
    except ExtractionError:
        raise
    except (tarfile.TarError, OSError, EOFError, ValueError) as e:
        raise ExtractionError(f"Failed to extract tarball {description}: {e}") from e

    log.info(f"Extracted {count} entries")
    return dest_dir
