"""
SHA256 verification of downloaded content against a pinned value.
"""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Union


CHUNK_SIZE = 65536


@dataclass(frozen=True)
class Match:
    """Content hashes to the expected value."""

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Mismatch:
    """Content does not hash to the expected value."""
    actual: str

    def __bool__(self) -> bool:
        return False


VerificationOutcome = Union[Match, Mismatch]


def _normalize(hex_digest: str) -> str:
    return hex_digest.strip().lower()


def sha256_bytes(data: bytes) -> str:
    """Hexadecimal SHA256 of a byte string."""
    return hashlib.sha256(data).hexdigest()


def sha256_file(file_path: Union[str, Path]) -> str:
    """
    Calculate SHA256 hash of a file.

    Args:
        file_path: Path to the file

    Returns:
        Hexadecimal SHA256 hash string
    """
    hash_sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            hash_sha256.update(chunk)
    return hash_sha256.hexdigest()


def compare(actual_hex: str, expected_hex: str) -> VerificationOutcome:
    """Compare two hex digests, ignoring case and surrounding whitespace."""
    actual = _normalize(actual_hex)
    if actual == _normalize(expected_hex):
        return Match()
    return Mismatch(actual)


def verify(data: bytes, expected_hex: str) -> VerificationOutcome:
    """
    Verify a byte blob against an expected SHA256.

    Args:
        data: Content to hash
        expected_hex: Expected hex digest, any case

    Returns:
        Match, or Mismatch carrying the actual lowercase digest
    """
    return compare(sha256_bytes(data), expected_hex)


def verify_file(file_path: Union[str, Path], expected_hex: str) -> VerificationOutcome:
    """Verify a file on disk without loading it whole."""
    return compare(sha256_file(file_path), expected_hex)
