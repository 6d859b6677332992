"""
Integrity Verification

Size and SHA-256 checks for downloaded and cached artifacts.
"""

import hashlib
import os
from typing import Optional

from fwfetch.constants import HASH_READ_BUFFER_SIZE
from fwfetch.log_utils import logger

from .interfaces import FailureKind, Pathish, VerificationOutcome


def calculate_sha256(
    file_path: Pathish, buffer_size: int = HASH_READ_BUFFER_SIZE
) -> str:
    """
    Compute the SHA-256 hex digest of a file.

    Streams the file through a fixed-size buffer without loading it into memory.

    Returns:
        str: The 64-character lowercase hexadecimal digest.

    Raises:
        OSError: If the file cannot be opened or read.
    """
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(buffer_size), b""):
            sha256_hash.update(chunk)
    return sha256_hash.hexdigest()


class IntegrityVerifier:
    """Checks a file against optional size and hash expectations."""

    def __init__(self, buffer_size: int = HASH_READ_BUFFER_SIZE):
        self.buffer_size = buffer_size

    def compute_hash(self, file_path: Pathish) -> str:
        return calculate_sha256(file_path, self.buffer_size)

    def verify(
        self,
        file_path: Pathish,
        expected_size: Optional[int] = None,
        expected_hash: Optional[str] = None,
    ) -> VerificationOutcome:
        """
        Verify `file_path` against whichever expectations are present.

        The size is checked first and a mismatch returns before any hashing. The hash is
        compared case-insensitively. With neither expectation the result is VALID: this is
        the degraded-trust path used when no remote manifest exists.

        Returns:
            VerificationOutcome: VALID, or INVALID with a reason and FailureKind.
        """
        name = os.path.basename(str(file_path))
        if not os.path.isfile(file_path):
            return VerificationOutcome.invalid(
                f"file not found: {name}", FailureKind.UNREADABLE
            )

        if expected_size is not None:
            try:
                actual_size = os.path.getsize(file_path)
            except OSError as e:
                return VerificationOutcome.invalid(
                    f"failed to stat file: {e}", FailureKind.UNREADABLE
                )
            if actual_size != expected_size:
                logger.debug(
                    "File size mismatch for %s: expected %s, got %s",
                    name,
                    expected_size,
                    actual_size,
                )
                return VerificationOutcome.invalid(
                    f"size mismatch: expected {expected_size}, got {actual_size}",
                    FailureKind.SIZE_MISMATCH,
                )

        if expected_hash is not None:
            try:
                actual_hash = self.compute_hash(file_path)
            except OSError as e:
                return VerificationOutcome.invalid(
                    f"failed to read file: {e}", FailureKind.UNREADABLE
                )
            if actual_hash.lower() != expected_hash.strip().lower():
                logger.debug("Hash mismatch for %s", name)
                return VerificationOutcome.invalid(
                    "hash mismatch", FailureKind.HASH_MISMATCH
                )
            logger.debug("Hash verified for %s", name)

        if expected_size is None and expected_hash is None:
            logger.debug("No size or hash expectations for %s; accepting", name)

        return VerificationOutcome.valid()
