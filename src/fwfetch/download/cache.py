"""
Artifact Cache

Owns the on-disk cache of downloaded artifacts: `<root>/<asset name>` plus a
`<asset name>.sha256` sidecar, and the `.staging/` directory that in-flight
downloads are written to. A committed entry is only reusable once its sidecar
exists, so an interrupted commit is observed as a cache miss.
"""

import os
import tempfile
from pathlib import Path
from typing import List, Optional

import platformdirs

from fwfetch.constants import (
    APP_NAME,
    HASH_FILE_SUFFIX,
    STAGING_DIR_NAME,
    STAGING_FILE_SUFFIX,
)
from fwfetch.exceptions import CacheWriteError, ManifestError, NoManifestError
from fwfetch.log_utils import logger

from .checksums import ChecksumFetcher, is_sha256_hex
from .interfaces import (
    AssetDescriptor,
    CacheEntry,
    FailureKind,
    Pathish,
    VerificationOutcome,
)
from .verifier import IntegrityVerifier


def _fsync_file(path: Pathish) -> None:
    with open(path, "rb") as f:
        os.fsync(f.fileno())


class CacheStore:
    """
    Manages cached artifacts and their stored hashes.

    `lookup` re-checks an entry against the remote checksum manifest on every call
    so a changed upstream artifact is noticed; when the manifest cannot be consulted
    the stored sidecar hash is used instead and an advisory says so.
    """

    def __init__(
        self,
        root: Optional[Pathish] = None,
        checksum_fetcher: Optional[ChecksumFetcher] = None,
        verifier: Optional[IntegrityVerifier] = None,
    ):
        """
        Parameters:
            root (Optional[Pathish]): Cache directory; defaults to the platform user cache dir.
            checksum_fetcher (Optional[ChecksumFetcher]): Source of remote hashes. Without one
                every lookup takes the stored-hash path.
            verifier (Optional[IntegrityVerifier]): Hashing backend.
        """
        self.root = Path(root or platformdirs.user_cache_dir(APP_NAME))
        self.checksum_fetcher = checksum_fetcher
        self.verifier = verifier or IntegrityVerifier()

    @property
    def staging_dir(self) -> Path:
        return self.root / STAGING_DIR_NAME

    def entry_path(self, name: str) -> Path:
        """
        Return the committed location for an asset name.

        Raises:
            CacheWriteError: If the name is not a plain filename.
        """
        if (
            not name
            or name in (".", "..")
            or name.startswith(".")
            or os.path.basename(name) != name
            or "/" in name
            or "\\" in name
        ):
            raise CacheWriteError(
                f"Refusing unsafe asset name {name!r}", path=str(self.root)
            )
        return self.root / name

    def sidecar_path(self, name: str) -> Path:
        return self.root / f"{name}{HASH_FILE_SUFFIX}"

    def read_stored_hash(self, name: str) -> Optional[str]:
        """
        Return the hash recorded in an entry's sidecar.

        The first whitespace-separated token of the first line is used. A missing,
        unreadable or malformed sidecar yields None.
        """
        sidecar = self.sidecar_path(name)
        try:
            with open(sidecar, "r", encoding="ascii") as f:
                line = f.readline().strip()
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("No usable sidecar for %s: %s", name, e)
            return None
        if not line:
            return None
        token = line.split()[0].lower()
        return token if is_sha256_hex(token) else None

    def _remote_hash(self, descriptor: AssetDescriptor) -> str:
        if self.checksum_fetcher is None:
            raise NoManifestError(
                "SHA256SUMS not available", asset_name=descriptor.name
            )
        return self.checksum_fetcher.fetch(
            descriptor.checksum_manifest_url, descriptor.name
        )

    def lookup(self, descriptor: AssetDescriptor) -> VerificationOutcome:
        """
        Decide whether the cached copy of `descriptor` can be reused.

        - No file: ABSENT.
        - File without a well-formed sidecar: the file is deleted, ABSENT with an advisory.
        - Remote hash available: VALID if the file matches it; otherwise the entry is stale,
          it is deleted and the result is ABSENT with an advisory.
        - Remote hash unavailable (any ManifestError): the file is checked against the stored
          hash with a degraded-trust advisory, giving VALID or INVALID.

        Raises:
            CacheWriteError: If the asset name is unsafe.
        """
        name = descriptor.name
        path = self.entry_path(name)
        if not path.is_file():
            logger.debug("No cached copy of %s", name)
            return VerificationOutcome.absent()

        stored_hash = self.read_stored_hash(name)
        if stored_hash is None:
            advisory = f"Discarded cached {name}: no stored hash to verify it against"
            logger.warning(advisory)
            self.invalidate(descriptor)
            return VerificationOutcome.absent((advisory,))

        try:
            remote_hash = self._remote_hash(descriptor)
        except ManifestError as e:
            advisory = (
                f"Server-side verification unavailable for {name} ({e.message}); "
                "using the locally stored hash"
            )
            logger.warning(advisory)
            outcome = self.verifier.verify(path, expected_hash=stored_hash)
            if outcome.is_valid:
                return VerificationOutcome.valid((advisory,))
            if outcome.failure is FailureKind.HASH_MISMATCH:
                return VerificationOutcome.invalid(
                    "hash mismatch against stored hash",
                    FailureKind.HASH_MISMATCH,
                    (advisory,),
                )
            return VerificationOutcome.invalid(
                outcome.reason or "unreadable", outcome.failure, (advisory,)
            )

        outcome = self.verifier.verify(path, expected_hash=remote_hash)
        if outcome.is_valid:
            if stored_hash != remote_hash:
                # File matches upstream; the sidecar lagged behind it
                self._write_sidecar(name, remote_hash, quiet=True)
            logger.debug("Cached %s matches the remote hash", name)
            return VerificationOutcome.valid()

        if outcome.failure is FailureKind.HASH_MISMATCH:
            advisory = f"Remote {name} has changed; discarded the cached copy"
            logger.warning(advisory)
            self.invalidate(descriptor)
            return VerificationOutcome.absent((advisory,))

        return VerificationOutcome.invalid(
            outcome.reason or "unreadable", outcome.failure
        )

    def _write_sidecar(self, name: str, hash_value: str, quiet: bool = False) -> None:
        sidecar = self.sidecar_path(name)
        fd, temp_path = tempfile.mkstemp(
            dir=str(self.root), prefix=f".{name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="ascii", newline="\n") as f:
                f.write(f"{hash_value}\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, sidecar)
        except OSError as e:
            if not quiet:
                raise
            logger.warning("Could not update stored hash for %s: %s", name, e)
        finally:
            if os.path.exists(temp_path):
                os.remove(temp_path)

    def commit(
        self, descriptor: AssetDescriptor, temp_path: Pathish, hash_value: str
    ) -> CacheEntry:
        """
        Promote a verified staging file into the cache.

        Order: remove the old sidecar, fsync the staging file, replace it onto the final path,
        then write the new sidecar through an fsynced temporary file. A crash between any two
        steps leaves an entry without a sidecar, which `lookup` treats as ABSENT.

        Parameters:
            descriptor (AssetDescriptor): The asset being committed.
            temp_path (Pathish): Verified staging file; it is moved, not copied.
            hash_value (str): SHA-256 digest of `temp_path`.

        Returns:
            CacheEntry: The committed entry.

        Raises:
            ValueError: If `hash_value` is not a SHA-256 hex digest.
            CacheWriteError: On any filesystem failure; the staging file is left in place when
                the move itself did not happen.
        """
        hash_value = hash_value.strip().lower()
        if not is_sha256_hex(hash_value):
            raise ValueError(f"Not a SHA-256 digest: {hash_value!r}")

        name = descriptor.name
        final_path = self.entry_path(name)
        sidecar = self.sidecar_path(name)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            if sidecar.exists():
                os.remove(sidecar)
            _fsync_file(temp_path)
            os.replace(temp_path, final_path)
            self._write_sidecar(name, hash_value)
            size_bytes = final_path.stat().st_size
        except OSError as e:
            raise CacheWriteError(
                f"Could not commit {name} to the cache",
                path=str(final_path),
                details=str(e),
            ) from e

        logger.debug("Committed %s (%d bytes) to %s", name, size_bytes, self.root)
        return CacheEntry(
            local_path=final_path, stored_hash=hash_value, size_bytes=size_bytes
        )

    def invalidate(self, descriptor: AssetDescriptor) -> bool:
        """
        Remove a cached entry and its sidecar.

        Returns:
            bool: True if nothing remains on disk, False if a removal failed (logged).
        """
        return self._remove_entry(descriptor.name)

    def _remove_entry(self, name: str) -> bool:
        ok = True
        for path in (self.sidecar_path(name), self.entry_path(name)):
            try:
                if path.exists():
                    os.remove(path)
            except OSError as e:
                logger.error(f"Could not remove cached file {path}: {e}")
                ok = False
        if ok:
            logger.debug("Invalidated cache entry for %s", name)
        return ok

    def staging_path(self, descriptor: AssetDescriptor) -> Path:
        """
        Create and return a fresh, empty staging file for `descriptor`.

        Staging files live under `<root>/.staging/` so the final rename stays on one filesystem.

        Raises:
            CacheWriteError: If the staging directory or file cannot be created.
        """
        self.entry_path(descriptor.name)
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
            fd, path = tempfile.mkstemp(
                dir=str(self.staging_dir),
                prefix=f"{descriptor.name}.",
                suffix=STAGING_FILE_SUFFIX,
            )
            os.close(fd)
        except OSError as e:
            raise CacheWriteError(
                f"Could not create a staging file for {descriptor.name}",
                path=str(self.staging_dir),
                details=str(e),
            ) from e
        return Path(path)

    def discard(self, path: Optional[Pathish]) -> bool:
        """Remove a staging (or partial) file. Returns False if removal failed."""
        if path is None:
            return True
        try:
            if os.path.exists(path):
                os.remove(path)
                logger.debug("Discarded %s", path)
            return True
        except OSError as e:
            logger.error(f"Could not remove {path}: {e}")
            return False

    def purge_staging(self) -> int:
        """Remove leftover staging files from interrupted runs. Returns the number removed."""
        removed = 0
        try:
            with os.scandir(self.staging_dir) as it:
                for entry in it:
                    if entry.is_file() and self.discard(entry.path):
                        removed += 1
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.error(f"Could not scan staging directory {self.staging_dir}: {e}")
            return removed
        if removed:
            logger.debug("Purged %d stale staging file(s)", removed)
        return removed

    def entries(self) -> List[CacheEntry]:
        """Return committed entries (files with a usable name), sorted by name."""
        found: List[CacheEntry] = []
        try:
            with os.scandir(self.root) as it:
                dir_entries = sorted(it, key=lambda e: e.name)
        except FileNotFoundError:
            return found
        except OSError as e:
            logger.error(f"Could not scan cache directory {self.root}: {e}")
            return found

        for entry in dir_entries:
            if entry.name.startswith(".") or entry.name.endswith(HASH_FILE_SUFFIX):
                continue
            if not entry.is_file():
                continue
            try:
                size_bytes = entry.stat().st_size
            except OSError:
                continue
            found.append(
                CacheEntry(
                    local_path=Path(entry.path),
                    stored_hash=self.read_stored_hash(entry.name),
                    size_bytes=size_bytes,
                )
            )
        return found

    def clear(self) -> int:
        """
        Remove every cached artifact, sidecar and staging file.

        Returns:
            int: Number of artifacts removed.
        """
        removed = 0
        for entry in self.entries():
            if self._remove_entry(entry.local_path.name):
                removed += 1
        self.purge_staging()
        try:
            with os.scandir(self.root) as it:
                for entry in it:
                    if entry.is_file() and entry.name.endswith(HASH_FILE_SUFFIX):
                        os.remove(entry.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Could not remove orphaned sidecars in {self.root}: {e}")
        logger.info("Removed %d cached artifact(s) from %s", removed, self.root)
        return removed
