"""Tests for CacheStore lookup, commit and housekeeping."""

import os
from unittest.mock import Mock

import pytest

from fwfetch.download.cache import CacheStore
from fwfetch.download.checksums import ChecksumFetcher
from fwfetch.download.interfaces import (
    AssetDescriptor,
    AssetFormat,
    FailureKind,
    VerificationStatus,
)
from fwfetch.exceptions import (
    CacheWriteError,
    HashNotFoundError,
    ManifestUnavailableError,
    NoManifestError,
)
from tests.http_test_utils import sha256_hex

pytestmark = [pytest.mark.unit]

CONTENT = b"firmware bytes"
DIGEST = sha256_hex(CONTENT)


def _descriptor(name="app.fw"):
    return AssetDescriptor(
        name=name,
        asset_format=AssetFormat.FIRMWARE,
        expected_size=len(CONTENT),
        checksum_manifest_url="https://example.com/SHA256SUMS",
        download_url=f"https://example.com/{name}",
    )


def _fetcher(result=None, error=None):
    fetcher = Mock(spec=ChecksumFetcher)
    if error is not None:
        fetcher.fetch.side_effect = error
    else:
        fetcher.fetch.return_value = result
    return fetcher


def _seed(root, name="app.fw", content=CONTENT, sidecar=DIGEST):
    (root / name).write_bytes(content)
    if sidecar is not None:
        (root / f"{name}.sha256").write_text(f"{sidecar}\n")


class TestLookup:
    """The three-step lookup decision."""

    def test_absent_when_no_file(self, cache_root):
        fetcher = _fetcher(DIGEST)
        outcome = CacheStore(cache_root, fetcher).lookup(_descriptor())

        assert outcome.status is VerificationStatus.ABSENT
        assert outcome.advisories == ()
        fetcher.fetch.assert_not_called()

    def test_file_without_sidecar_is_purged(self, cache_root):
        """A cached file with no stored hash is treated as absent and deleted."""
        _seed(cache_root, sidecar=None)
        fetcher = _fetcher(DIGEST)

        outcome = CacheStore(cache_root, fetcher).lookup(_descriptor())

        assert outcome.is_absent
        assert len(outcome.advisories) == 1
        assert not (cache_root / "app.fw").exists()
        fetcher.fetch.assert_not_called()

    def test_malformed_sidecar_is_purged(self, cache_root):
        _seed(cache_root, sidecar="not-a-hash")
        outcome = CacheStore(cache_root, _fetcher(DIGEST)).lookup(_descriptor())

        assert outcome.is_absent
        assert not (cache_root / "app.fw").exists()
        assert not (cache_root / "app.fw.sha256").exists()

    def test_valid_against_remote_hash(self, cache_root):
        _seed(cache_root)
        outcome = CacheStore(cache_root, _fetcher(DIGEST)).lookup(_descriptor())

        assert outcome.is_valid
        assert outcome.advisories == ()

    def test_stale_entry_is_purged(self, cache_root):
        """Remote hash differs from the cached bytes: delete and report ABSENT."""
        _seed(cache_root)
        outcome = CacheStore(cache_root, _fetcher(sha256_hex(b"new release"))).lookup(
            _descriptor()
        )

        assert outcome.is_absent
        assert any("changed" in a for a in outcome.advisories)
        assert not (cache_root / "app.fw").exists()
        assert not (cache_root / "app.fw.sha256").exists()

    @pytest.mark.parametrize(
        "error",
        [
            NoManifestError("SHA256SUMS not available"),
            ManifestUnavailableError("Could not download SHA256SUMS"),
            HashNotFoundError("Hash not found in SHA256SUMS"),
        ],
    )
    def test_degraded_trust_valid(self, cache_root, error):
        """Without a remote hash the stored hash decides, with an advisory."""
        _seed(cache_root)
        outcome = CacheStore(cache_root, _fetcher(error=error)).lookup(_descriptor())

        assert outcome.is_valid
        assert any("verification unavailable" in a for a in outcome.advisories)

    def test_degraded_trust_invalid(self, cache_root):
        """Local bytes no longer match the stored hash: INVALID, file left for the caller."""
        _seed(cache_root, sidecar=sha256_hex(b"what we stored"))
        outcome = CacheStore(
            cache_root, _fetcher(error=ManifestUnavailableError("down"))
        ).lookup(_descriptor())

        assert outcome.is_invalid
        assert outcome.reason == "hash mismatch against stored hash"
        assert outcome.failure is FailureKind.HASH_MISMATCH
        assert any("verification unavailable" in a for a in outcome.advisories)

    def test_no_fetcher_uses_stored_hash(self, cache_root):
        _seed(cache_root)
        outcome = CacheStore(cache_root).lookup(_descriptor())
        assert outcome.is_valid
        assert outcome.advisories

    def test_remote_match_repairs_lagging_sidecar(self, cache_root):
        _seed(cache_root, sidecar=sha256_hex(b"older"))
        store = CacheStore(cache_root, _fetcher(DIGEST))

        assert store.lookup(_descriptor()).is_valid
        assert store.read_stored_hash("app.fw") == DIGEST

    def test_unsafe_name_rejected(self, cache_root):
        with pytest.raises(CacheWriteError):
            CacheStore(cache_root).lookup(_descriptor("../escape.fw"))


class TestCommit:
    """Commit ordering and results."""

    def test_commit_moves_file_and_writes_sidecar(self, cache_root):
        store = CacheStore(cache_root, _fetcher(DIGEST))
        staging = store.staging_path(_descriptor())
        staging.write_bytes(CONTENT)

        entry = store.commit(_descriptor(), staging, DIGEST.upper())

        assert entry.local_path == cache_root / "app.fw"
        assert entry.stored_hash == DIGEST
        assert entry.size_bytes == len(CONTENT)
        assert not staging.exists()
        assert (cache_root / "app.fw.sha256").read_text() == f"{DIGEST}\n"
        assert store.lookup(_descriptor()).is_valid

    def test_committed_digest_matches_file(self, cache_root):
        store = CacheStore(cache_root)
        staging = store.staging_path(_descriptor())
        staging.write_bytes(CONTENT)

        entry = store.commit(_descriptor(), staging, DIGEST)

        assert sha256_hex(entry.local_path.read_bytes()) == entry.stored_hash

    def test_commit_replaces_previous_entry(self, cache_root):
        _seed(cache_root, content=b"old", sidecar=sha256_hex(b"old"))
        store = CacheStore(cache_root)
        staging = store.staging_path(_descriptor())
        staging.write_bytes(CONTENT)

        store.commit(_descriptor(), staging, DIGEST)

        assert (cache_root / "app.fw").read_bytes() == CONTENT
        assert store.read_stored_hash("app.fw") == DIGEST

    def test_sidecar_removed_before_content_replaced(self, cache_root, mocker):
        """If the move fails, the old sidecar is already gone so the entry reads as ABSENT."""
        _seed(cache_root, content=b"old", sidecar=sha256_hex(b"old"))
        store = CacheStore(cache_root, _fetcher(sha256_hex(b"old")))
        staging = store.staging_path(_descriptor())
        staging.write_bytes(CONTENT)
        mocker.patch("fwfetch.download.cache.os.replace", side_effect=OSError("disk"))

        with pytest.raises(CacheWriteError):
            store.commit(_descriptor(), staging, DIGEST)

        assert staging.exists()
        assert not (cache_root / "app.fw.sha256").exists()
        assert store.lookup(_descriptor()).is_absent

    def test_rejects_non_digest(self, cache_root):
        store = CacheStore(cache_root)
        staging = store.staging_path(_descriptor())
        with pytest.raises(ValueError):
            store.commit(_descriptor(), staging, "abc")


class TestHousekeeping:
    """Staging paths, invalidate, entries and clear."""

    def test_staging_paths_are_unique_and_inside_staging_dir(self, cache_root):
        store = CacheStore(cache_root)
        first = store.staging_path(_descriptor())
        second = store.staging_path(_descriptor())

        assert first != second
        assert first.parent == cache_root / ".staging"
        assert first.exists()

    def test_purge_staging(self, cache_root):
        store = CacheStore(cache_root)
        store.staging_path(_descriptor())
        store.staging_path(_descriptor())

        assert store.purge_staging() == 2
        assert os.listdir(store.staging_dir) == []

    def test_purge_staging_without_dir(self, cache_root):
        assert CacheStore(cache_root).purge_staging() == 0

    def test_invalidate_removes_file_and_sidecar(self, cache_root):
        _seed(cache_root)
        assert CacheStore(cache_root).invalidate(_descriptor())
        assert os.listdir(cache_root) == []

    def test_entries_skip_sidecars_and_staging(self, cache_root):
        _seed(cache_root, name="a.fw")
        _seed(cache_root, name="b.img", sidecar=None)
        store = CacheStore(cache_root)
        store.staging_path(_descriptor())

        entries = store.entries()

        assert [e.local_path.name for e in entries] == ["a.fw", "b.img"]
        assert entries[0].stored_hash == DIGEST
        assert entries[1].stored_hash is None

    def test_clear(self, cache_root):
        _seed(cache_root, name="a.fw")
        _seed(cache_root, name="b.img")
        (cache_root / "orphan.zip.sha256").write_text(f"{DIGEST}\n")
        store = CacheStore(cache_root)
        store.staging_path(_descriptor())

        assert store.clear() == 2
        remaining = [
            p for p in cache_root.rglob("*") if p.is_file()
        ]
        assert remaining == []

    def test_default_root_is_user_cache_dir(self):
        import platformdirs

        assert str(CacheStore().root) == platformdirs.user_cache_dir("fwfetch")
