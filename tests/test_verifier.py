"""Tests for size and hash verification."""

import pytest

from fwfetch.download.interfaces import FailureKind, VerificationStatus
from fwfetch.download.verifier import IntegrityVerifier, calculate_sha256
from tests.http_test_utils import sha256_hex

pytestmark = [pytest.mark.unit]


class TestCalculateSha256:
    def test_matches_hashlib_across_buffer_boundaries(self, tmp_path):
        data = b"x" * 10_000 + b"tail"
        path = tmp_path / "blob.bin"
        path.write_bytes(data)

        assert calculate_sha256(path, buffer_size=4096) == sha256_hex(data)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            calculate_sha256(tmp_path / "nope")


class TestIntegrityVerifier:
    """IntegrityVerifier.verify outcomes."""

    @pytest.fixture
    def blob(self, tmp_path):
        path = tmp_path / "x.fw"
        path.write_bytes(b"a" * 999)
        return path

    def test_size_mismatch_short_circuits_hashing(self, blob, mocker):
        """The 1000-declared / 999-received case fails on size without hashing."""
        verifier = IntegrityVerifier()
        compute = mocker.spy(verifier, "compute_hash")

        outcome = verifier.verify(blob, expected_size=1000, expected_hash="0" * 64)

        assert outcome.status is VerificationStatus.INVALID
        assert outcome.failure is FailureKind.SIZE_MISMATCH
        assert outcome.reason == "size mismatch: expected 1000, got 999"
        compute.assert_not_called()

    def test_size_and_hash_match(self, blob):
        outcome = IntegrityVerifier().verify(
            blob, expected_size=999, expected_hash=sha256_hex(b"a" * 999)
        )
        assert outcome.is_valid

    def test_hash_compared_case_insensitively(self, blob):
        outcome = IntegrityVerifier().verify(
            blob, expected_hash=sha256_hex(b"a" * 999).upper()
        )
        assert outcome.is_valid

    def test_hash_mismatch(self, blob):
        outcome = IntegrityVerifier().verify(blob, expected_hash=sha256_hex(b"other"))
        assert outcome.is_invalid
        assert outcome.failure is FailureKind.HASH_MISMATCH
        assert outcome.reason == "hash mismatch"

    def test_no_expectations_is_valid(self, blob):
        """Degraded trust: nothing to compare against still yields VALID."""
        assert IntegrityVerifier().verify(blob).is_valid

    def test_missing_file_is_invalid(self, tmp_path):
        outcome = IntegrityVerifier().verify(tmp_path / "gone.fw")
        assert outcome.is_invalid
        assert outcome.failure is FailureKind.UNREADABLE

    def test_read_error_is_unreadable(self, blob, mocker):
        verifier = IntegrityVerifier()
        mocker.patch.object(
            verifier, "compute_hash", side_effect=PermissionError("denied")
        )
        outcome = verifier.verify(blob, expected_hash=sha256_hex(b"a" * 999))
        assert outcome.is_invalid
        assert outcome.failure is FailureKind.UNREADABLE
