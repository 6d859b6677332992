"""Tests for the fwfetch exception hierarchy."""

import pytest

from fwfetch.exceptions import (
    CacheWriteError,
    CandidateNotFoundError,
    ConfigFileError,
    ConfigurationError,
    DownloadCancelledError,
    FileSystemError,
    FwfetchError,
    HashMismatchError,
    HashNotFoundError,
    InvalidTargetError,
    MalformedHashError,
    ManifestError,
    ManifestUnavailableError,
    NoManifestError,
    RateLimitError,
    SizeMismatchError,
    TransportError,
    UnknownImageError,
    ValidationError,
    VerificationError,
)

pytestmark = [pytest.mark.unit]


class TestFwfetchError:
    def test_message_only(self):
        err = FwfetchError("Something failed")
        assert str(err) == "Something failed"
        assert err.details is None

    def test_message_with_details(self):
        err = FwfetchError("Something failed", details="disk full")
        assert str(err) == "Something failed - disk full"


class TestHierarchy:
    """Every error shares the FwfetchError base and the expected intermediate class."""

    @pytest.mark.parametrize(
        "cls,parent",
        [
            (ConfigFileError, ConfigurationError),
            (InvalidTargetError, ValidationError),
            (UnknownImageError, ValidationError),
            (RateLimitError, TransportError),
            (NoManifestError, ManifestError),
            (ManifestUnavailableError, ManifestError),
            (HashNotFoundError, ManifestError),
            (MalformedHashError, ManifestError),
            (SizeMismatchError, VerificationError),
            (HashMismatchError, VerificationError),
            (CacheWriteError, FileSystemError),
        ],
    )
    def test_parent(self, cls, parent):
        assert issubclass(cls, parent)
        assert issubclass(cls, FwfetchError)

    def test_standalone_errors(self):
        for cls in (CandidateNotFoundError, DownloadCancelledError):
            assert issubclass(cls, FwfetchError)


class TestAttributes:
    def test_transport_error(self):
        err = TransportError("failed", url="https://x", status_code=502)
        assert err.url == "https://x"
        assert err.status_code == 502

    def test_rate_limit_error(self):
        err = RateLimitError(reset_time=1700000000, url="https://x")
        assert err.status_code == 403
        assert err.reset_time == 1700000000
        assert "Resets at: 1700000000" in str(err)

    def test_candidate_not_found_copies_attempted(self):
        attempted = ["a.zip"]
        err = CandidateNotFoundError("none", attempted=attempted)
        attempted.append("b.img")
        assert err.attempted == ["a.zip"]

    def test_validation_error_fields(self):
        err = InvalidTargetError("bad target", field="target", value="pc")
        assert (err.field, err.value) == ("target", "pc")

    def test_manifest_error_asset_name(self):
        assert HashNotFoundError("missing", asset_name="x.fw").asset_name == "x.fw"

    def test_cache_write_error_path(self):
        assert CacheWriteError("nope", path="/c/x.fw").path == "/c/x.fw"
