"""Tests for SHA256SUMS parsing and retrieval."""

import pytest
import requests

from fwfetch.download.checksums import ChecksumFetcher, is_sha256_hex, parse_manifest
from fwfetch.exceptions import (
    HashNotFoundError,
    MalformedHashError,
    ManifestError,
    ManifestUnavailableError,
    NoManifestError,
)
from tests.http_test_utils import make_response, manifest_text, sha256_hex

pytestmark = [pytest.mark.unit]

DIGEST = sha256_hex(b"firmware")
MANIFEST_URL = "https://example.com/SHA256SUMS"


class TestParseManifest:
    """Manifest line parsing."""

    def test_splits_on_first_whitespace_run(self):
        manifest = parse_manifest(f"{DIGEST}  app.fw\n{DIGEST}\tother file.img\n")
        assert manifest.lookup("app.fw") == DIGEST
        assert manifest.lookup("other file.img") == DIGEST

    def test_hash_is_lowercased(self):
        manifest = parse_manifest(f"{DIGEST.upper()}  app.fw\n")
        assert manifest.lookup("app.fw") == DIGEST

    def test_crlf_and_surrounding_whitespace_trimmed(self):
        manifest = parse_manifest(f"  {DIGEST}  app.fw  \r\n")
        assert manifest.lookup("app.fw") == DIGEST

    def test_unparseable_lines_skipped(self):
        manifest = parse_manifest(f"garbage\n\n{DIGEST}  app.fw\n")
        assert len(manifest) == 1
        assert "app.fw" in manifest.entries

    def test_exact_filename_match_only(self):
        manifest = parse_manifest(f"{DIGEST}  ./app.fw\n")
        with pytest.raises(HashNotFoundError):
            manifest.lookup("app.fw")

    def test_malformed_hash_for_requested_asset(self):
        manifest = parse_manifest("abc123  app.fw\n")
        with pytest.raises(MalformedHashError):
            manifest.lookup("app.fw")

    def test_first_entry_wins(self):
        other = sha256_hex(b"other")
        manifest = parse_manifest(f"{DIGEST}  app.fw\n{other}  app.fw\n")
        assert manifest.lookup("app.fw") == DIGEST


class TestIsSha256Hex:
    @pytest.mark.parametrize(
        "value,expected",
        [(DIGEST, True), (DIGEST.upper(), False), (DIGEST[:-1], False), ("z" * 64, False)],
    )
    def test_pattern(self, value, expected):
        assert is_sha256_hex(value) is expected


class TestChecksumFetcher:
    """Remote manifest retrieval."""

    def test_fetch_returns_digest(self, mock_session):
        mock_session.get.return_value = make_response(
            text=manifest_text({"app.fw": DIGEST})
        )
        fetcher = ChecksumFetcher(mock_session, timeout=7)

        assert fetcher.fetch(MANIFEST_URL, "app.fw") == DIGEST
        mock_session.get.assert_called_once_with(MANIFEST_URL, timeout=7)

    def test_manifest_fetched_on_every_call(self, mock_session):
        mock_session.get.return_value = make_response(
            text=manifest_text({"app.fw": DIGEST})
        )
        fetcher = ChecksumFetcher(mock_session)

        fetcher.fetch(MANIFEST_URL, "app.fw")
        fetcher.fetch(MANIFEST_URL, "app.fw")

        assert mock_session.get.call_count == 2

    def test_no_url_makes_no_request(self, mock_session):
        with pytest.raises(NoManifestError) as exc_info:
            ChecksumFetcher(mock_session).fetch(None, "app.fw")
        assert exc_info.value.asset_name == "app.fw"
        mock_session.get.assert_not_called()

    def test_non_200_is_unavailable(self, mock_session):
        mock_session.get.return_value = make_response(status_code=404, text="Not Found")
        with pytest.raises(ManifestUnavailableError) as exc_info:
            ChecksumFetcher(mock_session).fetch(MANIFEST_URL, "app.fw")
        assert "404" in str(exc_info.value)

    def test_transport_error_is_unavailable(self, mock_session):
        mock_session.get.side_effect = requests.ConnectionError("boom")
        with pytest.raises(ManifestUnavailableError):
            ChecksumFetcher(mock_session).fetch(MANIFEST_URL, "app.fw")

    def test_timeout_is_unavailable(self, mock_session):
        mock_session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(ManifestUnavailableError):
            ChecksumFetcher(mock_session).fetch(MANIFEST_URL, "app.fw")

    def test_missing_entry(self, mock_session):
        mock_session.get.return_value = make_response(
            text=manifest_text({"other.fw": DIGEST})
        )
        with pytest.raises(HashNotFoundError) as exc_info:
            ChecksumFetcher(mock_session).fetch(MANIFEST_URL, "app.fw")
        assert exc_info.value.asset_name == "app.fw"

    def test_all_failures_share_base_class(self):
        for cls in (
            NoManifestError,
            ManifestUnavailableError,
            HashNotFoundError,
            MalformedHashError,
        ):
            assert issubclass(cls, ManifestError)
