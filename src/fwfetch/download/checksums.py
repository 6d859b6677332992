"""
Checksum Manifest Fetching

Retrieves a release's SHA256SUMS manifest and extracts the digest published
for one asset. The manifest is re-fetched on every call so it always reflects
the current remote state.
"""

import re
from typing import Dict, Optional

import requests

from fwfetch.constants import DEFAULT_REQUEST_TIMEOUT, SHA256_HEX_PATTERN
from fwfetch.exceptions import (
    HashNotFoundError,
    MalformedHashError,
    ManifestUnavailableError,
    NoManifestError,
)
from fwfetch.log_utils import logger
from fwfetch.utils import extract_error_message

SHA256_HEX_RX = re.compile(SHA256_HEX_PATTERN)
_FIRST_WHITESPACE_RX = re.compile(r"\s+")


def is_sha256_hex(value: str) -> bool:
    """Return True if `value` is a lowercase 64-character hex digest."""
    return bool(SHA256_HEX_RX.match(value))


class ChecksumManifest:
    """
    Filename to hash mapping parsed from `hash  filename` lines.

    Entries keep whatever hash text the manifest carried (lowercased) so a
    malformed value for the requested asset can be told apart from a missing one.
    The first line for a filename wins.
    """

    def __init__(self, entries: Dict[str, str]):
        self.entries = entries

    @classmethod
    def parse(cls, text: str) -> "ChecksumManifest":
        entries: Dict[str, str] = {}
        for line in text.splitlines():
            parts = _FIRST_WHITESPACE_RX.split(line.strip(), maxsplit=1)
            if len(parts) != 2:
                continue
            digest, filename = parts[0].lower(), parts[1].strip()
            if not digest or not filename:
                continue
            entries.setdefault(filename, digest)
        return cls(entries)

    def __len__(self) -> int:
        return len(self.entries)

    def lookup(self, asset_name: str) -> str:
        """
        Return the validated digest for `asset_name`.

        Raises:
            HashNotFoundError: If no line names the asset exactly.
            MalformedHashError: If the matching value is not a 64-character hex digest.
        """
        digest = self.entries.get(asset_name)
        if digest is None:
            raise HashNotFoundError(
                "Hash not found in SHA256SUMS", asset_name=asset_name
            )
        if not is_sha256_hex(digest):
            raise MalformedHashError(
                "Invalid hash format in SHA256SUMS",
                asset_name=asset_name,
                details=digest[:80],
            )
        return digest


def parse_manifest(text: str) -> ChecksumManifest:
    """Parse SHA256SUMS text, skipping lines that do not split into hash and filename."""
    return ChecksumManifest.parse(text)


class ChecksumFetcher:
    """Fetches remote manifests over a shared HTTP session."""

    def __init__(
        self,
        session: requests.Session,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.session = session
        self.timeout = timeout

    def fetch_manifest(self, manifest_url: Optional[str]) -> ChecksumManifest:
        """
        Download and parse a manifest.

        Raises:
            NoManifestError: If `manifest_url` is None (no request is made).
            ManifestUnavailableError: On transport failure or any non-200 status.
        """
        if not manifest_url:
            raise NoManifestError("SHA256SUMS not available")

        logger.debug("Fetching checksum manifest %s", manifest_url)
        try:
            response = self.session.get(manifest_url, timeout=self.timeout)
        except requests.RequestException as e:
            raise ManifestUnavailableError(
                "Could not download SHA256SUMS", details=str(e)
            ) from e

        if response.status_code != 200:
            raise ManifestUnavailableError(
                "Could not download SHA256SUMS",
                details=extract_error_message(response),
            )

        manifest = parse_manifest(response.text)
        logger.debug("Parsed %d manifest entries", len(manifest))
        return manifest

    def fetch(self, manifest_url: Optional[str], asset_name: str) -> str:
        """
        Return the published SHA-256 digest for `asset_name`.

        Raises:
            NoManifestError, ManifestUnavailableError, HashNotFoundError, MalformedHashError
        """
        try:
            return self.fetch_manifest(manifest_url).lookup(asset_name)
        except (NoManifestError, ManifestUnavailableError) as e:
            e.asset_name = asset_name
            raise
