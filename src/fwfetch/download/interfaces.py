"""
Core Interfaces for the fwfetch Download Subsystem

This module defines the data structures shared by the resolver, checksum
fetcher, cache store, downloader, verifier and orchestrator.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

Pathish = Union[str, Path]

ProgressCallback = Callable[[int, Optional[int]], None]
"""Called as `(bytes_so_far, total_bytes_or_None)` after every chunk."""

AdvisoryCallback = Callable[[str], None]
ConfirmCallback = Callable[[str], bool]
DownloadStartCallback = Callable[[str], None]
"""Called with the asset name before every transfer attempt."""


@dataclass
class Asset:
    """Represents a downloadable asset from a release."""

    name: str
    """The filename of the asset"""

    download_url: str
    """Direct URL to download the asset"""

    size: Optional[int] = None
    """Declared file size in bytes, when the feed publishes one"""

    content_type: Optional[str] = None
    """MIME type of the asset"""


@dataclass
class Release:
    """Represents a release published on a repository's release feed."""

    tag_name: str
    """The release tag/version identifier (e.g., 'v0.9.1')"""

    assets: Dict[str, Asset] = field(default_factory=dict)
    """Downloadable assets keyed by exact filename"""

    prerelease: bool = False
    published_at: Optional[str] = None


class AssetFormat(Enum):
    """Asset format variants, each tagged with its filename extension."""

    FIRMWARE = ".fw"
    ARCHIVE = ".zip"
    COMPRESSED_IMAGE = ".img.gz"
    RAW_IMAGE = ".img"

    @property
    def extension(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, filename: str) -> "AssetFormat":
        """
        Return the variant whose extension ends `filename`.

        Longer extensions are tested first so `x.img.gz` is COMPRESSED_IMAGE, not RAW_IMAGE.

        Raises:
            ValueError: If no variant matches.
        """
        lowered = filename.lower()
        for fmt in sorted(cls, key=lambda f: len(f.extension), reverse=True):
            if lowered.endswith(fmt.extension):
                return fmt
        raise ValueError(f"Unrecognized asset format for '{filename}'")


FALLBACK_FORMATS: Tuple[AssetFormat, ...] = (
    AssetFormat.ARCHIVE,
    AssetFormat.COMPRESSED_IMAGE,
    AssetFormat.RAW_IMAGE,
)
"""Priority order tried when the environment cannot consume the primary format."""


@dataclass(frozen=True)
class AssetDescriptor:
    """One candidate asset, fully resolved against the release feed."""

    name: str
    asset_format: AssetFormat
    expected_size: Optional[int] = None
    checksum_manifest_url: Optional[str] = None
    download_url: Optional[str] = None
    """None when the descriptor was resolved offline (cache lookup only)."""

    def __post_init__(self) -> None:
        if self.expected_size is not None and self.expected_size < 0:
            raise ValueError(f"expected_size must be non-negative for {self.name}")


@dataclass(frozen=True)
class CacheEntry:
    """A committed cached artifact and its sidecar hash."""

    local_path: Path
    stored_hash: Optional[str]
    size_bytes: int


class VerificationStatus(Enum):
    VALID = "valid"
    INVALID = "invalid"
    ABSENT = "absent"


class FailureKind(Enum):
    """Why an INVALID outcome was produced."""

    SIZE_MISMATCH = "size_mismatch"
    HASH_MISMATCH = "hash_mismatch"
    UNREADABLE = "unreadable"


@dataclass(frozen=True)
class VerificationOutcome:
    """
    Tagged result of a verify or cache lookup request.

    Exactly one status is active. `reason` and `failure` are only set for INVALID.
    `advisories` carries caller-visible messages (degraded trust, purged files).
    """

    status: VerificationStatus
    reason: Optional[str] = None
    failure: Optional[FailureKind] = None
    advisories: Tuple[str, ...] = ()

    @classmethod
    def valid(cls, advisories: Tuple[str, ...] = ()) -> "VerificationOutcome":
        return cls(VerificationStatus.VALID, advisories=tuple(advisories))

    @classmethod
    def invalid(
        cls,
        reason: str,
        failure: Optional[FailureKind] = None,
        advisories: Tuple[str, ...] = (),
    ) -> "VerificationOutcome":
        return cls(
            VerificationStatus.INVALID,
            reason=reason,
            failure=failure,
            advisories=tuple(advisories),
        )

    @classmethod
    def absent(cls, advisories: Tuple[str, ...] = ()) -> "VerificationOutcome":
        return cls(VerificationStatus.ABSENT, advisories=tuple(advisories))

    @property
    def is_valid(self) -> bool:
        return self.status is VerificationStatus.VALID

    @property
    def is_invalid(self) -> bool:
        return self.status is VerificationStatus.INVALID

    @property
    def is_absent(self) -> bool:
        return self.status is VerificationStatus.ABSENT


class ErrorKind(Enum):
    """User-facing failure categories reported by the orchestrator."""

    CANDIDATE_NOT_FOUND = "candidate_not_found"
    TRANSPORT_FAILURE = "transport_failure"
    SIZE_MISMATCH = "size_mismatch"
    HASH_MISMATCH = "hash_mismatch"
    CACHE_WRITE_FAILURE = "cache_write_failure"
    USER_DECLINED = "user_declined"
    CANCELLED = "cancelled"
    INVALID_TARGET = "invalid_target"
    INVALID_IMAGE = "invalid_image"


class OrchestratorState(Enum):
    RESOLVING = "resolving"
    CACHE_CHECK = "cache_check"
    CACHE_HIT = "cache_hit"
    DOWNLOADING = "downloading"
    POST_VERIFY = "post_verify"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class FetchResult:
    """Result of a DownloadOrchestrator.fetch() call."""

    ok: bool
    """Whether a verified local copy is available"""

    file_path: Optional[Path] = None
    """Cached artifact path on success; staging path on CACHE_WRITE_FAILURE"""

    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    asset_name: Optional[str] = None
    from_cache: bool = False
    bytes_downloaded: int = 0
    attempted: List[str] = field(default_factory=list)
    """Candidate names inspected, in the order they were tried"""

    advisories: List[str] = field(default_factory=list)
    state: OrchestratorState = OrchestratorState.RESOLVING
    """Terminal state reached (CACHE_HIT, COMMITTED or FAILED)"""
