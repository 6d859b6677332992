"""
fwfetch Download Subsystem

Resolve, fetch, verify and cache one firmware artifact per call.

Core Components:
- interfaces: Shared data structures and enums
- resolver: Candidate asset selection and fallback chain
- checksums: Remote SHA256SUMS retrieval and parsing
- cache: Cached artifacts, sidecar hashes and staging files
- streaming: Chunked HTTP downloads with progress and cancellation
- verifier: Size and SHA-256 verification
- github_source: Latest-release listing from the GitHub API
- orchestrator: Download pipeline coordination
"""

from .cache import CacheStore
from .checksums import ChecksumFetcher, ChecksumManifest, parse_manifest
from .github_source import GithubReleaseSource
from .interfaces import (
    FALLBACK_FORMATS,
    Asset,
    AssetDescriptor,
    AssetFormat,
    CacheEntry,
    ErrorKind,
    FailureKind,
    FetchResult,
    OrchestratorState,
    Release,
    VerificationOutcome,
    VerificationStatus,
)
from .orchestrator import DownloadOrchestrator
from .resolver import AssetResolver
from .streaming import StreamingDownloader
from .verifier import IntegrityVerifier, calculate_sha256

__all__ = [
    # Interfaces
    "Asset",
    "AssetDescriptor",
    "AssetFormat",
    "CacheEntry",
    "ErrorKind",
    "FALLBACK_FORMATS",
    "FailureKind",
    "FetchResult",
    "OrchestratorState",
    "Release",
    "VerificationOutcome",
    "VerificationStatus",
    # Pipeline components
    "AssetResolver",
    "CacheStore",
    "ChecksumFetcher",
    "ChecksumManifest",
    "GithubReleaseSource",
    "IntegrityVerifier",
    "StreamingDownloader",
    # Orchestration
    "DownloadOrchestrator",
    # Helpers
    "calculate_sha256",
    "parse_manifest",
]
