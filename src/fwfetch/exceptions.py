"""
Custom exceptions for fwfetch.

This module defines domain-specific exceptions for the download-verify-cache
pipeline. Each class maps onto one user-facing error category so callers can
choose a message (and a recovery path) without string matching.
"""


class FwfetchError(Exception):
    """
    Base exception for all fwfetch errors.

    All custom exceptions in fwfetch inherit from this class so callers can
    catch every application-specific error in one place.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(FwfetchError):
    """
    Exception raised when configuration is invalid or missing.

    This includes:
    - Invalid configuration values
    - Malformed user-defined image entries
    """

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when the configuration file cannot be read or written."""

    pass


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(FwfetchError):
    """
    Exception raised when caller input fails validation.

    Attributes:
        field: The name of the field that failed validation.
        value: The value that failed validation.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field
        self.value = value


class InvalidTargetError(ValidationError):
    """Exception raised when a target is not declared by the selected image."""

    pass


class UnknownImageError(ValidationError):
    """Exception raised when no firmware image matches the requested name."""

    pass


# =============================================================================
# Resolution Errors
# =============================================================================


class CandidateNotFoundError(FwfetchError):
    """
    Exception raised when no candidate asset exists on the release feed.

    Attributes:
        attempted: Candidate asset names checked, in priority order.
    """

    def __init__(
        self,
        message: str,
        attempted: list[str] | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.attempted = list(attempted or [])


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(FwfetchError):
    """
    Exception raised for network or HTTP-level failures.

    Timeouts, connection errors and non-success status codes all surface as
    this type; callers treat them identically.

    Attributes:
        url: The URL that was being requested.
        status_code: The HTTP status code, when a response was received.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code


class RateLimitError(TransportError):
    """
    Exception raised when the GitHub API rate limit is exceeded.

    Attributes:
        reset_time: When the rate limit will reset (Unix timestamp), if known.
    """

    def __init__(
        self,
        message: str = "GitHub API rate limit exceeded",
        reset_time: int | None = None,
        url: str | None = None,
        status_code: int | None = 403,
    ) -> None:
        super().__init__(
            message,
            url=url,
            status_code=status_code,
            details=f"Resets at: {reset_time}" if reset_time else None,
        )
        self.reset_time = reset_time


# =============================================================================
# Checksum Manifest Errors
# =============================================================================


class ManifestError(FwfetchError):
    """
    Base exception for failures to obtain a remote hash from a checksum manifest.

    Attributes:
        asset_name: The asset whose hash was requested.
    """

    def __init__(
        self,
        message: str,
        asset_name: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.asset_name = asset_name


class NoManifestError(ManifestError):
    """Exception raised when the release publishes no checksum manifest."""

    pass


class ManifestUnavailableError(ManifestError):
    """Exception raised when the manifest could not be fetched (network or non-200)."""

    pass


class HashNotFoundError(ManifestError):
    """Exception raised when the manifest has no entry for the asset."""

    pass


class MalformedHashError(ManifestError):
    """Exception raised when the manifest entry is not a 64-character hex digest."""

    pass


# =============================================================================
# Verification Errors
# =============================================================================


class VerificationError(FwfetchError):
    """
    Exception raised when a downloaded file fails integrity verification.

    Attributes:
        path: The file that failed verification.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path


class SizeMismatchError(VerificationError):
    """Exception raised when a file's size differs from the declared size."""

    pass


class HashMismatchError(VerificationError):
    """Exception raised when a file's digest differs from the expected hash."""

    pass


# =============================================================================
# File System Errors
# =============================================================================


class FileSystemError(FwfetchError):
    """
    Exception raised for file system-related errors.

    Attributes:
        path: The file path that caused the error.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path


class CacheWriteError(FileSystemError):
    """Exception raised when the cache cannot be written (commit or staging)."""

    pass


# =============================================================================
# Control Flow
# =============================================================================


class DownloadCancelledError(FwfetchError):
    """Exception raised when a transfer is cancelled between chunks."""

    pass
