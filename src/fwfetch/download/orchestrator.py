"""
Download Orchestrator

Drives one fetch through the pipeline: resolve candidates from the latest
release, reuse a verified cache entry when possible, otherwise stream to a
staging file, verify, and commit. Candidates are tried in priority order and a
failed candidate hands over to the next one.
"""

import threading
import time
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

from fwfetch.config import get_cache_dir, get_int_setting
from fwfetch.constants import DEFAULT_MAX_DOWNLOAD_ATTEMPTS
from fwfetch.exceptions import (
    CacheWriteError,
    ConfigurationError,
    DownloadCancelledError,
    HashMismatchError,
    InvalidTargetError,
    ManifestError,
    SizeMismatchError,
    TransportError,
    VerificationError,
)
from fwfetch.images import FirmwareImage
from fwfetch.log_utils import logger
from fwfetch.utils import create_http_session

from .cache import CacheStore
from .checksums import ChecksumFetcher
from .github_source import GithubReleaseSource
from .interfaces import (
    AdvisoryCallback,
    AssetDescriptor,
    ConfirmCallback,
    DownloadStartCallback,
    ErrorKind,
    FailureKind,
    FetchResult,
    OrchestratorState,
    ProgressCallback,
    VerificationOutcome,
)
from .resolver import AssetResolver, no_candidate_error
from .streaming import StreamingDownloader
from .verifier import IntegrityVerifier

_VERIFICATION_ERRORS = {
    FailureKind.SIZE_MISMATCH: SizeMismatchError,
    FailureKind.HASH_MISMATCH: HashMismatchError,
}


class _CandidateFailed(Exception):
    """The current candidate is unusable; the next one may still succeed."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class _FetchAborted(Exception):
    """The fetch cannot continue with any candidate."""

    def __init__(self, kind: ErrorKind, message: str, file_path: Optional[Path] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.file_path = file_path


class DownloadOrchestrator:
    """
    Coordinates resolver, cache store, downloader and verifier for a single artifact.

    State progression per candidate:
    RESOLVING -> CACHE_CHECK -> CACHE_HIT, or
    CACHE_CHECK -> DOWNLOADING -> POST_VERIFY -> COMMITTED, with FAILED reachable from
    every state. The terminal state is reported in `FetchResult.state`.
    """

    def __init__(
        self,
        source: GithubReleaseSource,
        cache: CacheStore,
        downloader: StreamingDownloader,
        checksum_fetcher: ChecksumFetcher,
        verifier: Optional[IntegrityVerifier] = None,
        resolver: Optional[AssetResolver] = None,
        confirm: Optional[ConfirmCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_advisory: Optional[AdvisoryCallback] = None,
        on_download_start: Optional[DownloadStartCallback] = None,
        max_attempts: int = DEFAULT_MAX_DOWNLOAD_ATTEMPTS,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Parameters:
            confirm (Optional[ConfirmCallback]): Asked before trusting a download that has no
                published hash. Without a callback such downloads are declined.
            on_progress (Optional[ProgressCallback]): Forwarded to the downloader.
            on_advisory (Optional[AdvisoryCallback]): Receives every advisory as it is raised.
            on_download_start (Optional[DownloadStartCallback]): Called with the asset name before
                each transfer attempt, so progress displays can start a fresh bar.
            max_attempts (int): Downloads allowed per candidate when the local hash cannot be
                computed. Verification failures are never retried on the same candidate.
            cancel_event (Optional[threading.Event]): Cancels an in-flight transfer when set.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.source = source
        self.cache = cache
        self.downloader = downloader
        self.checksum_fetcher = checksum_fetcher
        self.verifier = verifier or IntegrityVerifier()
        self.resolver = resolver or AssetResolver()
        self.confirm = confirm
        self.on_progress = on_progress
        self.on_advisory = on_advisory
        self.on_download_start = on_download_start
        self.max_attempts = max_attempts
        self.cancel_event = cancel_event

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        github_token: Optional[str] = None,
        **kwargs: Any,
    ) -> "DownloadOrchestrator":
        """
        Build an orchestrator and its collaborators from a loaded configuration.

        One HTTP session is shared by the release source, checksum fetcher and downloader.
        Extra keyword arguments (callbacks, cancel_event) are passed to the constructor.
        """
        session = create_http_session(
            connect_retries=get_int_setting(config, "CONNECT_RETRIES")
        )
        timeout = get_int_setting(config, "REQUEST_TIMEOUT", minimum=1)
        verifier = IntegrityVerifier()
        checksum_fetcher = ChecksumFetcher(session, timeout=timeout)
        cache = CacheStore(get_cache_dir(config), checksum_fetcher, verifier)
        return cls(
            source=GithubReleaseSource(session, github_token, timeout=timeout),
            cache=cache,
            downloader=StreamingDownloader(
                session,
                chunk_size=get_int_setting(config, "CHUNK_SIZE", minimum=1),
                timeout=timeout,
            ),
            checksum_fetcher=checksum_fetcher,
            verifier=verifier,
            max_attempts=get_int_setting(config, "MAX_DOWNLOAD_ATTEMPTS", minimum=1),
            **kwargs,
        )

    def _advise(self, result: FetchResult, message: str, log: bool = True) -> None:
        if log:
            logger.warning(message)
        result.advisories.append(message)
        if self.on_advisory is not None:
            self.on_advisory(message)

    def _fail(
        self,
        result: FetchResult,
        kind: ErrorKind,
        message: str,
        file_path: Optional[Path] = None,
    ) -> FetchResult:
        result.ok = False
        result.error_kind = kind
        result.message = message
        result.file_path = file_path
        result.state = OrchestratorState.FAILED
        logger.error(message)
        return result

    def fetch(
        self, image: FirmwareImage, target: str, primary_capable: bool
    ) -> FetchResult:
        """
        Produce a verified local copy of the best available asset for `target`.

        Parameters:
            image (FirmwareImage): Image whose latest release is consulted.
            target (str): Hardware target; must be declared by the image.
            primary_capable (bool): Whether the environment can consume `.fw` files.

        Returns:
            FetchResult: `ok=True` with `file_path` on a cache hit or commit; otherwise `ok=False`
            with the error kind of the decisive failure.
        """
        result = FetchResult(ok=False)
        start_time = time.time()

        try:
            self.resolver.plan(image, target, primary_capable)
        except InvalidTargetError as e:
            return self._fail(result, ErrorKind.INVALID_TARGET, str(e))
        except ConfigurationError as e:
            return self._fail(result, ErrorKind.INVALID_IMAGE, str(e))

        self.cache.purge_staging()
        logger.info(f"Fetching {image.name} for {target}")

        offline_error: Optional[TransportError] = None
        try:
            release = self.source.get_latest_release(image.repo)
        except TransportError as e:
            offline_error = e
            release = None
            self._advise(
                result,
                f"Could not reach the {image.repo} release feed ({e.message}); "
                "only a previously verified cached copy can be used",
            )

        if release is not None:
            logger.debug(f"Using release {release.tag_name} of {image.repo}")
            candidates = self.resolver.iter_candidates(
                image,
                target,
                primary_capable,
                release.assets,
                self.source.manifest_url(release),
            )
        else:
            candidates = self._offline_candidates(image, target, primary_capable)

        last_failure: Optional[_CandidateFailed] = None
        try:
            for descriptor in candidates:
                result.asset_name = descriptor.name
                try:
                    if self._try_candidate(descriptor, result):
                        return self._finish(result, start_time)
                except _CandidateFailed as failure:
                    logger.warning(failure.message)
                    last_failure = failure
        except _FetchAborted as abort:
            return self._fail(result, abort.kind, abort.message, abort.file_path)
        finally:
            result.attempted = list(self.resolver.attempted)

        if offline_error is not None:
            return self._fail(result, ErrorKind.TRANSPORT_FAILURE, str(offline_error))
        if last_failure is not None:
            return self._fail(result, last_failure.kind, last_failure.message)

        error = no_candidate_error(image, target, result.attempted)
        return self._fail(result, ErrorKind.CANDIDATE_NOT_FOUND, error.message)

    def _offline_candidates(
        self, image: FirmwareImage, target: str, primary_capable: bool
    ) -> Iterator[AssetDescriptor]:
        # Without a listing only the cache can satisfy the request
        self.resolver.attempted = []
        for name, fmt in self.resolver.plan(image, target, primary_capable):
            self.resolver.attempted.append(name)
            yield AssetDescriptor(name=name, asset_format=fmt)

    def _finish(self, result: FetchResult, start_time: float) -> FetchResult:
        elapsed = time.time() - start_time
        source = "cache" if result.from_cache else "download"
        logger.info(f"{result.asset_name} ready from {source} in {elapsed:.1f}s")
        return result

    def _try_candidate(self, descriptor: AssetDescriptor, result: FetchResult) -> bool:
        """
        Run CACHE_CHECK and, if needed, DOWNLOADING/POST_VERIFY/COMMITTED for one candidate.

        Returns:
            bool: True when `result` now holds a usable file. False when the candidate was
            only consultable offline and nothing usable was cached.

        Raises:
            _CandidateFailed: The candidate could not be used; the caller moves on.
            _FetchAborted: A failure that ends the whole fetch.
        """
        result.state = OrchestratorState.CACHE_CHECK
        try:
            outcome = self.cache.lookup(descriptor)
        except CacheWriteError as e:
            raise _FetchAborted(ErrorKind.CACHE_WRITE_FAILURE, str(e)) from e
        for advisory in outcome.advisories:
            self._advise(result, advisory, log=False)

        if outcome.is_valid:
            result.ok = True
            result.from_cache = True
            result.file_path = self.cache.entry_path(descriptor.name)
            result.state = OrchestratorState.CACHE_HIT
            logger.info(f"Using cached {descriptor.name}")
            return True

        if outcome.is_invalid:
            advisory = (
                f"Cached {descriptor.name} failed verification ({outcome.reason}); "
                "discarding it"
            )
            self._advise(result, advisory)
            self.cache.invalidate(descriptor)

        if descriptor.download_url is None:
            logger.debug(f"No download URL for {descriptor.name}; skipping download")
            return False

        return self._download_candidate(descriptor, result)

    def _download_candidate(
        self, descriptor: AssetDescriptor, result: FetchResult
    ) -> bool:
        name = descriptor.name
        for attempt in range(1, self.max_attempts + 1):
            result.state = OrchestratorState.DOWNLOADING
            try:
                staging = self.cache.staging_path(descriptor)
            except CacheWriteError as e:
                raise _FetchAborted(ErrorKind.CACHE_WRITE_FAILURE, str(e)) from e

            try:
                logger.info(f"Downloading {name} (attempt {attempt}/{self.max_attempts})")
                if self.on_download_start is not None:
                    self.on_download_start(name)
                bytes_downloaded = self.downloader.download(
                    descriptor.download_url,
                    staging,
                    on_progress=self.on_progress,
                    cancel_event=self.cancel_event,
                )
                result.bytes_downloaded += bytes_downloaded

                result.state = OrchestratorState.POST_VERIFY
                hash_value = self._post_verify(descriptor, staging, result)
                if hash_value is None:
                    self.cache.discard(staging)
                    logger.warning(
                        f"Could not hash downloaded {name}; restarting the download"
                    )
                    continue
            except TransportError as e:
                self.cache.discard(staging)
                raise _CandidateFailed(ErrorKind.TRANSPORT_FAILURE, str(e)) from e
            except DownloadCancelledError as e:
                self.cache.discard(staging)
                raise _FetchAborted(ErrorKind.CANCELLED, str(e)) from e
            except CacheWriteError as e:
                self.cache.discard(staging)
                raise _FetchAborted(ErrorKind.CACHE_WRITE_FAILURE, str(e)) from e
            except VerificationError as e:
                self.cache.discard(staging)
                kind = (
                    ErrorKind.SIZE_MISMATCH
                    if isinstance(e, SizeMismatchError)
                    else ErrorKind.HASH_MISMATCH
                )
                raise _CandidateFailed(kind, e.message) from e
            except (_CandidateFailed, _FetchAborted):
                self.cache.discard(staging)
                raise
            except KeyboardInterrupt:
                self.cache.discard(staging)
                raise

            try:
                entry = self.cache.commit(descriptor, staging, hash_value)
            except CacheWriteError as e:
                kept = staging if staging.exists() else None
                raise _FetchAborted(
                    ErrorKind.CACHE_WRITE_FAILURE, str(e), file_path=kept
                ) from e

            result.ok = True
            result.from_cache = False
            result.file_path = entry.local_path
            result.state = OrchestratorState.COMMITTED
            return True

        raise _CandidateFailed(
            ErrorKind.HASH_MISMATCH,
            f"Could not compute the hash of {name} after {self.max_attempts} attempt(s)",
        )

    def _post_verify(
        self, descriptor: AssetDescriptor, staging: Path, result: FetchResult
    ) -> Optional[str]:
        """
        Verify a finished download and return the hash to record.

        Returns:
            Optional[str]: The digest to commit, or None when the file could not be read and
            the download should be restarted.

        Raises:
            VerificationError: On a size or hash mismatch.
            _FetchAborted: When the degraded-trust confirmation is declined.
        """
        name = descriptor.name
        try:
            remote_hash: Optional[str] = self.checksum_fetcher.fetch(
                descriptor.checksum_manifest_url, name
            )
        except ManifestError as e:
            remote_hash = None
            self._advise(
                result,
                f"Server-side verification unavailable for {name} ({e.message})",
            )

        outcome = self.verifier.verify(
            staging, expected_size=descriptor.expected_size, expected_hash=remote_hash
        )
        self._raise_for_outcome(name, staging, outcome)
        if outcome.failure is FailureKind.UNREADABLE:
            return None

        if remote_hash is not None:
            logger.debug(f"{name} matches the published hash")
            return remote_hash

        try:
            local_hash = self.verifier.compute_hash(staging)
        except OSError as e:
            logger.debug(f"Hashing {staging} failed: {e}")
            return None

        question = (
            f"No published checksum could verify {name}. "
            f"Trust the downloaded file (SHA-256 {local_hash})?"
        )
        if self.confirm is None or not self.confirm(question):
            raise _FetchAborted(
                ErrorKind.USER_DECLINED,
                f"Declined to use {name} without server-side verification",
            )
        self._advise(result, f"Trusting {name} without server-side verification")
        return local_hash

    @staticmethod
    def _raise_for_outcome(
        name: str, path: Path, outcome: VerificationOutcome
    ) -> None:
        """
        Raise the VerificationError matching an INVALID outcome.

        VALID and UNREADABLE outcomes return normally; UNREADABLE triggers a restart instead.

        Raises:
            SizeMismatchError: On a size mismatch.
            HashMismatchError: On a hash mismatch.
        """
        if outcome.is_valid or outcome.failure is FailureKind.UNREADABLE:
            return
        error_cls = _VERIFICATION_ERRORS.get(outcome.failure, HashMismatchError)
        raise error_cls(
            f"{name} failed verification: {outcome.reason}", path=str(path)
        )
