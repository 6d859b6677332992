"""
GitHub Release Source

Fetches the latest release of a repository from the GitHub API and turns its
asset list into the `Release` structure the resolver binds candidates against.
"""

from typing import Any, Dict, Optional

import requests

from fwfetch.constants import (
    CHECKSUM_MANIFEST_NAME,
    GITHUB_API_BASE,
    GITHUB_API_TIMEOUT,
)
from fwfetch.exceptions import TransportError
from fwfetch.log_utils import logger
from fwfetch.utils import make_github_api_request

from .interfaces import Asset, Release


def parse_asset(asset_data: Any) -> Optional[Asset]:
    """
    Build an Asset from a GitHub asset object.

    Returns:
        Optional[Asset]: None when `name` or `browser_download_url` is missing or not a string.
    """
    if not isinstance(asset_data, dict):
        return None
    name = asset_data.get("name")
    url = asset_data.get("browser_download_url")
    if not isinstance(name, str) or not name or not isinstance(url, str) or not url:
        return None

    size = asset_data.get("size")
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        size = None

    return Asset(
        name=name,
        download_url=url,
        size=size,
        content_type=asset_data.get("content_type"),
    )


def parse_release(release_data: Dict[str, Any], repo: str = "") -> Release:
    """
    Build a Release from a GitHub release object, skipping malformed assets with a warning.

    Raises:
        ValueError: If `tag_name` is missing.
    """
    tag_name = release_data.get("tag_name")
    if not isinstance(tag_name, str) or not tag_name:
        raise ValueError("release has no tag_name")

    assets: Dict[str, Asset] = {}
    raw_assets = release_data.get("assets")
    if not isinstance(raw_assets, list):
        raw_assets = []
    for asset_data in raw_assets:
        asset = parse_asset(asset_data)
        if asset is None:
            logger.warning(
                "Skipping malformed asset entry in %s %s", repo or "release", tag_name
            )
            continue
        assets.setdefault(asset.name, asset)

    return Release(
        tag_name=tag_name,
        assets=assets,
        prerelease=bool(release_data.get("prerelease", False)),
        published_at=release_data.get("published_at"),
    )


class GithubReleaseSource:
    """
    Reads `GET /repos/{owner}/{name}/releases/latest`.

    Results are not cached between calls; every fetch reflects the current
    release so a re-published artifact is noticed.
    """

    def __init__(
        self,
        session: requests.Session,
        github_token: Optional[str] = None,
        timeout: float = GITHUB_API_TIMEOUT,
    ):
        self.session = session
        self.github_token = github_token
        self.timeout = timeout

    def latest_release_url(self, repo: str) -> str:
        return f"{GITHUB_API_BASE}/{repo}/releases/latest"

    def get_latest_release(self, repo: str) -> Release:
        """
        Fetch and parse the latest release of `repo` ("owner/name").

        Raises:
            RateLimitError: If the GitHub rate limit is exhausted.
            TransportError: On network failure, non-2xx status, or an unusable response body.
        """
        url = self.latest_release_url(repo)
        response = make_github_api_request(
            self.session, url, github_token=self.github_token, timeout=self.timeout
        )
        try:
            release_data = response.json()
        except ValueError as e:
            raise TransportError(
                f"Invalid JSON in release listing for {repo}", url=url, details=str(e)
            ) from e

        if not isinstance(release_data, dict):
            raise TransportError(
                f"Unexpected release listing for {repo}",
                url=url,
                details=f"expected object, got {type(release_data).__name__}",
            )

        try:
            release = parse_release(release_data, repo)
        except ValueError as e:
            raise TransportError(
                f"Malformed release listing for {repo}", url=url, details=str(e)
            ) from e

        logger.debug(
            "Latest %s release is %s with %d asset(s)",
            repo,
            release.tag_name,
            len(release.assets),
        )
        return release

    @staticmethod
    def manifest_url(release: Release) -> Optional[str]:
        """Return the download URL of the release's SHA256SUMS asset, if published."""
        asset = release.assets.get(CHECKSUM_MANIFEST_NAME)
        return asset.download_url if asset else None
