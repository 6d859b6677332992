"""
Asset Resolution

Turns an image, a target and the environment's primary-format capability into
the ordered list of concrete assets to request from the release feed.
"""

from typing import Iterator, List, Mapping, Optional, Tuple

from fwfetch.exceptions import CandidateNotFoundError, ConfigurationError
from fwfetch.images import FirmwareImage
from fwfetch.log_utils import logger

from .interfaces import FALLBACK_FORMATS, Asset, AssetDescriptor, AssetFormat

CandidatePlan = List[Tuple[str, AssetFormat]]


class AssetResolver:
    """
    Derives candidate asset names and binds them to the release listing.

    Candidates are inspected strictly in priority order; a later candidate is
    only looked at once every earlier one is confirmed absent from the listing.
    `attempted` records the names inspected by the most recent resolution.
    """

    def __init__(self) -> None:
        self.attempted: List[str] = []

    def plan(
        self, image: FirmwareImage, target: str, primary_capable: bool
    ) -> CandidatePlan:
        """
        Return the ordered `(asset_name, format)` candidates for a target.

        - A target override forcing the secondary format yields the image asset alone.
        - With primary-format capability, the primary (.fw) asset alone.
        - Otherwise the fallback chain derived from the primary name: archive,
          compressed disk image, raw disk image.

        Raises:
            InvalidTargetError: If the image does not declare `target`.
            ConfigurationError: If an asset pattern cannot produce a usable name.
        """
        image.validate_target(target)
        try:
            return self._plan_names(image, target, primary_capable)
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(
                f"Image '{image.name}' has an unusable asset pattern for {target}",
                details=str(e),
            ) from e

    @staticmethod
    def _plan_names(
        image: FirmwareImage, target: str, primary_capable: bool
    ) -> CandidatePlan:
        override = image.get_target_override(target)
        if override is not None and override.force_secondary_format:
            name = image.image_asset_name(target)
            return [(name, AssetFormat.from_name(name))]

        primary = image.fw_asset_name(target)
        if primary_capable:
            return [(primary, AssetFormat.FIRMWARE)]

        base = primary
        if base.lower().endswith(AssetFormat.FIRMWARE.extension):
            base = base[: -len(AssetFormat.FIRMWARE.extension)]
        return [(f"{base}{fmt.extension}", fmt) for fmt in FALLBACK_FORMATS]

    def iter_candidates(
        self,
        image: FirmwareImage,
        target: str,
        primary_capable: bool,
        assets: Mapping[str, Asset],
        manifest_url: Optional[str] = None,
    ) -> Iterator[AssetDescriptor]:
        """
        Lazily yield descriptors for candidates present in `assets`, in priority order.

        Absent candidates are skipped (and recorded in `attempted`) without raising;
        the caller decides what exhaustion means.
        """
        self.attempted = []
        for name, fmt in self.plan(image, target, primary_capable):
            self.attempted.append(name)
            asset = assets.get(name)
            if asset is None:
                logger.debug("Candidate %s not present in release", name)
                continue
            yield AssetDescriptor(
                name=name,
                asset_format=fmt,
                expected_size=asset.size,
                checksum_manifest_url=manifest_url,
                download_url=asset.download_url,
            )

    def resolve(
        self,
        image: FirmwareImage,
        target: str,
        primary_capable: bool,
        assets: Mapping[str, Asset],
        manifest_url: Optional[str] = None,
    ) -> List[AssetDescriptor]:
        """
        Return every present candidate in priority order.

        Raises:
            InvalidTargetError: If the image does not declare `target`.
            CandidateNotFoundError: If no candidate exists in the release listing.
        """
        found = list(
            self.iter_candidates(image, target, primary_capable, assets, manifest_url)
        )
        if not found:
            raise no_candidate_error(image, target, self.attempted)
        return found


def no_candidate_error(
    image: FirmwareImage, target: str, attempted: List[str]
) -> CandidateNotFoundError:
    """Build the CandidateNotFoundError reported once every candidate is exhausted."""
    if len(attempted) == 1:
        message = f"Asset '{attempted[0]}' not found in the latest {image.repo} release"
    else:
        message = (
            f"No suitable format ({', '.join(attempted)}) found for {image.name} "
            f"on {target}. Install fwup to use .fw files."
        )
    return CandidateNotFoundError(message, attempted=attempted)
