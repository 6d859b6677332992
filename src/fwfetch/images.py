"""
Firmware image catalog.

Describes the firmware images fwfetch knows how to fetch: which GitHub
repository publishes them, which targets they support, and how asset names
are derived for each target. User-defined images from the `IMAGES`
configuration key extend the built-in list.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from fwfetch.exceptions import (
    ConfigurationError,
    InvalidTargetError,
    UnknownImageError,
)

RPI_AND_FRIENDS = [
    "rpi",
    "rpi0",
    "rpi0_2",
    "rpi2",
    "rpi3",
    "rpi3a",
    "rpi4",
    "rpi5",
    "bbb",
    "osd32mp1",
    "npi_imx6ull",
    "grisp2",
    "mangopi_mq_pro",
]

TARGET_DISPLAY_NAMES = {
    "rpi": "Raspberry Pi Model B (rpi)",
    "rpi0": "Raspberry Pi Zero (rpi0)",
    "rpi0_2": "Raspberry Pi Zero 2W in 64-bit mode (rpi0_2)",
    "rpi2": "Raspberry Pi 2 (rpi2)",
    "rpi3": "Raspberry Pi 3 (rpi3)",
    "rpi3a": "Raspberry Pi Zero 2W or 3A in 32-bit mode (rpi3a)",
    "rpi4": "Raspberry Pi 4 (rpi4)",
    "rpi5": "Raspberry Pi 5 (rpi5)",
    "bbb": "Beaglebone Black and other Beaglebone variants (bbb)",
    "osd32mp1": "OSD32MP1 (osd32mp1)",
    "npi_imx6ull": "NPI i.MX6 ULL (npi_imx6ull)",
    "grisp2": "GRiSP 2 (grisp2)",
    "mangopi_mq_pro": "MangoPi MQ Pro (mangopi_mq_pro)",
}


@dataclass(frozen=True)
class TargetOverride:
    """Per-target deviations from an image's defaults."""

    force_secondary_format: bool = False
    """Always fetch the disk-image asset for this target, even when fwup is available."""

    next_steps: Optional[str] = None
    """Target-specific instructions shown after a successful fetch."""


@dataclass(frozen=True)
class FirmwareImage:
    """A firmware image published as GitHub release assets."""

    name: str
    repo: str
    targets: List[str]
    fw_asset_pattern: str
    """`str.format` template over `target` for the primary (.fw) asset."""

    image_asset_pattern: str
    """`str.format` template over `target` for the secondary (disk image) asset."""

    description: str = ""
    long_description: str = ""
    url: Optional[str] = None
    next_steps: Optional[str] = None
    overrides: Dict[str, TargetOverride] = field(default_factory=dict)

    @property
    def slug(self) -> str:
        return self.repo.rsplit("/", 1)[-1]

    def validate_target(self, target: str) -> None:
        if target not in self.targets:
            raise InvalidTargetError(
                f"Target '{target}' is not supported by {self.name}",
                field="target",
                value=target,
                details=f"supported targets: {', '.join(self.targets)}",
            )

    def fw_asset_name(self, target: str) -> str:
        return self.fw_asset_pattern.format(target=target)

    def image_asset_name(self, target: str) -> str:
        return self.image_asset_pattern.format(target=target)

    def get_target_override(self, target: str) -> Optional[TargetOverride]:
        return self.overrides.get(target)


BUILTIN_IMAGES: List[FirmwareImage] = [
    FirmwareImage(
        name="Circuits Quickstart",
        repo="elixir-circuits/circuits_quickstart",
        description="Minimal image for trying out GPIO, I2C, SPI and more",
        long_description=(
            "This is a good first image if you'd like to try Nerves on a device. It\n"
            "sets up networking and an ssh server for remote access to an IEx prompt.\n"
            "\n"
            "All Elixir Circuits libraries are included for ease of trying out\n"
            "hardware programming using I2C, SPI, GPIOs and UARTs. It also serves\n"
            "as a known good image when debugging boot and hardware initialization\n"
            "problems.\n"
        ),
        url="https://github.com/elixir-circuits/circuits_quickstart",
        targets=list(RPI_AND_FRIENDS),
        fw_asset_pattern="circuits_quickstart_{target}.fw",
        image_asset_pattern="circuits_quickstart_{target}.img.gz",
        next_steps=(
            "For instructions on using Circuits Quickstart, please visit:\n"
            "https://github.com/elixir-circuits/circuits_quickstart?tab=readme-ov-file#testing-the-firmware\n"
        ),
        overrides={
            "grisp2": TargetOverride(
                force_secondary_format=True,
                next_steps=(
                    "For GRiSP 2 installation instructions, please visit:\n"
                    "https://github.com/elixir-circuits/circuits_quickstart?tab=readme-ov-file#grisp-2-installation\n"
                ),
            )
        },
    ),
    FirmwareImage(
        name="Nerves Livebook",
        repo="nerves-livebook/nerves_livebook",
        description="Interactive notebooks for learning Elixir and Nerves",
        long_description=(
            "Run Livebook directly on your embedded device for an interactive\n"
            "development or learning experience.\n"
            "\n"
            "Includes:\n"
            "\n"
            "- Pre-installed notebooks with Nerves examples and tutorials\n"
            "- Many Elixir libraries for use in notebooks\n"
            "- Support for storing notebooks on device\n"
            "\n"
            "Ideal for experimenting with Nerves or building prototypes interactively.\n"
        ),
        url="https://github.com/nerves-livebook/nerves_livebook",
        targets=list(RPI_AND_FRIENDS),
        fw_asset_pattern="nerves_livebook_{target}.fw",
        image_asset_pattern="nerves_livebook_{target}.img.gz",
        next_steps=(
            "For instructions on getting started, please visit:\n"
            "https://github.com/nerves-livebook/nerves_livebook#readme\n"
        ),
        overrides={
            "grisp2": TargetOverride(
                force_secondary_format=True,
                next_steps=(
                    "For GRiSP 2 installation instructions, please visit:\n"
                    "https://github.com/nerves-livebook/nerves_livebook?tab=readme-ov-file#grisp-2-installation\n"
                ),
            )
        },
    ),
    FirmwareImage(
        name="Nerves Web Kiosk Demo",
        repo="nerves-web-kiosk/kiosk_demo",
        description="Kiosk demo using an embedded web browser and Phoenix LiveView",
        long_description=(
            "This firmware works on the Raspberry Pi 4 and 5. You'll also need either the\n"
            "Raspberry Pi Touch Display 2 or an HDMI display. If using an HDMI display, connect\n"
            "a mouse to use the UI. Some HDMI monitors with USB touchscreens work.\n"
        ),
        url="https://github.com/nerves-web-kiosk/kiosk_demo",
        targets=["rpi4", "rpi5"],
        fw_asset_pattern="kiosk_demo_{target}.fw",
        image_asset_pattern="kiosk_demo_{target}.img.gz",
        next_steps=(
            "For instructions on getting started, please visit:\n"
            "https://github.com/nerves-web-kiosk/kiosk_demo#readme\n"
        ),
    ),
]


def _require_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(
            f"Image entry is missing required string field '{key}'",
            details=repr(data.get("name", data)),
        )
    return value.strip()


def image_from_dict(data: Mapping[str, Any]) -> FirmwareImage:
    """
    Build a FirmwareImage from a user configuration entry.

    Required keys: `name`, `repo`, `targets` (non-empty list), `fw_asset_pattern` and
    `image_asset_pattern` (both must reference `{target}` and no other placeholder; the
    image pattern must end in a known asset extension). Optional keys: `description`,
    `long_description`, `url`, `next_steps` and `overrides`, a mapping of target to
    `{force_secondary_format: bool, next_steps: str}`.

    Raises:
        ConfigurationError: If the entry is malformed.
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError(
            "Image entries must be mappings", details=type(data).__name__
        )

    name = _require_str(data, "name")
    repo = _require_str(data, "repo")
    if repo.count("/") != 1:
        raise ConfigurationError(
            f"Image '{name}' repo must look like 'owner/name'", details=repo
        )

    targets = data.get("targets")
    if (
        not isinstance(targets, list)
        or not targets
        or not all(isinstance(t, str) and t for t in targets)
    ):
        raise ConfigurationError(
            f"Image '{name}' must declare a non-empty list of targets"
        )

    # Imported here: fwfetch.download imports this module
    from fwfetch.download.interfaces import AssetFormat

    patterns = {}
    for key in ("fw_asset_pattern", "image_asset_pattern"):
        pattern = _require_str(data, key)
        if "{target}" not in pattern:
            raise ConfigurationError(
                f"Image '{name}' {key} must contain '{{target}}'", details=pattern
            )
        try:
            sample = pattern.format(target=targets[0])
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(
                f"Image '{name}' {key} may only use the '{{target}}' placeholder",
                details=pattern,
            ) from e
        if key == "image_asset_pattern":
            try:
                AssetFormat.from_name(sample)
            except ValueError as e:
                raise ConfigurationError(
                    f"Image '{name}' {key} must end in .fw, .zip, .img.gz or .img",
                    details=pattern,
                ) from e
        patterns[key] = pattern

    overrides: Dict[str, TargetOverride] = {}
    raw_overrides = data.get("overrides") or {}
    if not isinstance(raw_overrides, Mapping):
        raise ConfigurationError(f"Image '{name}' overrides must be a mapping")
    for target, override in raw_overrides.items():
        if target not in targets:
            raise ConfigurationError(
                f"Image '{name}' has an override for undeclared target '{target}'"
            )
        override = override or {}
        overrides[target] = TargetOverride(
            force_secondary_format=bool(override.get("force_secondary_format", False)),
            next_steps=override.get("next_steps"),
        )

    return FirmwareImage(
        name=name,
        repo=repo,
        targets=list(targets),
        fw_asset_pattern=patterns["fw_asset_pattern"],
        image_asset_pattern=patterns["image_asset_pattern"],
        description=str(data.get("description") or ""),
        long_description=str(data.get("long_description") or ""),
        url=data.get("url"),
        next_steps=data.get("next_steps"),
        overrides=overrides,
    )


def list_images(config: Optional[Mapping[str, Any]] = None) -> List[FirmwareImage]:
    """Return the built-in images followed by any user-defined `IMAGES` entries."""
    images = list(BUILTIN_IMAGES)
    extra = (config or {}).get("IMAGES") or []
    if not isinstance(extra, list):
        raise ConfigurationError("IMAGES must be a list of image entries")
    images.extend(image_from_dict(entry) for entry in extra)
    return images


def get_image(
    name: str, config: Optional[Mapping[str, Any]] = None
) -> FirmwareImage:
    """
    Look up an image by display name, repository slug or full repo (case-insensitive).

    Raises:
        UnknownImageError: If nothing matches.
    """
    wanted = name.strip().lower()
    for image in list_images(config):
        if wanted in (image.name.lower(), image.slug.lower(), image.repo.lower()):
            return image
    raise UnknownImageError(
        f"Unknown firmware image '{name}'", field="image", value=name
    )


def target_display_name(target: str) -> str:
    """Return a human-friendly name for a target, or the target itself when unknown."""
    return TARGET_DISPLAY_NAMES.get(target, target)


def next_steps(image: FirmwareImage, target: str) -> Optional[str]:
    """Return target-specific next steps if overridden, else the image default."""
    override = image.get_target_override(target)
    if override and override.next_steps:
        return override.next_steps
    return image.next_steps
