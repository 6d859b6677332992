# src/fwfetch/cli.py

import argparse
import sys
from typing import Any, Dict, List, Optional

from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from fwfetch import config as fwfetch_config
from fwfetch import environment, images, log_utils
from fwfetch.constants import AFFIRMATIVE_ANSWERS
from fwfetch.download import CacheStore, DownloadOrchestrator, ErrorKind
from fwfetch.exceptions import ConfigurationError, UnknownImageError

logger = log_utils.logger


class ProgressReporter:
    """
    Adapts orchestrator progress callbacks to a rich progress bar.

    The bar is created on the first chunk: determinate when the server sent a
    Content-Length, otherwise an indeterminate pulse with a running byte count.
    `start()` retires the current bar so each transfer attempt gets its own.
    """

    def __init__(self, description: str):
        self.description = description
        self._progress: Optional[Progress] = None
        self._task_id: Optional[Any] = None

    def start(self, asset_name: str) -> None:
        self.close()
        self.description = asset_name

    def __call__(self, bytes_so_far: int, total: Optional[int]) -> None:
        if self._progress is None:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold blue]{task.description}"),
                BarColumn(bar_width=40),
                DownloadColumn(),
                "•",
                TransferSpeedColumn(),
                "•",
                TimeRemainingColumn(),
                refresh_per_second=4,
            )
            self._progress.start()
            self._task_id = self._progress.add_task(self.description, total=total)
        self._progress.update(self._task_id, completed=bytes_so_far, total=total)

    def close(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task_id = None


def prompt_confirm(question: str) -> bool:
    """Ask a yes/no question on stdin; anything but an explicit yes declines."""
    try:
        answer = input(f"{question} [y/N]: ")
    except EOFError:
        answer = ""
    return answer.strip().lower() in AFFIRMATIVE_ANSWERS


def _load_config(path: Optional[str]) -> Optional[Dict[str, Any]]:
    try:
        return fwfetch_config.load_config(path)
    except ConfigurationError as e:
        logger.error(str(e))
        return None


def _configure_logging(config: Dict[str, Any], level_override: Optional[str]) -> None:
    level = level_override or config.get("LOG_LEVEL")
    if level:
        log_utils.set_log_level(str(level))
    log_dir = config.get("LOG_DIR")
    if log_dir:
        log_utils.add_file_logging(log_dir, str(level or "INFO"))


def run_images(config: Dict[str, Any]) -> int:
    try:
        catalog = images.list_images(config)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    for image in catalog:
        print(f"{image.name} ({image.repo})")
        if image.description:
            print(f"  {image.description}")
        for target in image.targets:
            print(f"    {target:<16} {images.target_display_name(target)}")
        print()
    return 0


def run_download(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    """
    Fetch one image for one target and report where the verified file is.

    Returns:
        int: 0 on success, 1 on any failure.
    """
    try:
        image = images.get_image(args.image, config)
    except (UnknownImageError, ConfigurationError) as e:
        logger.error(str(e))
        return 1

    if args.no_fwup:
        primary_capable = False
    else:
        primary_capable = environment.fwup_available()
        if not primary_capable:
            logger.info("fwup not found; looking for disk image formats instead")

    reporter = ProgressReporter(f"{image.slug} ({args.target})")

    def confirm(question: str) -> bool:
        reporter.close()
        if args.yes:
            logger.info(f"{question} Accepted via --yes")
            return True
        return prompt_confirm(question)

    try:
        orchestrator = DownloadOrchestrator.from_config(
            config,
            github_token=fwfetch_config.get_github_token(config),
            confirm=confirm,
            on_progress=reporter,
            on_download_start=reporter.start,
        )
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    try:
        result = orchestrator.fetch(image, args.target, primary_capable)
    except KeyboardInterrupt:
        logger.error("Download interrupted")
        return 1
    finally:
        reporter.close()

    if not result.ok:
        if result.error_kind is ErrorKind.CACHE_WRITE_FAILURE and result.file_path:
            print(f"Could not cache the download; it was kept at {result.file_path}")
        return 1

    origin = "cached copy" if result.from_cache else "downloaded"
    print(f"{result.asset_name} ({origin}): {result.file_path}")
    steps = images.next_steps(image, args.target)
    if steps:
        print()
        print(steps.rstrip())
    return 0


def run_cache(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    store = CacheStore(fwfetch_config.get_cache_dir(config))

    if args.cache_command == "path":
        print(store.root)
    elif args.cache_command == "list":
        entries = store.entries()
        if not entries:
            print(f"Cache at {store.root} is empty")
        for entry in entries:
            stored = entry.stored_hash[:12] if entry.stored_hash else "(no hash)"
            print(f"{entry.local_path.name}  {entry.size_bytes} bytes  {stored}")
    elif args.cache_command == "clean":
        removed = store.clear()
        print(f"Removed {removed} cached file(s) from {store.root}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fwfetch",
        description="fwfetch - download, verify and cache Nerves firmware images",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Configuration file to use instead of the default location",
    )
    parser.add_argument(
        "--log-level",
        metavar="LEVEL",
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("images", help="List available firmware images and targets")

    download_parser = subparsers.add_parser(
        "download",
        help="Fetch the latest firmware for a target",
        description=(
            "Fetch the latest release asset for IMAGE on TARGET, reusing the cache "
            "when the cached copy still matches the published checksum."
        ),
    )
    download_parser.add_argument("image", metavar="IMAGE", help="Image name or repo")
    download_parser.add_argument("target", metavar="TARGET", help="Hardware target")
    download_parser.add_argument(
        "--no-fwup",
        action="store_true",
        help="Skip .fw files and fetch a disk image format instead",
    )
    download_parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Trust downloads without a published checksum without asking",
    )

    cache_parser = subparsers.add_parser(
        "cache",
        help="Inspect or clear cached downloads",
        description="Show, list, or clear the download cache.",
    )
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command", required=True)
    cache_subparsers.add_parser("path", help="Print the cache directory")
    cache_subparsers.add_parser("list", help="List cached files")
    cache_subparsers.add_parser("clean", help="Remove all cached files")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for the fwfetch command-line interface.

    Parses arguments, loads configuration once, and dispatches the `images`, `download`
    and `cache` subcommands.

    Returns:
        int: Process exit code, 0 on success and 1 on failure.
    """
    # Logging is automatically initialized by importing log_utils
    parser = build_parser()
    args = parser.parse_args(argv)

    config = _load_config(args.config)
    if config is None:
        return 1
    _configure_logging(config, args.log_level)

    if args.command == "images":
        return run_images(config)
    if args.command == "download":
        return run_download(args, config)
    if args.command == "cache":
        return run_cache(args, config)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
