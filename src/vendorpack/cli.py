"""Command line entry point: ``vendorpack build`` and ``vendorpack changelog``."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import telemetry
from .changelog import ChangelogComposer, ComposeStatus
from .config import RunConfig, load_config
from .errors import VendorpackError
from .orchestrator import ModuleSyncOrchestrator

LOG = logging.getLogger("vendorpack")


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=Path, help="Path to vendorpack.yaml")
    parser.add_argument(
        "--root",
        type=Path,
        help="Project root holding modules/ and the package directories",
    )
    parser.add_argument(
        "--module",
        dest="modules",
        action="append",
        metavar="NAME",
        help="Process only this module (repeatable, keeps the given order)",
    )
    parser.add_argument("--verbose", "-v", action="store_true")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vendorpack",
        description="Verify, version and package vendored module repositories.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    build = commands.add_parser("build", help="Sync, verify, build and convert modules")
    _add_common(build)
    build.add_argument("--keys", type=Path, help="Armored trusted keys file")
    strict = build.add_mutually_exclusive_group()
    strict.add_argument(
        "--strict",
        dest="strict_conversion",
        action="store_const",
        const=True,
        help="Exit nonzero when any RPM conversion failed",
    )
    strict.add_argument(
        "--no-strict", dest="strict_conversion", action="store_const", const=False
    )
    build.add_argument(
        "--no-convert",
        dest="convert",
        action="store_const",
        const=False,
        help="Skip the RPM conversion step",
    )

    changelog = commands.add_parser(
        "changelog", help="Refresh debian/changelog from the version notes only"
    )
    _add_common(changelog)
    return parser


def _load(args: argparse.Namespace) -> RunConfig:
    overrides = {
        "keys_file": str(args.keys) if getattr(args, "keys", None) else None,
        "strict_conversion": getattr(args, "strict_conversion", None),
        "convert": getattr(args, "convert", None),
    }
    return load_config(
        args.config, root=args.root, modules=args.modules, overrides=overrides
    )


def run_build(config: RunConfig) -> int:
    report = ModuleSyncOrchestrator(config).run()
    return report.exit_code(config.strict_conversion)


def run_changelog(config: RunConfig) -> int:
    composer = ChangelogComposer(
        config.maintainer,
        distribution=config.distribution,
        urgency=config.urgency,
        revision=config.revision,
    )
    for module in config.modules:
        telemetry.status(f"Updating changelog for module: {module.name}")
        result = composer.compose(module.name, module.versions_dir, module.changelog)
        if result.status is ComposeStatus.UPDATED:
            print(f"Changelog updated to {result.version}.", flush=True)
        elif result.status is ComposeStatus.SKIPPED:
            print(f"Version {result.version} already in changelog, skipping.", flush=True)
        else:
            print(f"No version_* files found in {module.versions_dir}", flush=True)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    try:
        config = _load(args)
        if args.command == "changelog":
            return run_changelog(config)
        return run_build(config)
    except VendorpackError as exc:
        telemetry.error(exc.message)
        LOG.debug("%s", exc.code, exc_info=True)
        return exc.exit_code


__all__ = ["build_parser", "main", "run_build", "run_changelog"]


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
