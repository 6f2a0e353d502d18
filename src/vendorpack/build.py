"""External packaging tools: dpkg-buildpackage and alien."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from . import telemetry
from .errors import BuildError

LOG = logging.getLogger("vendorpack.build")

MANIFEST = Path("debian") / "files"
BUILD_COMMAND = ("dpkg-buildpackage", "-us", "-uc", "-b")
CLEAN_COMMAND = ("dh_clean",)
CONVERT_COMMAND = ("alien", "--to-rpm", "--scripts")
ARTIFACT_SUFFIXES = (".deb", ".rpm")


def _run(command: Sequence[str], cwd: Path) -> subprocess.CompletedProcess:
    LOG.debug("RUN (%s): %s", cwd, " ".join(command))
    return subprocess.run(list(command), cwd=str(cwd), check=False)


class DebianPackageBuilder:
    """Builds the binary package of one ``<name>/debian`` directory."""

    def __init__(
        self,
        build_command: Sequence[str] = BUILD_COMMAND,
        clean_command: Sequence[str] = CLEAN_COMMAND,
    ) -> None:
        self.build_command = tuple(build_command)
        self.clean_command = tuple(clean_command)

    def clean(self, package_dir: Path) -> None:
        try:
            result = _run(self.clean_command, package_dir)
        except FileNotFoundError:
            telemetry.warning(f"{self.clean_command[0]} is not installed; skipping clean")
            return
        if result.returncode != 0:
            telemetry.warning(
                f"{self.clean_command[0]} exited {result.returncode} in {package_dir}"
            )

    def build(self, name: str, package_dir: Path) -> None:
        if not package_dir.is_dir():
            raise BuildError(f"Package directory for {name} not found: {package_dir}")
        telemetry.status(f"Building Debian package for: {name}")
        self.clean(package_dir)
        try:
            result = _run(self.build_command, package_dir)
        except FileNotFoundError as exc:
            raise BuildError(f"{self.build_command[0]} is not installed") from exc
        if result.returncode != 0:
            raise BuildError(
                f"{' '.join(self.build_command)} failed for {name} "
                f"(exit {result.returncode})"
            )
        telemetry.status(f"Finished building {name}")


def read_manifest(package_dir: Path) -> Optional[List[str]]:
    """``.deb`` names listed in ``debian/files``; ``None`` if it is missing."""

    manifest = package_dir / MANIFEST
    if not manifest.is_file():
        return None
    artifacts: List[str] = []
    for line in manifest.read_text(encoding="utf-8").splitlines():
        fields = line.split()
        if not fields:
            continue
        if fields[0].endswith(".deb"):
            artifacts.append(fields[0])
    return artifacts


@dataclass
class ConversionReport:
    module: str
    converted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "module": self.module,
            "converted": list(self.converted),
            "failed": list(self.failed),
            "skipped": list(self.skipped),
        }


class RpmConverter:
    """Repackages each ``.deb`` listed in the manifest as an RPM."""

    def __init__(self, command: Sequence[str] = CONVERT_COMMAND) -> None:
        self.command = tuple(command)

    def available(self) -> bool:
        return shutil.which(self.command[0]) is not None

    def remove_stale(self, output_dir: Path, deb_file: str) -> None:
        stem = deb_file[: -len(".deb")]
        for stale in output_dir.glob(f"{stem}*.rpm"):
            LOG.debug("Removing stale %s", stale)
            stale.unlink(missing_ok=True)

    def convert(self, name: str, package_dir: Path, output_dir: Path) -> ConversionReport:
        report = ConversionReport(module=name)
        if not self.available():
            telemetry.error(
                f"{self.command[0]} is not installed. Skipping RPM conversion for {name}."
            )
            report.failed.append(name)
            return report

        artifacts = read_manifest(package_dir)
        if artifacts is None:
            telemetry.status(
                f"No debian/files manifest found for {name}. Skipping RPM conversion."
            )
            return report
        if not artifacts:
            telemetry.status(f"No .deb artifacts listed for {name}. Skipping RPM conversion.")
            return report

        for deb_file in artifacts:
            deb_path = output_dir / deb_file
            if not deb_path.is_file():
                telemetry.warning(f"Expected Debian package {deb_path} not found; skipping.")
                report.skipped.append(deb_file)
                continue

            telemetry.status(f"Converting {deb_file} to RPM...")
            self.remove_stale(output_dir, deb_file)
            try:
                result = _run([*self.command, str(deb_path)], output_dir)
                returncode = result.returncode
            except OSError as exc:
                LOG.debug("%s", exc)
                returncode = None
            if returncode == 0:
                telemetry.status(f"Successfully converted {deb_file} to RPM.")
                report.converted.append(deb_file)
            else:
                telemetry.error(f"Failed to convert {deb_file} to RPM.")
                report.failed.append(deb_file)

        telemetry.status(f"Finished converting RPM packages for: {name}")
        return report


def list_artifacts(output_dir: Path) -> List[str]:
    return sorted(
        path.name
        for path in output_dir.iterdir()
        if path.is_file() and path.suffix in ARTIFACT_SUFFIXES
    )


__all__ = [
    "ConversionReport",
    "DebianPackageBuilder",
    "RpmConverter",
    "list_artifacts",
    "read_manifest",
]
