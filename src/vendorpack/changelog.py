"""Debian changelog entries derived from the highest version note."""

from __future__ import annotations

import enum
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import format_datetime
from pathlib import Path
from typing import Callable, List, Optional

from .versions import MAX_BULLETS, VersionNote, extract_bullets, highest_version_note, parse_version

LOG = logging.getLogger("vendorpack.changelog")

DEFAULT_DISTRIBUTION = "unstable"
DEFAULT_URGENCY = "medium"

_HEADER_VERSION_RE = re.compile(r"\(([0-9.]+)-[0-9]+\)")


@dataclass(frozen=True)
class Maintainer:
    name: str
    email: str

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"


@dataclass(frozen=True)
class ChangelogEntry:
    package: str
    version: str
    maintainer: Maintainer
    timestamp: datetime
    bullets: List[str] = field(default_factory=list)
    revision: int = 1
    distribution: str = DEFAULT_DISTRIBUTION
    urgency: str = DEFAULT_URGENCY

    def render(self) -> str:
        lines = [
            f"{self.package} ({self.version}-{self.revision}) "
            f"{self.distribution}; urgency={self.urgency}",
            "",
        ]
        bullets = self.bullets[:MAX_BULLETS] or [f"Update to version {self.version}"]
        lines.extend(f"  * {bullet}" for bullet in bullets)
        lines.append("")
        lines.append(f" -- {self.maintainer}  {format_datetime(self.timestamp)}")
        return "\n".join(lines)


class ComposeStatus(str, enum.Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"
    NO_SOURCE = "no-source"


@dataclass(frozen=True)
class ComposeResult:
    status: ComposeStatus
    version: Optional[str] = None
    note: Optional[Path] = None


def current_version(changelog_file: Path) -> str:
    """Version stated by the top entry, or ``""`` when there is none."""

    if not changelog_file.is_file():
        return ""
    with changelog_file.open("r", encoding="utf-8", errors="replace") as handle:
        first_line = handle.readline()
    match = _HEADER_VERSION_RE.search(first_line)
    return match.group(1) if match else ""


def write_atomic(destination: Path, content: bytes) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{destination.name}.", suffix=".tmp", dir=str(destination.parent)
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        if destination.exists():
            os.chmod(tmp_path, destination.stat().st_mode & 0o777)
        else:
            os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, destination)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _local_now() -> datetime:
    return datetime.now().astimezone()


class ChangelogComposer:
    """Prepends one entry per new version to a module's Debian changelog."""

    def __init__(
        self,
        maintainer: Maintainer,
        *,
        distribution: str = DEFAULT_DISTRIBUTION,
        urgency: str = DEFAULT_URGENCY,
        revision: int = 1,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        self.maintainer = maintainer
        self.distribution = distribution
        self.urgency = urgency
        self.revision = revision
        self._clock = clock

    def entry_for(self, package: str, note: VersionNote) -> ChangelogEntry:
        return ChangelogEntry(
            package=package,
            version=parse_version(note.path),
            maintainer=self.maintainer,
            timestamp=self._clock(),
            bullets=extract_bullets(note),
            revision=self.revision,
            distribution=self.distribution,
            urgency=self.urgency,
        )

    def compose(
        self, module_name: str, versions_dir: Path, destination: Path
    ) -> ComposeResult:
        LOG.info("Looking for version notes in %s", versions_dir)
        note = highest_version_note(versions_dir)
        if note is None:
            LOG.info("No version_* files found in %s", versions_dir)
            return ComposeResult(ComposeStatus.NO_SOURCE)

        entry = self.entry_for(module_name, note)
        existing = current_version(destination)
        LOG.info(
            "Highest version note %s (version %s); changelog at %r",
            note.path,
            entry.version,
            existing,
        )
        if entry.version == existing:
            return ComposeResult(ComposeStatus.SKIPPED, entry.version, note.path)

        # Existing history is kept byte for byte, whatever its encoding.
        previous = destination.read_bytes() if destination.is_file() else b""
        write_atomic(destination, entry.render().encode("utf-8") + b"\n\n" + previous)
        return ComposeResult(ComposeStatus.UPDATED, entry.version, note.path)


__all__ = [
    "ChangelogComposer",
    "ChangelogEntry",
    "ComposeResult",
    "ComposeStatus",
    "Maintainer",
    "current_version",
    "write_atomic",
]
