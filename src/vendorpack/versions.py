"""Version notes: locate the highest ``version_*`` file and read its bullets."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .errors import VersionParseError

LOG = logging.getLogger("vendorpack.versions")

NOTE_PREFIX = "version_"
MAX_BULLETS = 20

_NOTE_VERSION_RE = re.compile(r"^version_(\d+(?:\.\d+)*)")
_BULLET_RE = re.compile(r"^-\s+")
_HEADING_RE = re.compile(r"^#+ *")


def version_key(version: str) -> Tuple[int, ...]:
    """Numeric ordering key; missing trailing segments compare as zero."""

    parts = [int(part) for part in version.split(".") if part.isdigit()]
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts)


def parse_version(filename: Union[str, Path]) -> str:
    """Return the dotted version of ``version_X.Y.Z.<ext>``."""

    name = Path(filename).name
    match = _NOTE_VERSION_RE.match(name)
    if not match:
        raise VersionParseError(f"no version in note file name: {name}")
    return match.group(1)


@dataclass(frozen=True, order=True)
class VersionNote:
    sort_key: Tuple[int, ...] = field(init=False, repr=False)
    path: Path = field(compare=False)
    version: str = field(compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sort_key", version_key(self.version))

    @classmethod
    def from_path(cls, path: Path) -> "VersionNote":
        return cls(path=path, version=parse_version(path))

    def read_text(self) -> str:
        return self.path.read_text(encoding="utf-8", errors="replace")


def highest_version_note(directory: Optional[Path]) -> Optional[VersionNote]:
    if directory is None or not directory.is_dir():
        return None
    notes: List[VersionNote] = []
    for candidate in directory.iterdir():
        if not candidate.name.startswith(NOTE_PREFIX) or not candidate.is_file():
            continue
        try:
            notes.append(VersionNote.from_path(candidate))
        except VersionParseError as exc:
            LOG.warning("Ignoring %s: %s", candidate, exc)
    if not notes:
        return None
    return max(notes, key=lambda note: (note.sort_key, note.path.name))


def extract_bullets(note: Union[VersionNote, Path, str]) -> List[str]:
    """Column-zero ``- `` lines of a note, in order, capped at ``MAX_BULLETS``.

    Accepts a :class:`VersionNote`, a path, or the note text itself.
    """

    if isinstance(note, VersionNote):
        text = note.read_text()
    elif isinstance(note, Path):
        text = note.read_text(encoding="utf-8", errors="replace")
    else:
        text = note

    bullets: List[str] = []
    for line in text.splitlines():
        if not _BULLET_RE.match(line):
            continue
        item = _HEADING_RE.sub("", _BULLET_RE.sub("", line, count=1), count=1)
        item = item.rstrip()
        if not item:
            continue
        bullets.append(item)
        if len(bullets) >= MAX_BULLETS:
            break
    return bullets


def resolve_versions_dir(repository: Path) -> Path:
    """``versions/`` inside the repository, else ``bin/versions/`` if present."""

    primary = repository / "versions"
    fallback = repository / "bin" / "versions"
    if not primary.is_dir() and fallback.is_dir():
        return fallback
    return primary


__all__ = [
    "MAX_BULLETS",
    "VersionNote",
    "extract_bullets",
    "highest_version_note",
    "parse_version",
    "resolve_versions_dir",
    "version_key",
]
