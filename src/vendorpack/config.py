"""Run configuration: ``vendorpack.yaml`` validated against a YAML schema."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import jsonschema
import yaml

from .changelog import DEFAULT_DISTRIBUTION, DEFAULT_URGENCY, Maintainer
from .errors import ConfigError
from .telemetry import EVENT_LOG_ENV
from .versions import resolve_versions_dir

CONFIG_NAME = "vendorpack.yaml"
SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "config.schema.yaml"
DEFAULT_KEYS_FILE = Path("builder") / "KEYS"
MODULES_DIR = "modules"


@dataclass(frozen=True)
class Module:
    name: str
    repository: Path
    package_dir: Path
    changelog: Path
    versions_dir: Path

    @classmethod
    def from_entry(cls, root: Path, entry: Any) -> "Module":
        if isinstance(entry, str):
            entry = {"name": entry}
        name = entry["name"]
        repository = _resolve(root, entry.get("repository"), root / MODULES_DIR / name)
        package_dir = _resolve(root, entry.get("package_dir"), root / name)
        changelog = _resolve(
            root, entry.get("changelog"), package_dir / "debian" / "changelog"
        )
        versions_dir = _resolve(
            root, entry.get("versions"), resolve_versions_dir(repository)
        )
        return cls(
            name=name,
            repository=repository,
            package_dir=package_dir,
            changelog=changelog,
            versions_dir=versions_dir,
        )


@dataclass(frozen=True)
class RunConfig:
    root: Path
    modules: Tuple[Module, ...]
    maintainer: Maintainer
    keys_file: Path
    branch: str = "main"
    remote: str = "origin"
    strict_conversion: bool = False
    convert: bool = True
    distribution: str = DEFAULT_DISTRIBUTION
    urgency: str = DEFAULT_URGENCY
    revision: int = 1
    event_log: Optional[Path] = None


def _resolve(root: Path, value: Optional[str], default: Path) -> Path:
    if not value:
        return default
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path


def load_yaml(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc


def validate_schema(doc: Mapping[str, Any], schema_path: Path = SCHEMA_PATH) -> None:
    schema = load_yaml(schema_path)
    try:
        jsonschema.validate(doc, schema)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(part) for part in exc.absolute_path) or "<root>"
        raise ConfigError(f"Invalid configuration at {location}: {exc.message}") from exc


def read_config_file(path: Path, *, required: bool) -> Dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigError(f"Configuration file not found: {path}")
        return {}
    doc = load_yaml(path)
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise ConfigError(f"Configuration in {path} must be a mapping")
    return doc


def _maintainer(doc: Mapping[str, Any], environ: Mapping[str, str]) -> Maintainer:
    entry = doc.get("maintainer") or {}
    name = entry.get("name") or environ.get("DEBFULLNAME")
    email = entry.get("email") or environ.get("DEBEMAIL")
    if not name or not email:
        raise ConfigError(
            "Maintainer identity missing: set maintainer.name/email "
            "or DEBFULLNAME/DEBEMAIL"
        )
    return Maintainer(name=name, email=email)


def _select_modules(
    root: Path, entries: Sequence[Any], names: Optional[Iterable[str]]
) -> Tuple[Module, ...]:
    by_name: Dict[str, Any] = {}
    for entry in entries:
        key = entry if isinstance(entry, str) else entry["name"]
        if key in by_name:
            raise ConfigError(f"Module {key} is configured twice")
        by_name[key] = entry
    selected = list(names) if names else list(by_name)
    if not selected:
        raise ConfigError("No modules configured")
    for name in selected:
        if name not in by_name:
            raise ConfigError(f"Module {name} is not configured")
    return tuple(Module.from_entry(root, by_name[name]) for name in selected)


def load_config(
    path: Optional[Path] = None,
    *,
    root: Optional[Path] = None,
    modules: Optional[Iterable[str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RunConfig:
    """Build the run configuration from file, environment and CLI overrides."""

    environ = os.environ if environ is None else environ
    if path is not None:
        root = (root or path.resolve().parent).resolve()
        doc = read_config_file(path, required=True)
    else:
        root = (root or Path.cwd()).resolve()
        doc = read_config_file(root / CONFIG_NAME, required=False)
    validate_schema(doc)

    settings: Dict[str, Any] = dict(doc)
    for key, value in (overrides or {}).items():
        if value is not None:
            settings[key] = value

    event_log = settings.get("event_log") or environ.get(EVENT_LOG_ENV)
    return RunConfig(
        root=root,
        modules=_select_modules(root, settings.get("modules") or [], modules),
        maintainer=_maintainer(settings, environ),
        keys_file=_resolve(root, settings.get("keys_file"), root / DEFAULT_KEYS_FILE),
        branch=settings.get("branch", "main"),
        remote=settings.get("remote", "origin"),
        strict_conversion=bool(settings.get("strict_conversion", False)),
        convert=bool(settings.get("convert", True)),
        distribution=settings.get("distribution", DEFAULT_DISTRIBUTION),
        urgency=settings.get("urgency", DEFAULT_URGENCY),
        revision=int(settings.get("revision", 1)),
        event_log=_resolve(root, event_log, root) if event_log else None,
    )


__all__ = [
    "CONFIG_NAME",
    "Module",
    "RunConfig",
    "load_config",
    "load_yaml",
    "read_config_file",
    "validate_schema",
]
