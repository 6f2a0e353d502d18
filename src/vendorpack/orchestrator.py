"""Sequential per-module pipeline: verify, changelog, build, convert."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional

from . import telemetry
from .build import ConversionReport, DebianPackageBuilder, RpmConverter, list_artifacts
from .changelog import ChangelogComposer, ComposeResult, ComposeStatus
from .config import Module, RunConfig
from .errors import GitCommandError, ProvenanceRejected, SyncError, VendorpackError
from .git import GitRepository
from .keyring import TrustStore
from .provenance import ProvenanceVerifier, VersionReference

LOG = logging.getLogger("vendorpack.orchestrator")

TITLE = "Debian Vendor Build"
CONVERSION_FAILED_EXIT = 7


@dataclass(frozen=True)
class ModuleContext:
    """Everything one module iteration touches, passed explicitly."""

    module: Module
    env: Mapping[str, str] = field(repr=False)

    @property
    def name(self) -> str:
        return self.module.name

    @property
    def output_dir(self) -> Path:
        return self.module.package_dir.parent


@dataclass
class ModuleOutcome:
    module: str
    reference: VersionReference
    changelog: ComposeResult
    conversion: Optional[ConversionReport] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "module": self.module,
            "ref": self.reference.ref,
            "commit": self.reference.commit,
            "verification": self.reference.method.value,
            "changelog": self.changelog.status.value,
            "changelog_version": self.changelog.version,
            "conversion": self.conversion.to_dict() if self.conversion else None,
        }


@dataclass
class RunReport:
    outcomes: List[ModuleOutcome] = field(default_factory=list)
    artifacts: List[str] = field(default_factory=list)

    @property
    def conversion_failures(self) -> List[str]:
        failures: List[str] = []
        for outcome in self.outcomes:
            if outcome.conversion is not None:
                failures.extend(outcome.conversion.failed)
        return failures

    def exit_code(self, strict: bool) -> int:
        if strict and self.conversion_failures:
            return CONVERSION_FAILED_EXIT
        return 0


class ModuleSyncOrchestrator:
    def __init__(
        self,
        config: RunConfig,
        *,
        verifier: Optional[ProvenanceVerifier] = None,
        composer: Optional[ChangelogComposer] = None,
        builder: Optional[DebianPackageBuilder] = None,
        converter: Optional[RpmConverter] = None,
        trust_store: Callable[[Path], TrustStore] = TrustStore,
        repository: Callable[..., GitRepository] = GitRepository,
        events=None,
    ) -> None:
        self.config = config
        self.verifier = verifier or ProvenanceVerifier(
            branch=config.branch, remote=config.remote
        )
        self.composer = composer or ChangelogComposer(
            config.maintainer,
            distribution=config.distribution,
            urgency=config.urgency,
            revision=config.revision,
        )
        self.builder = builder or DebianPackageBuilder()
        self.converter = converter or RpmConverter()
        self.trust_store = trust_store
        self.repository = repository
        self.events = events if events is not None else telemetry.event_log(config.event_log)

    def sync_submodules(self, env: Mapping[str, str]) -> None:
        telemetry.status("Syncing submodules...")
        try:
            self.repository(self.config.root, env=env).update_submodules()
        except GitCommandError as exc:
            raise SyncError(f"Submodule sync failed: {exc}") from exc

    def compose_changelog(self, context: ModuleContext) -> ComposeResult:
        module = context.module
        telemetry.status(f"Updating changelog for module: {module.name}")
        result = self.composer.compose(module.name, module.versions_dir, module.changelog)
        if result.status is ComposeStatus.NO_SOURCE:
            telemetry.warning(f"No version_* files found in {module.versions_dir}")
        elif result.status is ComposeStatus.SKIPPED:
            telemetry.status(f"Version {result.version} already in changelog, skipping.")
        else:
            telemetry.status(f"Prepended {result.version} to {module.changelog}")
        self.events.emit(
            "changelog",
            {"module": module.name, "status": result.status.value, "version": result.version},
        )
        return result

    def process(self, context: ModuleContext) -> ModuleOutcome:
        module = context.module
        repo = self.repository(module.repository, env=context.env)
        try:
            reference = self.verifier.verify(module.name, repo)
        except ProvenanceRejected as exc:
            self.events.emit(
                "provenance_rejected",
                {
                    "module": module.name,
                    "ref": exc.reference.ref,
                    "attempts": [item.method.value for item in exc.attempts],
                },
            )
            raise
        self.events.emit(
            "provenance_verified",
            {
                "module": module.name,
                "ref": reference.ref,
                "commit": reference.commit,
                "method": reference.method.value,
            },
        )

        changelog = self.compose_changelog(context)
        self.builder.build(module.name, module.package_dir)
        self.events.emit("build", {"module": module.name, "ok": True})

        outcome = ModuleOutcome(module=module.name, reference=reference, changelog=changelog)
        if self.config.convert:
            outcome.conversion = self.converter.convert(
                module.name, module.package_dir, context.output_dir
            )
            self.events.emit("conversion", outcome.conversion.to_dict())
        return outcome

    def run(self) -> RunReport:
        telemetry.banner(f"{TITLE} Init")
        report = RunReport()
        telemetry.status(f"Importing trusted keys from {self.config.keys_file}...")
        try:
            with self.trust_store(self.config.keys_file) as store:
                env = store.env()
                self.sync_submodules(env)
                for module in self.config.modules:
                    context = ModuleContext(module=module, env=env)
                    report.outcomes.append(self.process(context))
        except VendorpackError as exc:
            self.events.emit("run_aborted", {"code": exc.code, "message": exc.message})
            raise

        report.artifacts = list_artifacts(self.config.root)
        telemetry.banner("All modules built successfully!")
        for artifact in report.artifacts:
            print(artifact, flush=True)
        failures = report.conversion_failures
        if failures:
            telemetry.warning(f"RPM conversion failed for: {', '.join(failures)}")
        self.events.emit(
            "run_completed",
            {
                "modules": [outcome.to_dict() for outcome in report.outcomes],
                "artifacts": report.artifacts,
            },
        )
        return report


__all__ = [
    "CONVERSION_FAILED_EXIT",
    "ModuleContext",
    "ModuleOutcome",
    "ModuleSyncOrchestrator",
    "RunReport",
]
