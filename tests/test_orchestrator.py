from __future__ import annotations

import json
from pathlib import Path
from typing import List

import pytest

from vendorpack.build import ConversionReport
from vendorpack.changelog import ChangelogComposer, ComposeStatus, current_version
from vendorpack.config import Module, RunConfig
from vendorpack.errors import BuildError, ProvenanceRejected, SyncError, TrustStoreError
from vendorpack.orchestrator import CONVERSION_FAILED_EXIT, ModuleSyncOrchestrator
from vendorpack.provenance import ProvenanceVerifier, VerificationMethod
from vendorpack.telemetry import EventEmitter


class FakeTrustStore:
    opened: List["FakeTrustStore"] = []

    def __init__(self, keys_file: Path) -> None:
        self.keys_file = keys_file
        self.closed = False
        FakeTrustStore.opened.append(self)

    def env(self):
        return {"GNUPGHOME": "/tmp/fake-gnupg"}

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True


class FailingTrustStore(FakeTrustStore):
    def __enter__(self):
        raise TrustStoreError(f"Trusted keys file not found at {self.keys_file}")


class FakeBuilder:
    def __init__(self, fail_for=()):
        self.built: List[str] = []
        self.fail_for = set(fail_for)

    def build(self, name, package_dir):
        if name in self.fail_for:
            raise BuildError(f"dpkg-buildpackage failed for {name}")
        self.built.append(name)


class FakeConverter:
    def __init__(self, failures=None):
        self.failures = dict(failures or {})
        self.converted: List[str] = []
        self.output_dirs: List[Path] = []

    def convert(self, name, package_dir, output_dir):
        self.converted.append(name)
        self.output_dirs.append(output_dir)
        report = ConversionReport(module=name)
        report.converted.append(f"{name}_1.0.0-1_all.deb")
        report.failed.extend(self.failures.get(name, []))
        return report


@pytest.fixture(autouse=True)
def _reset_trust_stores():
    FakeTrustStore.opened.clear()
    yield


@pytest.fixture()
def project(tmp_path: Path, maintainer) -> RunConfig:
    modules = []
    for name in ("ggdirect", "ggui"):
        repository = tmp_path / "modules" / name
        versions = repository / "versions"
        versions.mkdir(parents=True)
        (versions / "version_1.2.0.md").write_text(f"- {name} release\n", encoding="utf-8")
        package_dir = tmp_path / name
        (package_dir / "debian").mkdir(parents=True)
        modules.append(
            Module(
                name=name,
                repository=repository,
                package_dir=package_dir,
                changelog=package_dir / "debian" / "changelog",
                versions_dir=versions,
            )
        )
    (tmp_path / "ggui_1.2.0-1_all.deb").write_bytes(b"deb")
    return RunConfig(
        root=tmp_path,
        modules=tuple(modules),
        maintainer=maintainer,
        keys_file=tmp_path / "builder" / "KEYS",
    )


def _orchestrator(config, repos, **kwargs):
    def repository(path, env=None):
        repo = repos[Path(path)]
        repo.env = env
        return repo

    defaults = dict(
        verifier=ProvenanceVerifier(),
        composer=ChangelogComposer(config.maintainer),
        builder=FakeBuilder(),
        converter=FakeConverter(),
        trust_store=FakeTrustStore,
        repository=repository,
    )
    defaults.update(kwargs)
    return ModuleSyncOrchestrator(config, **defaults)


def _signed_repos(config, fake_repository, **overrides):
    repos = {config.root: fake_repository()}
    for module in config.modules:
        repos[module.repository] = overrides.get(
            module.name, fake_repository(["v1.2.0"], signed_tags={"v1.2.0"})
        )
    return repos


def test_run_processes_modules_in_order(project, fake_repository) -> None:
    repos = _signed_repos(project, fake_repository)
    builder = FakeBuilder()
    converter = FakeConverter()

    report = _orchestrator(project, repos, builder=builder, converter=converter).run()

    assert builder.built == ["ggdirect", "ggui"]
    assert converter.converted == ["ggdirect", "ggui"]
    assert [outcome.module for outcome in report.outcomes] == ["ggdirect", "ggui"]
    assert all(o.reference.method is VerificationMethod.TAG_SIGNATURE for o in report.outcomes)
    assert all(o.changelog.status is ComposeStatus.UPDATED for o in report.outcomes)
    assert current_version(project.modules[1].changelog) == "1.2.0"
    assert report.artifacts == ["ggui_1.2.0-1_all.deb"]
    assert report.exit_code(strict=True) == 0
    assert ("update_submodules",) in repos[project.root].calls


def test_trust_store_env_reaches_git_and_is_closed(project, fake_repository) -> None:
    repos = _signed_repos(project, fake_repository)

    _orchestrator(project, repos).run()

    store = FakeTrustStore.opened[0]
    assert store.keys_file == project.keys_file
    assert store.closed is True
    assert all(repo.env == {"GNUPGHOME": "/tmp/fake-gnupg"} for repo in repos.values())


def test_rejection_aborts_before_any_build(project, fake_repository) -> None:
    repos = _signed_repos(project, fake_repository, ggdirect=fake_repository(["v1.2.0"]))
    builder = FakeBuilder()

    with pytest.raises(ProvenanceRejected):
        _orchestrator(project, repos, builder=builder).run()

    assert builder.built == []
    assert repos[project.modules[1].repository].calls == []
    assert not project.modules[0].changelog.exists()
    assert FakeTrustStore.opened[0].closed is True


def test_rejection_of_later_module_stops_run(project, fake_repository) -> None:
    repos = _signed_repos(project, fake_repository, ggui=fake_repository(["v1.2.0"]))
    builder = FakeBuilder()

    with pytest.raises(ProvenanceRejected):
        _orchestrator(project, repos, builder=builder).run()

    assert builder.built == ["ggdirect"]


def test_commit_fallback_does_not_abort(project, fake_repository) -> None:
    fallback = fake_repository(
        ["v1.2.0"], tag_commits={"v1.2.0": "feed"}, signed_commits={"feed"}
    )
    repos = _signed_repos(project, fake_repository, ggui=fallback)

    report = _orchestrator(project, repos).run()

    assert report.outcomes[1].reference.method is VerificationMethod.COMMIT_SIGNATURE


def test_conversion_failures_are_non_fatal(project, fake_repository) -> None:
    repos = _signed_repos(project, fake_repository)
    converter = FakeConverter(failures={"ggdirect": ["ggdirect_1.2.0-1_all.deb"]})

    report = _orchestrator(project, repos, converter=converter).run()

    assert converter.converted == ["ggdirect", "ggui"]
    assert report.conversion_failures == ["ggdirect_1.2.0-1_all.deb"]
    assert report.exit_code(strict=False) == 0
    assert report.exit_code(strict=True) == CONVERSION_FAILED_EXIT


def test_conversion_can_be_disabled(project, fake_repository) -> None:
    from dataclasses import replace

    repos = _signed_repos(project, fake_repository)
    converter = FakeConverter()

    report = _orchestrator(replace(project, convert=False), repos, converter=converter).run()

    assert converter.converted == []
    assert all(outcome.conversion is None for outcome in report.outcomes)


def test_missing_version_notes_still_builds(project, fake_repository, capsys) -> None:
    for note in project.modules[0].versions_dir.iterdir():
        note.unlink()
    repos = _signed_repos(project, fake_repository)
    builder = FakeBuilder()

    report = _orchestrator(project, repos, builder=builder).run()

    assert report.outcomes[0].changelog.status is ComposeStatus.NO_SOURCE
    assert builder.built == ["ggdirect", "ggui"]
    assert ">>> WARNING: No version_* files found" in capsys.readouterr().out


def test_build_failure_aborts(project, fake_repository) -> None:
    repos = _signed_repos(project, fake_repository)
    builder = FakeBuilder(fail_for={"ggdirect"})

    with pytest.raises(BuildError):
        _orchestrator(project, repos, builder=builder).run()

    assert builder.built == []


def test_trust_store_failure_stops_before_sync(project, fake_repository) -> None:
    repos = _signed_repos(project, fake_repository)

    with pytest.raises(TrustStoreError):
        _orchestrator(project, repos, trust_store=FailingTrustStore).run()

    assert all(repo.calls == [] for repo in repos.values())


def test_submodule_sync_failure_is_fatal(project, fake_repository) -> None:
    repos = _signed_repos(project, fake_repository)
    repos[project.root] = fake_repository(fail_on={"update_submodules"})

    with pytest.raises(SyncError):
        _orchestrator(project, repos).run()


def test_events_are_recorded(project, fake_repository, tmp_path: Path) -> None:
    repos = _signed_repos(project, fake_repository)
    log_path = tmp_path / "out" / "events.jsonl"

    _orchestrator(project, repos, events=EventEmitter(log_path)).run()

    events = [json.loads(line)["event"] for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert events[0] == "provenance_verified"
    assert events.count("build") == 2
    assert events[-1] == "run_completed"


def test_conversion_runs_where_the_deb_was_built(project, fake_repository, tmp_path: Path) -> None:
    from dataclasses import replace

    elsewhere = tmp_path / "elsewhere" / "ggui"
    (elsewhere / "debian").mkdir(parents=True)
    ggui = replace(
        project.modules[1], package_dir=elsewhere, changelog=elsewhere / "debian" / "changelog"
    )
    config = replace(project, modules=(project.modules[0], ggui))
    repos = _signed_repos(config, fake_repository)
    converter = FakeConverter()

    _orchestrator(config, repos, converter=converter).run()

    assert converter.output_dirs == [project.root, tmp_path / "elsewhere"]
