"""Select a module's release reference and check that it is signed.

The verifier walks SYNC -> TAG_DISCOVERY -> CHECKOUT -> VERIFY.  A module
ends VERIFIED with a :class:`VersionReference`, or REJECTED, in which case
:class:`ProvenanceRejected` is raised and the whole run must stop.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from . import telemetry
from .errors import GitCommandError, ProvenanceRejected, SyncError

LOG = logging.getLogger("vendorpack.provenance")

RELEASE_TAG_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)$")


class Repository(Protocol):
    def checkout(self, ref: str) -> None: ...

    def pull_rebase(self, remote: str, branch: str) -> None: ...

    def fetch_tags(self, remote: str) -> None: ...

    def list_tags(self) -> List[str]: ...

    def head_commit(self) -> str: ...

    def verify_tag(self, tag: str) -> bool: ...

    def verify_commit(self, ref: str = "HEAD") -> bool: ...


class VerificationMethod(str, enum.Enum):
    TAG_SIGNATURE = "tag-signature"
    COMMIT_SIGNATURE = "commit-signature"
    NONE = "none"


@dataclass(frozen=True)
class VersionReference:
    ref: str
    commit: Optional[str]
    verified: bool
    method: VerificationMethod
    tag: Optional[str] = None


@dataclass(frozen=True)
class VerificationAttempt:
    method: VerificationMethod
    success: bool
    detail: str = ""


def release_tag_key(tag: str) -> Optional[Tuple[int, int, int]]:
    match = RELEASE_TAG_RE.match(tag)
    if not match:
        return None
    major, minor, patch = (int(part) for part in match.groups())
    return major, minor, patch


def is_release_tag(tag: str) -> bool:
    return release_tag_key(tag) is not None


def select_release_tag(tags: Iterable[str]) -> Optional[str]:
    """Greatest ``[v]MAJOR.MINOR.PATCH`` tag by numeric precedence."""

    candidates = [(release_tag_key(tag), tag) for tag in tags]
    ranked = [(key, tag) for key, tag in candidates if key is not None]
    if not ranked:
        return None
    return max(ranked)[1]


class TagSignatureStrategy:
    method = VerificationMethod.TAG_SIGNATURE

    def attempt(self, repo: Repository, tag: Optional[str]) -> Optional[VerificationAttempt]:
        if tag is None:
            return None
        ok = repo.verify_tag(tag)
        return VerificationAttempt(self.method, ok, f"verify-tag {tag}")


class CommitSignatureStrategy:
    method = VerificationMethod.COMMIT_SIGNATURE

    def attempt(self, repo: Repository, tag: Optional[str]) -> Optional[VerificationAttempt]:
        ok = repo.verify_commit("HEAD")
        return VerificationAttempt(self.method, ok, "verify-commit HEAD")


DEFAULT_STRATEGIES = (TagSignatureStrategy(), CommitSignatureStrategy())


class ProvenanceVerifier:
    def __init__(
        self,
        *,
        branch: str = "main",
        remote: str = "origin",
        strategies: Sequence = DEFAULT_STRATEGIES,
    ) -> None:
        self.branch = branch
        self.remote = remote
        self.strategies = tuple(strategies)

    def sync(self, name: str, repo: Repository) -> None:
        telemetry.status(f"Updating submodule: {name}")
        try:
            repo.checkout(self.branch)
            repo.pull_rebase(self.remote, self.branch)
        except GitCommandError as exc:
            raise SyncError(f"Updating {name} from {self.remote}/{self.branch} failed: {exc}") from exc

    def discover_tag(self, name: str, repo: Repository) -> Optional[str]:
        telemetry.status(f"Fetching release tags for: {name}")
        try:
            repo.fetch_tags(self.remote)
            tags = repo.list_tags()
        except GitCommandError as exc:
            raise SyncError(f"Fetching tags for {name} failed: {exc}") from exc
        tag = select_release_tag(tags)
        LOG.info("%s: %d tags, release tag %s", name, len(tags), tag or "<none>")
        return tag

    def check_out(self, name: str, repo: Repository, tag: Optional[str]) -> str:
        try:
            if tag is not None:
                telemetry.status(f"Checking out release tag {tag} for: {name}")
                repo.checkout(tag)
            else:
                telemetry.status(
                    f"No release tag for {name}; staying on {self.branch}"
                )
            return repo.head_commit()
        except GitCommandError as exc:
            raise SyncError(f"Checking out {tag or self.branch} for {name} failed: {exc}") from exc

    def verify_signatures(
        self, repo: Repository, tag: Optional[str]
    ) -> List[VerificationAttempt]:
        attempts: List[VerificationAttempt] = []
        for strategy in self.strategies:
            attempt = strategy.attempt(repo, tag)
            if attempt is None:
                continue
            attempts.append(attempt)
            if attempt.success:
                break
        return attempts

    def verify(self, name: str, repo: Repository) -> VersionReference:
        self.sync(name, repo)
        tag = self.discover_tag(name, repo)
        commit = self.check_out(name, repo, tag)

        telemetry.status(f"Verifying GPG signature for: {name}")
        attempts = self.verify_signatures(repo, tag)
        ref = tag or commit
        accepted = next((item for item in attempts if item.success), None)
        if accepted is None:
            rejected = VersionReference(
                ref=ref,
                commit=commit,
                verified=False,
                method=VerificationMethod.NONE,
                tag=tag,
            )
            raise ProvenanceRejected(name, rejected, attempts)

        for item in attempts:
            if not item.success:
                telemetry.warning(f"{item.detail} failed for {name}; trying next method")
        LOG.info("%s verified at %s via %s", name, ref, accepted.method.value)
        return VersionReference(
            ref=ref,
            commit=commit,
            verified=True,
            method=accepted.method,
            tag=tag,
        )


__all__ = [
    "CommitSignatureStrategy",
    "DEFAULT_STRATEGIES",
    "ProvenanceVerifier",
    "RELEASE_TAG_RE",
    "TagSignatureStrategy",
    "VerificationAttempt",
    "VerificationMethod",
    "VersionReference",
    "is_release_tag",
    "release_tag_key",
    "select_release_tag",
]
