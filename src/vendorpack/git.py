"""Thin git wrapper bound to one working tree and an explicit environment."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from .errors import GitCommandError

LOG = logging.getLogger("vendorpack.git")


@dataclass(frozen=True)
class GitRepository:
    path: Path
    env: Optional[Mapping[str, str]] = field(default=None, repr=False)
    executable: str = "git"

    def run(self, args: Sequence[str]) -> str:
        command = [self.executable, *args]
        LOG.debug("RUN (%s): %s", self.path, " ".join(command))
        try:
            result = subprocess.run(
                command,
                cwd=str(self.path),
                env=dict(self.env) if self.env is not None else None,
                check=False,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise GitCommandError(args, None, str(exc)) from exc
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result.stdout.strip()

    def succeeds(self, args: Sequence[str]) -> bool:
        try:
            self.run(args)
        except GitCommandError as exc:
            LOG.debug("%s", exc)
            return False
        return True

    def checkout(self, ref: str) -> None:
        self.run(["-c", "advice.detachedHead=false", "checkout", "--quiet", ref])

    def pull_rebase(self, remote: str, branch: str) -> None:
        self.run(["pull", "--rebase", remote, branch])

    def fetch_tags(self, remote: str) -> None:
        self.run(["fetch", remote, "--tags", "--prune", "--prune-tags"])

    def list_tags(self) -> List[str]:
        output = self.run(["tag", "--list"])
        return [line.strip() for line in output.splitlines() if line.strip()]

    def head_commit(self) -> str:
        return self.run(["rev-parse", "HEAD"])

    def verify_tag(self, tag: str) -> bool:
        return self.succeeds(["verify-tag", tag])

    def verify_commit(self, ref: str = "HEAD") -> bool:
        return self.succeeds(["verify-commit", ref])

    def update_submodules(self) -> None:
        self.run(["submodule", "update", "--init", "--recursive"])


__all__ = ["GitRepository"]
