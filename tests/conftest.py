import os
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"

if SRC_DIR.exists():
    src_path = str(SRC_DIR)
    if src_path not in sys.path:
        sys.path.insert(0, src_path)

root_path = str(ROOT_DIR)
if root_path not in sys.path:
    sys.path.append(root_path)

from hypothesis import settings  # noqa: E402

from vendorpack.changelog import Maintainer  # noqa: E402

settings.register_profile(
    "ci",
    max_examples=200,
    deadline=None,
    print_blob=True,
)
settings.register_profile(
    "dev",
    max_examples=25,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture()
def maintainer() -> Maintainer:
    return Maintainer(name="Jane Maintainer", email="jane@example.org")


class FakeRepository:
    """In-memory stand-in for :class:`vendorpack.git.GitRepository`."""

    def __init__(
        self,
        tags=(),
        *,
        signed_tags=(),
        signed_commits=(),
        head="c0ffee",
        tag_commits=None,
        fail_on=(),
    ):
        self.tags = list(tags)
        self.signed_tags = set(signed_tags)
        self.signed_commits = set(signed_commits)
        self.tag_commits = dict(tag_commits or {})
        self.branch_head = head
        self.head = head
        self.fail_on = set(fail_on)
        self.calls = []

    def _record(self, name, *args):
        from vendorpack.errors import GitCommandError

        self.calls.append((name, *args))
        if name in self.fail_on:
            raise GitCommandError([name, *args], 1, f"{name} failed")

    def checkout(self, ref):
        self._record("checkout", ref)
        if ref in self.tags:
            self.head = self.tag_commits.get(ref, f"{ref}-commit")
        else:
            self.head = self.branch_head

    def pull_rebase(self, remote, branch):
        self._record("pull_rebase", remote, branch)

    def fetch_tags(self, remote):
        self._record("fetch_tags", remote)

    def list_tags(self):
        self._record("list_tags")
        return list(self.tags)

    def head_commit(self):
        self._record("head_commit")
        return self.head

    def verify_tag(self, tag):
        self.calls.append(("verify_tag", tag))
        return tag in self.signed_tags

    def verify_commit(self, ref="HEAD"):
        self.calls.append(("verify_commit", ref))
        return self.head in self.signed_commits

    def update_submodules(self):
        self._record("update_submodules")


@pytest.fixture()
def fake_repository():
    return FakeRepository
