from __future__ import annotations

import os
import subprocess
from pathlib import Path

import pytest

from vendorpack import keyring
from vendorpack.errors import TrustStoreError
from vendorpack.keyring import TrustStore


@pytest.fixture()
def keys_file(tmp_path: Path) -> Path:
    path = tmp_path / "builder" / "KEYS"
    path.parent.mkdir()
    path.write_text("-----BEGIN PGP PUBLIC KEY BLOCK-----\n", encoding="utf-8")
    return path


def _fake_gpg(returncode: int, calls: list):
    def run(command, env=None, **kwargs):
        calls.append((command, env))
        return subprocess.CompletedProcess(command, returncode, "", "gpg: imported")

    return run


def test_missing_keys_file_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(TrustStoreError, match="not found"):
        with TrustStore(tmp_path / "KEYS"):
            pass


def test_imports_into_private_home_and_cleans_up(monkeypatch, keys_file: Path) -> None:
    calls: list = []
    monkeypatch.setattr(keyring.subprocess, "run", _fake_gpg(0, calls))

    with TrustStore(keys_file) as store:
        home = store.home
        assert home is not None and home.is_dir()
        assert (home.stat().st_mode & 0o777) == 0o700
        assert store.env()["GNUPGHOME"] == str(home)
        assert "GNUPGHOME" not in os.environ or os.environ["GNUPGHOME"] != str(home)

    command, env = calls[0]
    assert command == ["gpg", "--batch", "--import", str(keys_file)]
    assert env["GNUPGHOME"] == str(home)
    assert not home.exists()
    assert store.home is None


def test_home_removed_when_import_fails(monkeypatch, keys_file: Path, tmp_path: Path) -> None:
    created = []
    real_mkdtemp = keyring.tempfile.mkdtemp

    def mkdtemp(**kwargs):
        path = real_mkdtemp(dir=str(tmp_path), **kwargs)
        created.append(Path(path))
        return path

    monkeypatch.setattr(keyring.tempfile, "mkdtemp", mkdtemp)
    monkeypatch.setattr(keyring.subprocess, "run", _fake_gpg(2, []))

    with pytest.raises(TrustStoreError, match="exit 2"):
        TrustStore(keys_file).open()

    assert created and not created[0].exists()


def test_home_removed_when_body_raises(monkeypatch, keys_file: Path) -> None:
    monkeypatch.setattr(keyring.subprocess, "run", _fake_gpg(0, []))

    with pytest.raises(RuntimeError):
        with TrustStore(keys_file) as store:
            home = store.home
            raise RuntimeError("boom")

    assert not home.exists()


def test_env_requires_open_store(keys_file: Path) -> None:
    with pytest.raises(TrustStoreError):
        TrustStore(keys_file).env()


def test_missing_gpg_binary(monkeypatch, keys_file: Path) -> None:
    def run(command, **kwargs):
        raise FileNotFoundError(command[0])

    monkeypatch.setattr(keyring.subprocess, "run", run)

    with pytest.raises(TrustStoreError, match="not installed"):
        TrustStore(keys_file, gpg="gpg-missing").open()
