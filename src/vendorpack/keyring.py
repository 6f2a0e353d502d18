"""Run-scoped GnuPG home holding only the trusted release keys."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Optional

from .errors import TrustStoreError

LOG = logging.getLogger("vendorpack.keyring")


class TrustStore:
    """Temporary ``GNUPGHOME`` isolated from the user's keyring.

    Use as a context manager: the keys are imported on entry and the
    directory is removed on every exit path.
    """

    def __init__(self, keys_file: Path, *, gpg: str = "gpg") -> None:
        self.keys_file = keys_file
        self.gpg = gpg
        self.home: Optional[Path] = None

    def env(self) -> Dict[str, str]:
        if self.home is None:
            raise TrustStoreError("trust store is not open")
        return {**os.environ, "GNUPGHOME": str(self.home)}

    def open(self) -> "TrustStore":
        if not self.keys_file.is_file():
            raise TrustStoreError(f"Trusted keys file not found at {self.keys_file}")
        self.home = Path(tempfile.mkdtemp(prefix="vendorpack-gnupg-"))
        os.chmod(self.home, 0o700)
        try:
            self._import_keys()
        except BaseException:
            self.close()
            raise
        return self

    def _import_keys(self) -> None:
        command = [self.gpg, "--batch", "--import", str(self.keys_file)]
        LOG.debug("RUN: %s", " ".join(command))
        try:
            result = subprocess.run(
                command,
                env=self.env(),
                check=False,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError as exc:
            raise TrustStoreError(f"{self.gpg} is not installed") from exc
        if result.returncode != 0:
            raise TrustStoreError(
                f"importing {self.keys_file} failed (exit {result.returncode}): "
                f"{result.stderr.strip()}"
            )
        LOG.debug("%s", result.stderr.strip())

    def close(self) -> None:
        if self.home is not None:
            shutil.rmtree(self.home, ignore_errors=True)
            self.home = None

    def __enter__(self) -> "TrustStore":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["TrustStore"]
