"""Error taxonomy for the packaging run."""

from __future__ import annotations

from typing import Optional, Sequence


class VendorpackError(RuntimeError):
    """Fatal error: the run stops and the CLI exits with ``exit_code``."""

    code = "VP-E"
    exit_code = 1

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ConfigError(VendorpackError):
    code = "VP-CONFIG"
    exit_code = 2


class TrustStoreError(VendorpackError):
    code = "VP-KEYS"
    exit_code = 3


class SyncError(VendorpackError):
    code = "VP-SYNC"
    exit_code = 4


class ProvenanceRejected(VendorpackError):
    """Raised when neither the tag nor the commit carries a trusted signature."""

    code = "VP-PROVENANCE"
    exit_code = 5

    def __init__(self, module: str, reference, attempts: Sequence = ()) -> None:
        super().__init__(
            f"GPG signature verification failed for {module}! "
            "Stopping build to prevent supply chain attack."
        )
        self.module = module
        self.reference = reference
        self.attempts = tuple(attempts)


class BuildError(VendorpackError):
    code = "VP-BUILD"
    exit_code = 6


class GitCommandError(RuntimeError):
    """A git invocation exited nonzero or could not be started."""

    def __init__(
        self, args: Sequence[str], returncode: Optional[int], stderr: str = ""
    ) -> None:
        self.command = tuple(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(
            f"git {' '.join(self.command)} failed (exit {returncode}){detail}"
        )


class VersionParseError(ValueError):
    """Raised when a version note file name carries no version."""


__all__ = [
    "VendorpackError",
    "ConfigError",
    "TrustStoreError",
    "SyncError",
    "ProvenanceRejected",
    "BuildError",
    "GitCommandError",
    "VersionParseError",
]
