"""Release packaging for vendored module repositories.

Each module is synced from its git submodule, its release tag (or commit) is
checked against the trusted keys, its Debian changelog is refreshed from the
highest version note and the package is built and converted to RPM.
"""

from .changelog import ChangelogComposer, ComposeResult, ComposeStatus, Maintainer
from .config import Module, RunConfig, load_config
from .errors import ProvenanceRejected, VendorpackError
from .orchestrator import ModuleSyncOrchestrator, RunReport
from .provenance import ProvenanceVerifier, VerificationMethod, VersionReference
from .versions import extract_bullets, highest_version_note, parse_version

__version__ = "0.1.0"

__all__ = [
    "ChangelogComposer",
    "ComposeResult",
    "ComposeStatus",
    "Maintainer",
    "Module",
    "ModuleSyncOrchestrator",
    "ProvenanceRejected",
    "ProvenanceVerifier",
    "RunConfig",
    "RunReport",
    "VendorpackError",
    "VerificationMethod",
    "VersionReference",
    "extract_bullets",
    "highest_version_note",
    "load_config",
    "parse_version",
]
