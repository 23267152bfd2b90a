"""On-disk corpus layout.

The presence of these paths is the only persisted pipeline state: a workspace
exists once fetched, carries ``Cargo.toml.orig`` once rewritten, and holds
``target/`` outputs once compiled.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

from .models import PackageId

DEFAULT_CRATES_ROOT = "https://crates-io.s3-us-west-1.amazonaws.com/crates"
ARCHIVE_SUFFIX = ".crate"
MANIFEST_MARKER = "Cargo.toml.orig"
BITCODE_PATTERN = "target/debug/deps/*.bc"


class ArtifactError(RuntimeError):
    """Raised when a compiled artifact cannot be selected unambiguously."""


class MissingArtifact(ArtifactError):
    pass


class AmbiguousArtifact(ArtifactError):
    pass


@dataclass(frozen=True)
class CorpusLayout:
    root: Path
    crates_root: str = DEFAULT_CRATES_ROOT

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", Path(self.root))
        object.__setattr__(self, "crates_root", self.crates_root.rstrip("/"))

    @property
    def registry_dir(self) -> Path:
        return self.root / "crates" / "reg"

    def archive_name(self, package: PackageId) -> str:
        return f"{package}{ARCHIVE_SUFFIX}"

    def source_url(self, package: PackageId) -> str:
        return f"{self.crates_root}/{package.name}/{self.archive_name(package)}"

    def staging_path(self, package: PackageId) -> Path:
        """Parent shared by every version of ``package.name``."""

        return self.registry_dir / package.name

    def workspace_path(self, package: PackageId) -> Path:
        return self.staging_path(package) / package.version

    def has_workspace(self, package: PackageId) -> bool:
        return self.workspace_path(package).is_dir()

    def manifest_marker(self, package: PackageId) -> Path:
        return self.workspace_path(package) / MANIFEST_MARKER

    def is_rewritten(self, package: PackageId) -> bool:
        return self.manifest_marker(package).exists()

    def package_archive(self, package: PackageId) -> Path:
        return self.workspace_path(package) / "target" / "package" / self.archive_name(package)

    def bitcode_candidates(self, package: PackageId) -> List[Path]:
        return sorted(self.workspace_path(package).glob(BITCODE_PATTERN))

    def has_bitcode(self, package: PackageId) -> bool:
        return len(self.bitcode_candidates(package)) == 1

    def bitcode_path(self, package: PackageId) -> Path:
        candidates = self.bitcode_candidates(package)
        if not candidates:
            raise MissingArtifact(f"No bitcode found for {package}")
        if len(candidates) > 1:
            names = ", ".join(path.name for path in candidates)
            raise AmbiguousArtifact(f"Multiple bitcode files for {package}: {names}")
        return candidates[0]
