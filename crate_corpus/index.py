"""Reader for a local checkout of the crates.io registry index."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List

from .utils import CommandError, ensure_directory, run_command

logger = logging.getLogger(__name__)

_SKIPPED_FILES = {"config.json"}


class IndexUnavailable(RuntimeError):
    """Raised when the registry index cannot be fetched, refreshed, or parsed."""


@dataclass
class IndexVersion:
    version: str
    yanked: bool = False


@dataclass
class IndexCrate:
    name: str
    versions: List[IndexVersion] = field(default_factory=list)

    def latest_version(self) -> IndexVersion:
        """Most recently published version, which is the last index entry."""

        if not self.versions:
            raise IndexUnavailable(f"Crate {self.name} has no published versions")
        return self.versions[-1]


def _parse_crate_file(path: Path) -> IndexCrate | None:
    crate: IndexCrate | None = None
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
            name = entry["name"]
            version = entry["vers"]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise IndexUnavailable(f"Malformed index entry at {path}:{lineno}") from exc
        if crate is None:
            crate = IndexCrate(name=name)
        crate.versions.append(IndexVersion(version=version, yanked=bool(entry.get("yanked", False))))
    return crate


@dataclass
class CratesIndex:
    path: Path
    url: str

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    @property
    def is_checked_out(self) -> bool:
        return (self.path / ".git").exists()

    def _git(self, command: List[str], *, cwd: Path | None = None) -> None:
        try:
            run_command(command, cwd=cwd)
        except (CommandError, OSError) as exc:
            raise IndexUnavailable(f"Could not synchronise index at {self.path}: {exc}") from exc

    def retrieve(self) -> bool:
        """Clone the index if no checkout exists. Returns True when a clone happened."""

        if self.is_checked_out:
            return False
        ensure_directory(self.path.parent)
        logger.info("Cloning registry index %s into %s", self.url, self.path)
        self._git(["git", "clone", self.url, str(self.path)])
        return True

    def update(self) -> None:
        """Bring the checkout in line with the remote index."""

        if self.retrieve():
            return
        logger.info("Updating registry index at %s", self.path)
        self._git(["git", "pull", "--ff-only"], cwd=self.path)

    def crates(self) -> Iterator[IndexCrate]:
        if not self.path.is_dir():
            raise IndexUnavailable(f"Index directory {self.path} does not exist")
        for path in sorted(self.path.rglob("*")):
            relative = path.relative_to(self.path)
            if not path.is_file() or relative.parts[0].startswith("."):
                continue
            if path.name in _SKIPPED_FILES:
                continue
            try:
                crate = _parse_crate_file(path)
            except (OSError, UnicodeDecodeError) as exc:
                raise IndexUnavailable(f"Cannot read index file {path}: {exc}") from exc
            if crate is not None:
                yield crate
