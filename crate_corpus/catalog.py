from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Protocol

from .models import PackageId

logger = logging.getLogger(__name__)


class CatalogError(RuntimeError):
    """Raised when a catalog entry is looked up but not present."""


class IndexReader(Protocol):
    def retrieve(self) -> bool: ...

    def update(self) -> None: ...

    def crates(self) -> Iterable: ...


def _all_versions(index: IndexReader) -> Iterator[PackageId]:
    for crate in index.crates():
        # yanked versions are kept
        for version in reversed(crate.versions):
            yield PackageId(crate.name, version.version)


def _latest_versions(index: IndexReader) -> Iterator[PackageId]:
    for crate in index.crates():
        yield PackageId(crate.name, crate.latest_version().version)


@dataclass
class Catalog:
    """Ordered, duplicate-free list of packages driving one pipeline run."""

    entries: List[PackageId] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.entries = list(dict.fromkeys(self.entries))

    @classmethod
    def load(cls, index: IndexReader, all_versions: bool) -> "Catalog":
        index.retrieve()
        entries = _all_versions(index) if all_versions else _latest_versions(index)
        catalog = cls(list(entries))
        logger.info(
            "Loaded catalog with %d entries (%s)",
            len(catalog),
            "all versions" if all_versions else "latest only",
        )
        return catalog

    @classmethod
    def refresh(cls, index: IndexReader) -> "Catalog":
        index.update()
        catalog = cls(list(_all_versions(index)))
        logger.info("Refreshed index; catalog has %d entries", len(catalog))
        return catalog

    def get(self, name: str, version: str) -> PackageId:
        package = PackageId(name, version)
        if package not in self.entries:
            raise CatalogError(f"Unknown package: {package}")
        return package

    def __iter__(self) -> Iterator[PackageId]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, package: object) -> bool:
        return package in self.entries
