from dataclasses import dataclass, field
from typing import List

import pytest

from crate_corpus.catalog import Catalog, CatalogError
from crate_corpus.index import IndexCrate, IndexUnavailable, IndexVersion
from crate_corpus.models import PackageId


@dataclass
class StubIndex:
    entries: List[IndexCrate]
    calls: List[str] = field(default_factory=list)
    fail: bool = False

    def retrieve(self) -> bool:
        self.calls.append("retrieve")
        if self.fail:
            raise IndexUnavailable("index unreachable")
        return False

    def update(self) -> None:
        self.calls.append("update")
        if self.fail:
            raise IndexUnavailable("index unreachable")

    def crates(self):
        return iter(self.entries)


def _stub_index(**kwargs) -> StubIndex:
    return StubIndex(
        entries=[
            IndexCrate("rand", [IndexVersion("0.5.0"), IndexVersion("0.5.1", yanked=True), IndexVersion("0.6.0")]),
            IndexCrate("libc", [IndexVersion("0.2.43")]),
        ],
        **kwargs,
    )


def test_catalog_latest_only() -> None:
    index = _stub_index()
    catalog = Catalog.load(index, all_versions=False)
    assert list(catalog) == [PackageId("rand", "0.6.0"), PackageId("libc", "0.2.43")]
    assert index.calls == ["retrieve"]


def test_catalog_all_versions_newest_first_including_yanked() -> None:
    catalog = Catalog.load(_stub_index(), all_versions=True)
    assert list(catalog) == [
        PackageId("rand", "0.6.0"),
        PackageId("rand", "0.5.1"),
        PackageId("rand", "0.5.0"),
        PackageId("libc", "0.2.43"),
    ]
    assert len(catalog) == 4
    assert PackageId("rand", "0.5.1") in catalog


def test_catalog_refresh_updates_then_lists_every_version() -> None:
    index = _stub_index()
    catalog = Catalog.refresh(index)
    assert index.calls == ["update"]
    assert len(catalog) == 4


def test_catalog_failure_is_fatal() -> None:
    with pytest.raises(IndexUnavailable):
        Catalog.load(_stub_index(fail=True), all_versions=False)
    with pytest.raises(IndexUnavailable):
        Catalog.refresh(_stub_index(fail=True))


def test_catalog_deduplicates_and_looks_up_entries() -> None:
    catalog = Catalog([PackageId("a", "1.0.0"), PackageId("b", "1.0.0"), PackageId("a", "1.0.0")])
    assert list(catalog) == [PackageId("a", "1.0.0"), PackageId("b", "1.0.0")]
    assert catalog.get("b", "1.0.0") == PackageId("b", "1.0.0")
    with pytest.raises(CatalogError):
        catalog.get("c", "1.0.0")
