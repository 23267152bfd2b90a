from pathlib import Path

import pytest

from crate_corpus.layout import AmbiguousArtifact, CorpusLayout, MissingArtifact
from crate_corpus.models import PackageId


def test_paths_and_url_are_deterministic(tmp_path: Path) -> None:
    layout = CorpusLayout(tmp_path, "https://crates.example.com/crates/")
    package = PackageId("serde", "1.0.80")

    assert layout.source_url(package) == "https://crates.example.com/crates/serde/serde-1.0.80.crate"
    assert layout.source_url(package) == layout.source_url(PackageId("serde", "1.0.80"))
    assert layout.staging_path(package) == tmp_path / "crates" / "reg" / "serde"
    assert layout.workspace_path(package) == tmp_path / "crates" / "reg" / "serde" / "1.0.80"
    assert str(layout.workspace_path(package)) == str(layout.workspace_path(package))
    assert layout.manifest_marker(package).name == "Cargo.toml.orig"
    assert layout.package_archive(package) == (
        layout.workspace_path(package) / "target" / "package" / "serde-1.0.80.crate"
    )


def test_workspace_presence_drives_state(tmp_path: Path) -> None:
    layout = CorpusLayout(tmp_path)
    package = PackageId("log", "0.4.6")
    assert not layout.has_workspace(package)
    layout.workspace_path(package).mkdir(parents=True)
    assert layout.has_workspace(package)
    assert not layout.is_rewritten(package)
    layout.manifest_marker(package).write_text("[package]\n")
    assert layout.is_rewritten(package)


def test_bitcode_selection_requires_exactly_one_match(tmp_path: Path) -> None:
    layout = CorpusLayout(tmp_path)
    package = PackageId("itoa", "0.4.3")
    deps = layout.workspace_path(package) / "target" / "debug" / "deps"
    deps.mkdir(parents=True)

    assert not layout.has_bitcode(package)
    with pytest.raises(MissingArtifact):
        layout.bitcode_path(package)

    (deps / "itoa-abc123.bc").write_bytes(b"BC")
    assert layout.has_bitcode(package)
    assert layout.bitcode_path(package) == deps / "itoa-abc123.bc"

    (deps / "itoa-def456.bc").write_bytes(b"BC")
    assert not layout.has_bitcode(package)
    with pytest.raises(AmbiguousArtifact):
        layout.bitcode_path(package)
