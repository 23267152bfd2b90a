from __future__ import annotations

import io
import subprocess
import tarfile
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import pytest

from crate_corpus.config import CorpusConfig, ToolchainConfig
from crate_corpus.models import PackageId


def build_crate_archive(member: str, files: Mapping[str, str]) -> bytes:
    """Return a gzipped tarball with ``files`` placed under ``member/``."""

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for relative, text in files.items():
            data = text.encode("utf-8")
            info = tarfile.TarInfo(f"{member}/{relative}")
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def create_workspace(config: CorpusConfig, package: PackageId, files: Optional[Dict[str, str]] = None) -> Path:
    workspace = config.layout.workspace_path(package)
    workspace.mkdir(parents=True)
    for relative, text in (files or {"Cargo.toml": "[package]\n"}).items():
        target = workspace / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text)
    return workspace


class FakeRunner:
    """Stand-in for ``run_command`` that records invocations."""

    def __init__(
        self,
        returncode: int = 0,
        stderr: str = "",
        side_effect: Optional[Callable[[List[str], Path], None]] = None,
    ) -> None:
        self.returncode = returncode
        self.stderr = stderr
        self.side_effect = side_effect
        self.calls: List[Dict[str, object]] = []

    def __call__(
        self,
        command: Sequence[str],
        *,
        cwd=None,
        env: Optional[Mapping[str, str]] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        workdir = Path(cwd) if cwd is not None else None
        self.calls.append({"command": list(command), "cwd": workdir, "env": env})
        if self.side_effect is not None:
            self.side_effect(list(command), workdir)
        return subprocess.CompletedProcess(list(command), self.returncode, "", self.stderr)

    @property
    def commands(self) -> List[List[str]]:
        return [call["command"] for call in self.calls]  # type: ignore[misc]


@pytest.fixture
def config(tmp_path: Path) -> CorpusConfig:
    return CorpusConfig(
        storage_path=tmp_path / "corpus",
        index_path=tmp_path / "index",
        toolchains=ToolchainConfig(stable="1.30.0", nightly="nightly-2018-10-20"),
        llvm_path=tmp_path / "llvm",
        workers=4,
    )
