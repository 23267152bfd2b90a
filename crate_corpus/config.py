from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .layout import DEFAULT_CRATES_ROOT, CorpusLayout

DEFAULT_INDEX_URL = "https://github.com/rust-lang/crates.io-index"
DEFAULT_CONCURRENCY = 5
DEFAULT_RUSTC_ARGS = ("--emit=llvm-bc,link",)


class ConfigError(RuntimeError):
    """Raised when the corpus configuration cannot be loaded."""


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return section


def _required(section: Dict[str, Any], name: str, key: str) -> Any:
    try:
        value = section[key]
    except KeyError as exc:
        raise ConfigError(f"Missing required setting '{name}.{key}'") from exc
    if value in (None, ""):
        raise ConfigError(f"Setting '{name}.{key}' must not be empty")
    return value


def _optional_str(section: Dict[str, Any], name: str, key: str, default: str) -> str:
    if key not in section:
        return default
    value = section[key]
    if value in (None, ""):
        raise ConfigError(f"Setting '{name}.{key}' must not be empty")
    return str(value)


def _rustc_args(section: Dict[str, Any]) -> List[str]:
    value = section.get("rustc_args", list(DEFAULT_RUSTC_ARGS))
    if value is None:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list):
        return [str(item) for item in value]
    raise ConfigError("Setting 'compiler.rustc_args' must be a string or a list")


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass
class ToolchainConfig:
    """Pinned compiler toolchains selected by channel."""

    stable: str
    nightly: str
    rustc_args: List[str] = field(default_factory=lambda: list(DEFAULT_RUSTC_ARGS))

    def build_command(self, nightly: bool) -> List[str]:
        """rustc arguments apply to the library target only, not its dependencies."""

        command = ["rustup", "run", self.for_channel(nightly), "cargo", "rustc", "--lib"]
        if self.rustc_args:
            command += ["--", *self.rustc_args]
        return command

    def for_channel(self, nightly: bool) -> str:
        return self.nightly if nightly else self.stable

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolchainConfig":
        return cls(
            stable=str(_required(data, "compiler", "stable")),
            nightly=str(_required(data, "compiler", "nightly")),
            rustc_args=_rustc_args(data),
        )


@dataclass
class CorpusConfig:
    """Process-wide settings, read once at startup and passed to every stage."""

    storage_path: Path
    index_path: Path
    toolchains: ToolchainConfig
    llvm_path: Path
    index_url: str = DEFAULT_INDEX_URL
    latest_only: bool = True
    crates_root: str = DEFAULT_CRATES_ROOT
    concurrency: int = DEFAULT_CONCURRENCY
    timeout_s: Optional[float] = 60.0
    workers: Optional[int] = field(default=None)

    def __post_init__(self) -> None:
        self.storage_path = Path(self.storage_path)
        self.index_path = Path(self.index_path)
        self.llvm_path = Path(self.llvm_path)
        if self.concurrency < 1:
            raise ConfigError("download.concurrency must be at least 1")
        if self.workers is not None and self.workers < 1:
            raise ConfigError("workers must be at least 1")

    @property
    def layout(self) -> CorpusLayout:
        return CorpusLayout(self.storage_path, self.crates_root)

    @property
    def worker_count(self) -> int:
        return self.workers or os.cpu_count() or 1

    @property
    def opt_binary(self) -> Path:
        return self.llvm_path / "bin" / "opt"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CorpusConfig":
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping of sections")
        storage = _section(data, "storage")
        crates = _section(data, "crates")
        download = _section(data, "download")
        llvm = _section(data, "llvm")
        timeout = download.get("timeout_s", 60.0)
        workers = data.get("workers")
        try:
            return cls(
                storage_path=_required(storage, "storage", "path"),
                index_path=_required(crates, "crates", "index_path"),
                index_url=_optional_str(crates, "crates", "index_url", DEFAULT_INDEX_URL),
                latest_only=_as_bool(crates.get("latest_only", True)),
                toolchains=ToolchainConfig.from_dict(_section(data, "compiler")),
                llvm_path=_required(llvm, "llvm", "path"),
                crates_root=_optional_str(download, "download", "crates_root", DEFAULT_CRATES_ROOT),
                concurrency=int(download.get("concurrency", DEFAULT_CONCURRENCY)),
                timeout_s=float(timeout) if timeout is not None else None,
                workers=int(workers) if workers is not None else None,
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid configuration value: {exc}") from exc

    @classmethod
    def from_file(cls, path: str | Path) -> "CorpusConfig":
        path = Path(path)
        try:
            raw_text = path.read_text()
        except OSError as exc:
            raise ConfigError(f"Cannot read configuration file {path}: {exc}") from exc
        try:
            raw_data = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Cannot parse configuration file {path}: {exc}") from exc
        return cls.from_dict(raw_data or {})
