from __future__ import annotations

import json
import os
import shutil
import subprocess
import tarfile
import tempfile
import uuid
import zlib
from pathlib import Path
from typing import BinaryIO, Mapping, Sequence


class CommandError(RuntimeError):
    """Raised when a subprocess exits with a non-zero status code."""

    def __init__(self, command: Sequence[str], returncode: int, stdout: str, stderr: str) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"Command {' '.join(command)} failed with exit code {returncode}\nSTDOUT:{stdout}\nSTDERR:{stderr}"
        )


class ArchiveError(RuntimeError):
    """Raised when a crate archive cannot be unpacked into its workspace."""


def run_command(
    command: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute a subprocess command and return the completed process."""

    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    result = subprocess.run(
        list(command),
        cwd=str(cwd) if cwd else None,
        env=process_env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
        check=False,
    )
    if check and result.returncode != 0:
        raise CommandError(command, result.returncode, result.stdout, result.stderr)
    return result


def ensure_directory(path: str | Path) -> Path:
    """Create a directory and return its Path object."""

    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def dump_json(path: str | Path, payload: Mapping[str, object], *, indent: int = 2) -> None:
    """Write structured JSON to disk with a trailing newline for readability."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=indent, sort_keys=True) + "\n")


def replace_directory(source: Path, destination: Path) -> None:
    """Swap ``source`` into ``destination``, restoring the old tree on failure."""

    backup = destination.with_name(f".{destination.name}.old-{uuid.uuid4().hex[:8]}")
    os.rename(destination, backup)
    try:
        os.rename(source, destination)
    except OSError:
        os.rename(backup, destination)
        raise
    shutil.rmtree(backup)


def unpack_crate(
    fileobj: BinaryIO,
    staging_dir: Path,
    member: str,
    destination: Path,
    *,
    replace: bool = False,
) -> Path:
    """Unpack a gzipped crate tarball and commit its ``member`` tree to ``destination``.

    Extraction happens in a scratch directory under ``staging_dir``; the
    destination only ever sees a complete tree, moved in with a rename.
    """

    ensure_directory(staging_dir)
    scratch = Path(tempfile.mkdtemp(prefix=f".{member}-", dir=staging_dir))
    try:
        try:
            with tarfile.open(fileobj=fileobj, mode="r:gz") as archive:
                archive.extractall(scratch, filter="data")
        except (tarfile.TarError, EOFError, OSError, zlib.error) as exc:
            raise ArchiveError(f"Could not unpack {member}: {exc}") from exc

        unpacked = scratch / member
        if not unpacked.is_dir():
            raise ArchiveError(f"Archive has no top-level {member}/ directory")

        if replace and destination.exists():
            replace_directory(unpacked, destination)
        elif destination.exists():
            raise ArchiveError(f"Refusing to overwrite existing {destination}")
        else:
            os.rename(unpacked, destination)
    finally:
        shutil.rmtree(scratch, ignore_errors=True)
    return destination
