from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Dict, Iterable, List

from .catalog import Catalog
from .config import CorpusConfig
from .fetch import CrateFetcher
from .layout import AmbiguousArtifact, CorpusLayout, MissingArtifact
from .models import ItemResult, ItemStatus, PackageId, StageReport
from .utils import ArchiveError, run_command, unpack_crate

logger = logging.getLogger(__name__)


class Stage(Enum):
    DOWNLOAD = auto()
    VALIDATE = auto()
    REWRITE = auto()
    COMPILE = auto()
    EXTRACT = auto()

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass
class PipelineContext:
    config: CorpusConfig
    nightly: bool = False

    @property
    def layout(self) -> CorpusLayout:
        return self.config.layout

    @property
    def toolchain(self) -> str:
        return self.config.toolchains.for_channel(self.nightly)


ItemHandler = Callable[[PipelineContext, PackageId], ItemResult]


def _failure(package: PackageId, message: str, stderr: str = "") -> ItemResult:
    if stderr:
        logger.warning("%s: %s\nstderr: %s", package, message, stderr.rstrip())
    else:
        logger.warning("%s: %s", package, message)
    return ItemResult(package, ItemStatus.FAILED, message, stderr)


def _validate_item(context: PipelineContext, package: PackageId) -> ItemResult:
    result = run_command(
        ["cargo", "read-manifest"],
        cwd=context.layout.workspace_path(package),
        check=False,
    )
    if result.returncode != 0:
        return _failure(package, "Not a valid manifest", result.stderr)
    logger.debug("Valid manifest: %s", package)
    return ItemResult(package, ItemStatus.COMPLETED)


def _rewrite_item(context: PipelineContext, package: PackageId) -> ItemResult:
    layout = context.layout
    if layout.is_rewritten(package):
        return ItemResult(package, ItemStatus.SKIPPED, "manifest already rewritten")

    workspace = layout.workspace_path(package)
    result = run_command(
        ["cargo", "publish", "--no-verify", "--dry-run", "--allow-dirty"],
        cwd=workspace,
        check=False,
    )
    if result.returncode != 0:
        return _failure(package, "Package not publishable with the running Cargo version", result.stderr)

    archive_path = layout.package_archive(package)
    if not archive_path.exists():
        return _failure(package, f"No package archive produced at {archive_path}")
    try:
        with archive_path.open("rb") as handle:
            unpack_crate(
                handle,
                layout.staging_path(package),
                str(package),
                workspace,
                replace=True,
            )
    except (ArchiveError, OSError) as exc:
        return _failure(package, f"Could not replace workspace: {exc}")
    logger.info("Repackaged: %s", package)
    return ItemResult(package, ItemStatus.COMPLETED)


def _compile_item(context: PipelineContext, package: PackageId) -> ItemResult:
    result = run_command(
        context.config.toolchains.build_command(context.nightly),
        cwd=context.layout.workspace_path(package),
        check=False,
    )
    if result.returncode != 0:
        return _failure(package, "Build failed", result.stderr)
    logger.info("Build done: %s", package)
    return ItemResult(package, ItemStatus.COMPLETED)


def _extract_item(context: PipelineContext, package: PackageId) -> ItemResult:
    layout = context.layout
    try:
        bitcode = layout.bitcode_path(package)
    except MissingArtifact:
        logger.info("No bitcode: %s", package)
        return ItemResult(package, ItemStatus.NO_ARTIFACT, "no bitcode")
    except AmbiguousArtifact as exc:
        return _failure(package, str(exc))

    result = run_command(
        [str(context.config.opt_binary), "-dot-callgraph", str(bitcode)],
        cwd=layout.workspace_path(package),
        check=False,
    )
    if result.returncode != 0:
        return _failure(package, "Callgraph construction failed", result.stderr)
    logger.info("Callgraph built: %s", package)
    return ItemResult(package, ItemStatus.COMPLETED)


_ITEM_HANDLERS: Dict[Stage, ItemHandler] = {
    Stage.VALIDATE: _validate_item,
    Stage.REWRITE: _rewrite_item,
    Stage.COMPILE: _compile_item,
    Stage.EXTRACT: _extract_item,
}


def _run_item(handler: ItemHandler, context: PipelineContext, package: PackageId) -> ItemResult:
    if not context.layout.has_workspace(package):
        return ItemResult(package, ItemStatus.SKIPPED, "workspace missing")
    try:
        return handler(context, package)
    except Exception as exc:
        logger.exception("Unexpected error while processing %s", package)
        return ItemResult(package, ItemStatus.FAILED, f"Unexpected error: {exc!r}")


def fan_out(
    handler: ItemHandler,
    context: PipelineContext,
    packages: Iterable[PackageId],
    *,
    stage: str,
) -> StageReport:
    """Apply ``handler`` to every package on a thread pool and collect the outcomes."""

    max_workers = context.config.worker_count
    results: List[ItemResult] = []
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"{stage}-stage") as pool:
        futures = [pool.submit(_run_item, handler, context, package) for package in packages]
        for future in as_completed(futures):
            results.append(future.result())
    return StageReport(stage, results)


class CorpusPipeline:
    """Runs one stage at a time over every package in a catalog."""

    def __init__(self, context: PipelineContext) -> None:
        self.context = context

    def run_stage(self, stage: Stage, catalog: Catalog) -> StageReport:
        if stage is Stage.COMPILE:
            channel = "nightly" if self.context.nightly else "stable"
            logger.info("Running %s compiler %s", channel, self.context.toolchain)
        logger.info("Starting %s over %d packages", stage.label, len(catalog))
        if stage is Stage.DOWNLOAD:
            report = self._download(catalog)
        else:
            report = fan_out(_ITEM_HANDLERS[stage], self.context, catalog, stage=stage.label)
        logger.info("Finished %s: %s", stage.label, report.counts())
        return report

    def _download(self, catalog: Catalog) -> StageReport:
        config = self.context.config
        fetcher = CrateFetcher(
            config.layout,
            concurrency=config.concurrency,
            timeout=config.timeout_s,
        )
        return fetcher.run(catalog)
