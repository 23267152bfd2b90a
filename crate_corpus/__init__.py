"""Staged build pipeline for a local corpus of crates.io package sources."""

from .catalog import Catalog
from .config import CorpusConfig
from .layout import CorpusLayout
from .models import PackageId, StageReport
from .pipeline import CorpusPipeline, PipelineContext, Stage

__all__ = [
    "Catalog",
    "CorpusConfig",
    "CorpusLayout",
    "CorpusPipeline",
    "PackageId",
    "PipelineContext",
    "Stage",
    "StageReport",
]
