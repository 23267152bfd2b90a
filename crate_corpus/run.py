from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

from .catalog import Catalog
from .config import ConfigError, CorpusConfig
from .index import CratesIndex, IndexUnavailable
from .pipeline import CorpusPipeline, PipelineContext, Stage
from .utils import dump_json

logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _build_index(config: CorpusConfig) -> CratesIndex:
    return CratesIndex(config.index_path, config.index_url)


def _run_stage(args: argparse.Namespace, config: CorpusConfig, stage: Stage) -> int:
    catalog = Catalog.load(_build_index(config), all_versions=not config.latest_only)
    context = PipelineContext(config=config, nightly=getattr(args, "nightly", False))
    report = CorpusPipeline(context).run_stage(stage, catalog)
    payload = report.to_dict()
    print(json.dumps(payload, indent=2))
    if args.report:
        dump_json(args.report, payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate call-based dependency networks of the crates.io registry"
    )
    parser.add_argument(
        "--config",
        default="conf.yaml",
        help="Path to the corpus configuration file.",
    )
    parser.add_argument("--update", action="store_true", help="Update the registry index")
    parser.add_argument(
        "--report",
        default=None,
        help="Also write the stage report as JSON to this path.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    subparsers = parser.add_subparsers(dest="command")

    for command, stage, help_text in (
        ("download", Stage.DOWNLOAD, "download registry crate sources"),
        ("validate", Stage.VALIDATE, "validate Cargo.toml files"),
        ("rewrite", Stage.REWRITE, "rewrite Cargo.toml to remove local path dependencies"),
        ("build-callgraphs", Stage.EXTRACT, "construct crate-wide LLVM call graphs"),
        ("build-crates", Stage.COMPILE, "build all crates"),
    ):
        stage_parser = subparsers.add_parser(command, help=help_text)
        stage_parser.set_defaults(stage=stage)
        if stage is Stage.COMPILE:
            stage_parser.add_argument(
                "-n", "--nightly", action="store_true", help="run nightly compiler"
            )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.update and args.command is None:
        parser.error("a subcommand or --update is required")
    _setup_logging(args.log_level)

    try:
        config = CorpusConfig.from_file(args.config)
        if args.update:
            catalog = Catalog.refresh(_build_index(config))
            logger.info("Done with updating! %d packages indexed", len(catalog))
        if args.command is None:
            return 0
        return _run_stage(args, config, args.stage)
    except (ConfigError, IndexUnavailable) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
