"""CLI entry point: ``snapshot-ci build``."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence

from loguru import logger

from snapshot_ci.config import load_pipeline_config
from snapshot_ci.pipeline import BuildResult, run_build


def build() -> BuildResult:
    config = load_pipeline_config()
    result = asyncio.run(run_build(config))
    if result.updated:
        logger.info(f"Build complete: {len(result.artifacts)} artifacts written to {config.output_dir}")
    else:
        logger.info("No updates")
    return result


def main(argv: Sequence[str] | None = None) -> None:
    p = argparse.ArgumentParser(prog="snapshot-ci", description="API snapshot builder")
    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("build", help="Resolve revisions, rebuild changed sources and write the manifest")

    args = p.parse_args(argv)

    if args.command == "build":
        build()


if __name__ == "__main__":
    main()
