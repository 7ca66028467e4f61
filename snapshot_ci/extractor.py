"""API 記述の抽出（TypeDoc）と成果物の書き出し."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from loguru import logger

from snapshot_ci.commands import Command, CommandRunner
from snapshot_ci.config import DEFAULT_EXTRACTOR_COMMAND, SourceDescriptor
from snapshot_ci.errors import CommandError, ExtractionFailure

PROJECT_CONFIG_NAME = "tsconfig.json"
_RAW_OUTPUT_NAME = ".snapshot-api.json"
# typedoc の ExitCodes.CompileError
TYPEDOC_COMPILE_ERROR = 3


@dataclass(frozen=True)
class ExtractionOptions:
    entry_points: list[Path]
    project_config: Path

    @classmethod
    def for_source(cls, clone_root: Path, source: SourceDescriptor) -> ExtractionOptions:
        return cls(
            entry_points=[clone_root / source.entry_point],
            project_config=clone_root / PROJECT_CONFIG_NAME,
        )


class Extractor(Protocol):
    async def extract(self, options: ExtractionOptions, clone_root: Path) -> dict | None:
        """API 記述を抽出する. プロジェクトが得られなければ None."""
        ...


def _read_document(path: Path) -> dict | None:
    if not path.exists() or path.stat().st_size == 0:
        return None
    with open(path, encoding="utf-8") as f:
        document = json.load(f)
    return document if isinstance(document, dict) and document else None


class TypedocExtractor:
    """typedoc CLI を実行して JSON 出力を読み込む Extractor.

    CompileError（終了コード 3）は「プロジェクトなし」として None を返し、
    それ以外の異常終了は CommandError としてそのまま伝播する。
    """

    def __init__(self, runner: CommandRunner, command: Sequence[str] = DEFAULT_EXTRACTOR_COMMAND) -> None:
        if not command:
            raise ValueError("extractor command must not be empty")
        self.runner = runner
        self.command = tuple(command)

    def build_command(self, options: ExtractionOptions, clone_root: Path, output: Path) -> Command:
        args: list[str] = [*self.command[1:], "--json", str(output)]
        for entry in options.entry_points:
            args.extend(["--entryPoints", str(entry)])
        args.extend(["--tsconfig", str(options.project_config)])
        return Command(program=self.command[0], args=tuple(args), cwd=clone_root)

    async def extract(self, options: ExtractionOptions, clone_root: Path) -> dict | None:
        output = clone_root / _RAW_OUTPUT_NAME
        try:
            await self.runner.run(self.build_command(options, clone_root, output))
        except CommandError as exc:
            # convert() がプロジェクトを返さないと typedoc は CompileError で終了する
            if exc.returncode == TYPEDOC_COMPILE_ERROR:
                logger.warning(f"typedoc produced no project in {clone_root}")
                return None
            raise
        return await asyncio.to_thread(_read_document, output)


def _write_document(document: dict, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, ensure_ascii=False)


async def generate_json(
    extractor: Extractor,
    source: SourceDescriptor,
    clone_root: Path,
    output_path: Path,
) -> Path:
    """clone したソースから API 記述を抽出して output_path に保存する.

    Args:
        extractor: 抽出器
        source: ソース定義（entry_point を含む）
        clone_root: clone 済みのソースルート
        output_path: 成果物 JSON のパス

    Returns:
        書き出した成果物のパス

    Raises:
        ExtractionFailure: 抽出器がプロジェクトを返さなかった場合
    """
    options = ExtractionOptions.for_source(clone_root, source)
    logger.info(f"Extracting API of {source.label} from {source.entry_point}")

    document = await extractor.extract(options, clone_root)
    if document is None:
        raise ExtractionFailure(source.name, source.branch)

    await asyncio.to_thread(_write_document, document, output_path)
    logger.info(f"Wrote {output_path}")
    return output_path
