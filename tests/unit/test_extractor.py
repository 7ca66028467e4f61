"""Unit tests for the TypeDoc extraction adapter."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from snapshot_ci.commands import Command, CommandResult
from snapshot_ci.config import SourceDescriptor
from snapshot_ci.errors import CommandError, ExtractionFailure
from snapshot_ci.extractor import (
    TYPEDOC_COMPILE_ERROR,
    ExtractionOptions,
    TypedocExtractor,
    generate_json,
)

SOURCE = SourceDescriptor(owner="o", name="r1", branch="main", entry_point="src/index.ts")


class _StaticExtractor:
    def __init__(self, document: dict | None) -> None:
        self.document = document
        self.calls: list[ExtractionOptions] = []

    async def extract(self, options: ExtractionOptions, clone_root: Path) -> dict | None:
        self.calls.append(options)
        return self.document


class _TypedocStub:
    """typedoc の代わりに --json の出力先へ固定の文書を書く runner."""

    def __init__(self, document: str | None, returncode: int = 0) -> None:
        self.document = document
        self.returncode = returncode
        self.commands: list[Command] = []

    async def run(self, command: Command) -> CommandResult:
        self.commands.append(command)
        if self.returncode != 0:
            raise CommandError(command.argv, self.returncode, "typedoc failed")
        if self.document is not None:
            out = Path(command.args[command.args.index("--json") + 1])
            out.write_text(self.document, encoding="utf-8")
        return CommandResult(command=command, returncode=0)


class TestGenerateJson:
    def test_extraction_options_for_source(self, tmp_path: Path) -> None:
        """entry point と tsconfig.json が clone ルートから解決されること."""
        options = ExtractionOptions.for_source(tmp_path, SOURCE)
        assert options.entry_points == [tmp_path / "src/index.ts"]
        assert options.project_config == tmp_path / "tsconfig.json"

    def test_generate_json_writes_artifact(self, tmp_path: Path) -> None:
        """抽出結果が成果物JSONとして書き出されること."""
        extractor = _StaticExtractor({"id": 0, "name": "r1", "children": []})
        output = tmp_path / "dist" / "main" / "r1.json"

        written = asyncio.run(generate_json(extractor, SOURCE, tmp_path / "clone", output))

        assert written == output
        assert json.loads(output.read_text(encoding="utf-8")) == {"id": 0, "name": "r1", "children": []}
        assert extractor.calls[0].entry_points == [tmp_path / "clone" / "src/index.ts"]

    def test_generate_json_without_project_raises(self, tmp_path: Path) -> None:
        """プロジェクトが得られないとExtractionFailureになり何も書かれないこと."""
        output = tmp_path / "r1.json"
        with pytest.raises(ExtractionFailure) as excinfo:
            asyncio.run(generate_json(_StaticExtractor(None), SOURCE, tmp_path, output))

        assert excinfo.value.repository == "r1"
        assert not output.exists()


class TestTypedocExtractor:
    def test_command_line(self, tmp_path: Path) -> None:
        """typedoc が --json / --entryPoints / --tsconfig 付きで clone ルートで実行されること."""
        runner = _TypedocStub('{"id": 0, "name": "r1"}')
        extractor = TypedocExtractor(runner, ("npx", "--yes", "typedoc"))
        options = ExtractionOptions.for_source(tmp_path, SOURCE)

        document = asyncio.run(extractor.extract(options, tmp_path))

        assert document == {"id": 0, "name": "r1"}
        command = runner.commands[0]
        assert command.program == "npx"
        assert command.cwd == tmp_path
        assert command.args[:2] == ("--yes", "typedoc")
        assert command.args[command.args.index("--entryPoints") + 1] == str(tmp_path / "src/index.ts")
        assert command.args[command.args.index("--tsconfig") + 1] == str(tmp_path / "tsconfig.json")

    def test_no_output_means_no_project(self, tmp_path: Path) -> None:
        """出力ファイルが無い場合は None を返すこと."""
        extractor = TypedocExtractor(_TypedocStub(None))
        options = ExtractionOptions.for_source(tmp_path, SOURCE)
        assert asyncio.run(extractor.extract(options, tmp_path)) is None

    def test_compile_error_exit_is_extraction_failure(self, tmp_path: Path) -> None:
        """typedoc が CompileError(3) で終了した場合はExtractionFailureになること."""
        extractor = TypedocExtractor(_TypedocStub(None, returncode=TYPEDOC_COMPILE_ERROR))
        output = tmp_path / "r1.json"

        with pytest.raises(ExtractionFailure):
            asyncio.run(generate_json(extractor, SOURCE, tmp_path, output))
        assert not output.exists()

    def test_other_exit_codes_propagate(self, tmp_path: Path) -> None:
        """CompileError 以外の異常終了はCommandErrorのまま伝播すること."""
        extractor = TypedocExtractor(_TypedocStub(None, returncode=2))
        with pytest.raises(CommandError) as excinfo:
            asyncio.run(generate_json(extractor, SOURCE, tmp_path, tmp_path / "r1.json"))
        assert excinfo.value.returncode == 2

    def test_rejects_empty_command(self) -> None:
        """空のコマンドは ValueError になること."""
        with pytest.raises(ValueError):
            TypedocExtractor(_TypedocStub(None), ())
