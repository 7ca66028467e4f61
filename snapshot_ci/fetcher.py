"""外部ソースの取得（shallow clone）."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from snapshot_ci.commands import Command, CommandRunner
from snapshot_ci.config import SourceDescriptor
from snapshot_ci.errors import CommandError, FetchFailure


def clone_command(dest: Path, source: SourceDescriptor) -> Command:
    return Command(
        program="git",
        args=(
            "clone",
            "--progress",
            "--depth",
            "1",
            "--branch",
            source.branch,
            "--single-branch",
            source.clone_url,
            str(dest),
        ),
    )


async def clone_source(runner: CommandRunner, dest: Path, source: SourceDescriptor) -> Path:
    """GitHubリポジトリの1ブランチだけを depth=1 で clone する.

    Args:
        runner: 外部コマンド実行器
        dest: clone 先ディレクトリ（ワークスペース内で確保済みのもの）
        source: ソース定義

    Returns:
        clone 先ディレクトリ

    Raises:
        FetchFailure: git が非ゼロ終了、または起動できなかった場合
    """
    logger.info(f"Fetching GitHub repo: {source.label} from {source.clone_url}")
    try:
        await runner.run(clone_command(dest, source))
    except CommandError as exc:
        raise FetchFailure(source.name, source.branch, str(exc)) from exc

    logger.info(f"Cloned {source.label} into {dest}")
    return dest
