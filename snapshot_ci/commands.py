"""外部コマンド実行の抽象化.

git や typedoc などの外部プロセスは CommandRunner 経由で起動する。
テストでは run() を持つ任意のオブジェクトに差し替えられる。
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from loguru import logger

from snapshot_ci.errors import CommandError

_STDERR_TAIL = 2000


@dataclass(frozen=True)
class Command:
    program: str
    args: tuple[str, ...] = ()
    cwd: Path | None = None

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]


@dataclass(frozen=True)
class CommandResult:
    command: Command
    returncode: int
    stdout: str = ""
    stderr: str = field(default="", repr=False)


class CommandRunner(Protocol):
    async def run(self, command: Command) -> CommandResult:
        """コマンドを実行し、終了コード 0 なら結果を返す.

        Raises:
            CommandError: 非ゼロ終了または起動失敗
        """
        ...


class SubprocessRunner:
    """asyncio.create_subprocess_exec で外部コマンドを実行する CommandRunner."""

    async def run(self, command: Command) -> CommandResult:
        logger.debug(f"Running: {' '.join(command.argv)} (cwd={command.cwd})")
        try:
            proc = await asyncio.create_subprocess_exec(
                *command.argv,
                cwd=str(command.cwd) if command.cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise CommandError(command.argv, None, str(exc)) from exc

        stdout, stderr = await proc.communicate()
        out_text = stdout.decode("utf-8", errors="replace")
        err_text = stderr.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise CommandError(command.argv, proc.returncode, err_text[-_STDERR_TAIL:].strip())

        return CommandResult(command=command, returncode=proc.returncode, stdout=out_text, stderr=err_text)
