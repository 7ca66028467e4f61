"""Snapshot pipeline exceptions.

ビルドパイプラインで使用する例外クラスを定義します。
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


class SnapshotError(Exception):
    """snapshot_ci の全例外の基底クラス."""


class ConfigError(SnapshotError):
    """sources.yml の内容が不正な場合の例外."""


class CommandError(SnapshotError):
    """外部コマンドが非ゼロ終了、または起動に失敗した場合の例外.

    Attributes:
        command: 実行したコマンド（argv）
        returncode: 終了コード（起動失敗時は None）
        stderr: 標準エラー出力の末尾
    """

    def __init__(self, command: Sequence[str], returncode: int | None, stderr: str = "") -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        if returncode is None:
            message = f"Failed to spawn command: {' '.join(self.command)}"
        else:
            message = f"Command exited with status {returncode}: {' '.join(self.command)}"
        if stderr:
            message = f"{message}\n{stderr}"
        super().__init__(message)


class LookupFailure(SnapshotError):
    """リビジョン問い合わせが 200 以外を返した場合の例外."""

    def __init__(self, repository: str, branch: str, status_code: int | None, detail: str = "") -> None:
        self.repository = repository
        self.branch = branch
        self.status_code = status_code
        message = f"Revision lookup failed for {repository}@{branch} (status={status_code})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class FetchFailure(SnapshotError):
    """git clone が失敗した場合の例外."""

    def __init__(self, repository: str, branch: str, reason: str) -> None:
        self.repository = repository
        self.branch = branch
        self.reason = reason
        super().__init__(f"Failed to fetch {repository}@{branch}: {reason}")


class ExtractionFailure(SnapshotError):
    """抽出ツールがプロジェクトを返さなかった場合の例外."""

    def __init__(self, repository: str, branch: str) -> None:
        self.repository = repository
        self.branch = branch
        super().__init__(f"Extractor produced no project for {repository}@{branch}")


@dataclass(frozen=True)
class SourceOutcome:
    """並行タスク1件分の結果（成功値または例外）."""

    key: str
    value: object = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BuildFailure(SnapshotError):
    """並行実行したソースのうち1件以上が失敗した場合の集約例外.

    Attributes:
        stage: 失敗したステージ（"resolve" または "build"）
        failures: 失敗したソースの SourceOutcome リスト
    """

    def __init__(self, stage: str, failures: Sequence[SourceOutcome]) -> None:
        self.stage = stage
        self.failures = list(failures)
        lines = [f"{len(self.failures)} source(s) failed during {stage}:"]
        lines.extend(f"  - {f.key}: {f.error}" for f in self.failures)
        super().__init__("\n".join(lines))

    @property
    def errors(self) -> list[BaseException]:
        return [f.error for f in self.failures if f.error is not None]
