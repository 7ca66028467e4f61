"""並行タスクの集約実行."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Mapping

from loguru import logger

from snapshot_ci.errors import BuildFailure, SourceOutcome


async def run_all(tasks: Mapping[str, Awaitable[object]]) -> list[SourceOutcome]:
    """全タスクを並行実行し、各タスクの成否を捕捉して返す.

    1件が失敗しても他のタスクはキャンセルせず、全件の終了を待つ。

    Args:
        tasks: キー（ソース識別子）→ awaitable のマッピング

    Returns:
        tasks と同じ順序の SourceOutcome リスト
    """
    keys = list(tasks)
    results = await asyncio.gather(*tasks.values(), return_exceptions=True)

    outcomes: list[SourceOutcome] = []
    for key, result in zip(keys, results, strict=True):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                # KeyboardInterrupt / CancelledError はそのまま伝播させる
                raise result
            logger.error(f"{key} failed: {result}")
            outcomes.append(SourceOutcome(key=key, error=result))
        else:
            outcomes.append(SourceOutcome(key=key, value=result))
    return outcomes


def raise_for_failures(stage: str, outcomes: list[SourceOutcome]) -> None:
    failures = [o for o in outcomes if not o.ok]
    if failures:
        raise BuildFailure(stage, failures)
