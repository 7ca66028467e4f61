"""clone 用の一時ワークスペース管理."""

from __future__ import annotations

import asyncio
import re
import shutil
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from loguru import logger

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_dirname(name: str) -> str:
    """ブランチ名などをディレクトリ名として安全な文字列に変換する."""
    cleaned = _UNSAFE_CHARS.sub("_", name).strip("._")
    return cleaned or "_"


class Workspace:
    """プロセス単位の一時ディレクトリ.

    ソースごとに reserve() でサブディレクトリを確保し、処理後に release() で削除する。
    destroy() はルートごと削除する。
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    @classmethod
    async def allocate(cls, prefix: str) -> Workspace:
        root = await asyncio.to_thread(tempfile.mkdtemp, prefix=f"{prefix}-")
        logger.info(f"Allocated workspace: {root}")
        return cls(Path(root))

    async def reserve(self, name: str) -> Path:
        # safe_dirname は単射ではないため、名前が衝突しても別ディレクトリを確保する
        path = await asyncio.to_thread(tempfile.mkdtemp, prefix=f"{safe_dirname(name)}-", dir=self.root)
        return Path(path)

    async def release(self, path: Path) -> None:
        # 中身が部分的・未作成でも失敗させない
        await asyncio.to_thread(shutil.rmtree, path, ignore_errors=True)

    async def destroy(self) -> None:
        leftovers = await asyncio.to_thread(lambda: list(self.root.iterdir()) if self.root.exists() else [])
        if leftovers:
            logger.warning(f"Workspace not empty on destroy, removing {len(leftovers)} entries: {self.root}")
        await asyncio.to_thread(shutil.rmtree, self.root, ignore_errors=True)
        logger.info(f"Removed workspace: {self.root}")


@asynccontextmanager
async def open_workspace(prefix: str) -> AsyncIterator[Workspace]:
    workspace = await Workspace.allocate(prefix)
    try:
        yield workspace
    finally:
        await workspace.destroy()
