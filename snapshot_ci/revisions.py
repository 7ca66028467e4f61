"""GitHub API によるブランチ先頭リビジョンの解決."""

from __future__ import annotations

import os
from collections.abc import Iterable

import httpx
from loguru import logger

from snapshot_ci.config import SourceDescriptor
from snapshot_ci.errors import LookupFailure
from snapshot_ci.manifest import Manifest
from snapshot_ci.tasks import raise_for_failures, run_all

GITHUB_API_URL = "https://api.github.com"


class RevisionOracle:
    """(owner, name, branch) から最新 commit sha を問い合わせるクライアント."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str = GITHUB_API_URL,
        token: str | None = None,
    ) -> None:
        self.client = client
        self.api_url = api_url.rstrip("/")
        self.token = token if token is not None else os.environ.get("GITHUB_TOKEN")

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def resolve(self, source: SourceDescriptor) -> str:
        """ブランチの先頭リビジョンを返す.

        Args:
            source: 対象ソース

        Returns:
            commit sha

        Raises:
            LookupFailure: 200 以外の応答、または sha を含まない応答
        """
        url = f"{self.api_url}/repos/{source.owner}/{source.name}/branches/{source.branch}"
        response = await self.client.get(url, headers=self._headers())
        if response.status_code != 200:
            raise LookupFailure(source.name, source.branch, response.status_code)

        try:
            sha = response.json()["commit"]["sha"]
        except (ValueError, KeyError, TypeError) as exc:
            raise LookupFailure(source.name, source.branch, 200, "response has no commit sha") from exc
        if not isinstance(sha, str) or not sha:
            raise LookupFailure(source.name, source.branch, 200, "response has no commit sha")

        logger.info(f"Resolved {source.label} at {sha[:8]}")
        return sha

    async def resolve_all(self, sources: Iterable[SourceDescriptor]) -> Manifest:
        """全ソースのリビジョンを並行に解決し、マニフェストとして返す.

        Raises:
            BuildFailure: 1件以上の問い合わせが失敗した場合（stage="resolve"）
        """
        unique = {s.key: s for s in sources}
        outcomes = await run_all({s.label: self.resolve(s) for s in unique.values()})
        raise_for_failures("resolve", outcomes)

        manifest: Manifest = {}
        for source, outcome in zip(unique.values(), outcomes, strict=True):
            manifest.setdefault(source.branch, {})[source.name] = str(outcome.value)
        return manifest
