"""Unit tests for the GitHub revision lookup."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from snapshot_ci.config import SourceDescriptor
from snapshot_ci.errors import BuildFailure, LookupFailure
from snapshot_ci.revisions import RevisionOracle

R1_MAIN = SourceDescriptor(owner="o", name="r1", branch="main", entry_point="src/index.ts")
R1_DEV = SourceDescriptor(owner="o", name="r1", branch="develop", entry_point="src/index.ts")
R2_MAIN = SourceDescriptor(owner="o", name="r2", branch="main", entry_point="src/index.ts")

SHAS = {
    "/repos/o/r1/branches/main": "abc123",
    "/repos/o/r1/branches/develop": "def456",
    "/repos/o/r2/branches/main": "fff000",
}


def _branch_handler(request: httpx.Request) -> httpx.Response:
    sha = SHAS.get(request.url.path)
    if sha is None:
        return httpx.Response(404, json={"message": "Branch not found"})
    return httpx.Response(200, json={"name": "x", "commit": {"sha": sha}})


def _run(coro_factory, handler, token: str | None = ""):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            oracle = RevisionOracle(client, token=token)
            return await coro_factory(oracle)

    return asyncio.run(go())


class TestResolve:
    def test_returns_commit_sha(self) -> None:
        """branches API の commit.sha が返ること."""
        assert _run(lambda o: o.resolve(R1_MAIN), _branch_handler) == "abc123"

    def test_non_200_raises_lookup_failure_naming_repository(self) -> None:
        """200 以外の応答はリポジトリ名を含むLookupFailureになること."""
        missing = SourceDescriptor(owner="o", name="nope", branch="main", entry_point="x.ts")
        with pytest.raises(LookupFailure) as excinfo:
            _run(lambda o: o.resolve(missing), _branch_handler)

        assert excinfo.value.repository == "nope"
        assert excinfo.value.status_code == 404
        assert "nope" in str(excinfo.value)

    def test_body_without_sha_raises(self) -> None:
        """sha を含まない応答はLookupFailureになること."""
        with pytest.raises(LookupFailure):
            _run(lambda o: o.resolve(R1_MAIN), lambda request: httpx.Response(200, json={"commit": {}}))

    def test_sends_token_when_configured(self) -> None:
        """トークン指定時のみ Authorization ヘッダが付くこと."""
        auth: list[str | None] = []

        def handler(request: httpx.Request) -> httpx.Response:
            auth.append(request.headers.get("Authorization"))
            return _branch_handler(request)

        _run(lambda o: o.resolve(R1_MAIN), handler, token="secret")
        _run(lambda o: o.resolve(R1_MAIN), handler, token="")

        assert auth == ["Bearer secret", None]


class TestResolveAll:
    def test_builds_manifest(self) -> None:
        """全ソースの解決結果が branch -> name -> sha にまとめられること."""
        manifest = _run(lambda o: o.resolve_all([R1_MAIN, R1_DEV, R2_MAIN]), _branch_handler)
        assert manifest == {
            "main": {"r1": "abc123", "r2": "fff000"},
            "develop": {"r1": "def456"},
        }

    def test_queries_each_descriptor_once(self) -> None:
        """同じソースは1回だけ問い合わせること."""
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return _branch_handler(request)

        _run(lambda o: o.resolve_all([R1_MAIN, R1_MAIN, R2_MAIN]), handler)
        assert sorted(paths) == ["/repos/o/r1/branches/main", "/repos/o/r2/branches/main"]

    def test_aggregates_failures(self) -> None:
        """1件でも失敗すると stage=resolve のBuildFailureになること."""
        missing = SourceDescriptor(owner="o", name="missing", branch="main", entry_point="x.ts")
        with pytest.raises(BuildFailure) as excinfo:
            _run(lambda o: o.resolve_all([R1_MAIN, missing, R2_MAIN]), _branch_handler)

        failure = excinfo.value
        assert failure.stage == "resolve"
        assert [f.key for f in failure.failures] == ["o/missing@main"]
        assert isinstance(failure.errors[0], LookupFailure)
        assert "missing" in str(failure)
