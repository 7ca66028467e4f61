"""API snapshot orchestrator: resolve revisions, detect changes, clone, extract, publish manifest."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import httpx
from loguru import logger

from snapshot_ci.commands import CommandRunner, SubprocessRunner
from snapshot_ci.config import PipelineConfig, SourceDescriptor
from snapshot_ci.extractor import Extractor, TypedocExtractor, generate_json
from snapshot_ci.fetcher import clone_source
from snapshot_ci.manifest import (
    Manifest,
    diff_manifests,
    fetch_published_manifest,
    is_unchanged,
    load_manifest,
    write_manifest,
)
from snapshot_ci.revisions import RevisionOracle
from snapshot_ci.tasks import raise_for_failures, run_all
from snapshot_ci.workspace import Workspace, open_workspace

USER_AGENT = "snapshot-ci"


class State(Enum):
    IDLE = "idle"
    RESOLVING_REVISIONS = "resolving_revisions"
    DETECTING_CHANGES = "detecting_changes"
    PREPARING_OUTPUT_ROOT = "preparing_output_root"
    BUILDING = "building"
    FINALIZING_MANIFEST = "finalizing_manifest"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class BuildResult:
    status: str
    manifest: Manifest
    artifacts: list[Path] = field(default_factory=list)

    @property
    def updated(self) -> bool:
        return self.status == "built"


class Pipeline:
    def __init__(
        self,
        config: PipelineConfig,
        client: httpx.AsyncClient,
        runner: CommandRunner,
        extractor: Extractor,
        oracle: RevisionOracle | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.runner = runner
        self.extractor = extractor
        self.oracle = oracle or RevisionOracle(client)
        self.state = State.IDLE
        self.history: list[State] = [State.IDLE]

    def _transition(self, state: State) -> None:
        logger.info(f"Pipeline: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    async def run(self) -> BuildResult:
        try:
            return await self._run()
        except BaseException:
            self._transition(State.ABORTED)
            raise

    async def _run(self) -> BuildResult:
        self._transition(State.RESOLVING_REVISIONS)
        latest = await self.oracle.resolve_all(self.config.sources)

        targets = list(self.config.sources)
        if self.config.change_detection:
            self._transition(State.DETECTING_CHANGES)
            current = await self._load_current_manifest()
            if is_unchanged(current, latest):
                logger.info("No updates: all sources are at their published revisions")
                self._transition(State.DONE)
                return BuildResult(status="unchanged", manifest=latest)
            targets = self._select_targets(current, latest)

        self._transition(State.PREPARING_OUTPUT_ROOT)
        await asyncio.to_thread(self._prepare_output_root)

        self._transition(State.BUILDING)
        logger.info(f"Building {len(targets)} of {len(self.config.sources)} sources")
        async with open_workspace(self.config.workspace_prefix) as workspace:
            outcomes = await run_all({s.label: self._build_source(workspace, s) for s in targets})
            self._transition(State.FINALIZING_MANIFEST)
        raise_for_failures("build", outcomes)

        manifest_path = self.config.manifest_path
        if manifest_path is not None:
            await asyncio.to_thread(write_manifest, latest, manifest_path)

        self._transition(State.DONE)
        return BuildResult(
            status="built",
            manifest=latest,
            artifacts=[o.value for o in outcomes if isinstance(o.value, Path)],
        )

    async def _load_current_manifest(self) -> Manifest:
        if self.config.remote_manifest is not None:
            return await fetch_published_manifest(self.client, self.config.remote_manifest)
        manifest_path = self.config.manifest_path
        if manifest_path is None:
            return {}
        return await asyncio.to_thread(load_manifest, manifest_path)

    def _select_targets(self, current: Manifest, latest: Manifest) -> list[SourceDescriptor]:
        stale = diff_manifests(current, latest).stale
        targets = []
        for source in self.config.sources:
            if (source.branch, source.name) in stale:
                targets.append(source)
            elif not self.config.artifact_path(source).exists():
                logger.info(f"Artifact missing, rebuilding unchanged source: {source.label}")
                targets.append(source)
        return targets

    def _prepare_output_root(self) -> None:
        output_dir = self.config.output_dir
        if not output_dir.exists():
            output_dir.mkdir(parents=True)
        for branch in self.config.branches():
            branch_dir = output_dir / branch
            if not branch_dir.exists():
                branch_dir.mkdir(parents=True)

    async def _build_source(self, workspace: Workspace, source: SourceDescriptor) -> Path:
        clone_root = await workspace.reserve(f"{source.owner}-{source.name}-{source.branch}")
        try:
            await clone_source(self.runner, clone_root, source)
            return await generate_json(
                self.extractor,
                source,
                clone_root,
                self.config.artifact_path(source),
            )
        finally:
            await workspace.release(clone_root)


async def run_build(
    config: PipelineConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    runner: CommandRunner | None = None,
    extractor: Extractor | None = None,
) -> BuildResult:
    """既定の HTTP クライアント・サブプロセス実行器でパイプラインを1回実行する."""
    runner = runner or SubprocessRunner()
    extractor = extractor or TypedocExtractor(runner, config.extractor_command)
    async with httpx.AsyncClient(
        transport=transport,
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
    ) as client:
        pipeline = Pipeline(config, client, runner, extractor)
        return await pipeline.run()
