"""sources.yml の読み込みとパイプライン設定."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml
from loguru import logger

from snapshot_ci.errors import ConfigError

DEFAULT_EXTRACTOR_COMMAND = ("npx", "--yes", "typedoc")


@dataclass(frozen=True)
class SourceDescriptor:
    owner: str
    name: str
    branch: str
    entry_point: str

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.owner, self.name, self.branch)

    @property
    def label(self) -> str:
        return f"{self.owner}/{self.name}@{self.branch}"

    @property
    def clone_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.name}.git"


@dataclass(frozen=True)
class RemoteManifest:
    owner: str
    name: str
    branch: str
    file: str

    @property
    def raw_url(self) -> str:
        return f"https://raw.githubusercontent.com/{self.owner}/{self.name}/{self.branch}/{self.file}"


@dataclass(frozen=True)
class PipelineConfig:
    sources: tuple[SourceDescriptor, ...]
    output_dir: Path
    workspace_prefix: str = "api-snapshots"
    manifest_file: str | None = None
    change_detection: bool = False
    remote_manifest: RemoteManifest | None = None
    extractor_command: tuple[str, ...] = DEFAULT_EXTRACTOR_COMMAND

    @property
    def manifest_path(self) -> Path | None:
        if self.manifest_file is None:
            return None
        return self.output_dir / self.manifest_file

    def artifact_path(self, source: SourceDescriptor) -> Path:
        return self.output_dir / source.branch / f"{source.name}.json"

    def branches(self) -> list[str]:
        seen: dict[str, None] = {}
        for s in self.sources:
            seen.setdefault(s.branch, None)
        return list(seen)


def repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def default_sources_yml() -> Path:
    return Path(__file__).parent / "sources.yml"


def _require_str(entry: dict, key: str, where: str) -> str:
    value = entry.get(key)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{where}: '{key}' must be a non-empty string")
    return value


def _parse_source(entry: object, index: int) -> SourceDescriptor:
    where = f"sources[{index}]"
    if not isinstance(entry, dict):
        raise ConfigError(f"{where}: expected a mapping")
    return SourceDescriptor(
        owner=_require_str(entry, "owner", where),
        name=_require_str(entry, "name", where),
        branch=_require_str(entry, "branch", where),
        entry_point=_require_str(entry, "entry_point", where),
    )


def _parse_remote(entry: object) -> RemoteManifest | None:
    if entry is None:
        return None
    where = "change_detection.remote"
    if not isinstance(entry, dict):
        raise ConfigError(f"{where}: expected a mapping")
    return RemoteManifest(
        owner=_require_str(entry, "owner", where),
        name=_require_str(entry, "name", where),
        branch=_require_str(entry, "branch", where),
        file=_require_str(entry, "file", where),
    )


def parse_pipeline_config(raw: dict, root: Path) -> PipelineConfig:
    """YAML から読み込んだ辞書を PipelineConfig に変換する.

    Args:
        raw: sources.yml の内容
        root: output_dir の基準ディレクトリ

    Returns:
        不変の PipelineConfig

    Raises:
        ConfigError: 必須キーの欠落、重複ソース、矛盾した設定
    """
    entries = raw.get("sources") or []
    if not isinstance(entries, list):
        raise ConfigError("'sources' must be a list")

    sources = tuple(_parse_source(e, i) for i, e in enumerate(entries))
    seen: set[tuple[str, str, str]] = set()
    outputs: set[tuple[str, str]] = set()
    for s in sources:
        if s.key in seen:
            raise ConfigError(f"Duplicate source: {s.label}")
        # manifest と成果物パスは (branch, name) で決まる
        if (s.branch, s.name) in outputs:
            raise ConfigError(f"Sources collide on output {s.branch}/{s.name}.json: {s.label}")
        seen.add(s.key)
        outputs.add((s.branch, s.name))

    output_dir = Path(raw.get("output_dir", "dist"))
    if not output_dir.is_absolute():
        output_dir = root / output_dir

    detection = raw.get("change_detection") or {}
    if not isinstance(detection, dict):
        raise ConfigError("'change_detection' must be a mapping")
    change_detection = bool(detection.get("enabled", False))
    manifest_file = raw.get("manifest_file")
    if manifest_file is not None:
        manifest_file = _require_str(raw, "manifest_file", "config")
    if change_detection and not manifest_file:
        raise ConfigError("change_detection requires 'manifest_file'")

    extractor = raw.get("extractor") or {}
    if not isinstance(extractor, dict):
        raise ConfigError("'extractor' must be a mapping")
    command = extractor.get("command") or list(DEFAULT_EXTRACTOR_COMMAND)
    if isinstance(command, str):
        command = command.split()
    if not isinstance(command, list) or not all(isinstance(c, str) and c for c in command):
        raise ConfigError("extractor.command must be a string or a list of strings")

    return PipelineConfig(
        sources=sources,
        output_dir=output_dir,
        workspace_prefix=str(raw.get("workspace_prefix", "api-snapshots")),
        manifest_file=manifest_file,
        change_detection=change_detection,
        remote_manifest=_parse_remote(detection.get("remote")),
        extractor_command=tuple(str(c) for c in command),
    )


def load_pipeline_config(sources_yml: Path | None = None, root: Path | None = None) -> PipelineConfig:
    """sources.yml を読み込んで PipelineConfig を返す.

    Args:
        sources_yml: sources.yml のパス（省略時はパッケージ同梱のもの）
        root: output_dir の基準（省略時はリポジトリルート）

    Returns:
        PipelineConfig
    """
    sources_yml = sources_yml or default_sources_yml()
    root = root or repo_root()

    with open(sources_yml, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{sources_yml}: top level must be a mapping")

    config = parse_pipeline_config(raw, root)
    logger.info(f"Loaded {len(config.sources)} sources from {sources_yml}")
    return config
