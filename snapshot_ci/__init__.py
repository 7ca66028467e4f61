"""snapshot_ci: API スナップショットのビルドパイプライン.

外部リポジトリのリビジョン解決、変更検出、clone、API 記述の抽出、マニフェスト更新を提供する。
"""

from snapshot_ci.config import (
    PipelineConfig,
    RemoteManifest,
    SourceDescriptor,
    load_pipeline_config,
)
from snapshot_ci.fetcher import clone_source
from snapshot_ci.manifest import (
    diff_manifests,
    fetch_published_manifest,
    is_unchanged,
    load_manifest,
    write_manifest,
)
from snapshot_ci.pipeline import BuildResult, Pipeline, run_build

__version__ = "0.1.0"

__all__ = [
    # config
    "PipelineConfig",
    "RemoteManifest",
    "SourceDescriptor",
    "load_pipeline_config",
    # fetcher
    "clone_source",
    # manifest
    "is_unchanged",
    "diff_manifests",
    "load_manifest",
    "write_manifest",
    "fetch_published_manifest",
    # pipeline
    "Pipeline",
    "BuildResult",
    "run_build",
]
