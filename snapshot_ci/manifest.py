"""リビジョンマニフェスト（meta.json）の読み書きと変更検出."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import httpx
from loguru import logger

from snapshot_ci.config import RemoteManifest

# branch -> repository name -> revision
Manifest = dict[str, dict[str, str]]


def is_manifest(value: object) -> bool:
    """値が branch -> name -> revision の2段マッピングかを判定."""
    if not isinstance(value, dict):
        return False
    for branch, repos in value.items():
        if not isinstance(branch, str) or not isinstance(repos, dict):
            return False
        for name, revision in repos.items():
            if not isinstance(name, str) or not isinstance(revision, str):
                return False
    return True


def is_unchanged(current: Manifest, latest: Manifest) -> bool:
    """2つのマニフェストが構造的に等しいかを判定.

    キー集合は各階層で完全一致が必要（空マッピングのブランチと欠落したブランチは別物）。
    キーの順序は無視する。

    Args:
        current: 公開済みマニフェスト（未公開なら空辞書）
        latest: 今回解決したマニフェスト

    Returns:
        等しければ True
    """
    if current.keys() != latest.keys():
        return False
    for branch, latest_repos in latest.items():
        current_repos = current[branch]
        if current_repos.keys() != latest_repos.keys():
            return False
        for name, revision in latest_repos.items():
            if current_repos[name] != revision:
                return False
    return True


@dataclass
class ManifestDiff:
    changed: list[tuple[str, str]] = field(default_factory=list)
    added: list[tuple[str, str]] = field(default_factory=list)
    removed: list[tuple[str, str]] = field(default_factory=list)
    unchanged: list[tuple[str, str]] = field(default_factory=list)

    @property
    def stale(self) -> set[tuple[str, str]]:
        """再ビルドが必要な (branch, name) の集合."""
        return set(self.changed) | set(self.added)


def diff_manifests(current: Manifest, latest: Manifest) -> ManifestDiff:
    """旧マニフェストと新マニフェストを比較してリビジョン変更を検出.

    Returns:
        (branch, name) 単位の changed / added / removed / unchanged
    """
    diff = ManifestDiff()
    for branch, repos in latest.items():
        old_repos = current.get(branch, {})
        for name, revision in repos.items():
            if name not in old_repos:
                diff.added.append((branch, name))
            elif old_repos[name] != revision:
                diff.changed.append((branch, name))
            else:
                diff.unchanged.append((branch, name))

    for branch, repos in current.items():
        for name in repos:
            if name not in latest.get(branch, {}):
                diff.removed.append((branch, name))

    logger.info(
        f"Revision comparison: {len(diff.changed)} changed, {len(diff.added)} added, "
        f"{len(diff.removed)} removed, {len(diff.unchanged)} unchanged"
    )
    return diff


def write_manifest(manifest: Manifest, output_path: Path) -> None:
    """マニフェストをJSONファイルとして保存（既存ファイルは上書き）.

    Args:
        manifest: マニフェスト辞書
        output_path: 出力JSONファイルパス
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, ensure_ascii=False)

    logger.info(f"Manifest written to {output_path}")


def load_manifest(manifest_path: Path) -> Manifest:
    """ローカルのマニフェストを読み込む.

    Args:
        manifest_path: マニフェストJSONファイルパス

    Returns:
        マニフェスト辞書（存在しない・不正な場合は空辞書）
    """
    if not manifest_path.exists():
        logger.warning(f"Manifest not found: {manifest_path}")
        return {}

    with open(manifest_path, encoding="utf-8") as f:
        try:
            manifest = json.load(f)
        except json.JSONDecodeError as exc:
            logger.warning(f"Manifest is not valid JSON, ignoring: {manifest_path} ({exc})")
            return {}

    if not is_manifest(manifest):
        logger.warning(f"Manifest has unexpected shape, ignoring: {manifest_path}")
        return {}

    logger.info(f"Loaded manifest from {manifest_path}")
    return manifest


async def fetch_published_manifest(client: httpx.AsyncClient, remote: RemoteManifest) -> Manifest:
    """公開済みマニフェストを raw コンテンツ URL から取得する.

    200 以外の応答、通信エラー、マニフェストとして解釈できない本文はいずれも
    「未公開」とみなして空辞書を返す。
    """
    url = remote.raw_url
    try:
        response = await client.get(url)
    except httpx.HTTPError as exc:
        logger.warning(f"Published manifest unreachable: {url} ({exc})")
        return {}

    if response.status_code != 200:
        logger.warning(f"Published manifest not found: {url} (status={response.status_code})")
        return {}

    try:
        manifest = response.json()
    except ValueError:
        logger.warning(f"Published manifest is not valid JSON, ignoring: {url}")
        return {}
    if not is_manifest(manifest):
        logger.warning(f"Published manifest has unexpected shape, ignoring: {url}")
        return {}

    logger.info(f"Loaded published manifest from {url}")
    return manifest
