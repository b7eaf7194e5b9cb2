"""检出服务 — 校验 -> 检出 -> 结果

串联 RepositoryRegistry（校验并构造描述符）、RetrieverFactory（选择检出器）
和 RepoCatalog（按名称检出、记录 revision），同时管理 base_dir 下的工作目录。
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Mapping

from reposcraper.core.exceptions import ConfigError, InvalidRepositoryError
from reposcraper.core.models import RepositoryDescriptor
from reposcraper.core.registry import RepositoryRegistry
from reposcraper.core.tracing import OperationTracer
from reposcraper.services.catalog import RepoCatalog
from reposcraper.services.retrieval import Retriever, RetrieverFactory, RetrieverOptions
from reposcraper.utils.net import Resolver

logger = logging.getLogger(__name__)

_HASH_LEN = 40


@dataclass
class RetrievalResult:
    """一次检出的结果"""

    repository: RepositoryDescriptor
    repo_dir: Path
    ignorable_paths: list[str] = field(default_factory=list)

    def files(self) -> Iterator[Path]:
        """工作目录下的文件（相对路径），跳过版本控制元数据"""
        ignored = set(self.ignorable_paths)
        for path in sorted(self.repo_dir.rglob("*")):
            rel = path.relative_to(self.repo_dir)
            if rel.parts and rel.parts[0] in ignored:
                continue
            if path.is_file():
                yield rel

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": str(self.repository),
            "revision": self.repository.revision,
            "repository_hash": self.repository.repository_hash,
            "repo_dir": str(self.repo_dir),
        }


class ScrapeService:
    """仓库检出服务"""

    def __init__(
        self,
        *,
        base_dir: str | Path,
        registry: RepositoryRegistry,
        factory: RetrieverFactory,
        catalog: RepoCatalog | None = None,
        tracer: OperationTracer | None = None,
        max_bytes: int | None = None,
        max_seconds: float | None = None,
        trust_input: bool = False,
        resolver: Resolver | None = None,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.registry = registry
        self.factory = factory
        self.catalog = catalog
        self.tracer = tracer
        self.max_bytes = max_bytes
        self.max_seconds = max_seconds
        self.trust_input = trust_input
        self.resolver = resolver

    # ---- 检出 ----

    def describe(self, config: Mapping[str, Any]) -> RepositoryDescriptor:
        """校验配置映射并构造描述符"""
        return self.registry.from_config(config, trust_input=self.trust_input, resolver=self.resolver)

    def options(self) -> RetrieverOptions:
        return RetrieverOptions(
            base_dir=self.base_dir,
            max_bytes=self.max_bytes,
            max_seconds=self.max_seconds,
            tracer=self.tracer,
            trust_input=self.trust_input,
            resolver=self.resolver,
        )

    def retriever_for(self, repository: RepositoryDescriptor) -> Retriever:
        return self.factory.build(repository, self.options())

    def retrieve(self, source: Mapping[str, Any] | RepositoryDescriptor) -> RetrievalResult:
        """检出配置映射或已构造的描述符

        参数:
            source: 配置映射（type/url/tag/凭据字段）或 RepositoryDescriptor

        返回:
            RetrievalResult: 实际 revision 的描述符、工作目录和可忽略路径

        示例:
            >>> service.retrieve({"type": "git", "url": "https://example.com/r.git", "tag": "v1"})
        """
        repo = source if isinstance(source, RepositoryDescriptor) else self.describe(source)
        retriever = self.retriever_for(repo)
        retrieved = retriever.retrieve()
        logger.info("检出完成: %s @ %s -> %s", retrieved, retrieved.revision, retriever.repo_dir)
        return RetrievalResult(
            repository=retrieved,
            repo_dir=retriever.repo_dir,
            ignorable_paths=retriever.ignorable_paths(),
        )

    def retrieve_named(self, name: str, *, tag_override: str | None = None) -> RetrievalResult:
        """检出目录中登记的仓库，成功后记录 revision"""
        catalog = self._require_catalog()
        config = catalog.config_of(name)
        if config is None:
            raise ConfigError(f"仓库未登记: {name}")
        if tag_override:
            config["tag"] = tag_override
        result = self.retrieve(config)
        catalog.record_revision(name, result.repository.revision)
        return result

    def _require_catalog(self) -> RepoCatalog:
        if self.catalog is None:
            raise ConfigError("未配置仓库目录")
        return self.catalog

    # ---- 工作目录 ----

    def list_workspaces(self) -> list[dict[str, Any]]:
        """base_dir 下已有的检出目录"""
        if not self.base_dir.is_dir():
            return []
        workspaces: list[dict[str, Any]] = []
        for path in sorted(self.base_dir.iterdir()):
            if not path.is_dir() or not _is_repository_hash(path.name):
                continue
            markers = [m for m in (".git", ".svn") if (path / m).exists()]
            workspaces.append({
                "repository_hash": path.name,
                "path": str(path),
                "kind": markers[0].lstrip(".") if markers else "download",
            })
        return workspaces

    def clean(self, repository_hash: str) -> bool:
        """删除一个检出目录，不存在时返回 False"""
        if not _is_repository_hash(repository_hash):
            raise InvalidRepositoryError(f"非法的仓库哈希: {repository_hash}")
        path = self.base_dir / repository_hash
        if not path.is_dir():
            return False
        shutil.rmtree(path)
        logger.info("已清理检出目录: %s", path)
        return True


def _is_repository_hash(name: str) -> bool:
    return len(name) == _HASH_LEN and all(c in "0123456789abcdef" for c in name)
