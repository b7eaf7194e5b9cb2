"""检出器 — 按仓库类型选择检出实现

用法:
    factory = RetrieverFactory()
    retriever = factory.build(repo, RetrieverOptions(base_dir="data/checkouts"))
    repo = retriever.retrieve()

mock 类型没有内置实现，由调用方通过 overrides 提供。
"""

from __future__ import annotations

import logging
from typing import Mapping

from reposcraper.core.availability import ToolAvailability
from reposcraper.core.exceptions import RetrieverUnavailableError
from reposcraper.core.models import RepositoryDescriptor, RepoType
from reposcraper.services.retrieval.base import CheckoutRetriever, Retriever, RetrieverOptions
from reposcraper.services.retrieval.download import DownloadRetriever
from reposcraper.services.retrieval.git import GitRetriever
from reposcraper.services.retrieval.svn import SvnClient, SvnRetriever
from reposcraper.utils.shell import CommandExecutor

__all__ = [
    "CheckoutRetriever",
    "DownloadRetriever",
    "GitRetriever",
    "RETRIEVER_CLASSES",
    "Retriever",
    "RetrieverFactory",
    "RetrieverOptions",
    "SvnClient",
    "SvnRetriever",
]

logger = logging.getLogger(__name__)

RETRIEVER_CLASSES: dict[RepoType, type[Retriever]] = {
    RepoType.GIT: GitRetriever,
    RepoType.SVN: SvnRetriever,
    RepoType.DOWNLOAD: DownloadRetriever,
}


class RetrieverFactory:
    """检出器工厂，同一工厂构造的检出器共享执行器和可用性缓存"""

    def __init__(
        self,
        *,
        executor: CommandExecutor | None = None,
        availability: ToolAvailability | None = None,
        overrides: Mapping[RepoType | str, type[Retriever]] | None = None,
    ) -> None:
        self.executor = executor
        self.availability = availability or ToolAvailability()
        self._classes: dict[RepoType, type[Retriever]] = dict(RETRIEVER_CLASSES)
        for repo_type, cls in (overrides or {}).items():
            self._classes[RepoType(repo_type)] = cls

    def retriever_class(self, repo_type: RepoType) -> type[Retriever]:
        cls = self._classes.get(repo_type)
        if cls is None:
            raise RetrieverUnavailableError(f"没有可用于 {repo_type.value} 类型的检出器")
        return cls

    def build(self, repository: RepositoryDescriptor, options: RetrieverOptions) -> Retriever:
        """按仓库类型构造检出器，共享本工厂的执行器和客户端可用性缓存

        示例:
            >>> factory = RetrieverFactory()
            >>> factory.build(RepositoryDescriptor(RepoType.GIT, url), RetrieverOptions(base_dir="data/checkouts"))
        """
        cls = self.retriever_class(repository.repo_type)
        logger.debug("检出器: %s -> %s", repository, cls.__name__)
        return cls(
            repository,
            options,
            executor=self.executor,
            availability=self.availability,
        )
