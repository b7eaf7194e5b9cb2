"""服务容器

一个容器对应一份 Config。容器内的检出器共享执行器和客户端可用性缓存，
因此 git / svn 在同一进程中只探测一次。CLI 通过 get_container() 取服务。

    scrape  ─┬─ registry
             ├─ factory ── executor, availability
             ├─ catalog (Config.repos_file)
             └─ tracer

示例:
    svc = ServiceContainer(Config.from_file("reposcraper.yml")).scrape
    result = svc.retrieve({"repo_type": "git", "url": "https://..."})
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from reposcraper.core.availability import ToolAvailability
    from reposcraper.core.config import Config
    from reposcraper.core.registry import RepositoryRegistry
    from reposcraper.core.tracing import OperationTracer
    from reposcraper.services.catalog import RepoCatalog
    from reposcraper.services.retrieval import RetrieverFactory
    from reposcraper.services.scrape_service import ScrapeService
    from reposcraper.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器，组件在第一次访问时构造"""

    def __init__(self, config: Config | None = None) -> None:
        if config is None:
            from reposcraper.core.config import get_config
            config = get_config()
        self._config = config
        self._instances: dict[str, Any] = {}

    @property
    def config(self) -> Config:
        return self._config

    def _lazy(self, name: str, build: Callable[[], Any]) -> Any:
        if name not in self._instances:
            self._instances[name] = build()
            logger.debug("容器组件已创建: %s", name)
        return self._instances[name]

    @property
    def executor(self) -> CommandExecutor:
        from reposcraper.utils.shell import get_executor
        return self._lazy("executor", get_executor)

    @property
    def tracer(self) -> OperationTracer:
        from reposcraper.core.tracing import OperationTracer
        return self._lazy("tracer", OperationTracer)

    @property
    def availability(self) -> ToolAvailability:
        from reposcraper.core.availability import ToolAvailability
        return self._lazy("availability", ToolAvailability)

    @property
    def registry(self) -> RepositoryRegistry:
        from reposcraper.core.registry import default_registry
        return self._lazy("registry", default_registry)

    @property
    def factory(self) -> RetrieverFactory:
        from reposcraper.services.retrieval import RetrieverFactory
        return self._lazy(
            "factory",
            lambda: RetrieverFactory(executor=self.executor, availability=self.availability),
        )

    @property
    def catalog(self) -> RepoCatalog:
        from reposcraper.services.catalog import RepoCatalog
        return self._lazy("catalog", lambda: RepoCatalog(self._config.repos_file))

    @property
    def scrape(self) -> ScrapeService:
        from reposcraper.services.scrape_service import ScrapeService
        cfg = self._config
        return self._lazy("scrape", lambda: ScrapeService(
            base_dir=cfg.base_dir,
            registry=self.registry,
            factory=self.factory,
            catalog=self.catalog,
            tracer=self.tracer,
            max_bytes=cfg.max_bytes,
            max_seconds=cfg.max_seconds,
            trust_input=cfg.development_mode,
        ))


# 进程级容器；CLI 加载 --config 后用 set_container 替换
_container: ServiceContainer | None = None
_container_lock = threading.Lock()


def get_container() -> ServiceContainer:
    global _container  # noqa: PLW0603
    with _container_lock:
        if _container is None:
            _container = ServiceContainer()
        return _container


def set_container(container: ServiceContainer | None) -> None:
    global _container  # noqa: PLW0603
    with _container_lock:
        _container = container


def reset_container() -> None:
    """丢弃进程级容器，下次 get_container() 按当前配置重建"""
    set_container(None)
