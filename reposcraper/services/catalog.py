"""仓库目录 — 按名称持久化仓库配置

条目即 RepositoryRegistry.from_config 可接受的配置映射，
另外记录最近一次检出得到的 revision（last_revision）。
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from reposcraper.core.exceptions import ConfigError
from reposcraper.core.models import RepositoryDescriptor
from reposcraper.core.registry import CONFIG_FIELDS, RepositoryRegistry, YamlRegistry
from reposcraper.utils.net import Resolver

logger = logging.getLogger(__name__)

_STORED_FIELDS = ("repo_type", *CONFIG_FIELDS)


class RepoCatalog(YamlRegistry):
    """已登记仓库的 YAML 目录"""

    section_key = "repositories"
    # first_credential 可能是私钥或密码
    private = True

    # ---- 注册 / CRUD ----

    def register(
        self,
        name: str,
        config: Mapping[str, Any],
        registry: RepositoryRegistry,
        *,
        trust_input: bool = False,
        resolver: Resolver | None = None,
    ) -> RepositoryDescriptor:
        """校验后登记，同名条目被覆盖"""
        if not name:
            raise ConfigError("仓库名称为必填")
        repo = registry.from_config(config, trust_input=trust_input, resolver=resolver)
        entry = {k: v for k, v in repo.to_config().items() if k in _STORED_FIELDS and v not in (None, "", [])}
        self._put(name, entry)
        logger.info("仓库已登记: %s (%s)", name, repo)
        return repo

    def get(
        self,
        name: str,
        registry: RepositoryRegistry,
        *,
        trust_input: bool = False,
        resolver: Resolver | None = None,
    ) -> RepositoryDescriptor | None:
        """按名称构造描述符；读取时重新校验 URL，DNS 结果可能已变化"""
        config = self.config_of(name)
        if config is None:
            return None
        return registry.from_config(config, trust_input=trust_input, resolver=resolver)

    def config_of(self, name: str) -> dict[str, Any] | None:
        entry = self._get_raw(name)
        if entry is None:
            return None
        return {k: v for k, v in entry.items() if k in _STORED_FIELDS}

    def list_all(self) -> list[dict[str, Any]]:
        return self._list_raw()

    def remove(self, name: str) -> bool:
        if not self._remove(name):
            return False
        logger.info("仓库已移除: %s", name)
        return True

    def record_revision(self, name: str, revision: str | None) -> None:
        entry = self._get_raw(name)
        if entry is None:
            return
        entry["last_revision"] = revision
        self._save()
