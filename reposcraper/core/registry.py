"""注册表

- RepositoryRegistry: 仓库类型 -> 描述符构造函数，由组装方显式传入注册列表
- YamlRegistry: YAML 文件注册表基类，RepoCatalog 等按名称持久化的目录继承它
"""

from __future__ import annotations

import logging
from functools import partial
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from reposcraper.core.exceptions import UnknownRepositoryTypeError
from reposcraper.core.models import RepositoryDescriptor, RepoType, useful_credential
from reposcraper.utils.net import Resolver, validate_uri
from reposcraper.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)

DescriptorConstructor = Callable[..., RepositoryDescriptor]

# from_config 可识别的字段（repo_type 单独处理）
CONFIG_FIELDS = (
    "url", "first_credential", "second_credential",
    "tag", "display_name", "resources_path",
)
_CREDENTIAL_FIELDS = frozenset(("first_credential", "second_credential"))

DEFAULT_REPOSITORY_TYPES: tuple[tuple[str, DescriptorConstructor], ...] = tuple(
    (t.value, partial(RepositoryDescriptor, repo_type=t))
    for t in (RepoType.GIT, RepoType.SVN, RepoType.DOWNLOAD, RepoType.MOCK)
)


class RepositoryRegistry:
    """仓库类型注册表

    用法:
        registry = RepositoryRegistry(DEFAULT_REPOSITORY_TYPES)
        repo = registry.from_config({"repo_type": "git", "url": "https://..."})
    """

    def __init__(
        self, registrations: Iterable[tuple[str, DescriptorConstructor]] = (),
    ) -> None:
        self._constructors: dict[str, DescriptorConstructor] = {}
        for repo_type, constructor in registrations:
            self.register(repo_type, constructor)

    def register(self, repo_type: str, constructor: DescriptorConstructor) -> None:
        self._constructors[str(repo_type)] = constructor

    def types(self) -> list[str]:
        return sorted(self._constructors)

    def from_config(
        self,
        config: Mapping[str, Any],
        *,
        trust_input: bool = False,
        resolver: Resolver | None = None,
    ) -> RepositoryDescriptor:
        """按配置映射构造描述符

        trust_input=True 时跳过 URL 校验，仅用于开发模式。

        Raises:
            UnknownRepositoryTypeError: repo_type 未注册
            InvalidRepositoryError: URL 校验失败
        """
        raw_type = config.get("repo_type")
        repo_type = raw_type.value if isinstance(raw_type, RepoType) else str(raw_type or "")
        constructor = self._constructors.get(repo_type)
        if constructor is None:
            raise UnknownRepositoryTypeError(
                f"不支持的仓库类型: {repo_type or '<空>'}，可用: {self.types()}"
            )

        url = str(config.get("url") or "")
        if trust_input:
            logger.debug("开发模式，跳过 URL 校验: %s", url)
        else:
            validate_uri(url, resolver=resolver)

        fields: dict[str, Any] = {}
        for key, value in config.items():
            if key == "repo_type":
                continue
            if key not in CONFIG_FIELDS:
                logger.debug("忽略未知仓库配置项: %s", key)
                continue
            if key in _CREDENTIAL_FIELDS:
                value = useful_credential(value)
            if value is None:
                continue
            fields[key] = value
        fields["url"] = url
        return constructor(**fields)


def default_registry() -> RepositoryRegistry:
    """内置 git / svn / download / mock 四种类型的注册表"""
    return RepositoryRegistry(DEFAULT_REPOSITORY_TYPES)


class YamlRegistry:
    """以 YAML 文件为存储的命名条目集合

    条目存放在顶层 section_key 之下；private=True 时文件以 0600 写入，
    用于可能含有凭据的目录文件。
    """

    section_key: str = "entries"
    private: bool = False

    def __init__(self, registry_file: str) -> None:
        self.registry_file = Path(registry_file)
        self._data: dict[str, Any] = load_yaml(self.registry_file)

    def _section(self) -> dict[str, dict[str, Any]]:
        result: dict[str, dict[str, Any]] = self._data.setdefault(self.section_key, {})
        return result

    def _save(self) -> None:
        save_yaml(self.registry_file, self._data, private=self.private)

    def _put(self, name: str, entry: dict[str, Any]) -> dict[str, Any]:
        self._section()[name] = entry
        self._save()
        return entry

    def _get_raw(self, name: str) -> dict[str, Any] | None:
        return self._section().get(name)

    def _list_raw(self) -> list[dict[str, Any]]:
        return [{"name": k, **v} for k, v in self._section().items()]

    def _remove(self, name: str) -> bool:
        section = self._section()
        if name not in section:
            return False
        del section[name]
        self._save()
        return True
