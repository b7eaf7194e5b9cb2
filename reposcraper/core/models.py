"""核心数据模型

RepositoryDescriptor 描述一个待检出的远程仓库，是检出目录和增量更新的身份依据。
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from reposcraper.utils.net import add_users_to

# 身份哈希的协议版本，变更哈希组成方式时递增
PROTOCOL_VERSION = 1


class RepoType(str, Enum):
    """仓库类型"""

    GIT = "git"
    SVN = "svn"
    DOWNLOAD = "download"
    MOCK = "mock"


def digest(text: str) -> str:
    """SHA1 十六进制摘要"""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()  # noqa: S324


def useful_credential(value: Any) -> str | None:
    """去掉首尾空白；空串或纯空白视为未提供"""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True, eq=False)
class RepositoryDescriptor:
    """远程仓库描述符（构造后不可变）

    repository_hash 只由类型和 URL 决定，同一仓库的不同 tag 共享检出目录；
    checkout_hash 额外包含 tag。检出成功后通过 with_tag() 得到记录了
    实际 revision 的新描述符。
    """

    repo_type: RepoType
    url: str
    first_credential: str | None = None   # git: SSH 私钥; svn/download: 用户名
    second_credential: str | None = None  # svn/download: 密码
    tag: str | None = None                # 分支 / 标签 / revision
    display_name: str = ""
    resources_path: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "repo_type", RepoType(self.repo_type))
        object.__setattr__(self, "first_credential", useful_credential(self.first_credential))
        object.__setattr__(self, "second_credential", useful_credential(self.second_credential))
        if self.tag is not None and not isinstance(self.tag, str):
            object.__setattr__(self, "tag", str(self.tag))
        if isinstance(self.resources_path, str):
            object.__setattr__(self, "resources_path", (self.resources_path,))
        else:
            object.__setattr__(self, "resources_path", tuple(self.resources_path or ()))

    @property
    def repository_hash(self) -> str:
        return digest(f"{PROTOCOL_VERSION}\0{self.repo_type.value}\0{self.url}")

    @property
    def checkout_hash(self) -> str:
        return digest(f"{PROTOCOL_VERSION}\0{self.repo_type.value}\0{self.url}\0{self.tag or ''}")

    @property
    def revision(self) -> str | None:
        return self.tag

    def equal_repo(self, other: object) -> bool:
        """同一仓库（忽略 tag）"""
        if not isinstance(other, RepositoryDescriptor):
            return False
        return self.repository_hash == other.repository_hash

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RepositoryDescriptor):
            return False
        return self.checkout_hash == other.checkout_hash

    def __hash__(self) -> int:
        return hash(self.checkout_hash)

    def __str__(self) -> str:
        if self.repo_type is RepoType.MOCK:
            return f"mock {self.url}:{self.tag or ''}"
        return f"{self.repo_type.value} {self.url}"

    def to_url(self) -> str:
        """资源 URL：download 嵌入凭据，git/svn 凭据走 SSH agent 或命令行参数"""
        if self.repo_type is RepoType.DOWNLOAD:
            return add_users_to(self.url, self.first_credential, self.second_credential)
        return self.url

    def with_tag(self, tag: str | None) -> RepositoryDescriptor:
        """返回 tag 替换后的新描述符"""
        return replace(self, tag=tag)

    def to_config(self) -> dict[str, Any]:
        """还原为 from_config 可接受的映射"""
        return {
            "repo_type": self.repo_type.value,
            "url": self.url,
            "first_credential": self.first_credential,
            "second_credential": self.second_credential,
            "tag": self.tag,
            "display_name": self.display_name,
            "resources_path": list(self.resources_path),
        }
