"""Subversion 检出器

SvnClient 封装 svn 命令行：版本门槛、认证参数和 revision 参数。
SvnRetriever 在其上实现 checkout / update 状态机。
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

from reposcraper.core.exceptions import ProcessExecutionError, VersionUnsupportedError
from reposcraper.services.retrieval.base import CheckoutRetriever
from reposcraper.utils.shell import CommandExecutor, CommandResult

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"(\d+)\.(\d+)")
_REVISION_RE = re.compile(r"^Revision:\s*(\d+)\s*$", re.MULTILINE)
_NUMERIC_RE = re.compile(r"^\d+$")


def coerce_revision(tag: int | str | None) -> int | str | None:
    """数字 tag 转为 revision 号，其余（如 HEAD）原样保留

    tag 在存储中总是字符串，即使语义上是数字。
    """
    if tag is None or isinstance(tag, int):
        return tag
    if _NUMERIC_RE.match(tag):
        return int(tag)
    return tag


class SvnClient:
    """svn 命令行客户端

    版本号每个实例只探测一次。
    """

    def __init__(
        self,
        executor: CommandExecutor,
        *,
        username: str | None = None,
        password: str | None = None,
        cwd: str | Path = ".",
        watch_dir: str | Path | None = None,
        max_bytes: int | None = None,
        max_seconds: float | None = None,
    ) -> None:
        self._executor = executor
        self._username = username
        self._password = password
        self._cwd = cwd
        self._watch_dir = watch_dir
        self._max_bytes = max_bytes
        self._max_seconds = max_seconds
        self._version: tuple[int, int] | None = None

    def calculate_version(self) -> tuple[int, int]:
        if self._version is None:
            out = self._exec(["svn", "--version", "--quiet"]).stdout
            match = _VERSION_RE.search(out)
            if match is None:
                raise VersionUnsupportedError(f"无法识别 svn 版本: {out.strip()[:100]}")
            self._version = (int(match.group(1)), int(match.group(2)))
            logger.debug("svn 版本: %d.%d", *self._version)
        return self._version

    def svn_arguments(self) -> list[str]:
        """每条 svn 命令都要附带的认证参数"""
        major, minor = self.calculate_version()
        if major != 1:
            raise VersionUnsupportedError(f"svn 主版本为 {major}，仅支持 1.x")
        if minor < 4:
            raise VersionUnsupportedError(f"svn 版本 1.{minor} 过低，至少需要 1.4")
        args = ["--no-auth-cache", "--non-interactive"]
        if minor >= 6:
            # --trust-server-cert 从 1.6 开始提供
            args.append("--trust-server-cert")
        if self._username and self._password:
            args += ["--username", self._username, "--password", self._password]
        return args

    @staticmethod
    def revision_argument(revision: int | str | None) -> list[str]:
        return ["-r", "HEAD" if revision is None else str(revision)]

    def checkout(self, url: str, dest: str | Path, revision: int | str | None = None) -> CommandResult:
        return self.run_svn("checkout", *self.revision_argument(revision), "--", url, str(dest))

    def update(self, dest: str | Path, revision: int | str | None = None) -> CommandResult:
        return self.run_svn("update", *self.revision_argument(revision), "--", str(dest))

    def revision_of(self, dest: str | Path) -> int:
        """工作副本当前的 revision"""
        out = self.run_svn("info", "--", str(dest)).stdout
        match = _REVISION_RE.search(out)
        if match is None:
            raise ProcessExecutionError(f"svn info 输出中没有 Revision: {dest}", output=out)
        return int(match.group(1))

    def run_svn(self, subcommand: str, *args: str) -> CommandResult:
        return self._exec(["svn", subcommand, *self.svn_arguments(), *args])

    def _exec(self, cmd: list[str]) -> CommandResult:
        return self._executor.run(
            cmd,
            cwd=self._cwd,
            # 固定英文输出，svn info 解析依赖 "Revision:" 字样
            env={**os.environ, "LC_ALL": "C"},
            max_bytes=self._max_bytes,
            max_seconds=self._max_seconds,
            watch_dir=self._watch_dir,
        )


class SvnRetriever(CheckoutRetriever):
    """Subversion 仓库检出器"""

    tool = "svn"
    version_args = ("--version", "--quiet")
    marker = ".svn"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.client = SvnClient(
            self.executor,
            username=self.repository.first_credential,
            password=self.repository.second_credential,
            cwd=self.base_dir,
            watch_dir=self.repo_dir,
            max_bytes=self.max_bytes,
            max_seconds=self.max_seconds,
        )

    def get_tag(self) -> int | str | None:
        """当前 tag 对应的 svn revision 参数；None 表示 HEAD"""
        return coerce_revision(self.repository.tag)

    def do_checkout(self) -> None:
        super().do_checkout()
        revision = self.get_tag()
        with self._operation("checkout_revision", f"to {self.repo_dir}"):
            self.client.checkout(self.repository.url, self.repo_dir, revision)
        self._update_tag()

    def do_update(self) -> None:
        revision = self.get_tag()
        with self._operation("update"):
            self.client.update(self.repo_dir, revision)
        self._update_tag()

    def _update_tag(self) -> None:
        with self._operation("update_tag"):
            revision = self.client.revision_of(self.repo_dir)
        self.repository = self.repository.with_tag(str(revision))
        logger.info("已检出 %s @ r%d", self.repository, revision)
