"""Git 检出器

首次检出: clone -> fetch -> 解析引用 -> 记录 HEAD
增量更新: fetch -> reset --hard -> 解析引用 -> 记录 HEAD

引用解析规则（tag 为 None 时跟随远程默认分支 origin/HEAD，每次更新都前进到最新提交）:
  1. 名称同时是标签和分支 -> AmbiguousReferenceError，不猜测
  2. 存在同名远程分支   -> 检出并跟踪远程分支
  3. 存在同名本地分支   -> 检出本地分支
  4. 否则按 revision / 标签直接检出（detached HEAD）
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

from reposcraper.core.exceptions import AmbiguousReferenceError, InvalidRepositoryError
from reposcraper.services.retrieval.base import CheckoutRetriever
from reposcraper.utils.shell import CommandResult
from reposcraper.utils.ssh_agent import ssh_agent

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "master"
ORIGIN_HEAD = "refs/remotes/origin/HEAD"
REMOTES_PREFIX = "refs/remotes/"

# 允许 revision 表达式（HEAD~1、v1^{commit}）；以 - 开头的名称另行拒绝
_SAFE_REF_RE = re.compile(r"^[A-Za-z0-9_./@+~^{}\-]+$")


class GitRetriever(CheckoutRetriever):
    """Git 仓库检出器"""

    tool = "git"
    marker = ".git"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._agent_env: dict[str, str] = {}

    def _retrieve(self) -> None:
        key = self.repository.first_credential
        if key is None:
            super()._retrieve()
            return
        # 私钥只在本次检出期间存在于临时 agent 中
        with self._operation("ssh_agent"), ssh_agent(self.executor) as agent:
            with self._operation("add_key"):
                agent.add_key(key)
            self._agent_env = agent.env
            try:
                super()._retrieve()
            finally:
                self._agent_env = {}

    def command_env(self) -> dict[str, str]:
        return {**os.environ, "GIT_TERMINAL_PROMPT": "0", **self._agent_env}

    # ---- 状态机 ----

    def do_checkout(self) -> None:
        super().do_checkout()
        with self._operation("cloning", f"to {self.repo_dir}"):
            self._git("clone", "--quiet", "--", self.repository.url, str(self.repo_dir), cwd=self.base_dir)
        self._fetch()
        self._checkout_revision()
        self._update_tag()

    def do_update(self) -> None:
        self._fetch()
        with self._operation("reset"):
            # 增量更新不保留本地修改
            self._git("reset", "--hard", "--quiet")
        self._checkout_revision()
        self._update_tag()

    # ---- 步骤 ----

    def _fetch(self) -> None:
        with self._operation("fetch"):
            # 先删光本地标签，避免远程已删除的标签残留并与分支同名冲突
            tags = self._tags()
            if tags:
                self._git("tag", "-d", *tags)
            self._git("fetch", "--all", "--prune", "--tags", "--quiet")

    def repo_tag(self) -> str | None:
        tag = self.repository.tag
        if tag is None:
            return None
        return tag.strip() or DEFAULT_BRANCH

    def _checkout_revision(self) -> None:
        name = self.repo_tag()
        if name is None:
            self._follow_default_branch()
            return
        with self._operation("checkout_revision", name):
            if name.startswith("-") or not _SAFE_REF_RE.match(name):
                raise InvalidRepositoryError(f"git 引用包含非法字符: {name}")
            tags = set(self._tags())
            local = set(self._local_branches())
            remote = self._remote_branches()
            if name in tags and (name in local or name in remote):
                raise AmbiguousReferenceError(f"引用有歧义: '{name}' 同时是分支和标签")
            if name in remote:
                self._git("checkout", "--quiet", "-B", name, "--track", remote[name])
            else:
                # 本地分支、标签或 commit 均可直接检出
                self._git("checkout", "--quiet", name, "--")

    def _follow_default_branch(self) -> None:
        """未指定 tag：把默认分支重置到 origin/HEAD 指向的远程分支"""
        with self._operation("checkout_default_branch"):
            symref = self._git("for-each-ref", "--format=%(symref)", ORIGIN_HEAD).stdout.strip()
            if not symref.startswith(REMOTES_PREFIX):
                # 空仓库或远程未声明默认分支，保持 clone 时的状态
                logger.debug("远程未声明默认分支: %s", self.repository)
                return
            remote_ref = symref[len(REMOTES_PREFIX):]
            branch = remote_ref.partition("/")[2]
            self._git("checkout", "--quiet", "-B", branch, "--track", remote_ref)

    def _update_tag(self) -> None:
        with self._operation("update_tag"):
            sha = self._git("rev-parse", "HEAD").stdout.strip()
        self.repository = self.repository.with_tag(sha)
        logger.info("已检出 %s @ %s", self.repository, sha)

    # ---- 引用查询 ----

    def _refs(self, prefix: str) -> list[str]:
        out = self._git("for-each-ref", "--format=%(refname)", prefix.rstrip("/")).stdout
        return [line.strip()[len(prefix):] for line in out.splitlines() if line.strip()]

    def _tags(self) -> list[str]:
        return self._refs("refs/tags/")

    def _local_branches(self) -> list[str]:
        return self._refs("refs/heads/")

    def _remote_branches(self) -> dict[str, str]:
        """分支名 -> 远程跟踪引用（如 feature -> origin/feature）"""
        branches: dict[str, str] = {}
        for ref in self._refs("refs/remotes/"):
            remote, _, name = ref.partition("/")
            if name and name != "HEAD":
                branches.setdefault(name, f"{remote}/{name}")
        return branches

    def _git(self, *args: str, cwd: str | Path | None = None) -> CommandResult:
        return self._run(["git", *args], cwd=cwd)
