"""临时 SSH agent

git 私钥只在一次检出期间有效：
    with ssh_agent(executor) as agent:
        agent.add_key(private_key)
        executor.run([...], env={**os.environ, **agent.env})
离开 with 块（正常返回、异常或中断）时 agent 一定会被终止。
"""

from __future__ import annotations

import logging
import os
import re
from contextlib import contextmanager
from typing import Iterator

from reposcraper.core.exceptions import ProcessExecutionError
from reposcraper.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

_AGENT_VAR = re.compile(r"^(SSH_AUTH_SOCK|SSH_AGENT_PID)=([^;]+);", re.MULTILINE)

AGENT_TIMEOUT = 30


class SshAgent:
    """单个 ssh-agent 进程的句柄"""

    def __init__(self, executor: CommandExecutor) -> None:
        self._executor = executor
        self.env: dict[str, str] = {}

    @property
    def running(self) -> bool:
        return "SSH_AGENT_PID" in self.env

    def start(self) -> None:
        result = self._executor.run(["ssh-agent", "-s"], max_seconds=AGENT_TIMEOUT)
        found = dict(_AGENT_VAR.findall(result.stdout))
        if "SSH_AUTH_SOCK" not in found or "SSH_AGENT_PID" not in found:
            raise ProcessExecutionError(f"无法解析 ssh-agent 输出: {result.stdout.strip()[:200]}")
        self.env = found
        logger.debug("ssh-agent 已启动: pid=%s", found["SSH_AGENT_PID"])

    def add_key(self, key: str) -> None:
        """通过 stdin 添加私钥，私钥不落盘"""
        if not key.endswith("\n"):
            key += "\n"
        self._executor.run(
            ["ssh-add", "-"],
            env=self._child_env(),
            input=key,
            max_seconds=AGENT_TIMEOUT,
        )

    def stop(self) -> None:
        if not self.running:
            return
        try:
            self._executor.run(["ssh-agent", "-k"], env=self._child_env(), max_seconds=AGENT_TIMEOUT)
            logger.debug("ssh-agent 已终止: pid=%s", self.env["SSH_AGENT_PID"])
        finally:
            self.env = {}

    def _child_env(self) -> dict[str, str]:
        return {**os.environ, **self.env}


@contextmanager
def ssh_agent(executor: CommandExecutor) -> Iterator[SshAgent]:
    """启动临时 agent，退出时保证终止

    参数:
        executor: 执行 ssh-agent / ssh-add 的命令执行器

    返回:
        SshAgent: 已启动的 agent，env 含 SSH_AUTH_SOCK / SSH_AGENT_PID

    with 块内已有异常时，终止 agent 的失败只记录日志，向外抛出的仍是原异常。
    """
    agent = SshAgent(executor)
    agent.start()
    try:
        yield agent
    except BaseException:
        try:
            agent.stop()
        except ProcessExecutionError as e:
            logger.error("ssh-agent 终止失败（保留原异常）: %s", e)
        raise
    agent.stop()
