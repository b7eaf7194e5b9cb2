"""临时 SSH agent 测试（假执行器，不启动真实 ssh-agent）"""

from __future__ import annotations

import logging
from typing import Any

import pytest

from reposcraper.core.exceptions import ProcessExecutionError
from reposcraper.utils.shell import CommandResult
from reposcraper.utils.ssh_agent import SshAgent, ssh_agent

AGENT_OUTPUT = (
    "SSH_AUTH_SOCK=/tmp/ssh-abc/agent.123; export SSH_AUTH_SOCK;\n"
    "SSH_AGENT_PID=124; export SSH_AGENT_PID;\n"
    "echo Agent pid 124;\n"
)


class FakeExecutor:
    def __init__(self, agent_output: str = AGENT_OUTPUT, fail_add: bool = False, fail_kill: bool = False) -> None:
        self.agent_output = agent_output
        self.fail_add = fail_add
        self.fail_kill = fail_kill
        self.calls: list[tuple[list[str], dict[str, Any]]] = []

    def run(self, cmd: Any, **kwargs: Any) -> CommandResult:
        cmd = list(cmd)
        self.calls.append((cmd, kwargs))
        if cmd == ["ssh-agent", "-s"]:
            return CommandResult(0, self.agent_output, "")
        if cmd[0] == "ssh-add" and self.fail_add:
            raise ProcessExecutionError("ssh-add 失败", returncode=1)
        if cmd == ["ssh-agent", "-k"] and self.fail_kill:
            raise ProcessExecutionError("ssh-agent kill 失败", returncode=1)
        return CommandResult(0, "", "")

    def commands(self) -> list[list[str]]:
        return [c for c, _ in self.calls]


class TestSshAgent:
    def test_start_parses_env(self) -> None:
        agent = SshAgent(FakeExecutor())
        agent.start()
        assert agent.env == {"SSH_AUTH_SOCK": "/tmp/ssh-abc/agent.123", "SSH_AGENT_PID": "124"}
        assert agent.running

    def test_unparsable_output(self) -> None:
        agent = SshAgent(FakeExecutor(agent_output="garbage"))
        with pytest.raises(ProcessExecutionError, match="无法解析"):
            agent.start()
        assert not agent.running

    def test_add_key_via_stdin(self) -> None:
        executor = FakeExecutor()
        agent = SshAgent(executor)
        agent.start()
        agent.add_key("-----BEGIN KEY-----\nabc\n-----END KEY-----")
        cmd, kwargs = executor.calls[-1]
        assert cmd == ["ssh-add", "-"]
        assert kwargs["input"].endswith("-----END KEY-----\n")
        assert kwargs["env"]["SSH_AUTH_SOCK"] == "/tmp/ssh-abc/agent.123"
        # 私钥不出现在命令行参数中
        assert all("BEGIN KEY" not in arg for arg in cmd)

    def test_stop_kills_agent(self) -> None:
        executor = FakeExecutor()
        agent = SshAgent(executor)
        agent.start()
        agent.stop()
        assert executor.commands()[-1] == ["ssh-agent", "-k"]
        assert executor.calls[-1][1]["env"]["SSH_AGENT_PID"] == "124"
        assert not agent.running

    def test_stop_when_not_started_is_noop(self) -> None:
        executor = FakeExecutor()
        SshAgent(executor).stop()
        assert executor.calls == []


class TestScopedAgent:
    def test_teardown_on_success(self) -> None:
        executor = FakeExecutor()
        with ssh_agent(executor) as agent:
            agent.add_key("key")
        assert executor.commands() == [["ssh-agent", "-s"], ["ssh-add", "-"], ["ssh-agent", "-k"]]

    def test_teardown_on_error(self) -> None:
        executor = FakeExecutor(fail_add=True)
        with pytest.raises(ProcessExecutionError):
            with ssh_agent(executor) as agent:
                agent.add_key("key")
        assert executor.commands()[-1] == ["ssh-agent", "-k"]

    def test_teardown_failure_keeps_original_error(self, caplog: pytest.LogCaptureFixture) -> None:
        executor = FakeExecutor(fail_add=True, fail_kill=True)
        with caplog.at_level(logging.ERROR), pytest.raises(ProcessExecutionError, match="ssh-add 失败"):
            with ssh_agent(executor) as agent:
                agent.add_key("key")
        assert executor.commands()[-1] == ["ssh-agent", "-k"]
        assert "ssh-agent 终止失败" in caplog.text

    def test_teardown_failure_raised_after_success(self) -> None:
        executor = FakeExecutor(fail_kill=True)
        with pytest.raises(ProcessExecutionError, match="kill 失败"):
            with ssh_agent(executor) as agent:
                agent.add_key("key")

    def test_teardown_on_interrupt(self) -> None:
        executor = FakeExecutor()
        with pytest.raises(KeyboardInterrupt):
            with ssh_agent(executor):
                raise KeyboardInterrupt
        assert executor.commands()[-1] == ["ssh-agent", "-k"]
