"""BoundedExecutor 单元测试"""

from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

from reposcraper.core.exceptions import ProcessExecutionError, ResourceLimitError
from reposcraper.utils.shell import BoundedExecutor, directory_size, get_executor, set_executor


class TestBoundedExecutor:
    def test_success(self, tmp_path: Path) -> None:
        r = BoundedExecutor().run(["echo", "hello"], cwd=tmp_path)
        assert r.success
        assert r.stdout.strip() == "hello"

    def test_failure_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ProcessExecutionError) as exc_info:
            BoundedExecutor().run(["sh", "-c", "echo oops >&2; exit 3"], cwd=tmp_path)
        assert exc_info.value.returncode == 3
        assert "oops" in exc_info.value.output
        assert not isinstance(exc_info.value, ResourceLimitError)

    def test_check_false_returns_result(self, tmp_path: Path) -> None:
        r = BoundedExecutor().run(["false"], cwd=tmp_path, check=False)
        assert r.returncode != 0
        assert not r.success

    def test_missing_binary(self, tmp_path: Path) -> None:
        with pytest.raises(ProcessExecutionError, match="无法启动命令"):
            BoundedExecutor().run(["definitely-not-a-real-binary-xyz"], cwd=tmp_path)

    def test_env_and_input(self, tmp_path: Path) -> None:
        env = {**os.environ, "MY_TEST_VAR": "42"}
        r = BoundedExecutor().run(["sh", "-c", "echo $MY_TEST_VAR; cat"], cwd=tmp_path, env=env, input="piped\n")
        assert r.stdout.split() == ["42", "piped"]

    def test_timeout_kills_child(self, tmp_path: Path) -> None:
        phases: list[str] = []
        started = time.monotonic()
        with pytest.raises(ResourceLimitError, match="超时"):
            BoundedExecutor().run(
                ["sleep", "10"], cwd=tmp_path, max_seconds=0.3,
                on_phase=lambda phase, cmd: phases.append(phase),
            )
        assert time.monotonic() - started < 5
        assert phases == ["start", "timeout"]

    def test_size_limit_kills_child(self, tmp_path: Path) -> None:
        executor = BoundedExecutor()
        executor.size_check_interval = 0.1
        phases: list[str] = []
        with pytest.raises(ResourceLimitError, match="字节"):
            executor.run(
                ["sh", "-c", "head -c 200000 /dev/zero > big.bin; sleep 10"],
                cwd=tmp_path, max_bytes=1000,
                on_phase=lambda phase, cmd: phases.append(phase),
            )
        assert phases[-1] == "size_exceeded"

    def test_watch_dir_separate_from_cwd(self, tmp_path: Path) -> None:
        watched = tmp_path / "watched"
        watched.mkdir()
        executor = BoundedExecutor()
        executor.size_check_interval = 0.1
        # 写入 cwd 但只监控 watched，不应触发限制
        r = executor.run(
            ["sh", "-c", "head -c 5000 /dev/zero > big.bin; sleep 0.4"],
            cwd=tmp_path, max_bytes=1000, watch_dir=watched,
        )
        assert r.success

    def test_password_not_in_error(self, tmp_path: Path) -> None:
        with pytest.raises(ProcessExecutionError) as exc_info:
            BoundedExecutor().run(
                ["sh", "-c", 'echo "auth failed: $1 $2" >&2; exit 1', "sh", "--password", "s3cret"],
                cwd=tmp_path,
            )
        assert "s3cret" not in str(exc_info.value)
        assert "--password ***" in str(exc_info.value)

    def test_negative_limits_mean_unlimited(self, tmp_path: Path) -> None:
        phases: list[str] = []
        r = BoundedExecutor().run(
            ["echo", "ok"], cwd=tmp_path, max_bytes=-1, max_seconds=-1,
            on_phase=lambda phase, cmd: phases.append(phase),
        )
        assert r.success
        assert phases == ["start", "exit"]


class TestHelpers:
    def test_directory_size(self, tmp_path: Path) -> None:
        (tmp_path / "a").write_bytes(b"x" * 10)
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "b").write_bytes(b"y" * 5)
        assert directory_size(tmp_path) == 15

    def test_set_executor(self) -> None:
        original = get_executor()
        replacement = BoundedExecutor()
        try:
            set_executor(replacement)
            assert get_executor() is replacement
        finally:
            set_executor(original)
