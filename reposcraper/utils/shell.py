"""Shell 命令执行工具 — 统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，方便测试替换。
默认实现 BoundedExecutor 在子进程运行期间监控耗时和目录大小，
超限立即终止子进程并抛出 ResourceLimitError。
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Protocol, Sequence

from reposcraper.core.exceptions import ProcessExecutionError, ResourceLimitError
from reposcraper.utils.logger import redact

logger = logging.getLogger(__name__)

# 阶段回调: (phase, command)，phase 取值 start / exit / timeout / size_exceeded
PhaseCallback = Callable[[str, Sequence[str]], None]


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return self.stdout + self.stderr


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议

    max_bytes / max_seconds 为 None 或负数表示不限制。
    check=True 时非零退出码抛出 ProcessExecutionError。
    """

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: str | Path = ".",
        env: Mapping[str, str] | None = None,
        max_bytes: int | None = None,
        max_seconds: float | None = None,
        input: str | None = None,
        on_phase: PhaseCallback | None = None,
        watch_dir: str | Path | None = None,
        check: bool = True,
    ) -> CommandResult:
        ...


def _limited(limit: float | None) -> bool:
    return limit is not None and limit >= 0


def directory_size(path: str | Path) -> int:
    """目录下所有文件大小之和（不跟随符号链接）"""
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += os.lstat(os.path.join(root, name)).st_size
            except OSError:
                # 遍历期间文件被子进程删除
                continue
    return total


# =========================================================================
# 默认实现: 带资源限制的本地执行器
# =========================================================================

class BoundedExecutor:
    """本地子进程执行器，按时间和目录大小限制子进程"""

    poll_interval = 0.1
    size_check_interval = 1.0

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: str | Path = ".",
        env: Mapping[str, str] | None = None,
        max_bytes: int | None = None,
        max_seconds: float | None = None,
        input: str | None = None,
        on_phase: PhaseCallback | None = None,
        watch_dir: str | Path | None = None,
        check: bool = True,
    ) -> CommandResult:
        args = [str(a) for a in cmd]
        # label 会进入日志和异常信息，不能带出密码
        label = redact(shlex.join(args))
        watch = Path(watch_dir if watch_dir is not None else cwd)

        def notify(phase: str) -> None:
            if on_phase is not None:
                on_phase(phase, args)

        logger.debug("执行: %s (cwd=%s)", label, cwd)
        try:
            proc = subprocess.Popen(
                args,
                cwd=str(cwd),
                env=dict(env) if env is not None else None,
                stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise ProcessExecutionError(f"无法启动命令 {args[0]}: {e}") from e
        notify("start")

        captured: dict[str, str] = {}

        def communicate() -> None:
            captured["stdout"], captured["stderr"] = proc.communicate(input)

        reader = threading.Thread(target=communicate, daemon=True)
        reader.start()
        started = last_size_check = time.monotonic()
        try:
            while True:
                reader.join(self.poll_interval)
                if not reader.is_alive():
                    break
                now = time.monotonic()
                if _limited(max_seconds) and now - started > max_seconds:
                    self._terminate(proc, reader)
                    notify("timeout")
                    raise ResourceLimitError(f"{label} 超时 ({max_seconds} 秒)，已终止")
                if _limited(max_bytes) and now - last_size_check >= self.size_check_interval:
                    last_size_check = now
                    if watch.exists() and directory_size(watch) > max_bytes:
                        self._terminate(proc, reader)
                        notify("size_exceeded")
                        raise ResourceLimitError(f"{label} 写入超过 {max_bytes} 字节，已终止")
        except BaseException:
            # 包括 KeyboardInterrupt：不留下孤儿进程
            self._terminate(proc, reader)
            raise

        result = CommandResult(
            returncode=proc.returncode,
            stdout=captured.get("stdout", ""),
            stderr=captured.get("stderr", ""),
        )
        notify("exit")
        if check and not result.success:
            raise ProcessExecutionError(
                f"{label} 失败 (rc={result.returncode}): {redact(result.stderr.strip()[:500])}",
                returncode=result.returncode,
                output=redact(result.output),
            )
        return result

    @staticmethod
    def _terminate(proc: subprocess.Popen[str], reader: threading.Thread) -> None:
        if proc.poll() is None:
            proc.kill()
        reader.join(5)


# =========================================================================
# 全局默认执行器（可替换）
# =========================================================================

_default_executor: CommandExecutor = BoundedExecutor()


def get_executor() -> CommandExecutor:
    """获取全局默认命令执行器"""
    return _default_executor


def set_executor(executor: CommandExecutor) -> None:
    """替换全局默认命令执行器（用于测试或远程执行场景）"""
    global _default_executor  # noqa: PLW0603
    _default_executor = executor
