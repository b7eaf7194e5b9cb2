"""检出器基类

Retriever 负责公共部分：客户端可用性探测、资源限制、操作追踪和错误边界。
CheckoutRetriever 实现“首次克隆 / 已存在则增量更新”的状态机:

    Absent (目录不存在或缺少标记目录) --do_checkout--> Present
    Present (标记目录存在)            --do_update----> Present

两条路径结束时都把 repository.tag 替换为实际检出的 revision。
失败不重试：工作目录保持外部工具留下的状态，repository 不变。
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

from reposcraper.core.availability import ToolAvailability
from reposcraper.core.exceptions import (
    ProcessExecutionError,
    RetrieverUnavailableError,
    ScraperError,
)
from reposcraper.core.models import RepositoryDescriptor
from reposcraper.core.tracing import OperationTracer, Span
from reposcraper.utils.logger import redact
from reposcraper.utils.net import Resolver
from reposcraper.utils.shell import CommandExecutor, CommandResult, get_executor

logger = logging.getLogger(__name__)

# 可用性探测的超时（秒）
VERSION_CHECK_TIMEOUT = 30


@dataclass
class RetrieverOptions:
    """检出器构造参数"""

    base_dir: str | Path
    max_bytes: int | None = None
    max_seconds: float | None = None
    tracer: OperationTracer | None = None
    # 下载重定向目标的校验与描述符构造时一致
    trust_input: bool = False
    resolver: Resolver | None = None


class Retriever:
    """检出器基类，子类实现 _retrieve()"""

    # 需要探测的客户端命令，为空表示不依赖外部客户端
    tool: str = ""
    version_args: tuple[str, ...] = ("--version",)

    def __init__(
        self,
        repository: RepositoryDescriptor,
        options: RetrieverOptions,
        *,
        executor: CommandExecutor | None = None,
        availability: ToolAvailability | None = None,
    ) -> None:
        self.repository = repository
        self.options = options
        self.base_dir = Path(options.base_dir)
        self.max_bytes = options.max_bytes
        self.max_seconds = options.max_seconds
        self._root_tracer = options.tracer or OperationTracer()
        self.tracer = self._root_tracer
        self.executor = executor or get_executor()
        self.availability = availability or ToolAvailability()
        self.repo_dir = self.repo_dir_for(self.base_dir, repository)
        self._span: Span | None = None
        self._failed: Span | None = None

    @staticmethod
    def repo_dir_for(base_dir: str | Path, repository: RepositoryDescriptor) -> Path:
        """检出目录：同一仓库（忽略 tag）始终落在同一目录"""
        return Path(base_dir) / repository.repository_hash

    def ignorable_paths(self) -> list[str]:
        """内容扫描时需要排除的版本控制元数据路径"""
        return []

    # ---- 可用性 ----

    def available(self) -> bool:
        if not self.tool:
            return True
        return self.availability.check(self.tool, self._check_tool)

    def _check_tool(self) -> bool:
        try:
            self.executor.run([self.tool, *self.version_args], max_seconds=VERSION_CHECK_TIMEOUT)
        except ProcessExecutionError as e:
            self.tracer.note_error(e, "available", f"{self.tool} retriever 不可用")
            return False
        return True

    # ---- 检出入口 ----

    def retrieve(self) -> RepositoryDescriptor:
        """执行检出，返回 tag 已替换为实际 revision 的描述符

        工作目录不存在（或缺少 VCS 标记）时走 checkout，否则走 update。
        输入描述符不会被修改；失败时 self.repository 保持原值。

        返回:
            RepositoryDescriptor: tag 为实际 revision（git 提交哈希 / svn 版本号）

        异常:
            RetrieverUnavailableError: 客户端不可用
            ScraperError: 检出过程中的各类失败（已附带操作上下文）
        """
        self.tracer = self._root_tracer.bind(self.repository)
        if not self.available():
            raise RetrieverUnavailableError(f"{self.tool} retriever 不可用")
        with self._boundary(), self._operation("retrieve", str(self.repository)):
            self._retrieve()
        return self.repository

    def _retrieve(self) -> None:
        raise NotImplementedError

    # ---- 追踪与错误边界 ----

    @contextmanager
    def _operation(self, type: str, explanation: str = "") -> Iterator[Span]:
        """以当前操作为父节点开启子操作"""
        with self.tracer.operation(type, explanation, parent=self._span) as span:
            outer, self._span = self._span, span
            try:
                yield span
            except Exception:
                if self._failed is None:
                    self._failed = span
                raise
            finally:
                self._span = outer

    @contextmanager
    def _boundary(self) -> Iterator[None]:
        """唯一的错误边界：附加失败操作的上下文，并把底层异常统一为 ScraperError"""
        original = self.repository
        self._failed = None
        try:
            yield
        except ScraperError as e:
            self.repository = original
            if self._failed is not None:
                e.add_context(self._failed.context())
            raise
        except (OSError, subprocess.SubprocessError) as e:
            self.repository = original
            where = self._failed.context() if self._failed is not None else "retrieve"
            error = ProcessExecutionError(f"{where} 失败: {e}")
            error.add_context(where)
            raise error from e

    # ---- 子进程 ----

    def command_env(self) -> dict[str, str] | None:
        """子进程环境变量，None 表示继承当前进程"""
        return None

    def _run(self, cmd: Sequence[str], *, cwd: str | Path | None = None) -> CommandResult:
        return self.executor.run(
            cmd,
            cwd=cwd if cwd is not None else self.repo_dir,
            env=self.command_env(),
            max_bytes=self.max_bytes,
            max_seconds=self.max_seconds,
            on_phase=self._on_phase,
            watch_dir=self.repo_dir,
        )

    @staticmethod
    def _on_phase(phase: str, cmd: Sequence[str]) -> None:
        if phase in ("timeout", "size_exceeded"):
            logger.warning("子进程超限 (%s): %s", phase, redact(shlex.join(cmd)))


class CheckoutRetriever(Retriever):
    """基于版本控制检出的检出器"""

    # 检出目录中标识已检出状态的元数据目录，如 .git / .svn
    marker: str = ""

    def exists(self) -> bool:
        return (self.repo_dir / self.marker).exists()

    def ignorable_paths(self) -> list[str]:
        return [self.marker]

    def _retrieve(self) -> None:
        if self.exists():
            logger.info("增量更新: %s -> %s", self.repository, self.repo_dir)
            self.do_update()
        else:
            logger.info("首次检出: %s -> %s", self.repository, self.repo_dir)
            self.do_checkout()

    def do_checkout(self) -> None:
        """准备空的检出目录，子类在此之后执行克隆"""
        self.base_dir.mkdir(parents=True, exist_ok=True)
        if self.repo_dir.exists():
            # 残留目录缺少标记目录，无法增量更新
            logger.warning("清理无效检出目录: %s", self.repo_dir)
            shutil.rmtree(self.repo_dir)

    def do_update(self) -> None:
        raise NotImplementedError
