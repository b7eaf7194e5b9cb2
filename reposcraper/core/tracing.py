"""操作追踪

每个检出步骤包在 tracer.operation() 中执行：
  - 开始 / 成功 / 失败 三类事件
  - 失败时调用 note_error 输出带上下文的错误日志，然后原样抛出异常
  - 父子关系通过 parent 参数显式传递，不依赖隐式调用栈
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterator

if TYPE_CHECKING:
    from reposcraper.core.models import RepositoryDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Span:
    """一次操作"""

    type: str
    explanation: str = ""
    parent: Span | None = None

    @property
    def depth(self) -> int:
        return 1 if self.parent is None else self.parent.depth + 1

    def describe(self) -> str:
        if self.explanation:
            return f"{self.type}: {self.explanation}"
        return self.type

    def context(self) -> str:
        """由内向外拼接，如 'fetch in retrieve: git https://...'"""
        parts: list[str] = []
        span: Span | None = self
        while span is not None:
            parts.append(span.describe())
            span = span.parent
        return " in ".join(parts)


@dataclass(frozen=True)
class TraceEvent:
    """追踪事件"""

    kind: str                       # start | success | error
    span: Span
    error: BaseException | None = None


TraceListener = Callable[[TraceEvent], None]


class OperationTracer:
    """操作追踪器

    repository 可随时设置，错误日志会带上当前仓库。
    listeners 用于收集事件（测试、进度展示）。
    """

    def __init__(
        self,
        log: logging.Logger | None = None,
        listeners: list[TraceListener] | None = None,
    ) -> None:
        self._log = log or logger
        self.listeners: list[TraceListener] = list(listeners or [])
        self.repository: RepositoryDescriptor | None = None

    def bind(self, repository: RepositoryDescriptor | None) -> OperationTracer:
        """派生子追踪器：共享日志器和监听器，repository 独立

        同一追踪器被多个检出共用时，每次检出各用一个子追踪器，
        并发检出的错误日志不会互相覆盖仓库信息。
        """
        child = OperationTracer(self._log)
        child.listeners = self.listeners
        child.repository = repository
        return child

    @contextmanager
    def operation(
        self, type: str, explanation: str = "", *, parent: Span | None = None,
    ) -> Iterator[Span]:
        span = Span(type=type, explanation=explanation, parent=parent)
        self._log.debug("%s begin %s", ">" * span.depth, span.describe())
        self._emit(TraceEvent("start", span))
        try:
            yield span
        except Exception as e:
            self._log.debug("%s abort %s", ">" * span.depth, span.describe())
            self.note_error(e, type, explanation, span=span)
            self._emit(TraceEvent("error", span, e))
            raise
        self._log.debug("%s close %s", ">" * span.depth, span.describe())
        self._emit(TraceEvent("success", span))

    def note_error(
        self,
        exception: BaseException,
        type: str,
        explanation: str = "",
        *,
        span: Span | None = None,
    ) -> None:
        """记录一次失败及其发生时的操作上下文"""
        if span is None:
            span = Span(type=type, explanation=explanation)
        where = span.context()
        if self.repository is not None:
            where += f" [{self.repository}]"
        self._log.error(
            "Saw %s during %s", exception, where,
            extra={"operation": span.context(), "repository": self.repository},
        )

    def _emit(self, event: TraceEvent) -> None:
        for listener in self.listeners:
            listener(event)
