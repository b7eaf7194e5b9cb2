"""客户端可用性缓存

按工具名缓存探测结果，每个工具最多探测一次。
并发首次调用通过锁串行化；探测本身无副作用，重复执行也安全。
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class ToolAvailability:
    """工具可用性缓存"""

    def __init__(self) -> None:
        self._results: dict[str, bool] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def check(self, tool: str, check_fn: Callable[[], bool]) -> bool:
        """返回工具是否可用，首次调用时执行 check_fn"""
        if tool in self._results:
            return self._results[tool]
        with self._guard:
            lock = self._locks.setdefault(tool, threading.Lock())
        with lock:
            if tool not in self._results:
                available = bool(check_fn())
                self._results[tool] = available
                logger.debug("客户端可用性: %s -> %s", tool, available)
            return self._results[tool]

    def forget(self, tool: str) -> None:
        """清除缓存，下次 check 重新探测"""
        with self._guard:
            self._results.pop(tool, None)
