"""统一异常体系

所有检出相关异常继承 ScraperError，替代散落的 ValueError / RuntimeError。
CLI 层可据此输出带错误码的友好提示。
"""

from __future__ import annotations


class ScraperError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        # 错误边界附加的操作上下文（由内向外）
        self.operations: list[str] = []

    def add_context(self, operation: str) -> None:
        if operation and operation not in self.operations:
            self.operations.append(operation)


class ConfigError(ScraperError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class InvalidRepositoryError(ScraperError):
    """仓库 URL 非法：协议不支持、主机无法解析或指向受限地址"""

    code = "INVALID_REPOSITORY"


class UnknownRepositoryTypeError(ScraperError):
    """未注册的仓库类型"""

    code = "UNKNOWN_REPOSITORY_TYPE"


class AmbiguousReferenceError(ScraperError):
    """git 引用同时对应分支和标签"""

    code = "AMBIGUOUS_REFERENCE"


class RetrieverUnavailableError(ScraperError):
    """所需客户端缺失或不可用"""

    code = "RETRIEVER_UNAVAILABLE"


class VersionUnsupportedError(ScraperError):
    """客户端版本过低"""

    code = "VERSION_UNSUPPORTED"


class ProcessExecutionError(ScraperError):
    """外部命令返回非零或执行失败"""

    code = "PROCESS_EXECUTION_ERROR"

    def __init__(
        self, message: str, *, returncode: int | None = None, output: str = "",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class ResourceLimitError(ProcessExecutionError):
    """外部命令超出字节或时间限制，已被终止"""

    code = "RESOURCE_LIMIT_EXCEEDED"
