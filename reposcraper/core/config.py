"""集中配置管理

检出根目录、资源限制和开发模式开关统一在此配置。
支持从 YAML 文件加载 + 环境变量覆盖 + 编程式覆盖。
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any

import yaml

from reposcraper.core.exceptions import ConfigError
from reposcraper.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

# 开发模式环境变量：为 1 时跳过仓库 URL 的 SSRF 校验，生产环境禁止开启
DEVELOPMENT_ENV = "REPOSCRAPER_DEVELOPMENT"


@dataclass
class Config:
    """全局配置"""

    # 目录
    base_dir: str = "data/checkouts"
    repos_file: str = "data/repos.yml"

    # 资源限制（负数表示不限制）
    max_bytes: int = -1
    max_seconds: int = 3600

    # 跳过 URL 校验，仅限本地开发
    development_mode: bool = False

    # 日志
    log_level: str = "INFO"
    log_json: bool = False

    # 放不到字段里的配置项
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if os.getenv(DEVELOPMENT_ENV, "") == "1":
            self.development_mode = True

    @classmethod
    def from_file(cls, path: str = "configs/reposcraper.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"配置文件无效: {path}: {e}") from e
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置项类型错误: {path}: {e}") from e
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# 全局配置，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "configs/reposcraper.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    if _current.development_mode:
        logger.warning("开发模式已开启：仓库 URL 不做 SSRF 校验")
    return _current
