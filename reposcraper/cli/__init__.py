"""reposcraper 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator

import click

from reposcraper import __version__
from reposcraper.core.config import Config, init_config
from reposcraper.core.exceptions import ScraperError
from reposcraper.services.container import ServiceContainer, get_container, set_container
from reposcraper.utils.logger import setup_logging


def _svc() -> ServiceContainer:
    """获取全局服务容器的快捷方式"""
    return get_container()


@contextmanager
def _friendly_errors() -> Iterator[None]:
    """ScraperError 转为带错误码的 CLI 提示"""
    try:
        yield
    except ScraperError as e:
        message = f"[{e.code}] {e}"
        if e.operations:
            message += f" (during {e.operations[0]})"
        raise click.ClickException(message) from e


def _setup_logging(cfg: Config) -> None:
    """环境变量优先于配置文件中的 log_level / log_json"""
    json_env = os.getenv("REPOSCRAPER_LOG_JSON")
    setup_logging(
        level=os.getenv("REPOSCRAPER_LOG_LEVEL", cfg.log_level),
        json_output=cfg.log_json if json_env is None else json_env == "1",
    )


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False), help="配置文件路径")
def main(config_path: str | None) -> None:
    """reposcraper - 远程仓库检出工具"""
    _setup_logging(Config())
    if config_path:
        with _friendly_errors():
            cfg = init_config(config_path)
        _setup_logging(cfg)
        set_container(ServiceContainer(cfg))


# 注册各领域子命令
from reposcraper.cli.cmd_retrieve import register as _reg_retrieve  # noqa: E402
from reposcraper.cli.cmd_repo import register as _reg_repo  # noqa: E402

_reg_retrieve(main)
_reg_repo(main)
