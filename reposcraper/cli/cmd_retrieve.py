"""CLI — 检出与工作目录命令"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import click

from reposcraper.cli import _friendly_errors, _svc
from reposcraper.core.models import RepoType
from reposcraper.services.scrape_service import RetrievalResult, ScrapeService
from reposcraper.utils.net import validate_uri


def register(group: click.Group) -> None:
    group.add_command(retrieve)
    group.add_command(validate_url)
    group.add_command(workspaces)
    group.add_command(clean)


def echo_result(result: RetrievalResult, *, list_files: bool = False) -> None:
    click.echo(f"仓库: {result.repository}")
    click.echo(f"revision: {result.repository.revision or '-'}")
    click.echo(f"路径: {result.repo_dir}")
    if list_files:
        for rel in result.files():
            click.echo(f"  {rel}")


def _service(base_dir: str | None, max_bytes: int | None, max_seconds: float | None) -> ScrapeService:
    """命令行参数覆盖配置中的目录和资源限制"""
    svc: ScrapeService = _svc().scrape
    overrides: dict[str, Any] = {}
    if base_dir:
        overrides["base_dir"] = Path(base_dir)
    if max_bytes is not None:
        overrides["max_bytes"] = max_bytes
    if max_seconds is not None:
        overrides["max_seconds"] = max_seconds
    if not overrides:
        return svc
    clone = copy.copy(svc)
    for key, value in overrides.items():
        setattr(clone, key, value)
    return clone


# ---- 检出 ----

@click.command()
@click.argument("url")
@click.option(
    "--type", "repo_type", default=RepoType.GIT.value,
    type=click.Choice([RepoType.GIT.value, RepoType.SVN.value, RepoType.DOWNLOAD.value]),
    help="仓库类型",
)
@click.option("--tag", default=None, help="分支 / 标签 / revision")
@click.option("--key-file", type=click.Path(exists=True, dir_okay=False), default=None, help="git SSH 私钥文件")
@click.option("--username", default=None, help="svn / download 用户名")
@click.option("--password", default=None, help="svn / download 密码")
@click.option("--base-dir", default=None, help="检出根目录")
@click.option("--max-bytes", type=int, default=None, help="检出目录大小上限（字节）")
@click.option("--max-seconds", type=float, default=None, help="单条命令耗时上限（秒）")
@click.option("--list-files", is_flag=True, help="列出检出的文件")
def retrieve(url: str, repo_type: str, tag: str | None, key_file: str | None, **kwargs: Any) -> None:
    """检出一个仓库 URL 到本地工作目录"""
    config: dict[str, Any] = {"repo_type": repo_type, "url": url, "tag": tag}
    if repo_type == RepoType.GIT.value:
        if key_file:
            config["first_credential"] = Path(key_file).read_text(encoding="utf-8")
    else:
        config["first_credential"] = kwargs["username"]
        config["second_credential"] = kwargs["password"]
    with _friendly_errors():
        svc = _service(kwargs["base_dir"], kwargs["max_bytes"], kwargs["max_seconds"])
        result = svc.retrieve(config)
    echo_result(result, list_files=kwargs["list_files"])


@click.command(name="validate-url")
@click.argument("url")
def validate_url(url: str) -> None:
    """检查 URL 是否允许作为仓库地址"""
    with _friendly_errors():
        validate_uri(url)
    click.echo(f"URL 可用: {url}")


# ---- 工作目录 ----

@click.command()
def workspaces() -> None:
    """列出本地已有的检出目录"""
    items = _svc().scrape.list_workspaces()
    if not items:
        click.echo("没有已检出的工作目录。")
        return
    for w in items:
        click.echo(f"  {w['repository_hash']}  [{w['kind']:8s}] {w['path']}")


@click.command()
@click.argument("repository_hash")
def clean(repository_hash: str) -> None:
    """删除一个检出目录"""
    with _friendly_errors():
        removed = _svc().scrape.clean(repository_hash)
    if removed:
        click.echo(f"已清理: {repository_hash}")
    else:
        click.echo(f"检出目录不存在: {repository_hash}")
