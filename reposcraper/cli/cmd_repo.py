"""CLI — 仓库目录命令"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click

from reposcraper.cli import _friendly_errors, _svc
from reposcraper.cli.cmd_retrieve import echo_result
from reposcraper.core.models import RepoType


def register(group: click.Group) -> None:
    group.add_command(repo_group)


@click.group(name="repo")
def repo_group() -> None:
    """仓库目录管理"""


@repo_group.command(name="list")
def repo_list() -> None:
    """列出已登记的仓库"""
    repos = _svc().catalog.list_all()
    if not repos:
        click.echo("没有已登记的仓库。")
        return
    for r in repos:
        tag = r.get("tag") or "-"
        last = r.get("last_revision") or "-"
        click.echo(f"  {r['name']:20s} [{r.get('repo_type', '?'):8s}] {r.get('url', '-')}  tag={tag}  last={last}")


@repo_group.command(name="add")
@click.argument("name")
@click.argument("url")
@click.option(
    "--type", "repo_type", default=RepoType.GIT.value,
    type=click.Choice([t.value for t in RepoType]), help="仓库类型",
)
@click.option("--tag", default=None, help="分支 / 标签 / revision")
@click.option("--display-name", default="", help="显示名称")
@click.option("--key-file", type=click.Path(exists=True, dir_okay=False), default=None, help="git SSH 私钥文件")
@click.option("--username", default=None, help="svn / download 用户名")
@click.option("--password", default=None, help="svn / download 密码")
@click.option("--resources-path", multiple=True, help="资源子路径（可多次）")
def repo_add(name: str, url: str, repo_type: str, **kwargs: Any) -> None:
    """登记仓库（登记时校验 URL）"""
    config: dict[str, Any] = {
        "repo_type": repo_type,
        "url": url,
        "tag": kwargs["tag"],
        "display_name": kwargs["display_name"],
        "resources_path": list(kwargs["resources_path"]),
    }
    if repo_type == RepoType.GIT.value:
        if kwargs["key_file"]:
            config["first_credential"] = Path(kwargs["key_file"]).read_text(encoding="utf-8")
    else:
        config["first_credential"] = kwargs["username"]
        config["second_credential"] = kwargs["password"]
    svc = _svc()
    with _friendly_errors():
        repo = svc.catalog.register(
            name, config, svc.registry, trust_input=svc.config.development_mode,
        )
    click.echo(f"仓库已登记: {name} ({repo})")


@repo_group.command(name="remove")
@click.argument("name")
def repo_remove(name: str) -> None:
    """移除已登记的仓库"""
    if _svc().catalog.remove(name):
        click.echo(f"仓库已移除: {name}")
    else:
        click.echo(f"仓库不存在: {name}")


@repo_group.command(name="retrieve")
@click.argument("name")
@click.option("--tag", default="", help="覆盖登记的分支 / 标签 / revision")
@click.option("--list-files", is_flag=True, help="列出检出的文件")
def repo_retrieve(name: str, tag: str, list_files: bool) -> None:
    """检出已登记的仓库"""
    with _friendly_errors():
        result = _svc().scrape.retrieve_named(name, tag_override=tag or None)
    echo_result(result, list_files=list_files)
