"""YAML 文件读写

配置文件与仓库目录（repos.yml）共用。仓库目录可能保存 SSH 私钥，
所以写入支持 private=True（权限 0600），多行字符串以 | 块样式输出，
保证私钥原样往返且人工可读。
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 配置与仓库目录都很小，超过 1MB 视为异常文件
MAX_YAML_SIZE = 1024 * 1024

PRIVATE_MODE = stat.S_IRUSR | stat.S_IWUSR


class _BlockStyleDumper(yaml.SafeDumper):
    """多行字符串使用 literal 块样式"""


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", value)


_BlockStyleDumper.add_representer(str, _represent_str)


def atomic_write(path: Path, content: str, *, mode: int | None = None) -> None:
    """同目录临时文件 + os.replace；mode 在替换前设置，目标文件不会有宽权限窗口"""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, str(path))
    except Exception:
        Path(tmp).unlink(missing_ok=True)
        raise


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取 YAML 映射文件

    参数:
        path: YAML 文件路径

    返回:
        dict: 解析后的映射。文件不存在、为空或顶层不是映射时返回空字典

    异常:
        ValueError: 文件超过 MAX_YAML_SIZE
        yaml.YAMLError: YAML 格式错误

    示例:
        >>> catalog = load_yaml("repos.yml")
        >>> config = catalog.get("scraper", {})
    """
    p = Path(path)
    if not p.is_file():
        return {}
    size = p.stat().st_size
    if size > MAX_YAML_SIZE:
        raise ValueError(f"YAML 文件过大: {p} ({size} 字节)，上限 {MAX_YAML_SIZE} 字节")

    with open(p, encoding="utf-8") as f:
        result = yaml.safe_load(f)
    if result is None:
        return {}
    if not isinstance(result, dict):
        logger.warning("%s 顶层不是映射（%s），按空处理", p, type(result).__name__)
        return {}
    return result


def save_yaml(path: str | Path, data: Any, *, private: bool = False) -> None:
    """保存数据到 YAML 文件

    参数:
        path: 目标文件路径，父目录不存在时自动创建
        data: 要保存的数据
        private: 为 True 时文件权限为 0600（目录中含凭据时使用）

    实现:
        - 原子写入，中途崩溃不会留下半截文件
        - 保持键顺序，允许 Unicode 字符
        - 多行字符串（如私钥）以 | 块样式输出

    示例:
        >>> save_yaml("repos.yml", {"demo": {"type": "git", "url": "https://example.com/r.git"}})
        >>> save_yaml("secrets.yml", {"key": pem_text}, private=True)
    """
    content = yaml.dump(
        data, Dumper=_BlockStyleDumper,
        default_flow_style=False, allow_unicode=True, sort_keys=False,
    )
    atomic_write(Path(path), content, mode=PRIVATE_MODE if private else None)
