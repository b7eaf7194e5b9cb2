"""下载检出器 — 通过 http/https/ftp 获取归档包

- 下载受 max_bytes / max_seconds 限制
- 重定向目标同样做 SSRF 校验（开发模式除外）
- tar / tar.gz / tar.bz2 自动解压，其他文件原样保存
- 下载内容的 SHA1 记为 tag
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
import shutil
import tarfile
import tempfile
import time
import urllib.request
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from reposcraper.core.exceptions import ProcessExecutionError, ResourceLimitError
from reposcraper.services.retrieval.base import Retriever
from reposcraper.utils.net import Resolver, validate_uri

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
DEFAULT_TIMEOUT = 60


class ValidatingRedirectHandler(urllib.request.HTTPRedirectHandler):
    """跟随重定向前校验目标 URL"""

    def __init__(self, resolver: Resolver | None = None) -> None:
        super().__init__()
        self._resolver = resolver

    def redirect_request(self, req: Any, fp: Any, code: int, msg: str, headers: Any, newurl: str) -> Any:
        validate_uri(newurl, resolver=self._resolver)
        return super().redirect_request(req, fp, code, msg, headers, newurl)


class DownloadRetriever(Retriever):
    """归档下载检出器，每次都完整重新下载"""

    def _retrieve(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        with self._operation("download", self.repository.url):
            archive, sha = self._download()
        try:
            with self._operation("unpack", f"to {self.repo_dir}"):
                self._unpack(archive)
        finally:
            archive.unlink(missing_ok=True)
        self.repository = self.repository.with_tag(sha)
        logger.info("下载完成 %s (sha1=%s)", self.repository, sha)

    def build_request(self) -> urllib.request.Request:
        """http(s) 凭据走 Basic 认证头，ftp 凭据嵌入 URL"""
        repo = self.repository
        parts = urlsplit(repo.url)
        if parts.scheme.lower() == "ftp":
            return urllib.request.Request(repo.to_url())

        hostport = parts.netloc.rpartition("@")[2]
        request = urllib.request.Request(urlunsplit(parts._replace(netloc=hostport)))
        if repo.first_credential is not None:
            token = f"{repo.first_credential}:{repo.second_credential or ''}"
            encoded = base64.b64encode(token.encode("utf-8")).decode("ascii")
            # 不随重定向转发到其他主机
            request.add_unredirected_header("Authorization", f"Basic {encoded}")
        return request

    def _opener(self) -> urllib.request.OpenerDirector:
        if self.options.trust_input:
            return urllib.request.build_opener()
        return urllib.request.build_opener(ValidatingRedirectHandler(self.options.resolver))

    def _download(self) -> tuple[Path, str]:
        limit_bytes = self.max_bytes if self.max_bytes is not None and self.max_bytes >= 0 else None
        limit_seconds = self.max_seconds if self.max_seconds is not None and self.max_seconds >= 0 else None
        timeout = limit_seconds if limit_seconds else DEFAULT_TIMEOUT

        fd, tmp = tempfile.mkstemp(dir=str(self.base_dir), suffix=".download")
        path = Path(tmp)
        sha1 = hashlib.sha1()  # noqa: S324
        total = 0
        started = time.monotonic()
        try:
            with os.fdopen(fd, "wb") as out, self._opener().open(self.build_request(), timeout=timeout) as resp:  # nosec B310
                for chunk in iter(lambda: resp.read(CHUNK_SIZE), b""):
                    total += len(chunk)
                    if limit_bytes is not None and total > limit_bytes:
                        raise ResourceLimitError(f"下载超过 {limit_bytes} 字节: {self.repository.url}")
                    if limit_seconds is not None and time.monotonic() - started > limit_seconds:
                        raise ResourceLimitError(f"下载超时 ({limit_seconds} 秒): {self.repository.url}")
                    sha1.update(chunk)
                    out.write(chunk)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        logger.debug("已下载 %d 字节: %s", total, self.repository.url)
        return path, sha1.hexdigest()

    def _unpack(self, archive: Path) -> None:
        if self.repo_dir.exists():
            shutil.rmtree(self.repo_dir)
        self.repo_dir.mkdir(parents=True)
        if tarfile.is_tarfile(archive):
            try:
                with tarfile.open(archive) as tf:
                    tf.extractall(path=str(self.repo_dir), filter="data")  # noqa: S202
            except tarfile.TarError as e:
                raise ProcessExecutionError(f"解压失败: {self.repository.url}: {e}") from e
            return
        name = Path(urlsplit(self.repository.url).path).name or "download"
        shutil.copyfile(archive, self.repo_dir / name)
