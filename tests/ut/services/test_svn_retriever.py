"""SvnClient / SvnRetriever 测试（假执行器模拟 svn 命令行）"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from reposcraper.core.exceptions import ProcessExecutionError, VersionUnsupportedError
from reposcraper.core.models import RepositoryDescriptor, RepoType
from reposcraper.services.retrieval import RetrieverOptions, SvnClient, SvnRetriever
from reposcraper.services.retrieval.svn import coerce_revision
from reposcraper.utils.shell import CommandResult

URL = "https://svn.example.com/repo/trunk"


class FakeSvn:
    """按子命令返回脚本化输出；checkout 时创建 .svn 目录"""

    def __init__(self, version: str = "1.14.2", revision: int = 42) -> None:
        self.version = version
        self.revision = revision
        self.calls: list[tuple[list[str], dict[str, Any]]] = []

    def run(self, cmd: Any, **kwargs: Any) -> CommandResult:
        cmd = [str(c) for c in cmd]
        self.calls.append((cmd, kwargs))
        if cmd[1] == "--version":
            return CommandResult(0, f"{self.version}\n", "")
        if cmd[1] == "checkout":
            dest = Path(cmd[-1])
            (dest / ".svn").mkdir(parents=True)
            (dest / "file.txt").write_text("content", encoding="utf-8")
        if cmd[1] == "info":
            return CommandResult(0, f"Path: .\nURL: {URL}\nRevision: {self.revision}\nNode Kind: directory\n", "")
        return CommandResult(0, "", "")

    def subcommands(self) -> list[str]:
        return [c[1] for c, _ in self.calls if c[1] != "--version"]


def _client(executor: FakeSvn, **kwargs: Any) -> SvnClient:
    return SvnClient(executor, **kwargs)


class TestCoerceRevision:
    @pytest.mark.parametrize("tag,expected", [
        ("42", 42),
        (42, 42),
        ("HEAD", "HEAD"),
        ("12a", "12a"),
        (None, None),
    ])
    def test_coerce(self, tag: Any, expected: Any) -> None:
        assert coerce_revision(tag) == expected


class TestSvnClient:
    def test_modern_arguments(self) -> None:
        args = _client(FakeSvn("1.14.2")).svn_arguments()
        assert args == ["--no-auth-cache", "--non-interactive", "--trust-server-cert"]

    def test_trust_flag_omitted_before_1_6(self) -> None:
        assert "--trust-server-cert" not in _client(FakeSvn("1.5.9")).svn_arguments()

    @pytest.mark.parametrize("version", ["1.3.2", "2.0.0", "0.9.1"])
    def test_unsupported_versions(self, version: str) -> None:
        with pytest.raises(VersionUnsupportedError):
            _client(FakeSvn(version)).svn_arguments()

    def test_unparsable_version(self) -> None:
        with pytest.raises(VersionUnsupportedError):
            _client(FakeSvn("unknown")).calculate_version()

    def test_version_memoized(self) -> None:
        executor = FakeSvn()
        client = _client(executor)
        client.run_svn("info", ".")
        client.run_svn("update", ".")
        assert sum(1 for c, _ in executor.calls if c[1] == "--version") == 1

    def test_credentials_need_both(self) -> None:
        both = _client(FakeSvn(), username="u", password="p").svn_arguments()
        assert both[-4:] == ["--username", "u", "--password", "p"]
        assert "--username" not in _client(FakeSvn(), username="u").svn_arguments()
        assert "--username" not in _client(FakeSvn(), password="p").svn_arguments()

    def test_revision_argument(self) -> None:
        assert SvnClient.revision_argument(None) == ["-r", "HEAD"]
        assert SvnClient.revision_argument(7) == ["-r", "7"]

    def test_revision_of(self, tmp_path: Path) -> None:
        assert _client(FakeSvn(revision=99)).revision_of(tmp_path) == 99

    def test_revision_of_missing(self, tmp_path: Path) -> None:
        class NoRevision(FakeSvn):
            def run(self, cmd: Any, **kwargs: Any) -> CommandResult:
                if list(cmd)[1] == "info":
                    return CommandResult(0, "Path: .\n", "")
                return super().run(cmd, **kwargs)

        with pytest.raises(ProcessExecutionError, match="Revision"):
            _client(NoRevision()).revision_of(tmp_path)

    def test_locale_forced(self) -> None:
        executor = FakeSvn()
        _client(executor).run_svn("info", ".")
        assert all(kwargs["env"]["LC_ALL"] == "C" for _, kwargs in executor.calls)


def _retriever(executor: FakeSvn, tmp_path: Path, **fields: Any) -> SvnRetriever:
    repo = RepositoryDescriptor(RepoType.SVN, URL, **fields)
    options = RetrieverOptions(base_dir=tmp_path / "checkouts", max_bytes=10_000, max_seconds=30)
    return SvnRetriever(repo, options, executor=executor)


class TestSvnRetriever:
    def test_checkout_then_update(self, tmp_path: Path) -> None:
        executor = FakeSvn(revision=42)
        r = _retriever(executor, tmp_path, tag="42", first_credential="u", second_credential="p")
        repo = r.retrieve()
        assert repo.tag == "42"

        checkout = next(c for c, _ in executor.calls if c[1] == "checkout")
        assert checkout == [
            "svn", "checkout", "--no-auth-cache", "--non-interactive", "--trust-server-cert",
            "--username", "u", "--password", "p", "-r", "42", "--", URL, str(r.repo_dir),
        ]

        executor.revision = 50
        again = _retriever(executor, tmp_path, tag=None).retrieve()
        assert again.tag == "50"
        update = next(c for c, _ in executor.calls if c[1] == "update")
        assert update[-4:] == ["-r", "HEAD", "--", str(r.repo_dir)]
        assert executor.subcommands() == ["checkout", "info", "update", "info"]

    def test_get_tag(self, tmp_path: Path) -> None:
        assert _retriever(FakeSvn(), tmp_path, tag="17").get_tag() == 17
        assert _retriever(FakeSvn(), tmp_path, tag="HEAD").get_tag() == "HEAD"
        assert _retriever(FakeSvn(), tmp_path).get_tag() is None

    def test_limits_passed_through(self, tmp_path: Path) -> None:
        executor = FakeSvn()
        r = _retriever(executor, tmp_path)
        r.retrieve()
        _, kwargs = next(call for call in executor.calls if call[0][1] == "checkout")
        assert kwargs["max_bytes"] == 10_000
        assert kwargs["max_seconds"] == 30
        assert kwargs["watch_dir"] == r.repo_dir
        assert Path(kwargs["cwd"]) == tmp_path / "checkouts"

    def test_keyword_revision_passed_unchanged(self, tmp_path: Path) -> None:
        executor = FakeSvn()
        _retriever(executor, tmp_path, tag="HEAD").retrieve()
        checkout = next(c for c, _ in executor.calls if c[1] == "checkout")
        assert checkout[checkout.index("-r") + 1] == "HEAD"

    def test_ignorable_paths(self, tmp_path: Path) -> None:
        r = _retriever(FakeSvn(), tmp_path)
        assert r.ignorable_paths() == [".svn"]
        r.retrieve()
        assert r.exists()

    def test_old_client_rejected(self, tmp_path: Path) -> None:
        r = _retriever(FakeSvn("1.3.0"), tmp_path, tag="5")
        with pytest.raises(VersionUnsupportedError) as exc_info:
            r.retrieve()
        assert "checkout_revision" in exc_info.value.operations[0]
        assert r.repository.tag == "5"
