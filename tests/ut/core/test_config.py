"""Config 加载测试"""

from __future__ import annotations

from pathlib import Path

import pytest

import reposcraper.core.config as cfgmod
from reposcraper.core.config import DEVELOPMENT_ENV, Config
from reposcraper.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv(DEVELOPMENT_ENV, raising=False)
    monkeypatch.setattr(cfgmod, "_current", None)


class TestConfig:
    def test_defaults(self) -> None:
        cfg = Config()
        assert cfg.base_dir == "data/checkouts"
        assert cfg.max_bytes == -1
        assert cfg.development_mode is False

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        assert Config.from_file(str(tmp_path / "none.yml")) == Config()

    def test_from_file_with_extra(self, tmp_path: Path) -> None:
        path = tmp_path / "cfg.yml"
        path.write_text("base_dir: /srv/checkouts\nmax_seconds: 60\nowner: ops\n", encoding="utf-8")
        cfg = Config.from_file(str(path))
        assert cfg.base_dir == "/srv/checkouts"
        assert cfg.max_seconds == 60
        assert cfg.extra == {"owner": "ops"}

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "cfg.yml"
        path.write_text("base_dir: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="配置文件无效"):
            Config.from_file(str(path))

    def test_development_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(DEVELOPMENT_ENV, "1")
        assert Config().development_mode is True

    def test_init_and_get_config(self, tmp_path: Path) -> None:
        path = tmp_path / "cfg.yml"
        path.write_text("repos_file: custom.yml\n", encoding="utf-8")
        cfg = cfgmod.init_config(str(path))
        assert cfgmod.get_config() is cfg
        assert cfg.to_dict()["repos_file"] == "custom.yml"
