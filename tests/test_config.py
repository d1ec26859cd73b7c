from __future__ import annotations

from pathlib import Path

import pytest

from dep_guard.config import load_config
from dep_guard.registry_client import DEFAULT_REGISTRY_URL

_ENV_KEYS = (
    "DEP_GUARD_REGISTRY_URL",
    "DEP_GUARD_DOWNLOADS_URL",
    "DEP_GUARD_OSV_URL",
    "DEP_GUARD_CACHE_DIR",
    "DEP_GUARD_TOKEN",
    "DEP_GUARD_BASIC_USERNAME",
    "DEP_GUARD_BASIC_PASSWORD",
    "DEP_GUARD_INSTALL_COMMAND",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_load_config_defaults_without_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    cfg = load_config(None)
    assert cfg.registry.registry_url == DEFAULT_REGISTRY_URL
    assert cfg.registry.auth is None
    assert cfg.cache_ttl_s == 24 * 60 * 60
    assert cfg.security_cache_ttl_s == 7 * 24 * 60 * 60
    assert cfg.use_cache is True
    assert cfg.install_command == "npm install"


def test_load_config_finds_default_toml_in_cwd(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    未显式指定 config_path 时，应在当前目录自动探测默认配置文件。
    """
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".dep-guard.toml").write_text(
        """
[dep_guard]
registry_url = "https://npm.internal.test"
osv_url = "https://osv.internal.test/v1/query"
cache_ttl_s = 0
use_cache = false
cache_dir = "cache"
install_command = "pnpm add"
token = "from-file"
        """.strip()
        + "\n",
        encoding="utf-8",
    )

    cfg = load_config(None)
    assert cfg.registry.registry_url == "https://npm.internal.test"
    assert cfg.osv_url == "https://osv.internal.test/v1/query"
    assert cfg.cache_ttl_s == 0
    assert cfg.use_cache is False
    assert cfg.cache_dir == Path("cache")
    assert cfg.cache_path == Path("cache") / "cache.sqlite3"
    assert cfg.install_command == "pnpm add"
    assert cfg.registry.auth is not None
    assert cfg.registry.auth.bearer_token == "from-file"


def test_load_config_default_yaml_when_toml_missing(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    TOML 不存在时，应能探测并读取默认 YAML 配置文件。
    """
    monkeypatch.chdir(tmp_path)
    (tmp_path / "dep-guard.yaml").write_text(
        """
dep_guard:
  registry_url: "https://yaml.test"
  basic_username: "ci"
  basic_password: "secret"
        """.strip()
        + "\n",
        encoding="utf-8",
    )

    cfg = load_config(None)
    assert cfg.registry.registry_url == "https://yaml.test"
    assert cfg.registry.auth is not None
    assert cfg.registry.auth.bearer_token is None
    assert cfg.registry.auth.basic_username == "ci"
    assert cfg.registry.auth.basic_password == "secret"


def test_env_overrides_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    环境变量优先于配置文件。
    """
    config = tmp_path / "custom.toml"
    config.write_text('[dep_guard]\nregistry_url = "https://file.test"\n', encoding="utf-8")
    monkeypatch.setenv("DEP_GUARD_REGISTRY_URL", "https://env.test")
    monkeypatch.setenv("DEP_GUARD_TOKEN", "env-token")
    monkeypatch.setenv("DEP_GUARD_CACHE_DIR", str(tmp_path / "c"))

    cfg = load_config(str(config))
    assert cfg.registry.registry_url == "https://env.test"
    assert cfg.registry.auth is not None
    assert cfg.registry.auth.bearer_token == "env-token"
    assert cfg.cache_dir == tmp_path / "c"


def test_unknown_config_suffix_is_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config = tmp_path / "settings.ini"
    config.write_text("[dep_guard]\nregistry_url = x\n", encoding="utf-8")
    cfg = load_config(str(config))
    assert cfg.registry.registry_url == DEFAULT_REGISTRY_URL
