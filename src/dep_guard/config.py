from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

from dep_guard.cache import DEFAULT_TTL_S, SECURITY_TTL_S, default_cache_path
from dep_guard.compatibility import DEFAULT_INSTALL_COMMAND
from dep_guard.osv_client import DEFAULT_OSV_URL
from dep_guard.registry_client import (
    DEFAULT_DOWNLOADS_URL,
    DEFAULT_REGISTRY_URL,
    RegistryAuth,
    RegistrySettings,
)


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    dep-guard 的运行配置（配置文件、环境变量与 CLI 参数合并而来）。
    """

    registry: RegistrySettings = field(default_factory=RegistrySettings)
    osv_url: str = DEFAULT_OSV_URL
    cache_ttl_s: int = DEFAULT_TTL_S
    security_cache_ttl_s: int = SECURITY_TTL_S
    use_cache: bool = True
    cache_dir: Path | None = None
    install_command: str = DEFAULT_INSTALL_COMMAND

    @property
    def cache_path(self) -> Path:
        return default_cache_path(self.cache_dir)


def _find_default_config_file(cwd: Path) -> Path | None:
    """
    在当前目录查找默认配置文件路径。
    """
    candidates = [
        ".dep-guard.toml",
        ".dep-guard.yaml",
        ".dep-guard.yml",
        "dep-guard.toml",
        "dep-guard.yaml",
        "dep-guard.yml",
    ]
    for name in candidates:
        p = cwd / name
        if p.exists() and p.is_file():
            return p
    return None


def _load_yaml(path: Path) -> dict[str, Any]:
    """
    读取 YAML 配置文件（需要 PyYAML）。
    """
    import yaml

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    return data


def _load_config_file(path: Path) -> dict[str, Any]:
    """
    读取 .toml 或 .yaml 配置文件，返回配置字典。
    """
    suffix = path.suffix.lower()
    if suffix == ".toml":
        data = tomllib.loads(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    if suffix in {".yaml", ".yml"}:
        return _load_yaml(path)
    return {}


def _pick(env_key: str, tool_cfg: dict[str, Any], key: str) -> str | None:
    """
    环境变量优先，其次配置文件；空值视为未设置。
    """
    return os.environ.get(env_key) or str(tool_cfg.get(key) or "") or None


def load_config(config_path: str | None) -> AppConfig:
    """
    从配置文件与环境变量加载 AppConfig。
    """
    config_data: dict[str, Any] = {}
    if config_path:
        config_data = _load_config_file(Path(config_path))
    else:
        default = _find_default_config_file(Path.cwd())
        if default:
            config_data = _load_config_file(default)

    tool_cfg = config_data.get("dep_guard") if isinstance(config_data, dict) else {}
    if not isinstance(tool_cfg, dict):
        tool_cfg = {}

    bearer = _pick("DEP_GUARD_TOKEN", tool_cfg, "token")
    basic_user = _pick("DEP_GUARD_BASIC_USERNAME", tool_cfg, "basic_username")
    basic_pass = _pick("DEP_GUARD_BASIC_PASSWORD", tool_cfg, "basic_password")
    auth = None
    if bearer or (basic_user is not None and basic_pass is not None):
        auth = RegistryAuth(bearer_token=bearer, basic_username=basic_user, basic_password=basic_pass)

    registry = RegistrySettings(
        registry_url=_pick("DEP_GUARD_REGISTRY_URL", tool_cfg, "registry_url") or DEFAULT_REGISTRY_URL,
        downloads_url=_pick("DEP_GUARD_DOWNLOADS_URL", tool_cfg, "downloads_url") or DEFAULT_DOWNLOADS_URL,
        timeout_s=float(tool_cfg.get("timeout_s") or 10.0),
        auth=auth,
    )

    cache_dir = _pick("DEP_GUARD_CACHE_DIR", tool_cfg, "cache_dir")

    return AppConfig(
        registry=registry,
        osv_url=_pick("DEP_GUARD_OSV_URL", tool_cfg, "osv_url") or DEFAULT_OSV_URL,
        cache_ttl_s=int(tool_cfg.get("cache_ttl_s", DEFAULT_TTL_S)),
        security_cache_ttl_s=int(tool_cfg.get("security_cache_ttl_s", SECURITY_TTL_S)),
        use_cache=bool(tool_cfg.get("use_cache") if "use_cache" in tool_cfg else True),
        cache_dir=Path(cache_dir).expanduser() if cache_dir else None,
        install_command=_pick("DEP_GUARD_INSTALL_COMMAND", tool_cfg, "install_command") or DEFAULT_INSTALL_COMMAND,
    )
