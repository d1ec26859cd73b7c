from __future__ import annotations

import shlex
from dataclasses import replace
from pathlib import Path

import httpx

from dep_guard.cache import DEFAULT_TTL_S, CacheDB
from dep_guard.manifest import find_package_json, load_installed_dependencies
from dep_guard.models import FAILING_STATUSES, CompatibilityReport, PeerCheck, PeerRequirement, PeerStatus
from dep_guard.ranges import ranges_intersect
from dep_guard.registry_client import RegistrySettings, fetch_peer_requirements

DEFAULT_INSTALL_COMMAND = "npm install"


def install_token(name: str, required: str) -> str:
    """
    生成 shell 安全的 ``name@range`` 参数。
    """
    return shlex.quote(f"{name}@{required}")


def classify_peer(
    peer: PeerRequirement,
    installed: dict[str, str],
    *,
    install_command: str = DEFAULT_INSTALL_COMMAND,
) -> PeerCheck:
    """
    根据已安装范围对单个 peer 依赖分类。
    """
    installed_range = installed.get(peer.name)
    fix = f"{install_command} {install_token(peer.name, peer.range)}"

    if installed_range is None:
        if peer.optional:
            return PeerCheck(peer.name, peer.range, None, PeerStatus.OPTIONAL_MISSING)
        return PeerCheck(peer.name, peer.range, None, PeerStatus.MISSING, fix)

    if ranges_intersect(installed_range, peer.range):
        return PeerCheck(peer.name, peer.range, installed_range, PeerStatus.COMPATIBLE)
    return PeerCheck(peer.name, peer.range, installed_range, PeerStatus.INCOMPATIBLE, fix)


def evaluate_peers(
    package_name: str,
    peers: tuple[PeerRequirement, ...],
    installed: dict[str, str],
    *,
    install_command: str = DEFAULT_INSTALL_COMMAND,
    manifest_path: str | None = None,
) -> CompatibilityReport:
    """
    按声明顺序检查全部 peer 依赖，并将合并后的修复命令挂到第一条失败记录上。
    """
    checks = [classify_peer(p, installed, install_command=install_command) for p in peers]

    failing = [i for i, c in enumerate(checks) if c.status in FAILING_STATUSES]
    if failing:
        tokens = " ".join(install_token(checks[i].name, checks[i].required) for i in failing)
        first = failing[0]
        checks[first] = replace(checks[first], fix_command=f"{install_command} {tokens}")

    return CompatibilityReport(
        package_name=package_name,
        checks=checks,
        compatible=not failing,
        manifest_path=manifest_path,
    )


async def check_compatibility(
    package_name: str,
    project_path: Path | str | None = None,
    *,
    settings: RegistrySettings,
    client: httpx.AsyncClient,
    cache: CacheDB | None = None,
    cache_ttl_s: int = DEFAULT_TTL_S,
    install_command: str = DEFAULT_INSTALL_COMMAND,
) -> CompatibilityReport:
    """
    检查当前项目是否满足目标包的 peer 依赖。

    找不到 package.json、registry 不可用或目标包未声明 peer 依赖时，
    返回空的兼容报告（没有可校验的内容，而不是错误）。
    """
    manifest = find_package_json(Path(project_path) if project_path is not None else Path("."))
    if manifest is None:
        return CompatibilityReport(package_name=package_name, checks=[], compatible=True)

    installed = load_installed_dependencies(manifest)

    lookup = await fetch_peer_requirements(
        package_name,
        settings=settings,
        client=client,
        cache=cache,
        cache_ttl_s=cache_ttl_s,
    )
    if lookup is None or not lookup.peers:
        return CompatibilityReport(
            package_name=package_name,
            checks=[],
            compatible=True,
            manifest_path=str(manifest),
        )

    return evaluate_peers(
        package_name,
        lookup.peers,
        installed,
        install_command=install_command,
        manifest_path=str(manifest),
    )
