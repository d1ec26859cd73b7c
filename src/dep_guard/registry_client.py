from __future__ import annotations

import base64
import logging
from dataclasses import asdict, dataclass
from typing import Any

import httpx

from dep_guard.cache import DEFAULT_TTL_S, CacheDB
from dep_guard.models import PackageInfo, PeerRequirement
from dep_guard.names import encode_package_name

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"
DEFAULT_DOWNLOADS_URL = "https://api.npmjs.org/downloads/point/last-week"

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RegistryAuth:
    """
    私有 registry 认证配置。
    """

    bearer_token: str | None = None
    basic_username: str | None = None
    basic_password: str | None = None


@dataclass(frozen=True, slots=True)
class RegistrySettings:
    """
    npm registry 查询配置。
    """

    registry_url: str = DEFAULT_REGISTRY_URL
    downloads_url: str = DEFAULT_DOWNLOADS_URL
    timeout_s: float = 10.0
    auth: RegistryAuth | None = None


@dataclass(frozen=True, slots=True)
class PeerLookup:
    """
    目标包 latest 版本声明的 peer 依赖（保持声明顺序）。
    """

    resolved_version: str
    peers: tuple[PeerRequirement, ...]


def _build_headers(auth: RegistryAuth | None) -> dict[str, str]:
    """
    基于认证配置构造 HTTP Header。
    """
    headers: dict[str, str] = {"Accept": "application/json"}
    if not auth:
        return headers

    if auth.bearer_token:
        headers["Authorization"] = f"Bearer {auth.bearer_token}"
        return headers

    if auth.basic_username is not None and auth.basic_password is not None:
        token = f"{auth.basic_username}:{auth.basic_password}".encode("utf-8")
        headers["Authorization"] = f"Basic {base64.b64encode(token).decode('ascii')}"
        return headers

    return headers


async def request_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    method: str = "GET",
    json_body: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> tuple[Any | None, int | None, str | None]:
    """
    发起一次请求并返回 (data, status_code, error)；不做重试。
    """
    try:
        resp = await client.request(method, url, json=json_body, headers=headers)
    except httpx.HTTPError as exc:
        logger.debug("%s %s failed: %s", method, url, exc)
        return None, None, str(exc) or exc.__class__.__name__
    if resp.status_code >= 400:
        logger.debug("%s %s returned http %s", method, url, resp.status_code)
        return None, resp.status_code, f"http {resp.status_code}"
    try:
        return resp.json(), resp.status_code, None
    except ValueError as exc:
        logger.debug("%s %s returned invalid json", method, url)
        return None, resp.status_code, f"invalid json: {exc}"


def _latest_version_record(packument: dict[str, Any]) -> tuple[str, dict[str, Any]] | None:
    """
    取 dist-tags.latest 及其对应的版本记录。
    """
    dist_tags = packument.get("dist-tags")
    versions = packument.get("versions")
    if not isinstance(dist_tags, dict) or not isinstance(versions, dict):
        return None
    latest = dist_tags.get("latest")
    if not isinstance(latest, str) or not latest:
        return None
    record = versions.get(latest)
    if not isinstance(record, dict):
        return None
    return latest, record


def peer_requirements_from_version(record: dict[str, Any]) -> tuple[PeerRequirement, ...]:
    """
    从版本记录中提取 peerDependencies，按声明顺序返回，并标注 peerDependenciesMeta 中的 optional。
    """
    peers = record.get("peerDependencies")
    if not isinstance(peers, dict):
        return ()
    meta = record.get("peerDependenciesMeta")
    if not isinstance(meta, dict):
        meta = {}

    result: list[PeerRequirement] = []
    for name, spec in peers.items():
        peer_meta = meta.get(name)
        optional = isinstance(peer_meta, dict) and peer_meta.get("optional") is True
        result.append(PeerRequirement(name=str(name), range=str(spec), optional=optional))
    return tuple(result)


def _peers_to_json(peers: tuple[PeerRequirement, ...]) -> list[dict[str, Any]]:
    return [asdict(p) for p in peers]


def _peers_from_json(raw: Any) -> tuple[PeerRequirement, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(
        PeerRequirement(name=str(p["name"]), range=str(p["range"]), optional=bool(p.get("optional")))
        for p in raw
        if isinstance(p, dict) and "name" in p and "range" in p
    )


async def fetch_packument(
    package_name: str,
    *,
    settings: RegistrySettings,
    client: httpx.AsyncClient,
) -> dict[str, Any] | None:
    """
    获取包的完整 packument；任何失败返回 None。
    """
    url = f"{settings.registry_url.rstrip('/')}/{encode_package_name(package_name)}"
    data, _status, error = await request_json(client, url, headers=_build_headers(settings.auth))
    if error or not isinstance(data, dict):
        return None
    return data


async def fetch_peer_requirements(
    package_name: str,
    *,
    settings: RegistrySettings,
    client: httpx.AsyncClient,
    cache: CacheDB | None = None,
    cache_ttl_s: int = DEFAULT_TTL_S,
) -> PeerLookup | None:
    """
    获取目标包 latest 版本的 peer 依赖；获取或解析失败返回 None。
    """
    cache_key = f"peers:{package_name}"
    if cache is not None:
        cached = cache.get(cache_key)
        if isinstance(cached, dict) and "resolved_version" in cached:
            logger.debug("cache hit %s", cache_key)
            return PeerLookup(
                resolved_version=str(cached["resolved_version"]),
                peers=_peers_from_json(cached.get("peers")),
            )

    packument = await fetch_packument(package_name, settings=settings, client=client)
    if packument is None:
        return None
    latest = _latest_version_record(packument)
    if latest is None:
        return None

    version, record = latest
    lookup = PeerLookup(resolved_version=version, peers=peer_requirements_from_version(record))
    if cache is not None:
        cache.set(
            cache_key,
            {"resolved_version": lookup.resolved_version, "peers": _peers_to_json(lookup.peers)},
            ttl_s=cache_ttl_s,
        )
    return lookup


async def fetch_weekly_downloads(
    package_name: str,
    *,
    settings: RegistrySettings,
    client: httpx.AsyncClient,
) -> int:
    """
    查询上周下载量；失败时返回 0。
    """
    url = f"{settings.downloads_url.rstrip('/')}/{encode_package_name(package_name)}"
    data, _status, error = await request_json(client, url)
    if error or not isinstance(data, dict):
        return 0
    downloads = data.get("downloads")
    return downloads if isinstance(downloads, int) and downloads >= 0 else 0


def _normalize_deprecated(value: Any) -> str | None:
    if value is True:
        return "deprecated"
    if isinstance(value, str) and value.strip():
        return value
    return None


def _normalize_license(value: Any) -> str:
    if isinstance(value, str) and value:
        return value
    if isinstance(value, dict) and isinstance(value.get("type"), str):
        return value["type"]
    return "unknown"


def _normalize_repository(value: Any) -> str:
    url = value.get("url") if isinstance(value, dict) else value
    if not isinstance(url, str):
        return ""
    if url.startswith("git+"):
        url = url[len("git+") :]
    if url.endswith(".git"):
        url = url[: -len(".git")]
    return url


def package_info_from_packument(
    package_name: str,
    packument: dict[str, Any],
    *,
    weekly_downloads: int = 0,
) -> PackageInfo | None:
    """
    将 packument 归一化为 PackageInfo；缺少 latest 版本时返回 None。
    """
    latest = _latest_version_record(packument)
    if latest is None:
        return None
    version, record = latest

    times = packument.get("time")
    last_publish: str | None = None
    if isinstance(times, dict):
        raw_time = times.get(version) or times.get("modified")
        last_publish = raw_time if isinstance(raw_time, str) else None

    maintainers = packument.get("maintainers")
    description = packument.get("description")
    homepage = packument.get("homepage")

    return PackageInfo(
        name=str(packument.get("name") or package_name),
        version=version,
        description=description if isinstance(description, str) else "",
        deprecated=_normalize_deprecated(record.get("deprecated")),
        last_publish=last_publish,
        weekly_downloads=weekly_downloads,
        maintainer_count=len(maintainers) if isinstance(maintainers, list) else 0,
        license=_normalize_license(packument.get("license")),
        homepage=homepage if isinstance(homepage, str) else "",
        repository=_normalize_repository(packument.get("repository")),
        peer_requirements=peer_requirements_from_version(record),
    )


def _package_info_from_json(raw: Any) -> PackageInfo | None:
    if not isinstance(raw, dict):
        return None
    try:
        data = dict(raw)
        data["peer_requirements"] = _peers_from_json(data.get("peer_requirements"))
        return PackageInfo(**data)
    except TypeError:
        return None


async def get_package_info(
    package_name: str,
    *,
    settings: RegistrySettings,
    client: httpx.AsyncClient,
    cache: CacheDB | None = None,
    cache_ttl_s: int = DEFAULT_TTL_S,
) -> PackageInfo | None:
    """
    获取包的元数据（弃用、发布时间、维护者、下载量等）；registry 不可用时返回 None。
    """
    cache_key = f"npminfo:{package_name}"
    if cache is not None:
        cached = _package_info_from_json(cache.get(cache_key))
        if cached is not None:
            logger.debug("cache hit %s", cache_key)
            return cached

    packument = await fetch_packument(package_name, settings=settings, client=client)
    if packument is None:
        return None

    downloads = await fetch_weekly_downloads(package_name, settings=settings, client=client)
    info = package_info_from_packument(package_name, packument, weekly_downloads=downloads)
    if info is not None and cache is not None:
        cache.set(cache_key, asdict(info), ttl_s=cache_ttl_s)
    return info


def create_async_client(settings: RegistrySettings) -> httpx.AsyncClient:
    """
    创建访问 registry / OSV 的 AsyncClient；认证头只随 registry 请求单独发送。
    """
    timeout = httpx.Timeout(settings.timeout_s)
    return httpx.AsyncClient(headers=_build_headers(None), timeout=timeout, follow_redirects=True)
