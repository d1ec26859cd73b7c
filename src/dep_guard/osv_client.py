from __future__ import annotations

import logging
from typing import Any

import httpx

from dep_guard.cache import SECURITY_TTL_S, CacheDB
from dep_guard.models import SecurityReport, Severity, Vulnerability
from dep_guard.registry_client import request_json

DEFAULT_OSV_URL = "https://api.osv.dev/v1/query"

logger = logging.getLogger(__name__)


def _severity_from_score(raw: Any) -> Severity | None:
    """
    按 NIST 阈值将数值型 CVSS 分数映射为严重等级；无法解析时返回 None。
    """
    try:
        score = float(raw)
    except (TypeError, ValueError):
        return None
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MODERATE
    return Severity.LOW


def normalize_severity(vuln: dict[str, Any]) -> Severity:
    """
    归一化 OSV 记录的严重等级：优先 database_specific.severity，其次 CVSS_V3 分数，默认 MODERATE。
    """
    db_specific = vuln.get("database_specific")
    if isinstance(db_specific, dict):
        label = str(db_specific.get("severity") or "").upper()
        if label == "MEDIUM":
            label = "MODERATE"
        if label in Severity.__members__:
            return Severity[label]

    entries = vuln.get("severity")
    if not isinstance(entries, list) or not entries:
        return Severity.MODERATE
    entry = next(
        (e for e in entries if isinstance(e, dict) and e.get("type") == "CVSS_V3"),
        entries[0],
    )
    if not isinstance(entry, dict):
        return Severity.MODERATE
    return _severity_from_score(entry.get("score")) or Severity.MODERATE


def extract_affected_versions(affected: Any) -> str:
    """
    将 OSV affected.ranges 的 introduced/fixed 事件拼接为简短描述。
    """
    parts: list[str] = []
    for entry in affected if isinstance(affected, list) else []:
        if not isinstance(entry, dict):
            continue
        for rng in entry.get("ranges") or []:
            if not isinstance(rng, dict):
                continue
            for event in rng.get("events") or []:
                if not isinstance(event, dict):
                    continue
                if event.get("introduced"):
                    parts.append(f">={event['introduced']}")
                if event.get("fixed"):
                    parts.append(f"<{event['fixed']}")
    return ", ".join(parts) if parts else "unknown"


def pick_reference_url(references: Any) -> str:
    """
    优先选择 ADVISORY 类型的参考链接，否则取第一条。
    """
    refs = [r for r in references if isinstance(r, dict)] if isinstance(references, list) else []
    if not refs:
        return ""
    advisory = next((r for r in refs if r.get("type") == "ADVISORY" and r.get("url")), None)
    url = (advisory or refs[0]).get("url")
    return url if isinstance(url, str) else ""


def vulnerability_from_osv(vuln: dict[str, Any]) -> Vulnerability:
    return Vulnerability(
        id=str(vuln.get("id") or "UNKNOWN"),
        summary=str(vuln.get("summary") or "No description available"),
        severity=normalize_severity(vuln),
        affected_versions=extract_affected_versions(vuln.get("affected")),
        url=pick_reference_url(vuln.get("references")),
    )


def _report(package_name: str, vulnerabilities: list[Vulnerability]) -> SecurityReport:
    return SecurityReport(
        package_name=package_name,
        vulnerabilities=vulnerabilities,
        has_critical=any(v.severity == Severity.CRITICAL for v in vulnerabilities),
    )


def _vulnerabilities_to_json(vulnerabilities: list[Vulnerability]) -> list[dict[str, str]]:
    return [
        {
            "id": v.id,
            "summary": v.summary,
            "severity": v.severity.value,
            "affected_versions": v.affected_versions,
            "url": v.url,
        }
        for v in vulnerabilities
    ]


def _vulnerabilities_from_json(raw: Any) -> list[Vulnerability] | None:
    if not isinstance(raw, list):
        return None
    try:
        return [
            Vulnerability(
                id=item["id"],
                summary=item["summary"],
                severity=Severity(item["severity"]),
                affected_versions=item["affected_versions"],
                url=item["url"],
            )
            for item in raw
        ]
    except (KeyError, TypeError, ValueError):
        return None


async def check_security(
    package_name: str,
    version: str,
    *,
    client: httpx.AsyncClient,
    osv_url: str = DEFAULT_OSV_URL,
    cache: CacheDB | None = None,
    cache_ttl_s: int = SECURITY_TTL_S,
) -> SecurityReport:
    """
    查询 OSV.dev 中影响 package@version 的安全公告；网络或解析失败时返回空报告（不阻断安装）。
    """
    cache_key = f"security:{package_name}@{version}"
    if cache is not None:
        cached = _vulnerabilities_from_json(cache.get(cache_key))
        if cached is not None:
            logger.debug("cache hit %s", cache_key)
            return _report(package_name, cached)

    body = {"package": {"name": package_name, "ecosystem": "npm"}, "version": version}
    data, _status, error = await request_json(client, osv_url, method="POST", json_body=body)
    if error or not isinstance(data, dict):
        logger.debug("security lookup for %s@%s unavailable: %s", package_name, version, error)
        return _report(package_name, [])

    raw_vulns = data.get("vulns")
    vulnerabilities = [
        vulnerability_from_osv(v) for v in (raw_vulns if isinstance(raw_vulns, list) else []) if isinstance(v, dict)
    ]
    if cache is not None:
        cache.set(cache_key, _vulnerabilities_to_json(vulnerabilities), ttl_s=cache_ttl_s)
    return _report(package_name, vulnerabilities)
