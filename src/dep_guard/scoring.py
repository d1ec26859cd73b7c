from __future__ import annotations

import math
from datetime import datetime, timezone

from dep_guard.models import (
    CompatibilityReport,
    PackageInfo,
    PeerStatus,
    RiskAction,
    RiskFactor,
    RiskScore,
    SecurityReport,
    Severity,
)

WEIGHT_COMPATIBILITY = 40
WEIGHT_SECURITY = 30
WEIGHT_DEPRECATION = 15
WEIGHT_MAINTENANCE = 15

THRESHOLD_ALLOW = 75
THRESHOLD_WARN = 40

# LOW 不计入扣分，只出现在报告中。
SEVERITY_PENALTY: dict[Severity, int] = {
    Severity.CRITICAL: 15,
    Severity.HIGH: 8,
    Severity.MODERATE: 3,
    Severity.LOW: 0,
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(score: int, max_score: int) -> int:
    return max(0, min(score, max_score))


def _parse_timestamp(raw: str | None) -> datetime | None:
    """
    解析 registry 的 ISO 时间戳（支持结尾的 Z）；无法解析返回 None。
    """
    if not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def score_compatibility(report: CompatibilityReport) -> RiskFactor:
    """
    peer 兼容性因子：按失败（MISSING + INCOMPATIBLE）占比扣分。
    """
    total = len(report.checks)
    if total == 0:
        return RiskFactor("Peer Compatibility", WEIGHT_COMPATIBILITY, WEIGHT_COMPATIBILITY, "No peer dependencies declared")

    missing = sum(1 for c in report.checks if c.status == PeerStatus.MISSING)
    incompatible = sum(1 for c in report.checks if c.status == PeerStatus.INCOMPATIBLE)
    issues = missing + incompatible

    penalty = min(issues / total, 1.0)
    score = _clamp(_round_half_up(WEIGHT_COMPATIBILITY * (1 - penalty)), WEIGHT_COMPATIBILITY)

    if issues == 0:
        reason = "All peer dependencies satisfied"
    else:
        parts = []
        if missing:
            parts.append(f"{missing} missing")
        if incompatible:
            parts.append(f"{incompatible} incompatible")
        reason = f"Peer issues: {', '.join(parts)}"
    return RiskFactor("Peer Compatibility", score, WEIGHT_COMPATIBILITY, reason)


def score_security(report: SecurityReport) -> RiskFactor:
    """
    安全因子：CRITICAL=15、HIGH=8、MODERATE=3 累计扣分，LOW 不扣分。
    """
    vulns = report.vulnerabilities
    if not vulns:
        return RiskFactor("Security", WEIGHT_SECURITY, WEIGHT_SECURITY, "No known vulnerabilities")

    points = sum(SEVERITY_PENALTY[v.severity] for v in vulns)
    penalty = min(points / WEIGHT_SECURITY, 1.0)
    score = _clamp(_round_half_up(WEIGHT_SECURITY * (1 - penalty)), WEIGHT_SECURITY)

    critical = sum(1 for v in vulns if v.severity == Severity.CRITICAL)
    high = sum(1 for v in vulns if v.severity == Severity.HIGH)
    noun = "vulnerability" if len(vulns) == 1 else "vulnerabilities"
    reason = f"{len(vulns)} {noun} ({critical} critical, {high} high)"
    return RiskFactor("Security", score, WEIGHT_SECURITY, reason)


def score_deprecation(info: PackageInfo | None) -> RiskFactor:
    if info is None:
        return RiskFactor("Deprecation", WEIGHT_DEPRECATION, WEIGHT_DEPRECATION, "Package info unavailable, skipped")
    if info.deprecated:
        return RiskFactor("Deprecation", 0, WEIGHT_DEPRECATION, f"Deprecated: {info.deprecated}")
    return RiskFactor("Deprecation", WEIGHT_DEPRECATION, WEIGHT_DEPRECATION, "Not deprecated")


def score_maintenance(info: PackageInfo | None, *, now: datetime | None = None) -> RiskFactor:
    """
    维护因子：发布陈旧度、维护者数量与下载量三项扣分相互独立、可叠加。
    """
    if info is None:
        return RiskFactor("Maintenance", WEIGHT_MAINTENANCE, WEIGHT_MAINTENANCE, "Package info unavailable, skipped")

    score = WEIGHT_MAINTENANCE
    reasons: list[str] = []

    published = _parse_timestamp(info.last_publish)
    if published is not None:
        current = now or datetime.now(timezone.utc)
        days = (current - published).days
        if days > 730:
            score -= 10
            reasons.append(f"Last published {days} days ago")
        elif days > 365:
            score -= 5
            reasons.append(f"Last published {days} days ago")

    if info.maintainer_count == 0:
        score -= 5
        reasons.append("No listed maintainers")
    elif info.maintainer_count == 1:
        score -= 2
        reasons.append("Single maintainer (bus factor)")

    if info.weekly_downloads < 100:
        score -= 3
        reasons.append(f"Low usage: {info.weekly_downloads} weekly downloads")

    reason = "; ".join(reasons) if reasons else "Actively maintained"
    return RiskFactor("Maintenance", _clamp(score, WEIGHT_MAINTENANCE), WEIGHT_MAINTENANCE, reason)


def action_for_score(score: int) -> RiskAction:
    """
    按固定阈值映射建议：>75 ALLOW，>40 WARN，其余 BLOCK。
    """
    if score > THRESHOLD_ALLOW:
        return RiskAction.ALLOW
    if score > THRESHOLD_WARN:
        return RiskAction.WARN
    return RiskAction.BLOCK


def calculate_risk_score(
    compatibility: CompatibilityReport,
    security: SecurityReport,
    package_info: PackageInfo | None,
    *,
    now: datetime | None = None,
) -> RiskScore:
    """
    汇总四个因子得到 0–100 的综合评分（越高越安全）及 ALLOW/WARN/BLOCK 建议。
    """
    factors = [
        score_compatibility(compatibility),
        score_security(security),
        score_deprecation(package_info),
        score_maintenance(package_info, now=now),
    ]
    total = sum(f.score for f in factors)
    return RiskScore(score=total, action=action_for_score(total), factors=factors)
