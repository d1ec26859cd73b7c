from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from dep_guard.models import (
    CompatibilityReport,
    PackageInfo,
    PeerCheck,
    PeerStatus,
    RiskAction,
    SecurityReport,
    Severity,
    Vulnerability,
)
from dep_guard.scoring import (
    action_for_score,
    calculate_risk_score,
    score_compatibility,
    score_deprecation,
    score_maintenance,
    score_security,
)

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _iso(days_ago: int) -> str:
    return (NOW - timedelta(days=days_ago)).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def _info(**overrides) -> PackageInfo:
    base = {
        "name": "pkg",
        "version": "1.0.0",
        "last_publish": _iso(30),
        "weekly_downloads": 50_000,
        "maintainer_count": 3,
    }
    base.update(overrides)
    return PackageInfo(**base)


def _compat(*statuses: PeerStatus) -> CompatibilityReport:
    checks = [PeerCheck(f"peer-{i}", "^1.0.0", None, status) for i, status in enumerate(statuses)]
    failing = {PeerStatus.MISSING, PeerStatus.INCOMPATIBLE}
    return CompatibilityReport("pkg", checks, not any(s in failing for s in statuses))


def _security(*severities: Severity) -> SecurityReport:
    vulns = [Vulnerability(f"GHSA-{i}", "x", s, "<1.0.0", "") for i, s in enumerate(severities)]
    return SecurityReport("pkg", vulns, any(s == Severity.CRITICAL for s in severities))


@pytest.mark.parametrize(
    "score,expected",
    [
        (100, RiskAction.ALLOW),
        (76, RiskAction.ALLOW),
        (75, RiskAction.WARN),
        (41, RiskAction.WARN),
        (40, RiskAction.BLOCK),
        (0, RiskAction.BLOCK),
    ],
)
def test_action_thresholds(score: int, expected: RiskAction) -> None:
    """
    阈值为严格大于：75 属于 WARN，40 属于 BLOCK。
    """
    assert action_for_score(score) == expected


def test_compatibility_factor_full_score_when_no_peers() -> None:
    factor = score_compatibility(CompatibilityReport("pkg", [], True))
    assert factor.score == 40
    assert factor.max_score == 40
    assert factor.reason == "No peer dependencies declared"


def test_compatibility_factor_ignores_optional_missing() -> None:
    factor = score_compatibility(_compat(PeerStatus.COMPATIBLE, PeerStatus.OPTIONAL_MISSING))
    assert factor.score == 40
    assert factor.reason == "All peer dependencies satisfied"


def test_compatibility_factor_rounds_half_up() -> None:
    """
    16 项中 3 项失败：40 * 13/16 = 32.5，四舍五入为 33。
    """
    statuses = [PeerStatus.MISSING] * 2 + [PeerStatus.INCOMPATIBLE] + [PeerStatus.COMPATIBLE] * 13
    factor = score_compatibility(_compat(*statuses))
    assert factor.score == 33
    assert factor.reason == "Peer issues: 2 missing, 1 incompatible"


def test_compatibility_factor_all_failing_is_zero() -> None:
    factor = score_compatibility(_compat(PeerStatus.INCOMPATIBLE, PeerStatus.MISSING))
    assert factor.score == 0


def test_security_factor_penalties() -> None:
    """
    CRITICAL 扣 15、HIGH 扣 8、MODERATE 扣 3，LOW 不扣分。
    """
    assert score_security(_security()).score == 30
    assert score_security(_security(Severity.CRITICAL)).score == 15
    assert score_security(_security(Severity.HIGH, Severity.MODERATE)).score == 19
    assert score_security(_security(Severity.CRITICAL, Severity.CRITICAL, Severity.HIGH)).score == 0


def test_security_factor_low_severity_costs_nothing() -> None:
    factor = score_security(_security(Severity.LOW, Severity.LOW))
    assert factor.score == 30
    assert factor.reason == "2 vulnerabilities (0 critical, 0 high)"


def test_security_factor_reason_singular() -> None:
    assert score_security(_security(Severity.CRITICAL)).reason == "1 vulnerability (1 critical, 0 high)"


def test_deprecation_factor() -> None:
    assert score_deprecation(None).score == 15
    assert score_deprecation(_info()).score == 15
    factor = score_deprecation(_info(deprecated="use something else"))
    assert factor.score == 0
    assert factor.reason == "Deprecated: use something else"


@pytest.mark.parametrize(
    "days_ago,expected",
    [
        (30, 15),
        (365, 15),
        (400, 10),
        (730, 10),
        (800, 5),
    ],
)
def test_maintenance_staleness(days_ago: int, expected: int) -> None:
    factor = score_maintenance(_info(last_publish=_iso(days_ago)), now=NOW)
    assert factor.score == expected


def test_maintenance_penalties_stack_and_clamp() -> None:
    """
    陈旧、无维护者、低下载量三项扣分可叠加，最终结果不低于 0。
    """
    info = _info(last_publish=_iso(1000), maintainer_count=0, weekly_downloads=10)
    factor = score_maintenance(info, now=NOW)
    assert factor.score == 0
    assert "No listed maintainers" in factor.reason
    assert "Low usage: 10 weekly downloads" in factor.reason


def test_maintenance_single_maintainer_and_missing_timestamp() -> None:
    factor = score_maintenance(_info(last_publish=None, maintainer_count=1), now=NOW)
    assert factor.score == 13
    assert factor.reason == "Single maintainer (bus factor)"


def test_maintenance_unparseable_timestamp_is_ignored() -> None:
    assert score_maintenance(_info(last_publish="yesterday"), now=NOW).score == 15


def test_healthy_package_scores_100() -> None:
    score = calculate_risk_score(CompatibilityReport("pkg", [], True), _security(), _info(), now=NOW)
    assert score.score == 100
    assert score.action == RiskAction.ALLOW
    assert [f.name for f in score.factors] == ["Peer Compatibility", "Security", "Deprecation", "Maintenance"]


def test_deprecated_and_stale_package_is_warned() -> None:
    """
    弃用（-15）且超过两年未发布（-10）：总分 75，落在 WARN。
    """
    info = _info(deprecated="no longer supported", last_publish=_iso(900))
    score = calculate_risk_score(CompatibilityReport("pkg", [], True), _security(), info, now=NOW)
    assert score.score == 75
    assert score.action == RiskAction.WARN


def test_forty_is_blocked() -> None:
    compat = _compat(PeerStatus.INCOMPATIBLE)
    info = _info(maintainer_count=0)
    score = calculate_risk_score(compat, _security(Severity.CRITICAL), info, now=NOW)
    assert score.score == 40
    assert score.action == RiskAction.BLOCK


def test_missing_package_info_keeps_neutral_factors() -> None:
    score = calculate_risk_score(CompatibilityReport("pkg", [], True), _security(), None, now=NOW)
    assert score.score == 100
    assert score.factors[2].reason == "Package info unavailable, skipped"


def test_total_is_sum_of_factors_and_within_bounds() -> None:
    score = calculate_risk_score(
        _compat(PeerStatus.MISSING, PeerStatus.COMPATIBLE, PeerStatus.COMPATIBLE),
        _security(Severity.HIGH),
        _info(maintainer_count=1),
        now=NOW,
    )
    assert score.score == sum(f.score for f in score.factors)
    assert all(0 <= f.score <= f.max_score for f in score.factors)
    assert 0 <= score.score <= 100


def test_additional_vulnerability_never_raises_score() -> None:
    """
    多一个漏洞、多一个失败 peer，总分都不会上升。
    """
    compat = _compat(PeerStatus.COMPATIBLE, PeerStatus.COMPATIBLE)
    before = calculate_risk_score(compat, _security(Severity.MODERATE), _info(), now=NOW).score
    after = calculate_risk_score(compat, _security(Severity.MODERATE, Severity.HIGH), _info(), now=NOW).score
    assert after <= before

    worse_compat = _compat(PeerStatus.COMPATIBLE, PeerStatus.MISSING)
    worse = calculate_risk_score(worse_compat, _security(Severity.MODERATE), _info(), now=NOW).score
    assert worse <= before
