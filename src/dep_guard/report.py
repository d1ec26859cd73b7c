from __future__ import annotations

from dataclasses import dataclass

from dep_guard.models import CompatibilityReport, PackageInfo, RiskAction, RiskScore, SecurityReport


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """
    单个包的完整校验结果；action 与 risk_score.action 一致，便于调用方直接读取。
    """

    package_name: str
    compatibility: CompatibilityReport
    package_info: PackageInfo | None
    security: SecurityReport
    risk_score: RiskScore
    action: RiskAction
