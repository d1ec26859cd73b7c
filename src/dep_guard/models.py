from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PeerStatus(str, Enum):
    """
    单个 peer 依赖的兼容状态。
    """

    COMPATIBLE = "COMPATIBLE"
    INCOMPATIBLE = "INCOMPATIBLE"
    MISSING = "MISSING"
    OPTIONAL_MISSING = "OPTIONAL_MISSING"


FAILING_STATUSES = frozenset({PeerStatus.MISSING, PeerStatus.INCOMPATIBLE})


class Severity(str, Enum):
    """
    漏洞严重等级（由 OSV 记录归一化而来）。
    """

    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class RiskAction(str, Enum):
    """
    最终的安装建议。
    """

    ALLOW = "ALLOW"
    WARN = "WARN"
    BLOCK = "BLOCK"


@dataclass(frozen=True, slots=True)
class PeerRequirement:
    """
    目标包在 latest 版本上声明的一条 peerDependencies。
    """

    name: str
    range: str
    optional: bool = False


@dataclass(frozen=True, slots=True)
class PeerCheck:
    """
    单个 peer 依赖的检查结果；fix_command 仅在 MISSING/INCOMPATIBLE 时存在。
    """

    name: str
    required: str
    installed: str | None
    status: PeerStatus
    fix_command: str | None = None


@dataclass(frozen=True, slots=True)
class CompatibilityReport:
    """
    目标包的 peer 依赖兼容性报告。
    """

    package_name: str
    checks: list[PeerCheck]
    compatible: bool
    manifest_path: str | None = None


@dataclass(frozen=True, slots=True)
class PackageInfo:
    """
    npm registry 中目标包 latest 版本的元数据。
    """

    name: str
    version: str
    description: str = ""
    deprecated: str | None = None
    last_publish: str | None = None
    weekly_downloads: int = 0
    maintainer_count: int = 0
    license: str = "unknown"
    homepage: str = ""
    repository: str = ""
    peer_requirements: tuple[PeerRequirement, ...] = ()


@dataclass(frozen=True, slots=True)
class Vulnerability:
    """
    一条安全公告。
    """

    id: str
    summary: str
    severity: Severity
    affected_versions: str
    url: str


@dataclass(frozen=True, slots=True)
class SecurityReport:
    """
    目标包指定版本的安全公告汇总。
    """

    package_name: str
    vulnerabilities: list[Vulnerability]
    has_critical: bool


@dataclass(frozen=True, slots=True)
class RiskFactor:
    """
    风险评分中的一个加权因子。
    """

    name: str
    score: int
    max_score: int
    reason: str


@dataclass(frozen=True, slots=True)
class RiskScore:
    """
    0–100 的综合评分（越高越安全）与对应建议。
    """

    score: int
    action: RiskAction
    factors: list[RiskFactor]
