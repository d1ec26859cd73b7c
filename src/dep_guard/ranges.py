from __future__ import annotations

import re
from dataclasses import dataclass
from itertools import product

from semantic_version import NpmSpec, Version
from semantic_version.base import AllOf, Always, AnyOf, Never, Range

_OPERATOR_GAP = re.compile(r"(<=|>=|<|>|=|~|\^)\s+")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class Bound:
    """
    区间的一个端点。
    """

    version: Version
    inclusive: bool


@dataclass(frozen=True, slots=True)
class Interval:
    """
    一组 comparator 收敛得到的版本区间；None 端点表示无界。
    """

    lower: Bound | None
    upper: Bound | None
    excluded: frozenset[Version] = frozenset()

    def is_empty(self) -> bool:
        """
        判断区间内是否不存在任何版本。
        """
        if self.lower is None or self.upper is None:
            return False
        if self.lower.version < self.upper.version:
            return False
        if self.lower.version > self.upper.version:
            return True
        if not (self.lower.inclusive and self.upper.inclusive):
            return True
        return self.lower.version in self.excluded


def _alternatives(clause: object) -> list[list[Range]]:
    """
    将 NpmSpec 的子句树展开为析取范式：每个元素是一组需同时满足的 comparator。
    """
    if isinstance(clause, AnyOf):
        return [alt for sub in clause.clauses for alt in _alternatives(sub)]
    if isinstance(clause, AllOf):
        combos: list[list[Range]] = [[]]
        for sub in clause.clauses:
            combos = [left + right for left, right in product(combos, _alternatives(sub))]
        return combos
    if isinstance(clause, Never):
        return []
    if isinstance(clause, Always):
        return [[]]
    if isinstance(clause, Range):
        return [[clause]]
    raise ValueError(f"unsupported range clause: {clause!r}")


def _tighter_lower(current: Bound | None, candidate: Bound) -> Bound:
    if current is None or candidate.version > current.version:
        return candidate
    if candidate.version == current.version and not candidate.inclusive:
        return candidate
    return current


def _tighter_upper(current: Bound | None, candidate: Bound) -> Bound:
    if current is None or candidate.version < current.version:
        return candidate
    if candidate.version == current.version and not candidate.inclusive:
        return candidate
    return current


def to_interval(comparators: list[Range]) -> Interval:
    """
    将一组 comparator（AND 关系）收敛为单个区间。
    """
    lower: Bound | None = None
    upper: Bound | None = None
    excluded: set[Version] = set()

    for comp in comparators:
        op = comp.operator
        target = comp.target
        if op == Range.OP_EQ:
            lower = _tighter_lower(lower, Bound(target, True))
            upper = _tighter_upper(upper, Bound(target, True))
        elif op == Range.OP_GT:
            lower = _tighter_lower(lower, Bound(target, False))
        elif op == Range.OP_GTE:
            lower = _tighter_lower(lower, Bound(target, True))
        elif op == Range.OP_LT:
            upper = _tighter_upper(upper, Bound(target, False))
        elif op == Range.OP_LTE:
            upper = _tighter_upper(upper, Bound(target, True))
        elif op == Range.OP_NEQ:
            excluded.add(target)
        else:
            raise ValueError(f"unsupported operator: {op!r}")

    return Interval(lower=lower, upper=upper, excluded=frozenset(excluded))


def normalize_range(expression: str) -> str:
    """
    去掉运算符与版本号之间的空白（如 ">= 16.8.0" -> ">=16.8.0"），并合并连续空白。
    """
    collapsed = _WHITESPACE.sub(" ", expression.strip())
    return _OPERATOR_GAP.sub(r"\1", collapsed)


def parse_range(expression: str) -> list[Interval]:
    """
    解析 npm semver 范围为区间列表（各区间为 OR 关系）；无法解析时抛 ValueError。
    """
    spec = NpmSpec(normalize_range(expression))
    return [to_interval(alt) for alt in _alternatives(spec.clause)]


def _intersect(a: Interval, b: Interval) -> Interval:
    lower = a.lower
    if b.lower is not None:
        lower = _tighter_lower(lower, b.lower)
    upper = a.upper
    if b.upper is not None:
        upper = _tighter_upper(upper, b.upper)
    return Interval(lower=lower, upper=upper, excluded=a.excluded | b.excluded)


def ranges_intersect(installed: str, required: str) -> bool:
    """
    判断已安装范围与所需范围是否存在交集（区间相交语义，而非单版本包含）。

    任一范围无法解析（如 ``latest``、``workspace:*``、git/file 依赖）时返回 False，
    即按不兼容处理而不是让整个检查失败。
    """
    try:
        left = parse_range(installed)
        right = parse_range(required)
    except (ValueError, TypeError):
        return False

    for a, b in product(left, right):
        if a.is_empty() or b.is_empty():
            continue
        if not _intersect(a, b).is_empty():
            return True
    return False
