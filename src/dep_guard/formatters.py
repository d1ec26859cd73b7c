from __future__ import annotations

import json
from dataclasses import asdict
from enum import Enum
from typing import Any, TextIO

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from dep_guard.alternatives import get_alternatives, is_known_deprecated
from dep_guard.models import PeerCheck, PeerStatus, RiskAction, Severity
from dep_guard.report import ValidationResult

_ACTION_STYLE = {
    RiskAction.ALLOW: ("green", "ALLOW (Low Risk)"),
    RiskAction.WARN: ("yellow", "WARN (Medium Risk)"),
    RiskAction.BLOCK: ("red", "BLOCK (High Risk)"),
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def result_to_json_obj(result: ValidationResult) -> dict[str, Any]:
    """
    将校验结果转换为可 JSON 序列化的字典（枚举转为字符串）。
    """
    return _jsonable(asdict(result))


def render_json(results: list[ValidationResult]) -> str:
    """
    渲染 JSON 输出：单个结果输出对象，多个结果输出数组。
    """
    objs = [result_to_json_obj(r) for r in results]
    payload: Any = objs[0] if len(objs) == 1 else objs
    return json.dumps(payload, ensure_ascii=False, indent=2)


def _md_cell(text: str) -> str:
    return text.replace("|", "\\|")


def render_markdown(results: list[ValidationResult]) -> str:
    """
    渲染 Markdown 报告（汇总表 + 每个包的 peer 依赖明细）。
    """
    lines: list[str] = ["# dep-guard report", ""]
    lines.append("| Package | Score | Action | Peers | Vulnerabilities | Deprecated |")
    lines.append("|---|---|---|---|---|---|")
    for r in results:
        deprecated = "yes" if r.package_info and r.package_info.deprecated else "no"
        peers = "ok" if r.compatibility.compatible else "issues"
        lines.append(
            f"| {r.package_name} | {r.risk_score.score}/100 | {r.action.value} | {peers} "
            f"| {len(r.security.vulnerabilities)} | {deprecated} |"
        )

    for r in results:
        if not r.compatibility.checks:
            continue
        lines.append("")
        lines.append(f"## {r.package_name}")
        lines.append("")
        lines.append("| Peer | Required | Installed | Status | Fix |")
        lines.append("|---|---|---|---|---|")
        for c in r.compatibility.checks:
            lines.append(
                f"| {c.name} | {_md_cell(c.required)} | {_md_cell(c.installed or '-')} "
                f"| {c.status.value} | {_md_cell(c.fix_command or '-')} |"
            )
    return "\n".join(lines) + "\n"


def format_peer_status(check: PeerCheck) -> str:
    """
    以 rich markup 渲染单条 peer 依赖状态。
    """
    name = escape(check.name)
    required = escape(check.required)
    if check.status == PeerStatus.MISSING:
        return f"[red]  x Missing: {name}[/red]\n     Required: {required}"
    if check.status == PeerStatus.INCOMPATIBLE:
        installed = escape(check.installed or "unknown")
        return f"[yellow]  ! Incompatible: {name}[/yellow]\n     Required: {required}\n     You have: {installed}"
    if check.status == PeerStatus.OPTIONAL_MISSING:
        return f"[dim]  - {name}: {required} (optional)[/dim]"
    return f"[green]  ✓ {name}: {escape(check.installed or check.required)}[/green]"


def _section(console: Console, title: str) -> None:
    console.print()
    console.print(f"[bold underline]{title}[/bold underline]")


def print_result(result: ValidationResult, *, file: TextIO | None = None) -> None:
    """
    以分节形式在控制台输出单个包的校验结果。
    """
    console = Console(file=file)

    _section(console, "COMPATIBILITY")
    checks = result.compatibility.checks
    if not checks:
        console.print("[green]✓[/green] No peer dependencies to check.")
    else:
        for check in checks:
            console.print(format_peer_status(check))
        fix = next((c.fix_command for c in checks if c.fix_command), None)
        if fix:
            console.print()
            console.print("[bold]Run this to fix:[/bold]")
            console.print(f"[cyan]  {escape(fix)}[/cyan]")

    _section(console, "SECURITY")
    if not result.security.vulnerabilities:
        console.print("[green]✓[/green] No known vulnerabilities.")
    for v in result.security.vulnerabilities:
        color = "red" if v.severity in {Severity.CRITICAL, Severity.HIGH} else "yellow"
        console.print(f"[{color}]  \\[{v.severity.value}][/{color}] {escape(v.summary)}")
        console.print(f"[dim]    ID: {escape(v.id)} | Affected: {escape(v.affected_versions)}[/dim]")
        if v.url:
            console.print(f"[dim]    Link: {escape(v.url)}[/dim]")

    _section(console, "PACKAGE INFO")
    info = result.package_info
    if info is None:
        console.print("[yellow]! Could not fetch package information from the registry.[/yellow]")
    else:
        if info.deprecated:
            console.print(f"[red]x DEPRECATED: {escape(info.deprecated)}[/red]")
        else:
            console.print("[green]✓[/green] Not deprecated.")
        console.print(f"[dim]  Version: {escape(info.version)} | License: {escape(info.license)}[/dim]")
        console.print(f"[dim]  Downloads: {info.weekly_downloads:,} weekly[/dim]")

    if (info is not None and info.deprecated) or is_known_deprecated(result.package_name):
        alternatives = get_alternatives(result.package_name)
        if alternatives:
            console.print(f"[cyan]  Consider instead: {escape(', '.join(alternatives))}[/cyan]")

    _section(console, "SUMMARY")
    color, label = _ACTION_STYLE[result.action]
    body = [
        f"Package: {escape(result.package_name)}",
        f"Risk Score: {result.risk_score.score}/100",
        f"Recommendation: [bold {color}]{label}[/bold {color}]",
        "",
    ]
    body.extend(f"{f.score}/{f.max_score} - {f.name}: {escape(f.reason)}" for f in result.risk_score.factors)
    console.print(Panel("\n".join(body), border_style=color, padding=(1, 2)))


def print_results(results: list[ValidationResult], *, file: TextIO | None = None) -> None:
    """
    依次输出多个包的校验结果。
    """
    console = Console(file=file)
    for result in results:
        console.print("=" * 40)
        print_result(result, file=file)
    blocked = sum(1 for r in results if r.action == RiskAction.BLOCK)
    console.print(f"Scanned {len(results)} packages, {blocked} blocked.")
