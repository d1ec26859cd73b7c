from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from dep_guard.config import AppConfig, load_config
from dep_guard.models import RiskAction
from dep_guard.registry_client import RegistryAuth
from dep_guard.report import ValidationResult


def build_parser() -> argparse.ArgumentParser:
    """
    构建 dep-guard 的命令行参数解析器。
    """
    parser = argparse.ArgumentParser(
        prog="dep-guard",
        description="Validate npm packages before installation: peer dependency compatibility, "
        "deprecation, security vulnerabilities and risk scoring.",
    )
    parser.add_argument("--version", action="store_true", help="print the version and exit")
    parser.add_argument("--config", help="config file path (.toml or .yaml)")
    parser.add_argument("--registry-url", help="npm registry base URL")
    parser.add_argument("--token", help="bearer token for a private registry")
    parser.add_argument("--no-cache", action="store_true", help="bypass the local cache")
    parser.add_argument("--cache-ttl", type=int, help="registry cache TTL in seconds (0 = never expires)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log provider diagnostics to stderr")

    subparsers = parser.add_subparsers(dest="command")

    check = subparsers.add_parser("check", help="validate a single npm package before installing")
    check.add_argument("package", help="npm package name")
    check.add_argument("--project-path", default=".", help="project root to check peers against (default: cwd)")
    _add_report_options(check)

    check_file = subparsers.add_parser("check-file", help="validate every dependency of a package.json")
    check_file.add_argument("path", help="path to package.json")
    _add_report_options(check_file)

    subparsers.add_parser("cache-clear", help="purge the local cache")

    return parser


def _add_report_options(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("--dry-run", action="store_true", help="report only, never exit non-zero on BLOCK")
    sub.add_argument("--format", choices=["text", "json", "md"], default="text", help="output format")
    sub.add_argument("--output", help="write the report to a file (default: stdout)")


def _merge_cli_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    """
    将 CLI 参数覆盖合并到 AppConfig。
    """
    registry = cfg.registry
    if args.registry_url:
        registry = replace(registry, registry_url=args.registry_url)
    if args.token:
        registry = replace(registry, auth=RegistryAuth(bearer_token=args.token))

    return replace(
        cfg,
        registry=registry,
        use_cache=cfg.use_cache and not bool(args.no_cache),
        cache_ttl_s=cfg.cache_ttl_s if args.cache_ttl is None else int(args.cache_ttl),
    )


def _configure_logging(verbose: bool) -> None:
    """
    --verbose 时以 DEBUG 级别输出到 stderr（rich 格式）。
    """
    from rich.console import Console
    from rich.logging import RichHandler

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _emit(results: list[ValidationResult], *, fmt: str, output: str | None) -> None:
    """
    按格式输出报告到 stdout 或文件。
    """
    from dep_guard.formatters import print_result, print_results, render_json, render_markdown

    if fmt == "text":
        printer = print_result if len(results) == 1 else print_results
        target = results[0] if len(results) == 1 else results
        if output:
            with open(output, "w", encoding="utf-8") as f:
                printer(target, file=f)
        else:
            printer(target)
        return

    text = render_json(results) if fmt == "json" else render_markdown(results)
    if output:
        Path(output).write_text(text, encoding="utf-8")
    else:
        print(text)


def _exit_code(results: list[ValidationResult], *, dry_run: bool) -> int:
    if dry_run:
        return 0
    return 1 if any(r.action == RiskAction.BLOCK for r in results) else 0


def main(argv: list[str] | None = None) -> int:
    """
    dep-guard 命令行入口。
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from dep_guard import __version__

        print(__version__)
        return 0

    if args.command is None:
        parser.print_help(sys.stderr)
        return 2

    _configure_logging(bool(args.verbose))
    cfg = _merge_cli_overrides(load_config(args.config), args)

    if args.command == "check":
        from dep_guard.validator import run_validate

        try:
            result = run_validate(args.package, Path(args.project_path), config=cfg)
        except Exception as exc:
            print(f"dep-guard: validation failed: {exc}", file=sys.stderr)
            return 1
        _emit([result], fmt=args.format, output=args.output)
        return _exit_code([result], dry_run=bool(args.dry_run))

    if args.command == "check-file":
        from dep_guard.manifest import ManifestError
        from dep_guard.validator import run_validate_manifest

        try:
            results = run_validate_manifest(Path(args.path), config=cfg)
        except ManifestError as exc:
            print(f"dep-guard: {exc}", file=sys.stderr)
            return 1
        except Exception as exc:
            print(f"dep-guard: scan failed: {exc}", file=sys.stderr)
            return 1
        if not results:
            print("dep-guard: no dependencies declared.", file=sys.stderr)
            return 0
        _emit(results, fmt=args.format, output=args.output)
        return _exit_code(results, dry_run=bool(args.dry_run))

    if args.command == "cache-clear":
        from dep_guard.cache import CacheDB

        db = CacheDB(cfg.cache_path)
        try:
            removed = db.clear()
        finally:
            db.close()
        print(f"Removed {removed} cached entries.")
        return 0

    print(f"dep-guard: unknown command {args.command!r}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
