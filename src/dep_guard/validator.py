from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable

import httpx
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

from dep_guard.cache import CacheDB
from dep_guard.compatibility import check_compatibility
from dep_guard.config import AppConfig
from dep_guard.manifest import load_package_json, merge_dependencies
from dep_guard.osv_client import check_security
from dep_guard.registry_client import create_async_client, get_package_info
from dep_guard.report import ValidationResult
from dep_guard.scoring import calculate_risk_score


async def validate_package(
    package_name: str,
    project_path: Path | str | None = None,
    *,
    config: AppConfig,
    cache: CacheDB | None = None,
    client: httpx.AsyncClient | None = None,
) -> ValidationResult:
    """
    校验单个包：peer 兼容性与元数据并行获取，安全检查依赖解析出的版本，最后计算风险评分。
    """
    owns_client = client is None
    http = client or create_async_client(config.registry)
    try:
        compatibility, package_info = await asyncio.gather(
            check_compatibility(
                package_name,
                project_path,
                settings=config.registry,
                client=http,
                cache=cache,
                cache_ttl_s=config.cache_ttl_s,
                install_command=config.install_command,
            ),
            get_package_info(
                package_name,
                settings=config.registry,
                client=http,
                cache=cache,
                cache_ttl_s=config.cache_ttl_s,
            ),
        )

        version = package_info.version if package_info is not None else "latest"
        security = await check_security(
            package_name,
            version,
            client=http,
            osv_url=config.osv_url,
            cache=cache,
            cache_ttl_s=config.security_cache_ttl_s,
        )
    finally:
        if owns_client:
            await http.aclose()

    risk_score = calculate_risk_score(compatibility, security, package_info)
    return ValidationResult(
        package_name=package_name,
        compatibility=compatibility,
        package_info=package_info,
        security=security,
        risk_score=risk_score,
        action=risk_score.action,
    )


async def validate_manifest(
    manifest_path: Path,
    *,
    config: AppConfig,
    cache: CacheDB | None = None,
    on_start: Callable[[int], Any] | None = None,
    on_package: Callable[[str], Any] | None = None,
    on_complete: Callable[[], Any] | None = None,
) -> list[ValidationResult]:
    """
    逐个校验 package.json 中声明的全部依赖（顺序执行），以该文件所在目录作为项目路径。
    """
    data = load_package_json(manifest_path)
    names = list(merge_dependencies(data))
    if on_start:
        on_start(len(names))

    results: list[ValidationResult] = []
    async with create_async_client(config.registry) as client:
        for name in names:
            if on_package:
                on_package(name)
            results.append(
                await validate_package(
                    name,
                    manifest_path.parent,
                    config=config,
                    cache=cache,
                    client=client,
                )
            )
            if on_complete:
                on_complete()
    return results


def _open_cache(config: AppConfig) -> CacheDB | None:
    return CacheDB(config.cache_path) if config.use_cache else None


def run_validate(package_name: str, project_path: Path | None, *, config: AppConfig) -> ValidationResult:
    """
    同步入口：校验单个包，期间在 stderr 显示 spinner。
    """
    console = Console(stderr=True)
    cache_db = _open_cache(config)
    try:
        with console.status(f"Validating package [bold]{package_name}[/bold]..."):
            return asyncio.run(validate_package(package_name, project_path, config=config, cache=cache_db))
    finally:
        if cache_db is not None:
            cache_db.close()


def run_validate_manifest(manifest_path: Path, *, config: AppConfig) -> list[ValidationResult]:
    """
    同步入口：校验 package.json 中的全部依赖，期间在 stderr 显示进度条。
    """
    console = Console(stderr=True)
    state: dict[str, Any] = {"progress": None, "task_id": None}

    def on_start(total: int) -> None:
        if total > 0:
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                "({task.completed}/{task.total})",
                console=console,
                transient=True,
            )
            progress.start()
            state["progress"] = progress
            state["task_id"] = progress.add_task("Validating...", total=total)

    def on_package(name: str) -> None:
        progress = state["progress"]
        task_id = state["task_id"]
        if progress and task_id is not None:
            progress.update(task_id, description=f"Validating [bold]{name}[/bold]")

    def on_complete() -> None:
        progress = state["progress"]
        task_id = state["task_id"]
        if progress and task_id is not None:
            progress.advance(task_id)

    cache_db = _open_cache(config)
    try:
        return asyncio.run(
            validate_manifest(
                manifest_path,
                config=config,
                cache=cache_db,
                on_start=on_start,
                on_package=on_package,
                on_complete=on_complete,
            )
        )
    finally:
        if state["progress"]:
            state["progress"].stop()
        if cache_db is not None:
            cache_db.close()
