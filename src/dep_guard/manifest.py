from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

MANIFEST_NAME = "package.json"

logger = logging.getLogger(__name__)


class ManifestError(Exception):
    """
    package.json 无法读取或内容不是合法 JSON 对象。
    """


def find_package_json(start: Path, max_depth: int = 3) -> Path | None:
    """
    从 start 开始向上最多查找 max_depth 层目录（含自身），返回第一个 package.json。
    无权限等文件系统错误视为未找到。
    """
    try:
        current = start.resolve()
    except OSError as exc:
        logger.debug("cannot resolve %s: %s", start, exc)
        return None
    for _ in range(max_depth):
        candidate = current / MANIFEST_NAME
        try:
            if candidate.is_file():
                return candidate
        except OSError as exc:
            logger.debug("cannot access %s: %s", candidate, exc)
            return None
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def load_package_json(path: Path) -> dict[str, Any]:
    """
    读取并解析 package.json，失败时抛 ManifestError。
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        raise ManifestError(f"cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"{path} is not a JSON object")
    return data


def _dependency_table(data: dict[str, Any], key: str) -> dict[str, str]:
    table = data.get(key)
    if not isinstance(table, dict):
        return {}
    return {str(name): str(spec) for name, spec in table.items() if spec is not None}


def merge_dependencies(data: dict[str, Any]) -> dict[str, str]:
    """
    合并 dependencies 与 devDependencies；同名时以 dependencies 为准，
    devDependencies 只补充 dependencies 中未声明的包。
    """
    installed = _dependency_table(data, "dependencies")
    for name, spec in _dependency_table(data, "devDependencies").items():
        installed.setdefault(name, spec)
    return installed


def load_installed_dependencies(path: Path) -> dict[str, str]:
    """
    读取 package.json 中已声明的依赖范围；读取或解析失败时返回空映射。
    """
    try:
        data = load_package_json(path)
    except ManifestError as exc:
        logger.debug("treating manifest as empty: %s", exc)
        return {}
    return merge_dependencies(data)
