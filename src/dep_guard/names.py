from __future__ import annotations

from urllib.parse import quote


def encode_package_name(name: str) -> str:
    """
    将 npm 包名编码为 registry URL 路径段（scoped 包保留 @，斜杠编码为 %2F）。
    """
    return quote(name.strip(), safe="@")
