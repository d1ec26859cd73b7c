from __future__ import annotations

import json
import logging
import os
import sqlite3
import sys
import time
from pathlib import Path
from typing import Any


_SCHEMA_VERSION = 1

DEFAULT_TTL_S = 24 * 60 * 60
SECURITY_TTL_S = 7 * 24 * 60 * 60

logger = logging.getLogger(__name__)


def default_cache_dir() -> Path:
    """
    返回默认缓存目录；DEP_GUARD_CACHE_DIR 环境变量优先。
    """
    override = os.environ.get("DEP_GUARD_CACHE_DIR")
    if override:
        return Path(override)

    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
        if base:
            return Path(base) / "dep-guard"
        return Path.home() / "AppData" / "Local" / "dep-guard"

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / "dep-guard"

    xdg_cache_home = os.environ.get("XDG_CACHE_HOME")
    if xdg_cache_home:
        return Path(xdg_cache_home) / "dep-guard"

    return Path.home() / ".cache" / "dep-guard"


def default_cache_path(cache_dir: Path | None = None) -> Path:
    """
    返回缓存数据库文件路径。
    """
    return (cache_dir or default_cache_dir()) / "cache.sqlite3"


class CacheDB:
    """
    SQLite 实现的 key -> JSON 缓存，每条记录带独立 TTL（秒，0 表示永不过期）。
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._path)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def close(self) -> None:
        self._conn.close()

    def _ensure_schema(self) -> None:
        """
        创建或升级缓存表结构；版本不一致时清空旧数据。
        """
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS entries (
                key TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                ttl_s INTEGER NOT NULL,
                stored_at INTEGER NOT NULL
            )
            """
        )
        cur.execute("SELECT value FROM meta WHERE key = 'schema_version'")
        row = cur.fetchone()
        if row is None:
            cur.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?)", (str(_SCHEMA_VERSION),))
            self._conn.commit()
            return

        if int(row["value"]) != _SCHEMA_VERSION:
            cur.execute("DELETE FROM entries")
            cur.execute("UPDATE meta SET value = ? WHERE key = 'schema_version'", (str(_SCHEMA_VERSION),))
            self._conn.commit()

    def get(self, key: str) -> Any | None:
        """
        读取缓存；不存在、已过期或内容损坏时返回 None（过期记录顺便删除）。
        """
        cur = self._conn.cursor()
        cur.execute("SELECT payload, ttl_s, stored_at FROM entries WHERE key = ?", (key,))
        row = cur.fetchone()
        if row is None:
            return None

        ttl_s = int(row["ttl_s"])
        if ttl_s > 0 and (time.time() - int(row["stored_at"])) > ttl_s:
            self.delete(key)
            return None

        try:
            return json.loads(row["payload"])
        except ValueError:
            logger.debug("corrupt cache entry %s", key)
            return None

    def set(self, key: str, data: Any, *, ttl_s: int = DEFAULT_TTL_S) -> None:
        """
        写入缓存记录。
        """
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO entries(key, payload, ttl_s, stored_at)
            VALUES(?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                payload = excluded.payload,
                ttl_s = excluded.ttl_s,
                stored_at = excluded.stored_at
            """,
            (key, json.dumps(data, ensure_ascii=False), int(ttl_s), int(time.time())),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM entries WHERE key = ?", (key,))
        self._conn.commit()

    def clear(self) -> int:
        """
        清空全部缓存，返回删除的记录数。
        """
        cur = self._conn.execute("DELETE FROM entries")
        self._conn.commit()
        return cur.rowcount
