from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS videos (
    id TEXT PRIMARY KEY,
    external_id TEXT NOT NULL,
    sort_strategy TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    thumbnail_url TEXT NOT NULL,
    channel_title TEXT NULL,
    published_at TEXT NULL,
    duration_seconds INTEGER NULL,
    view_count INTEGER NOT NULL DEFAULT 0,
    like_count INTEGER NOT NULL DEFAULT 0,
    comment_count INTEGER NOT NULL DEFAULT 0,
    search_query TEXT NOT NULL,
    moderation_status TEXT NOT NULL DEFAULT 'Needs Review',
    pending_deletion INTEGER NOT NULL DEFAULT 0,
    is_featured INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    last_fetched_at TEXT NOT NULL,
    UNIQUE (external_id, sort_strategy)
);

CREATE INDEX IF NOT EXISTS idx_videos_visibility
ON videos(moderation_status, pending_deletion);

CREATE INDEX IF NOT EXISTS idx_videos_external_id
ON videos(external_id);

CREATE TABLE IF NOT EXISTS pages (
    page_id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    search_query TEXT NOT NULL,
    default_sort TEXT NOT NULL,
    subcategories_json TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS subcategory_directory (
    subcategory TEXT PRIMARY KEY,
    api_key_name TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS youtube_quota_daily (
    date_utc TEXT NOT NULL,
    credential_name TEXT NOT NULL,
    units_used INTEGER NOT NULL,
    calls INTEGER NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (date_utc, credential_name)
);
"""


class Database:
    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.executescript(SCHEMA_SQL)

