from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from typing import cast

from sermon_catalog.repositories.common import utc_now_iso
from sermon_catalog.repositories.database import Database


@dataclass(frozen=True)
class PageConfig:
    page_id: str
    title: str
    description: str
    search_query: str
    default_sort: str
    subcategories: tuple[str, ...]


class PageRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def get(self, page_id: str) -> PageConfig | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT page_id, title, description, search_query, default_sort, subcategories_json
                FROM pages
                WHERE page_id = ?
                """,
                (page_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_page(row)

    def list_pages(self) -> list[PageConfig]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT page_id, title, description, search_query, default_sort, subcategories_json
                FROM pages
                ORDER BY page_id ASC
                """
            ).fetchall()
        return [_row_to_page(row) for row in rows]

    def upsert(self, page: PageConfig) -> None:
        normalized_page_id = page.page_id.strip()
        if not normalized_page_id:
            raise ValueError("page_id must not be empty")

        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO pages (
                    page_id, title, description, search_query, default_sort,
                    subcategories_json, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(page_id) DO UPDATE SET
                    title = excluded.title,
                    description = excluded.description,
                    search_query = excluded.search_query,
                    default_sort = excluded.default_sort,
                    subcategories_json = excluded.subcategories_json,
                    updated_at = excluded.updated_at
                """,
                (
                    normalized_page_id,
                    page.title,
                    page.description,
                    page.search_query,
                    page.default_sort,
                    json.dumps(list(page.subcategories)),
                    utc_now_iso(),
                ),
            )


def _row_to_page(row: sqlite3.Row) -> PageConfig:
    return PageConfig(
        page_id=str(row["page_id"]),
        title=str(row["title"]),
        description=str(row["description"]),
        search_query=str(row["search_query"]),
        default_sort=str(row["default_sort"]),
        subcategories=_decode_subcategories(row["subcategories_json"]),
    )


def _decode_subcategories(raw_value: object) -> tuple[str, ...]:
    if not isinstance(raw_value, str):
        return ()
    try:
        parsed = cast(object, json.loads(raw_value))
    except json.JSONDecodeError:
        return ()
    if not isinstance(parsed, list):
        return ()

    subcategories: list[str] = []
    for item in cast(list[object], parsed):
        if isinstance(item, str) and item.strip():
            subcategories.append(item)
    return tuple(subcategories)
