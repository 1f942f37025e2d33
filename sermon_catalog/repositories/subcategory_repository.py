from __future__ import annotations

from dataclasses import dataclass

from sermon_catalog.repositories.common import utc_now_iso
from sermon_catalog.repositories.database import Database


@dataclass(frozen=True)
class SubcategoryEntry:
    subcategory: str
    api_key_name: str


class SubcategoryRepository:
    """Lookup table from a topical subcategory to the credential name used to ingest it."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def resolve(self, subcategory: str) -> str | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT api_key_name
                FROM subcategory_directory
                WHERE subcategory = ?
                """,
                (subcategory.strip(),),
            ).fetchone()
        if row is None:
            return None
        return str(row["api_key_name"])

    def list_entries(self) -> list[SubcategoryEntry]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT subcategory, api_key_name
                FROM subcategory_directory
                ORDER BY subcategory ASC
                """
            ).fetchall()
        return [
            SubcategoryEntry(
                subcategory=str(row["subcategory"]),
                api_key_name=str(row["api_key_name"]),
            )
            for row in rows
        ]

    def upsert(self, entry: SubcategoryEntry) -> None:
        subcategory = entry.subcategory.strip()
        api_key_name = entry.api_key_name.strip()
        if not subcategory:
            raise ValueError("subcategory must not be empty")
        if not api_key_name:
            raise ValueError("api_key_name must not be empty")

        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO subcategory_directory (subcategory, api_key_name, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(subcategory) DO UPDATE SET
                    api_key_name = excluded.api_key_name,
                    updated_at = excluded.updated_at
                """,
                (subcategory, api_key_name, utc_now_iso()),
            )
