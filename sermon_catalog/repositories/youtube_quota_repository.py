from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

from sermon_catalog.repositories.common import utc_now_iso
from sermon_catalog.repositories.database import Database


@dataclass(frozen=True)
class QuotaUsage:
    date_utc: str
    credential_name: str
    units_used: int
    calls: int


@dataclass(frozen=True)
class YouTubeQuotaSnapshot:
    date_utc: str
    credential_name: str
    estimated_units_this_call: int
    estimated_units_today: int
    estimated_calls_today: int
    daily_limit: int
    warning_threshold: int
    warning: bool


def _today_utc() -> str:
    return datetime.now(UTC).date().isoformat()


class YouTubeQuotaRepository:
    """Estimated Data API units spent per credential per UTC day.

    YouTube budgets quota per API key, so each credential gets its own counter.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def record_and_snapshot(
        self,
        *,
        credential_name: str,
        estimated_units_this_call: int,
        daily_limit: int,
        warning_threshold: int,
    ) -> YouTubeQuotaSnapshot:
        date_utc = _today_utc()
        units = max(0, estimated_units_this_call)

        with self._db.connection() as conn:
            if units > 0:
                conn.execute(
                    """
                    INSERT INTO youtube_quota_daily
                    (date_utc, credential_name, units_used, calls, updated_at)
                    VALUES (?, ?, ?, 1, ?)
                    ON CONFLICT(date_utc, credential_name) DO UPDATE SET
                        units_used = youtube_quota_daily.units_used + excluded.units_used,
                        calls = youtube_quota_daily.calls + 1,
                        updated_at = excluded.updated_at
                    """,
                    (date_utc, credential_name, units, utc_now_iso()),
                )
            usage = self._fetch_usage(conn, date_utc, credential_name)

        return YouTubeQuotaSnapshot(
            date_utc=date_utc,
            credential_name=credential_name,
            estimated_units_this_call=units,
            estimated_units_today=usage.units_used,
            estimated_calls_today=usage.calls,
            daily_limit=daily_limit,
            warning_threshold=warning_threshold,
            warning=daily_limit > 0 and usage.units_used >= warning_threshold,
        )

    def list_usage(self, *, date_utc: str | None = None) -> list[QuotaUsage]:
        day = date_utc or _today_utc()
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT date_utc, credential_name, units_used, calls
                FROM youtube_quota_daily
                WHERE date_utc = ?
                ORDER BY units_used DESC, credential_name ASC
                """,
                (day,),
            ).fetchall()
        return [
            QuotaUsage(
                date_utc=str(row["date_utc"]),
                credential_name=str(row["credential_name"]),
                units_used=int(row["units_used"]),
                calls=int(row["calls"]),
            )
            for row in rows
        ]

    @staticmethod
    def _fetch_usage(
        conn: sqlite3.Connection,
        date_utc: str,
        credential_name: str,
    ) -> QuotaUsage:
        row = conn.execute(
            """
            SELECT units_used, calls
            FROM youtube_quota_daily
            WHERE date_utc = ? AND credential_name = ?
            """,
            (date_utc, credential_name),
        ).fetchone()
        if row is None:
            return QuotaUsage(date_utc=date_utc, credential_name=credential_name, units_used=0, calls=0)
        return QuotaUsage(
            date_utc=date_utc,
            credential_name=credential_name,
            units_used=int(row["units_used"]),
            calls=int(row["calls"]),
        )
