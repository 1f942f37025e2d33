from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any, Literal
from uuid import uuid4

from sermon_catalog.repositories.common import utc_now_iso
from sermon_catalog.repositories.database import Database

SortStrategy = Literal["relevance", "rating", "viewCount", "date"]
ModerationStatus = Literal["Published", "Needs Review", "Unpublished"]
ListingSort = Literal["view_count", "like_count", "published_at", "comment_count"]

SORT_STRATEGIES: tuple[SortStrategy, ...] = ("relevance", "rating", "viewCount", "date")

MODERATION_STATUS_PUBLISHED: ModerationStatus = "Published"
MODERATION_STATUS_NEEDS_REVIEW: ModerationStatus = "Needs Review"
MODERATION_STATUS_UNPUBLISHED: ModerationStatus = "Unpublished"
MODERATION_STATUSES: frozenset[str] = frozenset(
    {
        MODERATION_STATUS_PUBLISHED,
        MODERATION_STATUS_NEEDS_REVIEW,
        MODERATION_STATUS_UNPUBLISHED,
    }
)

DEFAULT_LISTING_SORT: ListingSort = "view_count"
_LISTING_SORT_COLUMNS: dict[str, str] = {
    "view_count": "view_count",
    "like_count": "like_count",
    "published_at": "published_at",
    "comment_count": "comment_count",
}

_VIDEO_COLUMNS = """
    id,
    external_id,
    sort_strategy,
    title,
    description,
    thumbnail_url,
    channel_title,
    published_at,
    duration_seconds,
    view_count,
    like_count,
    comment_count,
    search_query,
    moderation_status,
    pending_deletion,
    is_featured,
    created_at,
    last_fetched_at
"""

_UPSERT_SQL = """
INSERT INTO videos (
    id, external_id, sort_strategy, title, description, thumbnail_url, channel_title,
    published_at, duration_seconds, view_count, like_count, comment_count, search_query,
    moderation_status, pending_deletion, is_featured, created_at, last_fetched_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, 0, ?, ?)
ON CONFLICT(external_id, sort_strategy) DO UPDATE SET
    title = excluded.title,
    description = excluded.description,
    thumbnail_url = excluded.thumbnail_url,
    channel_title = excluded.channel_title,
    published_at = COALESCE(videos.published_at, excluded.published_at),
    duration_seconds = excluded.duration_seconds,
    view_count = excluded.view_count,
    like_count = excluded.like_count,
    comment_count = excluded.comment_count,
    search_query = excluded.search_query,
    last_fetched_at = excluded.last_fetched_at
"""

_UPSERT_RESET_MODERATION_SQL = f"""
{_UPSERT_SQL.rstrip()},
    moderation_status = excluded.moderation_status
"""


@dataclass(frozen=True)
class NormalizedVideo:
    external_id: str
    sort_strategy: SortStrategy
    title: str
    description: str
    thumbnail_url: str
    published_at: str | None
    view_count: int
    like_count: int
    comment_count: int
    search_query: str
    channel_title: str | None = None
    duration_seconds: int | None = None
    last_fetched_at: str | None = None


@dataclass(frozen=True)
class VideoRecord:
    video_id: str
    external_id: str
    sort_strategy: str
    title: str
    description: str
    thumbnail_url: str
    channel_title: str | None
    published_at: str | None
    duration_seconds: int | None
    view_count: int
    like_count: int
    comment_count: int
    search_query: str
    moderation_status: str
    pending_deletion: bool
    is_featured: bool
    created_at: str
    last_fetched_at: str


@dataclass(frozen=True)
class VideoCounters:
    external_id: str
    view_count: int
    like_count: int
    comment_count: int


@dataclass(frozen=True)
class VideoPage:
    items: list[VideoRecord]
    page: int
    limit: int
    total: int


class VideoRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def upsert(self, video: NormalizedVideo, *, reset_moderation: bool = False) -> VideoRecord:
        _validate_normalized_video(video)
        now_iso = utc_now_iso()
        last_fetched_at = video.last_fetched_at or now_iso
        sql = _UPSERT_RESET_MODERATION_SQL if reset_moderation else _UPSERT_SQL

        with self._db.connection() as conn:
            conn.execute(
                sql,
                (
                    f"vid_{uuid4().hex}",
                    video.external_id,
                    video.sort_strategy,
                    video.title,
                    video.description,
                    video.thumbnail_url,
                    video.channel_title,
                    video.published_at,
                    video.duration_seconds,
                    video.view_count,
                    video.like_count,
                    video.comment_count,
                    video.search_query,
                    MODERATION_STATUS_NEEDS_REVIEW,
                    now_iso,
                    last_fetched_at,
                ),
            )
            row = conn.execute(
                f"""
                SELECT {_VIDEO_COLUMNS}
                FROM videos
                WHERE external_id = ? AND sort_strategy = ?
                """,
                (video.external_id, video.sort_strategy),
            ).fetchone()

        if row is None:
            raise sqlite3.IntegrityError(
                f"upserted video vanished external_id={video.external_id} "
                f"sort_strategy={video.sort_strategy}"
            )
        return _row_to_video(row)

    def get(self, video_id: str) -> VideoRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE id = ?",
                (video_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_video(row)

    def get_by_natural_key(self, external_id: str, sort_strategy: str) -> VideoRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                f"""
                SELECT {_VIDEO_COLUMNS}
                FROM videos
                WHERE external_id = ? AND sort_strategy = ?
                """,
                (external_id, sort_strategy),
            ).fetchone()
        if row is None:
            return None
        return _row_to_video(row)

    def count(self) -> int:
        with self._db.connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM videos").fetchone()
        return int(row["total"]) if row is not None else 0

    def list_public(
        self,
        *,
        query: str | None,
        sort: str,
        page: int,
        limit: int,
        sort_strategy: str | None = None,
    ) -> VideoPage:
        clauses = ["moderation_status = ?", "pending_deletion = 0"]
        params: list[Any] = [MODERATION_STATUS_PUBLISHED]

        normalized_query = query.strip() if isinstance(query, str) else ""
        if normalized_query:
            clauses.append(
                "("
                "search_query = ? "
                "OR instr(lower(title), lower(?)) > 0 "
                "OR instr(lower(description), lower(?)) > 0"
                ")"
            )
            params.extend([normalized_query, normalized_query, normalized_query])
        if sort_strategy is not None:
            clauses.append("sort_strategy = ?")
            params.append(sort_strategy)

        order_column = _LISTING_SORT_COLUMNS.get(sort, _LISTING_SORT_COLUMNS[DEFAULT_LISTING_SORT])
        return self._select_page(
            where_sql=" AND ".join(clauses),
            params=params,
            order_sql=f"{order_column} DESC, id ASC",
            page=page,
            limit=limit,
        )

    def list_for_admin(
        self,
        *,
        status: str,
        pending_deletion: bool,
        page: int,
        limit: int,
    ) -> VideoPage:
        return self._select_page(
            where_sql="moderation_status = ? AND pending_deletion = ?",
            params=[status, 1 if pending_deletion else 0],
            order_sql="created_at ASC, id ASC",
            page=page,
            limit=limit,
        )

    def set_moderation_status(self, video_id: str, status: str) -> VideoRecord | None:
        return self._update_single_field(video_id, column="moderation_status", value=status)

    def set_pending_deletion(self, video_id: str, pending_deletion: bool) -> VideoRecord | None:
        return self._update_single_field(
            video_id,
            column="pending_deletion",
            value=1 if pending_deletion else 0,
        )

    def set_featured(self, video_id: str, is_featured: bool) -> VideoRecord | None:
        return self._update_single_field(
            video_id,
            column="is_featured",
            value=1 if is_featured else 0,
        )

    def list_external_ids(self) -> list[str]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT external_id
                FROM videos
                GROUP BY external_id
                ORDER BY MIN(created_at) ASC, external_id ASC
                """
            ).fetchall()
        return [str(row["external_id"]) for row in rows]

    def patch_counters(self, counters: VideoCounters) -> int:
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE videos
                SET view_count = ?, like_count = ?, comment_count = ?
                WHERE external_id = ?
                """,
                (
                    max(0, counters.view_count),
                    max(0, counters.like_count),
                    max(0, counters.comment_count),
                    counters.external_id,
                ),
            )
        return int(cursor.rowcount)

    def purge(self, *, include_all: bool = False) -> int:
        with self._db.connection() as conn:
            if include_all:
                cursor = conn.execute("DELETE FROM videos")
            else:
                cursor = conn.execute("DELETE FROM videos WHERE pending_deletion = 1")
        return int(cursor.rowcount)

    def _select_page(
        self,
        *,
        where_sql: str,
        params: list[Any],
        order_sql: str,
        page: int,
        limit: int,
    ) -> VideoPage:
        clamped_page = max(1, page)
        clamped_limit = max(1, limit)
        offset = (clamped_page - 1) * clamped_limit

        with self._db.connection() as conn:
            total_row = conn.execute(
                f"SELECT COUNT(*) AS total FROM videos WHERE {where_sql}",
                tuple(params),
            ).fetchone()
            rows = conn.execute(
                f"""
                SELECT {_VIDEO_COLUMNS}
                FROM videos
                WHERE {where_sql}
                ORDER BY {order_sql}
                LIMIT ? OFFSET ?
                """,
                (*params, clamped_limit, offset),
            ).fetchall()

        return VideoPage(
            items=[_row_to_video(row) for row in rows],
            page=clamped_page,
            limit=clamped_limit,
            total=int(total_row["total"]) if total_row is not None else 0,
        )

    def _update_single_field(self, video_id: str, *, column: str, value: object) -> VideoRecord | None:
        with self._db.connection() as conn:
            cursor = conn.execute(
                f"UPDATE videos SET {column} = ? WHERE id = ?",
                (value, video_id),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE id = ?",
                (video_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_video(row)


def _validate_normalized_video(video: NormalizedVideo) -> None:
    if not video.external_id.strip():
        raise ValueError("external_id must not be empty")
    if video.sort_strategy not in SORT_STRATEGIES:
        raise ValueError(f"unsupported sort_strategy: {video.sort_strategy}")
    for field_name in ("view_count", "like_count", "comment_count"):
        if getattr(video, field_name) < 0:
            raise ValueError(f"{field_name} must be non-negative")


def _row_to_video(row: sqlite3.Row) -> VideoRecord:
    duration_raw = row["duration_seconds"]
    return VideoRecord(
        video_id=str(row["id"]),
        external_id=str(row["external_id"]),
        sort_strategy=str(row["sort_strategy"]),
        title=str(row["title"]),
        description=str(row["description"]),
        thumbnail_url=str(row["thumbnail_url"]),
        channel_title=_to_optional_str(row["channel_title"]),
        published_at=_to_optional_str(row["published_at"]),
        duration_seconds=int(duration_raw) if duration_raw is not None else None,
        view_count=int(row["view_count"]),
        like_count=int(row["like_count"]),
        comment_count=int(row["comment_count"]),
        search_query=str(row["search_query"]),
        moderation_status=str(row["moderation_status"]),
        pending_deletion=bool(row["pending_deletion"]),
        is_featured=bool(row["is_featured"]),
        created_at=str(row["created_at"]),
        last_fetched_at=str(row["last_fetched_at"]),
    )


def _to_optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None
