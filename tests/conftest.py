from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from sermon_catalog.dependencies import reset_cached_dependencies
from sermon_catalog.main import create_app
from sermon_catalog.repositories.database import Database
from sermon_catalog.repositories.page_repository import PageConfig, PageRepository
from sermon_catalog.repositories.subcategory_repository import (
    SubcategoryEntry,
    SubcategoryRepository,
)
from sermon_catalog.repositories.video_repository import (
    MODERATION_STATUS_PUBLISHED,
    NormalizedVideo,
    VideoRepository,
)


def _seed_catalog(data_dir: Path) -> None:
    db = Database(data_dir / "catalog.db")
    db.initialize()

    PageRepository(db).upsert(
        PageConfig(
            page_id="faithchristianliving",
            title="Faith & Christian Living",
            description="Sermons on daily living in Christ's love.",
            search_query="Faith Christian Living sermons",
            default_sort="relevance",
            subcategories=("Grace", "Prayer"),
        )
    )
    SubcategoryRepository(db).upsert(
        SubcategoryEntry(subcategory="Grace", api_key_name="YOUTUBE_API_KEY_GRACE")
    )

    videos = VideoRepository(db)
    published = [
        ("grace_low", "Amazing Grace explained", 100),
        ("grace_high", "Grace that saves", 900),
        ("grace_mid", "Living under grace", 500),
    ]
    for external_id, title, views in published:
        record = videos.upsert(
            NormalizedVideo(
                external_id=external_id,
                sort_strategy="relevance",
                title=title,
                description="A sermon about grace.",
                thumbnail_url=f"https://i.ytimg.com/vi/{external_id}/default.jpg",
                published_at="2024-01-01T00:00:00Z",
                view_count=views,
                like_count=views // 10,
                comment_count=views // 100,
                search_query="Grace Christian Sermons",
                duration_seconds=1_800,
            )
        )
        videos.set_moderation_status(record.video_id, MODERATION_STATUS_PUBLISHED)

    videos.upsert(
        NormalizedVideo(
            external_id="grace_review",
            sort_strategy="relevance",
            title="Grace awaiting review",
            description="Not yet moderated.",
            thumbnail_url="",
            published_at="2024-02-01T00:00:00Z",
            view_count=5_000,
            like_count=10,
            comment_count=1,
            search_query="Grace Christian Sermons",
            duration_seconds=900,
        )
    )


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    runtime_dir = tmp_path / "runtime-data"
    runtime_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("SERMON_CATALOG_DATA_DIR", str(runtime_dir))
    monkeypatch.setenv("SERMON_CATALOG_ENABLE_SCHEDULER", "0")
    monkeypatch.setenv("SERMON_CATALOG_CREDENTIALS_ENV_FILE", str(tmp_path / "missing.env"))
    reset_cached_dependencies()
    yield runtime_dir
    reset_cached_dependencies()


@pytest.fixture
def client(data_dir: Path) -> Iterator[TestClient]:
    _seed_catalog(data_dir)

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
