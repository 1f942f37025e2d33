from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from sermon_catalog import cli
from sermon_catalog.repositories.database import Database
from sermon_catalog.repositories.video_repository import NormalizedVideo, VideoRepository
from sermon_catalog.repositories.youtube_quota_repository import YouTubeQuotaRepository
from sermon_catalog.services.ingestion_service import (
    IngestionRunResult,
    StrategyOutcome,
    TargetOutcome,
)


class _RecordingIngestion:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None]] = []

    def _result(self, label: str) -> IngestionRunResult:
        return IngestionRunResult(
            run_id="ing_test",
            started_at="2024-01-01T00:00:00+00:00",
            finished_at="2024-01-01T00:00:01+00:00",
            targets=[
                TargetOutcome(
                    kind="query",
                    label=label,
                    search_query=label,
                    credential_name="YOUTUBE_API_KEY",
                    strategies=[StrategyOutcome(sort_strategy="relevance", upserted=3)],
                )
            ],
        )

    def run_for_query(self, query: str) -> IngestionRunResult:
        self.calls.append(("query", query))
        return self._result(query)

    def run_for_subcategory(self, subcategory: str) -> IngestionRunResult:
        self.calls.append(("subcategory", subcategory))
        return self._result(subcategory)

    def run_for_all_subcategories(self) -> IngestionRunResult:
        self.calls.append(("all", None))
        return IngestionRunResult(
            run_id="ing_empty",
            started_at="2024-01-01T00:00:00+00:00",
            finished_at="2024-01-01T00:00:00+00:00",
            targets=[],
        )


def _store_video(data_dir: Path, external_id: str) -> VideoRepository:
    db = Database(data_dir / "catalog.db")
    db.initialize()
    videos = VideoRepository(db)
    videos.upsert(
        NormalizedVideo(
            external_id=external_id,
            sort_strategy="relevance",
            title=f"Sermon {external_id}",
            description="",
            thumbnail_url="",
            published_at=None,
            view_count=12,
            like_count=0,
            comment_count=0,
            search_query="Grace Christian Sermons",
        )
    )
    return videos


def test_seed_loads_packaged_catalog(data_dir: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli.main, ["seed"])

    assert result.exit_code == 0, result.output
    assert "Seeded 5 pages and 22 subcategories" in result.output


def test_seed_reports_invalid_file(data_dir: Path, tmp_path: Path) -> None:
    seed_file = tmp_path / "seed.yaml"
    seed_file.write_text("- not a mapping\n", encoding="utf-8")

    result = CliRunner().invoke(cli.main, ["seed", "--file", str(seed_file)])

    assert result.exit_code == 1
    assert "must contain a mapping" in result.output


def test_videos_list_shows_review_queue(data_dir: Path) -> None:
    _store_video(data_dir, "queued")

    result = CliRunner().invoke(cli.main, ["videos", "list"])

    assert result.exit_code == 0, result.output
    assert "(1 total)" in result.output


def test_videos_list_rejects_unknown_status(data_dir: Path) -> None:
    result = CliRunner().invoke(cli.main, ["videos", "list", "--status", "Archived"])

    assert result.exit_code == 1
    assert "Invalid status provided" in result.output


def test_videos_purge_requires_confirmation(data_dir: Path) -> None:
    videos = _store_video(data_dir, "doomed")

    aborted = CliRunner().invoke(cli.main, ["videos", "purge", "--all"], input="n\n")
    assert "Aborted" in aborted.output
    assert videos.count() == 1

    purged = CliRunner().invoke(cli.main, ["videos", "purge", "--all", "--yes"])
    assert purged.exit_code == 0, purged.output
    assert "Deleted 1 videos" in purged.output
    assert videos.count() == 0


def test_ingest_dispatches_to_query_and_all_subcategories(
    data_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    ingestion = _RecordingIngestion()
    monkeypatch.setattr(cli, "get_ingestion_service", lambda: ingestion)
    runner = CliRunner()

    by_query = runner.invoke(cli.main, ["ingest", "--query", "Alistair Begg"])
    everything = runner.invoke(cli.main, ["ingest"])

    assert by_query.exit_code == 0, by_query.output
    assert "3 upserted" in by_query.output
    assert "Nothing to ingest" in everything.output
    assert ingestion.calls == [("query", "Alistair Begg"), ("all", None)]


def test_ingest_rejects_unknown_subcategory_and_double_target(
    data_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    ingestion: Any = _RecordingIngestion()
    monkeypatch.setattr(cli, "get_ingestion_service", lambda: ingestion)
    runner = CliRunner()

    unknown = runner.invoke(cli.main, ["ingest", "--subcategory", "Unknown"])
    both = runner.invoke(cli.main, ["ingest", "--query", "a", "--subcategory", "b"])

    assert unknown.exit_code == 1
    assert "Subcategory not found" in unknown.output
    assert both.exit_code == 2
    assert ingestion.calls == []


def test_reconcile_on_empty_store_reports_skip(data_dir: Path) -> None:
    result = CliRunner().invoke(cli.main, ["reconcile"])

    assert result.exit_code == 0, result.output
    assert "Reconciliation skipped: empty_store" in result.output


def test_quota_reports_usage_per_credential(data_dir: Path) -> None:
    db = Database(data_dir / "catalog.db")
    db.initialize()
    YouTubeQuotaRepository(db).record_and_snapshot(
        credential_name="YOUTUBE_API_KEY_GRACE",
        estimated_units_this_call=100,
        daily_limit=10_000,
        warning_threshold=8_000,
    )
    runner = CliRunner()

    today = runner.invoke(cli.main, ["quota"])
    other_day = runner.invoke(cli.main, ["quota", "--date", "2000-01-01"])

    assert today.exit_code == 0, today.output
    assert "YOUTUBE_API_KEY_GRACE" in today.output
    assert "No quota recorded" in other_day.output


def test_ingest_rejects_blank_query(data_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ingestion = _RecordingIngestion()
    monkeypatch.setattr(cli, "get_ingestion_service", lambda: ingestion)

    result = CliRunner().invoke(cli.main, ["ingest", "--query", "   "])

    assert result.exit_code == 2
    assert "--query must not be blank" in result.output
    assert ingestion.calls == []
