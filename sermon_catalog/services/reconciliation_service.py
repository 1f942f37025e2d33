from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from uuid import uuid4

from structlog.contextvars import bind_contextvars, reset_contextvars

from sermon_catalog.repositories.common import utc_now_iso
from sermon_catalog.repositories.video_repository import VideoCounters, VideoRepository
from sermon_catalog.repositories.youtube_quota_repository import YouTubeQuotaRepository
from sermon_catalog.services.credentials import CredentialStore
from sermon_catalog.services.youtube_client import (
    VIDEOS_LIST_QUOTA_UNITS,
    YOUTUBE_MAX_RESULTS,
    YouTubeCatalogClient,
    YouTubeCatalogError,
)
from sermon_catalog.telemetry import TelemetryClient

LOGGER = logging.getLogger("sermon_catalog.reconciliation")


@dataclass(frozen=True)
class ReconciliationRunResult:
    run_id: str
    started_at: str
    finished_at: str
    external_ids: int
    batches: int
    failed_batches: int
    refreshed: int
    rows_updated: int
    skipped_reason: str | None = None


class ReconciliationService:
    """Refreshes view/like/comment counters for every stored video.

    Only counters are written. Moderation status, curation flags and the
    descriptive fields of a record are left as they are.
    """

    def __init__(
        self,
        *,
        client: YouTubeCatalogClient,
        video_repository: VideoRepository,
        credential_store: CredentialStore,
        quota_repository: YouTubeQuotaRepository | None = None,
        telemetry: TelemetryClient | None = None,
        api_key_name: str = "YOUTUBE_API_KEY",
        daily_quota_limit: int = 10_000,
        quota_warning_percent: float = 0.8,
    ) -> None:
        self._client = client
        self._video_repository = video_repository
        self._credential_store = credential_store
        self._quota_repository = quota_repository
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._api_key_name = api_key_name
        self._daily_quota_limit = daily_quota_limit
        self._quota_warning_threshold = int(daily_quota_limit * quota_warning_percent)

    def run_once(self) -> ReconciliationRunResult:
        run_id = f"rec_{uuid4().hex}"
        context_tokens = bind_contextvars(reconciliation_run_id=run_id)
        started_at = utc_now_iso()
        started_clock = time.perf_counter()
        self._telemetry.emit("reconciliation.run.start", run_id=run_id)
        try:
            result = self._run(run_id=run_id, started_at=started_at)
            self._telemetry.emit(
                "reconciliation.run.finish",
                run_id=run_id,
                duration_ms=int((time.perf_counter() - started_clock) * 1000),
                external_ids=result.external_ids,
                batches=result.batches,
                failed_batches=result.failed_batches,
                refreshed=result.refreshed,
                rows_updated=result.rows_updated,
                skipped_reason=result.skipped_reason,
            )
            return result
        finally:
            reset_contextvars(**context_tokens)

    def _run(self, *, run_id: str, started_at: str) -> ReconciliationRunResult:
        external_ids = self._video_repository.list_external_ids()
        if not external_ids:
            LOGGER.info("reconciliation found no stored videos; nothing to refresh")
            return self._result(run_id, started_at, external_ids=0, skipped_reason="empty_store")

        api_key = self._credential_store.lookup(self._api_key_name)
        if api_key is None:
            LOGGER.warning(
                "reconciliation skipped; credential value missing credential_name=%s",
                self._api_key_name,
            )
            return self._result(
                run_id,
                started_at,
                external_ids=len(external_ids),
                skipped_reason="credential_missing",
            )

        batches = 0
        failed_batches = 0
        refreshed = 0
        rows_updated = 0
        for start in range(0, len(external_ids), YOUTUBE_MAX_RESULTS):
            batch = external_ids[start : start + YOUTUBE_MAX_RESULTS]
            batches += 1
            try:
                statistics = self._client.fetch_statistics(batch, api_key=api_key)
            except YouTubeCatalogError:
                LOGGER.warning(
                    "reconciliation batch failed; skipping batch_start=%s size=%s",
                    start,
                    len(batch),
                    exc_info=True,
                )
                failed_batches += 1
                continue
            finally:
                self._record_quota()

            if not statistics:
                LOGGER.info(
                    "reconciliation batch returned no statistics batch_start=%s size=%s",
                    start,
                    len(batch),
                )
                continue

            for item in statistics:
                try:
                    updated = self._video_repository.patch_counters(
                        VideoCounters(
                            external_id=item.external_id,
                            view_count=item.view_count,
                            like_count=item.like_count,
                            comment_count=item.comment_count,
                        )
                    )
                except sqlite3.Error:
                    LOGGER.warning(
                        "reconciliation counter update failed external_id=%s",
                        item.external_id,
                        exc_info=True,
                    )
                    continue
                refreshed += 1
                rows_updated += updated

        LOGGER.info(
            "reconciliation finished external_ids=%s batches=%s failed_batches=%s refreshed=%s",
            len(external_ids),
            batches,
            failed_batches,
            refreshed,
        )
        return self._result(
            run_id,
            started_at,
            external_ids=len(external_ids),
            batches=batches,
            failed_batches=failed_batches,
            refreshed=refreshed,
            rows_updated=rows_updated,
        )

    def _record_quota(self) -> None:
        if self._quota_repository is None:
            return
        try:
            snapshot = self._quota_repository.record_and_snapshot(
                credential_name=self._api_key_name,
                estimated_units_this_call=VIDEOS_LIST_QUOTA_UNITS,
                daily_limit=self._daily_quota_limit,
                warning_threshold=self._quota_warning_threshold,
            )
        except sqlite3.Error:
            LOGGER.warning(
                "youtube quota write failed credential_name=%s",
                self._api_key_name,
                exc_info=True,
            )
            return
        if snapshot.warning:
            LOGGER.warning(
                "youtube quota nearing daily limit credential_name=%s units_today=%s limit=%s",
                snapshot.credential_name,
                snapshot.estimated_units_today,
                snapshot.daily_limit,
            )

    @staticmethod
    def _result(
        run_id: str,
        started_at: str,
        *,
        external_ids: int,
        batches: int = 0,
        failed_batches: int = 0,
        refreshed: int = 0,
        rows_updated: int = 0,
        skipped_reason: str | None = None,
    ) -> ReconciliationRunResult:
        return ReconciliationRunResult(
            run_id=run_id,
            started_at=started_at,
            finished_at=utc_now_iso(),
            external_ids=external_ids,
            batches=batches,
            failed_batches=failed_batches,
            refreshed=refreshed,
            rows_updated=rows_updated,
            skipped_reason=skipped_reason,
        )
