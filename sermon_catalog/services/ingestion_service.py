from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal
from uuid import uuid4

from structlog.contextvars import bind_contextvars, reset_contextvars

from sermon_catalog.repositories.common import utc_now_iso
from sermon_catalog.repositories.subcategory_repository import SubcategoryRepository
from sermon_catalog.repositories.video_repository import (
    SORT_STRATEGIES,
    NormalizedVideo,
    SortStrategy,
    VideoRepository,
)
from sermon_catalog.repositories.youtube_quota_repository import YouTubeQuotaRepository
from sermon_catalog.services.credentials import CredentialStore
from sermon_catalog.services.duration import (
    MIN_VIDEO_DURATION_SECONDS,
    meets_minimum_duration,
    parse_duration_seconds,
)
from sermon_catalog.services.youtube_client import (
    SEARCH_QUOTA_UNITS,
    VIDEOS_LIST_QUOTA_UNITS,
    YOUTUBE_MAX_RESULTS,
    VideoDetails,
    YouTubeCatalogClient,
    YouTubeCatalogError,
)
from sermon_catalog.telemetry import TelemetryClient

LOGGER = logging.getLogger("sermon_catalog.ingestion")

IngestionTargetKind = Literal["query", "subcategory"]

SKIP_REASON_SUBCATEGORY_NOT_FOUND = "subcategory_not_found"
SKIP_REASON_CREDENTIAL_MISSING = "credential_missing"


@dataclass(frozen=True)
class IngestionTarget:
    kind: IngestionTargetKind
    label: str

    @classmethod
    def ad_hoc(cls, query: str) -> IngestionTarget:
        return cls(kind="query", label=query.strip())

    @classmethod
    def subcategory(cls, label: str) -> IngestionTarget:
        return cls(kind="subcategory", label=label.strip())


@dataclass(frozen=True)
class StrategyOutcome:
    sort_strategy: str
    candidates: int = 0
    fetched: int = 0
    filtered_short: int = 0
    upserted: int = 0
    failed: int = 0
    error: str | None = None


@dataclass(frozen=True)
class TargetOutcome:
    kind: IngestionTargetKind
    label: str
    search_query: str | None
    credential_name: str | None
    skipped_reason: str | None = None
    strategies: list[StrategyOutcome] = field(default_factory=lambda: [])

    @property
    def upserted(self) -> int:
        return sum(outcome.upserted for outcome in self.strategies)

    @property
    def failed(self) -> int:
        return sum(outcome.failed for outcome in self.strategies)


@dataclass(frozen=True)
class IngestionRunResult:
    run_id: str
    started_at: str
    finished_at: str
    targets: list[TargetOutcome]

    @property
    def upserted(self) -> int:
        return sum(target.upserted for target in self.targets)

    @property
    def failed(self) -> int:
        return sum(target.failed for target in self.targets)

    @property
    def skipped_targets(self) -> int:
        return sum(1 for target in self.targets if target.skipped_reason is not None)


class IngestionService:
    """Discovers videos for each target across every sort strategy and upserts them.

    Targets and strategies run strictly one after another. Any failure below the
    run level (missing credential, upstream error, a single bad record) is logged
    and skipped so the rest of the sweep still happens.
    """

    def __init__(
        self,
        *,
        client: YouTubeCatalogClient,
        video_repository: VideoRepository,
        subcategory_repository: SubcategoryRepository,
        credential_store: CredentialStore,
        quota_repository: YouTubeQuotaRepository | None = None,
        telemetry: TelemetryClient | None = None,
        default_api_key_name: str = "YOUTUBE_API_KEY",
        search_query_suffix: str = "Christian Sermons",
        search_page_size: int = YOUTUBE_MAX_RESULTS,
        search_pages_per_strategy: int = 1,
        min_duration_seconds: int = MIN_VIDEO_DURATION_SECONDS,
        reset_moderation_on_reingest: bool = False,
        daily_quota_limit: int = 10_000,
        quota_warning_percent: float = 0.8,
    ) -> None:
        self._client = client
        self._video_repository = video_repository
        self._subcategory_repository = subcategory_repository
        self._credential_store = credential_store
        self._quota_repository = quota_repository
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._default_api_key_name = default_api_key_name
        self._search_query_suffix = search_query_suffix.strip()
        self._search_page_size = max(1, min(search_page_size, YOUTUBE_MAX_RESULTS))
        self._search_pages_per_strategy = max(1, search_pages_per_strategy)
        self._min_duration_seconds = max(0, min_duration_seconds)
        self._reset_moderation_on_reingest = reset_moderation_on_reingest
        self._daily_quota_limit = daily_quota_limit
        self._quota_warning_threshold = int(daily_quota_limit * quota_warning_percent)

    def run_for_query(self, query: str) -> IngestionRunResult:
        normalized_query = query.strip()
        if not normalized_query:
            raise ValueError("query must not be empty")
        return self.run([IngestionTarget.ad_hoc(normalized_query)])

    def run_for_subcategory(self, subcategory: str) -> IngestionRunResult:
        normalized_subcategory = subcategory.strip()
        if not normalized_subcategory:
            raise ValueError("subcategory must not be empty")
        return self.run([IngestionTarget.subcategory(normalized_subcategory)])

    def run_for_all_subcategories(self) -> IngestionRunResult:
        entries = self._subcategory_repository.list_entries()
        if not entries:
            LOGGER.warning("ingestion has no subcategories configured; nothing to do")
        return self.run([IngestionTarget.subcategory(entry.subcategory) for entry in entries])

    def run(self, targets: Sequence[IngestionTarget]) -> IngestionRunResult:
        run_id = f"ing_{uuid4().hex}"
        context_tokens = bind_contextvars(ingestion_run_id=run_id)
        started_at = utc_now_iso()
        started_clock = time.perf_counter()
        self._telemetry.emit("ingestion.run.start", run_id=run_id, targets=len(targets))
        LOGGER.info("ingestion run started run_id=%s targets=%s", run_id, len(targets))
        try:
            outcomes = [self._ingest_target(target) for target in targets]
            result = IngestionRunResult(
                run_id=run_id,
                started_at=started_at,
                finished_at=utc_now_iso(),
                targets=outcomes,
            )
            self._telemetry.emit(
                "ingestion.run.finish",
                run_id=run_id,
                duration_ms=int((time.perf_counter() - started_clock) * 1000),
                upserted=result.upserted,
                failed=result.failed,
                skipped_targets=result.skipped_targets,
            )
            LOGGER.info(
                "ingestion run finished run_id=%s upserted=%s failed=%s skipped_targets=%s",
                run_id,
                result.upserted,
                result.failed,
                result.skipped_targets,
            )
            return result
        finally:
            reset_contextvars(**context_tokens)

    def _ingest_target(self, target: IngestionTarget) -> TargetOutcome:
        if target.kind == "subcategory":
            credential_name = self._subcategory_repository.resolve(target.label)
            search_query = f"{target.label} {self._search_query_suffix}".strip()
            if credential_name is None:
                LOGGER.warning(
                    "ingestion skipping subcategory; not found in directory subcategory=%r",
                    target.label,
                )
                return TargetOutcome(
                    kind=target.kind,
                    label=target.label,
                    search_query=search_query,
                    credential_name=None,
                    skipped_reason=SKIP_REASON_SUBCATEGORY_NOT_FOUND,
                )
        else:
            credential_name = self._default_api_key_name
            search_query = target.label

        api_key = self._credential_store.lookup(credential_name)
        if api_key is None:
            LOGGER.warning(
                "ingestion skipping target; credential value missing target=%r credential_name=%s",
                target.label,
                credential_name,
            )
            return TargetOutcome(
                kind=target.kind,
                label=target.label,
                search_query=search_query,
                credential_name=credential_name,
                skipped_reason=SKIP_REASON_CREDENTIAL_MISSING,
            )

        LOGGER.info(
            "ingestion target started query=%r credential_name=%s",
            search_query,
            credential_name,
        )
        strategies = [
            self._ingest_strategy(
                search_query=search_query,
                sort_strategy=sort_strategy,
                credential_name=credential_name,
                api_key=api_key,
            )
            for sort_strategy in SORT_STRATEGIES
        ]
        return TargetOutcome(
            kind=target.kind,
            label=target.label,
            search_query=search_query,
            credential_name=credential_name,
            strategies=strategies,
        )

    def _ingest_strategy(
        self,
        *,
        search_query: str,
        sort_strategy: SortStrategy,
        credential_name: str,
        api_key: str,
    ) -> StrategyOutcome:
        candidates = 0
        fetched = 0
        filtered_short = 0
        upserted = 0
        failed = 0
        error: str | None = None
        page_token: str | None = None

        for _ in range(self._search_pages_per_strategy):
            try:
                page = self._client.search(
                    search_query,
                    sort_strategy,
                    api_key=api_key,
                    max_results=self._search_page_size,
                    page_token=page_token,
                )
            except YouTubeCatalogError as exc:
                LOGGER.warning(
                    "ingestion search failed; skipping strategy query=%r sort=%s",
                    search_query,
                    sort_strategy,
                    exc_info=True,
                )
                error = str(exc)
                break
            finally:
                self._record_quota(credential_name, SEARCH_QUOTA_UNITS)

            if not page.candidates:
                LOGGER.info(
                    "ingestion search returned no videos query=%r sort=%s",
                    search_query,
                    sort_strategy,
                )
                break
            candidates += len(page.candidates)

            try:
                details = self._client.fetch_details(
                    [candidate.external_id for candidate in page.candidates],
                    api_key=api_key,
                )
            except YouTubeCatalogError as exc:
                LOGGER.warning(
                    "ingestion detail fetch failed; skipping strategy query=%r sort=%s",
                    search_query,
                    sort_strategy,
                    exc_info=True,
                )
                error = str(exc)
                break
            finally:
                self._record_quota(credential_name, VIDEOS_LIST_QUOTA_UNITS)
            fetched += len(details)

            long_enough = [
                video
                for video in details
                if meets_minimum_duration(
                    video.duration_code,
                    min_seconds=self._min_duration_seconds,
                )
            ]
            filtered_short += len(details) - len(long_enough)

            fetched_at = utc_now_iso()
            for video in long_enough:
                normalized = _normalize_video(
                    video,
                    sort_strategy=sort_strategy,
                    search_query=search_query,
                    fetched_at=fetched_at,
                )
                try:
                    self._video_repository.upsert(
                        normalized,
                        reset_moderation=self._reset_moderation_on_reingest,
                    )
                except (sqlite3.Error, ValueError):
                    LOGGER.warning(
                        "ingestion upsert failed; skipping video external_id=%s sort=%s",
                        video.external_id,
                        sort_strategy,
                        exc_info=True,
                    )
                    failed += 1
                    continue
                upserted += 1

            page_token = page.next_page_token
            if page_token is None:
                break

        outcome = StrategyOutcome(
            sort_strategy=sort_strategy,
            candidates=candidates,
            fetched=fetched,
            filtered_short=filtered_short,
            upserted=upserted,
            failed=failed,
            error=error,
        )
        self._telemetry.emit(
            "ingestion.strategy.finish",
            search_query=search_query,
            sort_strategy=sort_strategy,
            credential_name=credential_name,
            candidates=candidates,
            fetched=fetched,
            filtered_short=filtered_short,
            upserted=upserted,
            failed=failed,
            outcome="error" if error is not None else "ok",
        )
        return outcome

    def _record_quota(self, credential_name: str, units: int) -> None:
        if self._quota_repository is None:
            return
        try:
            snapshot = self._quota_repository.record_and_snapshot(
                credential_name=credential_name,
                estimated_units_this_call=units,
                daily_limit=self._daily_quota_limit,
                warning_threshold=self._quota_warning_threshold,
            )
        except sqlite3.Error:
            LOGGER.warning(
                "youtube quota write failed credential_name=%s units=%s",
                credential_name,
                units,
                exc_info=True,
            )
            return
        if snapshot.warning:
            LOGGER.warning(
                "youtube quota nearing daily limit credential_name=%s units_today=%s limit=%s",
                credential_name,
                snapshot.estimated_units_today,
                snapshot.daily_limit,
            )


def _normalize_video(
    video: VideoDetails,
    *,
    sort_strategy: SortStrategy,
    search_query: str,
    fetched_at: str,
) -> NormalizedVideo:
    return NormalizedVideo(
        external_id=video.external_id,
        sort_strategy=sort_strategy,
        title=video.title,
        description=video.description,
        thumbnail_url=video.thumbnail_url,
        published_at=video.published_at,
        view_count=video.view_count,
        like_count=video.like_count,
        comment_count=video.comment_count,
        search_query=search_query,
        channel_title=video.channel_title,
        duration_seconds=parse_duration_seconds(video.duration_code),
        last_fetched_at=fetched_at,
    )
