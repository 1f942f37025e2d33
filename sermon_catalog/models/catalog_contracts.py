from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sermon_catalog.repositories.page_repository import PageConfig
from sermon_catalog.repositories.subcategory_repository import SubcategoryEntry
from sermon_catalog.repositories.video_repository import VideoPage, VideoRecord
from sermon_catalog.services.ingestion_service import IngestionRunResult
from sermon_catalog.services.reconciliation_service import ReconciliationRunResult


def _strip_required_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        raise ValueError("must not be blank")
    return normalized


class VideoItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    video_id: str
    external_id: str
    sort_strategy: str
    title: str
    description: str
    thumbnail_url: str
    channel_title: str | None = None
    published_at: str | None = None
    duration_seconds: int | None = None
    view_count: int
    like_count: int
    comment_count: int
    search_query: str
    moderation_status: str
    pending_deletion: bool
    is_featured: bool
    created_at: str
    last_fetched_at: str

    @classmethod
    def from_record(cls, record: VideoRecord) -> VideoItem:
        return cls(
            video_id=record.video_id,
            external_id=record.external_id,
            sort_strategy=record.sort_strategy,
            title=record.title,
            description=record.description,
            thumbnail_url=record.thumbnail_url,
            channel_title=record.channel_title,
            published_at=record.published_at,
            duration_seconds=record.duration_seconds,
            view_count=record.view_count,
            like_count=record.like_count,
            comment_count=record.comment_count,
            search_query=record.search_query,
            moderation_status=record.moderation_status,
            pending_deletion=record.pending_deletion,
            is_featured=record.is_featured,
            created_at=record.created_at,
            last_fetched_at=record.last_fetched_at,
        )


class VideoListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[VideoItem]
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def from_page(cls, page: VideoPage) -> VideoListResponse:
        return cls(
            items=[VideoItem.from_record(record) for record in page.items],
            page=page.page,
            limit=page.limit,
            total=page.total,
            total_pages=(page.total + page.limit - 1) // page.limit,
        )


class PageResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    page_id: str
    title: str
    description: str
    search_query: str
    default_sort: str
    subcategories: list[str]

    @classmethod
    def from_config(cls, page: PageConfig) -> PageResponse:
        return cls(
            page_id=page.page_id,
            title=page.title,
            description=page.description,
            search_query=page.search_query,
            default_sort=page.default_sort,
            subcategories=list(page.subcategories),
        )


class SubcategoryItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subcategory: str
    api_key_name: str

    @classmethod
    def from_entry(cls, entry: SubcategoryEntry) -> SubcategoryItem:
        return cls(subcategory=entry.subcategory, api_key_name=entry.api_key_name)


class ModerationStatusRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Validated by the service so unknown values surface as a 400.
    status: str = Field(max_length=64)


class PendingDeletionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pending_deletion: bool


class FeaturedRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_featured: bool


class IngestionRunRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    query: str | None = Field(default=None, max_length=500)
    subcategory: str | None = Field(default=None, max_length=200)

    @field_validator("query", "subcategory")
    @classmethod
    def _reject_blank_targets(cls, value: str | None) -> str | None:
        return _strip_required_text(value)

    @model_validator(mode="after")
    def _validate_single_target(self) -> IngestionRunRequest:
        if self.query is not None and self.subcategory is not None:
            raise ValueError("provide either query or subcategory, not both")
        return self


class StrategySummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sort_strategy: str
    candidates: int
    fetched: int
    filtered_short: int
    upserted: int
    failed: int
    error: str | None = None


class TargetSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: str
    label: str
    search_query: str | None = None
    credential_name: str | None = None
    skipped_reason: str | None = None
    upserted: int
    failed: int
    strategies: list[StrategySummary]


class IngestionRunResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    run_id: str
    started_at: str
    finished_at: str
    upserted: int
    failed: int
    skipped_targets: int
    targets: list[TargetSummary]

    @classmethod
    def from_result(cls, result: IngestionRunResult) -> IngestionRunResponse:
        return cls(
            run_id=result.run_id,
            started_at=result.started_at,
            finished_at=result.finished_at,
            upserted=result.upserted,
            failed=result.failed,
            skipped_targets=result.skipped_targets,
            targets=[
                TargetSummary(
                    kind=target.kind,
                    label=target.label,
                    search_query=target.search_query,
                    credential_name=target.credential_name,
                    skipped_reason=target.skipped_reason,
                    upserted=target.upserted,
                    failed=target.failed,
                    strategies=[
                        StrategySummary(
                            sort_strategy=outcome.sort_strategy,
                            candidates=outcome.candidates,
                            fetched=outcome.fetched,
                            filtered_short=outcome.filtered_short,
                            upserted=outcome.upserted,
                            failed=outcome.failed,
                            error=outcome.error,
                        )
                        for outcome in target.strategies
                    ],
                )
                for target in result.targets
            ],
        )


class ReconciliationRunResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    run_id: str
    started_at: str
    finished_at: str
    external_ids: int
    batches: int
    failed_batches: int
    refreshed: int
    rows_updated: int
    skipped_reason: str | None = None

    @classmethod
    def from_result(cls, result: ReconciliationRunResult) -> ReconciliationRunResponse:
        return cls(
            run_id=result.run_id,
            started_at=result.started_at,
            finished_at=result.finished_at,
            external_ids=result.external_ids,
            batches=result.batches,
            failed_batches=result.failed_batches,
            refreshed=result.refreshed,
            rows_updated=result.rows_updated,
            skipped_reason=result.skipped_reason,
        )
