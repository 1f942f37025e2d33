from __future__ import annotations

from typing import Annotated, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query
from structlog.contextvars import bind_contextvars, reset_contextvars

from sermon_catalog.dependencies import (
    get_catalog_service,
    get_ingestion_service,
    get_reconciliation_service,
)
from sermon_catalog.models.catalog_contracts import (
    FeaturedRequest,
    IngestionRunRequest,
    IngestionRunResponse,
    ModerationStatusRequest,
    PageResponse,
    PendingDeletionRequest,
    ReconciliationRunResponse,
    SubcategoryItem,
    VideoItem,
    VideoListResponse,
)
from sermon_catalog.repositories.video_repository import MODERATION_STATUS_NEEDS_REVIEW
from sermon_catalog.services.catalog_service import (
    CatalogService,
    CatalogServiceError,
    InvalidModerationStatusError,
)
from sermon_catalog.services.ingestion_service import IngestionService
from sermon_catalog.services.reconciliation_service import ReconciliationService

router = APIRouter()


def _raise_http_error(exc: CatalogServiceError) -> NoReturn:
    if isinstance(exc, InvalidModerationStatusError):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get(
    "/api/videos/{search_query}",
    response_model=VideoListResponse,
    tags=["videos"],
    operation_id="list_public_videos",
)
def list_public_videos(
    search_query: str,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int | None, Query(ge=1)] = None,
    sort: str | None = None,
    strategy: str | None = None,
) -> VideoListResponse:
    result = catalog.list_public_videos(
        search_query,
        page=page,
        limit=limit,
        sort=sort,
        sort_strategy=strategy,
    )
    return VideoListResponse.from_page(result)


@router.get(
    "/api/pages/{page_id}",
    response_model=PageResponse,
    tags=["pages"],
    operation_id="get_page",
)
def get_page(
    page_id: str,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
) -> PageResponse:
    try:
        return PageResponse.from_config(catalog.get_page(page_id))
    except CatalogServiceError as exc:
        _raise_http_error(exc)


@router.get(
    "/api/admin/videos",
    response_model=VideoListResponse,
    tags=["admin"],
    operation_id="list_admin_videos",
)
def list_admin_videos(
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
    status: str = MODERATION_STATUS_NEEDS_REVIEW,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int | None, Query(ge=1)] = None,
    pending_deletion: bool = False,
) -> VideoListResponse:
    try:
        result = catalog.list_admin_videos(
            status=status,
            pending_deletion=pending_deletion,
            page=page,
            limit=limit,
        )
    except CatalogServiceError as exc:
        _raise_http_error(exc)
    return VideoListResponse.from_page(result)


@router.put(
    "/api/admin/videos/{video_id}",
    response_model=VideoItem,
    tags=["admin"],
    operation_id="set_video_status",
)
def set_video_status(
    video_id: str,
    request: ModerationStatusRequest,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
) -> VideoItem:
    context_tokens = bind_contextvars(video_id=video_id)
    try:
        return VideoItem.from_record(catalog.set_status(video_id, request.status))
    except CatalogServiceError as exc:
        _raise_http_error(exc)
    finally:
        reset_contextvars(**context_tokens)


@router.put(
    "/api/admin/videos/{video_id}/deletion",
    response_model=VideoItem,
    tags=["admin"],
    operation_id="set_video_pending_deletion",
)
def set_video_pending_deletion(
    video_id: str,
    request: PendingDeletionRequest,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
) -> VideoItem:
    try:
        return VideoItem.from_record(
            catalog.set_pending_deletion(video_id, request.pending_deletion)
        )
    except CatalogServiceError as exc:
        _raise_http_error(exc)


@router.put(
    "/api/admin/videos/{video_id}/featured",
    response_model=VideoItem,
    tags=["admin"],
    operation_id="set_video_featured",
)
def set_video_featured(
    video_id: str,
    request: FeaturedRequest,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
) -> VideoItem:
    try:
        return VideoItem.from_record(catalog.set_featured(video_id, request.is_featured))
    except CatalogServiceError as exc:
        _raise_http_error(exc)


@router.get(
    "/api/admin/subcategories",
    response_model=list[SubcategoryItem],
    tags=["admin"],
    operation_id="list_subcategories",
)
def list_subcategories(
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
) -> list[SubcategoryItem]:
    return [SubcategoryItem.from_entry(entry) for entry in catalog.list_subcategories()]


@router.post(
    "/api/admin/ingestion/runs",
    response_model=IngestionRunResponse,
    tags=["admin"],
    operation_id="run_ingestion",
)
def run_ingestion(
    request: IngestionRunRequest,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
    ingestion: Annotated[IngestionService, Depends(get_ingestion_service)],
) -> IngestionRunResponse:
    if request.query is not None:
        result = ingestion.run_for_query(request.query)
    elif request.subcategory is not None:
        try:
            catalog.require_subcategory(request.subcategory)
        except CatalogServiceError as exc:
            _raise_http_error(exc)
        result = ingestion.run_for_subcategory(request.subcategory)
    else:
        result = ingestion.run_for_all_subcategories()
    return IngestionRunResponse.from_result(result)


@router.post(
    "/api/admin/reconciliation/runs",
    response_model=ReconciliationRunResponse,
    tags=["admin"],
    operation_id="run_reconciliation",
)
def run_reconciliation(
    reconciliation: Annotated[ReconciliationService, Depends(get_reconciliation_service)],
) -> ReconciliationRunResponse:
    return ReconciliationRunResponse.from_result(reconciliation.run_once())
