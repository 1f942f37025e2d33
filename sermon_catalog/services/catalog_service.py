from __future__ import annotations

import logging

from sermon_catalog.repositories.page_repository import PageConfig, PageRepository
from sermon_catalog.repositories.subcategory_repository import (
    SubcategoryEntry,
    SubcategoryRepository,
)
from sermon_catalog.repositories.video_repository import (
    DEFAULT_LISTING_SORT,
    MODERATION_STATUS_NEEDS_REVIEW,
    MODERATION_STATUSES,
    SORT_STRATEGIES,
    ListingSort,
    VideoPage,
    VideoRecord,
    VideoRepository,
)

LOGGER = logging.getLogger("sermon_catalog.catalog")

_LISTING_SORT_ALIASES: dict[str, ListingSort] = {
    "view_count": "view_count",
    "viewcount": "view_count",
    "like_count": "like_count",
    "likecount": "like_count",
    "published_at": "published_at",
    "publishedat": "published_at",
    "comment_count": "comment_count",
    "commentcount": "comment_count",
}


class CatalogServiceError(Exception):
    pass


class VideoNotFoundError(CatalogServiceError):
    def __init__(self, video_id: str) -> None:
        super().__init__(f"Video not found: {video_id}")
        self.video_id = video_id


class PageNotFoundError(CatalogServiceError):
    def __init__(self, page_id: str) -> None:
        super().__init__(f"Page not found: {page_id}")
        self.page_id = page_id


class InvalidModerationStatusError(CatalogServiceError):
    def __init__(self, status: str) -> None:
        super().__init__("Invalid status provided")
        self.status = status


class SubcategoryNotFoundError(CatalogServiceError):
    def __init__(self, subcategory: str) -> None:
        super().__init__(f"Subcategory not found: {subcategory}")
        self.subcategory = subcategory


def resolve_listing_sort(raw_sort: str | None) -> ListingSort:
    if raw_sort is None:
        return DEFAULT_LISTING_SORT
    return _LISTING_SORT_ALIASES.get(raw_sort.strip().lower(), DEFAULT_LISTING_SORT)


class CatalogService:
    """Read and moderation surface over the stored catalog."""

    def __init__(
        self,
        *,
        video_repository: VideoRepository,
        page_repository: PageRepository,
        subcategory_repository: SubcategoryRepository,
        public_page_size: int = 6,
        admin_page_size: int = 10,
        max_page_size: int = 100,
    ) -> None:
        self._video_repository = video_repository
        self._page_repository = page_repository
        self._subcategory_repository = subcategory_repository
        self._public_page_size = public_page_size
        self._admin_page_size = admin_page_size
        self._max_page_size = max(1, max_page_size)

    def list_public_videos(
        self,
        search_query: str,
        *,
        page: int = 1,
        limit: int | None = None,
        sort: str | None = None,
        sort_strategy: str | None = None,
    ) -> VideoPage:
        strategy = sort_strategy.strip() if isinstance(sort_strategy, str) else None
        if strategy is not None and strategy not in SORT_STRATEGIES:
            LOGGER.debug("ignoring unknown sort strategy filter strategy=%r", strategy)
            strategy = None
        return self._video_repository.list_public(
            query=search_query,
            sort=resolve_listing_sort(sort),
            page=page,
            limit=self._clamp_limit(limit, default=self._public_page_size),
            sort_strategy=strategy or None,
        )

    def list_admin_videos(
        self,
        *,
        status: str = MODERATION_STATUS_NEEDS_REVIEW,
        pending_deletion: bool = False,
        page: int = 1,
        limit: int | None = None,
    ) -> VideoPage:
        _validate_status(status)
        return self._video_repository.list_for_admin(
            status=status,
            pending_deletion=pending_deletion,
            page=page,
            limit=self._clamp_limit(limit, default=self._admin_page_size),
        )

    def get_video(self, video_id: str) -> VideoRecord:
        record = self._video_repository.get(video_id)
        if record is None:
            raise VideoNotFoundError(video_id)
        return record

    def set_status(self, video_id: str, status: str) -> VideoRecord:
        _validate_status(status)
        record = self._video_repository.set_moderation_status(video_id, status)
        if record is None:
            raise VideoNotFoundError(video_id)
        LOGGER.info("video moderation status updated video_id=%s status=%s", video_id, status)
        return record

    def set_pending_deletion(self, video_id: str, pending_deletion: bool) -> VideoRecord:
        record = self._video_repository.set_pending_deletion(video_id, pending_deletion)
        if record is None:
            raise VideoNotFoundError(video_id)
        LOGGER.info(
            "video deletion marker updated video_id=%s pending_deletion=%s",
            video_id,
            pending_deletion,
        )
        return record

    def set_featured(self, video_id: str, is_featured: bool) -> VideoRecord:
        record = self._video_repository.set_featured(video_id, is_featured)
        if record is None:
            raise VideoNotFoundError(video_id)
        return record

    def get_page(self, page_id: str) -> PageConfig:
        page = self._page_repository.get(page_id.strip())
        if page is None:
            raise PageNotFoundError(page_id)
        return page

    def list_pages(self) -> list[PageConfig]:
        return self._page_repository.list_pages()

    def list_subcategories(self) -> list[SubcategoryEntry]:
        return self._subcategory_repository.list_entries()

    def require_subcategory(self, subcategory: str) -> SubcategoryEntry:
        normalized = subcategory.strip()
        api_key_name = self._subcategory_repository.resolve(normalized)
        if api_key_name is None:
            raise SubcategoryNotFoundError(subcategory)
        return SubcategoryEntry(subcategory=normalized, api_key_name=api_key_name)

    def purge_videos(self, *, include_all: bool = False) -> int:
        removed = self._video_repository.purge(include_all=include_all)
        LOGGER.info("videos purged include_all=%s removed=%s", include_all, removed)
        return removed

    def _clamp_limit(self, limit: int | None, *, default: int) -> int:
        if limit is None or limit < 1:
            return min(default, self._max_page_size)
        return min(limit, self._max_page_size)


def _validate_status(status: str) -> None:
    if status not in MODERATION_STATUSES:
        raise InvalidModerationStatusError(status)
