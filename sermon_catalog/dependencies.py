from __future__ import annotations

from functools import lru_cache

from sermon_catalog.config import AppSettings, load_settings
from sermon_catalog.repositories.database import Database
from sermon_catalog.repositories.page_repository import PageRepository
from sermon_catalog.repositories.subcategory_repository import SubcategoryRepository
from sermon_catalog.repositories.video_repository import VideoRepository
from sermon_catalog.repositories.youtube_quota_repository import YouTubeQuotaRepository
from sermon_catalog.services.catalog_service import CatalogService
from sermon_catalog.services.credentials import CredentialStore, build_credential_store
from sermon_catalog.services.ingestion_service import IngestionService
from sermon_catalog.services.reconciliation_service import ReconciliationService
from sermon_catalog.services.youtube_client import YouTubeCatalogClient
from sermon_catalog.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_database() -> Database:
    database = Database(get_settings().db_path)
    database.initialize()
    return database


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


@lru_cache(maxsize=1)
def get_credential_store() -> CredentialStore:
    return build_credential_store(env_file=get_settings().credentials_env_file)


@lru_cache(maxsize=1)
def get_youtube_client() -> YouTubeCatalogClient:
    return YouTubeCatalogClient(
        http_timeout_seconds=get_settings().youtube_http_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_catalog_service() -> CatalogService:
    settings = get_settings()
    database = get_database()
    return CatalogService(
        video_repository=VideoRepository(database),
        page_repository=PageRepository(database),
        subcategory_repository=SubcategoryRepository(database),
        public_page_size=settings.public_page_size,
        admin_page_size=settings.admin_page_size,
        max_page_size=settings.max_page_size,
    )


@lru_cache(maxsize=1)
def get_ingestion_service() -> IngestionService:
    settings = get_settings()
    database = get_database()
    return IngestionService(
        client=get_youtube_client(),
        video_repository=VideoRepository(database),
        subcategory_repository=SubcategoryRepository(database),
        credential_store=get_credential_store(),
        quota_repository=YouTubeQuotaRepository(database),
        telemetry=get_telemetry(),
        default_api_key_name=settings.default_api_key_name,
        search_query_suffix=settings.search_query_suffix,
        search_page_size=settings.search_page_size,
        search_pages_per_strategy=settings.search_pages_per_strategy,
        min_duration_seconds=settings.min_duration_seconds,
        reset_moderation_on_reingest=settings.reset_moderation_on_reingest,
        daily_quota_limit=settings.youtube_daily_quota_limit,
        quota_warning_percent=settings.youtube_quota_warning_percent,
    )


@lru_cache(maxsize=1)
def get_reconciliation_service() -> ReconciliationService:
    settings = get_settings()
    database = get_database()
    return ReconciliationService(
        client=get_youtube_client(),
        video_repository=VideoRepository(database),
        credential_store=get_credential_store(),
        quota_repository=YouTubeQuotaRepository(database),
        telemetry=get_telemetry(),
        api_key_name=settings.default_api_key_name,
        daily_quota_limit=settings.youtube_daily_quota_limit,
        quota_warning_percent=settings.youtube_quota_warning_percent,
    )


def reset_cached_dependencies() -> None:
    get_reconciliation_service.cache_clear()
    get_ingestion_service.cache_clear()
    get_catalog_service.cache_clear()
    get_youtube_client.cache_clear()
    get_credential_store.cache_clear()
    get_telemetry.cache_clear()
    get_database.cache_clear()
    get_settings.cache_clear()
