from __future__ import annotations

from collections.abc import Sequence
from typing import Any, cast

from fastapi import FastAPI
from fastapi.testclient import TestClient

from sermon_catalog.dependencies import (
    get_database,
    get_ingestion_service,
    get_reconciliation_service,
)
from sermon_catalog.repositories.subcategory_repository import SubcategoryRepository
from sermon_catalog.repositories.video_repository import VideoRepository
from sermon_catalog.services.credentials import EnvironmentCredentialStore
from sermon_catalog.services.ingestion_service import IngestionService
from sermon_catalog.services.reconciliation_service import ReconciliationService
from sermon_catalog.services.youtube_client import (
    SearchCandidate,
    SearchPage,
    VideoDetails,
    VideoStatistics,
)

GRACE_QUERY = "Grace Christian Sermons"


class _FakeYouTubeClient:
    def __init__(self) -> None:
        self.search_calls: list[tuple[str, str]] = []

    def search(
        self,
        query: str,
        sort_strategy: str,
        *,
        api_key: str,
        max_results: int = 50,
        page_token: str | None = None,
    ) -> SearchPage:
        _ = (api_key, max_results, page_token)
        self.search_calls.append((query, sort_strategy))
        return SearchPage(
            candidates=[
                SearchCandidate(
                    external_id="fresh",
                    title="",
                    description="",
                    published_at=None,
                    channel_title=None,
                )
            ],
            next_page_token=None,
        )

    def fetch_details(self, video_ids: Sequence[str], *, api_key: str) -> list[VideoDetails]:
        _ = api_key
        return [
            VideoDetails(
                external_id=video_id,
                title="Fresh sermon",
                description="",
                thumbnail_url="",
                channel_title=None,
                published_at=None,
                duration_code="PT40M",
                view_count=1,
                like_count=0,
                comment_count=0,
            )
            for video_id in video_ids
        ]

    def fetch_statistics(self, video_ids: Sequence[str], *, api_key: str) -> list[VideoStatistics]:
        _ = api_key
        return [
            VideoStatistics(external_id=video_id, view_count=10_000, like_count=1, comment_count=1)
            for video_id in video_ids
        ]


def _app(client: TestClient) -> FastAPI:
    return cast(FastAPI, client.app)


def _install_fake_services(client: TestClient) -> _FakeYouTubeClient:
    fake = _FakeYouTubeClient()
    database = get_database()
    credentials = EnvironmentCredentialStore(
        {"YOUTUBE_API_KEY": "default-secret", "YOUTUBE_API_KEY_GRACE": "grace-secret"}
    )
    ingestion = IngestionService(
        client=cast(Any, fake),
        video_repository=VideoRepository(database),
        subcategory_repository=SubcategoryRepository(database),
        credential_store=credentials,
    )
    reconciliation = ReconciliationService(
        client=cast(Any, fake),
        video_repository=VideoRepository(database),
        credential_store=credentials,
    )
    app = _app(client)
    app.dependency_overrides[get_ingestion_service] = lambda: ingestion
    app.dependency_overrides[get_reconciliation_service] = lambda: reconciliation
    return fake


def _admin_items(client: TestClient, status: str = "Needs Review") -> list[dict[str, Any]]:
    response = client.get("/api/admin/videos", params={"status": status})
    assert response.status_code == 200
    return response.json()["items"]


def test_health_check_sets_request_id(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"]

    echoed = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert echoed.headers["X-Request-ID"] == "req-123"


def test_public_listing_returns_published_by_view_count(client: TestClient) -> None:
    response = client.get(f"/api/videos/{GRACE_QUERY}")

    assert response.status_code == 200
    body = response.json()
    assert [item["view_count"] for item in body["items"]] == [900, 500, 100]
    assert body["total"] == 3
    assert body["limit"] == 6
    assert body["total_pages"] == 1
    assert all(item["moderation_status"] == "Published" for item in body["items"])


def test_public_listing_paginates_and_accepts_legacy_sort_names(client: TestClient) -> None:
    response = client.get(
        f"/api/videos/{GRACE_QUERY}",
        params={"page": 2, "limit": 2, "sort": "likeCount"},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["page"] == 2
    assert body["total_pages"] == 2
    assert [item["external_id"] for item in body["items"]] == ["grace_low"]


def test_public_listing_matches_title_text(client: TestClient) -> None:
    response = client.get("/api/videos/amazing")

    assert [item["external_id"] for item in response.json()["items"]] == ["grace_low"]


def test_public_listing_rejects_invalid_page(client: TestClient) -> None:
    response = client.get(f"/api/videos/{GRACE_QUERY}", params={"page": 0})

    assert response.status_code == 422


def test_get_page_and_missing_page(client: TestClient) -> None:
    found = client.get("/api/pages/faithchristianliving")
    missing = client.get("/api/pages/nope")

    assert found.status_code == 200
    assert found.json()["subcategories"] == ["Grace", "Prayer"]
    assert missing.status_code == 404


def test_admin_listing_defaults_to_needs_review(client: TestClient) -> None:
    response = client.get("/api/admin/videos")

    assert response.status_code == 200
    body = response.json()
    assert [item["external_id"] for item in body["items"]] == ["grace_review"]
    assert body["limit"] == 10


def test_admin_listing_rejects_unknown_status(client: TestClient) -> None:
    response = client.get("/api/admin/videos", params={"status": "Archived"})

    assert response.status_code == 400


def test_invalid_status_update_is_rejected_without_mutation(client: TestClient) -> None:
    video_id = _admin_items(client)[0]["video_id"]

    response = client.put(f"/api/admin/videos/{video_id}", json={"status": "Archived"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid status provided"
    assert [item["video_id"] for item in _admin_items(client)] == [video_id]


def test_status_update_publishes_video(client: TestClient) -> None:
    video_id = _admin_items(client)[0]["video_id"]

    response = client.put(f"/api/admin/videos/{video_id}", json={"status": "Published"})

    assert response.status_code == 200
    assert response.json()["moderation_status"] == "Published"
    listing = client.get(f"/api/videos/{GRACE_QUERY}").json()
    assert listing["items"][0]["external_id"] == "grace_review"
    assert listing["total"] == 4


def test_status_update_unknown_video_is_not_found(client: TestClient) -> None:
    response = client.put("/api/admin/videos/vid_missing", json={"status": "Published"})

    assert response.status_code == 404


def test_soft_delete_hides_video_from_public_listing(client: TestClient) -> None:
    published = client.get(f"/api/videos/{GRACE_QUERY}").json()["items"]
    top_id = published[0]["video_id"]

    deleted = client.put(
        f"/api/admin/videos/{top_id}/deletion", json={"pending_deletion": True}
    )
    listing = client.get(f"/api/videos/{GRACE_QUERY}").json()
    trash = client.get(
        "/api/admin/videos", params={"status": "Published", "pending_deletion": True}
    ).json()

    assert deleted.status_code == 200
    assert deleted.json()["pending_deletion"] is True
    assert top_id not in [item["video_id"] for item in listing["items"]]
    assert [item["video_id"] for item in trash["items"]] == [top_id]

    restored = client.put(
        f"/api/admin/videos/{top_id}/deletion", json={"pending_deletion": False}
    )
    assert restored.json()["pending_deletion"] is False


def test_featured_toggle(client: TestClient) -> None:
    video_id = _admin_items(client)[0]["video_id"]

    response = client.put(f"/api/admin/videos/{video_id}/featured", json={"is_featured": True})
    missing = client.put("/api/admin/videos/vid_missing/featured", json={"is_featured": True})

    assert response.status_code == 200
    assert response.json()["is_featured"] is True
    assert missing.status_code == 404


def test_list_subcategories(client: TestClient) -> None:
    response = client.get("/api/admin/subcategories")

    assert response.status_code == 200
    assert response.json() == [
        {"subcategory": "Grace", "api_key_name": "YOUTUBE_API_KEY_GRACE"}
    ]


def test_ingestion_run_for_subcategory(client: TestClient) -> None:
    fake = _install_fake_services(client)

    response = client.post("/api/admin/ingestion/runs", json={"subcategory": "Grace"})

    assert response.status_code == 200
    body = response.json()
    assert body["upserted"] == 4
    assert body["targets"][0]["credential_name"] == "YOUTUBE_API_KEY_GRACE"
    assert {call[0] for call in fake.search_calls} == {GRACE_QUERY}
    pending = [item["external_id"] for item in _admin_items(client)]
    assert pending.count("fresh") == 4


def test_ingestion_run_for_ad_hoc_query(client: TestClient) -> None:
    fake = _install_fake_services(client)

    response = client.post("/api/admin/ingestion/runs", json={"query": "Tim Keller"})

    assert response.status_code == 200
    assert response.json()["targets"][0]["credential_name"] == "YOUTUBE_API_KEY"
    assert {call[0] for call in fake.search_calls} == {"Tim Keller"}


def test_ingestion_run_rejects_unknown_subcategory_and_ambiguous_targets(
    client: TestClient,
) -> None:
    fake = _install_fake_services(client)

    unknown = client.post("/api/admin/ingestion/runs", json={"subcategory": "Unknown"})
    ambiguous = client.post(
        "/api/admin/ingestion/runs", json={"query": "Grace", "subcategory": "Grace"}
    )

    assert unknown.status_code == 404
    assert ambiguous.status_code == 422
    assert fake.search_calls == []


def test_reconciliation_run_refreshes_counters(client: TestClient) -> None:
    _install_fake_services(client)

    response = client.post("/api/admin/reconciliation/runs")

    assert response.status_code == 200
    body = response.json()
    assert body["external_ids"] == 4
    assert body["refreshed"] == 4
    listing = client.get(f"/api/videos/{GRACE_QUERY}").json()
    assert {item["view_count"] for item in listing["items"]} == {10_000}
    assert {item["moderation_status"] for item in listing["items"]} == {"Published"}


def test_ingestion_run_rejects_blank_targets(client: TestClient) -> None:
    fake = _install_fake_services(client)

    blank_query = client.post("/api/admin/ingestion/runs", json={"query": "   "})
    blank_subcategory = client.post("/api/admin/ingestion/runs", json={"subcategory": ""})

    assert blank_query.status_code == 422
    assert blank_subcategory.status_code == 422
    assert fake.search_calls == []
