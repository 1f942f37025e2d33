from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, cast

import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

LOGGER = logging.getLogger("sermon_catalog.youtube")

YOUTUBE_MAX_RESULTS = 50
SEARCH_QUOTA_UNITS = 100
VIDEOS_LIST_QUOTA_UNITS = 1
DETAIL_PARTS: tuple[str, ...] = ("snippet", "statistics", "contentDetails")
_THUMBNAIL_PREFERENCE: tuple[str, ...] = ("default", "medium", "high", "standard", "maxres")

ClientFactory = Callable[[str], Any]


@dataclass(frozen=True)
class SearchCandidate:
    external_id: str
    title: str
    description: str
    published_at: str | None
    channel_title: str | None


@dataclass(frozen=True)
class SearchPage:
    candidates: list[SearchCandidate]
    next_page_token: str | None


@dataclass(frozen=True)
class VideoDetails:
    external_id: str
    title: str
    description: str
    thumbnail_url: str
    channel_title: str | None
    published_at: str | None
    duration_code: str | None
    view_count: int
    like_count: int
    comment_count: int


@dataclass(frozen=True)
class VideoStatistics:
    external_id: str
    view_count: int
    like_count: int
    comment_count: int


class YouTubeCatalogError(Exception):
    pass


class YouTubeCatalogClient:
    """Stateless wrapper over the YouTube Data API ``search.list`` and ``videos.list`` calls.

    The API key is an explicit argument of every call. Responses without an
    ``items`` list are treated as empty; transport and HTTP failures surface as
    :class:`YouTubeCatalogError`.
    """

    def __init__(
        self,
        *,
        http_timeout_seconds: float = 20.0,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._http_timeout_seconds = max(1.0, http_timeout_seconds)
        self._client_factory = client_factory

    def search(
        self,
        query: str,
        sort_strategy: str,
        *,
        api_key: str,
        max_results: int = YOUTUBE_MAX_RESULTS,
        page_token: str | None = None,
    ) -> SearchPage:
        request_params: dict[str, Any] = {
            "part": "snippet",
            "q": query,
            "type": "video",
            "order": sort_strategy,
            "maxResults": max(1, min(max_results, YOUTUBE_MAX_RESULTS)),
        }
        if page_token:
            request_params["pageToken"] = page_token

        client = self._client(api_key)
        response = self._execute(
            lambda: client.search().list(**request_params).execute(),
            operation="search.list",
        )

        raw_items = response.get("items")
        if not isinstance(raw_items, list):
            LOGGER.warning(
                "youtube search returned no item list query=%r order=%s",
                query,
                sort_strategy,
            )
            return SearchPage(candidates=[], next_page_token=None)

        candidates: list[SearchCandidate] = []
        seen_ids: set[str] = set()
        for raw_item in cast(list[Any], raw_items):
            item = _as_dict(raw_item)
            external_id = _coerce_nonempty_string(_as_dict(item.get("id")).get("videoId"))
            if external_id is None or external_id in seen_ids:
                continue
            seen_ids.add(external_id)
            snippet = _as_dict(item.get("snippet"))
            candidates.append(
                SearchCandidate(
                    external_id=external_id,
                    title=_coerce_text(snippet.get("title")),
                    description=_coerce_text(snippet.get("description")),
                    published_at=_coerce_nonempty_string(snippet.get("publishedAt")),
                    channel_title=_coerce_nonempty_string(snippet.get("channelTitle")),
                )
            )

        return SearchPage(
            candidates=candidates,
            next_page_token=_coerce_nonempty_string(response.get("nextPageToken")),
        )

    def fetch_details(self, video_ids: Sequence[str], *, api_key: str) -> list[VideoDetails]:
        items = self._list_videos(video_ids, api_key=api_key, parts=DETAIL_PARTS)
        details: list[VideoDetails] = []
        for item in items:
            external_id = _coerce_nonempty_string(item.get("id"))
            if external_id is None:
                continue
            snippet = _as_dict(item.get("snippet"))
            statistics = _as_dict(item.get("statistics"))
            content_details = _as_dict(item.get("contentDetails"))
            details.append(
                VideoDetails(
                    external_id=external_id,
                    title=_coerce_text(snippet.get("title")),
                    description=_coerce_text(snippet.get("description")),
                    thumbnail_url=_pick_thumbnail_url(snippet),
                    channel_title=_coerce_nonempty_string(snippet.get("channelTitle")),
                    published_at=_coerce_nonempty_string(snippet.get("publishedAt")),
                    duration_code=_coerce_nonempty_string(content_details.get("duration")),
                    view_count=_coerce_count(statistics.get("viewCount")),
                    like_count=_coerce_count(statistics.get("likeCount")),
                    comment_count=_coerce_count(statistics.get("commentCount")),
                )
            )
        return details

    def fetch_statistics(self, video_ids: Sequence[str], *, api_key: str) -> list[VideoStatistics]:
        items = self._list_videos(video_ids, api_key=api_key, parts=("statistics",))
        statistics_list: list[VideoStatistics] = []
        for item in items:
            external_id = _coerce_nonempty_string(item.get("id"))
            if external_id is None:
                continue
            statistics = _as_dict(item.get("statistics"))
            statistics_list.append(
                VideoStatistics(
                    external_id=external_id,
                    view_count=_coerce_count(statistics.get("viewCount")),
                    like_count=_coerce_count(statistics.get("likeCount")),
                    comment_count=_coerce_count(statistics.get("commentCount")),
                )
            )
        return statistics_list

    def _list_videos(
        self,
        video_ids: Sequence[str],
        *,
        api_key: str,
        parts: Sequence[str],
    ) -> list[dict[str, Any]]:
        unique_ids = list(dict.fromkeys(video_id for video_id in video_ids if video_id.strip()))
        if not unique_ids:
            return []
        if len(unique_ids) > YOUTUBE_MAX_RESULTS:
            raise ValueError(
                f"videos.list accepts at most {YOUTUBE_MAX_RESULTS} ids per call; "
                f"got {len(unique_ids)}"
            )

        client = self._client(api_key)
        response = self._execute(
            lambda: client.videos()
            .list(part=",".join(parts), id=",".join(unique_ids), maxResults=YOUTUBE_MAX_RESULTS)
            .execute(),
            operation="videos.list",
        )
        raw_items = response.get("items")
        if not isinstance(raw_items, list):
            LOGGER.warning("youtube videos.list returned no item list ids=%s", len(unique_ids))
            return []
        return [_as_dict(raw_item) for raw_item in cast(list[Any], raw_items)]

    def _client(self, api_key: str) -> Any:
        if not api_key.strip():
            raise YouTubeCatalogError("YouTube API key must not be empty")
        if self._client_factory is not None:
            return self._client_factory(api_key)
        return build(
            "youtube",
            "v3",
            developerKey=api_key,
            http=httplib2.Http(timeout=self._http_timeout_seconds),
            cache_discovery=False,
        )

    def _execute(self, call: Callable[[], Any], *, operation: str) -> dict[str, Any]:
        try:
            response = call()
        except HttpError as exc:
            status = getattr(getattr(exc, "resp", None), "status", None)
            raise YouTubeCatalogError(
                f"YouTube {operation} failed status={status}: {_summarize_exception_message(exc)}"
            ) from exc
        except (httplib2.HttpLib2Error, TimeoutError, OSError) as exc:
            raise YouTubeCatalogError(
                f"YouTube {operation} transport error: {_summarize_exception_message(exc)}"
            ) from exc
        return _as_dict(response)


def _pick_thumbnail_url(snippet: dict[str, Any]) -> str:
    thumbnails = _as_dict(snippet.get("thumbnails"))
    for quality in _THUMBNAIL_PREFERENCE:
        url_value = _as_dict(thumbnails.get(quality)).get("url")
        if isinstance(url_value, str) and url_value.strip():
            return url_value
    for payload in thumbnails.values():
        url_value = _as_dict(payload).get("url")
        if isinstance(url_value, str) and url_value.strip():
            return url_value
    return ""


def _coerce_nonempty_string(raw_value: object) -> str | None:
    if isinstance(raw_value, str) and raw_value.strip():
        return raw_value
    return None


def _coerce_text(raw_value: object) -> str:
    if isinstance(raw_value, str):
        return raw_value
    return ""


def _coerce_count(raw_value: object) -> int:
    if isinstance(raw_value, bool):
        return 0
    if isinstance(raw_value, int):
        return max(0, raw_value)
    if isinstance(raw_value, str):
        try:
            return max(0, int(raw_value.strip()))
        except ValueError:
            return 0
    return 0


def _summarize_exception_message(exc: Exception, *, max_length: int = 400) -> str:
    raw = str(exc).strip()
    if not raw:
        raw = repr(exc)
    if len(raw) <= max_length:
        return raw
    return f"{raw[: max_length - 3]}..."


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        converted: dict[str, Any] = {}
        for key, item in raw_dict.items():
            if isinstance(key, str):
                converted[key] = item
        return converted
    return {}
