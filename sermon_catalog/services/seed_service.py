from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml

from sermon_catalog.repositories.page_repository import PageConfig, PageRepository
from sermon_catalog.repositories.subcategory_repository import (
    SubcategoryEntry,
    SubcategoryRepository,
)

LOGGER = logging.getLogger("sermon_catalog.seed")

DEFAULT_SEED_PATH = Path(__file__).resolve().parent.parent / "seed" / "catalog_seed.yaml"


class SeedFileError(ValueError):
    pass


@dataclass(frozen=True)
class CatalogSeed:
    pages: list[PageConfig]
    subcategories: list[SubcategoryEntry]


@dataclass(frozen=True)
class SeedResult:
    pages: int
    subcategories: int


def load_seed_file(path: Path = DEFAULT_SEED_PATH) -> CatalogSeed:
    try:
        with path.open(encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise SeedFileError(f"seed file is not valid YAML: {path}") from exc
    if not isinstance(raw, dict):
        raise SeedFileError(f"seed file must contain a mapping: {path}")
    document = cast(dict[str, Any], raw)

    pages = [_parse_page(item) for item in _as_list(document.get("pages"), "pages")]
    subcategories = [
        _parse_subcategory(item)
        for item in _as_list(document.get("subcategories"), "subcategories")
    ]
    return CatalogSeed(pages=pages, subcategories=subcategories)


def apply_seed(
    seed: CatalogSeed,
    *,
    page_repository: PageRepository,
    subcategory_repository: SubcategoryRepository,
) -> SeedResult:
    for page in seed.pages:
        page_repository.upsert(page)
    for entry in seed.subcategories:
        subcategory_repository.upsert(entry)
    LOGGER.info(
        "catalog seed applied pages=%s subcategories=%s",
        len(seed.pages),
        len(seed.subcategories),
    )
    return SeedResult(pages=len(seed.pages), subcategories=len(seed.subcategories))


def _as_list(value: object, section: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise SeedFileError(f"seed section '{section}' must be a list")
    return cast(list[Any], value)


def _parse_page(item: object) -> PageConfig:
    if not isinstance(item, dict):
        raise SeedFileError("each page entry must be a mapping")
    data = cast(dict[str, Any], item)
    page_id = _require_text(data, "page_id")
    raw_subcategories = data.get("subcategories") or []
    if not isinstance(raw_subcategories, list):
        raise SeedFileError(f"page '{page_id}' subcategories must be a list")
    return PageConfig(
        page_id=page_id,
        title=str(data.get("title") or ""),
        description=str(data.get("description") or ""),
        search_query=str(data.get("search_query") or ""),
        default_sort=str(data.get("default_sort") or "relevance"),
        subcategories=tuple(
            str(label).strip()
            for label in cast(list[Any], raw_subcategories)
            if str(label).strip()
        ),
    )


def _parse_subcategory(item: object) -> SubcategoryEntry:
    if not isinstance(item, dict):
        raise SeedFileError("each subcategory entry must be a mapping")
    data = cast(dict[str, Any], item)
    return SubcategoryEntry(
        subcategory=_require_text(data, "subcategory"),
        api_key_name=_require_text(data, "api_key_name"),
    )


def _require_text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise SeedFileError(f"seed entry is missing '{key}'")
    return value.strip()
