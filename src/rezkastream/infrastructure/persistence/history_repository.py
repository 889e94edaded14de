"""Watch history repository backed by CachePort (diskcache)."""

from __future__ import annotations

import json
import time
from dataclasses import asdict, replace
from typing import Any

import structlog

from rezkastream.domain.entities import CatalogItem, LastWatch
from rezkastream.domain.ports.cache import CachePort

log = structlog.get_logger(__name__)

MAX_HISTORY_ITEMS = 10

HISTORY_KEY = "history:items"
LAST_WATCH_KEY = "history:last_watch"

_ITEM_FIELDS = (
    "original_title",
    "year",
    "poster",
    "rating",
    "description",
    "content_type",
)


def _item_from_dict(d: dict[str, Any]) -> CatalogItem:
    return CatalogItem(
        id=d["id"],
        title=d["title"],
        url=d["url"],
        **{name: d.get(name) for name in _ITEM_FIELDS},
    )


def _serialize_history(items: list[CatalogItem]) -> str:
    return json.dumps([asdict(item) for item in items], ensure_ascii=False)


def _deserialize_history(data: str) -> list[CatalogItem]:
    raw = json.loads(data)
    if not isinstance(raw, list):
        raise ValueError(f"history must be a list, got {type(raw).__name__}")
    return [_item_from_dict(d) for d in raw]


def _serialize_last_watch(last_watch: LastWatch) -> str:
    return json.dumps(asdict(last_watch), ensure_ascii=False)


def _deserialize_last_watch(data: str) -> LastWatch:
    d = json.loads(data)
    return LastWatch(
        item=_item_from_dict(d["item"]),
        translation_id=d.get("translation_id"),
        translation_title=d.get("translation_title"),
        season_id=d.get("season_id"),
        season_title=d.get("season_title"),
        episode_id=d.get("episode_id"),
        episode_title=d.get("episode_title"),
        timestamp=float(d.get("timestamp", 0.0)),
    )


class CacheHistoryRepository:
    """Recently watched list + last watch, stored as JSON without expiry.

    Corrupt entries are logged and read back as empty.
    """

    def __init__(self, cache: CachePort, max_items: int = MAX_HISTORY_ITEMS) -> None:
        self.cache = cache
        self.max_items = max_items

    async def get_history(self) -> list[CatalogItem]:
        data = await self.cache.get(HISTORY_KEY)
        if data is None:
            return []
        try:
            return _deserialize_history(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.error("history_deserialize_error", error=str(e))
            return []

    async def add_to_history(self, item: CatalogItem) -> None:
        history = [h for h in await self.get_history() if h.id != item.id]
        history.insert(0, item)
        del history[self.max_items :]
        await self.cache.set(HISTORY_KEY, _serialize_history(history), ttl=0)
        log.debug("history_item_added", item_id=item.id, size=len(history))

    async def remove_from_history(self, item_id: str) -> None:
        history = await self.get_history()
        remaining = [h for h in history if h.id != item_id]
        if len(remaining) == len(history):
            return
        await self.cache.set(HISTORY_KEY, _serialize_history(remaining), ttl=0)
        log.debug("history_item_removed", item_id=item_id)

    async def clear_history(self) -> None:
        await self.cache.delete(HISTORY_KEY)
        log.info("history_cleared")

    async def save_last_watch(self, last_watch: LastWatch) -> None:
        stamped = replace(last_watch, timestamp=time.time())
        await self.cache.set(LAST_WATCH_KEY, _serialize_last_watch(stamped), ttl=0)
        log.debug(
            "last_watch_saved",
            item_id=stamped.item.id,
            season_id=stamped.season_id,
            episode_id=stamped.episode_id,
        )

    async def get_last_watch(self) -> LastWatch | None:
        data = await self.cache.get(LAST_WATCH_KEY)
        if data is None:
            return None
        try:
            return _deserialize_last_watch(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.error("last_watch_deserialize_error", error=str(e))
            return None

    async def clear_last_watch(self) -> None:
        await self.cache.delete(LAST_WATCH_KEY)
