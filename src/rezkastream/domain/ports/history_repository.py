"""Port for watch history persistence."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from rezkastream.domain.entities import CatalogItem, LastWatch


@runtime_checkable
class HistoryRepository(Protocol):
    """Async interface for the recently watched list and the last watch.

    Called by the caller after a successful resolve, never by the engine.
    """

    async def get_history(self) -> list[CatalogItem]: ...

    async def add_to_history(self, item: CatalogItem) -> None: ...

    async def remove_from_history(self, item_id: str) -> None: ...

    async def clear_history(self) -> None: ...

    async def save_last_watch(self, last_watch: LastWatch) -> None: ...

    async def get_last_watch(self) -> LastWatch | None: ...

    async def clear_last_watch(self) -> None: ...
