from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from ..errors import UnknownSymbolError


logger = logging.getLogger(__name__)

DirectoryFetcher = Callable[[], Awaitable[List[Tuple[str, int]]]]


class AssetRegistry:
    """Symbol to asset index cache backed by venue metadata.

    Entries never expire on their own; call ``invalidate`` or ``refresh`` when
    the venue republishes its universe. Misses that arrive while a fetch is
    running wait on that fetch instead of starting another.
    """

    def __init__(self, fetch_directory: DirectoryFetcher) -> None:
        self._fetch_directory = fetch_directory
        self._indices: Dict[str, int] = {}
        self._inflight: Optional[asyncio.Task[Dict[str, int]]] = None
        self._fetch_count = 0
        self._generation = 0

    @property
    def fetch_count(self) -> int:
        return self._fetch_count

    def cached(self, symbol: str) -> Optional[int]:
        return self._indices.get(symbol)

    def symbols(self) -> List[str]:
        return sorted(self._indices)

    async def resolve(self, symbol: str) -> int:
        index = self._indices.get(symbol)
        if index is not None:
            return index
        await self._refresh_shared()
        index = self._indices.get(symbol)
        if index is None:
            raise UnknownSymbolError(symbol)
        return index

    async def resolve_all(self, symbols: Iterable[str]) -> Dict[str, int]:
        unique = list(dict.fromkeys(symbols))
        indices = await asyncio.gather(*(self.resolve(symbol) for symbol in unique))
        return dict(zip(unique, indices))

    async def refresh(self) -> Dict[str, int]:
        return await self._refresh_shared()

    def invalidate(self) -> None:
        """Drop the table; a fetch already in flight can no longer install its result."""
        self._generation += 1
        self._indices = {}
        self._inflight = None
        logger.info("Asset registry invalidated")

    async def _refresh_shared(self) -> Dict[str, int]:
        while True:
            generation = self._generation
            task = self._inflight
            if task is None or task.done():
                task = asyncio.create_task(self._load(generation))
                self._inflight = task
            # shield: one caller giving up must not cancel the fetch for the others
            indices = await asyncio.shield(task)
            if generation == self._generation:
                return indices

    async def _load(self, generation: int) -> Dict[str, int]:
        self._fetch_count += 1
        try:
            entries = await self._fetch_directory()
        finally:
            if self._inflight is asyncio.current_task():
                self._inflight = None
        indices: Dict[str, int] = {}
        for symbol, index in entries:
            # first name wins, so a spot alias cannot shadow a perp name
            indices.setdefault(symbol, int(index))
        if generation != self._generation:
            logger.info("Discarding asset table fetched before invalidation")
            return indices
        self._indices = indices
        logger.info("Asset registry loaded %d symbols", len(indices))
        return indices
