from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from .http_dispatcher import HttpDispatcher


logger = logging.getLogger(__name__)

SPOT_ASSET_OFFSET = 10000


class InfoClient:
    """Read-only metadata queries against ``/info``.

    Only the asset directory is needed by the signing core: perpetuals are
    indexed by their position in ``meta.universe``, spot pairs by
    ``10000 + pair index`` from ``spotMeta``.
    """

    def __init__(self, dispatcher: HttpDispatcher) -> None:
        self._dispatcher = dispatcher

    async def perp_meta(self) -> Dict[str, Any]:
        payload = await self._dispatcher.info({"type": "meta"})
        return payload if isinstance(payload, dict) else {}

    async def spot_meta(self) -> Dict[str, Any]:
        payload = await self._dispatcher.info({"type": "spotMeta"})
        return payload if isinstance(payload, dict) else {}

    async def fetch_asset_directory(self) -> List[Tuple[str, int]]:
        """Return every (symbol, asset index) pair the venue currently publishes."""
        entries: List[Tuple[str, int]] = []
        entries.extend(self._perp_entries(await self.perp_meta()))
        entries.extend(self._spot_entries(await self.spot_meta()))
        logger.info("Fetched asset directory with %d names", len(entries))
        return entries

    @staticmethod
    def _perp_entries(meta: Dict[str, Any]) -> List[Tuple[str, int]]:
        entries: List[Tuple[str, int]] = []
        universe = meta.get("universe")
        if not isinstance(universe, list):
            return entries
        for index, asset in enumerate(universe):
            if not isinstance(asset, dict):
                continue
            name = asset.get("name")
            if not isinstance(name, str) or not name:
                continue
            entries.append((name, index))
            entries.append((f"{name}-PERP", index))
        return entries

    @staticmethod
    def _spot_entries(meta: Dict[str, Any]) -> List[Tuple[str, int]]:
        entries: List[Tuple[str, int]] = []
        universe = meta.get("universe")
        if not isinstance(universe, list):
            return entries
        tokens: Dict[int, str] = {}
        for token in meta.get("tokens") or []:
            if isinstance(token, dict) and isinstance(token.get("index"), int):
                tokens[token["index"]] = str(token.get("name", ""))
        for position, pair in enumerate(universe):
            if not isinstance(pair, dict):
                continue
            pair_index = pair.get("index", position)
            if not isinstance(pair_index, int):
                continue
            asset = SPOT_ASSET_OFFSET + pair_index
            name = pair.get("name")
            if isinstance(name, str) and name:
                entries.append((name, asset))
            base, quote = _pair_tokens(pair, tokens)
            if base and quote:
                pair_name = f"{base}/{quote}"
                if pair_name != name:
                    entries.append((pair_name, asset))
                entries.append((f"{base}-SPOT", asset))
        return entries


def _pair_tokens(pair: Dict[str, Any], tokens: Dict[int, str]) -> Tuple[Optional[str], Optional[str]]:
    indices = pair.get("tokens")
    if not isinstance(indices, list) or len(indices) != 2:
        return None, None
    return tokens.get(indices[0]), tokens.get(indices[1])
