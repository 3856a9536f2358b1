"""
Trade Reconstruction - Sync Pass.

============================================================
PURPOSE
============================================================
One synchronous sync pass over a batch source.

FLOW:
1. Load cached fills (positions open at the end of last run)
2. Fetch the new batch since the last sync timestamp
3. Merge cached + new fills, de-duplicate (cached fills win)
4. Reconstruct trades
5. Re-cache fills of positions still open
6. Advance the last sync timestamp (never backwards)

Fetching is delegated to a caller-supplied BatchSource.

============================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol

from .parsers import parse_int
from .processor import TradeProcessor
from .types import (
    FillCacheError,
    FundingBill,
    InstrumentMetadata,
    PositionRiskSnapshot,
    RawFill,
    StandardizedTrade,
)


logger = logging.getLogger(__name__)


# ============================================================
# DATA CLASSES
# ============================================================

@dataclass
class SyncBatch:
    """One fetched batch of exchange data."""

    fills: List[RawFill] = field(default_factory=list)
    bills: List[FundingBill] = field(default_factory=list)
    instruments: List[InstrumentMetadata] = field(default_factory=list)
    position_risks: List[PositionRiskSnapshot] = field(default_factory=list)


@dataclass
class SyncResult:
    """Outcome of one sync pass."""

    trades: List[StandardizedTrade]
    open_fills: List[RawFill]
    last_sync_timestamp: int


# ============================================================
# PROTOCOLS
# ============================================================

class BatchSource(Protocol):
    """Anything that can fetch a batch of exchange data."""

    def fetch_batch(self, since_ms: int) -> SyncBatch:
        ...


class FillCache(Protocol):
    """Key -> fills store for open positions."""

    def load(self, key: str) -> List[RawFill]:
        ...

    def save(self, key: str, fills: Iterable[RawFill]) -> int:
        ...


class InMemoryFillCache:
    """Dict-backed FillCache."""

    def __init__(self):
        self._store: Dict[str, List[RawFill]] = {}

    def load(self, key: str) -> List[RawFill]:
        return list(self._store.get(key, []))

    def save(self, key: str, fills: Iterable[RawFill]) -> int:
        self._store[key] = list(fills)
        return len(self._store[key])


# ============================================================
# DE-DUPLICATION
# ============================================================

def fill_identity(fill: RawFill) -> str:
    """Fill id, or inst-ts-side when the id is missing."""
    if fill.trade_id:
        return fill.trade_id
    return f"{fill.inst_id}-{parse_int(fill.ts)}-{fill.side}"


def deduplicate_fills(fills: Iterable[RawFill]) -> List[RawFill]:
    """
    Remove duplicate fills.

    The last occurrence of an identity wins; output keeps the
    order in which identities were first seen.
    """
    unique: Dict[str, RawFill] = {}
    for fill in fills:
        unique[fill_identity(fill)] = fill
    return list(unique.values())


def merge_cached_fills(
    cached: Iterable[RawFill],
    fetched: Iterable[RawFill],
) -> List[RawFill]:
    """
    Merge cached open-position fills with a fetched batch.

    A cached fill wins over a re-fetched fill with the same identity:
    the cache may hold the opening part of a flip-split fill, which
    must not be replaced by the full-size original.
    """
    cached = deduplicate_fills(cached)
    cached_ids = {fill_identity(fill) for fill in cached}
    fresh = [
        fill for fill in deduplicate_fills(fetched)
        if fill_identity(fill) not in cached_ids
    ]
    return cached + fresh


# ============================================================
# SYNC SERVICE
# ============================================================

class TradeSyncService:
    """
    Runs sync passes for one account / variant.

    Usage:
        service = TradeSyncService(source, TradeProcessor(SPOT), cache)
        result = service.sync()
    """

    def __init__(
        self,
        source: BatchSource,
        processor: TradeProcessor,
        cache: Optional[FillCache] = None,
        cache_key: str = "fill-cache",
        last_sync_timestamp: int = 0,
    ):
        """
        Initialize sync service.

        Args:
            source: Batch source
            processor: Trade processor for this variant
            cache: Open-position fill cache (in-memory if None)
            cache_key: Cache key for this account / variant
            last_sync_timestamp: Resume point, unix milliseconds
        """
        self._source = source
        self._processor = processor
        self._cache = cache if cache is not None else InMemoryFillCache()
        self._cache_key = cache_key
        self._last_sync_timestamp = last_sync_timestamp

    @property
    def last_sync_timestamp(self) -> int:
        return self._last_sync_timestamp

    def sync(self) -> SyncResult:
        """
        Run one sync pass.

        Raises:
            FillCacheError: If the open-position fills cannot be saved
        """
        cached = self._load_cached_fills()
        logger.info(f"Loaded {len(cached)} cached fills from '{self._cache_key}'")

        batch = self._source.fetch_batch(self._last_sync_timestamp)
        fills = merge_cached_fills(cached, batch.fills)

        trades = self._processor.process_all_data(
            fills,
            bills=batch.bills,
            instruments=batch.instruments,
            position_risks=batch.position_risks,
        )

        open_fills = self._processor.get_open_position_fills()
        self._cache.save(self._cache_key, open_fills)

        max_ts = max(
            (parse_int(fill.ts) for trade in trades for fill in trade.raw_fills),
            default=0,
        )
        if max_ts > self._last_sync_timestamp:
            self._last_sync_timestamp = max_ts
            logger.info(f"Last sync timestamp for '{self._cache_key}' set to {max_ts}")

        return SyncResult(
            trades=trades,
            open_fills=open_fills,
            last_sync_timestamp=self._last_sync_timestamp,
        )

    def reset_sync_state(self) -> None:
        """Restart from the beginning of history on the next pass."""
        self._last_sync_timestamp = 0
        logger.info(f"Sync state for '{self._cache_key}' reset to 0")

    def _load_cached_fills(self) -> List[RawFill]:
        try:
            return list(self._cache.load(self._cache_key))
        except FillCacheError as e:
            logger.error(f"Failed to load fill cache '{self._cache_key}': {e}")
            return []
