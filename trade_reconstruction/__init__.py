"""
Trade Reconstruction Package.

============================================================
PURPOSE
============================================================
Rebuilds position lifecycles from raw exchange fills and
funding bills.

CRITICAL PRINCIPLE:
    "Same fills in, same trades out, whatever the order."

SUPPORTED MECHANICS:
    - Linear (USDT-margined) futures
    - Inverse (coin-margined) futures
    - Spot (virtual long-only positions)
    - Margin (signed positions with direction flips)

============================================================
MODULES
============================================================
- types: Raw records, trades, timeline, exceptions
- config: Engine configuration
- parsers: Safe numeric parsing
- timeline: Timeline event aggregation
- variants: Variant rules (opening, keys, cost model)
- builder: Position fold step and builder
- processor: Trade processor
- normalizers: OKX / Binance payload normalization
- models: ORM model for the fill cache
- repository: Fill cache persistence
- sync: Sync pass

============================================================
"""

# ============================================================
# TYPES
# ============================================================
from .types import (
    # Enums
    TradeDirection,
    PositionStatus,
    TimelineAction,
    ContractType,
    # Dataclasses
    RawFill,
    FundingBill,
    InstrumentMetadata,
    PositionRiskSnapshot,
    TimelineEvent,
    StandardizedTrade,
    # Exceptions
    TradeReconstructionError,
    InvalidTransitionError,
    UnknownVariantError,
    FillCacheError,
)

# ============================================================
# CONFIGURATION
# ============================================================
from .config import (
    TimelineConfig,
    PositionConfig,
    FundingConfig,
    ReconstructionConfig,
)

# ============================================================
# CORE
# ============================================================
from .parsers import parse_int, parse_float
from .timeline import aggregate_events, merge_group
from .variants import (
    FundingMatch,
    CostModel,
    VariantRules,
    LINEAR_FUTURES,
    INVERSE_FUTURES,
    SPOT,
    MARGIN,
    VARIANTS,
    get_variant,
    canonical_pos_side,
)
from .builder import (
    PositionState,
    PositionBuilder,
    apply_fill,
    promote_to_close,
)
from .processor import (
    ProcessingSummary,
    TradeProcessor,
)

# ============================================================
# NORMALIZERS
# ============================================================
from .normalizers import (
    normalize_many,
    base_asset_of,
    okx_fill_to_raw,
    okx_bill_to_funding,
    okx_instrument_to_metadata,
    okx_position_to_risk,
    binance_trade_to_raw,
    binance_spot_trade_to_raw,
    binance_income_to_funding,
    binance_symbol_to_metadata,
    binance_position_risk_to_snapshot,
)

# ============================================================
# PERSISTENCE / SYNC
# ============================================================
from .models import CachedFillModel
from .repository import (
    FillCacheRepository,
    create_cache_engine,
    create_cache_session,
)
from .sync import (
    SyncBatch,
    SyncResult,
    BatchSource,
    FillCache,
    InMemoryFillCache,
    deduplicate_fills,
    merge_cached_fills,
    TradeSyncService,
)


__all__ = [
    # Types
    "TradeDirection",
    "PositionStatus",
    "TimelineAction",
    "ContractType",
    "RawFill",
    "FundingBill",
    "InstrumentMetadata",
    "PositionRiskSnapshot",
    "TimelineEvent",
    "StandardizedTrade",
    "TradeReconstructionError",
    "InvalidTransitionError",
    "UnknownVariantError",
    "FillCacheError",
    # Config
    "TimelineConfig",
    "PositionConfig",
    "FundingConfig",
    "ReconstructionConfig",
    # Core
    "parse_int",
    "parse_float",
    "aggregate_events",
    "merge_group",
    "FundingMatch",
    "CostModel",
    "VariantRules",
    "LINEAR_FUTURES",
    "INVERSE_FUTURES",
    "SPOT",
    "MARGIN",
    "VARIANTS",
    "get_variant",
    "canonical_pos_side",
    "PositionState",
    "PositionBuilder",
    "apply_fill",
    "promote_to_close",
    "ProcessingSummary",
    "TradeProcessor",
    # Normalizers
    "normalize_many",
    "base_asset_of",
    "okx_fill_to_raw",
    "okx_bill_to_funding",
    "okx_instrument_to_metadata",
    "okx_position_to_risk",
    "binance_trade_to_raw",
    "binance_spot_trade_to_raw",
    "binance_income_to_funding",
    "binance_symbol_to_metadata",
    "binance_position_risk_to_snapshot",
    # Persistence / sync
    "CachedFillModel",
    "FillCacheRepository",
    "create_cache_engine",
    "create_cache_session",
    "SyncBatch",
    "SyncResult",
    "BatchSource",
    "FillCache",
    "InMemoryFillCache",
    "deduplicate_fills",
    "merge_cached_fills",
    "TradeSyncService",
]
