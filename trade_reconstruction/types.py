"""
Trade Reconstruction - Types.

============================================================
PURPOSE
============================================================
All type definitions for the Trade Reconstruction engine.

Raw records (fills, bills, instruments, risk snapshots) keep
their numeric fields exactly as received from the exchange.
Conversion to numbers happens only through the safe parsers
at the raw -> domain boundary.

CRITICAL PRINCIPLE:
    "Raw records are immutable once received."
    "A trade is mutated only while its position is open."

============================================================
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Dict, Any, Union


# Numeric fields arrive as strings from REST payloads, but cached
# or synthetic records may already carry numbers.
RawNumber = Union[str, int, float, None]


# ============================================================
# ENUMS
# ============================================================

class TradeDirection(Enum):
    """Position direction."""

    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        """+1 for long, -1 for short."""
        return 1 if self is TradeDirection.LONG else -1

    def opposite(self) -> "TradeDirection":
        """Get the opposite direction."""
        return TradeDirection.SHORT if self is TradeDirection.LONG else TradeDirection.LONG


class PositionStatus(Enum):
    """
    Position lifecycle status.

    State Machine:

        OPEN ──────► CLOSED
          │
          └────────► LIQUIDATED

    CLOSED and LIQUIDATED are terminal. A closed position is never
    re-opened; a later fill on the same key starts a new trade.
    """

    OPEN = "open"
    """Position has open size."""

    CLOSED = "closed"
    """Position fully closed."""

    LIQUIDATED = "liquidated"
    """Position forcibly closed by the exchange."""

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in {PositionStatus.CLOSED, PositionStatus.LIQUIDATED}


class TimelineAction(Enum):
    """
    Timeline event action.

    Closed set. The only transition a builder may perform on an
    already-created event is REDUCE -> CLOSE.
    """

    OPEN = "OPEN"
    ADD = "ADD"
    REDUCE = "REDUCE"
    CLOSE = "CLOSE"
    MARKET_ANALYSIS = "MARKET_ANALYSIS"

    def is_increase(self) -> bool:
        """Check if action grows the position."""
        return self in {TimelineAction.OPEN, TimelineAction.ADD}

    def is_decrease(self) -> bool:
        """Check if action shrinks the position."""
        return self in {TimelineAction.REDUCE, TimelineAction.CLOSE}


class ContractType(Enum):
    """Contract settlement class."""

    LINEAR = "linear"
    """Quote-margined (e.g. BTC-USDT-SWAP, BTCUSDT)."""

    INVERSE = "inverse"
    """Coin-margined (e.g. BTC-USD-SWAP, BTCUSD_PERP)."""


# ============================================================
# RAW RECORDS
# ============================================================

@dataclass(frozen=True)
class RawFill:
    """
    One execution report.

    `fee` is a cost: positive when paid, negative for a rebate.
    """

    inst_id: str = ""
    """Instrument identifier (e.g. BTC-USDT-SWAP, BTCUSDT)."""

    side: str = ""
    """buy / sell."""

    pos_side: str = ""
    """long / short / net / both / empty."""

    fill_px: RawNumber = None
    """Fill price."""

    fill_sz: RawNumber = None
    """Fill size (contracts for futures, base units for spot/margin)."""

    fee: RawNumber = None
    """Commission cost."""

    fee_ccy: str = ""
    """Commission currency."""

    ts: RawNumber = None
    """Fill time, unix milliseconds."""

    trade_id: str = ""
    """Fill identifier."""

    ord_id: str = ""
    """Order identifier."""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawFill":
        """Rebuild from a dict produced by to_dict(); unknown keys are ignored."""
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        return cls(**known)


@dataclass(frozen=True)
class FundingBill:
    """One funding-settlement (or other ledger) record."""

    inst_id: str = ""
    """Instrument identifier (may be empty for account-level entries)."""

    bal_chg: RawNumber = None
    """Balance change. Negative when funding was paid."""

    ts: RawNumber = None
    """Settlement time, unix milliseconds."""

    type: str = ""
    """Settlement type tag (FUNDING_FEE, OKX type 8, ...)."""

    ccy: str = ""
    """Settlement currency."""

    bill_id: str = ""
    """Bill identifier."""


@dataclass(frozen=True)
class InstrumentMetadata:
    """Per-instrument contract details."""

    inst_id: str = ""
    """Instrument identifier."""

    ct_val: RawNumber = None
    """Contract value (multiplier from contract count to underlying size)."""

    ct_type: str = ""
    """linear / inverse / empty when unknown."""

    base_ccy: str = ""
    """Base currency (BTC)."""

    quote_ccy: str = ""
    """Quote currency (USDT, USD)."""

    @property
    def contract_type(self) -> Optional[ContractType]:
        """Parsed contract class, None when not declared."""
        try:
            return ContractType((self.ct_type or "").strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class PositionRiskSnapshot:
    """Current notional value for an instrument + side."""

    inst_id: str = ""
    pos_side: str = ""
    notional: RawNumber = None


# ============================================================
# TIMELINE
# ============================================================

@dataclass
class TimelineEvent:
    """One lifecycle action on a trade."""

    timestamp: int
    """Event time, unix milliseconds."""

    action: TimelineAction
    """Lifecycle action."""

    size: float
    """Size of this action (underlying units, USD notional for inverse)."""

    price: float
    """Execution price."""

    fee: float = 0.0
    """Commission for this action."""

    fee_ccy: str = ""
    """Commission currency."""

    trade_id: str = ""
    """Originating fill id(s), comma separated after aggregation."""

    order_id: str = ""
    """Originating order id(s), comma separated after aggregation."""

    notes: Optional[str] = None
    """Free-text note."""


# ============================================================
# STANDARDIZED TRADE
# ============================================================

@dataclass
class StandardizedTrade:
    """
    A reconstructed position lifecycle.

    INVARIANT:
        net_pnl = realized_pnl - total_commission + total_funding_fee
        (recomputed at finalization, never stored independently)
    """

    # Identity
    id: str
    symbol: str
    direction: TradeDirection
    status: PositionStatus = PositionStatus.OPEN

    # Timing
    entry_time: int = 0
    exit_time: Optional[int] = None
    duration_ms: int = 0

    # Size and price
    total_size: float = 0.0
    """Cumulative opened size."""

    total_value: float = 0.0
    """Cost basis (quote currency; settlement coin for inverse)."""

    average_entry_price: float = 0.0
    average_exit_price: float = 0.0

    current_position_size: float = 0.0
    """Open size at emission. Signed for margin."""

    # PnL
    realized_pnl: float = 0.0
    total_commission: float = 0.0
    total_funding_fee: float = 0.0
    net_pnl: float = 0.0
    pnl_percentage: float = 0.0

    # Currencies
    pnl_currency: str = ""
    fee_currency: str = ""
    value_currency: str = ""

    # Timeline and references
    timeline: List[TimelineEvent] = field(default_factory=list)
    trade_ids: List[str] = field(default_factory=list)
    order_ids: List[str] = field(default_factory=list)
    bill_ids: List[str] = field(default_factory=list)

    # Risk snapshot (open trades only)
    current_notional_value: Optional[float] = None

    # User annotations
    tags: List[str] = field(default_factory=list)
    notes: str = ""

    # Source records
    raw_fills: List[RawFill] = field(default_factory=list, repr=False)
    raw_bills: List[FundingBill] = field(default_factory=list, repr=False)

    @property
    def is_open(self) -> bool:
        """Check if trade is still open."""
        return self.status == PositionStatus.OPEN

    def recompute_net_pnl(self) -> float:
        """Recompute and store net PnL."""
        self.net_pnl = self.realized_pnl - self.total_commission + self.total_funding_fee
        return self.net_pnl


# ============================================================
# EXCEPTIONS
# ============================================================

class TradeReconstructionError(Exception):
    """Base exception for Trade Reconstruction."""
    pass


class InvalidTransitionError(TradeReconstructionError):
    """Illegal position or timeline transition."""
    pass


class UnknownVariantError(TradeReconstructionError):
    """Requested variant is not registered."""
    pass


class FillCacheError(TradeReconstructionError):
    """Fill cache could not be read or written."""
    pass
