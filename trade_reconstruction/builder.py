"""
Trade Reconstruction - Position Builder.

============================================================
PURPOSE
============================================================
Folds the fills of one position key into a StandardizedTrade.

POSITION LIFECYCLE:

    (opening fill)
          │
          ▼
        OPEN ──► ADD* ──► REDUCE* ──► CLOSE
                   ▲         │
                   └─────────┘

- Increasing fill (long+buy, short+sell): OPEN first, then ADD
- Decreasing fill: REDUCE, promoted to CLOSE when the open size
  reaches zero (within tolerance)
- CLOSED is terminal: a later fill on the same key must start a
  new builder

INVARIANTS:
- apply_fill is pure: it returns a new PositionState
- Reduced size never exceeds the open size
- Only REDUCE may be promoted to CLOSE

============================================================
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import PositionConfig
from .normalizers import base_asset_of
from .parsers import parse_float, parse_int
from .types import (
    ContractType,
    InstrumentMetadata,
    InvalidTransitionError,
    PositionStatus,
    RawFill,
    StandardizedTrade,
    TimelineAction,
    TimelineEvent,
    TradeDirection,
)
from .variants import CostModel, VariantRules, is_buy


logger = logging.getLogger(__name__)


# ============================================================
# POSITION STATE
# ============================================================

@dataclass(frozen=True)
class PositionState:
    """
    Running state of one position.

    Replaced, never mutated, by apply_fill().
    """

    direction: TradeDirection
    status: PositionStatus = PositionStatus.OPEN

    entry_time: int = 0
    exit_time: Optional[int] = None

    position_size: float = 0.0
    """Open size. Signed (+long / -short) for signed variants."""

    total_size: float = 0.0
    """Cumulative opened size."""

    total_value: float = 0.0
    """Cumulative cost basis."""

    average_entry_price: float = 0.0
    average_exit_price: float = 0.0

    closing_size: float = 0.0
    """Cumulative reduced size."""

    closing_value: float = 0.0
    """Cumulative exit value, in cost-basis currency."""

    realized_pnl: float = 0.0
    total_commission: float = 0.0
    event_count: int = 0

    @property
    def open_size(self) -> float:
        """Unsigned open size."""
        return abs(self.position_size)

    @property
    def duration_ms(self) -> int:
        """Holding time, 0 while open."""
        if self.exit_time is None:
            return 0
        return self.exit_time - self.entry_time


def increases_position(direction: TradeDirection, fill: RawFill) -> bool:
    """Check if fill grows a position of the given direction."""
    return is_buy(fill) == (direction is TradeDirection.LONG)


def promote_to_close(event: TimelineEvent) -> TimelineEvent:
    """
    Promote a REDUCE event to CLOSE.

    Raises:
        InvalidTransitionError: If the event is not a REDUCE
    """
    if event.action != TimelineAction.REDUCE:
        raise InvalidTransitionError(
            f"Cannot promote {event.action.value} to {TimelineAction.CLOSE.value}"
        )
    return dataclasses.replace(event, action=TimelineAction.CLOSE)


def fill_size(fill: RawFill, rules: VariantRules, contract_value: float) -> float:
    """Fill size in position units (contracts x contract value for futures)."""
    size = abs(parse_float(fill.fill_sz))
    if rules.uses_contract_value:
        size *= contract_value
    return size


# ============================================================
# FOLD STEP
# ============================================================

def apply_fill(
    state: PositionState,
    fill: RawFill,
    rules: VariantRules,
    contract_value: float = 1.0,
    tolerance: float = 1e-9,
    contract_type: Optional[ContractType] = None,
) -> Tuple[PositionState, TimelineEvent]:
    """
    Apply one fill to a position.

    Args:
        state: Current position state
        fill: Fill to apply
        rules: Variant rules (cost model, sign convention)
        contract_value: Contract multiplier for futures
        tolerance: Open size at or below this closes the position
        contract_type: Contract class from instrument metadata

    Returns:
        (new state, timeline event)

    Raises:
        InvalidTransitionError: If the position is already closed, or
            the first fill of a position does not increase it
    """
    if state.status.is_terminal():
        raise InvalidTransitionError(
            f"Cannot apply fill {fill.trade_id} to {state.status.value} position"
        )

    cost_model: CostModel = rules.cost_model(contract_type)
    price = parse_float(fill.fill_px)
    size = fill_size(fill, rules, contract_value)
    fee = parse_float(fill.fee)
    ts = parse_int(fill.ts)

    event = TimelineEvent(
        timestamp=ts,
        action=TimelineAction.ADD,
        size=size,
        price=price,
        fee=fee,
        fee_ccy=fill.fee_ccy or "",
        trade_id=fill.trade_id or "",
        order_id=fill.ord_id or "",
    )

    if increases_position(state.direction, fill):
        first = state.event_count == 0
        total_size = state.total_size + size
        total_value = state.total_value + cost_model.cost_of(size, price)
        signed = size * state.direction.sign if rules.signed_position else size

        event.action = TimelineAction.OPEN if first else TimelineAction.ADD
        new_state = dataclasses.replace(
            state,
            entry_time=ts if first else state.entry_time,
            position_size=state.position_size + signed,
            total_size=total_size,
            total_value=total_value,
            average_entry_price=cost_model.average_price(total_size, total_value),
            total_commission=state.total_commission + fee,
            event_count=state.event_count + 1,
        )
        return new_state, event

    if state.event_count == 0:
        raise InvalidTransitionError(
            f"Fill {fill.trade_id} cannot open a {state.direction.value} position"
        )

    open_size = state.open_size
    reduced = min(size, open_size)
    if size > open_size + tolerance:
        logger.debug(
            f"Clamped reduce of fill {fill.trade_id} from {size} to open size {open_size}"
        )
    remaining = open_size - reduced

    pnl = cost_model.realized_pnl(
        state.direction, state.average_entry_price, price, reduced
    )
    closing_size = state.closing_size + reduced
    closing_value = state.closing_value + cost_model.cost_of(reduced, price)

    event.action = TimelineAction.REDUCE
    event.size = reduced

    changes = dict(
        position_size=remaining * state.direction.sign if rules.signed_position else remaining,
        closing_size=closing_size,
        closing_value=closing_value,
        realized_pnl=state.realized_pnl + pnl,
        total_commission=state.total_commission + fee,
        event_count=state.event_count + 1,
    )

    if remaining <= tolerance:
        event = promote_to_close(event)
        changes.update(
            status=PositionStatus.CLOSED,
            exit_time=ts,
            position_size=0.0,
            average_exit_price=cost_model.average_price(closing_size, closing_value),
        )

    return dataclasses.replace(state, **changes), event


# ============================================================
# POSITION BUILDER
# ============================================================

class PositionBuilder:
    """
    Owns the state of one position while it is being built.

    Usage:
        builder = PositionBuilder(first_fill, LINEAR_FUTURES, contract_value=0.01)
        builder.add_fill(next_fill)
        if builder.is_closed:
            trade = builder.to_trade()
    """

    def __init__(
        self,
        first_fill: RawFill,
        rules: VariantRules,
        contract_value: float = 1.0,
        instrument: Optional[InstrumentMetadata] = None,
        config: Optional[PositionConfig] = None,
        notes: Optional[str] = None,
    ):
        """
        Start a position from its opening fill.

        Args:
            first_fill: Opening fill
            rules: Variant rules
            contract_value: Contract multiplier
            instrument: Instrument metadata, if known
            config: Position configuration
            notes: Note attached to the opening event
        """
        self._rules = rules
        self._contract_value = contract_value
        self._instrument = instrument
        self._config = config or PositionConfig()
        self._contract_type = instrument.contract_type if instrument else None
        self._first_fill = first_fill

        self._state = PositionState(direction=rules.direction_of(first_fill))
        self._fills: List[RawFill] = []
        self._trade_ids: List[str] = []
        self._order_ids: List[str] = []
        self._timeline: List[TimelineEvent] = []

        self.add_fill(first_fill, notes=notes)

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def state(self) -> PositionState:
        return self._state

    @property
    def direction(self) -> TradeDirection:
        return self._state.direction

    @property
    def is_closed(self) -> bool:
        return self._state.status.is_terminal()

    @property
    def position_size(self) -> float:
        """Open size, signed for signed variants."""
        return self._state.position_size

    @property
    def raw_fills(self) -> List[RawFill]:
        return list(self._fills)

    @property
    def cost_model(self) -> CostModel:
        return self._rules.cost_model(self._contract_type)

    # --------------------------------------------------------
    # FOLD
    # --------------------------------------------------------

    def add_fill(self, fill: RawFill, notes: Optional[str] = None) -> TimelineEvent:
        """
        Apply a fill and record it.

        Raises:
            InvalidTransitionError: If the position is already closed
        """
        self._state, event = apply_fill(
            self._state,
            fill,
            self._rules,
            contract_value=self._contract_value,
            tolerance=self._config.size_tolerance,
            contract_type=self._contract_type,
        )
        if notes:
            event.notes = notes

        self._timeline.append(event)
        self._fills.append(fill)
        if fill.trade_id:
            self._trade_ids.append(fill.trade_id)
        if fill.ord_id and fill.ord_id not in self._order_ids:
            self._order_ids.append(fill.ord_id)

        logger.debug(
            f"{fill.inst_id} {event.action.value} size={event.size} "
            f"price={event.price} open={self._state.position_size}"
        )
        return event

    # --------------------------------------------------------
    # OUTPUT
    # --------------------------------------------------------

    def _currencies(self) -> Tuple[str, str, str]:
        """(pnl, fee, value) currencies."""
        inst_id = self._first_fill.inst_id
        base = self._instrument.base_ccy if self._instrument else ""
        quote = self._instrument.quote_ccy if self._instrument else ""
        fee_ccy = self._first_fill.fee_ccy

        if self.cost_model.contract_type is ContractType.INVERSE:
            pnl_ccy = base or fee_ccy or base_asset_of(inst_id)
            value_ccy = quote or "USD"
        else:
            pnl_ccy = quote or "USDT"
            value_ccy = pnl_ccy

        return pnl_ccy, fee_ccy or pnl_ccy, value_ccy

    def to_trade(self) -> StandardizedTrade:
        """Build the standardized trade from the current state."""
        state = self._state
        inst_id = self._first_fill.inst_id
        label = self._rules.side_label_of(self._first_fill)
        pnl_ccy, fee_ccy, value_ccy = self._currencies()

        trade = StandardizedTrade(
            id=f"{inst_id}-{label}-{state.entry_time}",
            symbol=inst_id,
            direction=state.direction,
            status=state.status,
            entry_time=state.entry_time,
            exit_time=state.exit_time,
            duration_ms=state.duration_ms,
            total_size=state.total_size,
            total_value=state.total_value,
            average_entry_price=state.average_entry_price,
            average_exit_price=state.average_exit_price,
            current_position_size=state.position_size,
            realized_pnl=state.realized_pnl,
            total_commission=state.total_commission,
            pnl_currency=pnl_ccy,
            fee_currency=fee_ccy,
            value_currency=value_ccy,
            timeline=list(self._timeline),
            trade_ids=list(self._trade_ids),
            order_ids=list(self._order_ids),
            tags=list(self._rules.tags),
            raw_fills=list(self._fills),
        )
        trade.recompute_net_pnl()
        return trade
