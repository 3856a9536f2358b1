"""
Trade Reconstruction - Variant Rules.

============================================================
PURPOSE
============================================================
The four contract mechanics as configuration values of one
generic engine.

Each variant supplies:
- is_opening_fill: may this fill start a position on an empty key?
- position_key_of: canonical grouping key for fills and risk snapshots
- cost model: cost-basis update, average price and realized PnL

| Variant         | Opening            | Cost basis     | Sign     |
|-----------------|--------------------|----------------|----------|
| linear_futures  | long&buy/short&sell| quote          | unsigned |
| inverse_futures | long&buy/short&sell| settlement coin| unsigned |
| spot            | any buy            | quote          | long only|
| margin          | any fill           | quote          | signed   |

============================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from .types import (
    ContractType,
    RawFill,
    TradeDirection,
    UnknownVariantError,
)


# ============================================================
# SIDE HELPERS
# ============================================================

POS_SIDE_LONG = "long"
POS_SIDE_SHORT = "short"
POS_SIDE_NET = "net"


def canonical_pos_side(pos_side: Optional[str]) -> str:
    """
    Normalize a position side to long / short / net.

    Binance "BOTH", OKX "net", empty and unknown values map to net.
    """
    value = (pos_side or "").strip().lower()
    if value in (POS_SIDE_LONG, POS_SIDE_SHORT):
        return value
    return POS_SIDE_NET


def is_buy(fill: RawFill) -> bool:
    """Check if fill is a buy."""
    return (fill.side or "").strip().lower() == "buy"


def hedged_position_key(inst_id: str, pos_side: Optional[str]) -> str:
    """Key for hedge-mode capable products: instrument + side."""
    return f"{inst_id}-{canonical_pos_side(pos_side)}"


def instrument_position_key(inst_id: str, pos_side: Optional[str] = None) -> str:
    """Key for products with one position per instrument."""
    return inst_id


# ============================================================
# COST MODELS
# ============================================================

class FundingMatch(Enum):
    """How a funding bill is attributed when several trades qualify."""

    FIRST = "first"
    """Bill goes to the first qualifying trade only."""

    ALL = "all"
    """Bill is added to every qualifying trade."""


@dataclass(frozen=True)
class CostModel:
    """
    Cost-basis and PnL formulas for one settlement class.
    """

    contract_type: ContractType

    def cost_of(self, size: float, price: float) -> float:
        """Cost of `size` at `price` in the cost-basis currency."""
        if self.contract_type is ContractType.INVERSE:
            # size is USD notional, cost is in coin
            return size / price if price > 0 else 0.0
        return size * price

    def average_price(self, total_size: float, total_cost: float) -> float:
        """Weighted average price from accumulated size and cost."""
        if self.contract_type is ContractType.INVERSE:
            return total_size / total_cost if total_cost > 0 else 0.0
        return total_cost / total_size if total_size > 0 else 0.0

    def realized_pnl(
        self,
        direction: TradeDirection,
        entry_price: float,
        exit_price: float,
        size: float,
    ) -> float:
        """Realized PnL for reducing `size` at `exit_price`."""
        if self.contract_type is ContractType.INVERSE:
            if entry_price <= 0 or exit_price <= 0:
                return 0.0
            return size * (1 / entry_price - 1 / exit_price) * direction.sign
        return (exit_price - entry_price) * size * direction.sign


LINEAR_COST = CostModel(ContractType.LINEAR)
INVERSE_COST = CostModel(ContractType.INVERSE)

COST_MODELS: Dict[ContractType, CostModel] = {
    ContractType.LINEAR: LINEAR_COST,
    ContractType.INVERSE: INVERSE_COST,
}


# ============================================================
# OPENING PREDICATES
# ============================================================

def futures_opening_fill(fill: RawFill) -> bool:
    """
    Futures: long+buy or short+sell opens.

    One-way (net) mode carries no side information, so any fill
    on an empty net key opens in the direction of the fill.
    """
    pos_side = canonical_pos_side(fill.pos_side)
    if pos_side == POS_SIDE_NET:
        return True
    buy = is_buy(fill)
    return (pos_side == POS_SIDE_LONG and buy) or (pos_side == POS_SIDE_SHORT and not buy)


def spot_opening_fill(fill: RawFill) -> bool:
    """Spot: any buy starts a cycle."""
    return is_buy(fill)


def margin_opening_fill(fill: RawFill) -> bool:
    """Margin: the first fill of a key always opens."""
    return True


# ============================================================
# VARIANT RULES
# ============================================================

@dataclass(frozen=True)
class VariantRules:
    """
    Configuration of the generic reconstruction engine.
    """

    name: str
    """Variant name."""

    is_opening_fill: Callable[[RawFill], bool]
    """Whether a fill may open a position on an empty key."""

    position_key_of: Callable[[str, Optional[str]], str]
    """Canonical position key from (instrument, position side)."""

    default_contract_type: ContractType = ContractType.LINEAR
    """Cost model used unless instrument metadata overrides it."""

    honor_instrument_contract_type: bool = False
    """Let InstrumentMetadata.ct_type select the cost model."""

    uses_contract_value: bool = True
    """Multiply fill size by the instrument contract value."""

    long_only: bool = False
    """Direction is always long (spot)."""

    signed_position: bool = False
    """Running position carries a sign (margin)."""

    allows_flip: bool = False
    """Split fills that overshoot the open position (margin)."""

    funding_match: FundingMatch = FundingMatch.FIRST
    """Funding attribution when several trades qualify."""

    side_label: Optional[str] = None
    """Fixed side label for trade ids; None uses the canonical pos side."""

    tags: Tuple[str, ...] = ()
    """Tags stamped on every trade."""

    def direction_of(self, fill: RawFill) -> TradeDirection:
        """Direction of a position opened by `fill`."""
        if self.long_only:
            return TradeDirection.LONG
        pos_side = canonical_pos_side(fill.pos_side)
        if not self.signed_position:
            if pos_side == POS_SIDE_LONG:
                return TradeDirection.LONG
            if pos_side == POS_SIDE_SHORT:
                return TradeDirection.SHORT
        return TradeDirection.LONG if is_buy(fill) else TradeDirection.SHORT

    def side_label_of(self, fill: RawFill) -> str:
        """Side component of the trade id."""
        return self.side_label or canonical_pos_side(fill.pos_side)

    def cost_model(self, contract_type: Optional[ContractType] = None) -> CostModel:
        """Resolve the cost model, honoring instrument metadata if enabled."""
        if contract_type is not None and self.honor_instrument_contract_type:
            return COST_MODELS[contract_type]
        return COST_MODELS[self.default_contract_type]


LINEAR_FUTURES = VariantRules(
    name="linear_futures",
    is_opening_fill=futures_opening_fill,
    position_key_of=hedged_position_key,
    default_contract_type=ContractType.LINEAR,
    honor_instrument_contract_type=True,
    funding_match=FundingMatch.FIRST,
)

INVERSE_FUTURES = VariantRules(
    name="inverse_futures",
    is_opening_fill=futures_opening_fill,
    position_key_of=hedged_position_key,
    default_contract_type=ContractType.INVERSE,
    honor_instrument_contract_type=True,
    funding_match=FundingMatch.FIRST,
)

SPOT = VariantRules(
    name="spot",
    is_opening_fill=spot_opening_fill,
    position_key_of=instrument_position_key,
    uses_contract_value=False,
    long_only=True,
    funding_match=FundingMatch.ALL,
    side_label="spot",
    tags=("spot",),
)

MARGIN = VariantRules(
    name="margin",
    is_opening_fill=margin_opening_fill,
    position_key_of=instrument_position_key,
    uses_contract_value=False,
    signed_position=True,
    allows_flip=True,
    funding_match=FundingMatch.ALL,
    side_label="margin",
    tags=("margin",),
)

VARIANTS: Dict[str, VariantRules] = {
    rules.name: rules
    for rules in (LINEAR_FUTURES, INVERSE_FUTURES, SPOT, MARGIN)
}


def get_variant(name: str) -> VariantRules:
    """
    Look up variant rules by name.

    Raises:
        UnknownVariantError: If no variant has that name
    """
    try:
        return VARIANTS[name.strip().lower()]
    except KeyError:
        raise UnknownVariantError(
            f"Unknown variant: {name} (expected one of {sorted(VARIANTS)})"
        ) from None
