"""
Trade Reconstruction - Trade Processor.

============================================================
PURPOSE
============================================================
Generic reconstruction engine, configured by VariantRules.

PIPELINE:

    fills ──► sort (ts, fill id) ──► fold per position key
                                           │
                      ┌────────────────────┤
                      ▼                    ▼
               closed trades          open builders
                      │                    │
                      └──► funding ◄───────┤
                             │             ▼
                             │      risk annotation
                             ▼
                        finalization
                  (timeline, net PnL, PnL %)

CRITICAL PRINCIPLES:
- Output is identical for any permutation of the inputs
- Caller's lists are never mutated
- Degraded input is skipped or defaulted, never fatal

============================================================
"""

import dataclasses
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .builder import PositionBuilder, fill_size, increases_position
from .config import ReconstructionConfig
from .parsers import parse_float, parse_int
from .timeline import aggregate_events
from .types import (
    FundingBill,
    InstrumentMetadata,
    PositionRiskSnapshot,
    RawFill,
    StandardizedTrade,
)
from .variants import FundingMatch, VariantRules


logger = logging.getLogger(__name__)


FLIP_CLOSE_NOTE = "closed by position flip"
FLIP_OPEN_NOTE = "opened by position flip"


# ============================================================
# PROCESSING SUMMARY
# ============================================================

@dataclass
class ProcessingSummary:
    """Counters for one process_all_data() run."""

    fills_processed: int = 0
    """Fills folded into a position (orphans excluded)."""

    orphan_fills: int = 0
    flips: int = 0
    trades_closed: int = 0
    trades_open: int = 0
    bills_applied: int = 0
    missing_instruments: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return dataclasses.asdict(self)


# ============================================================
# TRADE PROCESSOR
# ============================================================

class TradeProcessor:
    """
    Reconstructs trades for one variant.

    Usage:
        processor = TradeProcessor(LINEAR_FUTURES)
        trades = processor.process_all_data(fills, bills, instruments, risks)
        cache.save("okx-swap", processor.get_open_position_fills())
    """

    def __init__(
        self,
        rules: VariantRules,
        config: Optional[ReconstructionConfig] = None,
    ):
        """
        Initialize processor.

        Args:
            rules: Variant rules
            config: Engine configuration
        """
        self._rules = rules
        self._config = config or ReconstructionConfig()

        self._open_builders: Dict[str, PositionBuilder] = {}
        self._last_summary: Optional[ProcessingSummary] = None

        # Per-run state
        self._instruments: Dict[str, InstrumentMetadata] = {}
        self._warned_instruments: Set[str] = set()

    @property
    def rules(self) -> VariantRules:
        return self._rules

    @property
    def config(self) -> ReconstructionConfig:
        return self._config

    @property
    def last_summary(self) -> Optional[ProcessingSummary]:
        """Summary of the last run, None before the first run."""
        return self._last_summary

    # --------------------------------------------------------
    # PUBLIC API
    # --------------------------------------------------------

    def process_all_data(
        self,
        fills: Iterable[RawFill],
        bills: Iterable[FundingBill] = (),
        instruments: Iterable[InstrumentMetadata] = (),
        position_risks: Iterable[PositionRiskSnapshot] = (),
    ) -> List[StandardizedTrade]:
        """
        Reconstruct trades from a batch.

        Args:
            fills: Fills of this variant, any order, no duplicates
            bills: Ledger records; non-funding types are ignored
            instruments: Instrument metadata
            position_risks: Current position snapshots

        Returns:
            Closed trades in close order, then open trades in
            opening order
        """
        summary = ProcessingSummary()
        self._instruments = {i.inst_id: i for i in instruments}
        self._warned_instruments = set()

        ordered = sorted(fills, key=lambda f: (parse_int(f.ts), f.trade_id or ""))

        active: Dict[str, PositionBuilder] = {}
        closed: List[StandardizedTrade] = []

        for fill in ordered:
            key = self._rules.position_key_of(fill.inst_id, fill.pos_side)
            builder = active.get(key)

            if builder is None:
                if not self._rules.is_opening_fill(fill):
                    summary.orphan_fills += 1
                    logger.debug(
                        f"Skipping orphan fill {fill.trade_id} on {key}: no open position"
                    )
                    continue
                active[key] = self._start_builder(fill)
                summary.fills_processed += 1
                continue

            summary.fills_processed += 1
            if self._rules.allows_flip and self._is_flip(builder, fill):
                summary.flips += 1
                closing, opening = self._split_flip(builder, fill)
                builder.add_fill(closing, notes=FLIP_CLOSE_NOTE)
                closed.append(builder.to_trade())
                del active[key]
                active[key] = self._start_builder(opening, notes=FLIP_OPEN_NOTE)
                continue

            builder.add_fill(fill)
            if builder.is_closed:
                closed.append(builder.to_trade())
                del active[key]

        self._open_builders = active
        open_trades = self._annotate_risk(active, position_risks)

        trades = closed + open_trades
        summary.bills_applied = self._apply_funding(trades, bills)
        for trade in trades:
            self._finalize(trade)

        summary.trades_closed = len(closed)
        summary.trades_open = len(open_trades)
        summary.missing_instruments = sorted(self._warned_instruments)
        self._last_summary = summary

        logger.info(
            f"{self._rules.name}: {summary.fills_processed} fills -> "
            f"{summary.trades_closed} closed, {summary.trades_open} open "
            f"({summary.orphan_fills} orphan, {summary.flips} flips, "
            f"{summary.bills_applied} funding bills)"
        )
        return trades

    def get_open_position_fills(self) -> List[RawFill]:
        """Fills of positions still open after the last run."""
        return [
            fill
            for builder in self._open_builders.values()
            for fill in builder.raw_fills
        ]

    # --------------------------------------------------------
    # FOLD HELPERS
    # --------------------------------------------------------

    def _contract_value(self, inst_id: str) -> float:
        default = self._config.position.default_contract_value
        if not self._rules.uses_contract_value:
            return 1.0

        instrument = self._instruments.get(inst_id)
        if instrument is None:
            if inst_id not in self._warned_instruments:
                self._warned_instruments.add(inst_id)
                logger.warning(
                    f"No instrument metadata for {inst_id}, using contract value {default}"
                )
            return default

        value = parse_float(instrument.ct_val, default)
        return value if value > 0 else default

    def _start_builder(
        self,
        fill: RawFill,
        notes: Optional[str] = None,
    ) -> PositionBuilder:
        return PositionBuilder(
            fill,
            self._rules,
            contract_value=self._contract_value(fill.inst_id),
            instrument=self._instruments.get(fill.inst_id),
            config=self._config.position,
            notes=notes,
        )

    def _is_flip(self, builder: PositionBuilder, fill: RawFill) -> bool:
        if increases_position(builder.direction, fill):
            return False
        size = fill_size(fill, self._rules, self._contract_value(fill.inst_id))
        return size > builder.state.open_size + self._config.position.size_tolerance

    def _split_flip(
        self, builder: PositionBuilder, fill: RawFill
    ) -> Tuple[RawFill, RawFill]:
        """Split an overshooting fill into (closing part, opening part)."""
        raw_size = abs(parse_float(fill.fill_sz))
        open_size = builder.state.open_size
        if self._rules.uses_contract_value:
            open_size /= self._contract_value(fill.inst_id)

        fee = parse_float(fill.fee)
        closing_fee = fee * open_size / raw_size if raw_size > 0 else 0.0

        closing = dataclasses.replace(fill, fill_sz=open_size, fee=closing_fee)
        opening = dataclasses.replace(
            fill, fill_sz=raw_size - open_size, fee=fee - closing_fee
        )
        logger.debug(
            f"Position flip on {fill.inst_id} by fill {fill.trade_id}: "
            f"close {open_size}, open {raw_size - open_size}"
        )
        return closing, opening

    # --------------------------------------------------------
    # POST-FOLD PASSES
    # --------------------------------------------------------

    def _annotate_risk(
        self,
        active: Dict[str, PositionBuilder],
        position_risks: Iterable[PositionRiskSnapshot],
    ) -> List[StandardizedTrade]:
        notionals: Dict[str, float] = {}
        for risk in position_risks:
            key = self._rules.position_key_of(risk.inst_id, risk.pos_side)
            notionals[key] = parse_float(risk.notional)

        open_trades = []
        for key, builder in active.items():
            trade = builder.to_trade()
            if key in notionals:
                trade.current_notional_value = notionals[key]
            open_trades.append(trade)
        return open_trades

    def _apply_funding(
        self,
        trades: List[StandardizedTrade],
        bills: Iterable[FundingBill],
    ) -> int:
        """Attribute funding bills to trades. Returns number of bills applied."""
        funding_types = {t.strip() for t in self._config.funding.funding_bill_types}

        bills_by_inst: Dict[str, List[FundingBill]] = defaultdict(list)
        for bill in bills:
            if (bill.type or "").strip() in funding_types:
                bills_by_inst[bill.inst_id].append(bill)

        trades_by_inst: Dict[str, List[StandardizedTrade]] = defaultdict(list)
        for trade in trades:
            trades_by_inst[trade.symbol].append(trade)

        applied = 0
        for inst_id, inst_bills in bills_by_inst.items():
            candidates = trades_by_inst.get(inst_id, [])
            inst_bills.sort(key=lambda b: (parse_int(b.ts), b.bill_id or ""))

            for bill in inst_bills:
                ts = parse_int(bill.ts)
                amount = parse_float(bill.bal_chg)
                matched = False

                for trade in candidates:
                    if ts < trade.entry_time:
                        continue
                    if not trade.is_open and ts > trade.exit_time:
                        continue

                    trade.total_funding_fee += amount
                    trade.raw_bills.append(bill)
                    if bill.bill_id:
                        trade.bill_ids.append(bill.bill_id)
                    matched = True

                    if self._rules.funding_match is FundingMatch.FIRST:
                        break

                if matched:
                    applied += 1

        return applied

    def _finalize(self, trade: StandardizedTrade) -> None:
        timeline_config = self._config.timeline
        trade.timeline = aggregate_events(
            trade.timeline,
            merge_window_ms=timeline_config.merge_window_ms,
            id_separator=timeline_config.id_separator,
            note_separator=timeline_config.note_separator,
        )
        trade.recompute_net_pnl()
        trade.pnl_percentage = (
            trade.net_pnl / trade.total_value if trade.total_value > 0 else 0.0
        )
