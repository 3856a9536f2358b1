"""
Trade Reconstruction - Exchange Payload Normalizers.

============================================================
PURPOSE
============================================================
Convert decoded exchange REST payloads (dicts) into domain
records. No network I/O happens here.

SUPPORTED PAYLOADS:
- OKX V5: /trade/fills-history, /account/bills-archive,
  /public/instruments, /account/positions
- Binance: fapi/dapi userTrades, api myTrades (spot, margin),
  income, exchangeInfo symbols, positionRisk

CONVENTIONS:
- Numeric fields are passed through as received
- Fee is a cost (positive when paid). OKX reports fees
  negative when paid, so its sign is flipped here.
- Payloads missing the instrument id are dropped (None)

============================================================
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from .parsers import parse_float
from .types import ContractType, FundingBill, InstrumentMetadata, PositionRiskSnapshot, RawFill


logger = logging.getLogger(__name__)

T = TypeVar("T")

Payload = Dict[str, Any]


def _text(payload: Payload, key: str) -> str:
    value = payload.get(key)
    return "" if value is None else str(value)


def normalize_many(
    payloads: Iterable[Payload],
    fn: Callable[[Payload], Optional[T]],
) -> List[T]:
    """Apply a normalizer to many payloads, dropping rejected ones."""
    records: List[T] = []
    dropped = 0
    for payload in payloads:
        record = fn(payload)
        if record is None:
            dropped += 1
            continue
        records.append(record)

    if dropped:
        logger.debug(f"{fn.__name__}: dropped {dropped} malformed payloads")
    return records


_QUOTE_SUFFIXES = ("USDT", "USDC", "BUSD", "USD")


def base_asset_of(inst_id: str) -> str:
    """
    Base asset from an instrument id.

    BTC-USD-SWAP -> BTC, BTCUSD_PERP -> BTC, ETHUSD_240628 -> ETH
    """
    if "-" in inst_id:
        return inst_id.split("-")[0]

    symbol = inst_id.split("_")[0]
    for quote in _QUOTE_SUFFIXES:
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[:-len(quote)]
    return symbol


# ============================================================
# OKX
# ============================================================

def okx_fill_to_raw(payload: Payload) -> Optional[RawFill]:
    """OKX fill -> RawFill."""
    inst_id = _text(payload, "instId")
    if not inst_id:
        return None

    fee = -parse_float(payload.get("fee")) or 0.0

    return RawFill(
        inst_id=inst_id,
        side=_text(payload, "side").lower(),
        pos_side=_text(payload, "posSide").lower(),
        fill_px=payload.get("fillPx"),
        fill_sz=payload.get("fillSz"),
        fee=fee,
        fee_ccy=_text(payload, "feeCcy"),
        ts=payload.get("ts"),
        trade_id=_text(payload, "tradeId"),
        ord_id=_text(payload, "ordId"),
    )


def okx_bill_to_funding(payload: Payload) -> Optional[FundingBill]:
    """OKX account bill -> FundingBill."""
    inst_id = _text(payload, "instId")
    if not inst_id:
        return None

    return FundingBill(
        inst_id=inst_id,
        bal_chg=payload.get("balChg"),
        ts=payload.get("ts"),
        type=_text(payload, "type"),
        ccy=_text(payload, "ccy"),
        bill_id=_text(payload, "billId"),
    )


def okx_instrument_to_metadata(payload: Payload) -> Optional[InstrumentMetadata]:
    """
    OKX instrument -> InstrumentMetadata.

    SWAP instruments leave baseCcy/quoteCcy empty; they are taken
    from the underlying (BTC-USD) or the instrument id instead.
    """
    inst_id = _text(payload, "instId")
    if not inst_id:
        return None

    underlying = _text(payload, "uly") or inst_id
    parts = underlying.split("-")

    return InstrumentMetadata(
        inst_id=inst_id,
        ct_val=payload.get("ctVal"),
        ct_type=_text(payload, "ctType").lower(),
        base_ccy=_text(payload, "baseCcy") or base_asset_of(underlying),
        quote_ccy=_text(payload, "quoteCcy") or (parts[1] if len(parts) > 1 else ""),
    )


def okx_position_to_risk(payload: Payload) -> Optional[PositionRiskSnapshot]:
    """OKX position -> PositionRiskSnapshot (USD notional)."""
    inst_id = _text(payload, "instId")
    if not inst_id:
        return None

    return PositionRiskSnapshot(
        inst_id=inst_id,
        pos_side=_text(payload, "posSide").lower(),
        notional=payload.get("notionalUsd"),
    )


# ============================================================
# BINANCE
# ============================================================

def binance_trade_to_raw(payload: Payload) -> Optional[RawFill]:
    """Binance futures userTrades entry -> RawFill."""
    symbol = _text(payload, "symbol")
    if not symbol:
        return None

    return RawFill(
        inst_id=symbol,
        side=_text(payload, "side").lower(),
        pos_side=_text(payload, "positionSide").lower(),
        fill_px=payload.get("price"),
        fill_sz=payload.get("qty"),
        fee=payload.get("commission"),
        fee_ccy=_text(payload, "commissionAsset"),
        ts=payload.get("time"),
        trade_id=_text(payload, "id"),
        ord_id=_text(payload, "orderId"),
    )


def binance_spot_trade_to_raw(payload: Payload) -> Optional[RawFill]:
    """Binance spot / margin myTrades entry -> RawFill."""
    symbol = _text(payload, "symbol")
    if not symbol:
        return None

    return RawFill(
        inst_id=symbol,
        side="buy" if payload.get("isBuyer") else "sell",
        pos_side="",
        fill_px=payload.get("price"),
        fill_sz=payload.get("qty"),
        fee=payload.get("commission"),
        fee_ccy=_text(payload, "commissionAsset"),
        ts=payload.get("time"),
        trade_id=_text(payload, "id"),
        ord_id=_text(payload, "orderId"),
    )


def binance_income_to_funding(payload: Payload) -> Optional[FundingBill]:
    """Binance income history entry -> FundingBill."""
    symbol = _text(payload, "symbol")
    if not symbol:
        return None

    return FundingBill(
        inst_id=symbol,
        bal_chg=payload.get("income"),
        ts=payload.get("time"),
        type=_text(payload, "incomeType"),
        ccy=_text(payload, "asset"),
        bill_id=_text(payload, "tranId"),
    )


def binance_symbol_to_metadata(payload: Payload) -> Optional[InstrumentMetadata]:
    """
    Binance exchangeInfo symbol -> InstrumentMetadata.

    COIN-M symbols carry contractSize. USDT-M symbols do not; their
    contract value is 1. Anything else is undeterminable (None).
    """
    symbol = _text(payload, "symbol")
    if not symbol:
        return None

    base = _text(payload, "baseAsset")
    quote = _text(payload, "quoteAsset")
    margin_asset = _text(payload, "marginAsset")

    ct_val = payload.get("contractSize")
    if ct_val is None:
        if margin_asset != "USDT":
            logger.debug(f"Cannot determine contract value for {symbol}")
            return None
        ct_val = "1"

    if margin_asset and margin_asset == base:
        ct_type = ContractType.INVERSE.value
    elif margin_asset and margin_asset == quote:
        ct_type = ContractType.LINEAR.value
    else:
        ct_type = ""

    return InstrumentMetadata(
        inst_id=symbol,
        ct_val=ct_val,
        ct_type=ct_type,
        base_ccy=base,
        quote_ccy=quote,
    )


def binance_position_risk_to_snapshot(payload: Payload) -> Optional[PositionRiskSnapshot]:
    """Binance positionRisk entry -> PositionRiskSnapshot."""
    symbol = _text(payload, "symbol")
    if not symbol:
        return None

    return PositionRiskSnapshot(
        inst_id=symbol,
        pos_side=_text(payload, "positionSide").lower(),
        notional=payload.get("notional"),
    )
