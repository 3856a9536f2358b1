"""
Trade Reconstruction - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the Trade Reconstruction engine.

CRITICAL CONSTRAINTS:
- Deterministic behavior for identical input
- Tolerances are fixed per run, never adaptive

ENVIRONMENT OVERRIDES (optional, via .env):
- TRADE_RECON_MERGE_WINDOW_MS
- TRADE_RECON_SIZE_TOLERANCE
- TRADE_RECON_DEFAULT_CONTRACT_VALUE
- TRADE_RECON_FUNDING_TYPES (comma separated)

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

from .parsers import parse_float, parse_int


# ============================================================
# TIMELINE CONFIGURATION
# ============================================================

@dataclass
class TimelineConfig:
    """
    Timeline aggregation configuration.
    """

    merge_window_ms: int = 60_000
    """Maximum gap between adjacent events of one merged group."""

    id_separator: str = ","
    """Separator for merged fill/order identifiers."""

    note_separator: str = "; "
    """Separator for merged notes."""


# ============================================================
# POSITION CONFIGURATION
# ============================================================

@dataclass
class PositionConfig:
    """
    Position fold configuration.
    """

    size_tolerance: float = 1e-9
    """Open size at or below this is treated as flat."""

    default_contract_value: float = 1.0
    """Contract value used when instrument metadata is missing."""


# ============================================================
# FUNDING CONFIGURATION
# ============================================================

@dataclass
class FundingConfig:
    """
    Funding reconciliation configuration.
    """

    funding_bill_types: List[str] = field(default_factory=lambda: [
        "FUNDING_FEE",  # Binance income type
        "8",            # OKX bill type
    ])
    """Bill types treated as funding settlements."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class ReconstructionConfig:
    """
    Complete engine configuration.
    """

    timeline: TimelineConfig = field(default_factory=TimelineConfig)
    position: PositionConfig = field(default_factory=PositionConfig)
    funding: FundingConfig = field(default_factory=FundingConfig)

    @classmethod
    def from_env(cls) -> "ReconstructionConfig":
        """
        Build configuration from environment variables.

        Malformed values fall back to the defaults.
        """
        load_dotenv()
        config = cls()

        config.timeline.merge_window_ms = parse_int(
            os.getenv("TRADE_RECON_MERGE_WINDOW_MS"),
            config.timeline.merge_window_ms,
        )
        config.position.size_tolerance = parse_float(
            os.getenv("TRADE_RECON_SIZE_TOLERANCE"),
            config.position.size_tolerance,
        )
        config.position.default_contract_value = parse_float(
            os.getenv("TRADE_RECON_DEFAULT_CONTRACT_VALUE"),
            config.position.default_contract_value,
        )

        funding_types = os.getenv("TRADE_RECON_FUNDING_TYPES")
        if funding_types:
            parsed = [t.strip() for t in funding_types.split(",") if t.strip()]
            if parsed:
                config.funding.funding_bill_types = parsed

        return config
