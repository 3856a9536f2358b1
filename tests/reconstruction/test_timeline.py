"""
Tests for timeline event aggregation.
"""

import pytest

from trade_reconstruction.timeline import aggregate_events, merge_group
from trade_reconstruction.types import TimelineAction, TimelineEvent


# =============================================================
# FIXTURES
# =============================================================

def event(ts, action, size, price, fee=0.0, trade_id="", order_id="", notes=None):
    return TimelineEvent(
        timestamp=ts,
        action=action,
        size=size,
        price=price,
        fee=fee,
        fee_ccy="USDT",
        trade_id=trade_id,
        order_id=order_id,
        notes=notes,
    )


@pytest.fixture
def entry_burst():
    """Three fills of one entry order within a few seconds."""
    return [
        event(1_000, TimelineAction.OPEN, 1.0, 100.0, fee=0.1, trade_id="t1", order_id="o1"),
        event(2_000, TimelineAction.ADD, 1.0, 110.0, fee=0.1, trade_id="t2", order_id="o1"),
        event(3_000, TimelineAction.ADD, 2.0, 120.0, fee=0.2, trade_id="t3", order_id="o2"),
    ]


# =============================================================
# TEST: Merging
# =============================================================

class TestAggregateEvents:
    """Test aggregate_events()."""

    def test_empty(self):
        assert aggregate_events([]) == []

    def test_single_event_passes_through(self):
        original = event(1_000, TimelineAction.OPEN, 1.0, 100.0, trade_id="t1")
        result = aggregate_events([original])

        assert result == [original]
        assert result[0] is not original

    def test_burst_collapses(self, entry_burst):
        """Compatible events inside the window become one event."""
        result = aggregate_events(entry_burst)

        assert len(result) == 1
        merged = result[0]
        assert merged.action == TimelineAction.OPEN
        assert merged.timestamp == 1_000
        assert merged.size == pytest.approx(4.0)
        assert merged.price == pytest.approx((100 + 110 + 240) / 4.0)
        assert merged.fee == pytest.approx(0.4)
        assert merged.trade_id == "t1,t2,t3"
        assert merged.order_id == "o1,o2"
        assert merged.fee_ccy == "USDT"

    def test_gap_splits_groups(self):
        """Gap equal to the window is not merged."""
        events = [
            event(0, TimelineAction.OPEN, 1.0, 100.0, trade_id="t1"),
            event(60_000, TimelineAction.ADD, 1.0, 100.0, trade_id="t2"),
        ]
        assert len(aggregate_events(events)) == 2

    def test_window_is_chained(self):
        """Gap is measured to the previous event, not the group start."""
        events = [
            event(0, TimelineAction.OPEN, 1.0, 100.0, trade_id="t1"),
            event(50_000, TimelineAction.ADD, 1.0, 100.0, trade_id="t2"),
            event(100_000, TimelineAction.ADD, 1.0, 100.0, trade_id="t3"),
        ]
        assert len(aggregate_events(events)) == 1

    def test_incompatible_actions_not_merged(self):
        events = [
            event(0, TimelineAction.ADD, 1.0, 100.0, trade_id="t1"),
            event(1_000, TimelineAction.REDUCE, 1.0, 101.0, trade_id="t2"),
        ]
        result = aggregate_events(events)

        assert [e.action for e in result] == [TimelineAction.ADD, TimelineAction.REDUCE]

    def test_reduce_and_close_merge_to_close(self):
        events = [
            event(0, TimelineAction.REDUCE, 1.0, 100.0, trade_id="t1"),
            event(1_000, TimelineAction.CLOSE, 1.0, 102.0, trade_id="t2"),
        ]
        result = aggregate_events(events)

        assert len(result) == 1
        assert result[0].action == TimelineAction.CLOSE
        assert result[0].price == pytest.approx(101.0)

    def test_unsorted_input(self, entry_burst):
        """Input order does not matter."""
        shuffled = [entry_burst[2], entry_burst[0], entry_burst[1]]
        assert aggregate_events(shuffled) == aggregate_events(entry_burst)

    def test_inputs_not_mutated(self, entry_burst):
        before = [(e.size, e.price, e.trade_id, e.action) for e in entry_burst]
        aggregate_events(entry_burst)
        after = [(e.size, e.price, e.trade_id, e.action) for e in entry_burst]

        assert before == after

    def test_idempotent(self, entry_burst):
        """Aggregating twice equals aggregating once."""
        events = entry_burst + [
            event(200_000, TimelineAction.REDUCE, 1.0, 130.0, trade_id="t4", order_id="o3"),
            event(201_000, TimelineAction.CLOSE, 3.0, 131.0, trade_id="t5", order_id="o3"),
        ]
        once = aggregate_events(events)
        twice = aggregate_events(once)

        assert twice == once

    def test_custom_window(self, entry_burst):
        assert len(aggregate_events(entry_burst, merge_window_ms=500)) == 3


# =============================================================
# TEST: merge_group
# =============================================================

class TestMergeGroup:
    """Test merge_group()."""

    def test_zero_size_price(self):
        group = [
            event(0, TimelineAction.ADD, 0.0, 100.0),
            event(1, TimelineAction.ADD, 0.0, 200.0),
        ]
        assert merge_group(group).price == 0.0

    def test_notes_joined(self):
        group = [
            event(0, TimelineAction.REDUCE, 1.0, 100.0, notes="first"),
            event(1, TimelineAction.REDUCE, 1.0, 100.0),
            event(2, TimelineAction.REDUCE, 1.0, 100.0, notes="second"),
        ]
        assert merge_group(group).notes == "first; second"

    def test_notes_none_when_empty(self):
        group = [
            event(0, TimelineAction.ADD, 1.0, 100.0),
            event(1, TimelineAction.ADD, 1.0, 100.0),
        ]
        assert merge_group(group).notes is None

    def test_open_wins(self):
        group = [
            event(0, TimelineAction.ADD, 1.0, 100.0),
            event(1, TimelineAction.OPEN, 1.0, 100.0),
        ]
        assert merge_group(group).action == TimelineAction.OPEN
