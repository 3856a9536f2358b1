"""
Trade Reconstruction - Timeline Aggregation.

============================================================
PURPOSE
============================================================
Collapses chronologically close runs of compatible execution
events into one display event.

MERGE RULES:
- Adjacent gap (to previous event of the group) < window
- Compatible actions: same action, {OPEN, ADD}, {REDUCE, CLOSE}

COLLAPSE RULES:
- price: size-weighted average
- size, fee: summed
- action: OPEN > CLOSE > first event's action
- identifiers and notes: concatenated

INVARIANTS:
- Inputs are never mutated
- Aggregation is idempotent

============================================================
"""

import dataclasses
from typing import Iterable, List, Optional, Tuple

from .types import TimelineAction, TimelineEvent


DEFAULT_MERGE_WINDOW_MS = 60_000
ID_SEPARATOR = ","
NOTE_SEPARATOR = "; "

_INCREASE = frozenset({TimelineAction.OPEN, TimelineAction.ADD})
_DECREASE = frozenset({TimelineAction.REDUCE, TimelineAction.CLOSE})


def _sort_key(event: TimelineEvent, id_separator: str) -> Tuple[int, str]:
    # Merged events carry "a,b,c"; their leading id keeps the fill order.
    leading_id = (event.trade_id or "").split(id_separator)[0]
    return event.timestamp, leading_id


def _compatible(prev: TimelineAction, current: TimelineAction) -> bool:
    if prev == current:
        return True
    if prev in _INCREASE and current in _INCREASE:
        return True
    return prev in _DECREASE and current in _DECREASE


def _join(values: Iterable[Optional[str]], separator: str, unique: bool = False) -> str:
    parts: List[str] = []
    for value in values:
        if not value:
            continue
        if unique and value in parts:
            continue
        parts.append(value)
    return separator.join(parts)


def merge_group(
    group: List[TimelineEvent],
    id_separator: str = ID_SEPARATOR,
    note_separator: str = NOTE_SEPARATOR,
) -> TimelineEvent:
    """
    Collapse a group of events into one.

    Args:
        group: Non-empty, time-ordered events
        id_separator: Separator for fill/order identifiers
        note_separator: Separator for notes

    Returns:
        Merged event (a new object; single-event groups return a copy)
    """
    first = group[0]
    if len(group) == 1:
        return dataclasses.replace(first)

    total_value = sum(e.price * e.size for e in group)
    total_size = sum(e.size for e in group)
    total_fee = sum(e.fee or 0.0 for e in group)

    actions = {e.action for e in group}
    if TimelineAction.OPEN in actions:
        action = TimelineAction.OPEN
    elif TimelineAction.CLOSE in actions:
        action = TimelineAction.CLOSE
    else:
        action = first.action

    notes = _join((e.notes for e in group), note_separator)

    return dataclasses.replace(
        first,
        action=action,
        price=total_value / total_size if total_size > 0 else 0.0,
        size=total_size,
        fee=total_fee,
        trade_id=_join((e.trade_id for e in group), id_separator),
        order_id=_join(
            (oid for e in group for oid in (e.order_id or "").split(id_separator)),
            id_separator,
            unique=True,
        ),
        notes=notes or None,
    )


def aggregate_events(
    events: Iterable[TimelineEvent],
    merge_window_ms: int = DEFAULT_MERGE_WINDOW_MS,
    id_separator: str = ID_SEPARATOR,
    note_separator: str = NOTE_SEPARATOR,
) -> List[TimelineEvent]:
    """
    Aggregate timeline events.

    Args:
        events: Events in any order
        merge_window_ms: Maximum gap between adjacent events of a group
        id_separator: Separator for merged identifiers
        note_separator: Separator for merged notes

    Returns:
        New list of aggregated events in time order
    """
    ordered = sorted(events, key=lambda e: _sort_key(e, id_separator))
    if not ordered:
        return []

    aggregated: List[TimelineEvent] = []
    group: List[TimelineEvent] = [ordered[0]]

    for current in ordered[1:]:
        prev = group[-1]
        within_window = (current.timestamp - prev.timestamp) < merge_window_ms

        if within_window and _compatible(prev.action, current.action):
            group.append(current)
        else:
            aggregated.append(merge_group(group, id_separator, note_separator))
            group = [current]

    aggregated.append(merge_group(group, id_separator, note_separator))
    return aggregated
