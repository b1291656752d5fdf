"""
Activity log index: context -> user -> event kind -> first record + timestamps.

Built once per analysable scope from the event log source and never
updated afterwards.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .exceptions import ConfigurationError
from .models import ActivityInstance, Event, TimeWindow, WRITE_CRUD

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogEntry:
    """All occurrences of one event kind by one user in one context."""

    record: Dict
    crud: str
    timestamps: Tuple[int, ...]  # newest first

    @property
    def is_write(self) -> bool:
        return self.crud in WRITE_CRUD

    def any_after(self, after: int) -> bool:
        # Newest first, so the first timestamp decides.
        return bool(self.timestamps) and self.timestamps[0] > after


class LogIndex:
    def __init__(self, entries: Optional[Dict] = None, window: Optional[TimeWindow] = None):
        self._entries: Dict = entries or {}
        self.window = window

    def __len__(self) -> int:
        return len(self._entries)

    def contexts(self) -> List:
        return list(self._entries)

    def has_context(self, context_id) -> bool:
        return bool(self._entries.get(context_id))

    def users(self, context_id) -> List:
        return list(self._entries.get(context_id, {}))

    def has_user(self, context_id, user_id) -> bool:
        return bool(self._entries.get(context_id, {}).get(user_id))

    def kinds(self, context_id, user_id) -> Dict[str, LogEntry]:
        return self._entries.get(context_id, {}).get(user_id, {})

    def entry(self, context_id, user_id, kind: str) -> Optional[LogEntry]:
        return self.kinds(context_id, user_id).get(kind)

    def timestamps(self, context_id, user_id, kind: str) -> Tuple[int, ...]:
        entry = self.entry(context_id, user_id, kind)
        return entry.timestamps if entry else ()


def _py(value):
    """numpy scalar -> python scalar, leave everything else alone."""
    return value.item() if hasattr(value, "item") else value


def _events_df(events: List[Event]) -> pd.DataFrame:
    rows = [
        {
            "pos": pos,
            "context_id": e.context_id,
            "user_id": e.user_id,
            "kind": e.kind,
            "timestamp": int(e.timestamp),
        }
        for pos, e in enumerate(events)
    ]
    return pd.DataFrame(rows)


def build_log_index(
    source,
    activities: Iterable[ActivityInstance],
    window: TimeWindow,
) -> LogIndex:
    """
    Read the events of ``activities`` within ``window`` and index them.

    Only the first occurrence of each (context, user, kind) is kept, stripped
    of volatile fields, together with every occurrence timestamp.
    """
    if source is None:
        raise ConfigurationError("No log store available")

    context_ids = sorted({a.context_id for a in activities}, key=str)
    if not context_ids:
        return LogIndex({}, window)

    events = list(source.query_events(context_ids, window.start, window.end))
    logger.info(f"Fetched {len(events):,} events for {len(context_ids)} contexts")
    if not events:
        return LogIndex({}, window)

    df = _events_df(events)
    mask = df["context_id"].isin(context_ids)
    if window.start is not None:
        mask &= df["timestamp"] > window.start
    if window.end is not None:
        mask &= df["timestamp"] <= window.end
    df = df[mask].sort_values("timestamp", kind="stable")

    entries: Dict = {}
    for (context_id, user_id, kind), group in df.groupby(["context_id", "user_id", "kind"], sort=False):
        first = events[int(group["pos"].iloc[0])]
        timestamps = tuple(sorted((int(t) for t in group["timestamp"]), reverse=True))
        users = entries.setdefault(_py(context_id), {})
        users.setdefault(_py(user_id), {})[kind] = LogEntry(
            record=first.normalized(),
            crud=first.crud,
            timestamps=timestamps,
        )

    logger.info(f"Log index built: {len(entries)} contexts, {len(df):,} events in window")
    return LogIndex(entries, window)
