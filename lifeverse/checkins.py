"""
Checkin history and its dense daily representation.

Checkins arrive on irregular calendar days. Training needs one row per day, so
:func:`to_dense_series` buckets checkins by UTC day (the last value of a
metric within a day wins), spans every day between the first and last
checkin, and forward-fills days without a checkin. Metrics that were never
observed before a given day fall back to their default value.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .metrics import DEFAULT_METRIC_VALUES, METRIC_IDS, get_metric

DAY_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class CheckinRecord:
    """One observation: epoch-millisecond UTC timestamp plus metric values."""

    ts: int
    values: Mapping[str, float] = field(default_factory=dict)

    def __getitem__(self, metric_id: str) -> float:
        return self.values[metric_id]

    def get(self, metric_id: str, default: Optional[float] = None) -> Optional[float]:
        return self.values.get(metric_id, default)


def day_start(ts: int) -> int:
    """Floor an epoch-millisecond timestamp to the start of its UTC day."""
    return (int(ts) // DAY_MS) * DAY_MS


def checkins_to_frame(checkins: Iterable[CheckinRecord], metric_ids: Sequence[str] = METRIC_IDS) -> pd.DataFrame:
    """Tabulate checkins with a ``ts`` column and one column per metric."""
    rows = []
    for record in checkins:
        row: Dict[str, float] = {"ts": int(record.ts)}
        for metric_id in metric_ids:
            value = record.get(metric_id)
            row[metric_id] = np.nan if value is None else float(value)
        rows.append(row)
    return pd.DataFrame(rows, columns=["ts", *metric_ids])


def checkins_from_frame(frame: pd.DataFrame, ts_column: str = "ts") -> List[CheckinRecord]:
    """Inverse of :func:`checkins_to_frame`; NaN cells become missing values.

    ``ts_column`` may hold epoch milliseconds or datetimes/ISO strings.
    """
    if ts_column not in frame.columns:
        raise KeyError(f"Checkin table has no '{ts_column}' column.")
    metric_columns = [column for column in frame.columns if column != ts_column]
    for column in metric_columns:
        get_metric(column)
    ts_values = frame[ts_column]
    if not pd.api.types.is_numeric_dtype(ts_values):
        parsed = pd.to_datetime(ts_values, utc=True)
        ts_values = (parsed - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1)
    records: List[CheckinRecord] = []
    for ts, (_, row) in zip(ts_values, frame[metric_columns].iterrows()):
        values = {column: float(row[column]) for column in metric_columns if pd.notna(row[column])}
        records.append(CheckinRecord(ts=int(ts), values=values))
    return records


def load_checkins_csv(path: str | os.PathLike[str], ts_column: str = "ts") -> List[CheckinRecord]:
    """Load a checkin history from a CSV file with a timestamp column."""
    frame = pd.read_csv(path)
    return checkins_from_frame(frame, ts_column=ts_column)


def to_dense_series(checkins: Iterable[CheckinRecord], metric_ids: Sequence[str] = METRIC_IDS) -> pd.DataFrame:
    """One forward-filled row per UTC day spanning the observed range.

    The index holds the day start in epoch milliseconds. An empty history
    yields an empty frame with the metric columns.
    """
    frame = checkins_to_frame(checkins, metric_ids)
    if frame.empty:
        return pd.DataFrame(columns=list(metric_ids), dtype=float)
    frame = frame.sort_values("ts", kind="mergesort")
    frame["day"] = frame["ts"].map(day_start)
    per_day = frame.groupby("day", sort=True)[list(metric_ids)].last()
    all_days = np.arange(per_day.index.min(), per_day.index.max() + DAY_MS, DAY_MS, dtype=np.int64)
    dense = per_day.reindex(all_days).ffill()
    dense = dense.fillna({metric_id: DEFAULT_METRIC_VALUES.get(metric_id, 0.0) for metric_id in metric_ids})
    dense.index.name = "day"
    return dense.astype(float)


def slice_series(series: pd.DataFrame, days: int) -> pd.DataFrame:
    """Keep only the trailing ``days`` rows."""
    if days >= len(series):
        return series
    return series.iloc[len(series) - days:]
