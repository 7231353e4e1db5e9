"""
Offline change replay.

Applies the change query's semantics to version rows already held in a
pandas DataFrame (for example an export of a temporal table's history):

- LAG of every tracked column per key, ordered by the period start
- unpivot into (key, label, old, new, time) rows
- keep rows where old and new differ, null-aware (None vs None is unchanged)
- drop each key's first version unless initial versions are requested
- mask or blank values, then order by time

Values are rendered as text with str(); bit values become "1"/"0". Text
forms of dates and floats can differ from SQL Server's CAST output.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import pandas as pd

from temporal_changes.dispatcher import ChangePlan
from temporal_changes.errors import ValidationError
from temporal_changes.models import ColumnInfo, SortOrder
from temporal_changes.synthesizer import MASK_MARKER, UNKNOWN_MARKER

logger = logging.getLogger(__name__)

_ROW = "__row"
_ORDINAL = "__ordinal"
_VERSION = "__version"


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, (list, tuple, dict)) and pd.isna(value):
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _key_values(plan: ChangePlan, key_columns: List[ColumnInfo]) -> Optional[List[str]]:
    value = plan.request.primary_key_value
    if value is None:
        return None
    if isinstance(value, list):
        values = value
    elif len(key_columns) > 1:
        values = [v.strip() for v in value.split(",")]
    else:
        values = [value]
    if len(values) != len(key_columns):
        raise ValidationError(
            f"Expected {len(key_columns)} primary key values, got {len(values)}"
        )
    return values


def changes_from_versions(versions: pd.DataFrame, plan: ChangePlan) -> pd.DataFrame:
    """
    Compute the change report for a frame of version rows.

    Args:
        versions: One row per version, columns named like the table's columns.
            A column named after the request's changed_by_value_column, if
            present, supplies the per-version attribution value.
        plan: Plan produced by plan_changes() for the same table

    Returns:
        DataFrame with the plan's result headers as columns
    """
    request = plan.request
    labels = request.labels
    primary = plan.tree.primary
    own = [c for c in plan.columns if c.table_id == primary.table_id]
    key_columns = [c for c in own if c.is_primary_key]
    period_start = next(c for c in own if c.is_period_start)
    tracked = plan.tracked_columns
    key_names = [c.name for c in key_columns]

    missing = [c.name for c in key_columns + [period_start] + tracked if c.name not in versions.columns]
    if missing:
        raise ValidationError(f"Version rows are missing columns: {', '.join(missing)}")

    work = versions.copy()
    values = _key_values(plan, key_columns)
    if values is not None:
        mask = pd.Series(True, index=work.index)
        for name, value in zip(key_names, values):
            mask &= work[name].map(_to_text) == value
        work = work[mask]

    headers = plan.headers
    if work.empty or not tracked:
        return pd.DataFrame(columns=headers)

    work = work.sort_values(key_names + [period_start.name], kind="mergesort").reset_index(drop=True)
    work[_VERSION] = work.groupby(key_names, sort=False).cumcount() + 1

    if len(key_names) == 1:
        key_series = work[key_names[0]]
    else:
        key_series = work[key_names].apply(
            lambda row: ", ".join(_to_text(v) or "" for v in row), axis=1
        )

    has_changed_by = request.has_changed_by
    if has_changed_by and request.changed_by_value_column in work.columns:
        changed_by = work[request.changed_by_value_column].map(_to_text)
    else:
        changed_by = pd.Series([None] * len(work), index=work.index, dtype=object)

    partition = [work[name] for name in key_names]
    frames = []
    for ordinal, column in enumerate(tracked):
        # Compare as text, as the query does after CAST
        new_text = work[column.name].map(_to_text).astype(object)
        old_text = new_text.groupby(partition, sort=False).shift(1).map(_to_text).astype(object)
        frames.append(pd.DataFrame({
            labels.key: key_series,
            labels.column: column.label,
            labels.old_value: old_text,
            labels.new_value: new_text,
            labels.changed_by: changed_by,
            labels.changed_time: work[period_start.name],
            _VERSION: work[_VERSION],
            _ROW: work.index,
            _ORDINAL: ordinal,
        }))

    long = pd.concat(frames, ignore_index=True)
    old_null = long[labels.old_value].isna()
    new_null = long[labels.new_value].isna()
    differs = (old_null ^ new_null) | (
        ~old_null & ~new_null & (long[labels.old_value] != long[labels.new_value])
    )
    if not request.include_initial_versions:
        differs &= long[_VERSION] > 1
    long = long[differs].copy()

    masked = {c.label for c in own if c.is_masked}
    for label in (labels.old_value, labels.new_value):
        if masked:
            long[label] = long[label].where(~long[labels.column].isin(masked), MASK_MARKER)
        else:
            long[label] = long[label].fillna("")
    if has_changed_by:
        long[labels.changed_by] = long[labels.changed_by].fillna(UNKNOWN_MARKER)

    ascending = SortOrder.parse(request.order) == SortOrder.ASC
    long = long.sort_values([_ROW, _ORDINAL], kind="mergesort")
    long = long.sort_values(labels.changed_time, ascending=ascending, kind="mergesort")

    logger.debug(f"Replayed {len(work)} versions into {len(long)} changes")
    return long[headers].reset_index(drop=True)
