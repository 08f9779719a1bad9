"""Raw transducer heights -> height, outflow, storage and inflow records.

Each step is a pure function of one sample; inflow is a pairwise scan that
carries the previous record forward:

    I_t = (S_t - S_{t-1}) / (t - t_{t-1}) + (Q_t + Q_{t-1}) / 2

with S the storage scaled by 60/1000 and t in seconds, so both terms are in
L/min. The input must already be sorted by timestamp; order is only checked
when ``check_order=True``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Sequence, Tuple
import logging
import math

import numpy as np
import pandas as pd

from .errors import DegenerateIntervalError, InvalidInputError
from .geometry import storage_cm3, storage_lpm
from .rating import RatingCurve

logger = logging.getLogger(__name__)

FRAME_COLUMNS = ["time", "elapsed_s", "h_cm", "Q_Lmin", "S_cm3", "S_Lmin", "I_Lmin"]


@dataclass(frozen=True)
class TimeSample:
    timestamp: Any          # datetime / pandas.Timestamp, or seconds as a number
    raw_height_mm: float


@dataclass(frozen=True)
class DerivedRecord:
    timestamp: Any
    elapsed_s: float        # seconds since the first sample
    height_cm: float        # above the slot bottom
    discharge_lpm: float
    storage_cm3: float
    storage_lpm: float
    inflow_lpm: float       # NaN for the first record (no predecessor)


def seconds_between(earlier, later) -> float:
    """Elapsed seconds from ``earlier`` to ``later`` for datetimes or plain numbers."""
    delta = later - earlier
    if isinstance(delta, np.timedelta64):
        return float(delta / np.timedelta64(1, "s"))
    if hasattr(delta, "total_seconds"):
        return float(delta.total_seconds())
    return float(delta)


def height_above_slot(raw_height_mm: float, baseline_height_cm: float) -> float:
    """Transducer reading [mm] -> water height above the slot bottom [cm]."""
    return float(raw_height_mm) / 10.0 - baseline_height_cm


def inflow_between(prev: DerivedRecord, cur: DerivedRecord, dt_s: float) -> float:
    """Storage change rate plus the mean of the two outflows [L/min]."""
    return (cur.storage_lpm - prev.storage_lpm) / dt_s + (cur.discharge_lpm + prev.discharge_lpm) / 2.0


def derive_record(
    sample: TimeSample,
    elapsed_s: float,
    baseline_height_cm: float,
    rating_curve: RatingCurve,
    tube_diameter_cm: float,
) -> DerivedRecord:
    """Per-sample columns; inflow is left missing for the scan to fill in."""
    h = height_above_slot(sample.raw_height_mm, baseline_height_cm)
    return DerivedRecord(
        timestamp=sample.timestamp,
        elapsed_s=elapsed_s,
        height_cm=h,
        discharge_lpm=rating_curve.evaluate(h),
        storage_cm3=storage_cm3(h, tube_diameter_cm),
        storage_lpm=storage_lpm(h, tube_diameter_cm),
        inflow_lpm=math.nan,
    )


def transform(
    series: Iterable[TimeSample],
    baseline_height_cm: float,
    rating_curve: RatingCurve,
    tube_diameter_cm: float,
    *,
    check_order: bool = False,
) -> Tuple[DerivedRecord, ...]:
    """Derive height, discharge, storage and inflow for an ordered series.

    Aborts on the first failing record: ``DegenerateIntervalError`` for a
    repeated timestamp, ``InvalidInputError`` for an empty series, a
    non-positive tube diameter, or (with ``check_order``) a timestamp that
    goes backwards.
    """
    series = tuple(series)
    if not series:
        raise InvalidInputError("Time series is empty")
    if not (math.isfinite(tube_diameter_cm) and tube_diameter_cm > 0):
        raise InvalidInputError(f"Tube diameter must be > 0 cm, got {tube_diameter_cm}")
    if not math.isfinite(baseline_height_cm):
        raise InvalidInputError(f"Baseline height must be finite, got {baseline_height_cm}")

    t0 = series[0].timestamp
    records: List[DerivedRecord] = []
    prev: DerivedRecord | None = None
    for i, sample in enumerate(series):
        rec = derive_record(
            sample,
            seconds_between(t0, sample.timestamp),
            baseline_height_cm,
            rating_curve,
            tube_diameter_cm,
        )
        if prev is not None:
            dt_s = seconds_between(prev.timestamp, sample.timestamp)
            if dt_s == 0.0:
                raise DegenerateIntervalError(i, sample.timestamp)
            if check_order and dt_s < 0.0:
                raise InvalidInputError(
                    f"Timestamps out of order at record {i}: {sample.timestamp} precedes {prev.timestamp}"
                )
            rec = replace(rec, inflow_lpm=inflow_between(prev, rec, dt_s))
        records.append(rec)
        prev = rec
    logger.debug("Derived %d records spanning %.1f s", len(records), records[-1].elapsed_s)
    return tuple(records)


def records_to_frame(records: Sequence[DerivedRecord]) -> pd.DataFrame:
    """Tabular view of derived records for export and plotting."""
    return pd.DataFrame(
        {
            "time": [r.timestamp for r in records],
            "elapsed_s": [r.elapsed_s for r in records],
            "h_cm": [r.height_cm for r in records],
            "Q_Lmin": [r.discharge_lpm for r in records],
            "S_cm3": [r.storage_cm3 for r in records],
            "S_Lmin": [r.storage_lpm for r in records],
            "I_Lmin": [r.inflow_lpm for r in records],
        },
        columns=FRAME_COLUMNS,
    )


__all__ = [
    "TimeSample",
    "DerivedRecord",
    "FRAME_COLUMNS",
    "seconds_between",
    "height_above_slot",
    "inflow_between",
    "derive_record",
    "transform",
    "records_to_frame",
]
