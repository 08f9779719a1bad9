from __future__ import annotations
from pathlib import Path
from typing import Tuple
import logging
import pandas as pd

from .errors import InvalidInputError
from .rating import CalibrationSample
from .series import TimeSample

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = (".xls", ".xlsx", ".xlsm")
CALIBRATION_COLS = ["h0_mm", "hraw_mm", "Q_Lmin"]
TIMESERIES_COLS = ["time", "hraw_mm"]
EXCEL_SERIAL_RANGE = (20000.0, 80000.0)


def read_table(path: Path, *, skip: int, ncols: int, sheet=0) -> pd.DataFrame:
    """First ``ncols`` columns of a workbook sheet or CSV, ``skip`` leading rows dropped."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input table not found: {path}")
    if path.suffix.lower() in EXCEL_SUFFIXES:
        try:
            raw = pd.read_excel(path, sheet_name=sheet, header=None, skiprows=skip)
        except ImportError as exc:  # pragma: no cover - depends on optional engines
            raise ImportError(f"Unable to open workbook {path.name}. For .xls files install 'xlrd'.") from exc
    else:
        raw = pd.read_csv(path, header=None, skiprows=skip)
    if raw.shape[1] < ncols:
        raise InvalidInputError(f"{path.name}: expected at least {ncols} columns, found {raw.shape[1]}")
    out = raw.iloc[:, :ncols].copy()
    # blank spreadsheet rows carry no measurement
    return out.dropna(how="all").reset_index(drop=True)


def _report_dropped(path: Path, kind: str, n: int) -> None:
    if n:
        logger.warning("%s: dropped %d %s row(s) with missing or non-numeric cells", Path(path).name, n, kind)


def _looks_like_day_serials(t: pd.Series) -> bool:
    # 1954-10-03 .. 2119-01-10 as days since 1899-12-30, with a time-of-day part
    t = t.dropna()
    if t.empty:
        return False
    in_range = t.between(EXCEL_SERIAL_RANGE[0], EXCEL_SERIAL_RANGE[1]).all()
    return bool(in_range and (t % 1 != 0).any())


def load_calibration(path: Path, sheet=0, skip: int = 1) -> Tuple[CalibrationSample, ...]:
    """Calibration table: baseline height [mm], raw height [mm], discharge [L/min]."""
    df = read_table(path, skip=skip, ncols=len(CALIBRATION_COLS), sheet=sheet)
    df.columns = CALIBRATION_COLS
    for c in CALIBRATION_COLS:
        df[c] = pd.to_numeric(df[c], errors="coerce")
    ok = df.notna().all(axis=1)
    _report_dropped(path, "calibration", int((~ok).sum()))
    df = df[ok]
    logger.info("Loaded %d calibration samples from %s", len(df), Path(path).name)
    return tuple(
        CalibrationSample(float(r.h0_mm), float(r.hraw_mm), float(r.Q_Lmin))
        for r in df.itertuples(index=False)
    )


def load_timeseries(path: Path, sheet=0, skip: int = 3) -> Tuple[TimeSample, ...]:
    """Logger export: timestamp and raw height [mm]; trailing columns are ignored.

    Numeric time columns are taken as seconds; anything else is parsed as a
    date-time. Date cells stored without a date format come through as Excel
    day serials, not seconds; those are left as-is with a WARNING, so format
    the column as a date in the workbook. Rows are returned in file order,
    unsorted.
    """
    df = read_table(path, skip=skip, ncols=len(TIMESERIES_COLS), sheet=sheet)
    df.columns = TIMESERIES_COLS
    if pd.api.types.is_numeric_dtype(df["time"]):
        df["time"] = pd.to_numeric(df["time"], errors="coerce")
        if _looks_like_day_serials(df["time"]):
            logger.warning(
                "%s: numeric time column looks like Excel date serials (days), "
                "but is read as seconds", Path(path).name,
            )
    else:
        df["time"] = pd.to_datetime(df["time"], errors="coerce")
    df["hraw_mm"] = pd.to_numeric(df["hraw_mm"], errors="coerce")
    ok = df["time"].notna() & df["hraw_mm"].notna()
    _report_dropped(path, "time-series", int((~ok).sum()))
    df = df[ok]
    logger.info("Loaded %d time samples from %s", len(df), Path(path).name)
    return tuple(
        TimeSample(timestamp=t, raw_height_mm=float(h))
        for t, h in zip(df["time"].tolist(), df["hraw_mm"].tolist())
    )


__all__ = ["read_table", "load_calibration", "load_timeseries", "CALIBRATION_COLS", "TIMESERIES_COLS"]
