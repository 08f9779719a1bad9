"""Shared calibration / logger inputs for the ubetube tests."""

from pathlib import Path

import pytest

H0_MM = 357.0
HEIGHTS_CM = [1, 2, 3, 5, 8, 10, 12, 15, 20]
A_TRUE = 2.5
B_TRUE = 1.8


def write_calibration_csv(path: Path, heights_cm=HEIGHTS_CM, a=A_TRUE, b=B_TRUE, extra_rows=()) -> Path:
    lines = ["h0 (mm),hraw (mm),Q (L/min)"]
    for h in heights_cm:
        lines.append(f"{H0_MM},{H0_MM + 10 * h},{a * h ** b!r}")
    lines.extend(extra_rows)
    path.write_text("\n".join(lines) + "\n")
    return path


def write_timeseries_csv(path: Path, rows) -> Path:
    lines = ["Logger,UBeTube,,", "Site,Test plot,,", "Date Time,Height (mm),Temp (C),Battery (V)"]
    for t, hraw in rows:
        lines.append(f"{t},{hraw},21.5,12.6")
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def calibration_csv(tmp_path):
    return write_calibration_csv(tmp_path / "calibration.csv")


@pytest.fixture
def timeseries_csv(tmp_path):
    rows = [
        ("2020-09-21 10:00:00", 407.0),
        ("2020-09-21 10:01:00", 420.0),
        ("2020-09-21 10:02:00", 436.0),
        ("2020-09-21 10:03:30", 441.0),
        ("2020-09-21 10:05:00", 430.0),
        ("2020-09-21 10:06:00", 415.0),
    ]
    return write_timeseries_csv(tmp_path / "example_dataset.csv", rows)
