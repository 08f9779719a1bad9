import math

import numpy as np
import pandas as pd
import pytest

from ubetube.errors import DegenerateIntervalError, InvalidInputError
from ubetube.geometry import TubeGeometry, storage_cm3, storage_lpm
from ubetube.rating import RatingCurve
from ubetube.series import (
    FRAME_COLUMNS,
    TimeSample,
    height_above_slot,
    records_to_frame,
    seconds_between,
    transform,
)

LINEAR = RatingCurve(a=1.0, b=1.0)


def test_height_above_slot_converts_mm_then_subtracts_baseline():
    assert height_above_slot(407.0, 35.7) == pytest.approx(5.0)
    assert height_above_slot(50.0, 0.0) == 5.0


def test_storage_units():
    d = 10.0
    assert storage_cm3(2.0, d) == pytest.approx(math.pi * 100.0 * 2.0 / 4.0)
    assert storage_lpm(2.0, d) == pytest.approx(storage_cm3(2.0, d) * 0.06)
    arr = storage_cm3(np.array([1.0, 2.0]), d)
    assert arr == pytest.approx([math.pi * 25.0, math.pi * 50.0])


def test_tube_geometry_rejects_bad_diameter():
    with pytest.raises(InvalidInputError):
        TubeGeometry(diameter_cm=0.0)


def test_steady_two_sample_series():
    series = [TimeSample(0.0, 50.0), TimeSample(60.0, 50.0)]
    d = 10.16
    first, second = transform(series, 0.0, LINEAR, d)

    assert math.isnan(first.inflow_lpm)
    assert first.height_cm == 5.0
    assert first.discharge_lpm == 5.0
    s = math.pi * d ** 2 * 5.0 / 4.0 * 60.0 / 1000.0
    assert first.storage_lpm == pytest.approx(s)
    expected = (s - s) / 60.0 + (5.0 + 5.0) / 2.0
    assert second.inflow_lpm == pytest.approx(expected)
    assert second.inflow_lpm == pytest.approx(5.0)
    assert second.elapsed_s == 60.0


def test_rising_water_adds_storage_change_to_mean_outflow():
    d = 10.0
    series = [TimeSample(0.0, 50.0), TimeSample(30.0, 60.0)]
    _, rec = transform(series, 0.0, LINEAR, d)
    s1 = math.pi * d ** 2 * 5.0 / 4.0 * 60.0 / 1000.0
    s2 = math.pi * d ** 2 * 6.0 / 4.0 * 60.0 / 1000.0
    assert rec.inflow_lpm == pytest.approx((s2 - s1) / 30.0 + (5.0 + 6.0) / 2.0)


def test_irregular_datetime_intervals():
    t0 = pd.Timestamp("2020-09-21 10:00:00")
    series = [
        TimeSample(t0, 407.0),
        TimeSample(t0 + pd.Timedelta(seconds=60), 417.0),
        TimeSample(t0 + pd.Timedelta(seconds=150), 417.0),
    ]
    curve = RatingCurve(a=2.0, b=1.0)
    recs = transform(series, 35.7, curve, 10.16)
    assert [r.elapsed_s for r in recs] == [0.0, 60.0, 150.0]
    h = [r.height_cm for r in recs]
    assert h == pytest.approx([5.0, 6.0, 6.0])
    # flat water between the last two samples: inflow equals outflow
    assert recs[2].inflow_lpm == pytest.approx(curve.evaluate(h[2]))
    ds = storage_lpm(h[1], 10.16) - storage_lpm(h[0], 10.16)
    assert recs[1].inflow_lpm == pytest.approx(ds / 60.0 + (10.0 + 12.0) / 2.0)


def test_water_below_slot_has_no_outflow():
    series = [TimeSample(0.0, 300.0), TimeSample(10.0, 300.0)]
    recs = transform(series, 35.7, RatingCurve(a=2.5, b=1.8), 10.16)
    assert all(r.discharge_lpm == 0.0 for r in recs)
    assert recs[1].inflow_lpm == pytest.approx(0.0)


def test_duplicate_timestamp_raises():
    series = [TimeSample(0.0, 50.0), TimeSample(0.0, 60.0)]
    with pytest.raises(DegenerateIntervalError) as info:
        transform(series, 0.0, LINEAR, 10.16)
    assert info.value.index == 1


def test_duplicate_datetime_raises():
    t = pd.Timestamp("2020-09-21 10:00:00")
    series = [TimeSample(t, 407.0), TimeSample(t, 410.0)]
    with pytest.raises(DegenerateIntervalError):
        transform(series, 35.7, LINEAR, 10.16)


def test_order_check_is_opt_in():
    series = [TimeSample(60.0, 50.0), TimeSample(0.0, 50.0)]
    recs = transform(series, 0.0, LINEAR, 10.16)
    assert recs[1].elapsed_s == -60.0
    with pytest.raises(InvalidInputError):
        transform(series, 0.0, LINEAR, 10.16, check_order=True)


def test_empty_series_and_bad_diameter_rejected():
    with pytest.raises(InvalidInputError):
        transform([], 0.0, LINEAR, 10.16)
    with pytest.raises(InvalidInputError):
        transform([TimeSample(0.0, 50.0)], 0.0, LINEAR, -1.0)


def test_transform_is_repeatable_and_leaves_input_alone():
    series = [TimeSample(float(t), 400.0 + 3.0 * t) for t in range(0, 300, 30)]
    before = list(series)
    curve = RatingCurve(a=2.5, b=1.8)
    first = transform(series, 35.7, curve, 10.16)
    second = transform(series, 35.7, curve, 10.16)
    assert series == before
    assert len(first) == len(series)
    assert math.isnan(first[0].inflow_lpm) and math.isnan(second[0].inflow_lpm)
    assert first[1:] == second[1:]


def test_seconds_between_numeric_and_datetime():
    assert seconds_between(10.0, 70.0) == 60.0
    assert seconds_between(pd.Timestamp("2020-01-01"), pd.Timestamp("2020-01-01 00:02")) == 120.0
    assert seconds_between(np.datetime64("2020-01-01T00:00"), np.datetime64("2020-01-01T00:00:30")) == 30.0


def test_records_to_frame_columns_and_missing_first_inflow():
    series = [TimeSample(0.0, 50.0), TimeSample(60.0, 55.0)]
    frame = records_to_frame(transform(series, 0.0, LINEAR, 10.16))
    assert list(frame.columns) == FRAME_COLUMNS
    assert np.isnan(frame["I_Lmin"].iloc[0])
    assert frame["I_Lmin"].notna().sum() == 1
