from pathlib import Path
import json
import math

import pandas as pd
import pytest

from ubetube.errors import ConvergenceError, DegenerateIntervalError
from ubetube.presets import PRESETS
from ubetube.run_easy import RunConfig, run_all

from conftest import A_TRUE, B_TRUE, write_calibration_csv, write_timeseries_csv


def test_run_all_produces_outputs(tmp_path, calibration_csv, timeseries_csv):
    out_dir = tmp_path / "out"
    cfg = RunConfig(
        calibration_path=str(calibration_csv),
        timeseries_path=str(timeseries_csv),
        output_dir=str(out_dir),
    )

    summary = run_all(cfg)

    rc = summary["rating_curve"]
    assert rc["a"] == pytest.approx(A_TRUE, rel=1e-6)
    assert rc["b"] == pytest.approx(B_TRUE, rel=1e-6)
    assert summary["n_calibration"] == 9
    assert summary["n_records"] == 6
    assert summary["duration_s"] == 360.0
    # first record carries no inflow and is not averaged in
    assert summary["inflow"]["n"] == 5

    for key in ("series_csv", "ratingcurve_png", "hydrograph_png", "summary_json"):
        assert Path(summary["outputs"][key]).exists()
    assert (out_dir / "ratingcurve.png").stat().st_size > 0
    assert (out_dir / "hydrograph.png").stat().st_size > 0

    on_disk = json.loads((out_dir / "summary.json").read_text())
    assert on_disk["inputs"]["baseline_height_cm"] == 35.7
    assert on_disk["inputs"]["tube_diameter_cm"] == 10.16

    df = pd.read_csv(summary["outputs"]["series_csv"])
    assert df["h_cm"].iloc[0] == pytest.approx(5.0)
    assert df["Q_Lmin"].iloc[0] == pytest.approx(A_TRUE * 5.0 ** B_TRUE, rel=1e-6)
    assert math.isnan(df["I_Lmin"].iloc[0])
    assert df["I_Lmin"].iloc[1:].notna().all()


def test_run_all_uses_preset_geometry(tmp_path, calibration_csv, timeseries_csv):
    cfg = RunConfig(
        calibration_path=str(calibration_csv),
        timeseries_path=str(timeseries_csv),
        output_dir=str(tmp_path / "out"),
        baseline_height_cm=0.0,
        tube_diameter_cm=1.0,
    ).with_preset(PRESETS["DefaultDevice"])
    summary = run_all(cfg)
    assert summary["inputs"]["baseline_height_cm"] == 35.7
    assert summary["inputs"]["tube_diameter_cm"] == 10.16


def test_with_overrides_rejects_unknown_fields(tmp_path):
    cfg = RunConfig("c.csv", "t.csv", str(tmp_path))
    assert cfg.with_overrides({"initial_guess": [2, 1.5], "tube_diameter_cm": None}).initial_guess == (2.0, 1.5)
    with pytest.raises(ValueError):
        cfg.with_overrides({"tube_diameter": 5.0})


def test_run_all_reports_failing_timeseries_stage(tmp_path, calibration_csv):
    ts = write_timeseries_csv(
        tmp_path / "dup.csv",
        [("2020-09-21 10:00:00", 407.0), ("2020-09-21 10:00:00", 410.0)],
    )
    cfg = RunConfig(str(calibration_csv), str(ts), str(tmp_path / "out"))
    with pytest.raises(DegenerateIntervalError) as info:
        run_all(cfg)
    assert info.value.stage == "timeseries"
    assert not (tmp_path / "out" / "summary.json").exists()


def test_run_all_reports_failing_calibration_stage(tmp_path, timeseries_csv):
    cal = write_calibration_csv(tmp_path / "cal.csv")
    cfg = RunConfig(str(cal), str(timeseries_csv), str(tmp_path / "out"), fit_max_iter=1)
    with pytest.raises(ConvergenceError) as info:
        run_all(cfg)
    assert info.value.stage == "calibration"


def test_run_all_tags_missing_calibration_file(tmp_path, timeseries_csv):
    cfg = RunConfig(str(tmp_path / "missing.csv"), str(timeseries_csv), str(tmp_path / "out"))
    with pytest.raises(FileNotFoundError) as info:
        run_all(cfg)
    assert info.value.stage == "calibration"
