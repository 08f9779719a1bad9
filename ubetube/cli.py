
from __future__ import annotations
import argparse, json, logging
from pathlib import Path
from .errors import UBeTubeError
from .io import load_calibration, load_timeseries
from .rating import RatingCurve, fit_calibration
from .run_easy import RunConfig, load_config_file, run_all, jsonable
from .series import records_to_frame, transform
from .presets import PRESETS

DEFAULT_GEOMETRY = PRESETS["DefaultDevice"].geometry


def build_parser():
    p = argparse.ArgumentParser(prog="ubetube", description="UBeTube rating curve, outflow and inflow processing")
    p.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = p.add_subparsers(dest="cmd", required=True)

    r = sub.add_parser("run", help="Calibrate → Transform → Export → Plot in one pass")
    r.add_argument("--calibration", required=True, type=Path, help="Calibration workbook or CSV (h0 mm, hraw mm, Q L/min)")
    r.add_argument("--timeseries", required=True, type=Path, help="Logger workbook or CSV (time, hraw mm)")
    r.add_argument("--out", required=True, type=Path, help="Output directory")
    r.add_argument("--device", default=None, choices=PRESETS.keys(), help="Device preset for h0 and tube diameter")
    r.add_argument("--config", type=Path, default=None, help="JSON file with RunConfig fields")
    r.add_argument("--h0", type=float, default=None, help="Slot bottom relative to the transducer (cm)")
    r.add_argument("--diameter", type=float, default=None, help="Tube interior diameter (cm)")
    r.add_argument("--a0", type=float, default=None, help="Initial guess for a")
    r.add_argument("--b0", type=float, default=None, help="Initial guess for b")
    r.add_argument("--check-order", action="store_true", help="Fail if timestamps are not ascending")

    f = sub.add_parser("fit", help="Fit the rating curve Q = a*h^b from calibration data")
    f.add_argument("--calibration", required=True, type=Path)
    f.add_argument("--a0", type=float, default=1.0)
    f.add_argument("--b0", type=float, default=1.0)
    f.add_argument("--max-iter", type=int, default=200)
    f.add_argument("--json-out", type=Path, default=None, help="Optional path to write the fit as JSON")

    t = sub.add_parser("transform", help="Apply a known rating curve to a time series")
    t.add_argument("--timeseries", required=True, type=Path)
    t.add_argument("--a", required=True, type=float)
    t.add_argument("--b", required=True, type=float)
    t.add_argument("--h0", type=float, default=DEFAULT_GEOMETRY.baseline_height_cm)
    t.add_argument("--diameter", type=float, default=DEFAULT_GEOMETRY.diameter_cm)
    t.add_argument("--check-order", action="store_true")
    t.add_argument("--out", required=True, type=Path, help="Output CSV path")
    return p


def _run_config(a) -> RunConfig:
    # precedence: defaults < device preset < config file < flags
    cfg = RunConfig(
        calibration_path=str(a.calibration),
        timeseries_path=str(a.timeseries),
        output_dir=str(a.out),
    )
    if a.device:
        cfg = cfg.with_preset(PRESETS[a.device])
    if a.config:
        cfg = cfg.with_overrides(load_config_file(a.config))
    guess = None
    if a.a0 is not None or a.b0 is not None:
        a0 = a.a0 if a.a0 is not None else cfg.initial_guess[0]
        b0 = a.b0 if a.b0 is not None else cfg.initial_guess[1]
        guess = (a0, b0)
    return cfg.with_overrides({
        "baseline_height_cm": a.h0,
        "tube_diameter_cm": a.diameter,
        "initial_guess": guess,
        "check_order": a.check_order or None,
    })


def main(argv=None):
    ap = build_parser()
    a = ap.parse_args(argv)
    logging.basicConfig(level=getattr(logging, a.log_level), format="%(levelname)s %(name)s: %(message)s")
    try:
        if a.cmd == "run":
            try:
                cfg = _run_config(a)
            except (OSError, ValueError) as exc:
                exc.stage = "config"
                raise
            summary = run_all(cfg)
            print(json.dumps(summary, indent=2))
        elif a.cmd == "fit":
            cal = load_calibration(a.calibration)
            fit = fit_calibration(cal, (a.a0, a.b0), max_iter=a.max_iter)
            res = jsonable(fit.as_dict())
            if a.json_out:
                a.json_out.parent.mkdir(parents=True, exist_ok=True)
                a.json_out.write_text(json.dumps(res, indent=2))
            print(json.dumps(res, indent=2))
        elif a.cmd == "transform":
            samples = load_timeseries(a.timeseries)
            records = transform(samples, a.h0, RatingCurve(a.a, a.b), a.diameter, check_order=a.check_order)
            a.out.parent.mkdir(parents=True, exist_ok=True)
            records_to_frame(records).to_csv(a.out, index=False)
            print(json.dumps({"series_csv": str(a.out), "n_records": len(records)}))
    except (UBeTubeError, OSError, ValueError) as exc:
        stage = getattr(exc, "stage", None) or a.cmd
        raise SystemExit(f"{stage} failed: {exc}")

if __name__ == "__main__":
    main()
