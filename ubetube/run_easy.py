"""One-click pipeline orchestrator (calibrate → transform → export → plot)."""


from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import json, math, logging

import numpy as np

from .errors import UBeTubeError
from .geometry import TubeGeometry
from .io import load_calibration, load_timeseries
from .presets import DevicePreset
from .rating import DEFAULT_INITIAL_GUESS, fit_calibration
from .series import records_to_frame, transform
from .visuals import plot_hydrograph, plot_rating_curve

logger = logging.getLogger(__name__)


@dataclass
class RunConfig:
    """Inputs required to run :func:`run_all`.

    Heights and the tube diameter are in centimetres. ``initial_guess`` is the
    ``(a, b)`` starting point of the rating-curve fit.
    """

    calibration_path: str
    timeseries_path: str
    output_dir: str
    baseline_height_cm: float = 35.7
    tube_diameter_cm: float = 10.16
    initial_guess: Tuple[float, float] = DEFAULT_INITIAL_GUESS
    calibration_sheet: Any = 0
    timeseries_sheet: Any = 0
    fit_tol: float = 1e-8
    fit_max_iter: int = 200
    check_order: bool = False
    ratingcurve_stem: str = "ratingcurve"
    hydrograph_stem: str = "hydrograph"
    series_csv: str = "ubetube_series.csv"

    @property
    def geometry(self) -> TubeGeometry:
        return TubeGeometry(diameter_cm=float(self.tube_diameter_cm),
                            baseline_height_cm=float(self.baseline_height_cm))

    def with_preset(self, preset: DevicePreset) -> "RunConfig":
        return replace(
            self,
            baseline_height_cm=preset.geometry.baseline_height_cm,
            tube_diameter_cm=preset.geometry.diameter_cm,
        )

    def with_overrides(self, values: Dict[str, Any]) -> "RunConfig":
        """Copy with ``values`` applied; ``None`` entries are ignored."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown RunConfig field(s): {', '.join(unknown)}")
        clean = {k: v for k, v in values.items() if v is not None}
        if "initial_guess" in clean:
            a0, b0 = clean["initial_guess"]
            clean["initial_guess"] = (float(a0), float(b0))
        return replace(self, **clean)


def load_config_file(path: Path) -> Dict[str, Any]:
    data = json.loads(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must hold a JSON object")
    return data


def jsonable(v):
    """Copy of ``v`` safe for ``json.dumps``: NaN and infinities become ``None``."""
    if isinstance(v, float) and not math.isfinite(v):
        return None
    if isinstance(v, dict):
        return {k: jsonable(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [jsonable(x) for x in v]
    return v


def _inflow_stats(inflow: np.ndarray) -> Dict[str, Optional[float]]:
    # the first record has no inflow; skip it rather than count it as zero
    vals = inflow[np.isfinite(inflow)]
    if vals.size == 0:
        return {"n": 0, "mean_Lmin": None, "max_Lmin": None, "min_Lmin": None}
    return {
        "n": int(vals.size),
        "mean_Lmin": float(np.mean(vals)),
        "max_Lmin": float(np.max(vals)),
        "min_Lmin": float(np.min(vals)),
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def run_all(cfg: RunConfig) -> Dict[str, Any]:
    """Fit the rating curve, derive the inflow series, write CSV/PNG/JSON artifacts.

    Any processing error aborts the run; its ``stage`` attribute names the
    step that failed. Missing files (``OSError``) are tagged the same way.
    """
    logger.info("Run start: calibration=%s timeseries=%s output=%s",
                cfg.calibration_path, cfg.timeseries_path, cfg.output_dir)
    outdir = Path(cfg.output_dir)
    outdir.mkdir(parents=True, exist_ok=True)

    stage = "config"
    try:
        geom = cfg.geometry

        stage = "calibration"
        cal = load_calibration(Path(cfg.calibration_path), sheet=cfg.calibration_sheet)
        fit = fit_calibration(cal, cfg.initial_guess, tol=cfg.fit_tol, max_iter=cfg.fit_max_iter)
        logger.info("Rating curve %s (n=%d, iterations=%d, rss=%.4g)",
                    fit.curve.label(), fit.n_points, fit.iterations, fit.rss)

        stage = "timeseries"
        samples = load_timeseries(Path(cfg.timeseries_path), sheet=cfg.timeseries_sheet)
        records = transform(
            samples,
            geom.baseline_height_cm,
            fit.curve,
            geom.diameter_cm,
            check_order=cfg.check_order,
        )
    except (UBeTubeError, OSError, ValueError) as exc:
        # unreadable files and malformed tables fail their stage like bad data does
        exc.stage = stage
        logger.error("%s stage failed: %s", stage, exc)
        raise

    frame = records_to_frame(records)
    series_csv = outdir / cfg.series_csv
    frame.to_csv(series_csv, index=False)
    rating_png = plot_rating_curve(outdir, cal, fit.curve, stem=cfg.ratingcurve_stem)
    hydro_png = plot_hydrograph(outdir, frame, stem=cfg.hydrograph_stem)

    summary: Dict[str, Any] = {
        "ok": True,
        "rating_curve": fit.as_dict(),
        "inputs": {
            "calibration": str(cfg.calibration_path),
            "timeseries": str(cfg.timeseries_path),
            "baseline_height_cm": geom.baseline_height_cm,
            "tube_diameter_cm": geom.diameter_cm,
            "initial_guess": list(cfg.initial_guess),
        },
        "n_calibration": len(cal),
        "n_records": len(records),
        "duration_s": records[-1].elapsed_s,
        "inflow": _inflow_stats(frame["I_Lmin"].to_numpy(float)),
        "outputs": {
            "series_csv": str(series_csv),
            "ratingcurve_png": str(rating_png),
            "hydrograph_png": str(hydro_png),
        },
    }
    summary = jsonable(summary)
    summary_path = outdir / "summary.json"
    summary["outputs"]["summary_json"] = str(summary_path)
    summary_path.write_text(json.dumps(summary, indent=2))
    logger.info("Run complete: %d records written to %s", len(records), outdir)
    return summary


__all__ = ["RunConfig", "jsonable", "load_config_file", "run_all"]
