
"""
ubetube - UBeTube rating-curve calibration and inflow processing.
"""

__version__ = "0.1.0"

from .errors import UBeTubeError, InvalidInputError, ConvergenceError, DegenerateIntervalError
from .rating import (
    CalibrationSample,
    RatingCurve,
    RatingCurveParameters,
    RatingFit,
    CalibrationFitter,
    fit_calibration,
    fit_rating_curve,
)
from .geometry import TubeGeometry, storage_cm3, storage_lpm
from .series import TimeSample, DerivedRecord, transform, records_to_frame
from .io import load_calibration, load_timeseries
from .presets import DevicePreset, PRESETS
from .run_easy import RunConfig, run_all

__all__ = [
    "__version__",
    "UBeTubeError", "InvalidInputError", "ConvergenceError", "DegenerateIntervalError",
    "CalibrationSample", "RatingCurve", "RatingCurveParameters", "RatingFit",
    "CalibrationFitter", "fit_calibration", "fit_rating_curve",
    "TubeGeometry", "storage_cm3", "storage_lpm",
    "TimeSample", "DerivedRecord", "transform", "records_to_frame",
    "load_calibration", "load_timeseries",
    "DevicePreset", "PRESETS",
    "RunConfig", "run_all",
]
