from __future__ import annotations


class UBeTubeError(Exception):
    """Base class for processing failures surfaced to the caller.

    ``stage`` is filled in by the pipeline ("calibration" or "timeseries")
    before the error propagates out of :func:`ubetube.run_easy.run_all`.
    """

    stage: str | None = None


class InvalidInputError(UBeTubeError, ValueError):
    """Malformed or physically inadmissible input to the fitter or transformer."""


class ConvergenceError(UBeTubeError, RuntimeError):
    """Rating-curve fit did not meet its tolerance within the iteration bound."""


class DegenerateIntervalError(InvalidInputError):
    """Two consecutive time samples share a timestamp (zero elapsed time)."""

    def __init__(self, index: int, timestamp):
        self.index = index
        self.timestamp = timestamp
        super().__init__(
            f"Zero elapsed time between records {index - 1} and {index} (timestamp {timestamp})"
        )


__all__ = ["UBeTubeError", "InvalidInputError", "ConvergenceError", "DegenerateIntervalError"]
