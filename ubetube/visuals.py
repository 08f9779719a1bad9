from __future__ import annotations
from pathlib import Path
from typing import Sequence
import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")  # headless
import matplotlib.dates as mdates
import matplotlib.pyplot as plt

from .rating import CalibrationSample, RatingCurve

Q_LABEL = r"Q (L$\cdot$min$^{-1}$)"
INFLOW_LABEL = r"Inflow (L$\cdot$min$^{-1}$)"


def plot_rating_curve(
    outdir: Path,
    samples: Sequence[CalibrationSample],
    curve: RatingCurve,
    stem: str = "ratingcurve",
) -> Path:
    """
    Scatter of calibration (h, Q) with the fitted power law drawn through it.
    The fit equation is annotated at (0.6 * median h, median Q).
    Output file: outdir / f'{stem}.png' (7 x 7 in)
    """
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    h = np.array([s.height_cm for s in samples], dtype=float)
    q = np.array([s.discharge_lpm for s in samples], dtype=float)
    if h.size == 0:
        raise ValueError("No calibration samples to plot")

    fig, ax = plt.subplots(figsize=(7, 7))
    ax.scatter(h, q, color="black", s=14, zorder=3)
    h_fit = np.linspace(max(float(np.nanmin(h)), 0.0), float(np.nanmax(h)), 200)
    ax.plot(h_fit, curve.evaluate_many(h_fit), color="#2563EB", linewidth=1.5)
    ax.annotate(
        curve.label(mathtext=True),
        xy=(0.6 * float(np.nanmedian(h)), float(np.nanmedian(q))),
        color="blue",
        ha="center",
    )
    ax.set_xlabel("h (cm)")
    ax.set_ylabel(Q_LABEL)
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    fig.tight_layout()
    out = outdir / f"{stem}.png"
    fig.savefig(out, format="png")
    plt.close(fig)
    return out


def plot_hydrograph(outdir: Path, frame: pd.DataFrame, stem: str = "hydrograph") -> Path:
    """
    Inflow against time from a derived-records frame (``time``, ``I_Lmin``).
    The missing first inflow (and any other NaN) is left out of the line.
    Output file: outdir / f'{stem}.png' (720 x 480 px)
    """
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    if frame.empty:
        raise ValueError("No records to plot")
    data = frame.dropna(subset=["I_Lmin"])

    fig, ax = plt.subplots(figsize=(7.2, 4.8), dpi=100)
    ax.plot(data["time"], data["I_Lmin"], color="black", linewidth=1.0)
    if pd.api.types.is_datetime64_any_dtype(frame["time"]):
        ax.xaxis.set_major_formatter(mdates.DateFormatter("%H:%M"))
        ax.set_xlabel("Time (hh:mm)")
    else:
        ax.set_xlabel("Time (s)")
    ax.set_ylabel(INFLOW_LABEL)
    fig.tight_layout()
    out = outdir / f"{stem}.png"
    fig.savefig(out, dpi=100, format="png")
    plt.close(fig)
    return out


__all__ = ["plot_rating_curve", "plot_hydrograph"]
