from __future__ import annotations

from dataclasses import dataclass
import math

import numpy as np

from .errors import InvalidInputError


@dataclass(frozen=True)
class TubeGeometry:
    # interior diameter of the tube [cm]
    diameter_cm: float = 10.16
    # slot bottom relative to the pressure transducer [cm]
    baseline_height_cm: float = 35.7

    def __post_init__(self):
        if not (math.isfinite(self.diameter_cm) and self.diameter_cm > 0):
            raise InvalidInputError(f"Tube diameter must be > 0 cm, got {self.diameter_cm}")
        if not math.isfinite(self.baseline_height_cm):
            raise InvalidInputError(f"Baseline height must be finite, got {self.baseline_height_cm}")


def storage_cm3(height_cm, diameter_cm: float):
    """Water held above the slot bottom, π d² h / 4 [cm³]. Accepts scalars or arrays."""
    if not isinstance(height_cm, np.ndarray):
        height_cm = float(height_cm)
    return math.pi * diameter_cm ** 2 * height_cm / 4.0


def storage_lpm(height_cm, diameter_cm: float):
    """Storage scaled by 60/1000; its difference per elapsed second reads in L/min."""
    return storage_cm3(height_cm, diameter_cm) * 60.0 / 1000.0


__all__ = ["TubeGeometry", "storage_cm3", "storage_lpm"]
