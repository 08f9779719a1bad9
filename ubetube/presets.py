from dataclasses import dataclass, field

from .geometry import TubeGeometry


@dataclass(frozen=True)
class DevicePreset:
    name: str
    geometry: TubeGeometry = field(default_factory=TubeGeometry)


# In a real deployment these would be loaded from an external presets file.
PRESETS: dict[str, DevicePreset] = {
    # 4 in (10.16 cm) tube, slot bottom 35.7 cm above the transducer
    "DefaultDevice": DevicePreset(
        name="DefaultDevice",
        geometry=TubeGeometry(diameter_cm=10.16, baseline_height_cm=35.7),
    ),
}
