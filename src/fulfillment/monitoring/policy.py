"""Temperature policy — per-zone thresholds and severity rules for cold-chain checks.

Thresholds are expressed in a single policy unit (Celsius unless configured
otherwise). Readings in another unit are converted before comparison.
"""

from dataclasses import dataclass, field, replace
from enum import Enum

from protean.exceptions import ValidationError


class TemperatureZone(Enum):
    AMBIENT = "ambient"
    REFRIGERATED = "refrigerated"
    FROZEN = "frozen"


class TemperatureUnit(Enum):
    CELSIUS = "C"
    FAHRENHEIT = "F"


class AlertSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ZoneThreshold:
    """Acceptable closed range ``[min_value, max_value]`` for one zone."""

    min_value: float
    max_value: float

    def __post_init__(self):
        if self.min_value > self.max_value:
            raise ValueError(f"Threshold minimum {self.min_value} is above maximum {self.max_value}")

    @property
    def width(self) -> float:
        return self.max_value - self.min_value


DEFAULT_THRESHOLDS = {
    TemperatureZone.REFRIGERATED: ZoneThreshold(2.0, 8.0),
    TemperatureZone.FROZEN: ZoneThreshold(-25.0, -15.0),
    TemperatureZone.AMBIENT: ZoneThreshold(15.0, 25.0),
}

DEFAULT_HIGH_SEVERITY_RATIO = 0.5


@dataclass(frozen=True)
class TemperaturePolicy:
    """Deployment-wide cold-chain policy.

    A reading deviating from the nearest bound by more than
    ``high_severity_ratio`` times the zone's range width is ``high``
    severity; any smaller violation is ``medium``.
    """

    thresholds: dict = field(default_factory=lambda: dict(DEFAULT_THRESHOLDS))
    unit: str = TemperatureUnit.CELSIUS.value
    high_severity_ratio: float = DEFAULT_HIGH_SEVERITY_RATIO

    def __post_init__(self):
        TemperatureUnit(self.unit)
        if self.high_severity_ratio < 0:
            raise ValueError("high_severity_ratio must not be negative")

    def threshold_for(self, zone: str | TemperatureZone) -> ZoneThreshold:
        zone = parse_zone(zone)
        try:
            return self.thresholds[zone]
        except KeyError:
            raise ValidationError({"zone": [f"No threshold configured for zone {zone.value}"]}) from None

    def with_threshold(self, zone: str | TemperatureZone, min_value: float, max_value: float) -> "TemperaturePolicy":
        thresholds = dict(self.thresholds)
        thresholds[parse_zone(zone)] = ZoneThreshold(float(min_value), float(max_value))
        return replace(self, thresholds=thresholds)


def parse_zone(zone: str | TemperatureZone) -> TemperatureZone:
    if isinstance(zone, TemperatureZone):
        return zone
    try:
        return TemperatureZone(str(zone).strip().lower())
    except ValueError:
        raise ValidationError(
            {"zone": [f"Unknown zone '{zone}'. Expected one of: {', '.join(z.value for z in TemperatureZone)}"]}
        ) from None


def parse_unit(unit: str | TemperatureUnit) -> TemperatureUnit:
    if isinstance(unit, TemperatureUnit):
        return unit
    try:
        return TemperatureUnit(str(unit).strip().upper())
    except ValueError:
        raise ValidationError({"unit": [f"Unknown temperature unit '{unit}'. Expected C or F"]}) from None
