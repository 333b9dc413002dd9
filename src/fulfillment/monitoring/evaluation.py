"""Temperature evaluation — decides whether a reading violates its zone threshold.

Pure functions: nothing here touches an order, a shipment or storage. The
Order aggregate appends the reading and, when an assessment comes back, the
alert built from it.
"""

from dataclasses import dataclass

from fulfillment.monitoring.policy import (
    AlertSeverity,
    TemperaturePolicy,
    TemperatureUnit,
    parse_unit,
    parse_zone,
)

# Converted values are rounded so that e.g. 46.4°F compares as exactly 8°C
_CONVERSION_PRECISION = 6


@dataclass(frozen=True)
class AlertAssessment:
    """Outcome of a violating reading."""

    severity: str
    message: str
    deviation: float
    normalized_value: float
    policy_unit: str


def convert(value: float, from_unit: str | TemperatureUnit, to_unit: str | TemperatureUnit) -> float:
    source = parse_unit(from_unit)
    target = parse_unit(to_unit)
    if source == target:
        return float(value)
    if source == TemperatureUnit.FAHRENHEIT:
        converted = (float(value) - 32.0) * 5.0 / 9.0
    else:
        converted = float(value) * 9.0 / 5.0 + 32.0
    return round(converted, _CONVERSION_PRECISION)


def evaluate_reading(
    value: float,
    unit: str,
    zone: str,
    policy: TemperaturePolicy,
) -> AlertAssessment | None:
    """Evaluate one reading against the zone threshold of ``policy``.

    A reading exactly on a bound is in range. Returns ``None`` when the
    reading is acceptable.
    """
    zone_enum = parse_zone(zone)
    threshold = policy.threshold_for(zone_enum)
    normalized = convert(value, unit, policy.unit)

    if normalized < threshold.min_value:
        deviation = threshold.min_value - normalized
        direction = "below"
    elif normalized > threshold.max_value:
        deviation = normalized - threshold.max_value
        direction = "above"
    else:
        return None

    deviation = round(deviation, _CONVERSION_PRECISION)
    if deviation > policy.high_severity_ratio * threshold.width:
        severity = AlertSeverity.HIGH.value
    else:
        severity = AlertSeverity.MEDIUM.value

    message = (
        f"Temperature {float(value):g}°{parse_unit(unit).value} is {deviation:g}°{policy.unit} {direction} "
        f"the {zone_enum.value} range [{threshold.min_value:g}, {threshold.max_value:g}]°{policy.unit}"
    )
    return AlertAssessment(
        severity=severity,
        message=message,
        deviation=deviation,
        normalized_value=normalized,
        policy_unit=policy.unit,
    )
