"""Cold-chain temperature monitoring — policy selection.

The active policy is a process-wide singleton. Defaults can be overridden per
deployment through environment variables:

    COLDCHAIN_POLICY_UNIT=C
    COLDCHAIN_REFRIGERATED_RANGE=2,8
    COLDCHAIN_FROZEN_RANGE=-25,-15
    COLDCHAIN_AMBIENT_RANGE=15,25
    COLDCHAIN_HIGH_SEVERITY_RATIO=0.5
"""

import os

from fulfillment.monitoring.policy import (
    DEFAULT_HIGH_SEVERITY_RATIO,
    DEFAULT_THRESHOLDS,
    TemperaturePolicy,
    TemperatureZone,
    ZoneThreshold,
)

_policy_instance = None


def _parse_range(raw: str, variable: str) -> ZoneThreshold:
    try:
        low, high = (float(part) for part in raw.split(","))
    except ValueError:
        raise ValueError(f"{variable} must be 'min,max', got {raw!r}") from None
    return ZoneThreshold(low, high)


def _policy_from_environment() -> TemperaturePolicy:
    thresholds = dict(DEFAULT_THRESHOLDS)
    for zone in TemperatureZone:
        variable = f"COLDCHAIN_{zone.name}_RANGE"
        raw = os.environ.get(variable)
        if raw:
            thresholds[zone] = _parse_range(raw, variable)

    return TemperaturePolicy(
        thresholds=thresholds,
        unit=os.environ.get("COLDCHAIN_POLICY_UNIT", "C").upper(),
        high_severity_ratio=float(os.environ.get("COLDCHAIN_HIGH_SEVERITY_RATIO", DEFAULT_HIGH_SEVERITY_RATIO)),
    )


def get_temperature_policy() -> TemperaturePolicy:
    """Return the configured temperature policy (singleton)."""
    global _policy_instance
    if _policy_instance is None:
        _policy_instance = _policy_from_environment()
    return _policy_instance


def configure_temperature_policy(policy: TemperaturePolicy) -> TemperaturePolicy:
    """Replace the active policy, e.g. with per-deployment thresholds."""
    global _policy_instance
    _policy_instance = policy
    return _policy_instance


def reset_temperature_policy():
    """Reset the policy singleton so it is rebuilt from the environment."""
    global _policy_instance
    _policy_instance = None
