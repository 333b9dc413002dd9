"""Tests for temperature evaluation and the configurable policy."""

import pytest
from fulfillment.monitoring import (
    configure_temperature_policy,
    get_temperature_policy,
    reset_temperature_policy,
)
from fulfillment.monitoring.evaluation import convert, evaluate_reading
from fulfillment.monitoring.policy import (
    TemperaturePolicy,
    TemperatureZone,
    ZoneThreshold,
    parse_zone,
)
from protean.exceptions import ValidationError


@pytest.fixture()
def policy():
    return TemperaturePolicy()


class TestDefaultThresholds:
    def test_refrigerated_range(self, policy):
        threshold = policy.threshold_for("refrigerated")
        assert (threshold.min_value, threshold.max_value) == (2.0, 8.0)

    def test_frozen_range(self, policy):
        threshold = policy.threshold_for(TemperatureZone.FROZEN)
        assert (threshold.min_value, threshold.max_value) == (-25.0, -15.0)

    def test_ambient_range(self, policy):
        threshold = policy.threshold_for("Ambient")
        assert (threshold.min_value, threshold.max_value) == (15.0, 25.0)

    def test_unknown_zone_rejected(self, policy):
        with pytest.raises(ValidationError) as exc:
            policy.threshold_for("tropical")
        assert "Unknown zone" in str(exc.value)

    def test_inverted_threshold_rejected(self):
        with pytest.raises(ValueError):
            ZoneThreshold(8.0, 2.0)


class TestBoundaries:
    @pytest.mark.parametrize("value", [2.0, 8.0, 5.0])
    def test_value_within_closed_range_is_accepted(self, policy, value):
        assert evaluate_reading(value, "C", "refrigerated", policy) is None

    @pytest.mark.parametrize("value", [1.0, 9.0])
    def test_one_unit_past_a_bound_raises_an_alert(self, policy, value):
        assert evaluate_reading(value, "C", "refrigerated", policy) is not None

    def test_frozen_bounds(self, policy):
        assert evaluate_reading(-15.0, "C", "frozen", policy) is None
        assert evaluate_reading(-14.0, "C", "frozen", policy) is not None
        assert evaluate_reading(-26.0, "C", "frozen", policy) is not None


class TestSeverity:
    def test_small_deviation_is_medium(self, policy):
        assessment = evaluate_reading(9.0, "C", "refrigerated", policy)
        assert assessment.severity == "medium"
        assert assessment.deviation == 1.0

    def test_deviation_at_half_the_width_is_still_medium(self, policy):
        # Width 6, ratio 0.5: a deviation of exactly 3 is not above 3
        assessment = evaluate_reading(11.0, "C", "refrigerated", policy)
        assert assessment.severity == "medium"

    def test_deviation_beyond_half_the_width_is_high(self, policy):
        assessment = evaluate_reading(12.0, "C", "refrigerated", policy)
        assert assessment.severity == "high"

    def test_below_range_is_measured_from_the_minimum(self, policy):
        assessment = evaluate_reading(-2.0, "C", "refrigerated", policy)
        assert assessment.deviation == 4.0
        assert assessment.severity == "high"
        assert "below" in assessment.message

    def test_ratio_is_configurable(self):
        strict = TemperaturePolicy(high_severity_ratio=0.1)
        assert evaluate_reading(9.0, "C", "refrigerated", strict).severity == "high"

    def test_message_names_zone_and_range(self, policy):
        assessment = evaluate_reading(9.0, "C", "refrigerated", policy)
        assert assessment.message == "Temperature 9°C is 1°C above the refrigerated range [2, 8]°C"


class TestUnitConversion:
    def test_fahrenheit_to_celsius(self):
        assert convert(46.4, "F", "C") == 8.0

    def test_celsius_to_fahrenheit(self):
        assert convert(-40, "C", "F") == -40.0

    def test_same_unit_is_unchanged(self):
        assert convert(5, "C", "C") == 5.0

    def test_fahrenheit_reading_on_the_bound_is_accepted(self, policy):
        assert evaluate_reading(46.4, "F", "refrigerated", policy) is None

    def test_fahrenheit_reading_above_range(self, policy):
        assessment = evaluate_reading(50.0, "f", "refrigerated", policy)
        assert assessment is not None
        assert assessment.normalized_value == 10.0

    def test_fahrenheit_policy(self):
        policy = TemperaturePolicy(
            thresholds={TemperatureZone.REFRIGERATED: ZoneThreshold(35.6, 46.4)},
            unit="F",
        )
        assert evaluate_reading(5.0, "C", "refrigerated", policy) is None
        assert evaluate_reading(9.0, "C", "refrigerated", policy) is not None

    def test_unknown_unit_rejected(self, policy):
        with pytest.raises(ValidationError) as exc:
            evaluate_reading(5.0, "K", "refrigerated", policy)
        assert "Unknown temperature unit" in str(exc.value)


class TestPolicyConfiguration:
    def test_with_threshold_returns_a_new_policy(self, policy):
        custom = policy.with_threshold("refrigerated", 0, 4)
        assert custom.threshold_for("refrigerated").max_value == 4.0
        assert policy.threshold_for("refrigerated").max_value == 8.0

    def test_environment_overrides_a_zone(self, monkeypatch):
        monkeypatch.setenv("COLDCHAIN_REFRIGERATED_RANGE", "0,4")
        reset_temperature_policy()
        threshold = get_temperature_policy().threshold_for("refrigerated")
        assert (threshold.min_value, threshold.max_value) == (0.0, 4.0)
        assert get_temperature_policy().threshold_for("frozen").min_value == -25.0

    def test_environment_overrides_ratio(self, monkeypatch):
        monkeypatch.setenv("COLDCHAIN_HIGH_SEVERITY_RATIO", "0.25")
        reset_temperature_policy()
        assert get_temperature_policy().high_severity_ratio == 0.25

    def test_malformed_range_rejected(self, monkeypatch):
        monkeypatch.setenv("COLDCHAIN_FROZEN_RANGE", "cold")
        reset_temperature_policy()
        with pytest.raises(ValueError) as exc:
            get_temperature_policy()
        assert "COLDCHAIN_FROZEN_RANGE" in str(exc.value)

    def test_configure_replaces_the_active_policy(self):
        custom = TemperaturePolicy().with_threshold("ambient", 10, 30)
        configure_temperature_policy(custom)
        assert get_temperature_policy() is custom

    def test_policy_is_a_singleton(self):
        assert get_temperature_policy() is get_temperature_policy()

    def test_parse_zone_accepts_enum(self):
        assert parse_zone(TemperatureZone.FROZEN) is TemperatureZone.FROZEN
