"""
Property-based configuration fuzzing tests.

These tests use Hypothesis to generate random, potentially invalid
reconstruction settings and verify the system handles them gracefully:
1. Invalid values are rejected with ConfigurationError (not crashes)
2. Valid edge-case values are accepted unchanged
3. JSON payloads with arbitrary content never escape as a raw TypeError

High-ROI fuzzing targets:
- Veto time, window length and tolerance (negative, non-integer, bool)
- Charge bound (NaN, Inf, negative)
- Channel maps (overlapping, duplicated, non-numeric)
"""
from __future__ import annotations

import math

import pytest
from hypothesis import assume, given, settings, strategies as st

from analysis.settings import ReconstructionSettings, settings_from_dict
from shared.errors import ConfigurationError

INTEGER_FIELDS = (
    "afterpulsing_veto_time",
    "tank_charge_window_length",
    "max_unique_water_pmts",
    "ncv_coincidence_tolerance",
)

weird_values = st.sampled_from([True, False, None, "10", 1.5, float("nan"), float("inf"), [], {}])


class TestIntegerFieldValidation:
    @given(field=st.sampled_from(INTEGER_FIELDS), value=st.integers(max_value=-1))
    @settings(max_examples=50, deadline=None)
    def test_negative_values_rejected(self, field, value):
        with pytest.raises(ConfigurationError):
            ReconstructionSettings(**{field: value})

    @given(field=st.sampled_from(INTEGER_FIELDS), value=st.integers(min_value=0, max_value=10**12))
    @settings(max_examples=50, deadline=None)
    def test_non_negative_values_accepted(self, field, value):
        assert getattr(ReconstructionSettings(**{field: value}), field) == value

    @given(field=st.sampled_from(INTEGER_FIELDS), value=weird_values)
    @settings(max_examples=50, deadline=None)
    def test_wrong_types_rejected(self, field, value):
        with pytest.raises(ConfigurationError):
            ReconstructionSettings(**{field: value})


class TestChargeBoundValidation:
    @given(value=st.floats(allow_nan=True, allow_infinity=True))
    @settings(max_examples=75, deadline=None)
    def test_only_nan_is_rejected(self, value):
        if math.isnan(value):
            with pytest.raises(ConfigurationError):
                ReconstructionSettings(max_tank_charge=value)
        else:
            assert ReconstructionSettings(max_tank_charge=value).max_tank_charge == value


class TestChannelMapValidation:
    @given(channels=st.lists(st.integers(min_value=0, max_value=50), max_size=20))
    @settings(max_examples=75, deadline=None)
    def test_auxiliary_channels_accepted_iff_disjoint_and_unique(self, channels):
        valid = len(set(channels)) == len(channels) and not {1, 2}.intersection(channels)
        if valid:
            assert ReconstructionSettings(auxiliary_channel_ids=channels).auxiliary_channel_ids == tuple(channels)
        else:
            with pytest.raises(ConfigurationError):
                ReconstructionSettings(auxiliary_channel_ids=channels)

    @given(ncv1=st.integers(min_value=0, max_value=5), ncv2=st.integers(min_value=0, max_value=5))
    @settings(max_examples=30, deadline=None)
    def test_primary_channels_must_differ(self, ncv1, ncv2):
        if ncv1 == ncv2:
            with pytest.raises(ConfigurationError):
                ReconstructionSettings(ncv1_channel_id=ncv1, ncv2_channel_id=ncv2)
        else:
            assert ReconstructionSettings(ncv1_channel_id=ncv1, ncv2_channel_id=ncv2).primary_channel_ids == (ncv1, ncv2)


class TestPayloadFuzzing:
    @given(
        payload=st.dictionaries(
            keys=st.sampled_from(INTEGER_FIELDS + ("max_tank_charge", "tank_charge_window_anchor")),
            values=st.one_of(st.integers(min_value=-5, max_value=5), st.floats(allow_nan=True), st.text(max_size=5), st.none()),
            max_size=4,
        )
    )
    @settings(max_examples=100, deadline=None)
    def test_payloads_build_or_raise_configuration_error(self, payload):
        try:
            built = settings_from_dict(payload)
        except ConfigurationError:
            return
        for key, value in payload.items():
            assert getattr(built, key) == value

    @given(key=st.text(min_size=1, max_size=12))
    @settings(max_examples=50, deadline=None)
    def test_unknown_keys_rejected(self, key):
        assume(key not in ReconstructionSettings.__dataclass_fields__)
        with pytest.raises(ConfigurationError):
            settings_from_dict({key: 1})
