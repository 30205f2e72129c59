"""
Unit tests for reconstruction settings: validation and JSON persistence.
"""
from __future__ import annotations

import json

import pytest

from analysis.settings import (
    ReconstructionSettings,
    load_settings,
    save_settings,
    settings_from_dict,
    settings_to_dict,
)
from shared.errors import ConfigurationError


class TestValidation:
    @pytest.mark.parametrize(
        "field",
        ["afterpulsing_veto_time", "tank_charge_window_length", "max_unique_water_pmts", "ncv_coincidence_tolerance"],
    )
    def test_negative_values_rejected(self, field):
        with pytest.raises(ConfigurationError, match=field):
            ReconstructionSettings(**{field: -1})

    @pytest.mark.parametrize("field", ["afterpulsing_veto_time", "ncv_coincidence_tolerance"])
    def test_non_integer_times_rejected(self, field):
        with pytest.raises(ConfigurationError):
            ReconstructionSettings(**{field: 12.5})

    def test_zero_values_allowed(self):
        settings = ReconstructionSettings(afterpulsing_veto_time=0, ncv_coincidence_tolerance=0)
        assert settings.afterpulsing_veto_time == 0

    @pytest.mark.parametrize("field", ["minibuffer_duration", "hefty_minibuffer_duration"])
    def test_durations_must_be_positive(self, field):
        with pytest.raises(ConfigurationError):
            ReconstructionSettings(**{field: 0})

    def test_nan_charge_bound_rejected(self):
        with pytest.raises(ConfigurationError):
            ReconstructionSettings(max_tank_charge=float("nan"))

    def test_unknown_anchor_rejected(self):
        with pytest.raises(ConfigurationError, match="anchor"):
            ReconstructionSettings(tank_charge_window_anchor="end")

    def test_primary_channels_must_differ(self):
        with pytest.raises(ConfigurationError):
            ReconstructionSettings(ncv1_channel_id=4, ncv2_channel_id=4)

    def test_auxiliary_channels_must_not_overlap_primaries(self):
        with pytest.raises(ConfigurationError, match="overlap"):
            ReconstructionSettings(auxiliary_channel_ids=(1, 10))
        with pytest.raises(ConfigurationError, match="duplicates"):
            ReconstructionSettings(auxiliary_channel_ids=(10, 10))

    def test_auxiliary_channels_are_normalized_to_a_tuple(self):
        settings = ReconstructionSettings(auxiliary_channel_ids=[12, "13"])
        assert settings.auxiliary_channel_ids == (12, 13)

    def test_malformed_run_table_rejected(self):
        with pytest.raises(ConfigurationError):
            ReconstructionSettings(ncv_positions=((1, 2),))
        with pytest.raises(ConfigurationError):
            ReconstructionSettings(ncv_positions=((5, 2, 1),))
        with pytest.raises(ConfigurationError):
            ReconstructionSettings(ncv_positions=(("a", 2, 1),))

    def test_ncv_position_lookup(self):
        settings = ReconstructionSettings(ncv_positions=[[1, 10, 1], [11, 20, 2]])
        assert settings.ncv_position_for_run(1) == 1
        assert settings.ncv_position_for_run(20) == 2
        assert settings.ncv_position_for_run(21) is None

    def test_minibuffer_span(self):
        settings = ReconstructionSettings(minibuffer_duration=1_000, hefty_minibuffer_duration=300)
        assert settings.minibuffer_span(hefty_mode=False) == 1_000
        assert settings.minibuffer_span(hefty_mode=True) == 300


class TestJsonPersistence:
    def test_roundtrip(self, tmp_path):
        settings = ReconstructionSettings(
            afterpulsing_veto_time=5_000,
            tank_charge_window_anchor="centered",
            auxiliary_channel_ids=(10, 11),
            ncv_positions=((1, 99, 3),),
        )
        path = tmp_path / "reco.json"
        save_settings(settings, path)

        assert json.loads(path.read_text())["auxiliary_channel_ids"] == [10, 11]
        assert load_settings(path) == settings

    def test_missing_keys_take_defaults(self):
        settings = settings_from_dict({"max_tank_charge": 1.5})
        assert settings.max_tank_charge == 1.5
        assert settings.afterpulsing_veto_time == ReconstructionSettings().afterpulsing_veto_time

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigurationError, match="verbosity"):
            settings_from_dict({"verbosity": 3})

    def test_non_mapping_rejected(self):
        with pytest.raises(ConfigurationError):
            settings_from_dict([1, 2, 3])

    def test_invalid_json_rejected(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="invalid JSON"):
            load_settings(path)

    def test_to_dict_is_json_serializable(self):
        json.dumps(settings_to_dict(ReconstructionSettings()))
