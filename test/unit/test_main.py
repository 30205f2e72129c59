from __future__ import annotations

import logging

from analysis.settings import ReconstructionSettings, save_settings
from ncvreco.main import build_parser, main


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.config is None
    assert args.minibuffers == 40
    assert not args.hefty


def test_main_runs_simulated_run(caplog):
    with caplog.at_level(logging.INFO, logger="ncvreco"):
        assert main(["-n", "5", "--seed", "3", "--run", "12"]) == 0
    assert "Run 12.0: 5 minibuffers" in caplog.text


def test_main_runs_hefty_mode_with_config(tmp_path, caplog):
    path = tmp_path / "reco.json"
    save_settings(ReconstructionSettings(afterpulsing_veto_time=2_000), path)
    with caplog.at_level(logging.INFO, logger="ncvreco"):
        assert main([str(path), "-n", "4", "--hefty"]) == 0
    assert "(0 skipped)" in caplog.text


def test_main_reports_bad_config(tmp_path, caplog):
    path = tmp_path / "bad.json"
    path.write_text('{"ncv_coincidence_tolerance": -4}')
    with caplog.at_level(logging.ERROR, logger="ncvreco"):
        assert main([str(path)]) == 2
    assert "Cannot configure reconstruction" in caplog.text


def test_main_reports_missing_config(tmp_path):
    assert main([str(tmp_path / "missing.json")]) == 2
