"""Run NCV event reconstruction over simulated minibuffers and log a run summary."""

from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

from analysis.settings import ReconstructionSettings, load_settings
from core.engine import EventReconstructionEngine
from daq.simulated_source import SimulatedPulseSource
from shared.errors import ReconstructionError

logger = logging.getLogger("ncvreco")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("config", nargs="?", default=None, help="JSON reconstruction settings (defaults if omitted)")
    parser.add_argument("-n", "--minibuffers", type=int, default=40, help="number of minibuffers to simulate (40)")
    parser.add_argument("-s", "--seed", type=int, default=0, help="simulation seed (0)")
    parser.add_argument("--run", type=int, default=1, help="run number (1)")
    parser.add_argument("--subrun", type=int, default=0, help="subrun number (0)")
    parser.add_argument("--hefty", action="store_true", help="simulate hefty-mode minibuffers")
    parser.add_argument("-d", "--debug", action="store_true", help="switch on debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args.config) if args.config else ReconstructionSettings()
        engine = EventReconstructionEngine(settings)
    except (OSError, ReconstructionError) as exc:
        logger.error("Cannot configure reconstruction: %s", exc)
        return 2

    source = SimulatedPulseSource(settings, seed=args.seed)
    engine.begin_run(args.run, args.subrun)
    engine.process_run(source.minibuffers(args.minibuffers, hefty_mode=args.hefty))

    summary = engine.summary()
    logger.info(
        "Run %s.%s: %s minibuffers (%s skipped), %s candidates, %s coincidences, %s passing all cuts",
        summary.run,
        summary.subrun,
        summary.minibuffers_processed,
        summary.minibuffers_skipped,
        summary.candidates,
        summary.coincidences,
        summary.passing_candidates,
    )
    logger.info("Minibuffers per trigger label: %s", summary.label_counts)
    logger.info("Pulse records: %s", len(engine.pulse_records))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
