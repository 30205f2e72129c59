"""EventReconstructionEngine - per-minibuffer NCV event reconstruction.

The engine runs coincidence matching, tank charge aggregation and cut
classification for one minibuffer at a time and accumulates two output
sequences for the current run: candidate events and raw pulse records.

The afterpulsing veto cursor and the end time of the last minibuffer are the
only state shared between minibuffers. Both survive minibuffer boundaries
(afterpulses can cross them) and are reset by `begin_run()`. Minibuffers must
arrive in time order within a run.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, Iterable, List, Optional, Tuple

from analysis.settings import ReconstructionSettings
from shared.errors import ConfigurationError, PulseStreamError
from shared.models import (
    CandidateEvent,
    MinibufferContext,
    MinibufferResult,
    PulseRecord,
    RunInfo,
    TriggerLabel,
)

from .charge import ChargeAggregator
from .classifier import EventClassifier
from .coincidence import CoincidenceMatcher, minibuffer_offset


class ReconstructionStage(Enum):
    """Processing stage of the minibuffer currently (or last) handled."""
    START = auto()
    MATCHING = auto()
    AGGREGATING = auto()
    CLASSIFYING = auto()
    EMITTED = auto()


@dataclass
class RunSummary:
    run: int = 0
    subrun: int = 0
    minibuffers_processed: int = 0
    minibuffers_skipped: int = 0
    candidates: int = 0
    coincidences: int = 0
    passing_candidates: int = 0
    label_counts: Dict[str, int] = field(default_factory=dict)


class EventReconstructionEngine:
    """Reconstruct NCV candidate events minibuffer by minibuffer."""

    def __init__(
        self,
        settings: Optional[ReconstructionSettings] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        settings = settings if settings is not None else ReconstructionSettings()
        if not isinstance(settings, ReconstructionSettings):
            raise ConfigurationError(f"expected ReconstructionSettings, got {type(settings).__name__}")
        settings.validate()
        self._settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self._matcher = CoincidenceMatcher(settings)
        self._aggregator = ChargeAggregator(settings)
        self._classifier = EventClassifier(settings)
        self._run_info = RunInfo()
        self._previous_event_time: Optional[int] = None
        self._previous_minibuffer_end: Optional[int] = None
        self._stage = ReconstructionStage.START
        self._candidates: List[CandidateEvent] = []
        self._pulse_records: List[PulseRecord] = []
        self._processed = 0
        self._skipped = 0
        self._label_counts: Counter = Counter()

    @property
    def settings(self) -> ReconstructionSettings:
        return self._settings

    @property
    def stage(self) -> ReconstructionStage:
        return self._stage

    @property
    def run_info(self) -> RunInfo:
        return self._run_info

    @property
    def candidates(self) -> Tuple[CandidateEvent, ...]:
        return tuple(self._candidates)

    @property
    def pulse_records(self) -> Tuple[PulseRecord, ...]:
        return tuple(self._pulse_records)

    # -------------------------------------------------------------------------
    # Run boundaries
    # -------------------------------------------------------------------------

    def begin_run(self, run: int, subrun: int = 0) -> None:
        """Start a new run/subrun: reset the veto cursor and the output sequences."""
        position = self._settings.ncv_position_for_run(run)
        self._run_info = RunInfo(run=int(run), subrun=int(subrun), ncv_position=position)
        self._previous_event_time = None
        self._previous_minibuffer_end = None
        self._stage = ReconstructionStage.START
        self._candidates = []
        self._pulse_records = []
        self._processed = 0
        self._skipped = 0
        self._label_counts = Counter()
        self.logger.info("Begin run %s subrun %s (NCV position %s)", run, subrun, position)

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    def process_minibuffer(self, context: MinibufferContext) -> MinibufferResult:
        """Reconstruct one minibuffer and append its output to the run sequences.

        Raises:
            PulseStreamError: the pulse supply for this minibuffer is unsorted,
                malformed or earlier than the previous minibuffer. Engine state
                (stage included) is left as it was before the call.
        """
        offset = self._validate(context)
        self._set_stage(ReconstructionStage.START, context)
        settings = self._settings
        streams = context.streams

        self._set_stage(ReconstructionStage.MATCHING, context)
        ncv1 = settings.ncv1_channel_id
        match = self._matcher.find_ncv_events(
            context.stream(ncv1),
            ncv1,
            self._previous_event_time,
            streams,
            context,
            run_info=self._run_info,
        )

        self._set_stage(ReconstructionStage.AGGREGATING, context)
        charges = []
        for candidate in match.candidates:
            start, end = self._aggregator.analysis_window(candidate.event_time, context)
            charges.append(self._aggregator.compute_tank_charge(context.index, streams, start, end))

        self._set_stage(ReconstructionStage.CLASSIFYING, context)
        candidates = tuple(
            self._classifier.classify(candidate, charge)
            for candidate, charge in zip(match.candidates, charges)
        )
        records = self._pulse_records_for(context)

        self._previous_event_time = match.previous_event_time
        self._previous_minibuffer_end = offset + settings.minibuffer_span(context.hefty_mode)
        self._candidates.extend(candidates)
        self._pulse_records.extend(records)
        self._processed += 1
        self._label_counts[context.label.name] += 1
        self._set_stage(ReconstructionStage.EMITTED, context)
        return MinibufferResult(minibuffer_index=context.index, candidates=candidates, pulses=records)

    def process_run(
        self,
        minibuffers: Iterable[MinibufferContext],
        *,
        skip_invalid: bool = True,
    ) -> List[MinibufferResult]:
        """Process minibuffers in order, skipping (and logging) invalid ones unless told to re-raise."""
        results: List[MinibufferResult] = []
        for context in minibuffers:
            try:
                results.append(self.process_minibuffer(context))
            except PulseStreamError as exc:
                if not skip_invalid:
                    raise
                self._skipped += 1
                self.logger.warning("Skipping minibuffer: %s", exc)
        return results

    def summary(self) -> RunSummary:
        return RunSummary(
            run=self._run_info.run,
            subrun=self._run_info.subrun,
            minibuffers_processed=self._processed,
            minibuffers_skipped=self._skipped,
            candidates=len(self._candidates),
            coincidences=sum(1 for c in self._candidates if c.is_coincidence),
            passing_candidates=sum(1 for c in self._candidates if c.passes_all_cuts),
            label_counts=dict(sorted(self._label_counts.items())),
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _set_stage(self, stage: ReconstructionStage, context: MinibufferContext) -> None:
        self._stage = stage
        self.logger.debug("Minibuffer %s -> %s", context.index, stage.name)

    def _monitored_channels(self, context: MinibufferContext) -> Tuple[int, ...]:
        channels = set(self._settings.primary_channel_ids)
        channels.update(self._aggregator.auxiliary_channels(context.streams))
        return tuple(sorted(channels))

    def _pulse_records_for(self, context: MinibufferContext) -> Tuple[PulseRecord, ...]:
        in_spill = context.label is TriggerLabel.BEAM
        records = []
        for channel_id in self._monitored_channels(context):
            stream = context.streams.get(channel_id)
            if stream is None:
                continue
            records.extend(PulseRecord.from_pulse(p, context.index, in_spill) for p in stream)
        return tuple(records)

    def _validate(self, context: MinibufferContext) -> int:
        """Check the minibuffer against the run so far; return its run-relative offset."""
        if context.hefty_mode and context.start_time is None:
            raise PulseStreamError(context.index, None, "hefty minibuffer has no start_time")
        offset = minibuffer_offset(context, self._settings)
        if self._previous_minibuffer_end is not None and offset < self._previous_minibuffer_end:
            raise PulseStreamError(
                context.index,
                None,
                f"minibuffer starts at {offset} ns, before the previous one ended at {self._previous_minibuffer_end} ns",
            )
        span = self._settings.minibuffer_span(context.hefty_mode)
        for channel_id in context.channel_ids():
            stream = context.streams[channel_id]
            if stream.channel_id != channel_id:
                raise PulseStreamError(
                    context.index, channel_id, f"stream is labelled as channel {stream.channel_id}"
                )
            previous = None
            for pulse in stream:
                if pulse.start_time < 0:
                    raise PulseStreamError(context.index, channel_id, f"negative start time {pulse.start_time} ns")
                if pulse.start_time >= span:
                    raise PulseStreamError(
                        context.index, channel_id, f"start time {pulse.start_time} ns is past the {span} ns minibuffer"
                    )
                if previous is not None and pulse.start_time < previous:
                    raise PulseStreamError(
                        context.index,
                        channel_id,
                        f"pulses out of time order ({pulse.start_time} ns after {previous} ns)",
                    )
                previous = pulse.start_time
        return offset


__all__ = ["EventReconstructionEngine", "ReconstructionStage", "RunSummary"]
