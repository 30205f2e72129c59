"""NCV PMT coincidence matching with an afterpulsing veto.

Each pulse on the triggering primary channel is a potential event. It is
dropped if it arrives within the afterpulsing veto time of the previous
accepted event; otherwise the closest pulse on the partner primary channel
(within the coincidence tolerance) is attached and a candidate is emitted.
"""
from __future__ import annotations

import logging
from typing import List, Mapping, NamedTuple, Optional

import numpy as np

from analysis.settings import ReconstructionSettings
from shared.models import (
    NOT_FIRED,
    CandidateEvent,
    MinibufferContext,
    PrimaryPulse,
    Pulse,
    PulseStream,
    RunInfo,
)

logger = logging.getLogger(__name__)


class MatchResult(NamedTuple):
    candidates: List[CandidateEvent]
    previous_event_time: Optional[int]


def minibuffer_offset(context: MinibufferContext, settings: ReconstructionSettings) -> int:
    """Run-relative time (ns) of the start of `context`.

    Hefty minibuffers are placed by the acquisition timestamp; ordinary
    minibuffers are contiguous and placed by index.
    """
    if context.hefty_mode:
        if context.start_time is None:
            raise ValueError(f"hefty minibuffer {context.index} has no start_time")
        return int(context.start_time)
    return context.index * settings.minibuffer_duration


def _closest_index(times: np.ndarray, time: int, tolerance: int) -> Optional[int]:
    if times.size == 0:
        return None
    lo = int(np.searchsorted(times, time - tolerance, side="left"))
    hi = int(np.searchsorted(times, time + tolerance, side="right"))
    if lo >= hi:
        return None
    offsets = np.abs(times[lo:hi] - time)
    # argmin keeps the first minimum, i.e. the earlier pulse on a tie
    return lo + int(np.argmin(offsets))


def find_coincident_pulse(time: int, stream: PulseStream, tolerance: int) -> Optional[Pulse]:
    """Return the pulse in `stream` closest to `time` within `tolerance`, or None."""
    index = _closest_index(stream.start_times(), time, tolerance)
    if index is None:
        return None
    return stream.pulses()[index]


class CoincidenceMatcher:
    def __init__(self, settings: ReconstructionSettings) -> None:
        self._settings = settings

    @property
    def settings(self) -> ReconstructionSettings:
        return self._settings

    def partner_channel(self, primary_channel_id: int) -> int:
        ncv1, ncv2 = self._settings.primary_channel_ids
        if primary_channel_id == ncv1:
            return ncv2
        if primary_channel_id == ncv2:
            return ncv1
        raise ValueError(f"channel {primary_channel_id} is not a primary channel")

    def find_ncv_events(
        self,
        pulses_channel1: PulseStream,
        primary_channel_id: int,
        previous_event_time: Optional[int],
        all_channel_pulses: Mapping[int, PulseStream],
        context: MinibufferContext,
        run_info: RunInfo = RunInfo(),
    ) -> MatchResult:
        """Scan the triggering primary channel for new candidate events.

        `previous_event_time` is the run-relative time of the last accepted
        event (None at the start of a run). The updated cursor is returned
        with the candidates and must be fed into the next call.
        """
        settings = self._settings
        partner = all_channel_pulses.get(self.partner_channel(primary_channel_id))
        if partner is None:
            partner = PulseStream(channel_id=self.partner_channel(primary_channel_id))
        partner_times = partner.start_times()
        partner_pulses = partner.pulses()
        offset = minibuffer_offset(context, settings)

        candidates: List[CandidateEvent] = []
        for pulse in pulses_channel1:
            event_time = offset + pulse.start_time
            gap = None if previous_event_time is None else event_time - previous_event_time
            if gap is not None and gap < settings.afterpulsing_veto_time:
                logger.debug(
                    "Vetoed pulse at %s ns in minibuffer %s (%s ns after previous event)",
                    pulse.start_time,
                    context.index,
                    gap,
                )
                continue

            match = _closest_index(partner_times, pulse.start_time, settings.ncv_coincidence_tolerance)
            primary2 = NOT_FIRED if match is None else PrimaryPulse.from_pulse(partner_pulses[match])

            candidates.append(
                CandidateEvent(
                    run=run_info.run,
                    subrun=run_info.subrun,
                    minibuffer_index=context.index,
                    event_index=len(candidates),
                    event_time=pulse.start_time,
                    absolute_time=event_time,
                    primary1=PrimaryPulse.from_pulse(pulse),
                    primary2=primary2,
                    time_since_previous_event=gap,
                    label=context.label,
                    hefty_mode=context.hefty_mode,
                    hefty_trigger_mask=context.hefty_trigger_mask,
                    ncv_position=run_info.ncv_position,
                )
            )
            previous_event_time = event_time

        return MatchResult(candidates, previous_event_time)


__all__ = ["CoincidenceMatcher", "MatchResult", "find_coincident_pulse", "minibuffer_offset"]
