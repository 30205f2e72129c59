from __future__ import annotations

from typing import Mapping, Optional, Tuple

import numpy as np

from analysis.settings import ReconstructionSettings
from shared.models import MinibufferContext, PulseStream, TankCharge


class ChargeAggregator:
    """
    Sums tank (auxiliary channel) charge in a time window around a candidate.

    Genuine neutron captures in the NCV are localized; a large tank charge or
    many hit tank PMTs in the same window points at a through-going muon or a
    noisy period instead.
    """

    def __init__(self, settings: ReconstructionSettings) -> None:
        self._settings = settings

    def auxiliary_channels(self, all_channel_pulses: Mapping[int, PulseStream]) -> Tuple[int, ...]:
        configured = self._settings.auxiliary_channel_ids
        if configured is not None:
            return tuple(sorted(configured))
        primaries = set(self._settings.primary_channel_ids)
        return tuple(sorted(ch for ch in all_channel_pulses if ch not in primaries))

    def analysis_window(self, event_time: int, context: Optional[MinibufferContext] = None) -> Tuple[int, int]:
        """Closed window [start, end] (ns, minibuffer-relative) for a candidate at `event_time`."""
        settings = self._settings
        length = settings.tank_charge_window_length
        if settings.tank_charge_window_anchor == "centered":
            start = event_time - length // 2
            end = start + length
        else:
            start = event_time
            end = event_time + length
        if context is not None:
            span = settings.minibuffer_span(context.hefty_mode)
            start = max(start, 0)
            end = min(end, span)
        return start, end

    def compute_tank_charge(
        self,
        minibuffer_index: int,
        all_channel_pulses: Mapping[int, PulseStream],
        window_start: int,
        window_end: int,
    ) -> TankCharge:
        """Total charge and number of distinct channels with a pulse in [window_start, window_end].

        `minibuffer_index` only identifies the minibuffer the pulse map belongs
        to; the window is minibuffer-relative.
        """
        total = 0.0
        n_channels = 0
        if window_end < window_start:
            return TankCharge(total, n_channels)
        for channel_id in self.auxiliary_channels(all_channel_pulses):
            stream = all_channel_pulses.get(channel_id)
            if stream is None or len(stream) == 0:
                continue
            times = stream.start_times()
            lo = int(np.searchsorted(times, window_start, side="left"))
            hi = int(np.searchsorted(times, window_end, side="right"))
            if hi <= lo:
                continue
            total += float(np.sum(stream.charges()[lo:hi]))
            n_channels += 1
        return TankCharge(total, n_channels)


__all__ = ["ChargeAggregator"]
