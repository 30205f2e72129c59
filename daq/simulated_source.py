# daq/simulated_source.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List

import numpy as np

from analysis.settings import ReconstructionSettings
from shared.models import MinibufferContext, Pulse, PulseStream, TriggerLabel

ADC_VOLTS_PER_COUNT = 2.0 / 4096  # 12-bit digitizer, 2 V full scale


@dataclass(frozen=True)
class SimulationParameters:
    """Rates and shapes used by SimulatedPulseSource. Times in ns, charges in nC."""

    n_tank_channels: int = 60
    first_tank_channel: int = 10
    ncv_event_rate: float = 2.0  # mean NCV captures per minibuffer
    ncv2_efficiency: float = 0.9  # probability the second NCV PMT sees the capture
    ncv_jitter_ns: int = 8
    afterpulse_probability: float = 0.3
    afterpulse_delay_ns: tuple[int, int] = (500, 6_000)
    dark_rate: float = 0.5  # uncorrelated NCV pulses per channel per minibuffer
    tank_dark_rate: float = 0.2
    muon_probability: float = 0.1  # chance an NCV capture is accompanied by a tank flash
    muon_channels: tuple[int, int] = (15, 50)
    group_count: int = 1
    label_cycle: tuple[str, ...] = ("BEAM", "COSMIC", "SOFT", "LED")


class SimulatedPulseSource:
    """
    Deterministic stand-in for the upstream hit finder.

    Generates minibuffers with NCV coincidences (two primary PMTs within a few
    ns), afterpulses trailing the first PMT, uncorrelated dark pulses, and the
    occasional tank-wide flash. The same seed always yields the same pulses.
    """

    def __init__(
        self,
        settings: ReconstructionSettings | None = None,
        params: SimulationParameters | None = None,
        *,
        seed: int = 0,
    ) -> None:
        self._settings = settings or ReconstructionSettings()
        self._params = params or SimulationParameters()
        self._seed = int(seed)

    @property
    def tank_channels(self) -> List[int]:
        p = self._params
        return list(range(p.first_tank_channel, p.first_tank_channel + p.n_tank_channels))

    def minibuffers(self, count: int, *, hefty_mode: bool = False) -> Iterator[MinibufferContext]:
        rng = np.random.default_rng(self._seed)
        duration = self._settings.minibuffer_span(hefty_mode)
        hefty_time = 0
        for index in range(count):
            label = TriggerLabel.parse(self._params.label_cycle[index % len(self._params.label_cycle)])
            start_time = None
            if hefty_mode:
                # hefty windows are separated by random dead time
                hefty_time += duration + int(rng.integers(1_000, 50_000))
                start_time = hefty_time
            pulses = self._generate(rng, duration)
            yield MinibufferContext(
                index=index,
                streams=self._to_streams(pulses, duration),
                label=label,
                hefty_mode=hefty_mode,
                start_time=start_time,
            )

    def _generate(self, rng: np.random.Generator, duration: int) -> Dict[int, List[Pulse]]:
        p = self._params
        ncv1, ncv2 = self._settings.primary_channel_ids
        tank = self.tank_channels
        out: Dict[int, List[Pulse]] = {ch: [] for ch in (ncv1, ncv2, *tank)}

        def add(channel: int, time: int, amplitude: float, charge: float) -> None:
            if 0 <= time < duration:
                raw = int(round(max(0.0, amplitude) / ADC_VOLTS_PER_COUNT))
                out[channel].append(Pulse(channel, int(time), float(amplitude), float(charge), raw))

        for _ in range(rng.poisson(p.ncv_event_rate)):
            t = int(rng.integers(0, duration))
            add(ncv1, t, rng.uniform(0.05, 0.4), rng.uniform(0.1, 1.0))
            if rng.random() < p.ncv2_efficiency:
                add(ncv2, t + int(rng.integers(-p.ncv_jitter_ns, p.ncv_jitter_ns + 1)),
                    rng.uniform(0.05, 0.4), rng.uniform(0.1, 1.0))
            if rng.random() < p.afterpulse_probability:
                add(ncv1, t + int(rng.integers(*p.afterpulse_delay_ns)), rng.uniform(0.01, 0.05), rng.uniform(0.02, 0.1))
            if rng.random() < p.muon_probability:
                n_hit = int(rng.integers(*p.muon_channels))
                for channel in rng.choice(tank, size=min(n_hit, len(tank)), replace=False):
                    add(int(channel), t + int(rng.integers(0, 20)), rng.uniform(0.02, 0.5), rng.uniform(0.05, 0.5))

        for channel in (ncv1, ncv2):
            for _ in range(rng.poisson(p.dark_rate)):
                add(channel, int(rng.integers(0, duration)), rng.uniform(0.005, 0.02), rng.uniform(0.01, 0.05))
        for channel in tank:
            for _ in range(rng.poisson(p.tank_dark_rate)):
                add(channel, int(rng.integers(0, duration)), rng.uniform(0.005, 0.02), rng.uniform(0.01, 0.05))
        return out

    def _to_streams(self, pulses: Dict[int, List[Pulse]], duration: int) -> Dict[int, PulseStream]:
        n_groups = max(1, self._params.group_count)
        edges = np.linspace(0, duration, n_groups + 1)
        streams: Dict[int, PulseStream] = {}
        for channel in sorted(pulses):
            ordered = sorted(pulses[channel], key=lambda pulse: pulse.start_time)
            if not ordered:
                continue
            groups: List[List[Pulse]] = [[] for _ in range(n_groups)]
            for pulse in ordered:
                slot = min(int(np.searchsorted(edges, pulse.start_time, side="right")) - 1, n_groups - 1)
                groups[slot].append(pulse)
            streams[channel] = PulseStream(channel_id=channel, groups=tuple(tuple(g) for g in groups if g))
        return streams


__all__ = ["SimulatedPulseSource", "SimulationParameters"]
