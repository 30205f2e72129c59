from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, NamedTuple, Optional, Sequence, Tuple

import numpy as np


def _freeze_groups(groups: Iterable[Iterable["Pulse"]]) -> Tuple[Tuple["Pulse", ...], ...]:
    return tuple(tuple(group) for group in groups)


# ----------------------------
# Acquisition inputs
# ----------------------------

class TriggerLabel(enum.Enum):
    """Trigger type attached to each minibuffer by the acquisition metadata."""

    UNKNOWN = 0
    BEAM = 1
    SOURCE = 2
    COSMIC = 3
    SOFT = 4
    LED = 5

    @classmethod
    def parse(cls, value: "TriggerLabel | str | int") -> "TriggerLabel":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"unknown trigger label {value!r}") from None
        return cls(int(value))


@dataclass(frozen=True)
class Pulse:
    """One pulse found by the upstream pulse finder on a single channel."""

    channel_id: int
    start_time: int  # ns since minibuffer start
    amplitude: float  # V
    charge: float  # nC
    raw_amplitude: int = 0  # ADC counts

    def __post_init__(self) -> None:
        if self.raw_amplitude < 0:
            raise ValueError("raw_amplitude must be non-negative")


@dataclass(frozen=True)
class PulseStream:
    """
    Ordered pulses recorded on one channel during one minibuffer.

    Pulses are kept in the pulse groups produced by the hit finder (one group
    per contiguous acquisition sub-window). The stream never reorders its
    contents; time ordering is a precondition enforced by the engine.
    """

    channel_id: int
    groups: Tuple[Tuple[Pulse, ...], ...] = ()

    def __post_init__(self) -> None:
        groups = _freeze_groups(self.groups)
        for group in groups:
            for pulse in group:
                if pulse.channel_id != self.channel_id:
                    raise ValueError(
                        f"pulse from channel {pulse.channel_id} stored in stream for channel {self.channel_id}"
                    )
        object.__setattr__(self, "groups", groups)

    @classmethod
    def from_pulses(cls, channel_id: int, pulses: Iterable[Pulse]) -> "PulseStream":
        return cls(channel_id=channel_id, groups=(tuple(pulses),))

    def __iter__(self) -> Iterator[Pulse]:
        for group in self.groups:
            yield from group

    def __len__(self) -> int:
        return sum(len(group) for group in self.groups)

    def pulses(self) -> Tuple[Pulse, ...]:
        return tuple(self)

    def start_times(self) -> np.ndarray:
        return np.fromiter((p.start_time for p in self), dtype=np.int64, count=len(self))

    def charges(self) -> np.ndarray:
        return np.fromiter((p.charge for p in self), dtype=np.float64, count=len(self))

    def is_time_ordered(self) -> bool:
        times = self.start_times()
        return bool(np.all(times[1:] >= times[:-1])) if times.size > 1 else True


@dataclass(frozen=True)
class MinibufferContext:
    """All pulses of one minibuffer plus the acquisition metadata describing it."""

    index: int
    streams: Mapping[int, PulseStream] = field(default_factory=dict)
    label: TriggerLabel = TriggerLabel.UNKNOWN
    hefty_mode: bool = False
    start_time: Optional[int] = None  # absolute ns, required in hefty mode
    hefty_trigger_mask: int = 0

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError("minibuffer index must be non-negative")
        object.__setattr__(self, "streams", dict(self.streams))
        object.__setattr__(self, "label", TriggerLabel.parse(self.label))

    def stream(self, channel_id: int) -> PulseStream:
        """Return the stream for `channel_id`, or an empty stream if the channel saw nothing."""
        found = self.streams.get(channel_id)
        if found is None:
            return PulseStream(channel_id=channel_id)
        return found

    def channel_ids(self) -> Tuple[int, ...]:
        return tuple(sorted(self.streams))


# ----------------------------
# Reconstruction outputs
# ----------------------------

@dataclass(frozen=True)
class PrimaryPulse:
    """Primary-channel pulse summary stored on a candidate."""

    fired: bool
    start_time: Optional[int] = None
    amplitude: float = 0.0
    charge: float = 0.0
    raw_amplitude: int = 0

    @classmethod
    def from_pulse(cls, pulse: Pulse) -> "PrimaryPulse":
        return cls(
            fired=True,
            start_time=pulse.start_time,
            amplitude=pulse.amplitude,
            charge=pulse.charge,
            raw_amplitude=pulse.raw_amplitude,
        )

    @classmethod
    def not_fired(cls) -> "PrimaryPulse":
        return NOT_FIRED


NOT_FIRED = PrimaryPulse(fired=False)


class RunInfo(NamedTuple):
    run: int = 0
    subrun: int = 0
    ncv_position: Optional[int] = None


class TankCharge(NamedTuple):
    total_charge: float
    distinct_channel_count: int


@dataclass(frozen=True)
class CandidateEvent:
    """
    NCV coincidence candidate.

    Attributes:
        run, subrun: Run identifiers set by the last run-boundary notification.
        minibuffer_index: Minibuffer the candidate was found in.
        event_index: Position of the candidate within its minibuffer.
        event_time: Start time (ns) of the NCV PMT 1 pulse, minibuffer-relative.
        absolute_time: Run-relative time (ns) used for the afterpulsing veto.
        primary1, primary2: Matched primary pulses. `primary2` is `NOT_FIRED`
            when no coincident pulse lies within tolerance.
        aggregate_charge: Tank charge (nC) in the analysis window.
        distinct_channel_count: Number of unique tank PMTs contributing.
        time_since_previous_event: Gap (ns) to the previous accepted event in
            the run, or None for the first one.
    """

    run: int
    subrun: int
    minibuffer_index: int
    event_index: int
    event_time: int
    absolute_time: int
    primary1: PrimaryPulse
    primary2: PrimaryPulse = NOT_FIRED
    aggregate_charge: float = 0.0
    distinct_channel_count: int = 0
    time_since_previous_event: Optional[int] = None
    label: TriggerLabel = TriggerLabel.UNKNOWN
    hefty_mode: bool = False
    hefty_trigger_mask: int = 0
    ncv_position: Optional[int] = None
    passed_afterpulse_cut: bool = False
    passed_channel_count_cut: bool = False
    passed_charge_cut: bool = False

    @property
    def is_coincidence(self) -> bool:
        return self.primary1.fired and self.primary2.fired

    @property
    def passes_all_cuts(self) -> bool:
        return self.passed_afterpulse_cut and self.passed_channel_count_cut and self.passed_charge_cut


@dataclass(frozen=True)
class PulseRecord:
    """Raw per-pulse diagnostic row, emitted for every pulse on a monitored channel."""

    channel_id: int
    minibuffer_index: int
    start_time: int
    amplitude: float
    charge: float
    raw_amplitude: int
    in_spill: bool

    @classmethod
    def from_pulse(cls, pulse: Pulse, minibuffer_index: int, in_spill: bool) -> "PulseRecord":
        return cls(
            channel_id=pulse.channel_id,
            minibuffer_index=minibuffer_index,
            start_time=pulse.start_time,
            amplitude=pulse.amplitude,
            charge=pulse.charge,
            raw_amplitude=pulse.raw_amplitude,
            in_spill=in_spill,
        )


@dataclass(frozen=True)
class MinibufferResult:
    """Everything the engine emitted for one minibuffer."""

    minibuffer_index: int
    candidates: Tuple[CandidateEvent, ...] = ()
    pulses: Tuple[PulseRecord, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "candidates", tuple(self.candidates))
        object.__setattr__(self, "pulses", tuple(self.pulses))


def make_streams(pulses: Sequence[Pulse]) -> dict[int, PulseStream]:
    """Group a flat, time-ordered pulse list into single-group streams keyed by channel."""
    by_channel: dict[int, list[Pulse]] = {}
    for pulse in pulses:
        by_channel.setdefault(pulse.channel_id, []).append(pulse)
    return {ch: PulseStream.from_pulses(ch, items) for ch, items in sorted(by_channel.items())}


__all__ = [
    "TriggerLabel",
    "Pulse",
    "PulseStream",
    "MinibufferContext",
    "PrimaryPulse",
    "NOT_FIRED",
    "RunInfo",
    "TankCharge",
    "CandidateEvent",
    "PulseRecord",
    "MinibufferResult",
    "make_streams",
]
