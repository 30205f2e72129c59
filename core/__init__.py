"""NCV event reconstruction core."""

from .charge import ChargeAggregator
from .classifier import EventClassifier, classify
from .coincidence import CoincidenceMatcher, MatchResult, find_coincident_pulse, minibuffer_offset
from .engine import EventReconstructionEngine, ReconstructionStage, RunSummary
from shared.models import (
    CandidateEvent,
    MinibufferContext,
    MinibufferResult,
    Pulse,
    PulseRecord,
    PulseStream,
    TankCharge,
    TriggerLabel,
)

__all__ = [
    "Pulse",
    "PulseStream",
    "MinibufferContext",
    "TriggerLabel",
    "CandidateEvent",
    "PulseRecord",
    "MinibufferResult",
    "TankCharge",
    "CoincidenceMatcher",
    "MatchResult",
    "find_coincident_pulse",
    "minibuffer_offset",
    "ChargeAggregator",
    "EventClassifier",
    "classify",
    "EventReconstructionEngine",
    "ReconstructionStage",
    "RunSummary",
]
