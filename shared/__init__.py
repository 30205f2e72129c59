"""
Data structures shared by the pulse sources, the reconstruction core and its consumers.
"""

from .errors import ConfigurationError, PulseStreamError, ReconstructionError
from .models import CandidateEvent, MinibufferContext, Pulse, PulseRecord, PulseStream, TriggerLabel

__all__ = [
    "CandidateEvent",
    "ConfigurationError",
    "MinibufferContext",
    "Pulse",
    "PulseRecord",
    "PulseStream",
    "PulseStreamError",
    "ReconstructionError",
    "TriggerLabel",
]
