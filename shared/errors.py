"""Exception types raised by the reconstruction pipeline."""

from __future__ import annotations


class ReconstructionError(Exception):
    """Base class for reconstruction failures."""


class ConfigurationError(ReconstructionError, ValueError):
    """Raised when reconstruction settings are invalid.

    Surfaced at engine construction (or when a settings file is loaded), never
    deferred into per-minibuffer processing.
    """


class PulseStreamError(ReconstructionError, ValueError):
    """Raised when a minibuffer violates the pulse-stream preconditions.

    The pulse supply must be non-negative and time-sorted on every channel.
    The error is fatal to the offending minibuffer only; the caller decides
    whether to skip it or abort the run.
    """

    def __init__(self, minibuffer_index: int, channel_id: int | None, message: str) -> None:
        self.minibuffer_index = minibuffer_index
        self.channel_id = channel_id
        self.detail = message
        where = f"minibuffer {minibuffer_index}"
        if channel_id is not None:
            where += f", channel {channel_id}"
        super().__init__(f"{where}: {message}")

    def __reduce__(self):
        return (self.__class__, (self.minibuffer_index, self.channel_id, self.detail))


__all__ = ["ReconstructionError", "ConfigurationError", "PulseStreamError"]
