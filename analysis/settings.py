from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from shared.errors import ConfigurationError

logger = logging.getLogger(__name__)

WINDOW_ANCHORS = ("start", "centered")


@dataclass(frozen=True)
class ReconstructionSettings:
    """
    Cut and window parameters for NCV coincidence reconstruction.

    Times are integer nanoseconds, charges are nC. Settings are validated on
    construction so a bad configuration fails before any minibuffer is touched.
    """

    afterpulsing_veto_time: int = 10_000
    tank_charge_window_length: int = 40
    tank_charge_window_anchor: str = "start"
    max_unique_water_pmts: int = 20
    max_tank_charge: float = 3.0
    ncv_coincidence_tolerance: int = 40
    ncv1_channel_id: int = 1
    ncv2_channel_id: int = 2
    auxiliary_channel_ids: Optional[Tuple[int, ...]] = None
    minibuffer_duration: int = 80_000
    hefty_minibuffer_duration: int = 2_000
    ncv_positions: Tuple[Tuple[int, int, int], ...] = ()  # (first_run, last_run, position)

    def __post_init__(self) -> None:
        try:
            if self.auxiliary_channel_ids is not None:
                object.__setattr__(self, "auxiliary_channel_ids", tuple(int(ch) for ch in self.auxiliary_channel_ids))
            object.__setattr__(self, "ncv_positions", tuple(tuple(int(v) for v in row) for row in self.ncv_positions))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"malformed channel or run table: {exc}") from exc
        self.validate()

    def validate(self) -> None:
        for name in (
            "afterpulsing_veto_time",
            "tank_charge_window_length",
            "max_unique_water_pmts",
            "ncv_coincidence_tolerance",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
            if value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")
        for name in ("minibuffer_duration", "hefty_minibuffer_duration"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        if isinstance(self.max_tank_charge, bool) or not isinstance(self.max_tank_charge, (int, float)):
            raise ConfigurationError(f"max_tank_charge must be a number, got {self.max_tank_charge!r}")
        if math.isnan(self.max_tank_charge):
            raise ConfigurationError("max_tank_charge must not be NaN")
        if self.tank_charge_window_anchor not in WINDOW_ANCHORS:
            raise ConfigurationError(
                f"tank_charge_window_anchor must be one of {WINDOW_ANCHORS}, got {self.tank_charge_window_anchor!r}"
            )
        if self.ncv1_channel_id == self.ncv2_channel_id:
            raise ConfigurationError("ncv1_channel_id and ncv2_channel_id must differ")
        if self.auxiliary_channel_ids is not None:
            primaries = {self.ncv1_channel_id, self.ncv2_channel_id}
            overlap = primaries.intersection(self.auxiliary_channel_ids)
            if overlap:
                raise ConfigurationError(f"auxiliary_channel_ids overlap the primary channels: {sorted(overlap)}")
            if len(set(self.auxiliary_channel_ids)) != len(self.auxiliary_channel_ids):
                raise ConfigurationError("auxiliary_channel_ids contains duplicates")
        for row in self.ncv_positions:
            if len(row) != 3:
                raise ConfigurationError(f"ncv_positions rows must be (first_run, last_run, position), got {row!r}")
            if row[0] > row[1]:
                raise ConfigurationError(f"ncv_positions run range is reversed: {row!r}")

    @property
    def primary_channel_ids(self) -> Tuple[int, int]:
        return (self.ncv1_channel_id, self.ncv2_channel_id)

    def minibuffer_span(self, hefty_mode: bool) -> int:
        """Recorded length (ns) of a hefty or ordinary minibuffer."""
        return self.hefty_minibuffer_duration if hefty_mode else self.minibuffer_duration

    def ncv_position_for_run(self, run: int) -> Optional[int]:
        for first_run, last_run, position in self.ncv_positions:
            if first_run <= run <= last_run:
                return position
        return None


def settings_to_dict(settings: ReconstructionSettings) -> dict:
    """Convert settings to a JSON-serializable dict."""
    payload = asdict(settings)
    if settings.auxiliary_channel_ids is not None:
        payload["auxiliary_channel_ids"] = list(settings.auxiliary_channel_ids)
    payload["ncv_positions"] = [list(row) for row in settings.ncv_positions]
    return payload


def settings_from_dict(payload: Mapping[str, Any]) -> ReconstructionSettings:
    """Build settings from a dict, with defaults for missing fields."""
    if not isinstance(payload, Mapping):
        raise ConfigurationError(f"settings payload must be a mapping, got {type(payload).__name__}")
    known = {f.name for f in fields(ReconstructionSettings)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigurationError(f"unknown settings keys: {', '.join(unknown)}")
    try:
        return ReconstructionSettings(**dict(payload))
    except TypeError as exc:
        raise ConfigurationError(str(exc)) from exc


def load_settings(path: str | Path) -> ReconstructionSettings:
    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{path}: invalid JSON ({exc})") from exc
    settings = settings_from_dict(payload)
    logger.info("Loaded reconstruction settings from %s", path)
    return settings


def save_settings(settings: ReconstructionSettings, path: str | Path) -> None:
    path = Path(path)
    path.write_text(json.dumps(settings_to_dict(settings), indent=2, sort_keys=True) + "\n", encoding="utf-8")


__all__ = [
    "ReconstructionSettings",
    "WINDOW_ANCHORS",
    "settings_to_dict",
    "settings_from_dict",
    "load_settings",
    "save_settings",
]
