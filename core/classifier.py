from __future__ import annotations

from dataclasses import replace
from typing import Optional

from analysis.settings import ReconstructionSettings
from shared.models import CandidateEvent, TankCharge


def classify(
    candidate: CandidateEvent,
    aggregate_result: TankCharge,
    config: ReconstructionSettings,
) -> CandidateEvent:
    """Return `candidate` with its tank charge and cut flags filled in.

    Cuts are independent booleans. The afterpulse cut is always passed here
    because vetoed pulses never become candidates.
    """
    return replace(
        candidate,
        aggregate_charge=aggregate_result.total_charge,
        distinct_channel_count=aggregate_result.distinct_channel_count,
        passed_afterpulse_cut=True,
        passed_channel_count_cut=aggregate_result.distinct_channel_count <= config.max_unique_water_pmts,
        passed_charge_cut=aggregate_result.total_charge <= config.max_tank_charge,
    )


class EventClassifier:
    def __init__(self, settings: ReconstructionSettings) -> None:
        self._settings = settings

    def classify(
        self,
        candidate: CandidateEvent,
        aggregate_result: TankCharge,
        config: Optional[ReconstructionSettings] = None,
    ) -> CandidateEvent:
        return classify(candidate, aggregate_result, config or self._settings)


__all__ = ["EventClassifier", "classify"]
