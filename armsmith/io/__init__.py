"""Wire and data models."""

from armsmith.io.ser import (
    ArmStatistics,
    BanditDetail,
    ExperimentData,
    FallbackDetail,
    HashDetail,
    RewardEvent,
    SelectionReason,
    SelectionRequest,
    SelectionResult,
    StoppingDecision,
    VariantData,
)

__all__ = [
    "ArmStatistics",
    "BanditDetail",
    "ExperimentData",
    "FallbackDetail",
    "HashDetail",
    "RewardEvent",
    "SelectionReason",
    "SelectionRequest",
    "SelectionResult",
    "StoppingDecision",
    "VariantData",
]
