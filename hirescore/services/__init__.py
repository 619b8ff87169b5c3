"""Service layer for HireScore screening operations."""

from hirescore.services.batch_service import (
    BatchOrchestrator,
    BatchSettings,
    BatchSetupError,
)
from hirescore.services.screening_service import (
    prepare_candidate,
    score_prepared,
    screen_candidate,
)

__all__ = [
    "BatchOrchestrator",
    "BatchSettings",
    "BatchSetupError",
    "prepare_candidate",
    "score_prepared",
    "screen_candidate",
]
