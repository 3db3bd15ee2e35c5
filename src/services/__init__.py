from src.services import (
    analytics_service,
    assignment_store,
    bonus_service,
    distribution_service,
    leveling_service,
    rotation_service,
)


__all__ = [
    "analytics_service",
    "assignment_store",
    "bonus_service",
    "distribution_service",
    "leveling_service",
    "rotation_service",
]
