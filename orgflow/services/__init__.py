from orgflow.services import (
    scoring_service,
    skill_service,
    termination_service,
    user_service,
    workflow_engine,
    workflow_service,
)


__all__ = [
    "scoring_service",
    "skill_service",
    "termination_service",
    "user_service",
    "workflow_engine",
    "workflow_service",
]
