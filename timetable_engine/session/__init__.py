from .controller import (
    CreateResult,
    GenerationSession,
    Progress,
    SessionController,
    SessionResult,
    SessionState,
    StepResult,
)
from .store import SessionStore

__all__ = [
    "CreateResult",
    "GenerationSession",
    "Progress",
    "SessionController",
    "SessionResult",
    "SessionState",
    "SessionStore",
    "StepResult",
]
