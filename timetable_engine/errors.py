from __future__ import annotations


class TimetableEngineError(Exception):
    """Base class for every error raised by the engine."""


class ConfigError(TimetableEngineError):
    """School settings or engine configuration are invalid; generation cannot start."""


class DataError(TimetableEngineError):
    """A teacher/subject/classroom record could not be understood."""


class FrozenTimetableError(TimetableEngineError):
    pass


class SessionNotFoundError(TimetableEngineError):
    def __init__(self, session_id: str):
        super().__init__(f"Unknown or expired session: {session_id}")
        self.session_id = session_id


class IncompleteError(TimetableEngineError):
    def __init__(self, session_id: str, state: str):
        super().__init__(f"Session {session_id} has no result yet (state={state})")
        self.session_id = session_id
        self.state = state


class StepBudgetExceeded(TimetableEngineError):
    """Soft: a step ran out of work budget before its unit finished."""


class InternalInvariantError(TimetableEngineError):
    """Engine output breaks a hard constraint. Indicates a solver bug, not bad data."""

    def __init__(self, violations: list[str]):
        head = "; ".join(violations[:5])
        more = f" (+{len(violations) - 5} more)" if len(violations) > 5 else ""
        super().__init__(f"{len(violations)} hard violation(s) in engine output: {head}{more}")
        self.violations = list(violations)
