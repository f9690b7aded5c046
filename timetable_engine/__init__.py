"""Constraint-satisfaction school timetable engine."""

from .config import EngineConfig, load_config
from .errors import (
    ConfigError,
    DataError,
    FrozenTimetableError,
    IncompleteError,
    InternalInvariantError,
    SessionNotFoundError,
    StepBudgetExceeded,
    TimetableEngineError,
)
from .scheduler import GenerationOptions, GenerationResult, GenerationStatistics, build_grid, generate
from .session import SessionController, SessionStore
from .validate import ValidationReport, validate

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "DataError",
    "EngineConfig",
    "FrozenTimetableError",
    "GenerationOptions",
    "GenerationResult",
    "GenerationStatistics",
    "IncompleteError",
    "InternalInvariantError",
    "SessionController",
    "SessionNotFoundError",
    "SessionStore",
    "StepBudgetExceeded",
    "TimetableEngineError",
    "ValidationReport",
    "build_grid",
    "generate",
    "load_config",
    "validate",
]
