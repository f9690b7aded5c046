from .checks import CHECKED_CONSTRAINTS, ValidationReport, Violation, validate
from .report import format_validation_report, write_validation_report

__all__ = [
    "CHECKED_CONSTRAINTS",
    "ValidationReport",
    "Violation",
    "format_validation_report",
    "validate",
    "write_validation_report",
]
