# Re-export common types
from .classroom import Classroom
from .settings import ALL_DAYS, SATURDAY, WEEKDAYS, SchoolSettings
from .slot import Candidate, Slot, SlotKey
from .snapshot import DomainModel, SchoolSnapshot
from .subject import Subject
from .teacher import AssignmentRestriction, RestrictionLevel, Teacher
from .timetable import Timetable

__all__ = [
    "ALL_DAYS",
    "SATURDAY",
    "WEEKDAYS",
    "AssignmentRestriction",
    "Candidate",
    "Classroom",
    "DomainModel",
    "RestrictionLevel",
    "SchoolSettings",
    "SchoolSnapshot",
    "Slot",
    "SlotKey",
    "Subject",
    "Teacher",
    "Timetable",
]
