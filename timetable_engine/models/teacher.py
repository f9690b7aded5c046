from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Tuple


class RestrictionLevel(str, Enum):
    REQUIRED = "required"
    PREFERRED = "preferred"


@dataclass(frozen=True)
class AssignmentRestriction:
    day: str
    periods: FrozenSet[int]
    level: RestrictionLevel
    reason: str = ""

    def covers(self, day: str, period: int) -> bool:
        return self.day == day and period in self.periods


@dataclass(frozen=True)
class Teacher:
    id: str
    name: str
    subject_ids: FrozenSet[str]
    grades: FrozenSet[int]
    restrictions: Tuple[AssignmentRestriction, ...] = field(default_factory=tuple)

    def teaches(self, subject_id: str, grade: int) -> bool:
        return subject_id in self.subject_ids and grade in self.grades

    def restriction_at(self, day: str, period: int) -> RestrictionLevel | None:
        # required wins over preferred when both cover the same period
        level: RestrictionLevel | None = None
        for r in self.restrictions:
            if r.covers(day, period):
                if r.level is RestrictionLevel.REQUIRED:
                    return r.level
                level = r.level
        return level
