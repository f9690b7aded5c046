from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Mapping


@dataclass(frozen=True)
class Subject:
    id: str
    name: str
    grades: FrozenSet[int]
    weekly_hours: Mapping[int, int] = field(default_factory=dict)
    requires_special_classroom: bool = False
    classroom_type: str | None = None

    def applies_to(self, grade: int) -> bool:
        return grade in self.grades

    def hours_for(self, grade: int) -> int:
        if not self.applies_to(grade):
            return 0
        return int(self.weekly_hours.get(grade, 0))
