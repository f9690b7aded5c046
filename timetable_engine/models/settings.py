from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Tuple

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
SATURDAY = "Saturday"
ALL_DAYS = WEEKDAYS + [SATURDAY]


@dataclass(frozen=True)
class SchoolSettings:
    sections: Mapping[int, List[str]]
    periods_per_day: int
    saturday_periods: int = 0
    free_periods: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)

    @property
    def grades(self) -> List[int]:
        return sorted(self.sections)

    @property
    def days(self) -> List[str]:
        if self.saturday_periods > 0:
            return list(ALL_DAYS)
        return list(WEEKDAYS)

    def periods_on(self, day: str) -> int:
        return self.saturday_periods if day == SATURDAY else self.periods_per_day

    def classes(self) -> List[Tuple[int, str]]:
        return [(g, s) for g in self.grades for s in self.sections[g]]

    def slots_per_class(self) -> int:
        return sum(self.periods_on(d) for d in self.days)

