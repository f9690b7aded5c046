from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple


class SlotKey(NamedTuple):
    grade: int
    section: str
    day: str
    period: int


class Candidate(NamedTuple):
    subject_id: str
    teacher_id: str
    classroom_id: str | None


@dataclass
class Slot:
    grade: int
    section: str
    day: str
    period: int
    subject_id: str | None = None
    teacher_id: str | None = None
    classroom_id: str | None = None

    @property
    def key(self) -> SlotKey:
        return SlotKey(self.grade, self.section, self.day, self.period)

    @property
    def class_id(self) -> tuple[int, str]:
        return (self.grade, self.section)

    @property
    def is_assigned(self) -> bool:
        return self.subject_id is not None

    @property
    def candidate(self) -> Candidate | None:
        if self.subject_id is None or self.teacher_id is None:
            return None
        return Candidate(self.subject_id, self.teacher_id, self.classroom_id)
