from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from ..errors import DataError, FrozenTimetableError
from .settings import ALL_DAYS
from .slot import Candidate, Slot, SlotKey


def _record_order(slot: Slot) -> tuple:
    day = ALL_DAYS.index(slot.day) if slot.day in ALL_DAYS else len(ALL_DAYS)
    return (slot.grade, slot.section, day, slot.period)


@dataclass
class Timetable:
    cells: Dict[SlotKey, Slot] = field(default_factory=dict)
    frozen: bool = False

    def add(self, slot: Slot) -> None:
        self._check_mutable()
        self.cells[slot.key] = slot

    def get(self, key: SlotKey) -> Slot | None:
        return self.cells.get(key)

    def assign(self, key: SlotKey, candidate: Candidate) -> None:
        self._check_mutable()
        slot = self.cells[key]
        slot.subject_id, slot.teacher_id, slot.classroom_id = candidate

    def clear(self, key: SlotKey) -> None:
        self._check_mutable()
        slot = self.cells[key]
        slot.subject_id = slot.teacher_id = slot.classroom_id = None

    def all(self) -> Iterable[Slot]:
        return self.cells.values()

    def assigned(self) -> Iterable[Slot]:
        return (s for s in self.cells.values() if s.is_assigned)

    def __len__(self) -> int:
        return len(self.cells)

    def copy(self, *, frozen: bool = False) -> "Timetable":
        cells = {
            k: Slot(s.grade, s.section, s.day, s.period, s.subject_id, s.teacher_id, s.classroom_id)
            for k, s in self.cells.items()
        }
        return Timetable(cells=cells, frozen=frozen)

    def freeze(self) -> "Timetable":
        """Return a detached copy that rejects further mutation."""
        return self.copy(frozen=True)

    def to_records(self) -> List[Dict[str, Any]]:
        return [
            {
                "grade": s.grade,
                "section": s.section,
                "day": s.day,
                "period": s.period,
                "subject_id": s.subject_id,
                "teacher_id": s.teacher_id,
                "classroom_id": s.classroom_id,
            }
            for s in sorted(self.cells.values(), key=_record_order)
        ]

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "Timetable":
        tt = cls()
        for r in records:
            try:
                slot = Slot(
                    grade=int(r["grade"]),
                    section=str(r["section"]),
                    day=str(r["day"]),
                    period=int(r["period"]),
                    subject_id=r.get("subject_id"),
                    teacher_id=r.get("teacher_id"),
                    classroom_id=r.get("classroom_id"),
                )
            except (KeyError, TypeError, ValueError) as e:
                raise DataError(f"Malformed timetable record {r!r}: {e}") from e
            if slot.key in tt.cells:
                raise DataError(f"Duplicate timetable record for {tuple(slot.key)}")
            tt.add(slot)
        return tt

    def _check_mutable(self) -> None:
        if self.frozen:
            raise FrozenTimetableError("Timetable is frozen; copy() it before editing")
