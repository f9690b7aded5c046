from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from ortools.sat.python import cp_model

from ..models import DomainModel, RestrictionLevel, SchoolSettings, SlotKey
from ..scheduler.grid import iter_slot_keys


@dataclass
class CapacityBound:
    status: str
    required_lessons: int
    max_placeable: int | None
    per_class: Dict[Tuple[int, str], int] = field(default_factory=dict)

    @property
    def proven(self) -> bool:
        return self.status == "OPTIMAL"

    @property
    def fully_schedulable(self) -> bool | None:
        if self.max_placeable is None or not self.proven:
            return None
        return self.max_placeable >= self.required_lessons

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "required_lessons": self.required_lessons,
            "max_placeable": self.max_placeable,
            "fully_schedulable": self.fully_schedulable,
            "per_class": {f"{g}-{s}": n for (g, s), n in sorted(self.per_class.items())},
        }


def capacity_bound(
    domain: DomainModel,
    settings: SchoolSettings,
    *,
    normal_classroom_type: str = "normal",
    timeout_sec: float = 10.0,
    workers: int = 1,
) -> CapacityBound:
    """Upper bound on the lessons any timetable can place, from a CP-SAT relaxation.

    Hard rules only: one lesson per slot, no teacher in two places, ``required``
    restrictions, qualifications, weekly hours and classroom unit counts. Soft
    penalties are ignored, so the bound is what the backtracking engine is
    measured against.
    """
    logger = logging.getLogger(__name__)
    model = cp_model.CpModel()
    rooms_by_type: Dict[str, int] = defaultdict(int)
    for c in domain.classrooms:
        rooms_by_type[c.type] += c.count

    X: Dict[Tuple[SlotKey, str, str], cp_model.IntVar] = {}
    by_slot: Dict[SlotKey, List[cp_model.IntVar]] = defaultdict(list)
    by_teacher_time: Dict[Tuple[str, str, int], List[cp_model.IntVar]] = defaultdict(list)
    by_class_subject: Dict[Tuple[int, str, str], List[cp_model.IntVar]] = defaultdict(list)
    by_room_time: Dict[Tuple[str, str, int], List[cp_model.IntVar]] = defaultdict(list)

    required = 0
    for g in settings.grades:
        for s in domain.subjects:
            required += s.hours_for(g) * len(settings.sections[g])

    for key in iter_slot_keys(settings):
        for s in domain.subjects:
            if s.hours_for(key.grade) <= 0:
                continue
            if s.requires_special_classroom:
                room_type: str | None = s.classroom_type
                if not rooms_by_type.get(room_type or ""):
                    continue
            else:
                room_type = normal_classroom_type if rooms_by_type.get(normal_classroom_type) else None
            for t in domain.teachers:
                if not t.teaches(s.id, key.grade):
                    continue
                if t.restriction_at(key.day, key.period) is RestrictionLevel.REQUIRED:
                    continue
                var = model.NewBoolVar(f"x[{key.grade},{key.section},{key.day},{key.period},{s.id},{t.id}]")
                X[(key, s.id, t.id)] = var
                by_slot[key].append(var)
                by_teacher_time[(t.id, key.day, key.period)].append(var)
                by_class_subject[(key.grade, key.section, s.id)].append(var)
                if room_type is not None:
                    by_room_time[(room_type, key.day, key.period)].append(var)

    for terms in by_slot.values():
        model.Add(sum(terms) <= 1)
    for terms in by_teacher_time.values():
        model.Add(sum(terms) <= 1)
    subjects = domain.subjects_by_id()
    for (g, _, sid), terms in by_class_subject.items():
        model.Add(sum(terms) <= subjects[sid].hours_for(g))
    for (room_type, _, _), terms in by_room_time.items():
        model.Add(sum(terms) <= rooms_by_type[room_type])
    model.Maximize(sum(X.values()))

    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(timeout_sec)
    solver.parameters.num_search_workers = int(workers)
    status = solver.Solve(model)
    name = solver.StatusName(status)
    logger.info(f"Capacity model: {len(X)} vars, status={name}")

    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        return CapacityBound(status=name, required_lessons=required, max_placeable=None)

    per_class: Dict[Tuple[int, str], int] = defaultdict(int)
    for (key, _, _), var in X.items():
        if solver.Value(var):
            per_class[(key.grade, key.section)] += 1
    # FEASIBLE under a time limit: the proven bound is the objective bound, not the value
    best = int(solver.ObjectiveValue()) if status == cp_model.OPTIMAL else int(solver.BestObjectiveBound())
    return CapacityBound(
        status=name,
        required_lessons=required,
        max_placeable=best,
        per_class=dict(per_class),
    )
