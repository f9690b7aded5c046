"""Hard/soft constraint checks backed by an incrementally maintained occupancy index.

The search calls these thousands of times per run, so the per-candidate checks
never rescan the grid: each is a dictionary or set lookup against
``OccupancyIndex``, which is updated on each assign/retract. The one look-ahead,
``SearchState.viable``, walks the open slots once per decision.
"""
from __future__ import annotations

from collections import Counter, defaultdict
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Set, Tuple

from ..models import (
    ALL_DAYS,
    Candidate,
    Classroom,
    DomainModel,
    RestrictionLevel,
    SchoolSettings,
    SlotKey,
    Subject,
    Teacher,
    Timetable,
)

ClassId = Tuple[int, str]
Time = Tuple[str, int]


class OccupancyIndex:
    def __init__(self) -> None:
        # (teacher, day, period)
        self.teacher_busy: Set[Tuple[str, str, int]] = set()
        # (classroom, day, period) -> lessons using it
        self.room_usage: Counter = Counter()
        # (grade, section, subject) -> lessons still to place
        self.remaining: Counter = Counter()
        # (grade, section) -> lessons still to place / slots not yet decided
        self.class_remaining: Counter = Counter()
        self.undecided: Counter = Counter()

    def place(self, key: SlotKey, cand: Candidate) -> None:
        self.teacher_busy.add((cand.teacher_id, key.day, key.period))
        if cand.classroom_id is not None:
            self.room_usage[(cand.classroom_id, key.day, key.period)] += 1
        self.remaining[(key.grade, key.section, cand.subject_id)] -= 1
        self.class_remaining[(key.grade, key.section)] -= 1

    def remove(self, key: SlotKey, cand: Candidate) -> None:
        self.teacher_busy.discard((cand.teacher_id, key.day, key.period))
        if cand.classroom_id is not None:
            room_key = (cand.classroom_id, key.day, key.period)
            self.room_usage[room_key] -= 1
            if self.room_usage[room_key] <= 0:
                del self.room_usage[room_key]
        self.remaining[(key.grade, key.section, cand.subject_id)] += 1
        self.class_remaining[(key.grade, key.section)] += 1


class SearchState:
    """Grid plus the lookups and index the constraint checks read from."""

    def __init__(
        self,
        grid: Timetable,
        settings: SchoolSettings,
        domain: DomainModel,
        *,
        normal_classroom_type: str = "normal",
    ) -> None:
        self.grid = grid
        self.settings = settings
        self.domain = domain
        self.normal_classroom_type = normal_classroom_type
        self.teachers: Dict[str, Teacher] = domain.teachers_by_id()
        self.subjects: Dict[str, Subject] = domain.subjects_by_id()
        self.classrooms: Dict[str, Classroom] = domain.classrooms_by_id()
        self.index = OccupancyIndex()
        self.decided: Set[SlotKey] = set()

        self.class_keys: Dict[ClassId, List[SlotKey]] = defaultdict(list)
        for key in sorted(grid.cells, key=lambda k: (k.grade, k.section, _day_pos(k.day), k.period)):
            self.class_keys[(key.grade, key.section)].append(key)

        self.subjects_by_grade: Dict[int, List[Subject]] = {
            g: sorted((s for s in domain.subjects if s.hours_for(g) > 0), key=lambda s: s.id)
            for g in settings.grades
        }
        self.teachers_for: Dict[Tuple[str, int], List[str]] = {}
        for g, subjects in self.subjects_by_grade.items():
            for s in subjects:
                self.teachers_for[(s.id, g)] = sorted(t.id for t in domain.teachers if t.teaches(s.id, g))
        normal_rooms = sorted(c.id for c in domain.classrooms if c.type == normal_classroom_type)
        self.rooms_for: Dict[str, List[str | None]] = {}
        for s in domain.subjects:
            if s.requires_special_classroom:
                self.rooms_for[s.id] = sorted(
                    c.id for c in domain.classrooms if c.type == s.classroom_type
                )
            else:
                # no normal rooms on record: lessons stay in the homeroom
                self.rooms_for[s.id] = list(normal_rooms) or [None]

        self._restrictions: Dict[str, Dict[Tuple[str, int], Tuple[RestrictionLevel, str]]] = {}
        for t in domain.teachers:
            table: Dict[Tuple[str, int], Tuple[RestrictionLevel, str]] = {}
            for r in t.restrictions:
                for p in r.periods:
                    prev = table.get((r.day, p))
                    if prev is None or prev[0] is not RestrictionLevel.REQUIRED:
                        table[(r.day, p)] = (r.level, r.reason)
            self._restrictions[t.id] = table

        for (g, sec), keys in self.class_keys.items():
            for s in self.subjects_by_grade.get(g, []):
                hours = s.hours_for(g)
                self.index.remaining[(g, sec, s.id)] += hours
                self.index.class_remaining[(g, sec)] += hours
            self.index.undecided[(g, sec)] += len(keys)
        # Slots already filled (earlier steps, fixed lessons) count as decided.
        for slot in grid.assigned():
            cand = slot.candidate
            if cand is not None:
                self.index.place(slot.key, cand)
                self.decide(slot.key)

        self.times: List[Time] = sorted(
            {(k.day, k.period) for k in grid.cells}, key=lambda t: (_day_pos(t[0]), t[1])
        )
        self._waive_lost_lessons()
        self.teacher_pools: Dict[FrozenSet[str], List[Tuple[ClassId, str]]] = _pools(
            {(c, s.id): self.teachers_for[(s.id, c[0])] for c, s in self._class_subjects()}
        )
        self.room_pools: Dict[FrozenSet[str], List[Tuple[ClassId, str]]] = _pools(
            {
                (c, s.id): [r for r in self.rooms_for[s.id] if r is not None]
                for c, s in self._class_subjects()
            }
        )
        # how far short each look-ahead check already is on the starting grid
        self._allowance: Dict[Tuple[Any, ...], int] = dict(self.shortfalls())

    def _class_subjects(self) -> Iterator[Tuple[ClassId, Subject]]:
        for c in self.class_keys:
            for s in self.subjects_by_grade.get(c[0], []):
                yield c, s

    def _waive_lost_lessons(self) -> None:
        # Lessons no search can place: no teacher or room, fewer usable slots than
        # weekly hours, or more lessons than the class has slots.
        self.lost: Counter = Counter()
        self.overflow: Counter = Counter()
        self.waived: Counter = Counter()
        for c, s in self._class_subjects():
            usable = 0
            if self.teachers_for[(s.id, c[0])] and self.rooms_for.get(s.id):
                usable = sum(
                    1
                    for k in self.class_keys[c]
                    if any(self._available(t, k.day, k.period) for t in self.teachers_for[(s.id, c[0])])
                )
            self.lost[(c[0], c[1], s.id)] = max(0, s.hours_for(c[0]) - usable)
        for c in self.class_keys:
            lost = sum(self.lost[(c[0], c[1], s.id)] for s in self.subjects_by_grade.get(c[0], []))
            placeable = self.index.class_remaining[c] - lost
            self.overflow[c] = max(0, placeable - self.index.undecided[c])
            self.waived[c] = lost + self.overflow[c]

    # -- mutation ---------------------------------------------------------

    def assign(self, key: SlotKey, cand: Candidate) -> None:
        self.grid.assign(key, cand)
        self.index.place(key, cand)

    def retract(self, key: SlotKey, cand: Candidate) -> None:
        self.grid.clear(key)
        self.index.remove(key, cand)

    def decide(self, key: SlotKey) -> None:
        self.decided.add(key)
        self.index.undecided[(key.grade, key.section)] -= 1

    def undecide(self, key: SlotKey) -> None:
        self.decided.discard(key)
        self.index.undecided[(key.grade, key.section)] += 1

    # -- queries ----------------------------------------------------------

    def restriction(self, teacher_id: str, day: str, period: int) -> Tuple[RestrictionLevel, str] | None:
        return self._restrictions.get(teacher_id, {}).get((day, period))

    def _available(self, teacher_id: str, day: str, period: int) -> bool:
        r = self.restriction(teacher_id, day, period)
        return r is None or r[0] is not RestrictionLevel.REQUIRED

    def teacher_free(self, teacher_id: str, day: str, period: int) -> bool:
        if (teacher_id, day, period) in self.index.teacher_busy:
            return False
        return self._available(teacher_id, day, period)

    def room_free(self, subject_id: str, day: str, period: int) -> bool:
        for room_id in self.rooms_for.get(subject_id, []):
            if room_id is None:
                return True
            if self.index.room_usage[(room_id, day, period)] < self.classrooms[room_id].count:
                return True
        return False

    def outstanding(self, class_id: ClassId) -> int:
        """Lessons the class still has to get, not counting waived ones."""
        return self.index.class_remaining[class_id] - self.waived[class_id]

    def demand(self, class_id: ClassId, subject_id: str) -> int:
        return self.index.remaining[(class_id[0], class_id[1], subject_id)] - self.lost[
            (class_id[0], class_id[1], subject_id)
        ]

    def can_leave_empty(self, key: SlotKey) -> bool:
        """True when the class keeps enough undecided slots (besides this one) for its lessons."""
        c = (key.grade, key.section)
        return self.index.undecided[c] - 1 >= self.outstanding(c)

    def viable(self) -> bool:
        """Cheap look-ahead: False when the outstanding lessons can no longer be placed.

        Checks each class against its own open slots, then each group of
        interchangeable teachers and each group of rooms against the classes
        that depend on them. A check fails only when it falls further short than
        it did on the empty grid, so data that is infeasible from the start
        still gets searched. Passing does not guarantee a solution.
        """
        return all(short <= self._allowance.get(check, 0) for check, short in self.shortfalls())

    def shortfalls(self) -> Iterator[Tuple[Tuple[Any, ...], int]]:
        """(check, lessons that cannot be served) for every look-ahead check, lazily."""
        open_times: Dict[ClassId, Set[Time]] = {
            c: {(k.day, k.period) for k in keys if k not in self.decided}
            for c, keys in self.class_keys.items()
        }
        for c, times in open_times.items():
            rows: List[Tuple[str, int, Set[Time]]] = []
            for s in self.subjects_by_grade.get(c[0], []):
                need = self.demand(c, s.id)
                if need <= 0:
                    continue
                pool = self.teachers_for[(s.id, c[0])]
                usable = {
                    t
                    for t in times
                    if self.room_free(s.id, *t) and any(self.teacher_free(tid, *t) for tid in pool)
                }
                rows.append((s.id, need, usable))
            yield ("class", c), _shortfall(rows, None)

        for pool, members in self.teacher_pools.items():
            cap = {t: sum(1 for tid in pool if self.teacher_free(tid, *t)) for t in self.times}
            yield ("teachers", pool), self._pool_shortfall(members, cap, open_times)
        for pool, members in self.room_pools.items():
            cap = {
                t: sum(
                    max(0, self.classrooms[rid].count - self.index.room_usage[(rid, t[0], t[1])])
                    for rid in pool
                )
                for t in self.times
            }
            yield ("rooms", pool), self._pool_shortfall(members, cap, open_times)

    def _pool_shortfall(
        self,
        members: List[Tuple[ClassId, str]],
        cap: Dict[Time, int],
        open_times: Dict[ClassId, Set[Time]],
    ) -> int:
        need: Counter = Counter()
        for c, sid in members:
            need[c] += max(0, self.demand(c, sid))
        rows = [
            (c, n, {t for t in open_times[c] if cap[t] > 0})
            for c, n in sorted(need.items())
            if n > 0
        ]
        return _shortfall(rows, cap)

    def candidates(self, key: SlotKey) -> List[Candidate]:
        out: List[Candidate] = []
        for subject in self.subjects_by_grade.get(key.grade, []):
            if self.index.remaining[(key.grade, key.section, subject.id)] <= 0:
                continue
            for teacher_id in self.teachers_for.get((subject.id, key.grade), []):
                for room_id in self.rooms_for.get(subject.id, []):
                    out.append(Candidate(subject.id, teacher_id, room_id))
        return out

    def legal_placements(self, class_id: ClassId, teacher_id: str) -> int:
        return sum(
            1
            for k in self.class_keys.get(class_id, [])
            if k not in self.decided and self.teacher_free(teacher_id, k.day, k.period)
        )

    def assigned_count(self, keys: Iterable[SlotKey]) -> int:
        cells = self.grid.cells
        return sum(1 for k in keys if cells[k].is_assigned)


def hard_violation_reason(state: SearchState, key: SlotKey, cand: Candidate) -> str | None:
    subject = state.subjects.get(cand.subject_id)
    teacher = state.teachers.get(cand.teacher_id)
    if subject is None:
        return f"unknown subject {cand.subject_id!r}"
    if teacher is None:
        return f"unknown teacher {cand.teacher_id!r}"
    if state.grid.cells[key].is_assigned:
        return "slot already assigned"
    if not subject.applies_to(key.grade):
        return f"{subject.name} is not taught in grade {key.grade}"
    if not teacher.teaches(subject.id, key.grade):
        return f"{teacher.name} does not teach {subject.name} to grade {key.grade}"
    if state.index.remaining[(key.grade, key.section, subject.id)] <= 0:
        return f"{subject.name} already has {subject.hours_for(key.grade)} lessons this week"
    if (teacher.id, key.day, key.period) in state.index.teacher_busy:
        return f"{teacher.name} already teaches another class on {key.day} period {key.period}"
    r = state.restriction(teacher.id, key.day, key.period)
    if r is not None and r[0] is RestrictionLevel.REQUIRED:
        why = f" ({r[1]})" if r[1] else ""
        return f"{teacher.name} is unavailable on {key.day} period {key.period}{why}"
    return _classroom_reason(state, key, subject, cand.classroom_id)


def _classroom_reason(state: SearchState, key: SlotKey, subject: Subject, room_id: str | None) -> str | None:
    if room_id is None:
        if subject.requires_special_classroom:
            return f"{subject.name} needs a {subject.classroom_type} classroom"
        return None
    room = state.classrooms.get(room_id)
    if room is None:
        return f"unknown classroom {room_id!r}"
    wanted = subject.classroom_type if subject.requires_special_classroom else state.normal_classroom_type
    if room.type != wanted:
        return f"{room.name} is a {room.type} room, {subject.name} needs {wanted}"
    if state.index.room_usage[(room_id, key.day, key.period)] >= room.count:
        return f"all {room.count} unit(s) of {room.name} are in use on {key.day} period {key.period}"
    return None


def is_hard_violation(state: SearchState, key: SlotKey, cand: Candidate) -> bool:
    return hard_violation_reason(state, key, cand) is not None


def soft_penalty(state: SearchState, key: SlotKey, cand: Candidate) -> int:
    penalty = 0
    cells = state.grid.cells
    for p in (key.period - 1, key.period + 1):
        neighbour = cells.get(SlotKey(key.grade, key.section, key.day, p))
        if neighbour is not None and neighbour.subject_id == cand.subject_id:
            penalty += 1
            break
    r = state.restriction(cand.teacher_id, key.day, key.period)
    if r is not None and r[0] is RestrictionLevel.PREFERRED:
        penalty += 1
    return penalty


def total_soft_penalty(state: SearchState) -> int:
    total = 0
    for slot in state.grid.assigned():
        cand = slot.candidate
        if cand is None:
            continue
        # Count each adjacent repeat once, on the later period.
        before = state.grid.cells.get(SlotKey(slot.grade, slot.section, slot.day, slot.period - 1))
        if before is not None and before.subject_id == slot.subject_id:
            total += 1
        r = state.restriction(cand.teacher_id, slot.day, slot.period)
        if r is not None and r[0] is RestrictionLevel.PREFERRED:
            total += 1
    return total


def count_hard_violations(
    tt: Timetable,
    settings: SchoolSettings,
    domain: DomainModel,
    *,
    normal_classroom_type: str = "normal",
) -> List[str]:
    """Audit a finished grid from scratch. Returns one message per violation."""
    teachers = domain.teachers_by_id()
    subjects = domain.subjects_by_id()
    rooms = domain.classrooms_by_id()
    found: List[str] = []
    teacher_slots: Counter = Counter()
    room_slots: Counter = Counter()
    per_class_subject: Counter = Counter()
    for s in tt.assigned():
        where = f"grade {s.grade}-{s.section} {s.day} P{s.period}"
        subject = subjects.get(s.subject_id or "")
        teacher = teachers.get(s.teacher_id or "")
        if subject is None or teacher is None:
            found.append(f"{where}: unknown subject/teacher {s.subject_id}/{s.teacher_id}")
            continue
        teacher_slots[(teacher.id, s.day, s.period)] += 1
        per_class_subject[(s.grade, s.section, subject.id)] += 1
        if not teacher.teaches(subject.id, s.grade) or not subject.applies_to(s.grade):
            found.append(f"{where}: {teacher.name} not qualified for {subject.name}")
        if teacher.restriction_at(s.day, s.period) is RestrictionLevel.REQUIRED:
            found.append(f"{where}: {teacher.name} placed in a required restriction")
        if s.classroom_id is not None:
            room = rooms.get(s.classroom_id)
            wanted = subject.classroom_type if subject.requires_special_classroom else normal_classroom_type
            if room is None or room.type != wanted:
                found.append(f"{where}: classroom {s.classroom_id} unsuitable for {subject.name}")
            room_slots[(s.classroom_id, s.day, s.period)] += 1
        elif subject.requires_special_classroom:
            found.append(f"{where}: {subject.name} has no classroom")
    for (tid, day, period), n in teacher_slots.items():
        if n > 1:
            found.append(f"teacher {tid} double-booked {n}x on {day} P{period}")
    for (rid, day, period), n in room_slots.items():
        room = rooms.get(rid)
        if room is not None and n > room.count:
            found.append(f"classroom {rid} used {n}x (units={room.count}) on {day} P{period}")
    for (g, sec, sid), n in per_class_subject.items():
        hours = subjects[sid].hours_for(g)
        if n > hours:
            found.append(f"grade {g}-{sec} has {n} {sid} lessons, weekly hours {hours}")
    return found


def _day_pos(day: str) -> int:
    return ALL_DAYS.index(day) if day in ALL_DAYS else len(ALL_DAYS)


def _pools(
    members: Dict[Tuple[ClassId, str], List[str]],
) -> Dict[FrozenSet[str], List[Tuple[ClassId, str]]]:
    """Each distinct teacher (or room) set, with every (class, subject) it fully covers."""
    distinct = {frozenset(ids) for ids in members.values() if ids}
    return {
        pool: sorted(m for m, ids in members.items() if ids and pool.issuperset(ids))
        for pool in sorted(distinct, key=sorted)
    }


def _shortfall(rows: List[Tuple[Any, int, Set[Time]]], cap: Dict[Time, int] | None) -> int:
    """Largest demand minus supply over prefixes of ``rows``, tightest rows first.

    A row is (label, lessons, usable times). A row takes at most one lesson per
    time and a time serves at most ``cap[t]`` rows (one when ``cap`` is None).
    """
    worst = 0
    need = 0
    users: Counter = Counter()
    for _, lessons, times in sorted(rows, key=lambda r: (len(r[2]), r[0])):
        need += lessons
        users.update(times)
        supply = sum(min(1 if cap is None else cap[t], n) for t, n in users.items())
        worst = max(worst, need - supply)
    return worst
