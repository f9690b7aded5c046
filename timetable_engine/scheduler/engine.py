from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from ..config import EngineConfig
from ..errors import InternalInvariantError
from ..models import DomainModel, SchoolSettings, Timetable
from .constraints import SearchState, count_hard_violations, total_soft_penalty
from .grid import build_grid, iter_slot_keys
from .search import BacktrackingSearch, SearchStatus

STATUS_COMPLETE = "complete"
STATUS_BUDGET = "budget_exhausted"
STATUS_INFEASIBLE = "infeasible"


@dataclass
class GenerationOptions:
    max_backtracks: int = 20_000
    timeout_seconds: float = 30.0
    normal_classroom_type: str = "normal"

    @classmethod
    def from_config(cls, cfg: EngineConfig) -> "GenerationOptions":
        return cls(
            max_backtracks=cfg.max_backtracks,
            timeout_seconds=cfg.timeout_seconds,
            normal_classroom_type=cfg.normal_classroom_type,
        )


@dataclass
class GenerationStatistics:
    total_slots: int
    assigned_slots: int
    unassigned_slots: int
    backtrack_count: int
    elapsed_seconds: float
    hard_violation_count: int
    soft_penalty: int = 0
    unplaced_lessons: int = 0
    status: str = STATUS_COMPLETE
    invariant_error: str | None = None

    @property
    def assignment_rate(self) -> float:
        if self.total_slots == 0:
            return 0.0
        return round(self.assigned_slots / self.total_slots * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["assignment_rate"] = self.assignment_rate
        return d


@dataclass
class GenerationResult:
    timetable: Timetable
    statistics: GenerationStatistics
    blockers: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timetable": self.timetable.to_records(),
            "statistics": self.statistics.to_dict(),
            "blockers": list(self.blockers),
        }


def find_blockers(state: SearchState) -> List[str]:
    """Data problems that make a complete timetable impossible, found without searching.

    The lessons behind these messages are waived by ``SearchState``, so the
    search still fills the rest of the school.
    """
    problems: List[str] = []
    idx = state.index
    for grade, section in sorted(state.class_keys):
        need = idx.class_remaining[(grade, section)]
        room = idx.undecided[(grade, section)]
        if need > room:
            problems.append(f"grade {grade}-{section} needs {need} lessons but has {room} open slots")
        for subject in state.subjects_by_grade.get(grade, []):
            if idx.remaining[(grade, section, subject.id)] <= 0:
                continue
            lost = state.lost[(grade, section, subject.id)]
            if not state.teachers_for.get((subject.id, grade)):
                problems.append(f"no teacher teaches {subject.name} to grade {grade}")
            elif not state.rooms_for.get(subject.id):
                problems.append(f"no {subject.classroom_type} classroom for {subject.name}")
            elif lost:
                hours = subject.hours_for(grade)
                problems.append(
                    f"grade {grade}-{section} needs {hours} {subject.name} lessons but a qualified "
                    f"teacher is available in only {hours - lost} of its slots"
                )
    # one message per subject/grade is enough
    return list(dict.fromkeys(problems))


def summarize(
    state: SearchState,
    *,
    backtrack_count: int,
    elapsed_seconds: float,
    budget_spent: bool = False,
) -> GenerationStatistics:
    """Statistics for a finished grid. Status is ``complete`` whenever every lesson got placed."""
    logger = logging.getLogger(__name__)
    grid = state.grid
    total = len(grid)
    assigned = state.assigned_count(grid.cells)
    violations = count_hard_violations(
        grid, state.settings, state.domain, normal_classroom_type=state.normal_classroom_type
    )
    invariant_error = None
    if violations:
        err = InternalInvariantError(violations)
        logger.error(f"Internal invariant failure (solver bug, not a data problem): {err}")
        invariant_error = str(err)
    unplaced = sum(max(0, v) for v in state.index.class_remaining.values())
    if unplaced == 0:
        status = STATUS_COMPLETE
    elif budget_spent:
        status = STATUS_BUDGET
    else:
        status = STATUS_INFEASIBLE
    return GenerationStatistics(
        total_slots=total,
        assigned_slots=assigned,
        unassigned_slots=total - assigned,
        backtrack_count=backtrack_count,
        elapsed_seconds=round(elapsed_seconds, 4),
        hard_violation_count=len(violations),
        soft_penalty=total_soft_penalty(state),
        unplaced_lessons=unplaced,
        status=status,
        invariant_error=invariant_error,
    )


def generate(
    domain: DomainModel,
    settings: SchoolSettings,
    options: GenerationOptions | None = None,
) -> GenerationResult:
    """Fill a fresh weekly grid in one blocking call.

    Infeasible data is not an error: the best partial grid comes back with
    ``statistics.status`` set to ``infeasible`` or ``budget_exhausted``.
    """
    logger = logging.getLogger(__name__)
    opts = options or GenerationOptions()
    start = time.perf_counter()
    grid = build_grid(settings)
    state = SearchState(grid, settings, domain, normal_classroom_type=opts.normal_classroom_type)
    search = BacktrackingSearch(
        state,
        iter_slot_keys(settings),
        max_backtracks=opts.max_backtracks,
        deadline=start + opts.timeout_seconds,
    )
    logger.info(
        f"Generation start: {len(search.keys)} slots, "
        f"{sum(state.index.class_remaining.values())} lessons to place"
    )

    blockers = find_blockers(state)
    for b in blockers:
        logger.warning(f"Cannot fully schedule: {b}")
    budget_spent = False
    outcome = search.run()
    if outcome is SearchStatus.SOLVED:
        search.commit()
    else:
        budget_spent = outcome is SearchStatus.BUDGET
        search.settle()

    stats = summarize(
        state,
        backtrack_count=search.backtrack_count,
        elapsed_seconds=time.perf_counter() - start,
        budget_spent=budget_spent,
    )
    status = stats.status
    logger.info(
        f"Generation {status}: {stats.assigned_slots}/{stats.total_slots} slots assigned, "
        f"{stats.unplaced_lessons} lessons unplaced, {stats.backtrack_count} backtracks, "
        f"{stats.elapsed_seconds:.2f}s"
    )
    return GenerationResult(timetable=grid.freeze(), statistics=stats, blockers=blockers)
