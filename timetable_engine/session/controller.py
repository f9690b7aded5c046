from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Tuple

from ..config import EngineConfig
from ..data.loader import SchoolSource
from ..errors import IncompleteError, StepBudgetExceeded
from ..models import SchoolSettings, SlotKey, Timetable
from ..scheduler.constraints import SearchState, hard_violation_reason
from ..scheduler.engine import GenerationStatistics, find_blockers, summarize
from ..scheduler.grid import build_grid, class_day_units, unit_slot_keys
from ..scheduler.search import BacktrackingSearch, SearchStatus
from .store import SessionStore

Unit = Tuple[Tuple[int, str], str]


class SessionState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Progress:
    current: int
    total: int
    percentage: int

    def to_dict(self) -> Dict[str, int]:
        return {"current": self.current, "total": self.total, "percentage": self.percentage}


@dataclass
class CreateResult:
    session_id: str
    total_steps: int

    def to_dict(self) -> Dict[str, Any]:
        return {"session_id": self.session_id, "total_steps": self.total_steps}


@dataclass
class StepResult:
    completed: bool
    progress: Progress
    current_step: str
    error: List[str] | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completed": self.completed,
            "progress": self.progress.to_dict(),
            "current_step": self.current_step,
            "error": list(self.error) if self.error else None,
        }


@dataclass
class SessionResult:
    timetable: Timetable
    statistics: GenerationStatistics
    generated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timetable": self.timetable.to_records(),
            "statistics": self.statistics.to_dict(),
            "generated_at": self.generated_at,
        }


@dataclass
class GenerationSession:
    session_id: str
    school_id: str
    state: SearchState
    units: List[Unit]
    blockers: List[str] = field(default_factory=list)
    status: SessionState = SessionState.CREATED
    cursor: int = 0
    search: BacktrackingSearch | None = None
    unit_attempts: int = 0
    backtracks: int = 0
    budget_spent: bool = False
    failure: str | None = None
    result: SessionResult | None = None
    started: float = field(default_factory=time.perf_counter)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def settings(self) -> SchoolSettings:
        return self.state.settings

    def progress(self) -> Progress:
        total = len(self.units)
        pct = self.cursor * 100 // total if total else 100
        return Progress(current=self.cursor, total=total, percentage=pct)


def describe_unit(unit: Unit) -> str:
    (grade, section), day = unit
    return f"Grade {grade}-{section} {day}"


class SessionController:
    """Staged generation: create a session, step through (class, day) units, fetch the result."""

    def __init__(
        self,
        source: SchoolSource,
        store: SessionStore | None = None,
        config: EngineConfig | None = None,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self.source = source
        self.config = config or EngineConfig()
        self.store = store if store is not None else SessionStore(self.config.session_ttl_seconds)
        self.id_factory = id_factory
        self.logger = logging.getLogger(__name__)

    def create(self, school_id: str) -> CreateResult:
        self.store.purge_expired()
        snapshot = self.source.load(school_id)
        grid = build_grid(snapshot.settings)
        state = SearchState(
            grid,
            snapshot.settings,
            snapshot.domain,
            normal_classroom_type=self.config.normal_classroom_type,
        )
        units = class_day_units(snapshot.settings)
        session = GenerationSession(
            session_id=self.id_factory(),
            school_id=school_id,
            state=state,
            units=units,
            blockers=find_blockers(state),
        )
        self.store.put(session.session_id, session)
        self.logger.info(f"Session {session.session_id} created for school {school_id}: {len(units)} steps")
        for b in session.blockers:
            self.logger.warning(f"Session {session.session_id}: cannot fully schedule: {b}")
        return CreateResult(session_id=session.session_id, total_steps=len(units))

    def step(self, session_id: str) -> StepResult:
        self.store.purge_expired()
        session: GenerationSession = self.store.get(session_id)
        with session.lock:
            if session.status is SessionState.COMPLETED:
                return StepResult(True, session.progress(), "completed")
            if session.status is SessionState.FAILED:
                return StepResult(False, session.progress(), "failed", [session.failure or "failed"])
            session.status = SessionState.RUNNING
            unit = session.units[session.cursor]
            label = describe_unit(unit)
            try:
                errors = self._run_unit(session, unit)
            except StepBudgetExceeded as e:
                self.logger.info(f"Session {session_id}: {e}")
                return StepResult(False, session.progress(), label, [str(e)])
            except Exception as e:
                self.logger.exception(f"Session {session_id} failed on {label}")
                session.status = SessionState.FAILED
                session.failure = f"{label}: {e}"
                raise
            session.cursor += 1
            if session.cursor == len(session.units):
                self._finish(session)
            self.logger.info(
                f"Session {session_id}: {label} done ({session.cursor}/{len(session.units)})"
            )
            return StepResult(
                completed=session.status is SessionState.COMPLETED,
                progress=session.progress(),
                current_step=label,
                error=errors or None,
            )

    def result(self, session_id: str) -> SessionResult:
        session: GenerationSession = self.store.get(session_id)
        with session.lock:
            if session.status is not SessionState.COMPLETED or session.result is None:
                raise IncompleteError(session_id, session.status.value)
            return session.result

    # -- internals --------------------------------------------------------

    def _run_unit(self, session: GenerationSession, unit: Unit) -> List[str]:
        cfg = self.config
        label = describe_unit(unit)
        keys = unit_slot_keys(session.settings, *unit)
        errors: List[str] = []
        if session.cursor == 0:
            errors.extend(session.blockers)
        if session.search is None:
            session.search = BacktrackingSearch(
                session.state,
                keys,
                max_backtracks=max(0, cfg.max_backtracks - session.backtracks),
            )
            session.unit_attempts = 0
        search = session.search

        if session.budget_spent:
            search.settle()
        else:
            outcome = search.run(node_limit=cfg.step_budget)
            if outcome is SearchStatus.PAUSED:
                session.unit_attempts += 1
                if session.unit_attempts < cfg.max_unit_attempts:
                    raise StepBudgetExceeded(
                        f"{label}: step budget of {cfg.step_budget} nodes used up "
                        f"(attempt {session.unit_attempts}/{cfg.max_unit_attempts}); call step again to continue"
                    )
                errors.append(
                    f"{label}: no exact fill within {cfg.max_unit_attempts} steps; placed lessons best effort"
                )
                search.settle()
            elif outcome is SearchStatus.SOLVED:
                search.commit()
            else:
                if outcome is SearchStatus.BUDGET:
                    session.budget_spent = True
                    errors.append(
                        f"{label}: run-wide backtrack budget ({cfg.max_backtracks}) spent; "
                        "remaining steps are filled best effort"
                    )
                search.settle()

        session.backtracks += search.backtrack_count
        session.search = None
        errors.extend(self._describe_gaps(session.state, unit, keys))
        return errors

    def _describe_gaps(self, state: SearchState, unit: Unit, keys: List[SlotKey]) -> List[str]:
        class_id, _ = unit
        idx = state.index
        short = idx.class_remaining[class_id] - idx.undecided[class_id]
        if short <= 0:
            return []
        out: List[str] = []
        label = describe_unit(unit)
        for key in keys:
            if state.grid.cells[key].is_assigned:
                continue
            reasons = []
            for cand in state.candidates(key):
                reason = hard_violation_reason(state, key, cand)
                if reason and reason not in reasons:
                    reasons.append(reason)
            detail = "; ".join(reasons[:2]) if reasons else "no subject with lessons left has a qualified teacher"
            out.append(f"{label} period {key.period} left empty: {detail}")
        out.append(f"{label}: {short} lesson(s) for this class can no longer be placed")
        return out

    def _finish(self, session: GenerationSession) -> None:
        stats = summarize(
            session.state,
            backtrack_count=session.backtracks,
            elapsed_seconds=time.perf_counter() - session.started,
            budget_spent=session.budget_spent,
        )
        session.result = SessionResult(
            timetable=session.state.grid.freeze(),
            statistics=stats,
            generated_at=datetime.now(timezone.utc).isoformat(),
        )
        session.status = SessionState.COMPLETED
        self.logger.info(
            f"Session {session.session_id} {stats.status}: "
            f"{stats.assigned_slots}/{stats.total_slots} slots, {stats.unplaced_lessons} lessons unplaced"
        )
