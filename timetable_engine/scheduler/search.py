"""Backtracking search over an ordered list of slot keys.

The search keeps an explicit decision trail instead of recursing, so a run can
be paused after a fixed number of nodes and resumed later (staged sessions do
exactly that), and so retraction always walks the same path that assignment
took.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..models import Candidate, SlotKey
from .constraints import SearchState, is_hard_violation, soft_penalty

# An option of None means "leave this slot empty".
Option = Optional[Candidate]


class SearchStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    SOLVED = "solved"
    EXHAUSTED = "exhausted"
    BUDGET = "budget"


@dataclass
class Frame:
    key: SlotKey
    options: List[Option]
    cursor: int = 0
    chosen: bool = False
    choice: Option = None


def order_options(state: SearchState, key: SlotKey) -> List[Option]:
    """Candidates for ``key``, most constrained first.

    Sort key: fewest legal placements left for the candidate's teacher in this
    class, then subject id, teacher id, classroom id. Candidates with a soft
    penalty go after "leave empty" when the class can afford an empty slot.
    """
    class_id = (key.grade, key.section)
    placements: Dict[str, int] = {}
    clean: List[Tuple[int, str, str, str, Candidate]] = []
    penalized: List[Tuple[int, int, str, str, str, Candidate]] = []
    for cand in state.candidates(key):
        n = placements.get(cand.teacher_id)
        if n is None:
            n = placements[cand.teacher_id] = state.legal_placements(class_id, cand.teacher_id)
        pen = soft_penalty(state, key, cand)
        row = (n, cand.subject_id, cand.teacher_id, cand.classroom_id or "", cand)
        if pen:
            penalized.append((pen,) + row)
        else:
            clean.append(row)
    clean.sort(key=lambda r: r[:4])
    penalized.sort(key=lambda r: r[:5])
    options: List[Option] = [r[-1] for r in clean]
    if state.can_leave_empty(key):
        options.append(None)
    options.extend(r[-1] for r in penalized)
    return options


class BacktrackingSearch:
    def __init__(
        self,
        state: SearchState,
        keys: Iterable[SlotKey],
        *,
        max_backtracks: int | None = None,
        deadline: float | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.state = state
        self.keys: List[SlotKey] = [k for k in keys if k not in state.decided]
        self.classes = {(k.grade, k.section) for k in self.keys}
        self.max_backtracks = max_backtracks
        self.deadline = deadline
        self.clock = clock
        self.trail: List[Frame] = []
        self.status = SearchStatus.RUNNING
        self.backtrack_count = 0
        self.nodes = 0
        self.assigned = 0
        self._needs_backtrack = False
        self._best: Dict[SlotKey, Candidate] | None = None
        self._best_count = -1
        self._peak_pending = False
        self.logger = logging.getLogger(__name__)

    def run(self, node_limit: int | None = None) -> SearchStatus:
        """Advance until solved, exhausted, out of budget, or ``node_limit`` nodes."""
        nodes = 0
        while self.status is SearchStatus.RUNNING:
            if node_limit is not None and nodes >= node_limit:
                return SearchStatus.PAUSED
            if self._budget_spent():
                self.status = SearchStatus.BUDGET
                break
            nodes += 1
            self.nodes += 1
            if self._needs_backtrack:
                self._backtrack_once()
                continue
            if len(self.trail) == len(self.keys):
                if self._goal_reached():
                    self.status = SearchStatus.SOLVED
                else:
                    self._needs_backtrack = True
                continue
            frame = self._push()
            if not self._advance(frame):
                self._needs_backtrack = True
        self.logger.debug(
            f"Search {self.status.value}: {len(self.keys)} slots, {self.nodes} nodes, "
            f"{self.backtrack_count} backtracks"
        )
        return self.status

    def commit(self) -> None:
        """Keep the current assignment; the trail is dropped and its slots stay decided."""
        self.trail.clear()

    def settle(self) -> int:
        """Finish an unsolved search with the best partial assignment available.

        Rolls the trail back, fills the scope greedily, and swaps in the deepest
        assignment seen during search if it placed more lessons. Every slot in
        scope ends up decided. Returns the number of lessons placed.
        """
        if self.assigned > self._best_count:
            self._capture()
        best = self._best or {}
        self._rollback()
        greedy = self._greedy_fill()
        if len(best) > len(greedy):
            for key, cand in greedy.items():
                self.state.retract(key, cand)
            for key in self.keys:
                cand = best.get(key)
                if cand is not None:
                    self.state.assign(key, cand)
            self.assigned = len(best)
        else:
            self.assigned = len(greedy)
        if self.status is SearchStatus.RUNNING:
            self.status = SearchStatus.EXHAUSTED
        return self.assigned

    # -- internals --------------------------------------------------------

    def _budget_spent(self) -> bool:
        if self.max_backtracks is not None and self.backtrack_count >= self.max_backtracks:
            return True
        if self.deadline is not None and self.nodes % 64 == 0 and self.clock() >= self.deadline:
            return True
        return False

    def _goal_reached(self) -> bool:
        idx = self.state.index
        return all(self.state.outstanding(c) <= idx.undecided[c] for c in self.classes)

    def _push(self) -> Frame:
        key = self.keys[len(self.trail)]
        frame = Frame(key, order_options(self.state, key))
        self.state.decide(key)
        self.trail.append(frame)
        return frame

    def _advance(self, frame: Frame) -> bool:
        while frame.cursor < len(frame.options):
            option = frame.options[frame.cursor]
            frame.cursor += 1
            if option is None:
                if not self.state.viable():
                    continue
                frame.chosen, frame.choice = True, None
                return True
            if is_hard_violation(self.state, frame.key, option):
                continue
            self.state.assign(frame.key, option)
            if not self.state.viable():
                # dead end found by look-ahead: counts as a retraction
                self.state.retract(frame.key, option)
                self.backtrack_count += 1
                continue
            frame.chosen, frame.choice = True, option
            self.assigned += 1
            if self.assigned > self._best_count:
                self._peak_pending = True
            return True
        return False

    def _backtrack_once(self) -> None:
        if not self.trail:
            self.status = SearchStatus.EXHAUSTED
            return
        frame = self.trail[-1]
        if frame.chosen:
            self._undo(frame)
            self.backtrack_count += 1
        if self._advance(frame):
            self._needs_backtrack = False
            return
        self.trail.pop()
        self.state.undecide(frame.key)

    def _undo(self, frame: Frame) -> None:
        if self._peak_pending:
            self._capture()
        if frame.choice is not None:
            self.state.retract(frame.key, frame.choice)
            self.assigned -= 1
        frame.chosen, frame.choice = False, None

    def _capture(self) -> None:
        self._best = {f.key: f.choice for f in self.trail if f.choice is not None}
        self._best_count = len(self._best)
        self._peak_pending = False

    def _rollback(self) -> None:
        while self.trail:
            frame = self.trail.pop()
            if frame.choice is not None:
                self.state.retract(frame.key, frame.choice)
            self.state.undecide(frame.key)
        self.assigned = 0
        self._needs_backtrack = False

    def _greedy_fill(self) -> Dict[SlotKey, Candidate]:
        placed: Dict[SlotKey, Candidate] = {}
        for key in self.keys:
            for option in order_options(self.state, key):
                if option is None or is_hard_violation(self.state, key, option):
                    continue
                self.state.assign(key, option)
                placed[key] = option
                break
            self.state.decide(key)
        return placed
