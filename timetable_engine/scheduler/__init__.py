from .constraints import (
    OccupancyIndex,
    SearchState,
    count_hard_violations,
    hard_violation_reason,
    is_hard_violation,
    soft_penalty,
)
from .engine import (
    GenerationOptions,
    GenerationResult,
    GenerationStatistics,
    find_blockers,
    generate,
)
from .grid import build_grid, class_day_units, iter_slot_keys
from .search import BacktrackingSearch, SearchStatus, order_options

__all__ = [
    "BacktrackingSearch",
    "GenerationOptions",
    "GenerationResult",
    "GenerationStatistics",
    "OccupancyIndex",
    "SearchState",
    "SearchStatus",
    "build_grid",
    "class_day_units",
    "count_hard_violations",
    "find_blockers",
    "generate",
    "hard_violation_reason",
    "is_hard_violation",
    "iter_slot_keys",
    "order_options",
    "soft_penalty",
]
