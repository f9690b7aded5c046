from .capacity import CapacityBound, capacity_bound
from .difficulty import TeacherDifficulty, UnassignedRequirement, teacher_difficulties, unassigned_requirements

__all__ = [
    "CapacityBound",
    "TeacherDifficulty",
    "UnassignedRequirement",
    "capacity_bound",
    "teacher_difficulties",
    "unassigned_requirements",
]
