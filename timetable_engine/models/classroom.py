from dataclasses import dataclass


@dataclass(frozen=True)
class Classroom:
    id: str
    name: str
    type: str
    capacity: int = 0
    count: int = 1  # identical interchangeable units
