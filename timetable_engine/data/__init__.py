from .loader import (
    InMemorySchoolSource,
    JsonSchoolSource,
    SchoolSource,
    parse_domain,
    parse_settings,
)

__all__ = [
    "InMemorySchoolSource",
    "JsonSchoolSource",
    "SchoolSource",
    "parse_domain",
    "parse_settings",
]
