"""
Per-variable type and level profiles across years.

Both profilers return a mapping keyed by variable name, in order of first
appearance across the input tables, so repeated runs give identical output.
A variable absent from a year simply has no entry for that year.
"""
from __future__ import annotations

from typing import Dict, List, Sequence

from survey_union.tables import TypeTag, YearTable

LEVEL_SEPARATOR = "|"

VariableTypeProfile = Dict[int, TypeTag]
VariableLevelProfile = Dict[int, str]


def serialize_levels(levels: List[str]) -> str:
    """
    Join levels in source order; order matters for ordinal scales.

    Backslashes and separators inside a label are backslash-escaped, so two
    different level lists never serialize to the same string.
    """
    return LEVEL_SEPARATOR.join(_escape_level(str(lv)) for lv in levels)


def _escape_level(label: str) -> str:
    return label.replace("\\", "\\\\").replace(LEVEL_SEPARATOR, "\\" + LEVEL_SEPARATOR)


def profile_types(tables: Sequence[YearTable]) -> Dict[str, VariableTypeProfile]:
    profiles: Dict[str, VariableTypeProfile] = {}
    for table in tables:
        for name in table.columns:
            profiles.setdefault(name, {})[table.year_index] = table.column_types[name]
    return profiles


def profile_levels(tables: Sequence[YearTable]) -> Dict[str, VariableLevelProfile]:
    """
    Serialized level set per variable and year.

    Every variable seen in any table gets a (possibly empty) profile; only
    years where it is categorical contribute an entry.
    """
    profiles: Dict[str, VariableLevelProfile] = {}
    for table in tables:
        for name in table.columns:
            profile = profiles.setdefault(name, {})
            if table.column_types[name] is TypeTag.CATEGORICAL:
                profile[table.year_index] = serialize_levels(table.levels.get(name, []))
    return profiles
