"""
Drift resolution: one diagnostic per variable, plus the columns that must be
renamed before the years can be stacked.

Renaming policy
---------------
Only variables whose type differs between years are renamed. Instances typed
as NUMERIC_DEFAULT keep the original name; every other instance becomes
`<name>_<type>` in the year(s) where it takes that type. A variable that is
never numeric but mixes e.g. text and date has *all* of its instances renamed,
so no column keeps the bare name in that case.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Sequence, Set

import polars as pl

from survey_union.profiling import VariableLevelProfile, VariableTypeProfile
from survey_union.tables import NUMERIC_DEFAULT, TypeTag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VariableDiagnostic:
    name: str
    distinct_type_count: int
    type_consistent: bool
    years_missing: int
    okay: bool
    level_set_count: int
    types: Dict[int, TypeTag] = field(default_factory=dict)
    levels: Dict[int, str] = field(default_factory=dict)

    @property
    def level_consistent(self) -> bool:
        return self.level_set_count <= 1

    @property
    def years_present(self) -> int:
        return len(self.types)


class RenameTarget(NamedTuple):
    variable: str
    year_index: int
    type_tag: TypeTag


def diagnose_variable(
    name: str,
    types: VariableTypeProfile,
    levels: Optional[VariableLevelProfile],
    total_years: int,
) -> VariableDiagnostic:
    levels = levels or {}
    distinct_types = len(set(types.values()))
    type_consistent = distinct_types <= 1
    years_missing = total_years - len(types)
    level_sets = {lv for lv in levels.values() if lv}
    return VariableDiagnostic(
        name=name,
        distinct_type_count=distinct_types,
        type_consistent=type_consistent,
        years_missing=years_missing,
        okay=type_consistent and years_missing == 0,
        level_set_count=len(level_sets),
        types=dict(sorted(types.items())),
        levels=dict(sorted(levels.items())),
    )


def resolve_drift(
    type_profiles: Dict[str, VariableTypeProfile],
    level_profiles: Dict[str, VariableLevelProfile],
    total_years: int,
) -> Dict[str, VariableDiagnostic]:
    """Combine type and level profiles into one diagnostic per variable."""
    if total_years < 1:
        raise ValueError("total_years must be at least 1")
    diagnostics: Dict[str, VariableDiagnostic] = {}
    for name, types in type_profiles.items():
        diagnostics[name] = diagnose_variable(name, types, level_profiles.get(name), total_years)
    return diagnostics


def rename_targets(diagnostics: Dict[str, VariableDiagnostic]) -> Set[RenameTarget]:
    targets: Set[RenameTarget] = set()
    for diag in diagnostics.values():
        if diag.type_consistent:
            continue
        for year_index, tag in diag.types.items():
            if tag != NUMERIC_DEFAULT:
                targets.add(RenameTarget(diag.name, year_index, tag))
    return targets


def diagnostics_frame(
    diagnostics: Dict[str, VariableDiagnostic],
    year_labels: Sequence[str],
) -> pl.DataFrame:
    """
    Flatten the diagnostics into one review table.

    One row per variable; per-year columns `type_<label>` and `levels_<label>`
    hold the raw tags and serialized level sets (null where absent).
    """
    labels = [str(y) for y in year_labels]
    schema: Dict[str, pl.DataType] = {
        "variable": pl.String,
        "okay": pl.Boolean,
        "type_consistent": pl.Boolean,
        "distinct_type_count": pl.Int32,
        "years_missing": pl.Int32,
        "level_consistent": pl.Boolean,
        "level_set_count": pl.Int32,
    }
    for label in labels:
        schema[f"type_{label}"] = pl.String
    for label in labels:
        schema[f"levels_{label}"] = pl.String

    rows: List[dict] = []
    for diag in diagnostics.values():
        row = {
            "variable": diag.name,
            "okay": diag.okay,
            "type_consistent": diag.type_consistent,
            "distinct_type_count": diag.distinct_type_count,
            "years_missing": diag.years_missing,
            "level_consistent": diag.level_consistent,
            "level_set_count": diag.level_set_count,
        }
        for pos, label in enumerate(labels, start=1):
            tag = diag.types.get(pos)
            row[f"type_{label}"] = tag.value if tag is not None else None
            row[f"levels_{label}"] = diag.levels.get(pos)
        rows.append(row)
    return pl.DataFrame(rows, schema=schema)


def log_drift_summary(file_group: str, diagnostics: Dict[str, VariableDiagnostic]) -> None:
    type_drift = [d.name for d in diagnostics.values() if not d.type_consistent]
    level_drift = [d.name for d in diagnostics.values() if d.type_consistent and not d.level_consistent]
    partial = [d.name for d in diagnostics.values() if d.years_missing > 0]
    logger.info(f"{file_group}: profiled {len(diagnostics):,} variables")
    if type_drift:
        logger.warning(
            f"{file_group}: {len(type_drift)} variables with type drift: "
            f"{type_drift[:10]}{'...' if len(type_drift) > 10 else ''}"
        )
    if level_drift:
        logger.info(
            f"{file_group}: {len(level_drift)} categorical variables with level drift: "
            f"{level_drift[:10]}{'...' if len(level_drift) > 10 else ''}"
        )
    if partial:
        logger.info(f"{file_group}: {len(partial)} variables missing in at least one year")
