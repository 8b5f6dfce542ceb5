"""
Column renaming and the outer (diagonal) concatenation of year tables.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Sequence

import polars as pl

from survey_union.drift import RenameTarget
from survey_union.errors import NameCollision, SchemaConflict
from survey_union.tables import TypeTag, YearTable, as_categorical

logger = logging.getLogger(__name__)

YEAR_INDEX_COL = "year_index"
YEAR_LABEL_COL = "year_label"


def renamed_column(variable: str, tag: TypeTag) -> str:
    return f"{variable}_{tag.value.lower()}"


# ---------------- Renaming ---------------- #
def _native_tags(tables: Sequence[YearTable]) -> Dict[str, Dict[int, TypeTag]]:
    out: Dict[str, Dict[int, TypeTag]] = {}
    for t in tables:
        for name, tag in t.column_types.items():
            out.setdefault(name, {})[t.year_index] = tag
    return out


def apply_renames(tables: Sequence[YearTable], targets: Iterable[RenameTarget]) -> List[YearTable]:
    """
    Rename each targeted column to `<name>_<type>` in its year; values are untouched.

    Returns new YearTable objects in the same order. Raises NameCollision when
    the new name already exists in that year, or exists natively in another
    year with a different type.
    """
    by_year: Dict[int, List[RenameTarget]] = {}
    for tgt in targets:
        by_year.setdefault(tgt.year_index, []).append(tgt)

    native = _native_tags(tables)
    out: List[YearTable] = []
    for table in tables:
        todo = sorted(by_year.get(table.year_index, []))
        if not todo:
            out.append(table)
            continue

        mapping: Dict[str, str] = {}
        for tgt in todo:
            if tgt.variable not in table.column_types:
                raise KeyError(
                    f"Rename target {tgt.variable!r} not in {table.file_group} {table.year_label}"
                )
            new_name = renamed_column(tgt.variable, tgt.type_tag)
            if new_name in table.column_types:
                raise NameCollision(
                    f"Cannot rename {tgt.variable!r} to {new_name!r}: column already exists",
                    file_group=table.file_group,
                    year_label=table.year_label,
                    variable=tgt.variable,
                )
            clashing = {y: tag for y, tag in native.get(new_name, {}).items() if tag != tgt.type_tag}
            if clashing:
                other = next(t for t in tables if t.year_index == min(clashing))
                raise NameCollision(
                    f"Cannot rename {tgt.variable!r} to {new_name!r}: year {other.year_label} "
                    f"already has {new_name!r} typed {clashing[other.year_index].value}",
                    file_group=table.file_group,
                    year_label=table.year_label,
                    variable=tgt.variable,
                )
            mapping[tgt.variable] = new_name
            logger.info(f"{table.file_group} {table.year_label}: renamed {tgt.variable} -> {new_name}")

        out.append(
            replace(
                table,
                frame=table.frame.rename(mapping),
                column_types={mapping.get(k, k): v for k, v in table.column_types.items()},
                levels={mapping.get(k, k): v for k, v in table.levels.items()},
            )
        )
    return out


# ---------------- Union ---------------- #
def merged_levels(tables: Sequence[YearTable]) -> Dict[str, List[str]]:
    """Per categorical column: first year's levels, then newly seen levels in year order."""
    merged: Dict[str, List[str]] = {}
    for t in tables:
        for name, levels in t.levels.items():
            if t.column_types.get(name) is not TypeTag.CATEGORICAL:
                continue
            acc = merged.setdefault(name, [])
            acc.extend(lv for lv in levels if lv not in acc)
    return merged


def _check_mergeable(tables: Sequence[YearTable], frames: Sequence[pl.DataFrame]) -> None:
    """
    Raise SchemaConflict for a column whose per-year dtypes have no common supertype.

    Same-tag columns can still differ in storage (datetime time zones, list vs
    struct).
    """
    dtypes: Dict[str, Dict[str, List[str]]] = {}
    for t, df in zip(tables, frames):
        for name, dtype in df.schema.items():
            dtypes.setdefault(name, {}).setdefault(str(dtype), []).append(t.year_label)

    for name, by_dtype in dtypes.items():
        if len(by_dtype) < 2:
            continue
        empties = [df.select(name).clear() for df in frames if name in df.columns]
        try:
            pl.concat(empties, how="vertical_relaxed")
        except pl.exceptions.PolarsError as e:
            detail = "; ".join(f"{dt} in {', '.join(years)}" for dt, years in by_dtype.items())
            raise SchemaConflict(
                f"Column {name!r} cannot be stacked across years ({detail})",
                file_group=tables[0].file_group,
                variable=name,
            ) from e


def union_tables(tables: Sequence[YearTable]) -> pl.DataFrame:
    """
    Stack year tables into one frame with a trailing `year_index` column.

    Columns absent from a year are filled with nulls. Row order is year order,
    then the original within-year order.
    """
    if not tables:
        raise ValueError("Nothing to union: no year tables given")
    for t in tables:
        if YEAR_INDEX_COL in t.columns:
            raise NameCollision(
                f"Input already has a {YEAR_INDEX_COL!r} column",
                file_group=t.file_group,
                year_label=t.year_label,
                variable=YEAR_INDEX_COL,
            )

    levels = merged_levels(tables)
    frames: List[pl.DataFrame] = []
    for t in tables:
        casts = [
            as_categorical(name, levels[name])
            for name in t.columns
            if levels.get(name) and t.column_types[name] is TypeTag.CATEGORICAL
        ]
        df = t.frame.with_columns(casts) if casts else t.frame
        frames.append(df.with_columns(pl.lit(t.year_index, dtype=pl.Int32).alias(YEAR_INDEX_COL)))

    _check_mergeable(tables, frames)
    combined = pl.concat(frames, how="diagonal_relaxed", rechunk=True)
    value_cols = [c for c in combined.columns if c != YEAR_INDEX_COL]
    return combined.select([*value_cols, YEAR_INDEX_COL])


def attach_year_labels(combined: pl.DataFrame, year_labels: Sequence[str]) -> pl.DataFrame:
    """Add `year_label` by mapping the 1-based `year_index` back through `year_labels`."""
    if YEAR_LABEL_COL in combined.columns:
        raise NameCollision(f"Combined table already has a {YEAR_LABEL_COL!r} column", variable=YEAR_LABEL_COL)
    lookup = {pos: str(label) for pos, label in enumerate(year_labels, start=1)}
    return combined.with_columns(
        pl.col(YEAR_INDEX_COL)
        .replace_strict(lookup, default=None, return_dtype=pl.String)
        .alias(YEAR_LABEL_COL)
    )
