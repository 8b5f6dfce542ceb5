"""
Per-year extract loader (Polars)

- Resolves one input file per (file-group, year-label) from a path pattern
- Reads Stata (.dta, value labels -> ordered categoricals), Parquet, CSV(.gz) and
  tab-delimited extracts into Polars
- Lower-cases every column name so later matching is case-insensitive
- Stores categorical columns as pl.Enum so values and their ordered label set travel together
- Parallel per-year reads via ThreadPoolExecutor, re-assembled in year order
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd
import polars as pl
from tqdm import tqdm

from survey_union.errors import FormatError, SourceNotFound
from survey_union.tables import YearTable, as_categorical, categorical_levels

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".dta", ".parquet", ".csv", ".csv.gz", ".tab", ".tsv")
CSV_INFER_ROWS = 10_000


# ---------------- Source resolution ---------------- #
def _suffix_of(path: Path) -> str:
    name = path.name.lower()
    for suffix in sorted(SUPPORTED_SUFFIXES, key=len, reverse=True):
        if name.endswith(suffix):
            return suffix
    return path.suffix.lower()


def resolve_source(raw_dir: Path, pattern: str, file_group: str, year_label: str) -> Path:
    """
    Build the expected path for one year and locate it on disk.

    Falls back to a case-insensitive file-name match inside the expected
    directory (distributions mix HOUSEHOL.TAB and househol.tab).
    """
    rel = pattern.format(year=year_label, group=file_group)
    expected = Path(rel) if Path(rel).is_absolute() else Path(raw_dir) / rel
    if expected.is_file():
        return expected

    parent = expected.parent
    if parent.is_dir():
        wanted = expected.name.lower()
        for candidate in sorted(parent.iterdir()):
            if candidate.is_file() and candidate.name.lower() == wanted:
                logger.debug(f"{file_group} {year_label}: matched {candidate.name} case-insensitively")
                return candidate
    raise SourceNotFound(expected, file_group=file_group, year_label=year_label)


# ---------------- Readers ---------------- #
def _read_stata(path: Path) -> pl.DataFrame:
    """
    Read a .dta file keeping value labels.

    Labelled columns come back from pandas as ordered categoricals; they are
    passed to Polars as plain labels and re-typed as pl.Enum with the original
    level order.
    """
    pdf = pd.read_stata(path, convert_categoricals=True, order_categoricals=True)
    levels: Dict[str, List[str]] = {}
    for col in pdf.columns:
        if isinstance(pdf[col].dtype, pd.CategoricalDtype):
            # duplicate labels would break the Enum
            levels[col] = list(dict.fromkeys(str(c) for c in pdf[col].cat.categories))
            pdf[col] = pd.Series(
                [None if pd.isna(v) else str(v) for v in pdf[col].astype(object)],
                index=pdf.index,
                dtype=object,
            )
    df = pl.from_pandas(pdf)
    if levels:
        df = df.with_columns([as_categorical(c, lv) for c, lv in levels.items()])
    return df


def _read_delimited(path: Path, separator: str) -> pl.DataFrame:
    return pl.read_csv(
        path,
        separator=separator,
        infer_schema_length=CSV_INFER_ROWS,
        try_parse_dates=True,
    )


def read_raw_frame(path: Path) -> pl.DataFrame:
    suffix = _suffix_of(path)
    if suffix == ".dta":
        return _read_stata(path)
    if suffix == ".parquet":
        return pl.read_parquet(path)
    if suffix in (".csv", ".csv.gz"):
        return _read_delimited(path, ",")
    if suffix in (".tab", ".tsv"):
        return _read_delimited(path, "\t")
    raise ValueError(f"Unsupported file type '{suffix}' (expected one of {', '.join(SUPPORTED_SUFFIXES)})")


def normalize_columns(df: pl.DataFrame) -> pl.DataFrame:
    """
    Lower-case column names and turn any plain Categorical into an Enum.

    Non-categorical columns with no values at all become the Null dtype, so an
    empty CSV column does not read as text.
    """
    lowered = [str(c).strip().lower() for c in df.columns]
    dupes = sorted({c for c in lowered if lowered.count(c) > 1})
    if dupes:
        raise ValueError(f"Columns collide after lower-casing: {dupes}")
    df = df.rename(dict(zip(df.columns, lowered)))

    casts = []
    for name, dtype in df.schema.items():
        if isinstance(dtype, pl.Categorical):
            levels = categorical_levels(df.get_column(name))
            if levels:
                casts.append(as_categorical(name, levels))
        elif (
            not isinstance(dtype, pl.Enum)
            and dtype != pl.Null
            and df.height > 0
            and df.get_column(name).null_count() == df.height
        ):
            casts.append(pl.lit(None).alias(name))
    return df.with_columns(casts) if casts else df


def read_year_table(path: Path, file_group: str, year_label: str, year_index: int) -> YearTable:
    """Read one extract into a tagged YearTable; any parse failure becomes FormatError."""
    try:
        df = normalize_columns(read_raw_frame(path))
    except Exception as e:
        raise FormatError(f"Could not read {path.name} as a table: {e}", file_group=file_group, year_label=year_label) from e
    logger.info(f"{file_group} {year_label}: loaded {path.name} (rows={df.height:,}, cols={df.width})")
    return YearTable.from_frame(df, file_group=file_group, year_label=year_label, year_index=year_index, source=path)


def _load_one(raw_dir: Path, pattern: str, file_group: str, year_label: str, year_index: int) -> YearTable:
    path = resolve_source(raw_dir, pattern, file_group, year_label)
    return read_year_table(path, file_group, year_label, year_index)


# ---------------- Year loading ---------------- #
def load_year_tables(
    file_group: str,
    year_labels: Sequence[str],
    raw_dir: Path,
    pattern: str,
    max_workers: int = 4,
    show_progress: bool = False,
) -> List[YearTable]:
    """
    Load one YearTable per year label, in the order of `year_labels`.

    Years are read concurrently. Every failure is logged; the first one in
    year order is then re-raised so no partial series is handed on.
    """
    labels = [str(y) for y in year_labels]
    if not labels:
        raise ValueError(f"No year labels given for file group '{file_group}'")
    if len(set(labels)) != len(labels):
        raise ValueError(f"Duplicate year labels for file group '{file_group}': {labels}")

    results: Dict[int, YearTable] = {}
    failures: Dict[int, Exception] = {}

    with ThreadPoolExecutor(max_workers=max(1, int(max_workers))) as ex:
        futures = {
            ex.submit(_load_one, Path(raw_dir), pattern, file_group, label, pos): pos
            for pos, label in enumerate(labels, start=1)
        }
        done = as_completed(futures)
        if show_progress:
            done = tqdm(done, total=len(futures), desc=f"Loading {file_group}", leave=False)
        for fut in done:
            pos = futures[fut]
            try:
                results[pos] = fut.result()
            except Exception as e:
                failures[pos] = e
                logger.error(f"{file_group} {labels[pos - 1]} failed: {e}")

    if failures:
        raise failures[min(failures)]

    return [results[pos] for pos in range(1, len(labels) + 1)]
