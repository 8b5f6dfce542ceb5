"""
In-memory model of one survey-year extract.

Each column carries a type tag decided once, at load time, from its polars
dtype. Later stages (profilers, drift resolver, renamer) read the tag from the
`YearTable` instead of re-inspecting the data.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import polars as pl


class TypeTag(str, Enum):
    NUMERIC = "numeric"
    TEXT = "text"
    CATEGORICAL = "categorical"
    DATE = "date"
    DATETIME = "datetime"
    LOGICAL = "logical"
    OTHER = "other"

    def __str__(self) -> str:
        return self.value


# The reconciliation default: instances of this type keep their original name.
NUMERIC_DEFAULT = TypeTag.NUMERIC


def type_tag_for(dtype: pl.DataType) -> TypeTag:
    """Map a polars dtype onto the closed type-tag vocabulary."""
    if dtype == pl.Null or dtype.is_numeric():
        # an all-null column carries no type information of its own
        return TypeTag.NUMERIC
    if dtype == pl.String:
        return TypeTag.TEXT
    if isinstance(dtype, (pl.Enum, pl.Categorical)) or dtype in (pl.Enum, pl.Categorical):
        return TypeTag.CATEGORICAL
    if dtype == pl.Date:
        return TypeTag.DATE
    if dtype == pl.Datetime:
        return TypeTag.DATETIME
    if dtype == pl.Boolean:
        return TypeTag.LOGICAL
    return TypeTag.OTHER


def categorical_levels(series: pl.Series) -> List[str]:
    """Ordered level list of a categorical series (Enum categories, else order of appearance)."""
    if isinstance(series.dtype, pl.Enum):
        return series.dtype.categories.to_list()
    return series.cast(pl.String).drop_nulls().unique(maintain_order=True).to_list()


def as_categorical(name: str, levels: List[str]) -> pl.Expr:
    """Cast a column to an Enum with the given level order (plain Categorical if no levels)."""
    expr = pl.col(name).cast(pl.String)
    if not levels:
        return expr.cast(pl.Categorical)
    return expr.cast(pl.Enum(levels))


@dataclass
class YearTable:
    file_group: str
    year_label: str
    year_index: int  # 1-based position in the requested year labels
    frame: pl.DataFrame
    column_types: Dict[str, TypeTag] = field(default_factory=dict)
    levels: Dict[str, List[str]] = field(default_factory=dict)
    source: Optional[Path] = None

    @classmethod
    def from_frame(
        cls,
        frame: pl.DataFrame,
        file_group: str,
        year_label: str,
        year_index: int,
        source: Optional[Path] = None,
    ) -> "YearTable":
        """Tag every column of `frame` and record the level list of categorical ones."""
        column_types: Dict[str, TypeTag] = {}
        levels: Dict[str, List[str]] = {}
        for name, dtype in frame.schema.items():
            tag = type_tag_for(dtype)
            column_types[name] = tag
            if tag is TypeTag.CATEGORICAL:
                levels[name] = categorical_levels(frame.get_column(name))
        return cls(
            file_group=file_group,
            year_label=year_label,
            year_index=year_index,
            frame=frame,
            column_types=column_types,
            levels=levels,
            source=source,
        )

    @property
    def columns(self) -> List[str]:
        return self.frame.columns

    @property
    def height(self) -> int:
        return self.frame.height

    def __repr__(self) -> str:
        return (
            f"YearTable(group={self.file_group!r}, year={self.year_label!r}, "
            f"index={self.year_index}, shape={self.frame.shape})"
        )
