"""
Fatal error types for a file-group union run.

Type drift, level drift and partial-year presence are never raised; they end
up in the diagnostics table instead.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class UnionError(Exception):
    """Base class carrying the file-group / year context of a failure."""

    def __init__(
        self,
        message: str,
        file_group: Optional[str] = None,
        year_label: Optional[str] = None,
        variable: Optional[str] = None,
    ):
        self.file_group = file_group
        self.year_label = year_label
        self.variable = variable
        context = []
        if file_group is not None:
            context.append(f"group={file_group}")
        if year_label is not None:
            context.append(f"year={year_label}")
        if variable is not None:
            context.append(f"variable={variable}")
        if context:
            message = f"{message} [{', '.join(context)}]"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""


class SourceNotFound(UnionError, FileNotFoundError):
    """The expected per-year input file does not exist."""

    def __init__(self, path: Path, file_group: Optional[str] = None, year_label: Optional[str] = None):
        self.path = Path(path)
        super().__init__(f"Input file not found: {self.path}", file_group=file_group, year_label=year_label)


class FormatError(UnionError, ValueError):
    """An input file could not be read as a rectangular table."""


class NameCollision(UnionError, KeyError):
    """A synthesized `<name>_<type>` column clashes with an existing column."""


class SchemaConflict(UnionError, TypeError):
    """Two years store one column with storage types that cannot be stacked."""
