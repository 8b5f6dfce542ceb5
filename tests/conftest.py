"""Shared pytest fixtures: small in-memory survey years with known drift."""

from pathlib import Path

import polars as pl
import pytest

from survey_union.tables import YearTable


def make_table(frame: pl.DataFrame, year_index: int, label: str | None = None, group: str = "household") -> YearTable:
    return YearTable.from_frame(
        frame,
        file_group=group,
        year_label=label or f"y{year_index}",
        year_index=year_index,
    )


@pytest.fixture
def make_year():
    """Factory building a tagged YearTable from a frame."""
    return make_table


@pytest.fixture
def drift_years() -> list[YearTable]:
    """Three years where `region` turns categorical in year 3 and `income` skips year 2."""
    y1 = pl.DataFrame(
        {
            "sernum": [1, 2],
            "region": [1, 2],
            "income": [100.0, 250.5],
            "tenure": pl.Series(["own", "rent"], dtype=pl.Enum(["own", "rent"])),
        }
    )
    y2 = pl.DataFrame(
        {
            "sernum": [3, 4, 5],
            "region": [2, 1, 1],
            "tenure": pl.Series(["rent", "other", "own"], dtype=pl.Enum(["own", "rent", "other"])),
        }
    )
    y3 = pl.DataFrame(
        {
            "sernum": [6],
            "region": pl.Series(["north"], dtype=pl.Enum(["north", "south"])),
            "income": [80.0],
            "tenure": pl.Series(["own"], dtype=pl.Enum(["own", "rent", "other"])),
        }
    )
    return [
        make_table(y1, 1, "2010"),
        make_table(y2, 2, "2011"),
        make_table(y3, 3, "2012"),
    ]


@pytest.fixture
def raw_dir(tmp_path: Path) -> Path:
    """A raw directory with one CSV per year for the `household` group."""
    root = tmp_path / "raw"
    years = {
        "2010": "SERNUM,Region,Income\n1,1,100.0\n2,2,250.5\n",
        "2011": "SERNUM,Region\n3,2\n4,1\n5,1\n",
        "2012": "SERNUM,Region,Income\n6,north,80.0\n",
    }
    for label, body in years.items():
        year_dir = root / label
        year_dir.mkdir(parents=True)
        (year_dir / "househol.csv").write_text(body)
    return root
