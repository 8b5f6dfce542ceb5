"""Tests for per-year extract loading."""

from pathlib import Path

import pandas as pd
import polars as pl
import pytest

from survey_union.errors import FormatError, SourceNotFound
from survey_union.tables import TypeTag
from survey_union.year_loader import load_year_tables, read_year_table, resolve_source

PATTERN = "{year}/househol.csv"
LABELS = ["2010", "2011", "2012"]


class TestResolveSource:
    def test_exact_path(self, raw_dir):
        path = resolve_source(raw_dir, PATTERN, "household", "2010")
        assert path == raw_dir / "2010" / "househol.csv"

    def test_case_insensitive_fallback(self, tmp_path):
        (tmp_path / "2015").mkdir()
        (tmp_path / "2015" / "HOUSEHOL.CSV").write_text("a\n1\n")

        path = resolve_source(tmp_path, PATTERN, "household", "2015")
        assert path.name == "HOUSEHOL.CSV"

    def test_group_token(self, tmp_path):
        (tmp_path / "2015").mkdir()
        (tmp_path / "2015" / "adult.csv").write_text("a\n1\n")

        path = resolve_source(tmp_path, "{year}/{group}.csv", "adult", "2015")
        assert path == tmp_path / "2015" / "adult.csv"

    def test_missing(self, tmp_path):
        with pytest.raises(SourceNotFound) as exc:
            resolve_source(tmp_path, PATTERN, "household", "1999")
        assert exc.value.file_group == "household"
        assert exc.value.year_label == "1999"
        assert isinstance(exc.value, FileNotFoundError)


class TestReadYearTable:
    def test_csv_lower_cases_columns(self, raw_dir):
        table = read_year_table(raw_dir / "2010" / "househol.csv", "household", "2010", 1)

        assert table.columns == ["sernum", "region", "income"]
        assert table.column_types["income"] is TypeTag.NUMERIC
        assert table.year_index == 1
        assert table.source == raw_dir / "2010" / "househol.csv"

    def test_stata_value_labels_become_ordered_levels(self, tmp_path):
        path = tmp_path / "adult.dta"
        pdf = pd.DataFrame(
            {
                "SERNUM": [1, 2, 3],
                "Tenure": pd.Categorical(["rent", "own", "rent"], categories=["own", "rent"]),
                "Name": ["a", "b", "c"],
            }
        )
        pdf.to_stata(path, write_index=False)

        table = read_year_table(path, "adult", "2015", 1)

        assert table.columns == ["sernum", "tenure", "name"]
        assert table.column_types["tenure"] is TypeTag.CATEGORICAL
        assert table.column_types["name"] is TypeTag.TEXT
        assert table.levels["tenure"] == ["own", "rent"]
        assert table.frame["tenure"].cast(pl.String).to_list() == ["rent", "own", "rent"]

    def test_parquet_categorical_becomes_enum(self, tmp_path):
        path = tmp_path / "hbai.parquet"
        pl.DataFrame({"Grade": pl.Series(["b", "a", "b"], dtype=pl.Categorical)}).write_parquet(path)

        table = read_year_table(path, "hbai", "2015", 1)

        assert isinstance(table.frame.schema["grade"], pl.Enum)
        assert table.levels["grade"] == ["b", "a"]

    def test_tab_delimited(self, tmp_path):
        path = tmp_path / "benunit.tab"
        path.write_text("SERNUM\tBENUNIT\n1\t1\n1\t2\n")

        table = read_year_table(path, "benunit", "2015", 1)
        assert table.columns == ["sernum", "benunit"]
        assert table.height == 2

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "broken.parquet"
        path.write_text("this is not parquet")

        with pytest.raises(FormatError) as exc:
            read_year_table(path, "household", "2015", 1)
        assert exc.value.year_label == "2015"
        assert exc.value.__cause__ is not None

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "househol.xlsx"
        path.write_text("x")

        with pytest.raises(FormatError):
            read_year_table(path, "household", "2015", 1)

    def test_case_collision(self, tmp_path):
        path = tmp_path / "househol.csv"
        path.write_text("Age,AGE\n1,2\n")

        with pytest.raises(FormatError, match="collide"):
            read_year_table(path, "household", "2015", 1)


class TestLoadYearTables:
    def test_one_table_per_label_in_order(self, raw_dir):
        tables = load_year_tables("household", LABELS, raw_dir, PATTERN, max_workers=3)

        assert [t.year_label for t in tables] == LABELS
        assert [t.year_index for t in tables] == [1, 2, 3]
        assert [t.height for t in tables] == [2, 3, 1]

    def test_types_decided_at_load(self, raw_dir):
        tables = load_year_tables("household", LABELS, raw_dir, PATTERN)

        assert tables[0].column_types["region"] is TypeTag.NUMERIC
        assert tables[2].column_types["region"] is TypeTag.TEXT

    def test_missing_year_aborts(self, raw_dir):
        (raw_dir / "2011" / "househol.csv").unlink()

        with pytest.raises(SourceNotFound) as exc:
            load_year_tables("household", LABELS, raw_dir, PATTERN)
        assert exc.value.year_label == "2011"

    def test_first_failure_in_year_order(self, raw_dir):
        (raw_dir / "2011" / "househol.csv").unlink()
        (raw_dir / "2012" / "househol.csv").unlink()

        with pytest.raises(SourceNotFound) as exc:
            load_year_tables("household", LABELS, raw_dir, PATTERN, max_workers=2)
        assert exc.value.year_label == "2011"

    def test_duplicate_labels(self, raw_dir):
        with pytest.raises(ValueError):
            load_year_tables("household", ["2010", "2010"], raw_dir, PATTERN)

    def test_no_labels(self, raw_dir):
        with pytest.raises(ValueError):
            load_year_tables("household", [], raw_dir, PATTERN)

    def test_progress_bar_does_not_change_result(self, raw_dir):
        tables = load_year_tables("household", LABELS, raw_dir, PATTERN, show_progress=True)
        assert [t.year_label for t in tables] == LABELS

    def test_accepts_str_path(self, raw_dir):
        tables = load_year_tables("household", LABELS[:1], str(raw_dir), PATTERN)
        assert isinstance(tables[0].source, Path)


class TestEmptyColumns:
    def test_all_empty_csv_column_reads_as_null(self, tmp_path):
        path = tmp_path / "househol.csv"
        path.write_text("a,b\n3,\n4,\n")

        table = read_year_table(path, "household", "2011", 2)

        assert table.frame.schema["b"] == pl.Null
        assert table.column_types["b"] is TypeTag.NUMERIC
        assert table.height == 2

    def test_partly_empty_column_keeps_its_type(self, tmp_path):
        path = tmp_path / "househol.csv"
        path.write_text("a,b\n3,\n4,x\n")

        table = read_year_table(path, "household", "2011", 2)
        assert table.column_types["b"] is TypeTag.TEXT

    def test_header_only_file_keeps_read_types(self, tmp_path):
        path = tmp_path / "househol.csv"
        path.write_text("a,b\n")

        table = read_year_table(path, "household", "2011", 2)
        assert table.height == 0
        assert table.frame.schema["b"] != pl.Null
