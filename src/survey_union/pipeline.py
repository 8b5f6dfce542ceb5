"""
Longitudinal union of yearly survey extracts (config-driven, Polars)

Per file group (e.g. household, benunit, adult):
1) Load one table per year label (parallel), lower-casing column names.
2) Profile each variable's type tag and categorical level set per year.
3) Resolve drift into one diagnostic per variable and the set of columns to rename.
4) Rename non-numeric instances of type-drifting variables to <name>_<type>.
5) Stack all years into one table with a year_index column.

Each group run is independent and returns an explicit UnionResult. The CLI
writes the combined table, the diagnostics table and a run summary under
paths.processed_dir.
"""
from __future__ import annotations

import argparse
import gzip
import json
import logging
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

import polars as pl

from survey_union.config import Config, load_config
from survey_union.drift import (
    RenameTarget,
    VariableDiagnostic,
    diagnostics_frame,
    log_drift_summary,
    rename_targets,
    resolve_drift,
)
from survey_union.profiling import profile_levels, profile_types
from survey_union.tables import YearTable
from survey_union.union import apply_renames, attach_year_labels, renamed_column, union_tables
from survey_union.year_loader import load_year_tables

logger = logging.getLogger(__name__)


# ---------------- Logging ---------------- #
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_CYAN = "\033[96m"
    BG_RED = "\033[41m"


class ColorFormatter(logging.Formatter):
    """Colours the level name and highlights counts and pipeline keywords."""

    LEVEL_COLORS = {
        "DEBUG": Colors.DIM + Colors.WHITE,
        "INFO": Colors.GREEN,
        "WARNING": Colors.YELLOW,
        "ERROR": Colors.BRIGHT_RED,
        "CRITICAL": Colors.BG_RED + Colors.WHITE,
    }
    KEYWORDS = {
        "loaded": Colors.GREEN,
        "saved": Colors.GREEN,
        "failed": Colors.BRIGHT_RED,
        "missing": Colors.YELLOW,
        "drift": Colors.YELLOW,
        "renamed": Colors.BLUE,
        "stacked": Colors.BLUE,
    }

    def format(self, record: logging.LogRecord) -> str:
        timestamp = f"{Colors.DIM}{self.formatTime(record)}{Colors.RESET}"
        level_color = self.LEVEL_COLORS.get(record.levelname, Colors.WHITE)
        level_text = f"{level_color}{record.levelname}{Colors.RESET}"
        return f"{timestamp} - {level_text} - {self.enhance_message(record.getMessage())}"

    def enhance_message(self, message: str) -> str:
        message = re.sub(r"(\d{1,3}(?:,\d{3})+)", f"{Colors.BRIGHT_CYAN}\\1{Colors.RESET}", message)
        for keyword, color in self.KEYWORDS.items():
            message = re.sub(rf"\b({keyword})\b", f"{color}\\1{Colors.RESET}", message, flags=re.IGNORECASE)
        return message


def setup_logging(level: int = logging.INFO, log_file: Optional[Path] = None, color: bool = True) -> logging.Logger:
    """Console handler on stdout (coloured when attached to a terminal), plus an optional file handler."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    plain = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ColorFormatter() if color and sys.stdout.isatty() else plain)
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file)
        fh.setFormatter(plain)
        root.addHandler(fh)

    root.setLevel(level)
    return logging.getLogger("survey_union")


# ---------------- Result bundle ---------------- #
@dataclass
class UnionResult:
    file_group: str
    year_labels: List[str]
    combined: pl.DataFrame
    diagnostics: Dict[str, VariableDiagnostic]
    diagnostics_table: pl.DataFrame
    rename_targets: Set[RenameTarget] = field(default_factory=set)
    year_tables: List[YearTable] = field(default_factory=list)

    @property
    def renamed_columns(self) -> List[str]:
        return sorted({renamed_column(t.variable, t.type_tag) for t in self.rename_targets})


def union_year_tables(
    tables: Sequence[YearTable],
    year_labels: Optional[Sequence[str]] = None,
    keep_year_tables: bool = True,
) -> UnionResult:
    """Profile, resolve, rename and stack already-loaded year tables."""
    if not tables:
        raise ValueError("Nothing to union: no year tables given")
    file_group = tables[0].file_group
    labels = [str(y) for y in year_labels] if year_labels is not None else [t.year_label for t in tables]

    type_profiles = profile_types(tables)
    level_profiles = profile_levels(tables)
    diagnostics = resolve_drift(type_profiles, level_profiles, total_years=len(tables))
    log_drift_summary(file_group, diagnostics)

    targets = rename_targets(diagnostics)
    renamed = apply_renames(tables, targets)
    combined = union_tables(renamed)
    logger.info(
        f"{file_group}: stacked {len(renamed)} years into {combined.height:,} rows x {combined.width} cols "
        f"({len(targets)} column instances renamed)"
    )

    return UnionResult(
        file_group=file_group,
        year_labels=labels,
        combined=combined,
        diagnostics=diagnostics,
        diagnostics_table=diagnostics_frame(diagnostics, labels),
        rename_targets=targets,
        year_tables=list(renamed) if keep_year_tables else [],
    )


def run_file_group(
    file_group: str,
    year_labels: Sequence[str],
    raw_dir: Path,
    pattern: str,
    max_workers: int = 4,
    keep_year_tables: bool = False,
    show_progress: bool = False,
) -> UnionResult:
    """Load every year of one file group and union them. Any fatal error aborts the whole group."""
    tables = load_year_tables(
        file_group,
        year_labels,
        raw_dir=raw_dir,
        pattern=pattern,
        max_workers=max_workers,
        show_progress=show_progress,
    )
    return union_year_tables(tables, year_labels=year_labels, keep_year_tables=keep_year_tables)


# ---------------- Outputs ---------------- #
def write_outputs(
    result: UnionResult,
    out_dir: Path,
    basename: str,
    write_parquet: bool = False,
    attach_year_label: bool = True,
) -> Dict[str, Path]:
    """Write the combined table (csv.gz, optional parquet) and the diagnostics CSV."""
    out_dir.mkdir(parents=True, exist_ok=True)
    combined = result.combined
    if attach_year_label:
        combined = attach_year_labels(combined, result.year_labels)

    paths: Dict[str, Path] = {}
    csv_path = out_dir / f"{basename}.csv.gz"
    with gzip.open(csv_path, "wb") as f:
        combined.write_csv(f)
    paths["combined"] = csv_path
    logger.info(f"📦 {result.file_group}: saved {csv_path.name} (rows={combined.height:,}, cols={combined.width})")

    if write_parquet:
        pq_path = out_dir / f"{basename}.parquet"
        combined.write_parquet(pq_path)
        paths["parquet"] = pq_path
        logger.info(f"💾 {result.file_group}: saved {pq_path.name}")

    diag_path = out_dir / f"{basename}_diagnostics.csv"
    result.diagnostics_table.write_csv(diag_path)
    paths["diagnostics"] = diag_path
    logger.info(f"🧾 {result.file_group}: saved {diag_path.name}")
    return paths


def run_all(cfg: Config, groups: Optional[Sequence[str]] = None) -> Dict[str, object]:
    """
    Run every enabled (or explicitly requested) file group and write its outputs.

    Groups are independent: one failing group is logged and recorded in the
    summary while the others still run.
    """
    if groups:
        unknown = [g for g in groups if g not in cfg.file_groups]
        if unknown:
            raise KeyError(f"Unknown file group(s): {unknown}. Configured: {sorted(cfg.file_groups)}")
        selected = list(groups)
    else:
        selected = [name for name, g in cfg.file_groups.items() if g.enabled]

    summary: Dict[str, object] = {"groups": {}, "failed_groups": {}, "timestamp": datetime.now().isoformat()}
    for name in selected:
        fg = cfg.file_groups[name]
        labels = cfg.labels_for(name)
        logger.info(f"🚀 {name}: union over {len(labels)} years ({labels[0]}..{labels[-1]})")
        try:
            result = run_file_group(
                name,
                labels,
                raw_dir=cfg.raw_dir,
                pattern=fg.pattern,
                max_workers=cfg.max_workers,
                keep_year_tables=cfg.keep_year_tables,
                show_progress=cfg.show_progress,
            )
            basename = cfg.output_basename.format(group=name, start=labels[0], end=labels[-1])
            paths = write_outputs(
                result,
                cfg.processed_dir,
                basename,
                write_parquet=cfg.write_parquet,
                attach_year_label=cfg.attach_year_label,
            )
        except Exception as e:
            logger.error(f"❌ {name} failed: {e}")
            summary["failed_groups"][name] = str(e)
            continue

        summary["groups"][name] = {
            "years": labels,
            "rows": int(result.combined.height),
            "cols": int(result.combined.width),
            "variables": len(result.diagnostics),
            "not_okay": sorted(d.name for d in result.diagnostics.values() if not d.okay),
            "renamed_columns": result.renamed_columns,
            "outputs": {k: str(p) for k, p in paths.items()},
        }
    return summary


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Union yearly survey extracts into longitudinal tables.")
    parser.add_argument("--config", type=str, default=None, help="Path to config file (YAML, optional)")
    parser.add_argument("--groups", type=str, default=None, help="Comma list of file groups (default: all enabled)")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--no-log-file", action="store_true", help="Do not write a timestamped log file")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    cfg = load_config(args.config)

    log_file = None
    if not args.no_log_file:
        log_file = cfg.processed_dir / f"survey_union_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    setup_logging(getattr(logging, args.log_level.upper(), logging.INFO), log_file=log_file)
    if log_file is not None:
        logger.info(f"📄 Logging to: {log_file}")

    groups = [g.strip() for g in args.groups.split(",") if g.strip()] if args.groups else None
    summary = run_all(cfg, groups)

    cfg.processed_dir.mkdir(parents=True, exist_ok=True)
    summary_path = cfg.processed_dir / "union_summary.json"
    summary_path.write_text(json.dumps(summary, indent=2))
    failed = summary["failed_groups"]
    logger.info(f"🎉 Done. Success: {len(summary['groups'])} | Failed: {len(failed)} | Summary: {summary_path}")
    return 0 if not failed else 1


if __name__ == "__main__":
    raise SystemExit(main())
