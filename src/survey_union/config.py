"""
YAML configuration for union runs.

paths:
  raw_dir / processed_dir      relative paths resolve against the repo root
union:
  years: {start, end} | {list}  end may be "present"
  file_groups: {<name>: {pattern: "{year}/<file>", enabled: true}}
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

REPO_ROOT = Path(__file__).resolve().parents[2]
# Default config search paths
_CFG_SEARCH = [
    REPO_ROOT / "config.yml",
    Path(__file__).resolve().parent / "config.yml",
]


# ---------------- Configuration object model ---------------- #
@dataclass
class FileGroupConfig:
    name: str
    pattern: str  # path pattern with {year} and {group} tokens, relative to raw_dir
    enabled: bool = True
    years: Optional[List[str]] = None  # per-group override of the global year labels


@dataclass
class Config:
    raw_dir: Path
    processed_dir: Path
    years: List[str]
    file_groups: Dict[str, FileGroupConfig] = field(default_factory=dict)
    max_workers: int = 4
    keep_year_tables: bool = False
    attach_year_label: bool = True
    write_parquet: bool = False
    output_basename: str = "{group}_{start}_{end}"
    show_progress: bool = True

    def labels_for(self, group: str) -> List[str]:
        fg = self.file_groups[group]
        return list(fg.years) if fg.years else list(self.years)


def _coerce_to_path(p: Any, base: Path) -> Path:
    if isinstance(p, Path):
        return p
    if p is None:
        return base
    return (base / str(p)).resolve() if not Path(str(p)).is_absolute() else Path(str(p)).resolve()


def year_range(start: int | None, end: int | str | None) -> List[int]:
    if start is None:
        raise ValueError("years.start is required when years.list is not given")
    if end is None or (isinstance(end, str) and end.lower() == "present"):
        end_year = datetime.now().year
    else:
        end_year = int(end)
    return list(range(int(start), end_year + 1))


def year_labels(years_cfg: Any) -> List[str]:
    """Year labels from `{list: [...]}`, `{start, end}` or a bare list."""
    if isinstance(years_cfg, (list, tuple)):
        return [str(y) for y in years_cfg]
    years_cfg = years_cfg or {}
    if years_cfg.get("list"):
        return [str(y) for y in years_cfg["list"]]
    return [str(y) for y in year_range(years_cfg.get("start"), years_cfg.get("end"))]


def load_config(config_path: Optional[str | Path] = None) -> Config:
    """
    Load configuration from YAML and return a Config object.

    If config_path is None, searches a few common locations in the repo.
    """
    cfg_path: Optional[Path] = None
    if config_path is not None:
        cfg_path = Path(config_path)
        if not cfg_path.exists():
            raise FileNotFoundError(f"Config not found: {cfg_path}")
    else:
        for p in _CFG_SEARCH:
            if p.exists():
                cfg_path = p
                break
    if cfg_path is None:
        raise FileNotFoundError("config.yml not found in expected locations.")

    with open(cfg_path, "r") as f:
        raw = yaml.safe_load(f) or {}

    paths = raw.get("paths", {}) or {}
    raw_dir = _coerce_to_path(paths.get("raw_dir", "data/raw"), REPO_ROOT)
    processed_dir = _coerce_to_path(paths.get("processed_dir", "data/processed"), REPO_ROOT)

    u = raw.get("union", {}) or {}
    groups: Dict[str, FileGroupConfig] = {}
    for name, g in (u.get("file_groups", {}) or {}).items():
        g = g or {}
        if not g.get("pattern"):
            raise ValueError(f"File group '{name}' has no pattern")
        groups[name] = FileGroupConfig(
            name=name,
            pattern=str(g["pattern"]),
            enabled=bool(g.get("enabled", True)),
            years=year_labels(g["years"]) if g.get("years") else None,
        )

    return Config(
        raw_dir=raw_dir,
        processed_dir=processed_dir,
        years=year_labels(u.get("years")),
        file_groups=groups,
        max_workers=int(u.get("max_workers", 4)),
        keep_year_tables=bool(u.get("keep_year_tables", False)),
        attach_year_label=bool(u.get("attach_year_label", True)),
        write_parquet=bool(u.get("write_parquet", False)),
        output_basename=str(u.get("output_basename", "{group}_{start}_{end}")),
        show_progress=bool(u.get("show_progress", True)),
    )
