# tip_panel/data/verify_panel.py
"""
Verification reports for the assembled panels.

Produces (under reports/):
 - verify_missingness.csv
 - verify_year_coverage.csv
 - verify_country_coverage.csv
 - verify_value_stats.csv
 - verify_source_closure.csv   (source cowcodes that never reach the panel)

Structural checks (raise PanelIntegrityError):
 - (cowcode, year) unique
 - rows == distinct cowcodes x distinct years
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from tip_panel.config import INTERIM, KEY, PROCESSED, REPORTS, setup_logging
from tip_panel.data.panel import PanelIntegrityError, duplicated_keys
from tip_panel.utils.data_registry import record_artifact

LOG = logging.getLogger(__name__)

CLEAN_SOURCES = ["tip_3p", "wgi", "polity", "gender", "gdp", "aid", "crim"]


def check_structure(panel: pd.DataFrame) -> Dict[str, int]:
    """Key uniqueness and the rectangular-panel row count."""
    dupes = duplicated_keys(panel)
    if not dupes.empty:
        raise PanelIntegrityError(f"{len(dupes)} rows share a (cowcode, year) key, e.g. {dupes.head(3).values.tolist()}")
    n_codes = int(panel["cowcode"].nunique())
    n_years = int(panel["year"].nunique())
    if len(panel) != n_codes * n_years:
        raise PanelIntegrityError(
            f"panel has {len(panel):,} rows, expected {n_codes} countries x {n_years} years = {n_codes * n_years:,}"
        )
    return {"rows": len(panel), "countries": n_codes, "years": n_years}


def closure_report(panel: pd.DataFrame, tables: Dict[str, pd.DataFrame]) -> pd.DataFrame:
    """Per source, the cowcodes (and row counts) that are not in the panel."""
    panel_codes = set(panel["cowcode"].unique())
    rows = []
    for name, table in tables.items():
        if "cowcode" not in table.columns:
            continue
        outside = table.loc[~table["cowcode"].isin(panel_codes)]
        for code, n in outside.groupby("cowcode").size().items():
            rows.append({"source": name, "cowcode": int(code), "n_rows": int(n)})
    return pd.DataFrame(rows, columns=["source", "cowcode", "n_rows"])


def _load_clean_tables(interim: Path) -> Dict[str, pd.DataFrame]:
    tables = {}
    for name in CLEAN_SOURCES:
        p = interim / f"clean_{name}.csv"
        if p.exists():
            tables[name] = pd.read_csv(p, low_memory=False)
        else:
            LOG.debug("No clean table for %s at %s", name, p)
    return tables


def _write_and_record(df: pd.DataFrame, out_path: Path) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out_path, index=False)
    md5 = record_artifact(out_path)
    LOG.info("Wrote %s (rows=%s) md5=%s", out_path.name, f"{len(df):,}", md5)


def run_verification(
    panel_path: Optional[Path] = None,
    out_dir: Optional[Path] = None,
    interim: Optional[Path] = None,
) -> Dict[str, int]:
    """Check structure, then write missingness / coverage / closure reports."""
    panel_path = Path(panel_path) if panel_path else PROCESSED / "panel_crim.csv"
    out_dir = Path(out_dir) if out_dir else REPORTS
    interim = Path(interim) if interim else INTERIM
    if not panel_path.exists():
        LOG.error("Missing panel: %s. Run the panel builder first.", panel_path)
        raise SystemExit(1)

    df = pd.read_csv(panel_path, low_memory=False)
    stats = check_structure(df)

    missing = df.isna().mean().sort_values(ascending=False)
    missing_df = missing.reset_index()
    missing_df.columns = ["column", "missing_fraction"]

    value_cols = [c for c in df.columns if c not in KEY]
    year_cov = df.groupby("year")[value_cols].count().reset_index()
    country_cov = df.groupby("cowcode")[value_cols].count().reset_index()

    num = df.drop(columns=KEY).select_dtypes(include=["number"])
    value_stats = num.describe().T.reset_index().rename(columns={"index": "column"})

    closure = closure_report(df, _load_clean_tables(interim))

    _write_and_record(missing_df, out_dir / "verify_missingness.csv")
    _write_and_record(year_cov, out_dir / "verify_year_coverage.csv")
    _write_and_record(country_cov, out_dir / "verify_country_coverage.csv")
    _write_and_record(value_stats, out_dir / "verify_value_stats.csv")
    _write_and_record(closure, out_dir / "verify_source_closure.csv")

    LOG.info("PANEL: %s", panel_path)
    LOG.info("rows: %s countries: %s years: %s", stats["rows"], stats["countries"], stats["years"])
    LOG.info("Top 12 most-missing columns:\n%s", missing.head(12).to_string())
    if not closure.empty:
        LOG.info("Source countries outside the 3P scaffold:\n%s", closure.groupby("source")["cowcode"].nunique().to_string())
    return stats


if __name__ == "__main__":
    setup_logging()
    run_verification()
