# tip_panel/data/panel.py
"""
Panel assembly: scaffold -> left joins -> derived columns -> lags.

Produces:
 - data/processed/panel_base.csv     (scaffold + every source + derived columns)
 - data/processed/panel_lagged.csv   (+ lag-1 / lag-2 of the model predictors)
 - data/processed/panel_crim.csv     (+ criminalization codings and their lags)

Rules:
 - The scaffold is every cowcode of the 3P index crossed with YEAR_START..YEAR_END.
   Sources are left-joined onto it, so no source can add a country-year.
 - After every assembly the row count must equal the scaffold's; anything else
   means a source was not unique on (cowcode, year) and the run aborts.
 - Lags are taken from the assembled, sorted panel (self-join on year - k),
   never from a source table on its own.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from tip_panel.config import (
    KEY,
    PROCESSED,
    YEAR_END,
    YEAR_START,
    load_sources,
    raw_path,
    setup_logging,
)
from tip_panel.data.aid import clean_aid, read_aid
from tip_panel.data.sources import (
    clean_crim,
    clean_gdp,
    clean_gender,
    clean_polity,
    clean_tip_3p,
    clean_wgi,
    read_crim,
    read_gdp,
    read_gender,
    read_polity,
    read_tip_3p,
    read_wgi,
    write_clean,
)
from tip_panel.data.treaty import clean_ratification, ratification_panel, read_ratification
from tip_panel.utils.data_registry import record_artifact

LOG = logging.getLogger(__name__)

# Fixed join order (joins touch disjoint value columns; the order keeps output stable)
SOURCE_ORDER: List[str] = ["tip_3p", "wgi", "polity", "gender", "ratification", "gdp", "aid"]

LOG_COLUMNS: Dict[str, str] = {
    "aid": "aid_log",
    "gdp": "gdp_log",
    "gdp_capita": "gdp_capita_log",
}

LAG_COLUMNS: List[str] = [
    "p3", "prosecution", "protection", "prevention",
    "polity2", "wgi_gov_eff", "wgi_rule_law", "wgi_corruption",
    "women_parl", "gdp_log", "gdp_capita_log", "aid_log", "aid_pct_gdp",
    "ratified",
]
CRIM_LAG_COLUMNS: List[str] = ["crim"]
LAGS = (1, 2)


class PanelIntegrityError(RuntimeError):
    """The assembled panel no longer has exactly one row per scaffold country-year."""


@dataclass
class Panels:
    base: pd.DataFrame
    lagged: pd.DataFrame
    crim: pd.DataFrame


def build_scaffold(codes: Iterable[int], start: int = YEAR_START, end: int = YEAR_END) -> pd.DataFrame:
    """Cartesian product of distinct cowcodes and the inclusive year range."""
    uniq = sorted({int(c) for c in pd.Series(list(codes)).dropna()})
    idx = pd.MultiIndex.from_product([uniq, range(start, end + 1)], names=KEY)
    scaffold = idx.to_frame(index=False)
    LOG.info("Scaffold: %d countries x %d years = %s rows", len(uniq), end - start + 1, f"{len(scaffold):,}")
    return scaffold


def duplicated_keys(df: pd.DataFrame) -> pd.DataFrame:
    return df.loc[df.duplicated(subset=KEY, keep=False), KEY]


def check_row_count(panel: pd.DataFrame, expected: int, stage: str, tables: Optional[Dict[str, pd.DataFrame]] = None) -> None:
    """Abort when a join changed the number of rows."""
    if len(panel) == expected:
        return
    culprits = [name for name, t in (tables or {}).items() if not duplicated_keys(t).empty]
    raise PanelIntegrityError(
        f"{stage}: panel has {len(panel):,} rows, expected {expected:,}; "
        f"sources with duplicate (cowcode, year) keys: {culprits or 'unknown'}"
    )


def assemble(
    base: pd.DataFrame,
    tables: Dict[str, pd.DataFrame],
    order: Optional[Sequence[str]] = None,
    stage: str = "assemble",
) -> pd.DataFrame:
    """
    Left-join each table onto `base` on (cowcode, year) in a fixed order.

    `base` is the scaffold (or an earlier panel); its row count is the
    post-condition checked after the joins.
    """
    order = list(order) if order is not None else [n for n in SOURCE_ORDER if n in tables]
    panel = base.copy()
    for name in order:
        if name not in tables:
            LOG.warning("%s: source %s not available; skipping", stage, name)
            continue
        table = tables[name]
        clash = [c for c in table.columns if c not in KEY and c in panel.columns]
        if clash:
            raise ValueError(f"{stage}: source {name} repeats existing columns {clash}")
        panel = panel.merge(table, on=KEY, how="left")
        LOG.info("%s: joined %s -> %s", stage, name, panel.shape)
    check_row_count(panel, len(base), stage, tables)
    return panel.sort_values(KEY).reset_index(drop=True)


def safe_log1p(s: pd.Series) -> pd.Series:
    """log(1 + x) for non-negative values; NaN otherwise."""
    snum = pd.to_numeric(s, errors="coerce").astype(float)
    out = pd.Series(np.nan, index=s.index)
    mask = snum >= 0
    out.loc[mask] = np.log1p(snum.loc[mask])
    return out


def add_derived(panel: pd.DataFrame) -> pd.DataFrame:
    """Aid zero-fill, aid share of GDP, log transforms and the 3P component sum."""
    df = panel.copy()
    if "aid" in df.columns:
        df["aid"] = pd.to_numeric(df["aid"], errors="coerce").fillna(0.0)
    if {"aid", "gdp"}.issubset(df.columns):
        gdp = pd.to_numeric(df["gdp"], errors="coerce")
        df["aid_pct_gdp"] = (df["aid"] / gdp * 100).where(gdp > 0)
    for col, out in LOG_COLUMNS.items():
        if col in df.columns:
            df[out] = safe_log1p(df[col])
    components = ["prosecution", "protection", "prevention"]
    if set(components).issubset(df.columns):
        df["p3_sum"] = df[components].sum(axis=1, min_count=len(components)).astype("Int64")
    return df


def add_lags(panel: pd.DataFrame, columns: Iterable[str], lags: Sequence[int] = LAGS) -> pd.DataFrame:
    """
    Append `<col>_lag<k>`: the same country's value at year - k as found in
    the panel's own rows (missing when that row or value is absent).
    """
    cols = [c for c in columns if c in panel.columns]
    missing = [c for c in columns if c not in panel.columns]
    if missing:
        LOG.warning("Lag columns not in panel (skipped): %s", missing)
    out = panel.sort_values(KEY).reset_index(drop=True)
    n = len(out)
    for k in lags:
        shifted = out[KEY + cols].copy()
        shifted["year"] = shifted["year"] + k
        shifted = shifted.rename(columns={c: f"{c}_lag{k}" for c in cols})
        out = out.merge(shifted, on=KEY, how="left")
    check_row_count(out, n, "add_lags")
    return out


def load_clean_tables(sources: Optional[dict] = None, write: bool = True) -> Dict[str, pd.DataFrame]:
    """Read every raw source, clean it and (optionally) persist to data/interim."""
    sources = sources if sources is not None else load_sources()
    tables: Dict[str, pd.DataFrame] = {
        "tip_3p": clean_tip_3p(read_tip_3p(raw_path("tip_3p", sources))),
        "wgi": clean_wgi(read_wgi(raw_path("wgi", sources))),
        "polity": clean_polity(read_polity(raw_path("polity", sources))),
        "gender": clean_gender(read_gender(raw_path("gender", sources))),
        "ratification_events": clean_ratification(read_ratification(raw_path("ratification", sources))),
        "gdp": clean_gdp(read_gdp(raw_path("gdp", sources))),
        "aid": clean_aid(read_aid(raw_path("aid", sources))),
        "crim": clean_crim(read_crim(raw_path("crim", sources))),
    }
    if write:
        for name, df in tables.items():
            write_clean(df, name)
    return tables


def build_panels(tables: Dict[str, pd.DataFrame]) -> Panels:
    """Scaffold, join, derive and lag; returns the three progressively richer panels."""
    scaffold = build_scaffold(tables["tip_3p"]["cowcode"])

    joinable = {name: tables[name] for name in SOURCE_ORDER if name in tables}
    if "ratification_events" in tables:
        joinable["ratification"] = ratification_panel(scaffold, tables["ratification_events"])

    base = add_derived(assemble(scaffold, joinable, stage="panel_base"))
    lagged = add_lags(base, LAG_COLUMNS)

    crim = lagged
    if "crim" in tables:
        crim = assemble(lagged, {"crim": tables["crim"]}, order=["crim"], stage="panel_crim")
        crim = add_lags(crim, CRIM_LAG_COLUMNS)

    for name, df in (("panel_base", base), ("panel_lagged", lagged), ("panel_crim", crim)):
        check_row_count(df, len(scaffold), name)
    return Panels(base=base, lagged=lagged, crim=crim)


def write_panels(panels: Panels, out_dir: Optional[Path] = None, record: bool = True) -> Dict[str, Path]:
    out_dir = Path(out_dir) if out_dir else PROCESSED
    out_dir.mkdir(parents=True, exist_ok=True)
    written: Dict[str, Path] = {}
    for name, df in (("panel_base", panels.base), ("panel_lagged", panels.lagged), ("panel_crim", panels.crim)):
        out = out_dir / f"{name}.csv"
        df.to_csv(out, index=False)
        md5 = record_artifact(out, canonical_id=name) if record else None
        LOG.info("Saved %s -> %s (rows=%s, cols=%s) md5=%s", name, out, f"{len(df):,}", len(df.columns), md5)
        written[name] = out
    return written


def main(out_dir: Optional[Path] = None) -> Panels:
    tables = load_clean_tables()
    panels = build_panels(tables)
    write_panels(panels, out_dir=out_dir)
    return panels


def _cli():
    p = argparse.ArgumentParser(description="Assemble the country-year panels from the raw sources")
    p.add_argument("--out-dir", dest="out_dir", help="Output directory (default data/processed)")
    args = p.parse_args()
    setup_logging()
    main(out_dir=Path(args.out_dir) if args.out_dir else None)


if __name__ == "__main__":
    _cli()
