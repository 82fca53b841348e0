# tip_panel/data/sources.py
"""
Raw readers and per-source cleaners.

Every cleaner reduces a raw table to (cowcode, year, value...) rows:
  - filter long-format tables to the wanted indicator(s)
  - translate the native country coding to COW codes, dropping unmapped rows
  - restrict to YEAR_START..YEAR_END (inclusive)
  - coerce counts/codes to integers and scores to floats
  - deduplicate on (cowcode, year)

Readers (`read_*`) only do file IO; cleaners (`clean_*`) take the raw frame so
they can be exercised on small synthetic tables.

Column expectations are fixed; a changed upstream schema surfaces as a
KeyError from the cleaner.
"""

from __future__ import annotations

import logging
import re
from functools import reduce
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from tip_panel.config import (
    CRIM_FILL_DEFAULT,
    CRIM_LAST_YEAR,
    INTERIM,
    KEY,
    YEAR_END,
    YEAR_START,
)
from tip_panel.data.codes import normalize_codes, restrict_historical

LOG = logging.getLogger(__name__)

WGI_INDICATORS: Dict[str, str] = {
    "ge": "wgi_gov_eff",
    "rl": "wgi_rule_law",
    "cc": "wgi_corruption",
}

GENDER_INDICATORS: Dict[str, str] = {
    "SG.GEN.PARL.ZS": "women_parl",
}

GDP_INDICATORS: Dict[str, str] = {
    "NY.GDP.MKTP.KD": "gdp",
    "NY.GDP.PCAP.KD": "gdp_capita",
}

TIP_3P_COLUMNS = ["prosecution", "protection", "prevention", "p3"]

CRIM_LABELS: Dict[int, str] = {
    0: "No criminalization",
    1: "Partial criminalization",
    2: "Full criminalization",
}


# -----------------------------
# Readers
# -----------------------------
def require_file(path: Path) -> Path:
    path = Path(path)
    if not path.exists():
        LOG.error("Raw file missing: %s", path)
        raise SystemExit(1)
    return path


def read_tip_3p(path: Path) -> pd.DataFrame:
    return pd.read_excel(require_file(path))


def read_wgi(path: Path) -> pd.DataFrame:
    return pd.read_csv(require_file(path), low_memory=False)


def read_polity(path: Path) -> pd.DataFrame:
    return pd.read_excel(require_file(path))


def read_crim(path: Path) -> pd.DataFrame:
    return pd.read_stata(require_file(path))


def read_gdp(path: Path) -> pd.DataFrame:
    # keep Namibia's iso2 code "NA" as a string
    return pd.read_csv(
        require_file(path),
        dtype={"iso2c": str, "iso3c": str},
        keep_default_na=False,
        na_values={"value": [""], "year": [""]},
    )


def detect_header_row(path: Path, n_lines: int = 50) -> int:
    """
    World Bank bulk CSVs start with a few metadata lines; return the 0-based
    index of the line holding 'Country Name' / 'Indicator Code'.
    """
    with Path(path).open("r", encoding="utf-8-sig", errors="replace") as fh:
        for i, line in enumerate(fh):
            if i >= n_lines:
                break
            ln = line.lower()
            if "country code" in ln and "indicator code" in ln:
                return i
    return 0


def read_gender(path: Path) -> pd.DataFrame:
    path = require_file(path)
    header = detect_header_row(path)
    LOG.info("Gender statistics header row: %d", header)
    return pd.read_csv(path, header=header, encoding="utf-8-sig", low_memory=False)


# -----------------------------
# Shared cleaning steps
# -----------------------------
def filter_indicator(df: pd.DataFrame, column: str, wanted: str) -> pd.DataFrame:
    """Keep rows whose indicator id equals `wanted` (case-insensitive). Empty is allowed."""
    mask = df[column].astype(str).str.strip().str.casefold() == str(wanted).casefold()
    out = df.loc[mask].copy()
    if out.empty:
        LOG.warning("Indicator %s matched no rows in column %s", wanted, column)
    return out


def attach_cowcode(
    df: pd.DataFrame,
    code_col: str,
    system: str,
    name_col: Optional[str] = None,
    year_col: Optional[str] = None,
    source: str = "",
) -> pd.DataFrame:
    """Add `cowcode` from the native coding and drop rows that do not map."""
    out = df.copy()
    out["cowcode"] = normalize_codes(out, code_col, system, name_col=name_col, year_col=year_col)
    unmapped = out["cowcode"].isna()
    if unmapped.any():
        sample = sorted({str(c) for c in out.loc[unmapped, code_col].dropna().unique()})[:15]
        LOG.info("%s: dropping %d unmapped rows (%s)", source or code_col, int(unmapped.sum()), ", ".join(sample))
    out = out.loc[~unmapped].copy()
    out["cowcode"] = out["cowcode"].astype(int)
    return out


def coerce_year(df: pd.DataFrame, year_col: str = "year") -> pd.DataFrame:
    out = df.copy()
    out[year_col] = pd.to_numeric(out[year_col], errors="coerce")
    out = out.dropna(subset=[year_col])
    out[year_col] = out[year_col].astype(int)
    return out


def restrict_years(df: pd.DataFrame, start: int = YEAR_START, end: int = YEAR_END, year_col: str = "year") -> pd.DataFrame:
    return df.loc[df[year_col].between(start, end)].copy()


def dedupe_key(df: pd.DataFrame, source: str = "", keep: str = "first") -> pd.DataFrame:
    dupes = df.duplicated(subset=KEY, keep=keep)
    if dupes.any():
        LOG.info("%s: dropping %d duplicate (cowcode, year) rows", source, int(dupes.sum()))
    return df.loc[~dupes].sort_values(KEY).reset_index(drop=True)


def coerce_types(df: pd.DataFrame, ints: Iterable[str] = (), floats: Iterable[str] = ()) -> pd.DataFrame:
    out = df.copy()
    for c in ints:
        out[c] = pd.to_numeric(out[c], errors="coerce").round().astype("Int64")
    for c in floats:
        out[c] = pd.to_numeric(out[c], errors="coerce").astype(float)
    return out


def _merge_on_key(frames: List[pd.DataFrame]) -> pd.DataFrame:
    return reduce(lambda left, right: pd.merge(left, right, on=KEY, how="outer"), frames)


def _long_indicator_table(
    raw: pd.DataFrame,
    indicators: Dict[str, str],
    indicator_col: str,
    value_col: str,
    code_col: str,
    system: str,
    source: str,
) -> pd.DataFrame:
    """Filter a long table per indicator, map codes, and merge into one wide table."""
    frames: List[pd.DataFrame] = []
    for code, column in indicators.items():
        sub = filter_indicator(raw, indicator_col, code)
        sub = coerce_year(sub)
        sub = restrict_years(sub)
        sub = attach_cowcode(sub, code_col, system, source=f"{source}:{code}")
        sub = sub.rename(columns={value_col: column})[KEY + [column]]
        sub = coerce_types(sub, floats=[column])
        frames.append(dedupe_key(sub, source=f"{source}:{code}"))
    merged = _merge_on_key(frames)
    LOG.info("%s cleaned: %s", source, merged.shape)
    return merged.sort_values(KEY).reset_index(drop=True)


# -----------------------------
# Cleaners
# -----------------------------
def clean_tip_3p(raw: pd.DataFrame) -> pd.DataFrame:
    """3P index: country names -> cowcode; component scores and total as integers."""
    df = coerce_year(raw)
    df = restrict_years(df)
    df = attach_cowcode(df, "country", "name", source="tip_3p")
    df = coerce_types(df[KEY + TIP_3P_COLUMNS], ints=TIP_3P_COLUMNS)
    df = dedupe_key(df, source="tip_3p")
    LOG.info("tip_3p cleaned: %s (%d countries)", df.shape, df["cowcode"].nunique())
    return df


def clean_wgi(raw: pd.DataFrame, indicators: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    return _long_indicator_table(
        raw, indicators or WGI_INDICATORS,
        indicator_col="indicator", value_col="estimate",
        code_col="code", system="iso3", source="wgi",
    )


def clean_polity(raw: pd.DataFrame) -> pd.DataFrame:
    """
    Polity IV: `ccode` with Polity's own deviations from COW.

    Federation-era rows are first restricted to their entity's valid years so
    the successor series never overlap, then resolved by (name, year).
    """
    df = coerce_year(raw)
    df = restrict_years(df)
    df = restrict_historical(df, "ccode", "cow_legacy", name_col="country", year_col="year")
    df = attach_cowcode(df, "ccode", "cow_legacy", name_col="country", year_col="year", source="polity")
    df = coerce_types(df[KEY + ["polity2"]], floats=["polity2"])
    # transition years (e.g. Sudan/Sudan-North 2011): the successor coding wins
    df = dedupe_key(df.sort_values("year", kind="stable"), source="polity", keep="last")
    LOG.info("polity cleaned: %s", df.shape)
    return df


def melt_wide_years(df: pd.DataFrame) -> pd.DataFrame:
    """
    Melt a World Bank wide export (one column per year) to long format with
    columns country, iso3, indicator_name, indicator_code, year, value.
    """
    df = df.loc[:, [c for c in df.columns if not str(c).startswith("Unnamed")]]
    id_vars = [c for c in df.columns if not re.fullmatch(r"\s*\d{4}.*", str(c))]
    rename_map = {}
    for c in id_vars:
        lc = str(c).strip().lower()
        if lc == "country name":
            rename_map[c] = "country"
        elif lc == "country code":
            rename_map[c] = "iso3"
        elif lc == "indicator name":
            rename_map[c] = "indicator_name"
        elif lc == "indicator code":
            rename_map[c] = "indicator_code"
    year_cols = [c for c in df.columns if c not in id_vars]
    long = df.melt(id_vars=id_vars, value_vars=year_cols, var_name="year", value_name="value")
    long = long.rename(columns=rename_map)
    long["year"] = long["year"].astype(str).str.extract(r"(\d{4})", expand=False)
    long["value"] = pd.to_numeric(long["value"], errors="coerce")
    return long


def clean_gender(raw: pd.DataFrame, indicators: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    long = melt_wide_years(raw)
    return _long_indicator_table(
        long, indicators or GENDER_INDICATORS,
        indicator_col="indicator_code", value_col="value",
        code_col="iso3", system="iso3", source="gender",
    )


def clean_gdp(raw: pd.DataFrame, indicators: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    return _long_indicator_table(
        raw, indicators or GDP_INDICATORS,
        indicator_col="indicator", value_col="value",
        code_col="iso2c", system="iso2", source="gdp",
    )


def clean_crim(
    raw: pd.DataFrame,
    last_year: int = CRIM_LAST_YEAR,
    end_year: int = YEAR_END,
    fill_default: Optional[int] = CRIM_FILL_DEFAULT,
) -> pd.DataFrame:
    """
    Criminalization codings (0/1/2), observed through `last_year` and carried
    forward to `end_year`.

    Codings dated before YEAR_START are kept for the fill, so a level set in
    1999 still holds in 2000. The codings are joined onto a per-country year
    scaffold and the last known level is propagated forward; a present value
    is never overwritten. The result is then trimmed to YEAR_START..end_year.
    Years before a country's first coding stay missing unless `fill_default`
    is set. `crim` keeps the integer for modeling; `crim_level` is the
    ordered label.
    """
    df = coerce_year(raw)
    df = df.loc[df["year"] <= last_year].copy()
    df = attach_cowcode(df, "iso3", "iso3", source="crim")
    df = coerce_types(df[KEY + ["crim"]], ints=["crim"])
    df = dedupe_key(df, source="crim")

    codes = sorted(df["cowcode"].unique())
    first = min(int(df["year"].min()), YEAR_START) if not df.empty else YEAR_START
    years = range(first, end_year + 1)
    frame = pd.MultiIndex.from_product([codes, years], names=KEY).to_frame(index=False)
    out = frame.merge(df, on=KEY, how="left").sort_values(KEY).reset_index(drop=True)
    out["crim"] = out.groupby("cowcode")["crim"].ffill()
    out = restrict_years(out, YEAR_START, end_year).reset_index(drop=True)
    if fill_default is not None:
        out["crim"] = out["crim"].fillna(fill_default)
    out["crim"] = out["crim"].astype("Int64")
    out["crim_level"] = pd.Categorical(
        out["crim"].map(CRIM_LABELS),
        categories=list(CRIM_LABELS.values()),
        ordered=True,
    )
    LOG.info("crim cleaned + carried forward to %d: %s", end_year, out.shape)
    return out


def write_clean(df: pd.DataFrame, name: str, out_dir: Optional[Path] = None) -> Path:
    """Persist a clean per-source table to data/interim/clean_<name>.csv."""
    out_dir = Path(out_dir) if out_dir else INTERIM
    out_dir.mkdir(parents=True, exist_ok=True)
    out = out_dir / f"clean_{name}.csv"
    df.to_csv(out, index=False)
    LOG.info("Saved clean %s -> %s (%s rows)", name, out, f"{len(df):,}")
    return out
