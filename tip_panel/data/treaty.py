# tip_panel/data/treaty.py
"""
Palermo trafficking protocol: signature / ratification dates -> yearly booleans.

The UN Treaty Collection page lists one row per participant with free-text
dates ("12 Dec 2000", "15 Mar 2004 a"). Each date becomes a year, and each
year becomes a step function over the panel: true from that year onwards,
false before, false everywhere when the event never happened.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from tip_panel.config import KEY
from tip_panel.data.sources import attach_cowcode, require_file

LOG = logging.getLogger(__name__)

_YEAR_RE = re.compile(r"\b(1[89]\d{2}|20\d{2})\b")


def parse_treaty_year(text: Any) -> Optional[int]:
    """First four-digit year in a treaty date string; None when absent."""
    if text is None or (not isinstance(text, str) and pd.isna(text)):
        return None
    m = _YEAR_RE.search(str(text))
    return int(m.group(1)) if m else None


def _years(s: pd.Series) -> pd.Series:
    return pd.to_numeric(s.map(parse_treaty_year), errors="coerce")


def _flatten(col: Any) -> str:
    if isinstance(col, tuple):
        parts = [str(p) for p in col if not str(p).startswith("Unnamed")]
        return " ".join(dict.fromkeys(parts)).strip()
    return str(col).strip()


def read_ratification(path: Path) -> pd.DataFrame:
    """Pick the participants table out of the saved treaty page."""
    tables = pd.read_html(str(require_file(path)))
    for table in tables:
        table.columns = [_flatten(c) for c in table.columns]
        if any(c.lower().startswith("participant") for c in table.columns):
            LOG.info("Treaty participants table: %d rows", len(table))
            return table
    raise ValueError(f"No participants table found in {path}")


def clean_ratification(raw: pd.DataFrame) -> pd.DataFrame:
    """
    One row per cowcode with `signature_year` and `ratification_year`.

    Acceptance, approval, accession and succession all count as ratification.
    When several participants map to one code the earliest year is kept.
    """
    cols = {c.lower(): c for c in raw.columns}
    participant = next(v for k, v in cols.items() if k.startswith("participant"))
    signature = next((v for k, v in cols.items() if k.startswith("signature")), None)
    ratification = next(v for k, v in cols.items() if k.startswith("ratification"))

    df = pd.DataFrame({
        "participant": raw[participant],
        "signature_year": _years(raw[signature]) if signature else pd.Series(float("nan"), index=raw.index),
        "ratification_year": _years(raw[ratification]),
    })
    df = attach_cowcode(df, "participant", "name", source="ratification")
    out = (
        df.groupby("cowcode", as_index=False)[["signature_year", "ratification_year"]]
        .min()
        .astype({"signature_year": "Int64", "ratification_year": "Int64"})
    )
    LOG.info("ratification cleaned: %d countries (%d ratified)", len(out), int(out["ratification_year"].notna().sum()))
    return out


def binarize_events(
    scaffold: pd.DataFrame,
    events: pd.DataFrame,
    year_col: str,
    out_col: str,
) -> pd.DataFrame:
    """
    KEY + `out_col`, true iff the scaffold year >= the country's event year.

    Countries without an event year (or absent from `events`) are false in
    every year.
    """
    ev = events[["cowcode", year_col]].drop_duplicates(subset=["cowcode"])
    merged = scaffold[KEY].merge(ev, on="cowcode", how="left")
    event_year = pd.to_numeric(merged[year_col], errors="coerce")
    merged[out_col] = (merged["year"] >= event_year).fillna(False).astype(bool)
    return merged[KEY + [out_col]]


def ratification_panel(scaffold: pd.DataFrame, events: pd.DataFrame) -> pd.DataFrame:
    """`signed` and `ratified` step functions plus the event years, on the scaffold."""
    signed = binarize_events(scaffold, events, "signature_year", "signed")
    ratified = binarize_events(scaffold, events, "ratification_year", "ratified")
    out = signed.merge(ratified, on=KEY, how="left")
    out = out.merge(events[["cowcode", "ratification_year"]], on="cowcode", how="left")
    return out.sort_values(KEY).reset_index(drop=True)
