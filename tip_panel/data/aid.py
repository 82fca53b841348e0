# tip_panel/data/aid.py
"""
Aid commitments: rebase constant-price series to another base year and sum
per recipient-year.

The raw file carries each commitment in current USD and in constant USD of
the publisher's base year, which gives an implied deflator per row:

    deflator = current / constant * 100

Rounding in the source makes that deflator wobble slightly between rows of
the same year, so each year's deflator is the median over that year's rows,
and the target base year's deflator is the median over the target year's
rows. A row is rebased as

    rebased = current * deflator[target_year] / deflator[row_year]
"""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from tip_panel.config import AID_SOURCE_BASE_YEAR, AID_TARGET_BASE_YEAR, KEY
from tip_panel.data.sources import attach_cowcode, coerce_year, require_file, restrict_years

LOG = logging.getLogger(__name__)

CURRENT = "commitment_current"
CONSTANT = "commitment_constant"


def read_aid(path: Path) -> pd.DataFrame:
    return pd.read_csv(require_file(path), low_memory=False)


def implied_deflator(current: pd.Series, constant: pd.Series) -> pd.Series:
    return current / constant * 100


def yearly_deflators(df: pd.DataFrame, year_col: str = "year") -> pd.Series:
    """Median implied deflator per year, from rows with non-zero values."""
    cur = pd.to_numeric(df[CURRENT], errors="coerce")
    const = pd.to_numeric(df[CONSTANT], errors="coerce")
    valid = cur.notna() & const.notna() & (cur != 0) & (const != 0)
    defl = implied_deflator(cur[valid], const[valid])
    return defl.groupby(df.loc[valid, year_col]).median()


def rebase(df: pd.DataFrame, target_year: int, year_col: str = "year") -> pd.DataFrame:
    """
    Return the usable rows with `deflator` (own-year median) and `rebased`.

    Rows with a zero or missing current/constant value are dropped first.
    Raises ValueError if no usable row falls in `target_year`.
    """
    cur = pd.to_numeric(df[CURRENT], errors="coerce")
    const = pd.to_numeric(df[CONSTANT], errors="coerce")
    valid = cur.notna() & const.notna() & (cur != 0) & (const != 0)
    dropped = int((~valid).sum())
    if dropped:
        LOG.info("aid: excluding %d rows with zero or missing amounts", dropped)

    out = df.loc[valid].copy()
    out[CURRENT] = cur[valid]
    out[CONSTANT] = const[valid]

    deflators = yearly_deflators(out, year_col=year_col)
    if target_year not in deflators.index:
        raise ValueError(f"No aid rows in target base year {target_year}; cannot rebase")
    target = deflators.loc[target_year]
    LOG.info("aid: target deflator for %d = %.4f", target_year, target)

    out["deflator"] = out[year_col].map(deflators)
    out["rebased"] = out[CURRENT] * (target / out["deflator"])
    return out


def clean_aid(raw: pd.DataFrame, target_year: int = AID_TARGET_BASE_YEAR) -> pd.DataFrame:
    """Rebased commitments summed per (cowcode, year) as `aid`."""
    df = coerce_year(raw)
    df = rebase(df, target_year)
    df = restrict_years(df)
    df = attach_cowcode(df, "recipient_iso3", "iso3", source="aid")
    out = df.groupby(KEY, as_index=False)["rebased"].sum().rename(columns={"rebased": "aid"})
    LOG.info("aid cleaned: %s (constant %d USD rebased to constant %d USD)", out.shape, AID_SOURCE_BASE_YEAR, target_year)
    return out.sort_values(KEY).reset_index(drop=True)
