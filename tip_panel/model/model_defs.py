# tip_panel/model/model_defs.py
"""
Model helpers: predictor selection, numeric coercion, year dummies and a
small-sample guard.

These are intentionally simple, transparent helpers so every design matrix
can be explained line by line in a methods section.
"""
from __future__ import annotations

import logging
from typing import Iterable, List

import pandas as pd

LOG = logging.getLogger(__name__)

_BOOL_MAP = {True: 1.0, False: 0.0, "True": 1.0, "False": 0.0, "true": 1.0, "false": 0.0}


def safe_select_columns(df: pd.DataFrame, cols: Iterable[str]) -> List[str]:
    """Return list of columns from `cols` that exist in df; log missing ones.

    This makes configs tolerant to optional predictors.
    """
    cols = list(cols)
    present = [c for c in cols if c in df.columns]
    missing = [c for c in cols if c not in df.columns]
    if missing:
        LOG.warning("Requested columns not found in dataframe (they will be skipped): %s", missing)
    return present


def coerce_numeric(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    """
    Float copy of `cols`. Booleans (also the 'True'/'False' strings a CSV
    round-trip leaves behind) become 1.0/0.0; anything unparseable is NaN.
    """
    out = {}
    for c in cols:
        s = df[c]
        if s.dtype == bool or s.dtype == object:
            s = s.map(lambda v: _BOOL_MAP.get(v, v) if isinstance(v, (bool, str)) else v)
        out[c] = pd.to_numeric(s, errors="coerce").astype(float)
    return pd.DataFrame(out, index=df.index)


def year_dummies(df: pd.DataFrame, year_col: str = "year", drop_first: bool = True, prefix: str = "yr") -> pd.DataFrame:
    """
    Year fixed-effect dummies aligned to df's index (float 0/1).

    The first year is the omitted category when drop_first is True.
    """
    if year_col not in df.columns:
        raise KeyError(f"year_col '{year_col}' not found in DataFrame")
    years = df[year_col].astype(int).astype(str)
    dummies = pd.get_dummies(years, prefix=prefix, drop_first=drop_first, dtype=float)
    dummies.index = df.index
    LOG.info("Built %d year dummies (prefix=%s).", dummies.shape[1], prefix)
    return dummies


def check_enough_data_for_regression(df: pd.DataFrame, required: Iterable[str], min_obs: int = 10) -> bool:
    """
    Quick guard: True if at least `min_obs` rows are complete on `required`.
    This is a soft rule to avoid silent fits on extremely small samples.
    """
    req = list(required)
    present = [c for c in req if c in df.columns]
    if not present:
        LOG.error("No required columns present in dataframe: %s", req)
        return False
    n = df.dropna(subset=present).shape[0]
    LOG.info("Observations with complete required columns (%s): %d", present, n)
    return n >= min_obs
