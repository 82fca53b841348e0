# tip_panel/data/codes.py
"""
Country-code normalization onto Correlates-of-War (COW) numeric codes.

Every source arrives in its own coding system:
  - iso2        two-letter ISO / World Bank API codes
  - iso3        three-letter ISO / World Bank / WGI codes
  - cow_legacy  Polity IV's `ccode` (COW-like, with its own deviations)
  - name        free-text country names

Lookup order for a single code:
  1. manual override table for the system (a value of None means the code is
     deliberately unmapped: territories, aggregates, discontinued codes)
  2. the standard reference table (data/raw/mappings/cow_codes.csv), plus
     pycountry for free-text names
  3. otherwise unmapped (None) and the caller drops the row

The former Yugoslav federation is the one case a static table cannot handle:
Polity reuses codes across successor states, so those rows are resolved from
their own (name, year) through HISTORICAL_ENTITIES.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
import pycountry

from tip_panel.config import MAPPINGS, YEAR_END, YEAR_START

LOG = logging.getLogger(__name__)

SYSTEMS = ("iso2", "iso3", "cow_legacy", "name")

REFERENCE_FILE = MAPPINGS / "cow_codes.csv"

# Manual overrides, keyed by native code. Checked before the reference table.
OVERRIDES: Dict[str, Dict[Any, Optional[int]]] = {
    "iso3": {
        # legacy World Bank / WGI codes
        "ROM": 360,
        "ZAR": 490,
        "TMP": 860,
        "ADO": 232,
        "KSV": 347,
        "YUG": 345,
        # territories and aggregates without a COW code
        "HKG": None,
        "MAC": None,
        "PRI": None,
        "PSE": None,
        "WBG": None,
        "ABW": None,
        "CUW": None,
        "GRL": None,
        "ANT": None,
        "WLD": None,
    },
    "iso2": {
        "XK": 347,
        "KV": 347,
        "HK": None,
        "MO": None,
        "PR": None,
        "PS": None,
    },
    "cow_legacy": {
        # Polity codes that differ from COW
        260: 255,    # West Germany -> Germany
        364: 365,    # USSR -> Russia
        525: 626,    # South Sudan
        529: 530,    # Ethiopia
        626: 625,    # Sudan-North -> Sudan
        769: 770,    # Pakistan
        818: 816,    # Vietnam
    },
    "name": {
        "Korea, Rep.": 732,
        "Korea, South": 732,
        "Republic of Korea": 732,
        "Korea, Dem. People's Rep.": 731,
        "Korea, North": 731,
        "Democratic People's Republic of Korea": 731,
        "Congo, Dem. Rep.": 490,
        "Congo (Kinshasa)": 490,
        "Congo, Democratic Republic of the": 490,
        "Congo, Rep.": 484,
        "Congo (Brazzaville)": 484,
        "Republic of the Congo": 484,
        "Côte d'Ivoire": 437,
        "Cote D'Ivoire": 437,
        "Ivory Coast": 437,
        "Burma": 775,
        "Macedonia, FYR": 343,
        "The former Yugoslav Republic of Macedonia": 343,
        "North Macedonia": 343,
        "Gambia, The": 420,
        "Bahamas, The": 31,
        "Kyrgyz Republic": 703,
        "Lao PDR": 812,
        "Lao People's Democratic Republic": 812,
        "Slovak Republic": 317,
        "Timor-Leste": 860,
        "Viet Nam": 816,
        "Eswatini": 572,
        "Cabo Verde": 402,
        "Micronesia, Fed. Sts.": 987,
        "Micronesia (Federated States of)": 987,
        "Bolivia (Plurinational State of)": 145,
        "Venezuela (Bolivarian Republic of)": 101,
        "Iran (Islamic Republic of)": 630,
        "Iran, Islamic Rep.": 630,
        "Egypt, Arab Rep.": 651,
        "Yemen, Rep.": 678,
        "Syrian Arab Republic": 652,
        "St. Lucia": 56,
        "St. Kitts and Nevis": 60,
        "St. Vincent and the Grenadines": 57,
        "Brunei Darussalam": 835,
        "United States of America": 2,
        "United Kingdom of Great Britain and Northern Ireland": 200,
        "Serbia and Montenegro": 345,
        "Yugoslavia": 345,
        # no COW equivalent
        "Hong Kong": None,
        "Hong Kong SAR, China": None,
        "Macao SAR, China": None,
        "Palestine": None,
        "State of Palestine": None,
        "West Bank and Gaza": None,
        "Puerto Rico": None,
        "Holy See": None,
        "Cook Islands": None,
        "Niue": None,
        "European Union": None,
    },
}

# Polity codes shared by the Yugoslav federation and its successor states
HISTORICAL_CODES: Dict[str, set] = {
    "cow_legacy": {341, 342, 345, 347, 348},
}

# (name, first_year, last_year, cowcode); None means open-ended
HISTORICAL_ENTITIES: List[Tuple[str, Optional[int], Optional[int], int]] = [
    ("Yugoslavia", None, 2002, 345),
    ("Serbia and Montenegro", 2003, 2005, 345),
    ("Serbia", 2006, None, 345),
    ("Montenegro", 2006, None, 341),
    ("Kosovo", 2008, None, 347),
]

_FOOTNOTE_RE = re.compile(r"[\s\d,]+$")
_SPACE_RE = re.compile(r"\s+")


def clean_country_name(name: Any) -> Optional[str]:
    """Strip footnote markers and stray whitespace from a country label."""
    if name is None or (not isinstance(name, str) and pd.isna(name)):
        return None
    s = str(name).replace("\xa0", " ").strip()
    s = _FOOTNOTE_RE.sub("", s)
    s = _SPACE_RE.sub(" ", s).strip()
    return s or None


def _normalize(code: Any, system: str) -> Any:
    """Bring a native code into the form used as a lookup key."""
    if code is None or (not isinstance(code, str) and pd.isna(code)):
        return None
    if system in ("iso2", "iso3"):
        return str(code).strip().upper() or None
    if system == "cow_legacy":
        try:
            return int(float(code))
        except (TypeError, ValueError):
            return None
    name = clean_country_name(code)
    return name.casefold() if name else None


@lru_cache(maxsize=None)
def _overrides(system: str) -> Dict[Any, Optional[int]]:
    return {_normalize(k, system): v for k, v in OVERRIDES.get(system, {}).items()}


@lru_cache(maxsize=1)
def load_reference() -> pd.DataFrame:
    """Read the COW reference table (Namibia's iso2 'NA' must not become NaN)."""
    if not REFERENCE_FILE.exists():
        LOG.error("Reference table missing: %s", REFERENCE_FILE)
        raise SystemExit(1)
    ref = pd.read_csv(REFERENCE_FILE, dtype=str, keep_default_na=False)
    ref["cowcode"] = ref["cowcode"].astype(int)
    return ref


@lru_cache(maxsize=None)
def _reference(system: str) -> Dict[Any, int]:
    ref = load_reference()
    if system == "iso2":
        return dict(zip(ref["iso2c"].str.upper(), ref["cowcode"]))
    if system == "iso3":
        return dict(zip(ref["iso3c"].str.upper(), ref["cowcode"]))
    if system == "cow_legacy":
        return {int(c): int(c) for c in ref["cowcode"]}
    return {_normalize(n, "name"): c for n, c in zip(ref["country_name"], ref["cowcode"])}


@lru_cache(maxsize=4096)
def _lookup_name(key: str) -> Optional[int]:
    exact = _reference("name").get(key)
    if exact is not None:
        return exact
    try:
        country = pycountry.countries.lookup(key)
    except LookupError:
        return None
    return _reference("iso3").get(country.alpha_3)


def resolve_historical(name: Any, year: Any) -> Optional[int]:
    """Pick the COW code for a federation-era row from its own name and year."""
    label = clean_country_name(name)
    if label is None or year is None or pd.isna(year):
        return None
    year = int(year)
    for entity, first, last, cowcode in HISTORICAL_ENTITIES:
        if label.casefold() != entity.casefold():
            continue
        if (first is None or year >= first) and (last is None or year <= last):
            return cowcode
    return None


def to_cowcode(code: Any, system: str, name: Any = None, year: Any = None) -> Optional[int]:
    """
    Translate one native code to a COW code, or None when unmapped.

    `name` and `year` are only consulted for historical federation codes.
    """
    if system not in SYSTEMS:
        raise ValueError(f"Unknown coding system '{system}' (expected one of {SYSTEMS})")
    key = _normalize(code, system)
    if key is None:
        return None

    if key in HISTORICAL_CODES.get(system, ()):
        return resolve_historical(name, year)

    overrides = _overrides(system)
    if key in overrides:
        return overrides[key]

    if system == "name":
        return _lookup_name(key)
    return _reference(system).get(key)


def normalize_codes(
    df: pd.DataFrame,
    code_col: str,
    system: str,
    name_col: Optional[str] = None,
    year_col: Optional[str] = None,
) -> pd.Series:
    """Vectorized to_cowcode over a column; returns a nullable Int64 Series."""
    codes = df[code_col]
    historical = HISTORICAL_CODES.get(system, set())
    cache: Dict[Any, Optional[int]] = {}
    values: List[Optional[int]] = []
    for idx, code in codes.items():
        key = _normalize(code, system)
        if key in historical:
            name = df.at[idx, name_col] if name_col else None
            year = df.at[idx, year_col] if year_col else None
            values.append(resolve_historical(name, year))
            continue
        if key not in cache:
            cache[key] = to_cowcode(code, system)
        values.append(cache[key])
    return pd.Series(pd.array(values, dtype="Int64"), index=df.index, name="cowcode")


def restrict_historical(
    df: pd.DataFrame,
    code_col: str,
    system: str,
    name_col: str,
    year_col: str,
) -> pd.DataFrame:
    """
    Keep each federation-era entity's rows only within its valid year range.

    Rows whose code is not historical pass through untouched.
    """
    historical = HISTORICAL_CODES.get(system, set())
    if not historical:
        return df
    is_hist = df[code_col].map(lambda c: _normalize(c, system) in historical).astype(bool)
    parts = [df.loc[~is_hist]]
    hist = df.loc[is_hist]
    labels = hist[name_col].map(clean_country_name).str.casefold()
    for entity, first, last, _ in HISTORICAL_ENTITIES:
        lo = first if first is not None else YEAR_START - 1000
        hi = last if last is not None else YEAR_END + 1000
        mask = (labels == entity.casefold()) & hist[year_col].between(lo, hi)
        parts.append(hist.loc[mask])
    out = pd.concat(parts).sort_index()
    dropped = len(df) - len(out)
    if dropped:
        LOG.info("Dropped %d federation-era rows outside their entity's valid years", dropped)
    return out
