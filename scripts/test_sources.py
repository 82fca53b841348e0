# scripts/test_sources.py
"""
Checks for the per-source cleaners in tip_panel.data.sources, on small
synthetic tables shaped like the raw files.
"""
from pathlib import Path
import sys

HERE = Path(__file__).resolve()
REPO_ROOT = HERE.parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import numpy as np
import pandas as pd

from tip_panel.config import KEY, YEAR_END, YEAR_START
from tip_panel.data.sources import (
    CRIM_LABELS,
    clean_crim,
    clean_gdp,
    clean_gender,
    clean_polity,
    clean_tip_3p,
    clean_wgi,
    detect_header_row,
    filter_indicator,
    melt_wide_years,
    write_clean,
)


def _wgi_raw():
    rows = []
    for code in ("USA", "ROM", "HKG"):
        for year in (1998, 2000, 2001):
            for ind, val in (("ge", 1.0), ("rl", 0.5)):
                rows.append({"code": code, "countryname": code, "year": year, "indicator": ind, "estimate": val})
    return pd.DataFrame(rows)


def test_filter_indicator_zero_matches_is_empty_not_error():
    raw = _wgi_raw()
    assert filter_indicator(raw, "indicator", "va").empty
    assert len(filter_indicator(raw, "indicator", "GE")) == 9


def test_clean_wgi_maps_restricts_and_keeps_missing_indicator_as_nan():
    out = clean_wgi(_wgi_raw())
    assert list(out.columns) == KEY + ["wgi_gov_eff", "wgi_rule_law", "wgi_corruption"]
    # HKG is deliberately unmapped, ROM is an override for Romania
    assert set(out["cowcode"]) == {2, 360}
    assert out["year"].between(YEAR_START, YEAR_END).all()
    assert not out.duplicated(subset=KEY).any()
    assert out["wgi_corruption"].isna().all()
    assert (out["wgi_gov_eff"] == 1.0).all()


def test_clean_tip_3p_integer_scores():
    raw = pd.DataFrame({
        "country": ["United States", "Canada", "Hong Kong", "Canada"],
        "year": [2000, 2000, 2000, 2000],
        "prosecution": [5, 4, 3, 4],
        "protection": [4.0, 3.0, 2.0, 3.0],
        "prevention": [4, 3, 2, 3],
        "p3": [13, 10, 7, 10],
    })
    out = clean_tip_3p(raw)
    assert len(out) == 2
    assert set(out["cowcode"]) == {2, 20}
    assert str(out["protection"].dtype) == "Int64"
    assert out.loc[out["cowcode"] == 2, "p3"].item() == 13


def test_clean_polity_splits_federation_without_overlap():
    rows = []
    for y in range(2000, 2003):
        rows.append((345, "Yugoslavia", y, 7))
    for y in range(2000, 2007):
        rows.append((347, "Serbia and Montenegro", y, 8))
    for y in range(2006, 2009):
        rows.append((342, "Serbia", y, 8))
        rows.append((341, "Montenegro", y, 9))
    rows.append((347, "Kosovo", 2008, 8))
    rows += [(625, "Sudan", 2010, -2), (625, "Sudan", 2011, -2), (626, "Sudan-North", 2011, -4), (626, "Sudan-North", 2012, -4)]
    raw = pd.DataFrame(rows, columns=["ccode", "country", "year", "polity2"])

    out = clean_polity(raw)
    assert not out.duplicated(subset=KEY).any()
    serbia = out.loc[out["cowcode"] == 345]
    assert serbia["year"].tolist() == list(range(2000, 2009))
    assert out.loc[out["cowcode"] == 341, "year"].tolist() == [2006, 2007, 2008]
    assert out.loc[out["cowcode"] == 347, "year"].tolist() == [2008]
    sudan = out.loc[out["cowcode"] == 625].set_index("year")["polity2"]
    assert sudan.to_dict() == {2010: -2.0, 2011: -4.0, 2012: -4.0}
    assert out["polity2"].dtype == float


def test_melt_wide_years_and_clean_gender():
    raw = pd.DataFrame({
        "Country Name": ["United States", "United States", "World"],
        "Country Code": ["USA", "USA", "WLD"],
        "Indicator Name": ["Women in parliament", "Other", "Women in parliament"],
        "Indicator Code": ["SG.GEN.PARL.ZS", "SP.POP.TOTL", "SG.GEN.PARL.ZS"],
        "1999": [13.0, 1.0, 12.0],
        "2000": [14.0, 1.0, 13.0],
        "2001 [YR2001]": [14.5, 1.0, 13.5],
        "Unnamed: 7": [np.nan, np.nan, np.nan],
    })
    long = melt_wide_years(raw)
    assert {"country", "iso3", "indicator_code", "year", "value"}.issubset(long.columns)
    assert set(long["year"]) == {"1999", "2000", "2001"}

    out = clean_gender(raw)
    assert out[KEY + ["women_parl"]].values.tolist() == [[2, 2000, 14.0], [2, 2001, 14.5]]


def test_detect_header_row_skips_metadata(tmp_path):
    p = tmp_path / "gender.csv"
    p.write_text(
        '"Data Source","Gender Statistics",\n\n"Last Updated Date","2016-12-01",\n\n'
        '"Country Name","Country Code","Indicator Name","Indicator Code","2000",\n',
        encoding="utf8",
    )
    assert detect_header_row(p) == 4


def test_clean_gdp_uses_iso2_codes():
    raw = pd.DataFrame({
        "iso2c": ["US", "NA", "XK", "1W", "US"],
        "iso3c": ["USA", "NAM", "XKX", "WLD", "USA"],
        "country": ["United States", "Namibia", "Kosovo", "World", "United States"],
        "year": ["2010", "2010", "2010", "2010", "2010"],
        "indicator": ["NY.GDP.MKTP.KD"] * 4 + ["NY.GDP.PCAP.KD"],
        "value": [1.5e13, 1.1e10, 5.8e9, 6.6e13, 48000.0],
    })
    out = clean_gdp(raw)
    assert set(out["cowcode"]) == {2, 565, 347}
    us = out.loc[out["cowcode"] == 2].iloc[0]
    assert us["gdp"] == 1.5e13
    assert us["gdp_capita"] == 48000.0
    assert out.loc[out["cowcode"] == 565, "gdp_capita"].isna().all()


def _crim_raw():
    return pd.DataFrame({
        "iso3": ["USA", "USA", "USA", "USA", "CAN"],
        "country": ["United States"] * 4 + ["Canada"],
        "year": [2000.0, 2003.0, 2005.0, 2012.0, 2002.0],
        "crim": [0.0, 1.0, 2.0, 0.0, 1.0],
    })


def test_clean_crim_carries_forward_without_overwriting():
    raw = _crim_raw()
    out = clean_crim(raw)
    assert len(out) == 2 * (YEAR_END - YEAR_START + 1)
    us = out.loc[out["cowcode"] == 2].set_index("year")["crim"]
    assert us.loc[2000] == 0 and us.loc[2002] == 0
    assert us.loc[2004] == 1
    assert (us.loc[2005:2015] == 2).all()

    # observed values (within the coding window) survive the fill untouched
    observed = raw.loc[raw["year"] <= 2011]
    for _, r in observed.iterrows():
        code = 2 if r["iso3"] == "USA" else 20
        got = out.loc[(out["cowcode"] == code) & (out["year"] == int(r["year"])), "crim"].item()
        assert got == int(r["crim"])

    ca = out.loc[out["cowcode"] == 20].set_index("year")["crim"]
    assert ca.loc[2000:2001].isna().all()
    assert (ca.loc[2002:2015] == 1).all()


def test_clean_crim_levels_are_ordered():
    out = clean_crim(_crim_raw())
    assert out["crim_level"].cat.ordered
    assert list(out["crim_level"].cat.categories) == list(CRIM_LABELS.values())
    row = out.loc[(out["cowcode"] == 2) & (out["year"] == 2010)].iloc[0]
    assert row["crim_level"] == "Full criminalization"
    assert str(out["crim"].dtype) == "Int64"


def test_clean_crim_optional_default_for_leading_gaps():
    out = clean_crim(_crim_raw(), fill_default=0)
    ca = out.loc[out["cowcode"] == 20].set_index("year")["crim"]
    assert ca.loc[2000] == 0
    assert ca.loc[2003] == 1


def test_write_clean(tmp_path):
    df = pd.DataFrame({"cowcode": [2], "year": [2000], "x": [1.0]})
    out = write_clean(df, "demo", out_dir=tmp_path)
    assert out.name == "clean_demo.csv"
    assert pd.read_csv(out).equals(df)


def test_clean_crim_carries_codings_from_before_the_window():
    raw = pd.DataFrame({
        "iso3": ["USA", "CAN", "CAN"],
        "year": [1998, 1999, 2004],
        "crim": [2, 1, 2],
    })
    out = clean_crim(raw)
    assert set(out["cowcode"]) == {2, 20}
    assert out["year"].between(YEAR_START, YEAR_END).all()
    assert len(out) == 2 * (YEAR_END - YEAR_START + 1)
    us = out.loc[out["cowcode"] == 2].set_index("year")["crim"]
    assert (us == 2).all()
    ca = out.loc[out["cowcode"] == 20].set_index("year")["crim"]
    assert (ca.loc[2000:2003] == 1).all()
    assert (ca.loc[2004:2015] == 2).all()
