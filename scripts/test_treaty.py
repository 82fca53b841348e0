# scripts/test_treaty.py
from pathlib import Path
import sys

HERE = Path(__file__).resolve()
REPO_ROOT = HERE.parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import pandas as pd
import pytest

from tip_panel.data.panel import build_scaffold
from tip_panel.data.treaty import (
    binarize_events,
    clean_ratification,
    parse_treaty_year,
    ratification_panel,
)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("12 Dec 2000", 2000),
        ("15 Mar 2004 a", 2004),
        ("6 Jun 2006 d", 2006),
        ("", None),
        (None, None),
        (float("nan"), None),
    ],
)
def test_parse_treaty_year(text, expected):
    assert parse_treaty_year(text) == expected


def test_binarize_is_a_step_function():
    scaffold = build_scaffold([2, 20], 2000, 2002)
    events = pd.DataFrame({"cowcode": [2], "ratification_year": [2001]})
    out = binarize_events(scaffold, events, "ratification_year", "ratified")
    assert len(out) == 6
    assert out.loc[out["cowcode"] == 2, "ratified"].tolist() == [False, True, True]
    # no event -> false everywhere
    assert out.loc[out["cowcode"] == 20, "ratified"].tolist() == [False, False, False]
    assert out["ratified"].dtype == bool


def test_ratification_panel_is_monotone():
    scaffold = build_scaffold([2, 20, 200], 2000, 2015)
    events = pd.DataFrame({
        "cowcode": [2, 20, 200],
        "signature_year": pd.array([2000, 2000, pd.NA], dtype="Int64"),
        "ratification_year": pd.array([2005, pd.NA, 2006], dtype="Int64"),
    })
    out = ratification_panel(scaffold, events)
    assert len(out) == len(scaffold)
    for _, grp in out.groupby("cowcode"):
        r = grp.sort_values("year")["ratified"].astype(int)
        assert r.is_monotonic_increasing
    us = out.loc[out["cowcode"] == 2].set_index("year")
    assert not us.loc[2004, "ratified"] and us.loc[2005, "ratified"]
    assert us["signed"].all()
    assert not out.loc[out["cowcode"] == 20, "ratified"].any()
    assert not out.loc[out["cowcode"] == 200, "signed"].any()


def test_clean_ratification_maps_and_keeps_earliest_year():
    raw = pd.DataFrame({
        "Participant": ["Albania 1", "Serbia", "Serbia and Montenegro", "Angola", "Holy See"],
        "Signature": ["12 Dec 2000", "", "12 Dec 2000", None, None],
        "Ratification, Acceptance(A), Approval(AA), Accession(a), Succession(d)": [
            "21 Aug 2002", "6 Sep 2001 d", "6 Sep 2001", "19 Sep 2014 a", None,
        ],
    })
    out = clean_ratification(raw).set_index("cowcode")
    assert sorted(out.index) == [339, 345, 540]
    assert out.loc[339, "ratification_year"] == 2002
    assert out.loc[345, "ratification_year"] == 2001
    assert out.loc[345, "signature_year"] == 2000
    assert out.loc[540, "ratification_year"] == 2014
    assert pd.isna(out.loc[540, "signature_year"])
    assert str(out["ratification_year"].dtype) == "Int64"
