# scripts/test_model_defs.py
from pathlib import Path
import sys
HERE = Path(__file__).resolve()
REPO_ROOT = HERE.parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import numpy as np
import pandas as pd
import pytest

from tip_panel.model import model_defs


def _df():
    return pd.DataFrame({
        "cowcode": [2, 2, 20, 20, 200, 200, 255, 255, 365, 365, 710],
        "year": [2001, 2002, 2001, 2002, 2001, 2002, 2001, 2002, 2001, 2002, 2003],
        "ratified_lag1": [True, True, False, "True", "False", np.nan, True, False, True, True, False],
        "polity2_lag1": [10, 10, 10, 10, 10, 10, 10, 10, -7, -7, "n/a"],
    })


def test_safe_select_columns_skips_missing():
    cols = model_defs.safe_select_columns(_df(), ["polity2_lag1", "nonexistent_col"])
    assert cols == ["polity2_lag1"]


def test_coerce_numeric_handles_booleans_and_csv_strings():
    out = model_defs.coerce_numeric(_df(), ["ratified_lag1", "polity2_lag1"])
    assert out["ratified_lag1"].tolist()[:5] == [1.0, 1.0, 0.0, 1.0, 0.0]
    assert np.isnan(out["ratified_lag1"].iloc[5])
    assert np.isnan(out["polity2_lag1"].iloc[-1])
    assert (out.dtypes == float).all()


def test_year_dummies_drop_first_year():
    d = model_defs.year_dummies(_df())
    assert list(d.columns) == ["yr_2002", "yr_2003"]
    assert d["yr_2002"].sum() == 5
    assert d.index.equals(_df().index)


def test_year_dummies_requires_column():
    with pytest.raises(KeyError):
        model_defs.year_dummies(_df(), year_col="yr")


def test_small_data_guard():
    df = _df()
    assert model_defs.check_enough_data_for_regression(df, ["cowcode", "year"])
    assert not model_defs.check_enough_data_for_regression(df, ["ratified_lag1"], min_obs=11)
    assert not model_defs.check_enough_data_for_regression(df, ["missing"])
