# tip_panel/model/train.py
"""
Modeling stage: fit the configured regressions on the processed panels.

Produces:
 - reports/model_table.csv          (model, term, coef, std_err, pvalue, n_obs)
 - reports/<model>_summary.txt      (statsmodels text summary)
 - models/<model>.joblib            (fitted results)
 - reports/model_metadata.json      (config snapshot)

Model kinds:
 - ols      OLS, optional year dummies, cluster-robust SEs by country
 - ordered  ordered logit (statsmodels OrderedModel) for ordinal targets

Usage:
    python -m tip_panel.model.train --config config/model.yml
"""
from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import joblib
import numpy as np
import pandas as pd
import statsmodels.api as sm
import yaml
from statsmodels.miscmodels.ordinal_model import OrderedModel

from tip_panel.config import MODEL_CONFIG, MODELS, REPORTS, ROOT, setup_logging
from tip_panel.model import model_defs as mdefs

LOG = logging.getLogger(__name__)


@dataclass
class RunResult:
    model_name: str
    terms: List[str]
    n_obs: int
    rows: List[Dict[str, Any]]
    fitted: Optional[Any] = None


def load_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf8") as fh:
        cfg = yaml.safe_load(fh) or {}
    cfg.setdefault("seed", 2016)
    cfg.setdefault("outputs", {})
    cfg["outputs"].setdefault("reports_dir", str(REPORTS.relative_to(ROOT)))
    cfg["outputs"].setdefault("models_dir", str(MODELS.relative_to(ROOT)))
    cfg["outputs"].setdefault("model_table", "reports/model_table.csv")
    return cfg


def summarize_results(res: Any, terms: List[str], n_obs: int, model_name: str) -> List[Dict[str, Any]]:
    """One row per term from a statsmodels results object."""
    params = pd.Series(res.params, index=terms) if not hasattr(res.params, "index") else res.params
    bse = pd.Series(res.bse, index=terms) if not hasattr(res.bse, "index") else res.bse
    pvalues = pd.Series(res.pvalues, index=terms) if not hasattr(res.pvalues, "index") else res.pvalues
    rows = []
    for term in terms:
        rows.append({
            "model": model_name,
            "term": str(term),
            "coef": float(params.get(term, np.nan)),
            "std_err": float(bse.get(term, np.nan)),
            "pvalue": float(pvalues.get(term, np.nan)),
            "n_obs": int(n_obs),
        })
    return rows


def _design(
    df: pd.DataFrame,
    target: str,
    predictors: List[str],
    year_effects: bool,
    extra: Optional[List[str]] = None,
) -> tuple[pd.Series, pd.DataFrame, pd.DataFrame]:
    """Complete-case y, X (predictors [+ year dummies]) and the sample rows."""
    preds = mdefs.safe_select_columns(df, predictors)
    if not preds:
        raise ValueError(f"None of the predictors {predictors} are in the panel")
    keep = [target] + preds + [c for c in (extra or []) if c in df.columns]
    num = mdefs.coerce_numeric(df, [target] + preds)
    sample = pd.concat([num, df[[c for c in keep if c not in num.columns] + ["year"]]], axis=1)
    sample = sample.dropna(subset=[c for c in keep if c in sample.columns])
    if not mdefs.check_enough_data_for_regression(sample, [target] + preds):
        raise ValueError(f"Too few complete observations for {target} ~ {preds} (n={len(sample)})")
    X = sample[preds]
    if year_effects:
        X = pd.concat([X, mdefs.year_dummies(sample)], axis=1)
    return sample[target], X, sample


def run_ols(
    df: pd.DataFrame,
    target: str,
    predictors: List[str],
    year_effects: bool = True,
    cluster_on: Optional[str] = "cowcode",
    model_name: str = "OLS",
) -> RunResult:
    """OLS with optional year dummies; cluster-robust SEs when `cluster_on` is usable."""
    extra = [cluster_on] if cluster_on else None
    y, X, sample = _design(df, target, predictors, year_effects, extra=extra)
    X = sm.add_constant(X, has_constant="add")
    if cluster_on and cluster_on in sample.columns and sample[cluster_on].nunique() > 1:
        LOG.info("%s: OLS with SEs clustered on %s (n=%d)", model_name, cluster_on, len(sample))
        res = sm.OLS(y, X).fit(cov_type="cluster", cov_kwds={"groups": sample[cluster_on].astype(int)})
    else:
        LOG.info("%s: OLS (no clustering, n=%d)", model_name, len(sample))
        res = sm.OLS(y, X).fit()
    terms = X.columns.tolist()
    return RunResult(model_name, terms, len(sample), summarize_results(res, terms, len(sample), model_name), res)


def run_ordered(
    df: pd.DataFrame,
    target: str,
    predictors: List[str],
    year_effects: bool = False,
    model_name: str = "ordered",
    distr: str = "logit",
) -> RunResult:
    """Ordered logit/probit on an integer-coded ordinal target (no constant)."""
    y, X, sample = _design(df, target, predictors, year_effects)
    levels = sorted(y.astype(int).unique())
    if len(levels) < 2:
        raise ValueError(f"{target} has fewer than two observed levels in the sample")
    y_cat = pd.Series(pd.Categorical(y.astype(int), categories=levels, ordered=True), index=y.index)
    LOG.info("%s: ordered %s on %s (levels=%s, n=%d)", model_name, distr, target, levels, len(sample))
    res = OrderedModel(y_cat, X, distr=distr).fit(method="bfgs", disp=False, maxiter=2000)
    terms = list(res.params.index)
    return RunResult(model_name, terms, len(sample), summarize_results(res, terms, len(sample), model_name), res)


def run_model(entry: Dict[str, Any], panels: Dict[str, pd.DataFrame]) -> RunResult:
    """Dispatch one model entry from the config."""
    name = entry["name"]
    df = panels[entry.get("panel", "lagged")]
    kind = entry.get("kind", "ols")
    if kind == "ols":
        return run_ols(
            df, entry["target"], entry["predictors"],
            year_effects=entry.get("year_effects", True),
            cluster_on=entry.get("cluster_on", "cowcode"),
            model_name=name,
        )
    if kind == "ordered":
        return run_ordered(
            df, entry["target"], entry["predictors"],
            year_effects=entry.get("year_effects", False),
            model_name=name,
            distr=entry.get("distr", "logit"),
        )
    raise ValueError(f"Unknown model kind '{kind}' for {name}")


def _load_panels(paths: Dict[str, str]) -> Dict[str, pd.DataFrame]:
    panels = {}
    for key, rel in paths.items():
        p = Path(rel)
        p = p if p.is_absolute() else ROOT / p
        if not p.exists():
            LOG.error("Panel %s missing at %s. Run the panel builder first.", key, p)
            raise SystemExit(1)
        panels[key] = pd.read_csv(p, low_memory=False)
        LOG.info("Loaded panel %s: %s", key, panels[key].shape)
    return panels


def main(argv: Optional[List[str]] = None, config_path: Optional[Path] = None) -> List[RunResult]:
    if config_path is None:
        p = argparse.ArgumentParser(description="Fit the configured panel regressions")
        p.add_argument("--config", default=str(MODEL_CONFIG), help="Path to YAML config")
        args = p.parse_args(argv)
        config_path = Path(args.config)

    cfg = load_config(Path(config_path))
    np.random.seed(int(cfg["seed"]))

    reports_dir = ROOT / cfg["outputs"]["reports_dir"]
    models_dir = ROOT / cfg["outputs"]["models_dir"]
    reports_dir.mkdir(parents=True, exist_ok=True)
    models_dir.mkdir(parents=True, exist_ok=True)

    snapshot = {"saved_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"), "config": cfg}
    (reports_dir / "model_metadata.json").write_text(json.dumps(snapshot, indent=2), encoding="utf8")

    panels = _load_panels(cfg["data"])
    results: List[RunResult] = []
    for entry in cfg.get("models", []):
        LOG.info("=== Model: %s ===", entry["name"])
        res = run_model(entry, panels)
        results.append(res)
        (reports_dir / f"{res.model_name}_summary.txt").write_text(res.fitted.summary().as_text(), encoding="utf8")
        joblib.dump(res.fitted, models_dir / f"{res.model_name}.joblib")
        LOG.info("%s completed. n_obs=%d", res.model_name, res.n_obs)

    rows = [r for res in results for r in res.rows]
    table_path = ROOT / cfg["outputs"]["model_table"]
    pd.DataFrame(rows, columns=["model", "term", "coef", "std_err", "pvalue", "n_obs"]).to_csv(table_path, index=False)
    LOG.info("Wrote model table -> %s (%d models)", table_path, len(results))
    return results


if __name__ == "__main__":
    setup_logging()
    main()
