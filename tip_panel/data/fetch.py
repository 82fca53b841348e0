# tip_panel/data/fetch.py
"""
Cache-if-absent downloads for the remote sources.

If the local copy exists the network is never touched. Otherwise the file is
fetched exactly once; there are no retries and any HTTP or connection error
propagates and stops the run.

Remote sources:
  - ratification  UN Treaty Collection page (HTML table)
  - aid           aid commitments (CSV download)
  - gdp           World Bank API v2 (JSON, paginated), cached as CSV
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import requests

from tip_panel.config import load_sources, raw_path, setup_logging
from tip_panel.utils.data_registry import record_artifact

LOG = logging.getLogger(__name__)

TIMEOUT = (10, 180)  # connect, read (seconds)
WDI_PER_PAGE = 20000
WDI_DATE_RANGE = "1990:2016"


def fetch_if_absent(url: str, dest: Path, canonical_id: Optional[str] = None) -> bool:
    """
    Download url to dest unless dest already exists.

    Returns True when a download happened.
    """
    dest = Path(dest)
    if dest.exists():
        LOG.info("Using cached %s (skipping download)", dest)
        return False

    LOG.info("Downloading %s -> %s", url, dest)
    resp = requests.get(url, timeout=TIMEOUT)
    resp.raise_for_status()
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(resp.content)
    LOG.info("Saved %s (%s bytes)", dest, f"{len(resp.content):,}")

    if canonical_id:
        record_artifact(dest, canonical_id=canonical_id)
    return True


def _wdi_pages(session: requests.Session, base_url: str, code: str) -> List[dict]:
    url = f"{base_url.rstrip('/')}/{code}"
    params = {"format": "json", "per_page": WDI_PER_PAGE, "date": WDI_DATE_RANGE, "page": 1}
    rows: List[dict] = []
    while True:
        resp = session.get(url, params=params, timeout=TIMEOUT)
        resp.raise_for_status()
        payload = resp.json()
        if not isinstance(payload, list) or len(payload) < 2:
            raise ValueError(f"Unexpected World Bank API response for {code}: {str(payload)[:200]}")
        meta, data = payload[0] or {}, payload[1] or []
        for d in data:
            rows.append({
                "iso2c": (d.get("country") or {}).get("id"),
                "iso3c": d.get("countryiso3code"),
                "country": (d.get("country") or {}).get("value"),
                "year": d.get("date"),
                "indicator": code,
                "value": d.get("value"),
            })
        if params["page"] >= int(meta.get("pages", 1)):
            break
        params["page"] += 1
    return rows


def fetch_wdi_indicators(
    indicators: Dict[str, str],
    dest: Path,
    base_url: str = "https://api.worldbank.org/v2/country/all/indicator/",
    canonical_id: Optional[str] = None,
) -> bool:
    """
    Fetch WDI indicators (column_name -> indicator code) into a long CSV.

    Skipped entirely when dest exists.
    """
    dest = Path(dest)
    if dest.exists():
        LOG.info("Using cached %s (skipping World Bank API)", dest)
        return False

    rows: List[dict] = []
    with requests.Session() as session:
        for name, code in indicators.items():
            LOG.info("Fetching WDI %s (%s)", code, name)
            fetched = _wdi_pages(session, base_url, code)
            LOG.info("%s: %s observations", code, f"{len(fetched):,}")
            rows.extend(fetched)

    df = pd.DataFrame(rows, columns=["iso2c", "iso3c", "country", "year", "indicator", "value"])
    dest.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(dest, index=False)
    LOG.info("Saved WDI extract -> %s (%s rows)", dest, f"{len(df):,}")

    if canonical_id:
        record_artifact(dest, canonical_id=canonical_id)
    return True


def fetch_all() -> None:
    """Fetch every remote source that has no local copy yet."""
    sources = load_sources()
    for sid in ("ratification", "aid"):
        fetch_if_absent(sources[sid]["url"], raw_path(sid, sources), canonical_id=sid)
    gdp = sources["gdp"]
    fetch_wdi_indicators(gdp["indicators"], raw_path("gdp", sources), base_url=gdp["url"], canonical_id="gdp")


def _cli():
    p = argparse.ArgumentParser(description="Download remote sources that are not cached locally")
    p.parse_args()
    setup_logging()
    fetch_all()


if __name__ == "__main__":
    _cli()
