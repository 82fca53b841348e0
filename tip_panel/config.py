# tip_panel/config.py
"""
Project-wide paths, panel constants and the source registry.

Paths are resolved relative to the repository root so modules can be run
from anywhere (python -m tip_panel.data.panel, pytest, the pipeline runner).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

ROOT = Path(__file__).resolve().parents[1]
RAW = ROOT / "data" / "raw"
MAPPINGS = RAW / "mappings"
INTERIM = ROOT / "data" / "interim"
PROCESSED = ROOT / "data" / "processed"
REPORTS = ROOT / "reports"
MODELS = ROOT / "models"
SOURCES_FILE = RAW / "sources.yaml"
MODEL_CONFIG = ROOT / "config" / "model.yml"

# Panel window (inclusive)
YEAR_START = 2000
YEAR_END = 2015

KEY = ["cowcode", "year"]

# criminalization codings stop here and are carried forward to YEAR_END
CRIM_LAST_YEAR = 2011
CRIM_FILL_DEFAULT: Optional[int] = None

# aid commitments are published in constant 2011 USD; WDI GDP is constant 2010 USD
AID_SOURCE_BASE_YEAR = 2011
AID_TARGET_BASE_YEAR = 2010

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def setup_logging(level: int = logging.INFO) -> None:
    """Configure root logging once (no-op if handlers already exist)."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


def load_sources(path: Optional[Path] = None) -> Dict[str, Dict[str, Any]]:
    """
    Read sources.yaml and return {canonical_id: entry}.

    Each entry carries at least `file`; remote sources also carry `url`.
    """
    p = Path(path) if path else SOURCES_FILE
    if not p.exists():
        raise FileNotFoundError(f"Source registry not found: {p}")
    with p.open("r", encoding="utf8") as fh:
        data = yaml.safe_load(fh) or {}
    return {src["canonical_id"]: src for src in data.get("sources", [])}


def raw_path(canonical_id: str, sources: Optional[Dict[str, Dict[str, Any]]] = None) -> Path:
    """Location of a registered source's raw file under data/raw."""
    sources = sources if sources is not None else load_sources()
    if canonical_id not in sources:
        raise KeyError(f"Unknown source '{canonical_id}' (not in {SOURCES_FILE.name})")
    return RAW / sources[canonical_id]["file"]
