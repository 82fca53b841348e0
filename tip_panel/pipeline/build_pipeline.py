# tip_panel/pipeline/build_pipeline.py
"""
Pipeline orchestrator.

Runs the stages in order, top to bottom, and stops at the first failure.

Usage:
  python -m tip_panel.pipeline.build_pipeline            # full run
  python -m tip_panel.pipeline.build_pipeline --steps fetch,panel
  python -m tip_panel.pipeline.build_pipeline --skip models

Steps (default order):
  fetch -> panel -> verify -> models

Writes data_manifest.json (sha1 + size of each produced artifact).
"""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import time
from pathlib import Path
from typing import Dict, List

from tip_panel.config import INTERIM, PROCESSED, REPORTS, ROOT, setup_logging
from tip_panel.utils.data_registry import file_digest

MANIFEST_OUT = ROOT / "data_manifest.json"

LOG = logging.getLogger(__name__)

# step -> (module, callable)
PIPELINE_STEPS: Dict[str, tuple] = {
    "fetch": ("tip_panel.data.fetch", "fetch_all"),
    "panel": ("tip_panel.data.panel", "main"),
    "verify": ("tip_panel.data.verify_panel", "run_verification"),
    "models": ("tip_panel.model.train", "main"),
}

STEP_OUTPUTS: Dict[str, List[Path]] = {
    "panel": [
        INTERIM / "clean_tip_3p.csv",
        PROCESSED / "panel_base.csv",
        PROCESSED / "panel_lagged.csv",
        PROCESSED / "panel_crim.csv",
    ],
    "verify": [
        REPORTS / "verify_missingness.csv",
        REPORTS / "verify_source_closure.csv",
    ],
    "models": [REPORTS / "model_table.csv"],
}


def run_step(step_key: str) -> None:
    module_name, callable_name = PIPELINE_STEPS[step_key]
    module = importlib.import_module(module_name)
    func = getattr(module, callable_name)
    LOG.info("Calling %s.%s()", module_name, callable_name)
    if step_key == "models":
        func(argv=[])
    else:
        func()
    LOG.info("Completed %s.%s()", module_name, callable_name)


def build_manifest(paths: List[Path]) -> dict:
    manifest = {"generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()), "files": {}}
    for p in paths:
        if p.exists():
            manifest["files"][str(p.relative_to(ROOT))] = {"sha1": file_digest(p, "sha1"), "size": p.stat().st_size}
    return manifest


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="build_pipeline", description="Run the panel pipeline stages")
    parser.add_argument("--steps", type=str, default=",".join(PIPELINE_STEPS.keys()),
                        help="Comma-separated list of steps to run (in order).")
    parser.add_argument("--skip", type=str, default="",
                        help="Comma-separated list of steps to skip.")
    return parser.parse_args(argv)


def main(argv=None):
    setup_logging()
    args = parse_args(argv)
    requested = [s.strip() for s in args.steps.split(",") if s.strip()]
    skips = {s.strip() for s in args.skip.split(",") if s.strip()}
    unknown = [s for s in requested if s not in PIPELINE_STEPS]
    if unknown:
        raise SystemExit(f"Unknown steps: {unknown} (known: {list(PIPELINE_STEPS)})")
    steps_to_run = [s for s in requested if s not in skips]

    LOG.info("Pipeline start. Steps to run: %s", steps_to_run)
    produced: List[Path] = []
    try:
        for step in steps_to_run:
            LOG.info("=== Step: %s ===", step)
            run_step(step)
            produced.extend(STEP_OUTPUTS.get(step, []))
    except Exception as e:
        LOG.exception("Pipeline failed at step %s: %s", step, e)
        raise SystemExit(1)

    MANIFEST_OUT.write_text(json.dumps(build_manifest(produced), indent=2))
    LOG.info("Wrote manifest -> %s", MANIFEST_OUT)
    LOG.info("Pipeline finished successfully.")


if __name__ == "__main__":
    main()
