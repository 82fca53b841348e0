# scripts/test_pipeline.py
from pathlib import Path
import sys
HERE = Path(__file__).resolve()
REPO_ROOT = HERE.parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import pytest

from tip_panel.config import ROOT
from tip_panel.pipeline import build_pipeline
from tip_panel.utils.data_registry import file_digest


def test_unknown_step_is_rejected():
    with pytest.raises(SystemExit):
        build_pipeline.main(["--steps", "panel,plots"])


def test_failing_step_stops_the_run(monkeypatch):
    ran = []

    def fake_run(step):
        ran.append(step)
        if step == "panel":
            raise RuntimeError("boom")

    monkeypatch.setattr(build_pipeline, "run_step", fake_run)
    with pytest.raises(SystemExit) as exc:
        build_pipeline.main(["--skip", "fetch"])
    assert exc.value.code == 1
    assert ran == ["panel"]


def test_manifest_lists_existing_files_only():
    existing = ROOT / "pyproject.toml"
    manifest = build_pipeline.build_manifest([existing, ROOT / "does_not_exist.csv"])
    assert list(manifest["files"]) == ["pyproject.toml"]
    entry = manifest["files"]["pyproject.toml"]
    assert entry["sha1"] == file_digest(existing, "sha1")
    assert entry["size"] == existing.stat().st_size
