# tip_panel/utils/data_registry.py
"""
Provenance for raw inputs and panel artifacts.

Every artifact gets a `<file>.md5` sidecar. Artifacts with a registry id also
get `checksum` and `last_fetch` stamped on their entry in data/raw/sources.yaml,
so a rerun can tell a re-downloaded source from the cached one.
"""

from __future__ import annotations

import datetime
import hashlib
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from tip_panel.config import SOURCES_FILE

LOG = logging.getLogger(__name__)

CHUNK = 1 << 16


def file_digest(path: str | Path, algorithm: str = "md5") -> str:
    """Hex digest of a file's bytes (md5 for the registry, sha1 for the manifest)."""
    h = hashlib.new(algorithm)
    with Path(path).open("rb") as fh:
        for block in iter(lambda: fh.read(CHUNK), b""):
            h.update(block)
    return h.hexdigest()


def write_checksum(path: str | Path) -> str:
    """md5 of `path`, also written to the `<path>.md5` sidecar."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"{p} not found")
    md5 = file_digest(p)
    p.with_name(p.name + ".md5").write_text(md5, encoding="utf8")
    return md5


def _utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def stamp_source(canonical_id: str, checksum: str, sources_file: Optional[Path] = None) -> bool:
    """
    Stamp `checksum` and `last_fetch` on the registry entry for `canonical_id`.

    Returns False (and leaves the file alone) when the registry or the id is
    missing.
    """
    registry = Path(sources_file) if sources_file else SOURCES_FILE
    if not registry.exists():
        LOG.warning("Source registry not found at %s; %s not stamped", registry, canonical_id)
        return False

    data: Dict[str, Any] = yaml.safe_load(registry.read_text(encoding="utf8")) or {}
    entry = next((s for s in data.get("sources", []) if s.get("canonical_id") == canonical_id), None)
    if entry is None:
        LOG.debug("%s is not a registered source", canonical_id)
        return False

    entry.update(checksum=checksum, last_fetch=_utc_now())
    registry.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf8")
    LOG.info("Stamped %s in %s (md5=%s)", canonical_id, registry.name, checksum)
    return True


def record_artifact(
    file_path: str | Path,
    canonical_id: Optional[str] = None,
    sources_file: Optional[Path] = None,
) -> Optional[str]:
    """Sidecar checksum plus, for registered ids, a registry stamp. None if unreadable."""
    try:
        md5 = write_checksum(file_path)
    except OSError as exc:
        LOG.error("Could not checksum %s: %s", file_path, exc)
        return None
    if canonical_id:
        stamp_source(canonical_id, md5, sources_file=sources_file)
    return md5
