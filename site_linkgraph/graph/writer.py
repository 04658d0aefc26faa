"""
Artifact writer and reader for the built link graph.

Output layout (``output.output_dir``)::

    neighbors.json        slug → {"recommendations", "alternatives"[, "explore"]}
    topics.json           topic → sorted slugs
    inbound-counts.json   slug → distinct inbound sources
    graph-manifest.json   sha256 + counts per artifact (optional)

The three graph artifacts are compact JSON (no whitespace) so the site can
ship them as static assets.  All files are staged as temporary files in the
output directory and renamed into place only after every write succeeded,
so a failure while staging replaces nothing.  The renames themselves are
not one atomic step: if one fails part-way, the files already renamed are
new, the rest are old, and the stale manifest (renamed last) makes
``verify_manifest()`` report the mismatch.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from site_linkgraph.graph.builder import SiteGraph

logger = logging.getLogger(__name__)

NEIGHBORS_FILE = "neighbors.json"
TOPICS_FILE = "topics.json"
INBOUND_FILE = "inbound-counts.json"
MANIFEST_FILE = "graph-manifest.json"

ARTIFACT_FILES = (NEIGHBORS_FILE, TOPICS_FILE, INBOUND_FILE)


@dataclass
class GraphArtifacts:
    """Artifacts read back from an output directory."""

    neighbors: dict[str, dict[str, Any]]
    topics: dict[str, list[str]]
    inbound_counts: dict[str, int]
    manifest: Optional[dict[str, Any]] = None
    paths: dict[str, Path] = field(default_factory=dict)


def encode_compact(data: Any) -> bytes:
    """Compact UTF-8 JSON, key order preserved."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def build_manifest(
    graph: SiteGraph,
    encoded: dict[str, bytes],
    run_slug: Optional[str] = None,
) -> dict[str, Any]:
    """Manifest dict describing the encoded artifacts."""
    counts = {
        NEIGHBORS_FILE: len(graph.neighbors),
        TOPICS_FILE: len(graph.topics),
        INBOUND_FILE: len(graph.inbound_counts),
    }
    return {
        "schema_version": "1.0",
        "generated_at": datetime.now(tz=timezone.utc).isoformat(),
        "run_slug": run_slug,
        "files": {
            name: {
                "sha256": hashlib.sha256(data).hexdigest(),
                "bytes": len(data),
                "entries": counts[name],
            }
            for name, data in encoded.items()
        },
        "report": graph.report.to_dict(),
    }


def write_site_graph(
    graph: SiteGraph,
    output_dir: str | Path,
    manifest: bool = True,
    run_slug: Optional[str] = None,
) -> dict[str, Path]:
    """Stage every artifact, then rename each into place.

    Args:
        graph:      Result of ``build_site_graph()``.
        output_dir: Destination directory (created if missing).
        manifest:   Also write ``graph-manifest.json``.
        run_slug:   Pipeline run identifier recorded in the manifest.

    Returns:
        File name → final path for every file written.

    Raises:
        OSError: If staging fails (nothing is replaced) or a rename fails
            (earlier renames stay; leftover staged files are removed).
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    encoded: dict[str, bytes] = {
        NEIGHBORS_FILE: encode_compact(graph.neighbors),
        TOPICS_FILE: encode_compact(graph.topics),
        INBOUND_FILE: encode_compact(graph.inbound_counts),
    }
    if manifest:
        encoded[MANIFEST_FILE] = json.dumps(
            build_manifest(graph, encoded, run_slug), indent=2, default=str
        ).encode("utf-8")

    staged: dict[str, Path] = {}
    written: dict[str, Path] = {}
    try:
        for name, data in encoded.items():
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=out)
            staged[name] = Path(tmp_name)
            with os.fdopen(fd, "wb") as f:
                f.write(data)

        # Manifest last: an interrupted publish leaves the old manifest,
        # which then fails verify_manifest().
        for name, tmp in staged.items():
            final = out / name
            os.replace(tmp, final)
            written[name] = final
    finally:
        for name, tmp in staged.items():
            if name not in written:
                tmp.unlink(missing_ok=True)

    logger.info(
        "Graph artifacts written to %s (%s)",
        out, ", ".join(f"{name} {len(encoded[name])}B" for name in written),
    )
    return written


def _read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def load_site_graph(output_dir: str | Path) -> GraphArtifacts:
    """Read previously written artifacts.

    Raises:
        FileNotFoundError: If any of the three graph artifacts is missing.
    """
    out = Path(output_dir)
    paths = {name: out / name for name in ARTIFACT_FILES}
    missing = [name for name, path in paths.items() if not path.exists()]
    if missing:
        raise FileNotFoundError(f"Graph artifacts missing in {out}: {', '.join(missing)}")

    manifest_path = out / MANIFEST_FILE
    manifest = _read_json(manifest_path) if manifest_path.exists() else None
    if manifest is not None:
        paths[MANIFEST_FILE] = manifest_path

    return GraphArtifacts(
        neighbors=_read_json(paths[NEIGHBORS_FILE]),
        topics=_read_json(paths[TOPICS_FILE]),
        inbound_counts=_read_json(paths[INBOUND_FILE]),
        manifest=manifest,
        paths=paths,
    )


def verify_manifest(artifacts: GraphArtifacts) -> list[str]:
    """Compare artifact hashes with the manifest; return mismatching file names."""
    if not artifacts.manifest:
        return []
    mismatched: list[str] = []
    for name, meta in artifacts.manifest.get("files", {}).items():
        path = artifacts.paths.get(name)
        if path is None:
            continue
        digest = hashlib.sha256(path.read_bytes()).hexdigest()
        if digest != meta.get("sha256"):
            mismatched.append(name)
    return mismatched
