"""
AuditGraphStage — re-check published graph artifacts without the catalog.

Verifies manifest hashes (when a manifest exists), then runs
``audit_neighbors()``: structural checks, inbound floor / hub cap, and
consistency of the stored ``inbound-counts.json`` with ``neighbors.json``.

Returns the number of audited nodes.
"""

from __future__ import annotations

import logging
from pathlib import Path

from site_linkgraph.models.meta import RunMetadata
from site_linkgraph.pipeline.base import PipelineStage

logger = logging.getLogger(__name__)


class ManifestMismatchError(ValueError):
    """Raised when an artifact no longer matches its manifest hash."""


class AuditGraphStage(PipelineStage):
    """Audit a directory of previously written graph artifacts."""

    stage_name = "audit_graph"

    def _execute(
        self,
        run: RunMetadata,
        graph_dir: str | None = None,
        **kwargs,
    ) -> int:
        from site_linkgraph.graph.gate import audit_neighbors
        from site_linkgraph.graph.writer import load_site_graph, verify_manifest

        directory = Path(graph_dir or self.config.output.output_dir)
        artifacts = load_site_graph(directory)

        mismatched = verify_manifest(artifacts)
        if mismatched:
            raise ManifestMismatchError(
                f"Artifacts changed since the manifest was written: {', '.join(mismatched)}"
            )
        if artifacts.manifest is None:
            logger.info("No manifest in %s; skipping hash verification.", directory)

        report = audit_neighbors(artifacts.neighbors, artifacts.inbound_counts, self.config.graph)
        run.summary = {"graph_dir": str(directory), "audit": report.to_dict()}
        return report.nodes
