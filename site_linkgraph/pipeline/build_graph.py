"""
BuildGraphStage — load the catalog, build the link graph, write artifacts.

Flow
----
1. Load the active catalog (gone slugs excluded) via ``load_catalog()``.
2. ``build_site_graph()`` runs every phase and the invariant gate.
3. Unless ``dry_run``, write ``neighbors.json``, ``topics.json``,
   ``inbound-counts.json`` (and the manifest) via staged renames.

A gate failure raises ``GraphInvariantError`` from step 2, so nothing is
written and the run record is stored with ``status='failed'``.

Returns the number of graph nodes.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Optional

from site_linkgraph.config import AppConfig
from site_linkgraph.graph.builder import SiteGraph
from site_linkgraph.models.meta import RunMetadata
from site_linkgraph.pipeline.base import PipelineStage

logger = logging.getLogger(__name__)


class BuildGraphStage(PipelineStage):
    """Build and publish the site link graph.

    Attributes:
        graph: The ``SiteGraph`` produced by the last successful run.
    """

    stage_name = "build_graph"
    graph: Optional[SiteGraph] = None

    def _execute(
        self,
        run: RunMetadata,
        catalog_path: str | None = None,
        output_dir: str | None = None,
        dry_run: bool = False,
        reference_time: datetime | None = None,
        **kwargs,
    ) -> int:
        """Build the graph and (unless ``dry_run``) write its artifacts.

        Args:
            run:            In-progress RunMetadata (mutable).
            catalog_path:   Override for ``config.catalog.source_path``.
            output_dir:     Override for ``config.output.output_dir``.
            dry_run:        Build and validate only; write nothing.
            reference_time: Freshness reference; defaults to the catalog's
                newest ``updated_at``.

        Returns:
            Number of nodes in the graph.
        """
        from site_linkgraph.catalog.loader import load_catalog
        from site_linkgraph.graph.builder import build_site_graph
        from site_linkgraph.graph.writer import write_site_graph

        items = load_catalog(self.config.catalog, source_path=catalog_path)
        graph = build_site_graph(items, self.config.graph, reference_time=reference_time)
        self.graph = graph

        summary: dict = {"gate": graph.report.to_dict()}
        if graph.rescue is not None:
            summary["rescue"] = {**asdict(graph.rescue), "rescued": graph.rescue.rescued}
        if graph.explore is not None:
            summary["explore"] = {**asdict(graph.explore), "total_links": graph.explore.total_links}

        if dry_run:
            logger.info("Dry run: %d-node graph built and validated, nothing written.", graph.node_count)
        else:
            out = Path(output_dir or self.config.output.output_dir)
            written = write_site_graph(
                graph,
                out,
                manifest=self.config.output.write_manifest,
                run_slug=run.run_slug,
            )
            summary["artifacts"] = {name: str(path) for name, path in written.items()}

        run.summary = summary
        return graph.node_count


def run_graph_build(
    config: AppConfig,
    catalog_path: str | None = None,
    output_dir: str | None = None,
    dry_run: bool = False,
    reference_time: datetime | None = None,
) -> RunMetadata:
    """Convenience entry point: run a ``BuildGraphStage`` once.

    Raises:
        GraphInvariantError: If the built graph fails the invariant gate.
        FileNotFoundError: If the catalog source does not exist.
        CatalogError: If the catalog source is unreadable.
    """
    stage = BuildGraphStage(config=config)
    return stage.run(
        catalog_path=catalog_path,
        output_dir=output_dir,
        dry_run=dry_run,
        reference_time=reference_time,
    )
