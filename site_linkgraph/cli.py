"""
site-linkgraph — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute the pipeline stage.
  5. Report result to stdout.

Install and run::

    pip install -e .
    site-linkgraph --help
    site-linkgraph validate-config
    site-linkgraph build-graph
    site-linkgraph build-graph --catalog data/catalog/whops.parquet --dry-run
    site-linkgraph audit-graph --graph-dir public/data/graph
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="site-linkgraph",
    help="Deterministic offline builder for the catalog site's internal link graph.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from site_linkgraph.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from site_linkgraph.utils.logging import configure_logging
    configure_logging(config.logging)


def _report_gate_failure(exc) -> None:
    typer.echo(f"[ERROR] {exc}", err=True)
    for violation in exc.violations[:20]:
        typer.echo(f"  {violation.slug}: [{violation.kind}] {violation.detail}", err=True)
    if len(exc.violations) > 20:
        typer.echo(f"  ... and {len(exc.violations) - 20} more", err=True)


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Catalog source:   {config.catalog.source_path} ({config.catalog.source_format})")
    typer.echo(f"  Gone sitemap:     {config.catalog.gone_sitemap or '(none)'}")
    typer.echo(f"  Output dir:       {config.output.output_dir}")
    typer.echo(f"  Links per page:   {config.graph.recs_per_page} recs / {config.graph.alts_per_page} alts / 1 explore")
    typer.echo(f"  Inbound bounds:   {config.graph.min_inbound}..{config.graph.hub_cap}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("build-graph")
def build_graph(
    catalog_path: Optional[str] = typer.Option(
        None,
        "--catalog",
        help="Catalog snapshot (.json, .parquet or SQLite). Defaults to config.catalog.source_path.",
    ),
    output_dir: Optional[str] = typer.Option(
        None,
        "--output-dir",
        help="Artifact directory. Defaults to config.output.output_dir.",
    ),
    reference_time: Optional[str] = typer.Option(
        None,
        "--reference-time",
        help="ISO timestamp used as 'now' for freshness (default: newest catalog update).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Build and validate the graph without writing artifacts.",
    ),
) -> None:
    """Build neighbors.json, topics.json and inbound-counts.json.

    Exits with code 1 if the catalog cannot be read or the finished graph
    fails the invariant gate (no artifacts are written in that case).
    """
    from site_linkgraph.catalog.loader import CatalogError
    from site_linkgraph.graph.gate import GraphInvariantError
    from site_linkgraph.pipeline.build_graph import run_graph_build

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    ref_time: Optional[datetime] = None
    if reference_time:
        try:
            ref_time = datetime.fromisoformat(reference_time)
        except ValueError as exc:
            typer.echo(f"[ERROR] Invalid --reference-time: {exc}", err=True)
            raise typer.Exit(code=1)

    try:
        run = run_graph_build(
            config,
            catalog_path=catalog_path,
            output_dir=output_dir,
            dry_run=dry_run,
            reference_time=ref_time,
        )
    except GraphInvariantError as exc:
        _report_gate_failure(exc)
        raise typer.Exit(code=1)
    except (FileNotFoundError, CatalogError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    gate = run.summary.get("gate", {})
    typer.echo(f"Graph built: {run.rows_processed} nodes")
    typer.echo(f"  Recommendations: {gate.get('total_recommendations', 0)}")
    typer.echo(f"  Alternatives:    {gate.get('total_alternatives', 0)}")
    typer.echo(f"  Explore links:   {gate.get('total_explore', 0)}")
    typer.echo(
        f"  Inbound:         max {gate.get('max_inbound', 0)} "
        f"(cap {config.graph.hub_cap}), avg {gate.get('average_inbound', 0.0)}"
    )
    typer.echo(f"  Diversity:       {gate.get('diversity_pct', 0.0)}% unique recommendation sets")
    for warning in gate.get("warnings", []):
        typer.echo(f"  [WARN] {warning}")

    if dry_run:
        typer.echo("[DRY RUN] No artifacts written.")
    else:
        for name, path in run.summary.get("artifacts", {}).items():
            typer.echo(f"  Wrote {name}: {path}")
        typer.echo("[OK] Link graph published.")


@app.command("audit-graph")
def audit_graph(
    graph_dir: Optional[str] = typer.Option(
        None,
        "--graph-dir",
        help="Directory holding the graph artifacts. Defaults to config.output.output_dir.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Re-check published artifacts against the hard invariants.

    Exits with code 1 on any violation, missing artifact or manifest mismatch.
    """
    from site_linkgraph.graph.gate import GraphInvariantError
    from site_linkgraph.pipeline.audit_graph import AuditGraphStage, ManifestMismatchError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        run = AuditGraphStage(config=config).run(graph_dir=graph_dir)
    except GraphInvariantError as exc:
        _report_gate_failure(exc)
        raise typer.Exit(code=1)
    except (FileNotFoundError, ManifestMismatchError, json.JSONDecodeError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    audit = run.summary.get("audit", {})
    typer.echo(f"Audited {run.rows_processed} nodes in {run.summary.get('graph_dir')}")
    typer.echo(f"  Max inbound: {audit.get('max_inbound', 0)}, avg {audit.get('average_inbound', 0.0)}")
    typer.echo("[OK] Graph artifacts satisfy all invariants.")


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
