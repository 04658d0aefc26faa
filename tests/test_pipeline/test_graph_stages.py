"""
Tests for site_linkgraph/pipeline (base, build_graph, audit_graph).

What we test
------------
PipelineStage:
  - Abstract; cannot be instantiated without _execute.
  - Success and failure are both appended to the JSONL run log.
  - An empty run_log disables persistence.

BuildGraphStage:
  - Writes artifacts and fills run.summary (gate, rescue, explore, artifacts).
  - dry_run builds and validates without writing.
  - A gate failure raises, writes nothing and logs a failed run.

AuditGraphStage:
  - Passes on freshly written artifacts.
  - Manifest mismatch → ManifestMismatchError.
  - Stored inbound table inconsistent with edges → GraphInvariantError.
"""

from __future__ import annotations

import json

import pytest

from site_linkgraph.config import load_config
from site_linkgraph.graph.gate import GraphInvariantError
from site_linkgraph.graph.writer import ARTIFACT_FILES, INBOUND_FILE, MANIFEST_FILE, NEIGHBORS_FILE
from site_linkgraph.pipeline.audit_graph import AuditGraphStage, ManifestMismatchError
from site_linkgraph.pipeline.base import PipelineStage, read_run_log
from site_linkgraph.pipeline.build_graph import BuildGraphStage, run_graph_build


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def catalog_file(tmp_path, small_catalog_records):
    path = tmp_path / "whops.json"
    path.write_text(json.dumps(small_catalog_records), encoding="utf-8")
    return path


@pytest.fixture
def app_config(write_config, catalog_file, tmp_path):
    return load_config(write_config(catalog_file, tmp_path / "graph"))


def _run_log(tmp_path):
    return read_run_log(tmp_path / "runs.jsonl")


# ── Base ──────────────────────────────────────────────────────────────────────

class TestPipelineStageBase:
    def test_cannot_instantiate_base_directly(self):
        with pytest.raises(TypeError):
            PipelineStage(config=None)  # type: ignore

    def test_empty_run_log_disables_persistence(self, app_config, tmp_path):
        stage = BuildGraphStage(config=app_config, run_log="")
        stage.run(dry_run=True)
        assert _run_log(tmp_path) == []


# ── BuildGraphStage ───────────────────────────────────────────────────────────

class TestBuildGraphStage:
    def test_writes_artifacts(self, app_config, tmp_path):
        run = run_graph_build(app_config)

        assert run.status == "success"
        assert run.pipeline_stage == "build_graph"
        assert run.rows_processed == 12
        for name in (*ARTIFACT_FILES, MANIFEST_FILE):
            assert (tmp_path / "graph" / name).exists()

        assert run.summary["gate"]["nodes"] == 12
        assert "rescued" in run.summary["rescue"]
        assert "total_links" in run.summary["explore"]
        assert set(run.summary["artifacts"]) == {*ARTIFACT_FILES, MANIFEST_FILE}

        manifest = json.loads((tmp_path / "graph" / MANIFEST_FILE).read_text(encoding="utf-8"))
        assert manifest["run_slug"] == run.run_slug

    def test_run_logged(self, app_config, tmp_path):
        run = run_graph_build(app_config)
        records = _run_log(tmp_path)
        assert len(records) == 1
        assert records[0].run_slug == run.run_slug
        assert records[0].status == "success"
        assert records[0].duration_seconds is not None
        assert records[0].config_snapshot["graph"]["hub_cap"] == 250

    def test_dry_run_writes_nothing(self, app_config, tmp_path):
        stage = BuildGraphStage(config=app_config)
        run = stage.run(dry_run=True)

        assert run.status == "success"
        assert "artifacts" not in run.summary
        assert not (tmp_path / "graph").exists()
        assert stage.graph is not None
        assert stage.graph.node_count == 12

    def test_output_dir_override(self, app_config, tmp_path):
        run_graph_build(app_config, output_dir=str(tmp_path / "elsewhere"))
        assert (tmp_path / "elsewhere" / NEIGHBORS_FILE).exists()
        assert not (tmp_path / "graph").exists()

    def test_gate_failure_writes_nothing(self, write_config, tmp_path, small_catalog_records):
        path = tmp_path / "tiny.json"
        path.write_text(json.dumps(small_catalog_records[:1]), encoding="utf-8")
        config = load_config(write_config(path, tmp_path / "graph"))

        with pytest.raises(GraphInvariantError):
            run_graph_build(config)

        assert not (tmp_path / "graph").exists()
        records = _run_log(tmp_path)
        assert [r.status for r in records] == ["failed"]
        assert "invariant gate failed" in records[0].error_message

    def test_missing_catalog(self, write_config, tmp_path):
        config = load_config(write_config(tmp_path / "absent.json"))
        with pytest.raises(FileNotFoundError):
            run_graph_build(config)
        assert _run_log(tmp_path)[0].status == "failed"


# ── AuditGraphStage ───────────────────────────────────────────────────────────

class TestAuditGraphStage:
    def test_fresh_artifacts_pass(self, app_config, tmp_path):
        run_graph_build(app_config)
        run = AuditGraphStage(config=app_config).run()

        assert run.status == "success"
        assert run.rows_processed == 12
        assert run.summary["graph_dir"] == str(tmp_path / "graph")
        assert run.summary["audit"]["nodes"] == 12

    def test_manifest_mismatch(self, app_config, tmp_path):
        run_graph_build(app_config)
        path = tmp_path / "graph" / NEIGHBORS_FILE
        path.write_bytes(path.read_bytes() + b"\n")

        with pytest.raises(ManifestMismatchError, match=NEIGHBORS_FILE):
            AuditGraphStage(config=app_config).run()

    def test_inconsistent_inbound_table(self, app_config, tmp_path):
        run_graph_build(app_config)
        graph_dir = tmp_path / "graph"
        (graph_dir / MANIFEST_FILE).unlink()
        path = graph_dir / INBOUND_FILE
        counts = json.loads(path.read_bytes())
        counts[next(iter(counts))] += 1
        path.write_text(json.dumps(counts), encoding="utf-8")

        with pytest.raises(GraphInvariantError) as exc_info:
            AuditGraphStage(config=app_config).run(graph_dir=str(graph_dir))
        assert {v.kind for v in exc_info.value.violations} == {"inbound_mismatch"}

    def test_missing_directory(self, app_config, tmp_path):
        with pytest.raises(FileNotFoundError):
            AuditGraphStage(config=app_config).run(graph_dir=str(tmp_path / "nowhere"))
