"""
Shared run contract for the graph pipeline stages.

A stage is constructed with the ``AppConfig`` and driven through ``run()``:

  * a ``RunMetadata`` record is opened with a fresh ``run_slug`` and the
    config snapshot;
  * ``_execute()`` does the stage's work and returns the node count, writing
    anything else it wants to report into ``run.summary``;
  * the finished record (``success`` or ``failed``) is appended to the JSONL
    run log, and an exception from ``_execute()`` is re-raised unchanged.

Usage::

    class CountNodes(PipelineStage):
        stage_name = "audit_graph"

        def _execute(self, run: RunMetadata, **kwargs) -> int:
            run.summary = {"checked": True}
            return 12

    record = CountNodes(config=app_config, run_log="").run()
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from uuid import uuid4

from site_linkgraph.config import AppConfig
from site_linkgraph.models.meta import RunMetadata
from site_linkgraph.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


def append_run_record(path: str | Path, run: RunMetadata) -> None:
    """Append ``run`` as one JSON line to ``path`` (parents created)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(run.model_dump_json() + "\n")


def read_run_log(path: str | Path) -> list[RunMetadata]:
    """Load every record of a JSONL run log, oldest first.

    Returns an empty list if the log does not exist yet.
    """
    path = Path(path)
    if not path.exists():
        return []
    with open(path, encoding="utf-8") as f:
        return [RunMetadata.model_validate(json.loads(line)) for line in f if line.strip()]


class PipelineStage(ABC):
    """Base class for ``BuildGraphStage`` and ``AuditGraphStage``.

    Attributes:
        stage_name: One of ``models.meta.VALID_PIPELINE_STAGES``.
        config: The application configuration for this run.
        run_log: JSONL run log path; ``""`` disables it. ``None`` at
            construction means ``config.output.run_log``.
    """

    stage_name: str

    def __init__(self, config: AppConfig, run_log: str | None = None) -> None:
        self.config = config
        self.run_log = config.output.run_log if run_log is None else run_log

    def run(self, **kwargs) -> RunMetadata:
        """Run the stage once and return its finished record.

        Raises:
            Exception: Whatever ``_execute()`` raised, after the failed
                record has been logged.
        """
        run = RunMetadata(
            run_slug=str(uuid4()),
            pipeline_stage=self.stage_name,
            config_snapshot=self.config.model_dump(),
            started_at=utcnow(),
        )
        logger.info("Stage [%s] starting | run_slug=%s", self.stage_name, run.run_slug)

        try:
            nodes = self._execute(run=run, **kwargs)
        except Exception as exc:
            run.mark_failed(exc)
            logger.error(
                "Stage [%s] FAILED after %.2fs: %s | run_slug=%s",
                self.stage_name, run.duration_seconds, exc, run.run_slug,
            )
            self._record(run)
            raise

        run.mark_success(nodes)
        logger.info(
            "Stage [%s] completed in %.2fs | nodes=%d | run_slug=%s",
            self.stage_name, run.duration_seconds, nodes, run.run_slug,
        )
        self._record(run)
        return run

    @abstractmethod
    def _execute(self, run: RunMetadata, **kwargs) -> int:
        """Do the stage's work; return the number of graph nodes handled."""
        ...

    def _record(self, run: RunMetadata) -> None:
        # Run-log failures are logged, never raised.
        if not self.run_log:
            return
        try:
            append_run_record(self.run_log, run)
        except OSError as exc:
            logger.error("Could not append run %s to %s: %s", run.run_slug, self.run_log, exc)
