"""
Run records for graph builds and artifact audits.

Each pipeline run produces one ``RunMetadata``.  It carries the full
``AppConfig`` dump in ``config_snapshot`` so a published graph can be traced
back to the exact tunables that produced it, and ``summary`` holds the
stage's own figures (gate report, rescue / explore counts, artifact paths).

Unlike the config models this one is mutable: the stage fills in the outcome
fields when ``_execute()`` returns or raises.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from site_linkgraph.utils.time_utils import utcnow

VALID_PIPELINE_STAGES = frozenset({"build_graph", "audit_graph"})
VALID_RUN_STATUSES = frozenset({"started", "success", "failed"})


class RunMetadata(BaseModel):
    """One line of the JSONL run log.

    Attributes:
        run_slug: UUID4 string; also written into the graph manifest.
        pipeline_stage: ``build_graph`` or ``audit_graph``.
        status: ``started`` until the stage finishes, then ``success`` / ``failed``.
        config_snapshot: ``AppConfig.model_dump()`` at run start.
        rows_processed: Number of graph nodes built or audited.
        summary: Stage-specific result figures.
        error_message: ``str(exc)`` of the failure, if any.
        started_at / finished_at: UTC timestamps.
    """

    model_config = ConfigDict(frozen=False)

    run_slug: str
    pipeline_stage: str
    status: str = "started"
    config_snapshot: dict[str, Any]
    rows_processed: int = 0
    summary: dict[str, Any] = {}
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    @field_validator("pipeline_stage")
    @classmethod
    def validate_pipeline_stage(cls, v: str) -> str:
        if v not in VALID_PIPELINE_STAGES:
            raise ValueError(
                f"Unknown pipeline_stage '{v}'. Must be one of {sorted(VALID_PIPELINE_STAGES)}."
            )
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in VALID_RUN_STATUSES:
            raise ValueError(
                f"Unknown status '{v}'. Must be one of {sorted(VALID_RUN_STATUSES)}."
            )
        return v

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return round((self.finished_at - self.started_at).total_seconds(), 3)

    def mark_success(self, nodes: int) -> None:
        self.status = "success"
        self.rows_processed = nodes
        self.finished_at = utcnow()

    def mark_failed(self, exc: BaseException) -> None:
        self.status = "failed"
        self.error_message = str(exc)
        self.finished_at = utcnow()
