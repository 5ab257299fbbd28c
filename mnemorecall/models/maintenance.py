"""
Maintenance job models.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class MaintenanceJobResult(BaseModel):
    """Outcome of one maintenance job run."""

    job_name: str
    success: bool
    start_time: datetime
    end_time: datetime
    duration_ms: float
    metrics: dict[str, float] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)


class MaintenanceStats(BaseModel):
    """Running totals of a maintenance service."""

    last_decay_update: datetime | None = None
    last_consolidation: datetime | None = None
    last_summarization: datetime | None = None
    last_reindex: datetime | None = None
    total_jobs_run: int = 0
    total_errors: int = 0
    worker_running: bool = False
    job_history: list[MaintenanceJobResult] = Field(default_factory=list)
