from datetime import datetime, UTC
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

RUN_STATUSES = {'pending', 'running', 'completed', 'failed', 'cancelled'}


class PipelineRun(BaseModel):
    """Outcome of one extraction run.

    ``report`` is only filled for completed runs; feed it back as
    ``start_time``/``end_time`` of the next run's configuration.
    """
    run_id: str = Field(...)
    pipeline_id: str = Field(...)
    status: str = Field(...)
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    end_time: Optional[datetime] = Field(None)
    records_processed: int = Field(0)
    errors: List[str] = Field(default_factory=list)
    report: Dict[str, int] = Field(default_factory=dict)     # Window for the next run
    metrics: Dict[str, Any] = Field(default_factory=dict)    # Extractor metrics at the end of the run

    @field_validator('status')
    @classmethod
    def validate_status(cls, v):
        if v.lower() not in RUN_STATUSES:
            raise ValueError(f"Status must be one of: {RUN_STATUSES}")
        return v.lower()

    @field_validator('pipeline_id')
    @classmethod
    def validate_pipeline_id(cls, v):
        if not v.replace('_', '').replace('-', '').isalnum():
            raise ValueError("pipeline_id must contain only letters, numbers, underscores, and hyphens")
        return v

    @property
    def duration(self) -> Optional[float]:
        """Run duration in seconds, None while running."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()
