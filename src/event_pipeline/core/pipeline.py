import asyncio
from datetime import datetime, UTC
from typing import Optional
import uuid

from loguru import logger

from event_pipeline.core.base import BaseExtractor, RecordConsumer
from event_pipeline.core.errors import ExtractionCancelledError
from event_pipeline.core.models import PipelineRun


class Pipeline:
    """Runs an extractor end to end and produces the report for the next run.

    The report is computed only after every record has been handed to the
    consumer. A failed or cancelled run raises and leaves the report empty,
    so the previous cursor stays in effect.
    """

    def __init__(
        self,
        pipeline_id: str,
        extractor: BaseExtractor,
        validate: bool = True
    ):
        self.pipeline_id = pipeline_id
        self.extractor = extractor
        self.validate = validate
        self.last_run: Optional[PipelineRun] = None

    async def execute(
        self,
        consumer: RecordConsumer,
        cancel_event: Optional[asyncio.Event] = None
    ) -> PipelineRun:
        """Execute the pipeline and return run details."""
        run = PipelineRun(
            run_id=str(uuid.uuid4()),
            pipeline_id=self.pipeline_id,
            status="running"
        )
        records_before = self.extractor.get_metrics()['items_processed']

        try:
            if self.validate:
                await self.extractor.validate()

            logger.info(f"Starting data extraction for pipeline {self.pipeline_id}")
            last_time = await self.extractor.extract_records(consumer, cancel_event)

            run.report = self.extractor.build_report(last_time)
            run.status = "completed"
            logger.info(f"Pipeline {self.pipeline_id} completed successfully")

        except ExtractionCancelledError as e:
            logger.warning(f"Pipeline {self.pipeline_id} cancelled: {str(e)}")
            run.status = "cancelled"
            run.errors.append(str(e))
            raise

        except Exception as e:
            logger.error(f"Pipeline execution failed: {str(e)}")
            run.status = "failed"
            run.errors.append(str(e))
            raise

        finally:
            run.end_time = datetime.now(UTC)
            run.metrics = self.extractor.get_metrics()
            run.records_processed = run.metrics['items_processed'] - records_before
            self.last_run = run
            await self.extractor.cleanup()

        return run
