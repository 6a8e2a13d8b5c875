"""Repository for Job entities."""
from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import update, and_, or_

from src.models_db import Job, JobStatus


class JobRepository:
    def __init__(self, session):
        self._session = session

    def get_by_id(self, id: uuid.UUID) -> Optional[Job]:
        return self._session.get(Job, id)

    def try_start_processing(self, id: uuid.UUID, stale_before: datetime, started_at: datetime) -> bool:
        """
        PENDING/QUEUED -> PROCESSING as a single conditional UPDATE.

        Only one delivery of a job runs at a time. A PROCESSING job is taken
        over only when its delivery started before `stale_before` (the
        instance running it died). The caller commits.
        """
        result = self._session.execute(
            update(Job)
            .where(
                Job.id == id,
                or_(
                    Job.status.in_([JobStatus.PENDING, JobStatus.QUEUED]),
                    and_(
                        Job.status == JobStatus.PROCESSING,
                        or_(Job.processing_started_at.is_(None), Job.processing_started_at < stale_before),
                    ),
                ),
            )
            .values(status=JobStatus.PROCESSING, processing_started_at=started_at, attempts=Job.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def refresh(self, job: Job) -> Job:
        self._session.refresh(job)
        return job

    def add(self, job: Job) -> Job:
        self._session.add(job)
        return job
