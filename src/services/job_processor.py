import logging
import threading
import time
import uuid
from datetime import timedelta
from typing import Dict

from src.config import config
from src.domain.exceptions import PersistenceError
from src.models_db import Job, JobStatus, utcnow

logger = logging.getLogger("job_processor")

ANALYZE_INSPECTION = "ANALYZE_INSPECTION"


class CancellationRegistry:
    """Cancel signals of the runs executing in this process, keyed by job id."""

    def __init__(self):
        self._events: Dict[uuid.UUID, threading.Event] = {}
        self._lock = threading.Lock()

    def register(self, job_id: uuid.UUID) -> threading.Event:
        event = threading.Event()
        with self._lock:
            self._events[job_id] = event
        return event

    def release(self, job_id: uuid.UUID) -> None:
        with self._lock:
            self._events.pop(job_id, None)

    def request_cancel(self, job_id: uuid.UUID) -> bool:
        """Signal a run to stop before its next photo."""
        with self._lock:
            event = self._events.get(job_id)
        if event is None:
            return False
        event.set()
        logger.info(f"🛑 Cancel requested for Job {job_id}")
        return True

    def cancel_all(self) -> int:
        """Used on instance shutdown (SIGTERM)."""
        with self._lock:
            events = list(self._events.values())
        for event in events:
            event.set()
        return len(events)


cancellation_registry = CancellationRegistry()


class JobProcessor:
    """
    Handler registered with the scheduler. Routes a Job to its handler by type
    and keeps the Job row's state machine up to date.

    A job ends QUEUED (instead of FAILED) when it must be delivered again:
    persistence failure, cancellation mid-run, or another run holding the
    inspection. The worker endpoint answers 5xx in that case so Cloud Tasks
    retries it.
    """

    def __init__(self, uow, orchestrator, cancellations: CancellationRegistry = None):
        self._uow = uow
        self._orchestrator = orchestrator
        self._cancellations = cancellations or cancellation_registry

    def process_job(self, job: Job) -> Job:
        """
        Main entry point for processing a job.
        Routes to specific handlers based on job.type.

        A delivery only runs after moving the Job to PROCESSING by CAS. If
        another delivery of the same job holds it, the job is returned as is
        (still PROCESSING) without running anything.
        """
        job_id = job.id
        now = utcnow()
        started = self._uow.jobs.try_start_processing(
            job_id,
            stale_before=now - timedelta(seconds=config.ANALYSIS_STALE_AFTER_SECONDS),
            started_at=now,
        )
        if not started:
            self._uow.rollback()
            job = self._uow.jobs.refresh(job)
            logger.warning(f"⚠️ Job {job_id} already taken by another delivery [Status: {job.status}]. Skipping.")
            return job

        self._uow.commit()  # Intermediary save for visibility
        job = self._uow.jobs.refresh(job)
        logger.info(f"⚙️ Processing Job {job_id} [Type: {job.type}, Attempt: {job.attempts}]")
        start_time = time.time()

        try:
            if job.type == ANALYZE_INSPECTION:
                result = self._handle_analyze_inspection(job)
            else:
                raise ValueError(f"Unknown Job Type: {job.type}")

            job.result_payload = result
            if result.get("retry_later"):
                job.status = JobStatus.QUEUED
                logger.info(f"⏸️ Job {job_id} back to queue [Reason: {result.get('reason') or 'cancelled'}]")
            else:
                job.status = JobStatus.COMPLETED
                logger.info(f"✅ Job {job_id} COMPLETED successfully.")

        except PersistenceError as e:
            # Banco falhou: o scheduler refaz o job inteiro; fotos já analisadas são puladas
            logger.error(f"❌ Job {job_id} aborted by persistence failure, will be retried: {e}")
            self._uow.rollback()
            job.status = JobStatus.QUEUED
            job.error_log = f"{type(e).__name__}: {e}"

        except Exception as e:
            logger.error(f"❌ Job {job_id} FAILED: {e}", exc_info=True)
            self._uow.rollback()
            self._release_inspection(job)
            job.status = JobStatus.FAILED
            job.error_log = f"{type(e).__name__}: {e}"

        finally:
            job.execution_time_seconds = time.time() - start_time
            if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
                job.finished_at = utcnow()
            try:
                self._uow.commit()
            except Exception as e:
                logger.error(f"FATAL: Failed to save job status: {e}")
                self._uow.rollback()

        return job

    def _release_inspection(self, job: Job) -> None:
        """A failed job gives its inspection back (ANALYZING -> ANALYSIS_PENDING) so it can be requested again."""
        inspection_id = (job.input_payload or {}).get("inspection_id")
        if not inspection_id:
            return
        try:
            released = self._uow.inspections.release_claim(uuid.UUID(inspection_id), job.id)
        except ValueError:
            return
        if released:
            logger.info(f"↩️ Inspection {inspection_id} released by failed Job {job.id}")

    def _handle_analyze_inspection(self, job: Job) -> dict:
        """
        Delegates to AnalysisOrchestrator.
        Payload expected: {'inspection_id': str, 'photo_ids': [str], 'user_id': str, 'prompt': str|None}
        """
        payload = job.input_payload or {}
        if not payload.get("inspection_id"):
            raise ValueError("Missing inspection_id in job payload")

        inspection_id = uuid.UUID(payload["inspection_id"])
        photo_ids = [uuid.UUID(pid) for pid in payload.get("photo_ids") or []]
        user_id = uuid.UUID(payload["user_id"]) if payload.get("user_id") else None

        cancel_event = self._cancellations.register(job.id)
        try:
            summary = self._orchestrator.run(
                inspection_id,
                photo_ids,
                user_id,
                prompt=payload.get("prompt"),
                job_id=job.id,
                cancel_event=cancel_event,
                resume=job.attempts > 1,
            )
        finally:
            self._cancellations.release(job.id)

        return summary.to_dict()
