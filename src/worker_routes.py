import logging
import uuid

from flask import Blueprint, request, jsonify
from sqlalchemy.exc import SQLAlchemyError

from src.container import get_job_processor, get_uow
from src.models_db import JobStatus

logger = logging.getLogger("worker")

worker_bp = Blueprint('worker', __name__)

FINAL_STATES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELED)


@worker_bp.route('/process', methods=['POST'])
def process_task():
    """
    Endpoint called by Cloud Tasks (or manually for testing).
    Payload must contain 'job_id'.

    2xx tells Cloud Tasks the task is done; 409 and 5xx make it deliver the
    task again later.
    """
    data = request.get_json(silent=True)
    if not data or 'job_id' not in data:
        logger.error("❌ Worker received invalid payload (missing job_id)")
        return jsonify({"error": "Missing job_id"}), 400

    try:
        job_id = uuid.UUID(str(data['job_id']))
    except ValueError:
        logger.error(f"❌ Worker received invalid job_id: {data['job_id']}")
        return jsonify({"error": "Invalid job_id"}), 400

    logger.info(f"📨 Worker received Task for Job {job_id}")

    try:
        uow = get_uow()
        job = uow.jobs.get_by_id(job_id)
        if not job:
            logger.error(f"❌ Job {job_id} not found in DB.")
            return jsonify({"error": "Job not found"}), 404

        # Idempotency / Status Check
        if job.status in FINAL_STATES:
            logger.warning(f"⚠️ Job {job_id} already in final state: {job.status}. Skipping.")
            return jsonify({"status": "Already Processed"}), 200

        job = get_job_processor().process_job(job)

    except SQLAlchemyError as e:
        logger.error(f"❌ Worker database error: {e}")
        return jsonify({"error": "Database error"}), 500

    if job.status == JobStatus.PROCESSING:
        # Outra entrega do mesmo job em andamento: não roda em paralelo
        return jsonify({"status": "In Progress", "final_status": job.status.value}), 409

    if job.status == JobStatus.QUEUED:
        # Execução interrompida (cancelamento ou banco): o Cloud Tasks entrega de novo
        return jsonify({"status": "Retry", "final_status": job.status.value}), 503

    return jsonify({
        "status": "Processed",
        "final_status": job.status.value,
        "result": job.result_payload,
    }), 200
