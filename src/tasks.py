import json
import logging

from google.cloud import tasks_v2

from src.config import config
from src.domain.exceptions import ExternalServiceError

logger = logging.getLogger("tasks")


class TaskManager:
    """
    Enfileira jobs duráveis no Cloud Tasks.

    O Cloud Tasks entrega pelo menos uma vez (POST em /worker/process) e
    refaz a chamada enquanto o worker responder 5xx.
    """

    def __init__(self, project=None, location=None, queue=None, public_url=None):
        self.project = project or config.GCP_PROJECT_ID
        self.location = location or config.GCP_LOCATION
        self.queue = queue or config.GCP_TASK_QUEUE
        self.public_url = public_url or config.APP_PUBLIC_URL
        self.client = None

        # Initialize Client only if GCP vars are present to allow local dev mocking
        if self.project and self.location:
            try:
                self.client = tasks_v2.CloudTasksClient()
                self.parent = self.client.queue_path(self.project, self.location, self.queue)
                logger.info(f"✅ Cloud Tasks Initialized: {self.parent}")
            except Exception as e:
                logger.error(f"⚠️ Failed to init Cloud Tasks: {e}")
                self.client = None
        else:
            logger.warning("⚠️ GCP_PROJECT_ID or GCP_LOCATION missing. TaskManager in Mock Mode.")

    def enqueue_job(self, job_id, payload: dict, url_path: str = "/worker/process") -> str:
        """
        Enqueues a task to the Cloud Tasks queue and returns the task name.
        Target: The service's own URL (Worker handler).
        """
        if not self.client:
            logger.info(f"🔒 [MOCK] Enqueue Job {job_id} to {url_path}: {payload}")
            return f"mock-task-{job_id}"

        task = {
            "http_request": {
                "http_method": tasks_v2.HttpMethod.POST,
                "url": f"{self.public_url}{url_path}",  # Absolute URL required
                "headers": {"Content-Type": "application/json"},
                "body": json.dumps({"job_id": str(job_id), **payload}).encode(),
            }
        }
        if config.GCP_SA_EMAIL:
            task["http_request"]["oidc_token"] = {"service_account_email": config.GCP_SA_EMAIL}

        try:
            response = self.client.create_task(request={"parent": self.parent, "task": task})
        except Exception as e:
            logger.error(f"❌ Error enqueueing task: {e}")
            raise ExternalServiceError(f"Failed to enqueue job {job_id}: {e}", transient=True,
                                       service="SCHEDULER", error_code="ERR_4001") from e

        logger.info(f"🚀 Task enqueued: {response.name}")
        return response.name
