"""Tests for StorageService (local mode) and TaskManager."""
import json
import uuid
from unittest.mock import MagicMock

import pytest

from src.domain.exceptions import ExternalServiceError
from src.services.storage_service import StorageService
from src.tasks import TaskManager


class TestLocalStorage:

    @pytest.fixture
    def storage(self, tmp_path, monkeypatch):
        monkeypatch.setattr('src.services.storage_service.config.GCP_STORAGE_BUCKET', None)
        return StorageService(local_dir=str(tmp_path))

    def test_save_and_read(self, storage):
        org_id = uuid.uuid4()
        url = storage.save_image(b'jpeg-bytes', org_id, 'foto corredor.jpg')

        assert url.startswith(f'local://photos/{org_id}/')
        assert url.endswith('_foto_corredor.jpg')
        assert storage.read_image(url) == b'jpeg-bytes'

    def test_same_filename_does_not_overwrite(self, storage):
        org_id = uuid.uuid4()
        first = storage.save_image(b'primeira', org_id, 'photo.jpg')
        second = storage.save_image(b'segunda', org_id, 'photo.jpg')

        assert first != second
        assert storage.read_image(first) == b'primeira'
        assert storage.read_image(second) == b'segunda'

    def test_generated_filename(self, storage):
        url = storage.save_image(b'data', uuid.uuid4())
        assert url.endswith('.jpg')
        assert storage.read_image(url) == b'data'

    def test_missing_file(self, storage):
        assert storage.read_image('local://photos/x/nao-existe.jpg') is None

    def test_unsupported_url(self, storage):
        assert storage.read_image('https://example.com/foto.jpg') is None
        assert storage.read_image('') is None


class TestTaskManager:

    @pytest.fixture
    def cloud_client(self, monkeypatch):
        client = MagicMock()
        client.queue_path.return_value = 'projects/p/locations/l/queues/q'
        client.create_task.return_value = MagicMock(name='task')
        client.create_task.return_value.name = 'projects/p/locations/l/queues/q/tasks/123'
        monkeypatch.setattr('src.tasks.tasks_v2.CloudTasksClient', lambda: client)
        monkeypatch.setattr('src.tasks.config.GCP_SA_EMAIL', 'worker@p.iam.gserviceaccount.com')
        return client

    def test_mock_mode_without_gcp(self, monkeypatch):
        monkeypatch.setattr('src.tasks.config.GCP_PROJECT_ID', None)
        monkeypatch.setattr('src.tasks.config.GCP_LOCATION', None)
        manager = TaskManager()

        job_id = uuid.uuid4()
        assert manager.client is None
        assert manager.enqueue_job(job_id, {'inspection_id': 'x'}) == f'mock-task-{job_id}'

    def test_enqueues_http_task(self, cloud_client):
        manager = TaskManager(project='p', location='l', queue='q', public_url='https://app.example.com')
        job_id = uuid.uuid4()

        name = manager.enqueue_job(job_id, {'inspection_id': 'abc'})

        assert name.endswith('/tasks/123')
        request = cloud_client.create_task.call_args.kwargs['request']
        http_request = request['task']['http_request']
        assert http_request['url'] == 'https://app.example.com/worker/process'
        assert json.loads(http_request['body']) == {'job_id': str(job_id), 'inspection_id': 'abc'}
        assert http_request['oidc_token']['service_account_email'] == 'worker@p.iam.gserviceaccount.com'

    def test_enqueue_failure_is_external_error(self, cloud_client):
        cloud_client.create_task.side_effect = RuntimeError('queue unavailable')
        manager = TaskManager(project='p', location='l', queue='q', public_url='https://app.example.com')

        with pytest.raises(ExternalServiceError) as exc_info:
            manager.enqueue_job(uuid.uuid4(), {})

        assert exc_info.value.service == 'SCHEDULER'
        assert exc_info.value.error_code == 'ERR_4001'
        assert exc_info.value.transient is True
