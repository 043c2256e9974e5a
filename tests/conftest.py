"""
Test fixtures for the resumable upload client.
"""
import json
import threading
from collections import Counter
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws as moto_mock_aws
from tenacity import wait_none

from resumable_upload.exceptions import TransferError
from resumable_upload.models import CompletedPart, RemoteSession, UploadTarget
from resumable_upload.session_store import SESSION_KEY, SessionStore

MB = 1024 * 1024


class FakeBackend:
    """In-memory stand-in for the upload service."""

    def __init__(self):
        self.lock = threading.Lock()
        self.sessions_started = []
        self.url_requests = []
        self.remote_parts = {}
        self.completed = None
        self.aborted = []
        self.complete_error = None
        self.list_parts_error = None

    def start_session(self, file_name, content_type):
        session = RemoteSession(
            upload_id=f"mpu-{len(self.sessions_started) + 1}",
            object_key=f"videos/{len(self.sessions_started) + 1}-{file_name}"
        )
        self.sessions_started.append(session)
        self.remote_parts = {}
        return session

    def get_part_url(self, session, part_number):
        with self.lock:
            self.url_requests.append(part_number)
        return f"https://storage.test/{session.object_key}?partNumber={part_number}"

    def list_parts(self, session):
        if self.list_parts_error:
            raise self.list_parts_error
        with self.lock:
            return list(self.remote_parts.values())

    def complete(self, session, parts):
        if self.complete_error:
            raise self.complete_error
        self.completed = (session, list(parts))

    def abort(self, session):
        self.aborted.append(session)


class FakeTransfer:
    """Part transfer client that records concurrency and injects failures."""

    def __init__(self, backend, failures=None, delay=0.0, on_upload=None):
        self.backend = backend
        self.failures = dict(failures or {})
        self.delay = delay
        self.on_upload = on_upload
        self.attempts = Counter()
        self.in_flight = 0
        self.max_in_flight = 0
        self.lock = threading.Lock()

    def upload_part(self, session, descriptor, data, token):
        token.raise_if_cancelled()
        part_number = descriptor.part_number
        self.backend.get_part_url(session, part_number)

        with self.lock:
            self.attempts[part_number] += 1
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                token.wait(self.delay)
            token.raise_if_cancelled()
            with self.lock:
                if self.failures.get(part_number, 0) > 0:
                    self.failures[part_number] -= 1
                    raise TransferError(f"simulated failure of part {part_number}")
            assert len(data) == descriptor.size
            part = CompletedPart(part_number=part_number, etag=f'"etag-{part_number}"')
            with self.backend.lock:
                self.backend.remote_parts[part_number] = part
        finally:
            with self.lock:
                self.in_flight -= 1

        if self.on_upload:
            self.on_upload(part_number)
        return part


@pytest.fixture
def no_wait():
    """Remove wait time between retries for testing."""
    with patch('resumable_upload.retry.wait_exponential', return_value=wait_none()):
        yield


@pytest.fixture
def tmp_state_file(tmp_path):
    """Create a temporary state file path."""
    return tmp_path / "upload_state.json"


@pytest.fixture
def session_store(tmp_state_file):
    """Create a file-backed session store."""
    return SessionStore(state_file=tmp_state_file)


@pytest.fixture
def make_file(tmp_path):
    """Factory writing a file of the given size and returning its target."""
    def _make(name="video.mp4", size=10 * MB, sparse=False):
        path = tmp_path / name
        if sparse:
            with open(path, 'wb') as f:
                f.truncate(size)
        else:
            pattern = bytes(range(256))
            path.write_bytes((pattern * (size // 256 + 1))[:size])
        return UploadTarget.from_path(path)
    return _make


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def write_record(tmp_state_file):
    """Write a persisted session record straight to the state file."""
    def _write(upload_id="mpu-1", key="videos/1-video.mp4",
               file_name="video.mp4", file_size=10 * MB, parts=None):
        record = {
            "uploadId": upload_id,
            "key": key,
            "fileName": file_name,
            "fileSize": file_size,
            "parts": parts or []
        }
        tmp_state_file.write_text(json.dumps({SESSION_KEY: record}))
        return record
    return _write


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never reaches real accounts."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def mock_aws(aws_credentials):
    """Mock S3 client using moto."""
    with moto_mock_aws():
        s3 = boto3.client('s3', region_name='us-east-1')
        # Create test bucket
        s3.create_bucket(Bucket='test-bucket')
        yield s3
