"""Pytest configuration and fixtures for submission processor tests."""

import json
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from scan_processor.core.config import Settings
from scan_processor.core.constants import StorageArea
from scan_processor.core.context import ServiceContext
from scan_processor.services.processor import ProcessorService

CREATE_TOPIC = "submission.notification.create"
SCAN_TOPIC = "avscan.action.scan"


@pytest.fixture
def test_settings():
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        SUBMISSION_CREATE_TOPIC=CREATE_TOPIC,
        AVSCAN_TOPIC=SCAN_TOPIC,
        SUBMISSION_API_URL="https://api.test/v5",
        ANTIVIRUS_API_URL="https://av.test/api/v1/avscan",
        AUTH0_URL="https://auth.test/oauth/token",
        AUTH0_AUDIENCE="https://m2m.test/",
        AUTH0_CLIENT_ID="client-id",
        AUTH0_CLIENT_SECRET="client-secret",
        AUTH0_PROXY_SERVER_URL="",
        MAX_FILE_SIZE=1024,
        STORAGE_PUBLIC_URL="https://s3.amazonaws.com",
        STORAGE_URL_PATTERN="amazonaws",
        DMZ_BUCKET="dmz-bucket",
        CLEAN_BUCKET="clean-bucket",
        QUARANTINE_BUCKET="quarantine-bucket",
    )


@pytest.fixture
def buckets(test_settings):
    return {
        StorageArea.DMZ: test_settings.DMZ_BUCKET,
        StorageArea.CLEAN: test_settings.CLEAN_BUCKET,
        StorageArea.QUARANTINE: test_settings.QUARANTINE_BUCKET,
    }


@pytest.fixture
def mock_storage(buckets):
    """Mock StorageStager; public_url mirrors the real URL layout."""
    storage = MagicMock()
    storage.exists = AsyncMock(return_value=False)
    storage.download = AsyncMock(return_value=b"file-bytes")
    storage.upload = AsyncMock(return_value=None)
    storage.move = AsyncMock(return_value=None)
    storage.public_url = MagicMock(
        side_effect=lambda area, key: f"https://s3.amazonaws.com/{buckets[area]}/{key}"
    )
    return storage


@pytest.fixture
def mock_submissions():
    """Mock SubmissionClient."""
    submissions = MagicMock()
    submissions.request = AsyncMock(return_value=MagicMock(status_code=200))
    submissions.get_review_type_id = AsyncMock(return_value="review-type-av")
    return submissions


@pytest.fixture
def scan_requests():
    """Requests received by the fake antivirus API."""
    return []


@pytest.fixture
def scan_response():
    """Mutable response the fake antivirus API returns."""
    return {"status_code": 200, "content": b'{"accepted": true}'}


@pytest.fixture
def http_client(scan_requests, scan_response):
    def handler(request: httpx.Request) -> httpx.Response:
        scan_requests.append(request)
        return httpx.Response(scan_response["status_code"], content=scan_response["content"])

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def service_ctx(test_settings, http_client, mock_storage, mock_submissions):
    return ServiceContext(
        settings=test_settings,
        http=http_client,
        storage=mock_storage,
        submissions=mock_submissions,
    )


@pytest.fixture
def processor(service_ctx):
    return ProcessorService(service_ctx)


class FakeOffsets:
    """Records commits and rewinds instead of talking to Kafka."""

    def __init__(self) -> None:
        self.commits: list[tuple[str, int, int]] = []
        self.rewinds: list[tuple[str, int, int]] = []

    async def commit_offset(self, topic: str, partition: int, offset: int) -> None:
        self.commits.append((topic, partition, offset))

    def rewind(self, topic: str, partition: int, offset: int) -> None:
        self.rewinds.append((topic, partition, offset))


@pytest.fixture
def offsets():
    return FakeOffsets()


def make_create_event(**payload: Any) -> dict[str, Any]:
    body = {
        "id": "abc123",
        "resource": "submission",
        "fileType": "zip",
        "url": "http://host/file.zip",
        "isFileSubmission": True,
    }
    body.update(payload)
    return {
        "topic": CREATE_TOPIC,
        "originator": "submission-api",
        "timestamp": "2026-01-01T00:00:00.000Z",
        "mime-type": "application/json",
        "payload": body,
    }


def make_scan_event(**payload: Any) -> dict[str, Any]:
    body = {
        "submissionId": "abc123",
        "fileName": "abc123.zip",
        "url": "https://s3.amazonaws.com/dmz-bucket/abc123.zip",
        "status": "scanned",
        "isInfected": True,
    }
    body.update(payload)
    return {
        "topic": SCAN_TOPIC,
        "originator": "anti-virus-service",
        "timestamp": "2026-01-01T00:00:00.000Z",
        "mime-type": "application/json",
        "payload": body,
    }


def make_message(value: Any, offset: int = 0) -> SimpleNamespace:
    """A stand-in for an aiokafka ConsumerRecord."""
    if isinstance(value, dict):
        value = json.dumps(value)
    if isinstance(value, str):
        value = value.encode("utf-8")
    return SimpleNamespace(offset=offset, value=value)
