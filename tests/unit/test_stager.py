"""Tests for StorageStager against a mocked boto3 client."""

from unittest.mock import MagicMock, call

import httpx
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from scan_processor.core.constants import StorageArea
from scan_processor.core.tracing import Span
from scan_processor.messaging.errors import ObjectNotFoundError, StorageError
from scan_processor.storage.stager import StorageStager, parse_s3_url


def client_error(code: str, status: int, operation: str = "HeadObject") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


@pytest.fixture
def s3():
    return MagicMock()


@pytest.fixture
def downloads():
    return []


@pytest.fixture
def stager(s3, downloads, test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        downloads.append(request)
        if request.url.path == "/missing.zip":
            return httpx.Response(404)
        if request.url.path == "/unreachable.zip":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, content=b"public-bytes")

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StorageStager(s3, http, test_settings)


class TestExists:

    @pytest.mark.asyncio
    async def test_present(self, stager, s3):
        s3.head_object.return_value = {"ContentLength": 10}

        assert await stager.exists(StorageArea.DMZ, "abc123.zip") is True
        s3.head_object.assert_called_once_with(Bucket="dmz-bucket", Key="abc123.zip")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
    async def test_not_found(self, stager, s3, code):
        s3.head_object.side_effect = client_error(code, 404)

        assert await stager.exists(StorageArea.DMZ, "abc123.zip") is False

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, stager, s3):
        s3.head_object.side_effect = client_error("AccessDenied", 403)

        with pytest.raises(StorageError) as exc_info:
            await stager.exists(StorageArea.DMZ, "abc123.zip")

        assert not isinstance(exc_info.value, ObjectNotFoundError)


class TestMove:

    @pytest.mark.asyncio
    async def test_copy_then_delete(self, stager, s3):
        span = Span("process_scan")

        await stager.move(StorageArea.DMZ, "abc123.zip", StorageArea.QUARANTINE, "abc123.zip", parent_span=span)

        assert s3.mock_calls == [
            call.copy_object(
                Bucket="quarantine-bucket",
                Key="abc123.zip",
                CopySource={"Bucket": "dmz-bucket", "Key": "abc123.zip"},
            ),
            call.delete_object(Bucket="dmz-bucket", Key="abc123.zip"),
        ]

    @pytest.mark.asyncio
    async def test_failed_copy_keeps_source(self, stager, s3):
        s3.copy_object.side_effect = client_error("InternalError", 500, "CopyObject")

        with pytest.raises(StorageError):
            await stager.move(StorageArea.DMZ, "abc123.zip", StorageArea.CLEAN, "abc123.zip")

        s3.delete_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_move_is_repeatable(self, stager, s3):
        for _ in range(2):
            await stager.move(StorageArea.DMZ, "abc123.zip", StorageArea.CLEAN, "abc123.zip")

        assert s3.copy_object.call_count == 2
        assert s3.delete_object.call_count == 2


class TestDownload:

    @pytest.mark.asyncio
    async def test_storage_url_uses_s3(self, stager, s3, downloads):
        body = MagicMock()
        body.read.return_value = b"s3-bytes"
        s3.get_object.return_value = {"Body": body}

        data = await stager.download("https://s3.amazonaws.com/source-bucket/path/to/file.zip")

        assert data == b"s3-bytes"
        s3.get_object.assert_called_once_with(Bucket="source-bucket", Key="path/to/file.zip")
        assert downloads == []

    @pytest.mark.asyncio
    async def test_public_url_uses_http(self, stager, s3, downloads):
        span = Span("process_create")

        data = await stager.download("http://host/file.zip", parent_span=span)

        assert data == b"public-bytes"
        assert len(downloads) == 1
        s3.get_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_public_url_error(self, stager):
        with pytest.raises(StorageError):
            await stager.download("http://host/missing.zip")

    @pytest.mark.asyncio
    async def test_public_url_connection_error_wrapped(self, stager):
        with pytest.raises(StorageError) as exc_info:
            await stager.download("http://host/unreachable.zip")

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_storage_endpoint_error_wrapped(self, stager, s3):
        s3.get_object.side_effect = EndpointConnectionError(endpoint_url="https://s3.amazonaws.com")

        with pytest.raises(StorageError) as exc_info:
            await stager.download("https://s3.amazonaws.com/source-bucket/file.zip")

        assert not isinstance(exc_info.value, ObjectNotFoundError)
        assert isinstance(exc_info.value.__cause__, EndpointConnectionError)


class TestUploadAndUrls:

    @pytest.mark.asyncio
    async def test_upload(self, stager, s3):
        await stager.upload(StorageArea.DMZ, "abc123.zip", b"data")

        s3.put_object.assert_called_once_with(Bucket="dmz-bucket", Key="abc123.zip", Body=b"data")

    def test_public_url(self, stager):
        assert stager.public_url(StorageArea.CLEAN, "abc123.zip") == (
            "https://s3.amazonaws.com/clean-bucket/abc123.zip"
        )


class TestParseS3Url:

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("s3://bucket/key.zip", ("bucket", "key.zip")),
            ("https://s3.amazonaws.com/bucket/dir/key.zip", ("bucket", "dir/key.zip")),
            ("https://s3-us-west-2.amazonaws.com/bucket/key.zip", ("bucket", "key.zip")),
            ("https://bucket.s3.amazonaws.com/key.zip", ("bucket", "key.zip")),
            ("https://my.bucket.s3.us-east-1.amazonaws.com/a%20b.zip", ("my.bucket", "a b.zip")),
        ],
    )
    def test_supported_forms(self, url, expected):
        assert parse_s3_url(url) == expected

    @pytest.mark.parametrize("url", ["https://example.com/file.zip", "https://s3.amazonaws.com/bucket-only"])
    def test_unparseable(self, url):
        with pytest.raises(StorageError):
            parse_s3_url(url)
